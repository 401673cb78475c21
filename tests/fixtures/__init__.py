"""Test fixtures package for awsag.

This package provides shared fixtures for the orchestrator tests:

- clients: in-memory identity provider and platform clients with failure injection
- orchestrator: orchestrator factory with zero poll intervals and request builders

Usage:
    from tests.fixtures.clients import FakeIdentityClient, FakePlatformClient
    from tests.fixtures.orchestrator import make_orchestrator, make_grant_request
"""

from .clients import FakeIdentityClient, FakePlatformClient, identity_client, platform_client
from .orchestrator import (
    ACCOUNT_MAPPING,
    ENTERPRISE_APP_ID,
    make_config,
    make_grant_request,
    make_orchestrator,
    orchestrator_factory,
    seeded_assignment,
)

__all__ = [
    "FakeIdentityClient",
    "FakePlatformClient",
    "identity_client",
    "platform_client",
    "ACCOUNT_MAPPING",
    "ENTERPRISE_APP_ID",
    "make_config",
    "make_grant_request",
    "make_orchestrator",
    "orchestrator_factory",
    "seeded_assignment",
]
