"""Identity provider and cloud platform clients.

This package provides the collaborator contracts used by the orchestrator and
the AWS IAM Identity Center implementation of the platform side.
"""

from .identity_center import IdentityCenterPlatformClient
from .interfaces import (
    AccountAssignment,
    AppBindingResult,
    ClientResult,
    DeletionStatus,
    GroupCreationResult,
    GroupValidation,
    IdentityClient,
    IdentityGroup,
    PlatformClient,
    ProvisioningState,
    ProvisioningStatus,
    SyncStatus,
)
from .manager import AWSClientManager

__all__ = [
    "AWSClientManager",
    "IdentityCenterPlatformClient",
    "IdentityClient",
    "PlatformClient",
    "AccountAssignment",
    "AppBindingResult",
    "ClientResult",
    "DeletionStatus",
    "GroupCreationResult",
    "GroupValidation",
    "IdentityGroup",
    "ProvisioningState",
    "ProvisioningStatus",
    "SyncStatus",
]
