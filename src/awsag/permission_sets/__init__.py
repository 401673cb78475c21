"""Permission set templates, validation and materialization.

The manager lives in ``awsag.permission_sets.manager`` and is imported from
there directly.
"""

from .catalog import BUILTIN_TEMPLATES, TemplateCatalog
from .models import (
    PermissionSet,
    PermissionSetConfig,
    PermissionSetTemplate,
    PermissionSetValidationResult,
)
from .validator import PermissionSetValidator, is_valid_policy_arn, validate_inline_policy

__all__ = [
    "BUILTIN_TEMPLATES",
    "TemplateCatalog",
    "PermissionSet",
    "PermissionSetConfig",
    "PermissionSetTemplate",
    "PermissionSetValidationResult",
    "PermissionSetValidator",
    "is_valid_policy_arn",
    "validate_inline_policy",
]
