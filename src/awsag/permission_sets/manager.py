"""Permission set materialization from templates or custom permissions."""

import logging
from typing import Dict, List, Optional

from ..clients.interfaces import PlatformClient
from ..exceptions import ValidationError, is_resource_absent
from ..models import CustomPermissions, PermissionSource, TemplatePermissions
from ..utils.retry import RetryExecutor
from .catalog import TemplateCatalog
from .models import PermissionSet, PermissionSetConfig, PermissionSetValidationResult
from .validator import PermissionSetValidator

logger = logging.getLogger(__name__)

CUSTOM_TAGS = {"CreatedBy": "aws-ag-tool", "Type": "custom"}


class PermissionSetManager:
    """Builds, validates and creates permission sets."""

    def __init__(
        self,
        platform_client: PlatformClient,
        catalog: Optional[TemplateCatalog] = None,
        validator: Optional[PermissionSetValidator] = None,
        retry_executor: Optional[RetryExecutor] = None,
        default_session_duration: str = "PT1H",
    ):
        self.platform_client = platform_client
        self.catalog = catalog or TemplateCatalog()
        self.validator = validator or PermissionSetValidator()
        self.retry_executor = retry_executor or RetryExecutor()
        self.default_session_duration = default_session_duration

    def build_config(
        self,
        source: PermissionSource,
        name: str,
        description: Optional[str] = None,
        extra_tags: Optional[Dict[str, str]] = None,
    ) -> PermissionSetConfig:
        """
        Resolve a permission source into a concrete configuration.

        Template fields are used as the base; override fields replace them
        when set and tags are merged.

        Args:
            source: Template or custom permission source
            name: Permission set name
            description: Description replacing the template or custom default
            extra_tags: Tags added on top of the source tags

        Returns:
            Permission set configuration

        Raises:
            ValidationError: If the named template does not exist
        """
        if isinstance(source, TemplatePermissions):
            template = self.catalog.get(source.template_name)
            if template is None:
                raise ValidationError(
                    f"Template '{source.template_name}' not found. "
                    f"Available templates: {', '.join(self.catalog.names())}",
                    context={"template": source.template_name},
                )
            config = PermissionSetConfig(
                name=name,
                description=description or template.description,
                session_duration=template.session_duration,
                managed_policies=list(template.managed_policies),
                inline_policy=template.inline_policy,
                tags=dict(template.tags),
            )
            overrides = source.overrides
        else:
            config = PermissionSetConfig(
                name=name,
                description=description or f"Custom permission set: {name}",
                session_duration=self.default_session_duration,
                tags=dict(CUSTOM_TAGS),
            )
            overrides = source

        if overrides is not None:
            self._apply_overrides(config, overrides)
        config.tags.update(extra_tags or {})
        return config

    def _apply_overrides(self, config: PermissionSetConfig, overrides: CustomPermissions) -> None:
        if overrides.managed_policies:
            config.managed_policies = list(overrides.managed_policies)
        if overrides.inline_policy:
            config.inline_policy = overrides.inline_policy
        if overrides.session_duration:
            config.session_duration = overrides.session_duration

    def validate_config(self, config: PermissionSetConfig) -> PermissionSetValidationResult:
        return self.validator.validate(config)

    async def create(
        self,
        source: PermissionSource,
        name: str,
        description: Optional[str] = None,
        extra_tags: Optional[Dict[str, str]] = None,
    ) -> PermissionSet:
        """
        Validate and create a permission set.

        Raises:
            ValidationError: If the configuration is invalid
        """
        config = self.build_config(source, name, description, extra_tags)
        validation = self.validate_config(config)
        if not validation.is_valid:
            raise ValidationError(
                f"Permission set validation failed: {', '.join(validation.errors)}",
                context={"errors": validation.errors, "permission_set": name},
            )
        for warning in validation.warnings:
            logger.warning(f"Permission set {name}: {warning}")

        attempts = 0

        async def create_once() -> PermissionSet:
            nonlocal attempts
            attempts += 1
            if attempts > 1:
                # An earlier attempt may have created the permission set before failing
                for existing in await self.platform_client.list_permission_sets():
                    if existing.name == config.name:
                        logger.info(
                            f"Reusing permission set {existing.name} ({existing.arn}) "
                            f"created by an earlier attempt"
                        )
                        return existing
            return await self.platform_client.create_permission_set(config)

        permission_set = await self.retry_executor.execute(create_once, "create permission set")
        logger.info(f"Created permission set {permission_set.name} ({permission_set.arn})")
        return permission_set

    async def create_from_template(
        self,
        template_name: str,
        name: Optional[str] = None,
        overrides: Optional[CustomPermissions] = None,
        description: Optional[str] = None,
    ) -> PermissionSet:
        """Create a permission set from a catalog template."""
        template = self.catalog.get(template_name)
        permission_set_name = name or (template.name if template else template_name)
        return await self.create(
            TemplatePermissions(template_name=template_name, overrides=overrides),
            permission_set_name,
            description,
        )

    async def create_custom(
        self, name: str, permissions: CustomPermissions, description: Optional[str] = None
    ) -> PermissionSet:
        """Create a permission set from explicit permission fields."""
        return await self.create(permissions, name, description)

    async def list_existing(self) -> List[PermissionSet]:
        return await self.retry_executor.execute(
            self.platform_client.list_permission_sets, "list permission sets"
        )

    async def find_by_name(self, name: str) -> Optional[PermissionSet]:
        for permission_set in await self.list_existing():
            if permission_set.name == name:
                return permission_set
        return None

    async def permission_set_exists(self, name: str) -> bool:
        return await self.find_by_name(name) is not None

    async def generate_unique_name(self, base_name: str) -> str:
        """Return ``base_name`` or the first free ``base_name-N`` variant."""
        existing = {ps.name for ps in await self.list_existing()}
        candidate = base_name
        counter = 1
        while candidate in existing:
            candidate = f"{base_name}-{counter}"
            counter += 1
        return candidate

    async def validate_existing(self, permission_set_arn: str) -> PermissionSetValidationResult:
        """Validate a permission set that already exists on the platform."""
        try:
            permission_set = await self.retry_executor.execute(
                lambda: self.platform_client.describe_permission_set(permission_set_arn),
                "describe permission set",
            )
        except Exception as e:
            if is_resource_absent(e):
                result = PermissionSetValidationResult()
                result.add_error("Permission set not found")
                return result
            raise

        return self.validate_config(
            PermissionSetConfig(
                name=permission_set.name,
                description=permission_set.description,
                session_duration=permission_set.session_duration or "",
                managed_policies=list(permission_set.managed_policies),
                inline_policy=permission_set.inline_policy,
                tags=dict(permission_set.tags),
            )
        )
