"""Permission set models."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class PermissionSetConfig:
    """Everything needed to create a permission set."""

    name: str
    description: str = ""
    session_duration: str = "PT1H"
    managed_policies: List[str] = field(default_factory=list)
    inline_policy: Optional[str] = None
    tags: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "session_duration": self.session_duration,
            "managed_policies": list(self.managed_policies),
            "inline_policy": self.inline_policy,
            "tags": dict(self.tags),
        }


@dataclass
class PermissionSet:
    """A permission set as reported by the platform."""

    arn: str
    name: str
    description: str = ""
    session_duration: Optional[str] = None
    managed_policies: List[str] = field(default_factory=list)
    inline_policy: Optional[str] = None
    tags: Dict[str, str] = field(default_factory=dict)


@dataclass
class PermissionSetTemplate:
    """A named permission set blueprint from the catalog."""

    name: str
    description: str
    session_duration: str
    managed_policies: List[str] = field(default_factory=list)
    inline_policy: Optional[str] = None
    tags: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        if not self.name:
            raise ValueError("Template name cannot be empty")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "session_duration": self.session_duration,
            "managed_policies": list(self.managed_policies),
            "inline_policy": self.inline_policy,
            "tags": dict(self.tags),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PermissionSetTemplate":
        return cls(
            name=data["name"],
            description=data.get("description", ""),
            session_duration=data.get("session_duration", "PT1H"),
            managed_policies=list(data.get("managed_policies", [])),
            inline_policy=data.get("inline_policy"),
            tags=dict(data.get("tags", {})),
        )


@dataclass
class PermissionSetValidationResult:
    """Outcome of validating a permission set configuration."""

    is_valid: bool = True
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def add_error(self, message: str) -> None:
        self.errors.append(message)
        self.is_valid = False

    def add_warning(self, message: str) -> None:
        self.warnings.append(message)
