"""Built-in permission set templates."""

from pathlib import Path
from typing import Dict, List, Optional

import yaml

from .models import PermissionSetTemplate

AWS_MANAGED_POLICY_PREFIX = "arn:aws:iam::aws:policy/"


def _policy(name: str) -> str:
    return f"{AWS_MANAGED_POLICY_PREFIX}{name}"


BUILTIN_TEMPLATES: Dict[str, PermissionSetTemplate] = {
    "readonly": PermissionSetTemplate(
        name="ReadOnlyAccess",
        description="Read-only access to AWS resources",
        session_duration="PT4H",
        managed_policies=[_policy("ReadOnlyAccess")],
        tags={"Template": "readonly", "AccessLevel": "read"},
    ),
    "developer": PermissionSetTemplate(
        name="DeveloperAccess",
        description="Developer access with power user permissions",
        session_duration="PT8H",
        managed_policies=[_policy("PowerUserAccess")],
        tags={"Template": "developer", "AccessLevel": "write"},
    ),
    "admin": PermissionSetTemplate(
        name="AdministratorAccess",
        description="Full administrative access to AWS resources",
        session_duration="PT2H",
        managed_policies=[_policy("AdministratorAccess")],
        tags={"Template": "admin", "AccessLevel": "admin"},
    ),
    "s3-access": PermissionSetTemplate(
        name="S3Access",
        description="Full access to Amazon S3",
        session_duration="PT4H",
        managed_policies=[_policy("AmazonS3FullAccess")],
        tags={"Template": "s3-access", "AccessLevel": "service"},
    ),
    "ec2-access": PermissionSetTemplate(
        name="EC2Access",
        description="Full access to Amazon EC2",
        session_duration="PT4H",
        managed_policies=[_policy("AmazonEC2FullAccess")],
        tags={"Template": "ec2-access", "AccessLevel": "service"},
    ),
    "lambda-developer": PermissionSetTemplate(
        name="LambdaDeveloper",
        description="Lambda development with read access to IAM and CloudWatch Logs",
        session_duration="PT6H",
        managed_policies=[
            _policy("AWSLambda_FullAccess"),
            _policy("IAMReadOnlyAccess"),
            _policy("CloudWatchLogsReadOnlyAccess"),
        ],
        tags={"Template": "lambda-developer", "AccessLevel": "service"},
    ),
    "database-admin": PermissionSetTemplate(
        name="DatabaseAdmin",
        description="Administrative access to RDS and DynamoDB",
        session_duration="PT4H",
        managed_policies=[_policy("AmazonRDSFullAccess"), _policy("AmazonDynamoDBFullAccess")],
        tags={"Template": "database-admin", "AccessLevel": "service"},
    ),
    "security-auditor": PermissionSetTemplate(
        name="SecurityAuditor",
        description="Security audit access with read-only permissions",
        session_duration="PT2H",
        managed_policies=[_policy("SecurityAudit"), _policy("ReadOnlyAccess")],
        tags={"Template": "security-auditor", "AccessLevel": "audit"},
    ),
    "billing-access": PermissionSetTemplate(
        name="BillingAccess",
        description="Access to billing and cost management",
        session_duration="PT4H",
        managed_policies=[_policy("job-function/Billing")],
        tags={"Template": "billing-access", "AccessLevel": "billing"},
    ),
}

# Keywords that point at a template when recommending one for a use case
RECOMMENDATION_KEYWORDS = {
    "readonly": ["read", "view", "audit", "monitor"],
    "developer": ["develop", "dev", "build", "code"],
    "admin": ["admin", "full", "manage"],
    "s3-access": ["s3", "bucket", "storage"],
    "ec2-access": ["ec2", "instance", "compute"],
    "lambda-developer": ["lambda", "serverless", "function"],
    "database-admin": ["database", "rds", "dynamo", "db"],
    "security-auditor": ["security", "compliance"],
    "billing-access": ["billing", "cost", "invoice"],
}


class TemplateCatalog:
    """Lookup of permission set templates by name."""

    def __init__(self, templates: Optional[Dict[str, PermissionSetTemplate]] = None):
        self._templates: Dict[str, PermissionSetTemplate] = dict(
            BUILTIN_TEMPLATES if templates is None else templates
        )

    def get(self, name: str) -> Optional[PermissionSetTemplate]:
        return self._templates.get(name)

    def names(self) -> List[str]:
        return sorted(self._templates)

    def items(self):
        return sorted(self._templates.items())

    def register(self, key: str, template: PermissionSetTemplate) -> None:
        self._templates[key] = template

    def load_directory(self, directory: str) -> int:
        """Register every ``*.yaml`` template found in a directory.

        Each file holds one template; the file stem is the template key.

        Returns:
            Number of templates loaded
        """
        loaded = 0
        for path in sorted(Path(directory).expanduser().glob("*.yaml")):
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
            self.register(path.stem, PermissionSetTemplate.from_dict(data))
            loaded += 1
        return loaded

    def recommend(self, use_case: str) -> List[str]:
        """Suggest template keys for a free-text use case description."""
        text = use_case.lower()
        matches = [
            key
            for key, keywords in RECOMMENDATION_KEYWORDS.items()
            if key in self._templates and any(keyword in text for keyword in keywords)
        ]
        return matches or (["readonly"] if "readonly" in self._templates else [])
