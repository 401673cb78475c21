"""Input validation utilities for awsag."""

import math
import re
from dataclasses import dataclass
from typing import Optional

from ..exceptions import ValidationError
from ..models import Environment

# Regular expression patterns for validation
TICKET_ID_PATTERN = r"^AG-\d{3,4}$"
EMAIL_PATTERN = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"
ACCOUNT_ID_PATTERN = r"^\d{12}$"
SESSION_DURATION_PATTERN = r"^PT(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?$"
SIMPLE_SESSION_DURATION_PATTERN = r"^PT\d+[HM]$"

DEFAULT_GROUP_PREFIX = "CE-AWS"


def validate_ticket_id(ticket_id: str) -> str:
    """
    Validate an access grant ticket identifier.

    Args:
        ticket_id: Ticket identifier such as AG-123 or AG-1234

    Returns:
        The ticket identifier

    Raises:
        ValidationError: If the ticket identifier is malformed
    """
    if not ticket_id or not re.match(TICKET_ID_PATTERN, ticket_id):
        raise ValidationError(
            f"Invalid ticket ID format: {ticket_id}. Expected format: AG-XXX or AG-XXXX",
            context={"ticket_id": ticket_id},
        )
    return ticket_id


def validate_environment(environment: str) -> Environment:
    """
    Validate an environment tag.

    Args:
        environment: One of Dev, QA, Staging, Prod

    Returns:
        The matching Environment

    Raises:
        ValidationError: If the environment is unknown
    """
    try:
        return Environment(environment)
    except ValueError:
        raise ValidationError(
            f"Invalid account type: {environment}. Must be one of: {', '.join(Environment.values())}",
            context={"environment": environment},
        )


def is_valid_email(value: str) -> bool:
    return bool(value) and re.match(EMAIL_PATTERN, value) is not None


def is_valid_account_id(value: str) -> bool:
    return bool(value) and re.match(ACCOUNT_ID_PATTERN, value) is not None


def parse_session_duration(value: str) -> Optional[int]:
    """Return the duration in minutes, or None if the string is not an ISO-8601 duration."""
    match = re.match(SESSION_DURATION_PATTERN, value or "")
    if not match or value == "PT":
        return None
    hours, minutes, seconds = (int(part) if part else 0 for part in match.groups())
    return hours * 60 + minutes + math.ceil(seconds / 60)


def generate_group_name(
    environment: str, ticket_id: str, prefix: str = DEFAULT_GROUP_PREFIX
) -> str:
    """
    Derive the identity group name for an access grant.

    Args:
        environment: Environment tag
        ticket_id: Ticket identifier
        prefix: Fixed group name prefix

    Returns:
        Group name of the form PREFIX-<Environment>-<TicketId>

    Raises:
        ValidationError: If the environment or ticket identifier is invalid
    """
    env = validate_environment(environment)
    validate_ticket_id(ticket_id)
    return f"{prefix}-{env.value}-{ticket_id}"


@dataclass(frozen=True)
class ParsedGroupName:
    prefix: str
    environment: Environment
    ticket_id: str


def parse_group_name(group_name: str, prefix: str = DEFAULT_GROUP_PREFIX) -> ParsedGroupName:
    """
    Split an access grant group name into its segments.

    The name is made of four segments: the two-part prefix, the environment
    and the ticket id (which itself contains a hyphen).

    Args:
        group_name: Group name such as CE-AWS-Dev-AG-1234
        prefix: Expected group name prefix

    Returns:
        Parsed name segments

    Raises:
        ValidationError: If the name does not follow the access grant pattern
    """
    pattern = (
        rf"^(?P<prefix>{re.escape(prefix)})-(?P<environment>[A-Za-z]+)-(?P<ticket>AG-\d{{3,4}})$"
    )
    match = re.match(pattern, group_name or "")
    if not match:
        raise ValidationError(
            f"Invalid group name format: {group_name}. Expected format: {prefix}-<Environment>-AG-XXXX",
            context={"group_name": group_name},
        )
    return ParsedGroupName(
        prefix=match.group("prefix"),
        environment=validate_environment(match.group("environment")),
        ticket_id=match.group("ticket"),
    )
