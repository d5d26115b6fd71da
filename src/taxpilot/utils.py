"""Utility functions shared across TaxPilot."""

import uuid
from enum import Enum
from typing import Any


def get_enum_value(value: Any) -> str:
    """
    Get string value from an enum or return as-is if already a string.

    Models that use ``use_enum_values`` hold plain strings while others hold
    enum members, so display code goes through this helper.

    Args:
        value: An enum instance or string

    Returns:
        The string value
    """
    if isinstance(value, Enum):
        return value.value
    return str(value) if value is not None else ""


def humanize(value: Any) -> str:
    """Turn ``snake_case`` enum values into readable words."""
    return get_enum_value(value).replace("_", " ")


def new_id() -> str:
    """Generate a unique identifier for a stored record."""
    return str(uuid.uuid4())
