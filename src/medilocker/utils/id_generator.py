"""ID generation utilities for Medilocker."""

import uuid
from typing import Optional


def generate_id(prefix: Optional[str] = None) -> str:
    """Generate a unique ID with optional prefix.

    Args:
        prefix: Optional prefix for the ID

    Returns:
        Generated unique ID
    """
    base_id = str(uuid.uuid4())

    if prefix:
        return f"{prefix}_{base_id}"

    return base_id
