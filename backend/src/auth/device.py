"""Device identifiers for operator handsets."""

import uuid


def new_device_token() -> str:
    """Random UUID4 identifying a device pending administrator approval."""
    return str(uuid.uuid4())
