from __future__ import annotations

import uuid


def new_id() -> str:
    """Random UUID in canonical dashed-hex form, the hosted backend's key shape."""
    return str(uuid.uuid4())
