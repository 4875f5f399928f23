"""JSON helpers shared by the builder, client and debug logging."""

from __future__ import annotations

import json
from typing import Any, Optional


def to_json(obj: Any) -> str:
    """Compact JSON text used as the HTTP request body."""
    return json.dumps(obj, ensure_ascii=False, separators=(",", ":"))


def to_pretty_json(obj: Any) -> str:
    """Indented JSON for debug log output."""
    return json.dumps(obj, ensure_ascii=False, indent=2, default=str)


def parse_json(text: Optional[str]) -> Any:
    """Parse *text*, returning ``None`` for blank or invalid input."""
    if text is None or not text.strip():
        return None
    try:
        return json.loads(text)
    except ValueError:
        return None
