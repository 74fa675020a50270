"""
Environment variable substitution in configuration values.

``${VAR}`` is replaced by the variable's value and left as written when the
variable is unset. ``${VAR:-fallback}`` uses ``fallback`` when it is unset or
empty.
"""

import os
import re
from typing import Any

_PLACEHOLDER = re.compile(r"\$\{(?P<name>[A-Za-z_][A-Za-z0-9_]*)(?::-(?P<fallback>[^}]*))?\}")


def resolve_config(config_data: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of ``config_data`` with placeholders substituted in every string."""
    return _resolve(config_data)


def _resolve(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _resolve(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_resolve(v) for v in value]
    if isinstance(value, str):
        return _PLACEHOLDER.sub(_substitute, value)
    return value


def _substitute(match: re.Match) -> str:
    current = os.environ.get(match.group("name"))
    fallback = match.group("fallback")
    if fallback is not None:
        return current or fallback
    return current if current is not None else match.group(0)
