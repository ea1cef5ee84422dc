"""Canonical string forms the exchange verifies signatures against.

Parameter order and encoding are part of the signing contract: the
exchange rebuilds the same strings server-side, so every byte here
must match what it expects. Values are rendered the way the exchange's
reference clients (JavaScript) stringify them.
"""

import json
import re
from collections.abc import Mapping
from decimal import Decimal
from enum import Enum
from typing import Any
from urllib.parse import quote, urlencode

# encodeURIComponent leaves these unescaped in addition to quote()'s "_.-~"
_URI_COMPONENT_SAFE = "!*'()"

_WHITESPACE = re.compile(r"\s")


def render_scalar(value: Any) -> str:
    """Stringify a scalar the way the exchange's JavaScript clients do.

    Booleans become true/false. Decimals and floats use plain notation
    (never 1E-8 or 1e-05), and integral floats drop the trailing .0.
    Floats keep their shortest round-trip digits.
    """
    if isinstance(value, Enum):
        return render_scalar(value.value)
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Decimal):
        return format(value, "f")
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return format(Decimal(repr(value)), "f")
    return str(value)


def _dumps(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def render_params(params: Mapping[str, Any]) -> dict[str, str]:
    """Coerce every parameter value to its string form.

    None values are dropped. Arrays become their JSON text (object items
    are rendered recursively and JSON-encoded first); nested objects
    become their JSON text with keys in insertion order.
    """
    rendered: dict[str, str] = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            rendered[key] = _dumps(
                [
                    _dumps(render_params(item)) if isinstance(item, Mapping) else render_scalar(item)
                    for item in value
                ]
            )
        elif isinstance(value, Mapping):
            rendered[key] = _dumps(render_params(value))
        else:
            rendered[key] = render_scalar(value)
    return rendered


def canonical_json(params: Mapping[str, Any]) -> str:
    """Sorted-key, whitespace-free JSON of the rendered parameters.

    Input key order never affects the output.
    """
    text = json.dumps(
        render_params(params),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return _WHITESPACE.sub("", text)


def encode_query(params: Mapping[str, Any]) -> str:
    """Lexicographically sorted `k=v&...` query with URI-component encoded values."""
    rendered = render_params(params)
    return "&".join(
        f"{key}={quote(rendered[key], safe=_URI_COMPONENT_SAFE)}" for key in sorted(rendered)
    )


def encode_form(params: Mapping[str, str]) -> str:
    """application/x-www-form-urlencoded body, preserving the given order."""
    return urlencode(list(params.items()))
