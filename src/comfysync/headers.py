"""Auth header codec.

Header sets are persisted as a flat string mapping. Two text forms are read:

- a JSON object: ``{"CF-Access-Client-Id": "abc", "CF-Access-Client-Secret": "xyz"}``
- ``Key: value`` (or ``Key=value``) lines, with ``#`` comments and blank lines ignored

They are always written back as a JSON object.
"""

from __future__ import annotations

import json
import logging
from typing import Dict, Mapping, Optional

logger = logging.getLogger(__name__)


class HeaderParseError(ValueError):
    """Header text could not be parsed."""
    pass


def _parse_lines(text: str) -> Dict[str, str]:
    result: Dict[str, str] = {}

    for line in text.splitlines():
        line = line.strip()

        if not line or line.startswith("#"):
            continue

        # "Key: value" wins over "Key=value" since values may contain '='
        if ":" in line:
            key, _, value = line.partition(":")
        elif "=" in line:
            key, _, value = line.partition("=")
        else:
            raise HeaderParseError(f"Expected 'Key: value', got {line!r}")

        key = key.strip()
        value = value.strip()

        if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
            value = value[1:-1]

        result[key] = value

    return result


def parse_headers(text: Optional[str]) -> Dict[str, str]:
    """Parse persisted header text into a mapping.

    Entries are returned as written; use :func:`valid_headers` to drop blanks.
    """
    if not text or not text.strip():
        return {}

    stripped = text.strip()
    if stripped.startswith("{"):
        try:
            data = json.loads(stripped)
        except json.JSONDecodeError as e:
            preview = stripped if len(stripped) <= 100 else stripped[:100] + "..."
            raise HeaderParseError(f"Invalid header JSON ({e.msg}): {preview}") from e
        if not isinstance(data, dict):
            raise HeaderParseError("Header JSON must be an object")
        return {str(k): "" if v is None else str(v) for k, v in data.items()}

    return _parse_lines(stripped)


def serialize_headers(headers: Mapping[str, str]) -> str:
    return json.dumps(dict(headers), indent=2)


def valid_headers(headers: Optional[Mapping[str, str]]) -> Dict[str, str]:
    """Return only entries with a non-blank key and value."""
    if not headers:
        return {}

    valid = {
        k.strip(): v
        for k, v in headers.items()
        if k and k.strip() and v and v.strip()
    }

    if not valid:
        logger.warning(
            "Parsed %d headers but none were valid (all had empty keys or values)",
            len(headers),
        )
    elif len(valid) < len(headers):
        logger.debug("Skipped %d header(s) with empty key or value", len(headers) - len(valid))

    return valid


def mask_value(value: str) -> str:
    """Mask a header value for logging."""
    if len(value) > 8:
        return f"{value[:4]}...{value[-4:]}"
    return "***"
