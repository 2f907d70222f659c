"""Derive typed response metadata from raw header values.

Parses ``Content-Type`` (RFC 7231 media type with bare or quoted parameter
values), ``Content-Encoding`` token lists and ``Last-Modified`` dates. All
helpers are pure functions so the resource handle, the HTTP orchestrator and
the FTP client can share them.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Dict, List, Optional, Tuple

from ..network.policy import DEFAULT_CHARSET, DEFAULT_CONTENT_TYPE

__all__ = [
    "parse_content_type",
    "content_type_of",
    "charset_of",
    "parse_content_encoding",
    "parse_last_modified",
    "parse_content_length",
]

_TOKEN = r"[!#$%&'*+\-.^_`|~0-9A-Za-z]+"
_MEDIA_TYPE = re.compile(rf"\s*({_TOKEN})/({_TOKEN})\s*")
_PARAMETER = re.compile(rf";\s*({_TOKEN})=(?:({_TOKEN})|\"((?:[^\"\\]|\\.)*)\")\s*")
_QUOTED_PAIR = re.compile(r"\\(.)")


def parse_content_type(value: Optional[str]) -> Tuple[Optional[str], Dict[str, str]]:
    """Split a Content-Type header into ``("type/subtype", params)``.

    The media type and parameter names are lower-cased; quoted parameter
    values have their backslash escapes removed. A malformed header yields
    ``(None, {})`` rather than raising.

    >>> parse_content_type('Text/HTML; Charset="utf\\\\-8"')
    ('text/html', {'charset': 'utf-8'})
    """

    if not value:
        return None, {}
    match = _MEDIA_TYPE.match(value)
    if not match:
        return None, {}
    media_type = f"{match.group(1)}/{match.group(2)}".lower()
    params: Dict[str, str] = {}
    pos = match.end()
    while pos < len(value):
        param = _PARAMETER.match(value, pos)
        if not param:
            break
        name, bare, quoted = param.groups()
        params[name.lower()] = bare if bare is not None else _QUOTED_PAIR.sub(r"\1", quoted)
        pos = param.end()
    return media_type, params


def content_type_of(value: Optional[str]) -> str:
    media_type, _ = parse_content_type(value)
    return media_type or DEFAULT_CONTENT_TYPE


def charset_of(value: Optional[str]) -> str:
    """Lower-cased charset parameter, ``iso-8859-1`` when absent."""
    _, params = parse_content_type(value)
    charset = params.get("charset")
    return charset.lower() if charset else DEFAULT_CHARSET


def parse_content_encoding(value: Optional[str]) -> List[str]:
    """Content-Encoding tokens in header order; ``[]`` when the header is absent."""
    if not value:
        return []
    return [token.strip().lower() for token in value.split(",") if token.strip()]


def parse_last_modified(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_content_length(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        length = int(value.strip())
    except ValueError:
        return None
    return length if length >= 0 else None
