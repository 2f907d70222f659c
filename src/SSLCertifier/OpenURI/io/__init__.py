"""Body decoding, metadata parsing and progress reporting for opened resources."""

from .decoding import ContentDecoder
from .metadata import (
    charset_of,
    content_type_of,
    parse_content_encoding,
    parse_content_length,
    parse_content_type,
    parse_last_modified,
)
from .progress import ProgressReporter

__all__ = [
    "ContentDecoder",
    "ProgressReporter",
    "charset_of",
    "content_type_of",
    "parse_content_encoding",
    "parse_content_length",
    "parse_content_type",
    "parse_last_modified",
]
