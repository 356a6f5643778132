"""
Record Parser - Decode desc and files entries into records.

desc entries are blocks of "%TAG%" lines followed by a value line.
files entries start with a header line ("%FILES%") followed by one
relative path per line.
"""

import logging
from typing import Dict, List

from .errors import MalformedRecordError
from .models import DescRecord


logger = logging.getLogger(__name__)


def _decode(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def _is_tag(line: str) -> bool:
    return len(line) > 2 and line.startswith("%") and line.endswith("%")


def parse_tags(data: bytes) -> Dict[str, str]:
    """
    Parse %TAG%/value blocks into a dict.

    The value is the line right after the tag; a blank line or another
    tag there means an empty value. Blank lines between blocks are
    ignored. Only the first value line of a tag is kept; a tag at end of
    input is dropped.
    """
    tags: Dict[str, str] = {}
    lines = _decode(data).splitlines()
    i = 0

    while i < len(lines):
        line = lines[i]
        i += 1
        if not _is_tag(line):
            continue
        if i >= len(lines):
            break

        value = lines[i]
        if _is_tag(value):
            # Re-read this line as the next tag
            tags[line[1:-1]] = ""
            continue

        tags[line[1:-1]] = value.strip() and value
        i += 1

    return tags


def parse_desc(data: bytes, identifier: str = "<unknown>") -> DescRecord:
    """
    Parse a desc entry.

    Raises:
        MalformedRecordError: NAME or VERSION is missing
    """
    tags = parse_tags(data)

    name = tags.get("NAME", "").strip()
    if not name:
        raise MalformedRecordError(identifier, "missing %NAME%")

    version = tags.get("VERSION", "").strip()
    if not version:
        raise MalformedRecordError(identifier, "missing %VERSION%")

    return DescRecord(
        name=name,
        version=version,
        description=tags.get("DESC", ""),
    )


def parse_files(data: bytes) -> List[str]:
    """Parse a files entry into the list of owned paths."""
    lines = _decode(data).splitlines()

    # First line is the %FILES% header
    return [
        line for line in lines[1:]
        if line.strip() and not line.startswith("%")
    ]
