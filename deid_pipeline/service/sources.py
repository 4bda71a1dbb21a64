# deid_pipeline/service/sources.py

"""Turns whole documents into pipeline records."""

from typing import List, Optional, Tuple

from deid_pipeline.core.domain import Record
from deid_pipeline.core.exceptions import ValidationError


def read_records(
    key: str,
    text: str,
    has_header: bool = False,
    delimiter: Optional[str] = None,
) -> Tuple[List[Record], Optional[List[str]]]:
    """Splits a document into one record per non-blank line.

    Args:
        key: Key for every record (usually the file name)
        text: Document contents
        has_header: Whether the first non-blank line holds CSV headers
        delimiter: Column delimiter, required when has_header is set

    Returns:
        Records in line order, and the header names if a header was read

    Raises:
        ValidationError: If a header is expected without a delimiter
    """
    if has_header and not delimiter:
        raise ValidationError("A delimiter is required to read a header row")

    lines = [line for line in text.splitlines() if line.strip()]

    headers = None
    if has_header and lines:
        headers = [name.strip() for name in lines[0].split(delimiter)]
        lines = lines[1:]

    return [Record(key=key, content=line) for line in lines], headers
