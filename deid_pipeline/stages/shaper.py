# deid_pipeline/stages/shaper.py

"""Converts input records into table rows."""

import logging
from typing import Optional

from deid_pipeline.core.domain import HeaderSet, Record, Row
from deid_pipeline.core.exceptions import ShapingError, ValidationError

logger = logging.getLogger(__name__)


class RowShaper:
    """Stateless record-to-row conversion.

    With a delimiter, the content is split on it (a literal string, not a
    pattern) into one field per column. Without one, the whole content
    becomes a single field. When a header set is given, rows whose field
    count differs from it are rejected with ShapingError.
    """

    def __init__(
        self,
        delimiter: Optional[str] = None,
        headers: Optional[HeaderSet] = None,
    ) -> None:
        if delimiter == "":
            raise ValueError("Delimiter cannot be an empty string")
        self.delimiter = delimiter
        self.headers = headers

    def shape(self, record: Record) -> Row:
        """Builds the row for one record.

        Args:
            record: Input element

        Returns:
            Row with one field per column, or a single field

        Raises:
            ValidationError: If the record has no content
            ShapingError: If the field count does not match the headers
        """
        if record.content is None:
            raise ValidationError(f"Record from '{record.key}' has no content")

        if self.delimiter is None:
            row = Row((record.content,))
        else:
            row = Row(tuple(record.content.split(self.delimiter)))

        if self.headers is not None and len(row) != len(self.headers):
            logger.warning(
                "Rejecting record with mismatched field count",
                extra={
                    "key": record.key,
                    "expected_fields": len(self.headers),
                    "actual_fields": len(row),
                },
            )
            raise ShapingError(record.key, len(self.headers), len(row))

        return row

    __call__ = shape
