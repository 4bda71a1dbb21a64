# deid_pipeline/stages/packer.py

"""Greedy per-key packing of rows into size-bounded batches."""

import logging
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from deid_pipeline.core.definitions import DLP_PAYLOAD_LIMIT_BYTES
from deid_pipeline.core.domain import Batch, Row

logger = logging.getLogger(__name__)


class _OpenBatch:
    """Accumulator for the rows of one key that have not been flushed yet."""

    __slots__ = ("rows", "size_bytes")

    def __init__(self) -> None:
        self.rows: List[Row] = []
        self.size_bytes = 0

    def append(self, row: Row, size: int) -> None:
        self.rows.append(row)
        self.size_bytes += size

    def freeze(self, key: str) -> Batch:
        return Batch(key=key, rows=tuple(self.rows), size_bytes=self.size_bytes)


class BatchPacker:
    """Packs rows into batches whose summed row size stays within a ceiling.

    One open batch is kept per key seen so far. A row that would push its
    key's open batch over ``batch_size_bytes`` flushes that batch first and
    starts a new one. A row that alone exceeds the ceiling still goes out,
    alone and unsplit. Rows of different keys are never mixed and arrival
    order within a key is preserved.

    All rows of a key must reach the same packer instance. Call finish()
    once the input ends to flush what is still open.
    """

    def __init__(self, batch_size_bytes: int) -> None:
        if batch_size_bytes <= 0:
            raise ValueError("batch_size_bytes must be positive")
        if batch_size_bytes > DLP_PAYLOAD_LIMIT_BYTES:
            raise ValueError(
                f"batch_size_bytes must be smaller or equal than {DLP_PAYLOAD_LIMIT_BYTES}"
            )
        self.batch_size_bytes = batch_size_bytes
        self._open: Dict[str, _OpenBatch] = {}

    @property
    def open_keys(self) -> List[str]:
        return list(self._open)

    def add(self, key: str, row: Row) -> Optional[Batch]:
        """Adds a row to its key's open batch.

        Args:
            key: Source key of the row
            row: Row to pack

        Returns:
            The batch flushed to make room for the row, or None
        """
        size = row.serialized_size()
        if size > self.batch_size_bytes:
            logger.warning(
                "Row exceeds batch size and will be sent alone",
                extra={
                    "key": key,
                    "row_bytes": size,
                    "batch_size_bytes": self.batch_size_bytes,
                },
            )

        current = self._open.get(key)
        flushed = None

        if current is None:
            current = self._open[key] = _OpenBatch()
        elif current.rows and current.size_bytes + size > self.batch_size_bytes:
            flushed = self._flush(key)
            current = self._open[key] = _OpenBatch()

        current.append(row, size)
        return flushed

    def finish(self) -> List[Batch]:
        """Flushes every open batch, in the order keys were first seen."""
        flushed = [self._flush(key) for key in list(self._open)]
        return [batch for batch in flushed if batch is not None]

    def pack(self, rows: Iterable[Tuple[str, Row]]) -> Iterator[Batch]:
        """Packs a finite stream of ``(key, row)`` pairs."""
        for key, row in rows:
            batch = self.add(key, row)
            if batch is not None:
                yield batch
        yield from self.finish()

    def _flush(self, key: str) -> Optional[Batch]:
        current = self._open.pop(key, None)
        if current is None or not current.rows:
            return None

        batch = current.freeze(key)
        logger.debug(
            "Flushed batch",
            extra={"key": key, "rows": len(batch), "size_bytes": batch.size_bytes},
        )
        return batch
