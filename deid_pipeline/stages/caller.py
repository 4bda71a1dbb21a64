# deid_pipeline/stages/caller.py

"""Issues one deidentify call per flushed batch."""

import logging
from dataclasses import replace
from typing import Callable, Optional, Sequence, Union

from deid_pipeline.core.domain import (
    Batch,
    DeidentifyContentRequest,
    DeidentifyResult,
    HeaderSet,
    Table,
)
from deid_pipeline.core.exceptions import (
    ConfigurationError,
    DeidentifyError,
    RemoteCallError,
    ResourceError,
)
from deid_pipeline.engine.base import ClientFactory, DeidentifyClient

logger = logging.getLogger(__name__)

HeaderSource = Union[HeaderSet, Sequence[str], Callable[[], Sequence[str]], None]


def resolve_headers(source: HeaderSource) -> HeaderSet:
    """Evaluates a header source into a HeaderSet.

    Args:
        source: A HeaderSet, a sequence of names, a zero-argument callable
            producing either, or None for unstructured input

    Returns:
        The resolved header set

    Raises:
        ConfigurationError: If the headers are empty or not distinct
    """
    if source is None:
        return HeaderSet.unstructured()

    value = source() if callable(source) else source
    if isinstance(value, HeaderSet):
        return value
    if value is None:
        return HeaderSet.unstructured()
    if isinstance(value, (str, bytes)):
        raise ConfigurationError(
            f"CSV headers must be a sequence of names, not a string: {value!r}"
        )

    try:
        return HeaderSet.from_names(str(name) for name in value)
    except ValueError as e:
        raise ConfigurationError(f"Invalid CSV headers: {e}") from e


class DeidentifyCaller:
    """Builds the request for a batch and calls the service exactly once.

    Headers are resolved once, in setup(). A client is acquired from the
    factory for every batch and closed on every exit path. Failures are not
    retried here.
    """

    def __init__(
        self,
        request_template: DeidentifyContentRequest,
        client_factory: ClientFactory,
        headers: HeaderSource = None,
    ) -> None:
        self.request_template = request_template
        self.client_factory = client_factory
        self._header_source = headers
        self._headers: Optional[HeaderSet] = None

    @property
    def headers(self) -> HeaderSet:
        if self._headers is None:
            self.setup()
        return self._headers  # type: ignore[return-value]

    def setup(self) -> None:
        """Resolves the header set for this caller instance."""
        if self._headers is not None:
            return
        self._headers = resolve_headers(self._header_source)
        logger.debug(
            "Deidentify caller ready",
            extra={
                "headers": list(self._headers.names),
                "parent": self.request_template.parent,
            },
        )

    def build_request(self, batch: Batch) -> DeidentifyContentRequest:
        """Combines the fixed request template with the batch's rows."""
        table = Table(headers=self.headers, rows=batch.rows)
        return replace(self.request_template, item=table)

    def process(self, batch: Batch) -> DeidentifyResult:
        """Deidentifies one batch.

        Args:
            batch: Flushed batch of rows for one key

        Returns:
            DeidentifyResult carrying the batch key and the service response

        Raises:
            ResourceError: If the client cannot be acquired or released
            RemoteCallError: If the call fails
        """
        request = self.build_request(batch)
        client = self._acquire()

        try:
            logger.info(
                "Sending deidentify request",
                extra={
                    "key": batch.key,
                    "rows": len(batch),
                    "size_bytes": batch.size_bytes,
                },
            )
            response = client.deidentify_content(request)

        except RemoteCallError:
            logger.error(
                "Deidentify call failed",
                exc_info=True,
                extra={"key": batch.key, "rows": len(batch)},
            )
            self._release(client, call_failed=True)
            raise
        except Exception as e:
            logger.error(
                "Unexpected error during deidentify call",
                exc_info=True,
                extra={"key": batch.key, "rows": len(batch)},
            )
            self._release(client, call_failed=True)
            raise RemoteCallError(f"Deidentify call failed for '{batch.key}': {e}") from e
        except BaseException:
            self._release(client, call_failed=True)
            raise
        else:
            self._release(client)

        return DeidentifyResult(key=batch.key, response=response)

    __call__ = process

    def _acquire(self) -> DeidentifyClient:
        try:
            return self.client_factory()
        except DeidentifyError:
            raise
        except Exception as e:
            logger.error("Failed to acquire deidentify client", exc_info=True)
            raise ResourceError(f"Failed to acquire deidentify client: {e}") from e

    def _release(self, client: DeidentifyClient, call_failed: bool = False) -> None:
        # A close failure never masks the error of the call itself.
        try:
            client.close()
        except Exception as e:
            logger.error("Failed to release deidentify client", exc_info=True)
            if not call_failed:
                raise ResourceError(f"Failed to release deidentify client: {e}") from e
