# deid_pipeline/service/pipeline.py

"""Main deidentification pipeline."""

import logging
import threading
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from functools import partial
from typing import Deque, Iterable, Iterator, Optional, Tuple, Union

from deid_pipeline.core.domain import Batch, DeidentifyResult, HeaderSet, Record
from deid_pipeline.engine.base import ClientFactory, DeidentifyClient
from deid_pipeline.engine.http_client import HttpDeidentifyClient
from deid_pipeline.engine.presidio_client import PresidioDeidentifyClient
from deid_pipeline.service.config import DeidentifyTextConfig, Settings, settings
from deid_pipeline.stages.caller import DeidentifyCaller, HeaderSource, resolve_headers
from deid_pipeline.stages.packer import BatchPacker
from deid_pipeline.stages.shaper import RowShaper

logger = logging.getLogger(__name__)

RecordLike = Union[Record, Tuple[str, str]]


def default_client_factory(app_settings: Settings = settings) -> ClientFactory:
    """Returns the client factory selected by the settings.

    A configured ``service_url`` selects the remote HTTP service; otherwise
    the in-process Presidio engine is used.
    """
    if app_settings.service_url:
        logger.info(
            "Using remote deidentify service",
            extra={"service_url": app_settings.service_url},
        )
        return partial(
            HttpDeidentifyClient,
            app_settings.service_url,
            api_key=app_settings.api_key,
            timeout=app_settings.request_timeout,
        )

    def presidio_client() -> DeidentifyClient:
        engine = PresidioDeidentifyClient.get_engine(
            app_settings.spacy_model, app_settings.templates_path
        )
        return PresidioDeidentifyClient(engine)

    return presidio_client


def _as_record(element: RecordLike) -> Record:
    if isinstance(element, Record):
        return element
    key, content = element
    return Record(key=key, content=content)


class DeidentifyText:
    """Shapes, batches and deidentifies a stream of keyed records.

    ``csv_headers`` is the broadcast header value: resolved once, on first
    use, and shared read-only by the shaper and every caller. Without it,
    input is treated as unstructured text under a single ``value`` column.
    """

    def __init__(
        self,
        config: DeidentifyTextConfig,
        client_factory: Optional[ClientFactory] = None,
        csv_headers: HeaderSource = None,
        max_workers: int = 1,
    ) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.config = config
        self.client_factory = client_factory or default_client_factory()
        self.max_workers = max_workers
        self._header_source = csv_headers
        self._headers: Optional[HeaderSet] = None
        self._lock = threading.Lock()

    @classmethod
    def from_settings(
        cls,
        app_settings: Settings = settings,
        csv_headers: HeaderSource = None,
        client_factory: Optional[ClientFactory] = None,
        **overrides,
    ) -> "DeidentifyText":
        """Builds a pipeline from application settings.

        Raises:
            ConfigurationError: If the resulting configuration is invalid
        """
        config = DeidentifyTextConfig.from_settings(app_settings, **overrides)
        return cls(
            config,
            client_factory=client_factory or default_client_factory(app_settings),
            csv_headers=csv_headers,
            max_workers=app_settings.max_workers,
        )

    @property
    def headers(self) -> HeaderSet:
        if self._headers is None:
            with self._lock:
                if self._headers is None:
                    self._headers = resolve_headers(self._header_source)
        return self._headers

    def new_caller(self) -> DeidentifyCaller:
        caller = DeidentifyCaller(
            self.config.request_template(), self.client_factory, headers=self.headers
        )
        caller.setup()
        return caller

    def batches(self, records: Iterable[RecordLike]) -> Iterator[Batch]:
        """Shapes and packs records; yields batches as they are flushed."""
        shaper = RowShaper(self.config.csv_column_delimiter, headers=self.headers)
        packer = BatchPacker(self.config.batch_size_bytes)

        for element in records:
            record = _as_record(element)
            batch = packer.add(record.key, shaper.shape(record))
            if batch is not None:
                yield batch

        yield from packer.finish()

    def expand(self, records: Iterable[RecordLike]) -> Iterator[DeidentifyResult]:
        """Deidentifies the records, one result per flushed batch.

        Raises:
            ValidationError: If a record cannot be shaped
            RemoteCallError: If a deidentify call fails
            ResourceError: If a client cannot be acquired or released
        """
        logger.info(
            "Starting deidentify pipeline",
            extra={
                "parent": self.config.parent,
                "batch_size_bytes": self.config.batch_size_bytes,
                "headers": list(self.headers.names),
                "max_workers": self.max_workers,
            },
        )

        if self.max_workers == 1:
            results = self._expand_sequential(self.batches(records))
        else:
            results = self._expand_parallel(self.batches(records))

        count = 0
        for result in results:
            count += 1
            yield result

        logger.info("Deidentify pipeline finished", extra={"batches": count})

    __call__ = expand

    def _expand_sequential(self, batches: Iterable[Batch]) -> Iterator[DeidentifyResult]:
        caller = self.new_caller()
        for batch in batches:
            yield caller.process(batch)

    def _expand_parallel(self, batches: Iterable[Batch]) -> Iterator[DeidentifyResult]:
        # One caller per worker thread, set up on the thread's first batch.
        local = threading.local()

        def call(batch: Batch) -> DeidentifyResult:
            caller = getattr(local, "caller", None)
            if caller is None:
                caller = local.caller = self.new_caller()
            return caller.process(batch)

        pending: Deque[Future] = deque()
        max_pending = self.max_workers * 2

        with ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="deidentify"
        ) as executor:
            try:
                for batch in batches:
                    pending.append(executor.submit(call, batch))
                    while len(pending) >= max_pending:
                        yield pending.popleft().result()

                while pending:
                    yield pending.popleft().result()
            finally:
                for future in pending:
                    future.cancel()


def deidentify_records(
    records: Iterable[RecordLike],
    csv_headers: HeaderSource = None,
    **overrides,
) -> Iterator[DeidentifyResult]:
    """Main entry point: deidentifies records with the application settings.

    Args:
        records: ``Record`` objects or ``(key, content)`` pairs
        csv_headers: Column names when records are delimited lines
        **overrides: Configuration values overriding the settings

    Returns:
        Iterator of results, one per flushed batch
    """
    pipeline = DeidentifyText.from_settings(settings, csv_headers=csv_headers, **overrides)
    return pipeline.expand(records)
