# deid_pipeline/engine/presidio_client.py

"""In-process deidentification service backed by Presidio."""

import logging
import threading
from collections import Counter
from typing import Dict, List, Optional, Tuple

from presidio_analyzer import AnalyzerEngine
from presidio_analyzer.nlp_engine import NlpEngineProvider
from presidio_anonymizer import AnonymizerEngine
from presidio_anonymizer.entities import OperatorConfig

from deid_pipeline.core.definitions import OperatorType, RemoteStatus
from deid_pipeline.core.domain import (
    DeidentifyContentRequest,
    DeidentifyContentResponse,
    Row,
    Table,
    TransformationOverview,
)
from deid_pipeline.core.exceptions import (
    InitializationError,
    RemoteCallError,
    ResourceError,
)
from deid_pipeline.core.loader import TemplateLoader
from deid_pipeline.core.policy import DeidentifyConfig, InspectConfig, OperatorSpec
from deid_pipeline.engine.base import DeidentifyClient

logger = logging.getLogger(__name__)


def to_operator_config(entity_type: str, spec: OperatorSpec) -> OperatorConfig:
    """Translates an operator spec into a Presidio OperatorConfig."""
    params = dict(spec.params)
    if spec.type == OperatorType.REPLACE:
        params.setdefault("new_value", f"<{entity_type}>")
    return OperatorConfig(spec.type, params)


def transformed_span_bytes(text: str, results) -> int:
    """UTF-8 size of the text covered by findings, overlaps merged."""
    total = 0
    end = 0
    for start, stop in sorted((r.start, r.end) for r in results):
        start = max(start, end)
        if stop > start:
            total += len(text[start:stop].encode("utf-8"))
            end = stop
    return total


class PresidioDeidentifyEngine:
    """Analyzer and anonymizer pair that deidentifies tables cell by cell.

    Policies named by template are resolved through the TemplateLoader; an
    inline policy on the request supersedes its template.
    """

    def __init__(
        self,
        spacy_model_name: str = "en_core_web_lg",
        templates: Optional[TemplateLoader] = None,
        analyzer: Optional[AnalyzerEngine] = None,
        anonymizer: Optional[AnonymizerEngine] = None,
    ) -> None:
        """Initialize the engine.

        Args:
            spacy_model_name: SpaCy model used by the analyzer's NLP engine
            templates: Template loader, defaults to the packaged templates
            analyzer: Prebuilt analyzer; built from the spaCy model if omitted
            anonymizer: Prebuilt anonymizer

        Raises:
            InitializationError: If the analyzer cannot be created.
        """
        self.spacy_model = spacy_model_name
        self.templates = templates or TemplateLoader.get_instance()
        self._analyzer = analyzer or self._create_analyzer()
        self._anonymizer = anonymizer or AnonymizerEngine()

    def _create_analyzer(self) -> AnalyzerEngine:
        nlp_config = {
            "nlp_engine_name": "spacy",
            "models": [{"lang_code": "en", "model_name": self.spacy_model}],
        }

        logger.info(f"Initializing NLP engine with model: {self.spacy_model}")

        try:
            nlp_engine = NlpEngineProvider(nlp_configuration=nlp_config).create_engine()
        except OSError as e:
            logger.critical(
                f"SpaCy model '{self.spacy_model}' not found. "
                "Ensure it is installed in the environment."
            )
            raise InitializationError(
                f"Missing required SpaCy model '{self.spacy_model}'."
            ) from e

        try:
            analyzer = AnalyzerEngine(nlp_engine=nlp_engine, supported_languages=["en"])
        except Exception as e:
            logger.error("Analyzer initialization failed", exc_info=True)
            raise InitializationError("Failed to initialize Presidio analyzer") from e

        logger.info("Presidio analyzer initialized successfully")
        return analyzer

    def resolve_inspect(self, request: DeidentifyContentRequest) -> InspectConfig:
        if request.inspect_config is not None:
            return request.inspect_config
        if request.inspect_template_name:
            config = self.templates.get_inspect_template(request.inspect_template_name)
            if config is None:
                raise RemoteCallError(
                    f"Inspect template not found: {request.inspect_template_name}",
                    status=RemoteStatus.NOT_FOUND,
                )
            return config
        return InspectConfig()

    def resolve_deidentify(self, request: DeidentifyContentRequest) -> DeidentifyConfig:
        if request.deidentify_config is not None:
            return request.deidentify_config
        if request.deidentify_template_name:
            config = self.templates.get_deidentify_template(
                request.deidentify_template_name
            )
            if config is None:
                raise RemoteCallError(
                    f"Deidentify template not found: {request.deidentify_template_name}",
                    status=RemoteStatus.NOT_FOUND,
                )
            return config
        raise RemoteCallError(
            "Request carries neither a deidentify config nor a template",
            status=RemoteStatus.INVALID_ARGUMENT,
        )

    def deidentify_content(
        self, request: DeidentifyContentRequest
    ) -> DeidentifyContentResponse:
        """Deidentifies every cell of the request's table.

        Returns:
            Response with the transformed table and a transformation overview

        Raises:
            RemoteCallError: If the request is invalid or processing fails
        """
        table = request.item
        if table is None:
            raise RemoteCallError(
                "Request has no content item", status=RemoteStatus.INVALID_ARGUMENT
            )

        for index, row in enumerate(table.rows):
            if len(row) != len(table.headers):
                raise RemoteCallError(
                    f"Row {index} has {len(row)} values but the table has "
                    f"{len(table.headers)} headers",
                    status=RemoteStatus.INVALID_ARGUMENT,
                )

        inspect = self.resolve_inspect(request)
        deidentify = self.resolve_deidentify(request)

        try:
            counts: Counter = Counter()
            transformed_bytes = 0
            rows: List[Row] = []

            for row in table.rows:
                values = []
                for cell in row.values:
                    new_value, found, span_bytes = self._deidentify_cell(
                        cell, inspect, deidentify
                    )
                    counts.update(found)
                    transformed_bytes += span_bytes
                    values.append(new_value)
                rows.append(Row(tuple(values)))

            logger.info(
                "Table deidentified",
                extra={
                    "rows": len(rows),
                    "findings": sum(counts.values()),
                    "transformed_bytes": transformed_bytes,
                },
            )

            return DeidentifyContentResponse(
                item=Table(headers=table.headers, rows=tuple(rows)),
                overview=TransformationOverview(
                    transformed_bytes=transformed_bytes,
                    transformed_counts=dict(counts),
                ),
            )

        except Exception as e:
            logger.error(
                "Deidentify processing failed",
                exc_info=True,
                extra={"rows": len(table.rows)},
            )
            raise RemoteCallError(
                f"Failed to deidentify content: {e}", status=RemoteStatus.INTERNAL
            ) from e

    def _deidentify_cell(
        self, text: str, inspect: InspectConfig, deidentify: DeidentifyConfig
    ) -> Tuple[str, List[str], int]:
        """Returns the new cell text, the entity types found and the UTF-8
        size of the transformed spans (overlapping findings counted once)."""
        if not text or not text.strip():
            return text, [], 0

        results = self._analyzer.analyze(
            text=text,
            entities=inspect.entities or None,
            language=inspect.language,
            score_threshold=inspect.score_threshold,
        )
        if not results:
            return text, [], 0

        operators: Dict[str, OperatorConfig] = {
            r.entity_type: to_operator_config(
                r.entity_type, deidentify.operator_for(r.entity_type)
            )
            for r in results
        }

        anonymized = self._anonymizer.anonymize(
            text=text,
            analyzer_results=results,
            operators=operators,
        )
        return (
            anonymized.text,
            [r.entity_type for r in results],
            transformed_span_bytes(text, results),
        )


class PresidioDeidentifyClient(DeidentifyClient):
    """Client handle onto the shared in-process engine.

    One engine is created per (spaCy model, templates file) on first use and
    shared by all handles of a process. Each handle refuses calls after
    close().
    """

    _engines: Dict[Tuple[str, Optional[str]], PresidioDeidentifyEngine] = {}
    _lock = threading.Lock()

    def __init__(self, engine: Optional[PresidioDeidentifyEngine] = None) -> None:
        self._own_engine = engine
        self._closed = False

    @classmethod
    def get_engine(
        cls,
        spacy_model_name: str = "en_core_web_lg",
        templates_path: Optional[str] = None,
    ) -> PresidioDeidentifyEngine:
        """Returns the shared engine for a model and templates file.

        Raises:
            InitializationError: If engine initialization fails
        """
        cache_key = (spacy_model_name, str(templates_path) if templates_path else None)
        if cache_key not in cls._engines:
            with cls._lock:
                if cache_key not in cls._engines:
                    try:
                        logger.info(
                            "Initializing Presidio deidentify engine",
                            extra={
                                "spacy_model": spacy_model_name,
                                "templates_path": cache_key[1],
                            },
                        )
                        cls._engines[cache_key] = PresidioDeidentifyEngine(
                            spacy_model_name,
                            templates=TemplateLoader.get_instance(templates_path),
                        )
                        logger.info("Presidio deidentify engine initialized successfully")

                    except Exception as e:
                        logger.error(
                            "Failed to initialize deidentify engine", exc_info=True
                        )
                        if isinstance(e, InitializationError):
                            raise
                        raise InitializationError(
                            "Deidentify engine initialization failed"
                        ) from e

        return cls._engines[cache_key]

    @property
    def engine(self) -> PresidioDeidentifyEngine:
        return self._own_engine or self.get_engine()

    def deidentify_content(
        self, request: DeidentifyContentRequest
    ) -> DeidentifyContentResponse:
        if self._closed:
            raise ResourceError("Client is closed")
        return self.engine.deidentify_content(request)

    def close(self) -> None:
        self._closed = True
