# deid_pipeline/core/domain.py

"""Domain models for records, rows, batches and deidentify requests."""

import json
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Tuple, TYPE_CHECKING

from deid_pipeline.core.definitions import UNSTRUCTURED_FIELD_NAME

if TYPE_CHECKING:
    from deid_pipeline.core.policy import DeidentifyConfig, InspectConfig


@dataclass(frozen=True)
class Record:
    """A single input element.

    Attributes:
        key: Origin of the content (e.g., a filename)
        content: Raw text or one delimited line
    """

    key: str
    content: str


@dataclass(frozen=True)
class Row:
    """Ordered field values derived from one record."""

    values: Tuple[str, ...]

    def serialized_size(self) -> int:
        """Returns the UTF-8 size in bytes of the row's JSON encoding."""
        return len(json.dumps(list(self.values), ensure_ascii=False).encode("utf-8"))

    def __len__(self) -> int:
        return len(self.values)


@dataclass(frozen=True)
class HeaderSet:
    """Ordered, distinct field names applied to every row of a table."""

    names: Tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.names:
            raise ValueError("Header set cannot be empty")
        if any(not name for name in self.names):
            raise ValueError("Header names cannot be empty")
        if len(set(self.names)) != len(self.names):
            raise ValueError(f"Header names must be distinct: {list(self.names)}")

    @classmethod
    def from_names(cls, names: Iterable[str]) -> "HeaderSet":
        return cls(tuple(names))

    @classmethod
    def unstructured(cls) -> "HeaderSet":
        """Single-field header used for free-text records."""
        return cls((UNSTRUCTURED_FIELD_NAME,))

    @property
    def is_unstructured(self) -> bool:
        return self.names == (UNSTRUCTURED_FIELD_NAME,)

    def __len__(self) -> int:
        return len(self.names)


@dataclass(frozen=True)
class Batch:
    """Rows of a single key flushed together by the packer.

    Attributes:
        key: Source key shared by every row
        rows: Rows in arrival order
        size_bytes: Sum of the rows' serialized sizes
    """

    key: str
    rows: Tuple[Row, ...]
    size_bytes: int

    def __len__(self) -> int:
        return len(self.rows)


@dataclass(frozen=True)
class Table:
    """Tabular content item sent to (and returned by) the service."""

    headers: HeaderSet
    rows: Tuple[Row, ...] = ()

    def as_dicts(self) -> list:
        return [dict(zip(self.headers.names, row.values)) for row in self.rows]


@dataclass(frozen=True)
class DeidentifyContentRequest:
    """One deidentify call: policy references plus the table to transform.

    Attributes:
        parent: Project resource name (``projects/<id>``)
        item: Table content; ``None`` on a request template
        inspect_template_name: Optional inspection template
        inspect_config: Optional inspection policy, supersedes the template
        deidentify_template_name: Deidentification template
        deidentify_config: Deidentification policy, supersedes the template
    """

    parent: str
    item: Optional[Table] = None
    inspect_template_name: Optional[str] = None
    inspect_config: Optional["InspectConfig"] = None
    deidentify_template_name: Optional[str] = None
    deidentify_config: Optional["DeidentifyConfig"] = None


@dataclass(frozen=True)
class TransformationOverview:
    """Summary of what the service changed.

    Attributes:
        transformed_bytes: Bytes of content that were transformed
        transformed_counts: Number of findings transformed per entity type
    """

    transformed_bytes: int = 0
    transformed_counts: Dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class DeidentifyContentResponse:
    """Transformed table returned for one request."""

    item: Table
    overview: TransformationOverview = field(default_factory=TransformationOverview)


@dataclass(frozen=True)
class DeidentifyResult:
    """Response of one flushed batch, keyed by the batch's source key."""

    key: str
    response: DeidentifyContentResponse
