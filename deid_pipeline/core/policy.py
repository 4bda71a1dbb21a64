# deid_pipeline/core/policy.py

"""Inspection and deidentification policy objects.

Policies are immutable pydantic models so they can be shared by every
request built from the same pipeline configuration.
"""

from typing import Any, Dict, List, Literal

from pydantic import BaseModel, ConfigDict, Field

from deid_pipeline.core.definitions import DEFAULT_SCORE_THRESHOLD, OperatorType


class InspectConfig(BaseModel):
    """What to look for in the content.

    An empty entity list means every entity type the service supports.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    entities: List[str] = Field(default_factory=list)
    score_threshold: float = Field(default=DEFAULT_SCORE_THRESHOLD, ge=0.0, le=1.0)
    language: str = Field(default="en", min_length=2)


class OperatorSpec(BaseModel):
    """One anonymization operator and its parameters."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: Literal[
        OperatorType.REPLACE,
        OperatorType.REDACT,
        OperatorType.MASK,
        OperatorType.HASH,
        OperatorType.KEEP,
    ] = OperatorType.REPLACE
    params: Dict[str, Any] = Field(default_factory=dict)


class DeidentifyConfig(BaseModel):
    """How findings are transformed.

    ``operators`` maps entity types to operators; entity types without an
    entry use ``default_operator``. A replace operator without a
    ``new_value`` substitutes ``<ENTITY_TYPE>``.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    operators: Dict[str, OperatorSpec] = Field(default_factory=dict)
    default_operator: OperatorSpec = Field(default_factory=OperatorSpec)

    def operator_for(self, entity_type: str) -> OperatorSpec:
        return self.operators.get(entity_type, self.default_operator)
