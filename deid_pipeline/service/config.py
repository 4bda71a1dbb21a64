# deid_pipeline/service/config.py

"""Application settings and pipeline configuration.

Settings come from environment variables via Pydantic Settings; the
pipeline configuration is validated once, at construction time.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from deid_pipeline.core.definitions import (
    DEFAULT_BATCH_SIZE_BYTES,
    DEFAULT_SCORE_THRESHOLD,
    DLP_PAYLOAD_LIMIT_BYTES,
)
from deid_pipeline.core.domain import DeidentifyContentRequest
from deid_pipeline.core.exceptions import ConfigurationError
from deid_pipeline.core.policy import DeidentifyConfig, InspectConfig


class Settings(BaseSettings):
    """Global application settings.

    Loads values from environment variables (prefix 'DEID_') or .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="DEID_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Pipeline
    project_id: str = Field(
        default="local-project", description="Project the requests are billed to."
    )
    batch_size_bytes: int = Field(
        default=DEFAULT_BATCH_SIZE_BYTES,
        gt=0,
        description="Byte budget of the rows sent in one request.",
    )
    csv_column_delimiter: Optional[str] = Field(
        default=None, description="Column delimiter for CSV shaped input."
    )
    inspect_template_name: Optional[str] = None
    deidentify_template_name: Optional[str] = Field(
        default="replace_with_entity_type",
        description="Deidentify template used when no inline policy is given.",
    )
    max_workers: int = Field(
        default=1, ge=1, description="Number of concurrent deidentify calls."
    )

    # In-process engine
    spacy_model: str = Field(
        default="en_core_web_lg", description="SpaCy model name to use for NLP."
    )
    confidence_threshold: float = Field(
        default=DEFAULT_SCORE_THRESHOLD,
        ge=0.0,
        le=1.0,
        description="Minimum confidence score (0.0-1.0) for a finding.",
    )
    templates_path: Optional[str] = Field(
        default=None, description="YAML file with named templates."
    )

    # Remote service
    service_url: Optional[str] = Field(
        default=None, description="Base URL of a remote deidentify service."
    )
    api_key: Optional[str] = None
    request_timeout: float = Field(default=120.0, gt=0)

    log_level: str = "INFO"

    @field_validator("spacy_model")
    @classmethod
    def validate_model_name(cls, v: str) -> str:
        """Ensure model name is not empty."""
        if not v.strip():
            raise ValueError("SpaCy model name cannot be empty")
        return v


class DeidentifyTextConfig(BaseModel):
    """Validated, immutable configuration of one deidentify pipeline.

    Either ``deidentify_config`` or ``deidentify_template_name`` must be
    set; when both are, the config object supersedes the template. The
    same holds for the optional inspect pair.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    project_id: str = Field(min_length=1)
    batch_size_bytes: int = Field(gt=0)
    csv_column_delimiter: Optional[str] = Field(default=None, min_length=1)
    inspect_template_name: Optional[str] = None
    inspect_config: Optional[InspectConfig] = None
    deidentify_template_name: Optional[str] = None
    deidentify_config: Optional[DeidentifyConfig] = None

    @model_validator(mode="after")
    def check_policy_and_batch_size(self) -> "DeidentifyTextConfig":
        if self.deidentify_config is None and self.deidentify_template_name is None:
            raise ValueError(
                "Either deidentify_config or deidentify_template_name need to be set!"
            )
        if self.batch_size_bytes > DLP_PAYLOAD_LIMIT_BYTES:
            raise ValueError(
                "Batch size is too large! It should be smaller or equal than "
                f"{DLP_PAYLOAD_LIMIT_BYTES}."
            )
        return self

    @classmethod
    def build(cls, **values: Any) -> "DeidentifyTextConfig":
        """Validates the values and returns the configuration.

        Raises:
            ConfigurationError: If any value or rule is violated.
        """
        try:
            return cls(**values)
        except PydanticValidationError as e:
            messages = "; ".join(
                err["msg"].removeprefix("Value error, ") for err in e.errors()
            )
            raise ConfigurationError(f"Invalid deidentify configuration: {messages}") from e

    @classmethod
    def from_settings(
        cls, app_settings: Settings, **overrides: Any
    ) -> "DeidentifyTextConfig":
        """Builds the configuration from application settings.

        When no inline inspect policy is given, the settings' confidence
        threshold becomes one unless an inspect template is configured.
        """
        values: dict = {
            "project_id": app_settings.project_id,
            "batch_size_bytes": app_settings.batch_size_bytes,
            "csv_column_delimiter": app_settings.csv_column_delimiter,
            "inspect_template_name": app_settings.inspect_template_name,
            "deidentify_template_name": app_settings.deidentify_template_name,
        }
        if app_settings.inspect_template_name is None:
            values["inspect_config"] = InspectConfig(
                score_threshold=app_settings.confidence_threshold
            )
        values.update(overrides)
        return cls.build(**values)

    @property
    def parent(self) -> str:
        return f"projects/{self.project_id}"

    def request_template(self) -> DeidentifyContentRequest:
        """Returns the request snapshot shared by every batch."""
        return DeidentifyContentRequest(
            parent=self.parent,
            inspect_template_name=self.inspect_template_name,
            inspect_config=self.inspect_config,
            deidentify_template_name=self.deidentify_template_name,
            deidentify_config=self.deidentify_config,
        )


# Singleton settings instance
settings = Settings()
