# deid_pipeline/core/loader.py

"""Loader for named inspection and deidentification templates."""

import yaml
import logging
import threading
from pathlib import Path
from typing import Dict, Any, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from deid_pipeline.core.exceptions import ConfigurationError
from deid_pipeline.core.policy import DeidentifyConfig, InspectConfig

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATES_PATH = Path(__file__).parent / "templates.yaml"


def template_id(name: str) -> str:
    """Returns the template id of a bare id or a resource name.

    ``projects/p/deidentifyTemplates/redact`` and ``redact`` both map to
    ``redact``.
    """
    return name.rstrip("/").rsplit("/", 1)[-1]


class TemplateLoader:
    """Loads templates from YAML once and caches the parsed policies.

    Use get_instance() to share one loader per templates file across the
    application lifecycle.
    """

    _instances: Dict[str, "TemplateLoader"] = {}
    _lock = threading.Lock()

    def __init__(self, path: Optional[Union[str, Path]] = None) -> None:
        self.path = Path(path) if path else DEFAULT_TEMPLATES_PATH
        self._inspect: Dict[str, InspectConfig] = {}
        self._deidentify: Dict[str, DeidentifyConfig] = {}
        self._load_config()

    @classmethod
    def get_instance(
        cls, path: Optional[Union[str, Path]] = None
    ) -> "TemplateLoader":
        """Returns the shared loader for a templates file."""
        cache_key = str(Path(path) if path else DEFAULT_TEMPLATES_PATH)
        if cache_key not in cls._instances:
            with cls._lock:
                if cache_key not in cls._instances:
                    cls._instances[cache_key] = cls(path)
        return cls._instances[cache_key]

    def _load_config(self) -> None:
        """Parses the templates file.

        Raises:
            ConfigurationError: If file is missing, invalid, or empty.
        """
        try:
            if not self.path.exists():
                error_msg = f"Templates file not found: {self.path}"
                logger.error(error_msg)
                raise ConfigurationError(error_msg)

            with open(self.path, "r", encoding="utf-8") as f:
                config = yaml.safe_load(f)

            if not config or not isinstance(config, dict):
                raise ConfigurationError("Templates file is empty or invalid")

            self._validate_config(config)

            self._inspect = {
                name: InspectConfig(**(body or {}))
                for name, body in (config["inspect_templates"] or {}).items()
            }
            self._deidentify = {
                name: DeidentifyConfig(**(body or {}))
                for name, body in (config["deidentify_templates"] or {}).items()
            }

            logger.info(
                "Templates loaded successfully",
                extra={
                    "templates_path": str(self.path),
                    "inspect_count": len(self._inspect),
                    "deidentify_count": len(self._deidentify),
                },
            )

        except yaml.YAMLError as e:
            logger.error(f"YAML parsing error: {e}", exc_info=True)
            raise ConfigurationError(f"Failed to parse {self.path.name}: {e}") from e
        except PydanticValidationError as e:
            logger.error(f"Invalid template definition: {e}")
            raise ConfigurationError(f"Invalid template in {self.path.name}: {e}") from e
        except ConfigurationError:
            raise
        except Exception as e:
            logger.error(f"Template loading failed: {e}", exc_info=True)
            raise ConfigurationError(f"Failed to load templates: {e}") from e

    def _validate_config(self, config: Dict[str, Any]) -> None:
        required_sections = ["inspect_templates", "deidentify_templates"]
        missing = [s for s in required_sections if s not in config]

        if missing:
            error_msg = f"Missing required template sections: {missing}"
            logger.error(error_msg)
            raise ConfigurationError(error_msg)

    def get_inspect_template(self, name: str) -> Optional[InspectConfig]:
        """Returns the inspection policy for a template name, if known."""
        return self._inspect.get(template_id(name))

    def get_deidentify_template(self, name: str) -> Optional[DeidentifyConfig]:
        """Returns the deidentification policy for a template name, if known."""
        return self._deidentify.get(template_id(name))

    def template_names(self) -> Dict[str, list]:
        return {
            "inspect": sorted(self._inspect),
            "deidentify": sorted(self._deidentify),
        }
