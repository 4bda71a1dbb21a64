import pytest

from deid_pipeline.core.exceptions import ConfigurationError
from deid_pipeline.core.loader import TemplateLoader, template_id


def test_template_id_accepts_resource_names():
    assert template_id("projects/p/deidentifyTemplates/redact") == "redact"
    assert template_id("redact") == "redact"


def test_packaged_templates_load():
    loader = TemplateLoader()
    names = loader.template_names()

    assert "replace_with_entity_type" in names["deidentify"]
    assert "default" in names["inspect"]
    redact = loader.get_deidentify_template("projects/p/deidentifyTemplates/redact")
    assert redact.default_operator.type == "redact"


def test_unknown_template_returns_none():
    assert TemplateLoader().get_inspect_template("nope") is None


def test_get_instance_is_shared():
    assert TemplateLoader.get_instance() is TemplateLoader.get_instance()


def test_missing_file(tmp_path):
    with pytest.raises(ConfigurationError, match="not found"):
        TemplateLoader(tmp_path / "missing.yaml")


def test_missing_section(tmp_path):
    path = tmp_path / "templates.yaml"
    path.write_text("inspect_templates: {}\n", encoding="utf-8")
    with pytest.raises(ConfigurationError, match="deidentify_templates"):
        TemplateLoader(path)


def test_invalid_yaml(tmp_path):
    path = tmp_path / "templates.yaml"
    path.write_text("inspect_templates: [unclosed\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        TemplateLoader(path)


def test_invalid_template_body(tmp_path):
    path = tmp_path / "templates.yaml"
    path.write_text(
        "inspect_templates:\n  bad:\n    score_threshold: 3\n"
        "deidentify_templates: {}\n",
        encoding="utf-8",
    )
    with pytest.raises(ConfigurationError, match="Invalid template"):
        TemplateLoader(path)
