import json

import pytest

from lead_importer.config import ConfigurationError, Settings, load_configuration, load_settings


def test_defaults() -> None:
    settings = load_settings(environ={})

    assert settings == Settings()
    assert settings.max_upload_bytes == 10 * 1024 * 1024
    assert settings.allowed_extensions == frozenset({"csv", "xlsx", "xls"})
    assert settings.default_batch_size == 100
    assert settings.batch_write_timeout_seconds == 30.0


def test_yaml_importer_section_and_environment_overrides(tmp_path) -> None:
    config_path = tmp_path / "service.yaml"
    config_path.write_text(
        "importer:\n  default_batch_size: 250\n  allowed_extensions: [csv]\n  sample_rows: 3\n  unknown: 1\n",
        encoding="utf-8",
    )

    settings = load_settings(config_path, environ={"LEAD_IMPORTER_SAMPLE_ROWS": "10"})

    assert settings.default_batch_size == 250
    assert settings.allowed_extensions == frozenset({"csv"})
    assert settings.sample_rows == 10


def test_json_top_level_values(tmp_path) -> None:
    config_path = tmp_path / "service.json"
    config_path.write_text(json.dumps({"max_workers": 2, "job_retention_hours": 1.5}), encoding="utf-8")

    settings = load_settings(config_path, environ={"LEAD_IMPORTER_ALLOWED_EXTENSIONS": ".CSV, xlsx"})

    assert settings.max_workers == 2
    assert settings.job_retention_hours == 1.5
    assert settings.allowed_extensions == frozenset({"csv", "xlsx"})


def test_uncoercible_value_is_a_configuration_error() -> None:
    with pytest.raises(ConfigurationError, match="max_workers"):
        load_settings(environ={"LEAD_IMPORTER_MAX_WORKERS": "many"})


def test_missing_and_unsupported_files(tmp_path) -> None:
    with pytest.raises(ConfigurationError, match="was not found"):
        load_configuration(tmp_path / "absent.yaml")

    ini_path = tmp_path / "service.ini"
    ini_path.write_text("[importer]\n", encoding="utf-8")
    with pytest.raises(ConfigurationError, match="Unsupported configuration format"):
        load_configuration(ini_path)


def test_malformed_json_is_a_configuration_error(tmp_path) -> None:
    config_path = tmp_path / "broken.json"
    config_path.write_text("{not json", encoding="utf-8")

    with pytest.raises(ConfigurationError, match="not valid JSON"):
        load_settings(config_path, environ={})
