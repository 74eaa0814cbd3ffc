import pytest

from driver_alerts.config import Settings, TemplateProfile
from driver_alerts.exceptions import ConfigError
from driver_alerts.header_tokens import load_header_config


def test_settings_load_yaml(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text(
        "imports:\n  blank_row_run: 5\ntemplates:\n  wide:\n    check_out_offset: 6\n",
        encoding="utf-8",
    )
    settings = Settings.load(path)
    assert settings.imports.blank_row_run == 5
    assert settings.template("wide") == TemplateProfile(check_out_offset=6)


def test_unknown_template_profile():
    with pytest.raises(ConfigError):
        Settings().template("nincs")


def test_invalid_settings_file(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text("imports:\n  blank_row_run: [nem szám\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        Settings.load(path)


def test_header_config_merges_over_defaults(tmp_path):
    path = tmp_path / "headers.yaml"
    path.write_text(
        "stop_events:\n  fields:\n    plate_number: [\"forgalmi rendszám\"]\nplate_denylist: [\"depo\"]\n",
        encoding="utf-8",
    )
    headers = load_header_config(path)
    assert headers.stop_events.fields["plate_number"] == ["forgalmi rendszám"]
    # untouched keys keep their default aliases
    assert "érkezés" in headers.stop_events.fields["arrival_time"]
    assert headers.stop_events.required == ["plate_number", "arrival_time"]
    assert headers.plate_denylist == ["depo"]


def test_missing_header_config_uses_defaults(tmp_path):
    headers = load_header_config(tmp_path / "nincs.yaml")
    assert headers.vocabulary("vehicle-movements").required == ["plate_number", "timestamp"]


def test_shipped_settings_file_matches_model():
    from pathlib import Path

    import yaml

    path = Path(__file__).resolve().parent.parent / "config" / "settings.yaml"
    raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    settings = Settings.load(path)

    assert set(raw["paths"]) == set(type(settings.paths).model_fields) == {"db_path", "headers_path"}
    assert set(raw["logging"]) == set(type(settings.logging).model_fields) == {"level"}
