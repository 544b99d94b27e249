from __future__ import annotations

from routewatch_backend.config.loaders import (
    CompositeConfigLoader,
    ConfigParser,
    DefaultConfigLoader,
    EnvironmentConfigLoader,
    YamlConfigLoader,
)
from routewatch_backend.config.settings import Settings, get_settings, reset_settings


def test_defaults():
    settings = Settings()
    assert settings.scheduler.min_cycle_seconds == 10
    assert settings.directions.max_routes == 3
    assert settings.directions.is_configured is False


def test_placeholder_key_is_not_configured():
    settings = Settings.model_validate({"directions": {"api_key": "your_api_key_here"}})
    assert settings.directions.is_configured is False


def test_yaml_overrides_defaults(tmp_path):
    config_file = tmp_path / "routewatch.yaml"
    config_file.write_text(
        "storage:\n  db_path: /tmp/jobs.db\nscheduler:\n  min_cycle_seconds: 30\n",
        encoding="utf-8",
    )

    loader = CompositeConfigLoader([DefaultConfigLoader(), YamlConfigLoader(config_file)])
    settings = ConfigParser.parse(loader.load())

    assert settings.storage.db_path == "/tmp/jobs.db"
    assert settings.scheduler.min_cycle_seconds == 30
    # 未覆盖的字段保留默认值
    assert settings.storage.enable_wal is True


def test_environment_overrides_yaml(tmp_path):
    config_file = tmp_path / "routewatch.yaml"
    config_file.write_text(
        "directions:\n  api_key: from-yaml\nstorage:\n  db_path: yaml.db\n", encoding="utf-8"
    )
    environ = {
        "GOOGLE_MAPS_API_KEY": "from-env",
        "ROUTEWATCH_DB_PATH": "env.db",
        "ROUTEWATCH_PORT": "8080",
        "ROUTEWATCH_UNKNOWN": "ignored",
        "PATH": "/usr/bin",
    }

    loader = CompositeConfigLoader(
        [
            DefaultConfigLoader(),
            YamlConfigLoader(config_file),
            EnvironmentConfigLoader(environ=environ),
        ]
    )
    settings = ConfigParser.parse(loader.load())

    assert settings.directions.api_key == "from-env"
    assert settings.directions.is_configured is True
    assert settings.storage.db_path == "env.db"
    assert settings.server.port == 8080


def test_missing_yaml_is_skipped(tmp_path):
    loader = YamlConfigLoader(tmp_path / "absent.yaml")
    assert loader.is_available() is False
    assert loader.load() == {}


def test_invalid_section_falls_back_alone():
    settings = ConfigParser.parse(
        {
            "server": {"port": "not-a-port"},
            "storage": {"db_path": "kept.db"},
        }
    )
    assert settings.server.port == 3001
    assert settings.storage.db_path == "kept.db"


def test_api_key_survives_bad_port_from_environment():
    environ = {"GOOGLE_MAPS_API_KEY": "real-key", "ROUTEWATCH_PORT": "notaport"}
    loader = CompositeConfigLoader(
        [DefaultConfigLoader(), EnvironmentConfigLoader(environ=environ)]
    )

    settings = ConfigParser.parse(loader.load())

    assert settings.directions.api_key == "real-key"
    assert settings.directions.is_configured is True
    assert settings.server.port == 3001


def test_log_level_is_normalised():
    assert ConfigParser.parse({"log_level": "debug"}).log_level == "DEBUG"
    assert ConfigParser.parse({"log_level": "chatty"}).log_level == "INFO"


def test_non_mapping_section_uses_defaults():
    settings = ConfigParser.parse({"scheduler": ["not", "a", "mapping"]})
    assert settings.scheduler.min_cycle_seconds == 10


def test_get_settings_is_cached(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("ROUTEWATCH_DB_PATH", str(tmp_path / "cached.db"))
    reset_settings()
    try:
        first = get_settings()
        assert first.storage.db_path == str(tmp_path / "cached.db")
        assert get_settings() is first
    finally:
        reset_settings()
