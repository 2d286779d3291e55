import pytest

from configai.error_handling import ConfigurationError
from configai.settings import ServiceSettings, SettingsManager
from configai.validation import SettingsValidator


def test_defaults():
    settings = SettingsManager(environ={}).load()

    assert settings.store.config_dir == "./config"
    assert settings.watcher.enabled is True
    assert settings.watcher.debounce_ms == 500
    assert settings.watcher.debounce_seconds == 0.5
    assert settings.logging.level == "INFO"


def test_file_is_merged_over_defaults(tmp_path):
    path = tmp_path / "configai.yaml"
    path.write_text("store:\n  config_dir: /srv/config\nwatcher:\n  debounce_ms: 250\n", encoding="utf-8")

    settings = SettingsManager(settings_path=str(path), environ={}).load()

    assert settings.store.config_dir == "/srv/config"
    assert settings.watcher.debounce_ms == 250
    assert settings.watcher.enabled is True


def test_environment_wins_over_file(tmp_path):
    path = tmp_path / "configai.yaml"
    path.write_text("watcher:\n  debounce_ms: 250\n", encoding="utf-8")
    environ = {
        "CONFIGAI_CONFIG_DIR": "/etc/app",
        "CONFIGAI_WATCH": "off",
        "CONFIGAI_DEBOUNCE_MS": "1000",
        "CONFIGAI_LOG_LEVEL": "debug",
    }

    settings = SettingsManager(settings_path=str(path), environ=environ).load()

    assert settings.store.config_dir == "/etc/app"
    assert settings.watcher.enabled is False
    assert settings.watcher.debounce_ms == 1000
    assert settings.logging.level == "DEBUG"


def test_overrides_are_applied_last():
    environ = {"CONFIGAI_CONFIG_DIR": "/etc/app"}

    settings = SettingsManager(environ=environ).load({"store": {"config_dir": "/tmp/cfg"}})

    assert settings.store.config_dir == "/tmp/cfg"


@pytest.mark.parametrize("environ", [
    {"CONFIGAI_WATCH": "maybe"},
    {"CONFIGAI_DEBOUNCE_MS": "soon"},
    {"CONFIGAI_DEBOUNCE_MS": "-1"},
    {"CONFIGAI_DEBOUNCE_MS": "600000"},
    {"CONFIGAI_LOG_LEVEL": "loud"},
])
def test_invalid_environment(environ):
    with pytest.raises(ConfigurationError):
        SettingsManager(environ=environ).load()


@pytest.mark.parametrize("content", [
    "watcher:\n  enabled: 'yes'\n",
    "watcher:\n  debounce_ms: true\n",
    "store:\n  config_dir: ''\n",
    "logging: verbose\n",
    "- just\n- a list\n",
    "store: [unclosed\n",
])
def test_invalid_file(tmp_path, content):
    path = tmp_path / "configai.yaml"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(ConfigurationError):
        SettingsManager(settings_path=str(path), environ={}).load()


def test_missing_file(tmp_path):
    with pytest.raises(ConfigurationError, match="not found"):
        SettingsManager(settings_path=str(tmp_path / "absent.yaml"), environ={}).load()


def test_to_dict_round_trips():
    settings = SettingsManager(environ={"CONFIGAI_DEBOUNCE_MS": "42"}).load()
    assert ServiceSettings.from_dict(settings.to_dict()) == settings


def test_is_valid_value():
    validator = SettingsValidator()

    assert validator.is_valid_value('watcher.debounce_ms', 250)
    assert not validator.is_valid_value('watcher.debounce_ms', True)
    assert not validator.is_valid_value('logging.level', 'LOUD')
    assert not validator.is_valid_value('watcher.unknown', 1)
