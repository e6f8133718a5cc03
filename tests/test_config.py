import json

from wiimctl.lib import config
from wiimctl.lib.config import Settings, cfg, default_state_path


def test_cfg_reads_sections(write_config):
    write_config({"poll": {"interval": 5}, "http": {"port": 9000}})
    assert cfg("poll", "interval", default=2.0) == 5
    assert cfg("http") == {"port": 9000}
    assert cfg("device", "scheme", default="https") == "https"


def test_missing_config_file_gives_empty_config(monkeypatch, tmp_path):
    monkeypatch.setenv("WIIMCTL_CONFIG", str(tmp_path / "missing.json"))
    assert config.reload_config() == {}
    assert cfg("poll", "interval", default=2.0) == 2.0


def test_invalid_json_is_skipped(isolated_config):
    isolated_config.write_text("{not json")
    assert config.reload_config() == {}


def test_settings_write_through(tmp_path):
    path = tmp_path / "nested" / "state.json"
    store = Settings(str(path))
    store.set("device", "host", "10.0.0.5")
    store.set("source", "mode", "local")

    assert json.loads(path.read_text()) == {
        "device": {"host": "10.0.0.5"},
        "source": {"mode": "local"},
    }
    assert Settings(str(path)).get("device", "host") == "10.0.0.5"


def test_settings_fall_back_to_config(write_config, store):
    write_config({"device": {"host": "192.168.1.50", "name": "Preseeded"}})
    assert store.get("device", "host") == "192.168.1.50"
    store.set("device", "host", "10.0.0.1")
    assert store.get("device", "host") == "10.0.0.1"
    assert store.get("device", "missing", default="x") == "x"


def test_corrupt_state_file_is_ignored(tmp_path):
    path = tmp_path / "state.json"
    path.write_text("[]")
    assert Settings(str(path)).get("source", "mode", default="auto") == "auto"


def test_default_state_path(monkeypatch, tmp_path):
    monkeypatch.setenv("WIIMCTL_STATE", str(tmp_path / "s.json"))
    assert default_state_path() == str(tmp_path / "s.json")
    monkeypatch.delenv("WIIMCTL_STATE")
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    assert default_state_path() == str(tmp_path / "wiimctl" / "state.json")


def test_settings_singleton_uses_state_env(monkeypatch, tmp_path):
    monkeypatch.setenv("WIIMCTL_STATE", str(tmp_path / "single.json"))
    config.reset_settings()
    assert config.settings().path == str(tmp_path / "single.json")
    assert config.settings() is config.settings()
