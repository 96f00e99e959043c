import json

from launchbridge.config.access import clear_config_cache, get_config
from launchbridge.config.loader import camel_to_snake, convert_keys, load_config, save_config, snake_to_camel
from launchbridge.config.schema import BridgeConfig
from launchbridge.config.settings import SettingsStore


def test_settings_store_persists(tmp_path) -> None:
    path = tmp_path / "settings.json"
    store = SettingsStore(path)
    assert store.set_value("python.x", "count", 3) is True
    assert store.set_value("python.x", "name", "abc") is True

    reopened = SettingsStore(path)
    assert reopened.value("python.x", "count") == 3
    assert reopened.section("python.x") == {"count": 3, "name": "abc"}


def test_settings_store_rejects_unsupported_types(tmp_path) -> None:
    store = SettingsStore(tmp_path / "settings.json")
    assert store.set_value("s", "k", [1, 2]) is False
    assert store.set_value("s", "k", {"a": 1}) is False
    assert store.value("s", "k") is None


def test_settings_store_read_coercion(tmp_path) -> None:
    store = SettingsStore(tmp_path / "settings.json")
    store.set_value("s", "n", "42")
    store.set_value("s", "flag", "true")
    store.set_value("s", "text", "abc")
    assert store.read("s", "n", int) == 42
    assert store.read("s", "n", float) == 42.0
    assert store.read("s", "flag", bool) is True
    assert store.read("s", "text", int) is None
    assert store.read("s", "n", list) is None
    assert store.read("s", "missing", str) is None


def test_settings_store_ignores_corrupt_file(tmp_path) -> None:
    path = tmp_path / "settings.json"
    path.write_text("{not json", encoding="utf-8")
    store = SettingsStore(path)
    assert store.value("s", "k") is None
    store.set_value("s", "k", 1)
    assert json.loads(path.read_text(encoding="utf-8")) == {"s": {"k": 1}}


def test_remove(tmp_path) -> None:
    store = SettingsStore(tmp_path / "settings.json")
    store.set_value("s", "k", 1)
    store.remove("s", "k")
    assert store.value("s", "k") is None


def test_env_overrides(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("LAUNCHBRIDGE_QUERY__BATCH_SIZE", "3")
    monkeypatch.setenv("LAUNCHBRIDGE_ENVIRONMENT__ENABLED", "false")
    monkeypatch.setenv("LAUNCHBRIDGE_HOME", str(tmp_path / "home"))
    cfg = BridgeConfig()
    assert cfg.query.batch_size == 3
    assert cfg.environment.enabled is False
    assert cfg.data_path == tmp_path / "home"


def test_save_and_load_use_camel_case(tmp_path) -> None:
    path = tmp_path / "config.json"
    cfg = BridgeConfig(data_dir=str(tmp_path / "data"))
    cfg.query.batch_size = 25
    cfg.plugins.autoload = ["python.hello"]
    save_config(cfg, path)

    raw = json.loads(path.read_text())
    assert raw["query"]["batchSize"] == 25
    assert raw["environment"]["processTimeoutSeconds"] == 300.0

    loaded = load_config(path)
    assert loaded.query.batch_size == 25
    assert loaded.plugins.autoload == ["python.hello"]


def test_data_locations_dedupe(tmp_path) -> None:
    cfg = BridgeConfig(data_dir=str(tmp_path))
    cfg.plugins.extra_data_locations = [str(tmp_path), "  ", str(tmp_path / "other")]
    assert cfg.data_locations() == [tmp_path, tmp_path / "other"]


def test_key_conversion() -> None:
    assert camel_to_snake("extraDataLocations") == "extra_data_locations"
    assert snake_to_camel("process_timeout_seconds") == "processTimeoutSeconds"
    assert convert_keys({"dataDir": "x", "plugins": {"autoLoad": []}}) == {"data_dir": "x", "plugins": {"auto_load": []}}


def test_get_config_is_cached_until_saved(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("LAUNCHBRIDGE_HOME", str(tmp_path / "home"))
    clear_config_cache()
    try:
        first = get_config()
        assert get_config() is first

        first.query.batch_size = 7
        save_config(first)
        reloaded = get_config()
        assert reloaded is not first
        assert reloaded.query.batch_size == 7

        save_config(reloaded, tmp_path / "elsewhere.json")
        assert get_config() is reloaded
    finally:
        clear_config_cache()
