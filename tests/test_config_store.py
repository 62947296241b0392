"""Tests for the config store."""
from notification_sync.config_store import ConfigStore
from notification_sync.settings import Settings


def test_file_is_master_over_env(tmp_path, monkeypatch):
    monkeypatch.setenv("NOTIFY_MAX_PAGE_SIZE", "30")
    monkeypatch.setenv("NOTIFY_PLATFORM", "ios")
    config = tmp_path / "config.yaml"
    config.write_text("max_page_size: 40\n")
    store = ConfigStore(Settings, str(config))
    settings = store.get_settings()
    assert settings.max_page_size == 40
    assert settings.platform == "ios"


def test_missing_or_invalid_file_falls_back(tmp_path):
    assert ConfigStore(Settings, str(tmp_path / "absent.yaml")).get_settings().max_page_size == 50
    bad = tmp_path / "bad.yaml"
    bad.write_text("max_page_size: [unclosed\n")
    assert ConfigStore(Settings, str(bad)).get_settings().default_page_size == 20


def test_update_keeps_previous_on_validation_error(tmp_path):
    store = ConfigStore(Settings, str(tmp_path / "absent.yaml"))
    assert store.update({"default_page_size": 10}) is True
    assert store.get_settings().default_page_size == 10
    assert store.update({"default_page_size": "not a number"}) is False
    assert store.get_settings().default_page_size == 10
    store.clear_overrides()
    assert store.get_settings().default_page_size == 20


def test_reload_reapplies_overrides(tmp_path):
    config = tmp_path / "config.json"
    config.write_text('{"change_feed": "redis"}')
    store = ConfigStore(Settings, str(config))
    store.update({"platform": "web"})
    config.write_text('{"change_feed": "memory"}')
    store.reload_from_file()
    settings = store.get_settings()
    assert settings.change_feed == "memory"
    assert settings.platform == "web"
