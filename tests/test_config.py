from pathlib import Path

import pytest

from marktree.config import Settings, load_settings

_VARS = (
    "MARKTREE_DB",
    "MARKTREE_BUSY_TIMEOUT_MS",
    "MARKTREE_HISTORY_LIMIT",
    "MARKTREE_DERIVE_ICONS",
    "MARKTREE_LOG_LEVEL",
    "MARKTREE_NO_COLOR",
    "MARKTREE_LOG_FILE",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for name in _VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "xdg"))


def test_defaults_use_xdg_data_home(tmp_path):
    s = Settings.from_env()
    assert Path(s.db_path) == tmp_path / "xdg" / "marktree" / "bookmarks.sqlite"
    assert s.history_limit == 50
    assert s.busy_timeout_ms == 5000
    assert s.derive_icons is True
    assert s.log_file is None


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("MARKTREE_DB", "/tmp/other.sqlite")
    monkeypatch.setenv("MARKTREE_HISTORY_LIMIT", "10")
    monkeypatch.setenv("MARKTREE_DERIVE_ICONS", "off")
    monkeypatch.setenv("MARKTREE_LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("MARKTREE_BUSY_TIMEOUT_MS", "not a number")
    s = Settings.from_env()
    assert s.db_path == "/tmp/other.sqlite"
    assert s.history_limit == 10
    assert s.derive_icons is False
    assert s.log_level == "DEBUG"
    assert s.busy_timeout_ms == 5000


def test_yaml_file_overlays_env(monkeypatch, tmp_path):
    monkeypatch.setenv("MARKTREE_LOG_LEVEL", "WARNING")
    cfg = tmp_path / "marktree.yaml"
    cfg.write_text("db_path: /data/b.sqlite\nhistory_limit: 20\nunknown_key: 1\n", encoding="utf-8")
    s = load_settings(str(cfg))
    assert s.db_path == "/data/b.sqlite"
    assert s.history_limit == 20
    assert s.log_level == "WARNING"
    assert not hasattr(s, "unknown_key")


def test_yaml_file_validation(tmp_path):
    bad = tmp_path / "list.yaml"
    bad.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ValueError, match="mapping"):
        load_settings(str(bad))

    zero = tmp_path / "zero.yaml"
    zero.write_text("history_limit: 0\n", encoding="utf-8")
    with pytest.raises(ValueError, match="history_limit"):
        load_settings(str(zero))


def test_empty_yaml_file_means_env_only(tmp_path):
    empty = tmp_path / "empty.yaml"
    empty.write_text("", encoding="utf-8")
    assert load_settings(str(empty)) == Settings.from_env()
