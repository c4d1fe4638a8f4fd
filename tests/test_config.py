import pytest

from aptkeeper.config import DEFAULT_LOCK_PATHS, DEFAULT_MARKER, AptKeeperConfig, load_config


def test_defaults_without_a_file():
    cfg = load_config(None)
    assert cfg.marker == DEFAULT_MARKER
    assert cfg.lock_paths == DEFAULT_LOCK_PATHS
    assert cfg.lock_timeout_s == 60
    assert cfg.lock_poll_interval_s == 3
    assert cfg.sources_list == "/etc/apt/sources.list"
    assert cfg.repo_file == "/etc/apt/sources.list.d/aptkeeper-official.list"


def test_yaml_overrides(tmp_path):
    p = tmp_path / "aptkeeper.yaml"
    p.write_text(
        "marker: '#dup'\n"
        "backup_root: /tmp/bk\n"
        "lock:\n  paths: [/run/lock/x]\n  timeout_s: 10\n  poll_interval_s: 3\n"
        "retry:\n  max_attempts: 5\n  base_backoff_s: 0.5\n",
        encoding="utf-8",
    )
    cfg = load_config(str(p))
    assert cfg.marker == "#dup"
    assert cfg.backup_root == "/tmp/bk"
    assert cfg.lock_paths == ["/run/lock/x"]
    assert cfg.lock_timeout_s == 10.0
    assert cfg.retry_max_attempts == 5
    assert cfg.retry_base_backoff_s == 0.5


def test_non_mapping_yaml_rejected(tmp_path):
    p = tmp_path / "bad.yml"
    p.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(str(p))


def test_non_yaml_rejected(tmp_path):
    p = tmp_path / "cfg.json"
    p.write_text("{}", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(str(p))


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "nope.yaml"))


def test_repo_file_follows_parts_dir():
    cfg = AptKeeperConfig(raw={"sources": {"parts_dir": "/srv/apt.d"}})
    assert cfg.repo_file == "/srv/apt.d/aptkeeper-official.list"
