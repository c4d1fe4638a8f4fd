import json
from pathlib import Path

import pytest

from aptkeeper.errors import BackupError, RestoreError
from aptkeeper.lib.backup import MANIFEST, BackupManager
from aptkeeper.lib.dedupe import Deduplicator
from aptkeeper.lib.duplicates import detect
from aptkeeper.lib.sources import collect


@pytest.fixture
def backups(tmp_path):
    return BackupManager(str(tmp_path / "backups"))


def _apply(files, backups):
    backup = backups.snapshot(files)
    Deduplicator(backups).apply(detect(collect(files)), files, backup=backup)
    return backup


def _contents(files):
    return [Path(p).read_bytes() for p in files]


def test_snapshot_records_bytes_and_absence(tmp_path, backups, scenario):
    missing = str(tmp_path / "missing.list")
    b = backups.snapshot([*scenario, missing])
    assert [f.existed for f in b.files] == [True, True, True, False]
    assert (Path(b.root) / MANIFEST).exists()
    assert backups.load(b.id) == b


def test_restore_from_backup_returns_exact_bytes(backups, scenario):
    before = _contents(scenario)
    backup = _apply(scenario, backups)
    assert _contents(scenario) != before

    restored = backups.restore_from_backup(backup)
    assert restored == scenario[1:]
    assert _contents(scenario) == before


def test_restore_by_id(backups, scenario):
    before = _contents(scenario)
    backup = _apply(scenario, backups)
    backups.restore_from_backup(backup.id)
    assert _contents(scenario) == before


def test_restore_removes_files_created_after_snapshot(tmp_path, backups):
    p = tmp_path / "new.list"
    backup = backups.snapshot([str(p)])
    p.write_text("deb http://x y\n", encoding="utf-8")
    assert backups.restore_from_backup(backup) == [str(p)]
    assert not p.exists()


def test_undo_markers_restores_lines_without_backup(backups, scenario):
    before = _contents(scenario)
    _apply(scenario, backups)
    restored = backups.undo_markers(scenario)
    assert restored == scenario[1:]
    assert _contents(scenario) == before
    assert backups.undo_markers(scenario) == []


def test_both_restore_paths_leave_no_markers(backups, scenario):
    backup = _apply(scenario, backups)
    backups.restore_from_backup(backup)
    assert not any(b"#aptkeeper-duplicate" in c for c in _contents(scenario))

    _apply(scenario, backups)
    backups.undo_markers(scenario)
    assert not any(b"#aptkeeper-duplicate" in c for c in _contents(scenario))


def test_missing_backup_is_a_restore_error(backups):
    with pytest.raises(RestoreError, match="not found"):
        backups.restore_from_backup("20990101T000000-deadbeef")


def test_corrupt_blob_is_a_restore_error_and_nothing_is_touched(backups, scenario):
    backup = _apply(scenario, backups)
    after = _contents(scenario)
    blob = Path(backup.root) / backup.files[1].blob
    blob.write_bytes(b"garbage")
    with pytest.raises(RestoreError, match="corrupt"):
        backups.restore_from_backup(backup)
    assert _contents(scenario) == after


def test_corrupt_manifest_is_a_restore_error(backups, scenario):
    backup = backups.snapshot(scenario)
    (Path(backup.root) / MANIFEST).write_text("{not json", encoding="utf-8")
    with pytest.raises(RestoreError, match="corrupt"):
        backups.load(backup.id)


def test_snapshot_failure_is_a_backup_error(tmp_path, scenario):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("", encoding="utf-8")
    with pytest.raises(BackupError):
        BackupManager(str(blocker)).snapshot(scenario)


def test_list_backups_newest_first_and_skips_incomplete(backups, scenario):
    first = backups.snapshot(scenario)
    second = backups.snapshot(scenario)
    manifest = Path(second.root) / MANIFEST
    data = json.loads(manifest.read_text(encoding="utf-8"))
    data["created_at"] = first.created_at + 10
    manifest.write_text(json.dumps(data), encoding="utf-8")
    (backups.root / "half-written").mkdir()

    assert [b.id for b in backups.list_backups()] == [second.id, first.id]
    assert backups.latest().id == second.id
