from pathlib import Path

import pytest

from aptkeeper.errors import BackupError, WriteError
from aptkeeper.lib import atomic
from aptkeeper.lib.backup import BackupManager
from aptkeeper.lib.dedupe import Deduplicator
from aptkeeper.lib.duplicates import detect
from aptkeeper.lib.sources import collect

from .conftest import KALI_LINE

MARKED = f"#aptkeeper-duplicate: {KALI_LINE}"


def _run(files, backups):
    groups = detect(collect(files))
    backup = backups.snapshot(files)
    return Deduplicator(backups).apply(groups, files, backup=backup)


@pytest.fixture
def backups(tmp_path):
    return BackupManager(str(tmp_path / "backups"))


def test_scenario_marks_all_but_first(scenario, backups):
    sources, a, b = scenario
    before = Path(sources).read_bytes()
    result = _run(scenario, backups)

    assert result.rewritten == [a, b]
    assert result.marked_lines == 2
    assert Path(sources).read_bytes() == before
    assert Path(a).read_text(encoding="utf-8").splitlines()[1] == MARKED
    assert Path(b).read_text(encoding="utf-8") == MARKED + "\n"


def test_second_apply_is_a_byte_identical_noop(scenario, backups):
    _run(scenario, backups)
    snapshot = [Path(p).read_bytes() for p in scenario]
    result = _run(scenario, backups)
    assert result.rewritten == []
    assert [Path(p).read_bytes() for p in scenario] == snapshot


def test_line_endings_and_odd_bytes_survive(tmp_path, backups):
    p = tmp_path / "x.list"
    p.write_bytes(b"deb http://x y\r\ndeb http://x y\r\n# caf\xe9\nno-newline")
    _run([str(p)], backups)
    assert p.read_bytes() == b"deb http://x y\r\n#aptkeeper-duplicate: deb http://x y\r\n# caf\xe9\nno-newline"


def test_file_mode_is_preserved(scenario, backups):
    a = Path(scenario[1])
    a.chmod(0o640)
    _run(scenario, backups)
    assert a.stat().st_mode & 0o777 == 0o640


def test_apply_requires_a_backup(scenario, backups):
    groups = detect(collect(scenario))
    with pytest.raises(BackupError):
        Deduplicator(backups).apply(groups, scenario, backup=None)


def test_apply_rejects_backup_that_does_not_cover_files(scenario, backups):
    groups = detect(collect(scenario))
    partial = backups.snapshot(scenario[:1])
    with pytest.raises(BackupError):
        Deduplicator(backups).apply(groups, scenario, backup=partial)


def test_apply_rejects_backup_taken_before_a_later_edit(scenario, backups):
    groups = detect(collect(scenario))
    backup = backups.snapshot(scenario)
    Path(scenario[2]).write_text(f"{KALI_LINE}\n# edited\n", encoding="utf-8")
    with pytest.raises(BackupError):
        Deduplicator(backups).apply(groups, scenario, backup=backup)


def test_failure_before_rename_leaves_original_intact(scenario, backups, monkeypatch):
    sources, a, b = scenario
    original = Path(a).read_bytes()

    def boom(src, dst):
        raise OSError(28, "No space left on device")

    groups = detect(collect(scenario))
    backup = backups.snapshot(scenario)
    monkeypatch.setattr(atomic.os, "replace", boom)
    with pytest.raises(WriteError) as exc:
        Deduplicator(backups).apply(groups, scenario, backup=backup)

    assert exc.value.path == a
    assert exc.value.completed == []
    assert exc.value.unprocessed == [b]
    assert Path(a).read_bytes() == original
    assert not list(Path(a).parent.glob("*.aptkeeper-tmp"))


def test_write_failure_keeps_completed_files(scenario, backups, monkeypatch):
    sources, a, b = scenario
    real_replace = atomic.os.replace

    def fail_on_b(src, dst):
        if str(dst) == b:
            raise OSError(13, "Permission denied")
        return real_replace(src, dst)

    monkeypatch.setattr(atomic.os, "replace", fail_on_b)
    with pytest.raises(WriteError) as exc:
        _run(scenario, backups)

    assert exc.value.completed == [a]
    assert exc.value.unprocessed == []
    assert Path(a).read_text(encoding="utf-8").splitlines()[1] == MARKED
    assert Path(b).read_text(encoding="utf-8") == KALI_LINE + "\n"


def test_stale_line_is_a_write_error(scenario, backups):
    groups = detect(collect(scenario))
    Path(scenario[2]).write_text("deb http://changed x\n", encoding="utf-8")
    backup = backups.snapshot(scenario)
    with pytest.raises(WriteError, match="changed since the scan"):
        Deduplicator(backups).apply(groups, scenario, backup=backup)
