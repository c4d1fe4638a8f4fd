import logging

import pytest

from aptkeeper.logging_utils import configure_logging


@pytest.fixture
def root(monkeypatch):
    root = logging.getLogger()
    monkeypatch.setattr(root, "handlers", [])
    monkeypatch.setattr(root, "_aptkeeper_configured", False, raising=False)
    monkeypatch.setattr(root, "_aptkeeper_log_path", None, raising=False)
    monkeypatch.setattr(root, "level", root.level)
    yield root
    for h in root.handlers:
        h.close()


def test_file_only_unless_console_requested(root, tmp_path):
    path = str(tmp_path / "logs" / "aptkeeper.log")
    assert configure_logging(log_path=path, also_console=False) == path
    assert [type(h) for h in root.handlers] == [logging.FileHandler]


def test_console_handler_under_verbose(root, tmp_path):
    configure_logging(log_path=str(tmp_path / "aptkeeper.log"), level=logging.DEBUG, also_console=True)
    assert [type(h) for h in root.handlers] == [logging.FileHandler, logging.StreamHandler]
    assert root.level == logging.DEBUG


def test_second_call_is_a_no_op(root, tmp_path):
    first = configure_logging(log_path=str(tmp_path / "a.log"), also_console=False)
    assert configure_logging(log_path=str(tmp_path / "b.log"), also_console=True) == first
    assert len(root.handlers) == 1
