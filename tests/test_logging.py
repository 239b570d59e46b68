from __future__ import annotations

import logging

import pytest


def test_get_logger_namespaces_names() -> None:
    from skillgate.logging import get_logger

    assert get_logger("skillgate.parser").name == "skillgate.parser"
    assert get_logger("host").name == "skillgate.host"
    assert get_logger().name == "skillgate"


def test_setup_logging_uses_rich_handler(monkeypatch: pytest.MonkeyPatch) -> None:
    from rich.logging import RichHandler

    from skillgate.logging import setup_logging

    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    monkeypatch.setenv("SKILLGATE_LOG_LEVEL", "debug")
    try:
        root.handlers = []
        setup_logging()
        assert any(isinstance(h, RichHandler) for h in root.handlers)
        assert root.level == logging.DEBUG
    finally:
        root.handlers = saved_handlers
        root.setLevel(saved_level)
