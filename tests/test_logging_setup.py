from __future__ import annotations

import logging

import pytest

from certinfo.infra.logging.setup import closeCommandLogger, createCommandLogger, logEvent, mapLogLevel


@pytest.mark.parametrize(
    "name,level",
    [("ERROR", logging.ERROR), ("warn", logging.WARNING), ("WARNING", logging.WARNING), ("debug", logging.DEBUG)],
)
def test_map_log_level(name, level):
    assert mapLogLevel(name) == level


def test_map_log_level_rejects_unknown():
    with pytest.raises(ValueError):
        mapLogLevel("TRACE")


def test_command_logger_writes_run_id_and_component(tmp_path):
    logger, path = createCommandLogger("resolve", str(tmp_path), "run-42", "DEBUG")
    try:
        logEvent(logger, logging.INFO, "run-42", "cache", "cached hit user=alice")
        logger.warning("no extra fields")
    finally:
        closeCommandLogger(logger)

    text = (tmp_path / "resolve_run-42.log").read_text(encoding="utf-8")
    assert path.endswith("resolve_run-42.log")
    assert "runId=run-42 comp=cache msg=cached hit user=alice" in text
    assert "runId=run-42 comp=core msg=no extra fields" in text
