"""
Tests for the logging setup: extra levels, logger naming and the origin column.
"""

import logging
import os

from logger import (
    EVENT_LEVEL,
    SUCCESS_LEVEL,
    SUCCESSTRACE_LEVEL,
    TRACE_LEVEL,
    WARNINGTRACE_LEVEL,
    ColoredFormatter,
    get_logger,
)


def make_record(name, pathname, level=logging.INFO, message="hello"):
    return logging.LogRecord(name, level, pathname, 1, message, None, None)


def test_level_names_are_registered():
    assert logging.getLevelName(SUCCESS_LEVEL) == "SUCCESS"
    assert logging.getLevelName(EVENT_LEVEL) == "EVENT"
    assert logging.getLevelName(SUCCESSTRACE_LEVEL) == "S-TRACE"
    assert logging.getLevelName(WARNINGTRACE_LEVEL) == "W-TRACE"
    assert logging.getLevelName(TRACE_LEVEL) == "TRACE"


def test_get_logger_uses_calling_module():
    assert get_logger().name.endswith("test_logger")
    assert get_logger("explicit").name == "explicit"


def test_origin_strips_source_root():
    record = make_record("utils.resolver", os.path.join("src", "utils", "resolver.py"))
    assert ColoredFormatter.origin(record) == "utils.resolver"


def test_origin_drops_package_init():
    record = make_record("commands", os.path.join("src", "commands", "__init__.py"))
    assert ColoredFormatter.origin(record) == "commands"


def test_origin_keeps_library_logger_names():
    record = make_record("discord.gateway", "/usr/lib/python3/site-packages/discord/gateway.py")
    assert ColoredFormatter.origin(record) == "discord.gateway"


def test_format_shows_level_and_origin():
    record = make_record("utils.fetch", os.path.join("src", "utils", "fetch.py"), SUCCESS_LEVEL, "done")
    line = ColoredFormatter().format(record)
    assert "SUCCESS" in line
    assert "[utils.fetch] done" in line
    assert line.endswith(ColoredFormatter.RESET)


def test_extra_level_methods(caplog):
    log = get_logger("prism.levels")
    with caplog.at_level(TRACE_LEVEL, logger="prism.levels"):
        log.success("a")
        log.event("b")
        log.successtrace("c")
        log.warningtrace("d")
        log.trace("e")

    assert [record.levelno for record in caplog.records] == [
        SUCCESS_LEVEL, EVENT_LEVEL, SUCCESSTRACE_LEVEL, WARNINGTRACE_LEVEL, TRACE_LEVEL,
    ]


def test_extra_levels_respect_threshold(caplog):
    log = get_logger("prism.quiet")
    with caplog.at_level(EVENT_LEVEL, logger="prism.quiet"):
        log.trace("hidden")
        log.warningtrace("hidden")
        log.event("shown")

    assert [record.getMessage() for record in caplog.records] == ["shown"]
