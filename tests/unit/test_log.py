"""Tests for the tagged console logger"""

import io

from rich.console import Console

from hetzkube.log import Logger


def make_logger(level="info"):
    buf = io.StringIO()
    return Logger(level, Console(file=buf, width=200, color_system=None)), buf


def test_tags():
    log, buf = make_logger()
    log.info("starting")
    log.ok("done")
    log.warn("careful")
    log.error("broken")
    out = buf.getvalue()
    assert "[INFO]  starting" in out
    assert "[OK]    done" in out
    assert "[WARN]  careful" in out
    assert "[ERROR] broken" in out


def test_level_filtering():
    log, buf = make_logger("warning")
    log.debug("hidden debug")
    log.info("hidden info")
    log.warn("shown")
    out = buf.getvalue()
    assert "hidden" not in out
    assert "shown" in out


def test_debug_enabled():
    log, buf = make_logger("debug")
    log.debug("Running: kubectl get nodes")
    assert "Running: kubectl get nodes" in buf.getvalue()


def test_set_level_aliases():
    log, _ = make_logger()
    log.set_level("WARN")
    assert log.level == "warning"
    log.set_level("nonsense")
    assert log.level == "info"

def test_markup_characters_are_literal():
    log, buf = make_logger()
    log.info("jsonpath={.status[?(@.type==\"Ready\")]}")
    log.echo("[bold]not bold[/bold]")
    out = buf.getvalue()
    assert '{.status[?(@.type=="Ready")]}' in out
    assert "[bold]not bold[/bold]" in out
