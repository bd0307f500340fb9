import json

from triagebot.logging import StructuredLogger, configure_logging, get_logger


def test_json_logging_emits_structured_entries(capsys):
    logger = StructuredLogger(json_logging=True, level="INFO")
    logger.log_issue_action("labels", "acme_widgets-7", detail="+kind/bug", dry_run=True)
    entry = json.loads(capsys.readouterr().out.strip())
    assert entry["message"] == "issue labels acme_widgets-7: +kind/bug [DRY]"
    assert entry["operation"] == "issue_labels"
    assert entry["dry_run"] is True
    assert entry["issue_key"] == "acme_widgets-7"


def test_json_logging_dedupes_identical_entries(capsys):
    logger = StructuredLogger(json_logging=True)
    logger.log_operation("poll")
    logger.log_operation("poll")
    lines = [line for line in capsys.readouterr().out.splitlines() if line]
    assert len(lines) == 1


def test_log_error_redacts_secrets(capsys):
    logger = StructuredLogger(json_logging=True)
    logger.log_error("call failed", error="bad token ghp_ABCDEFGHIJKLMNOPQRSTUVWX1234")
    entry = json.loads(capsys.readouterr().out.strip())
    assert "ghp_" not in entry["error"]


def test_plain_logging_level_filters(capsys):
    logger = StructuredLogger(json_logging=False, level="WARNING")
    logger.info("hidden")
    logger.warning("shown")
    out = capsys.readouterr().out
    assert "hidden" not in out
    assert "shown" in out


def test_configure_logging_replaces_global():
    first = configure_logging(level="DEBUG")
    assert get_logger() is first
    second = configure_logging(json_logging=True)
    assert get_logger() is second
