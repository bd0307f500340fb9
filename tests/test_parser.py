from __future__ import annotations

from triagebot.parser import ALL_COMMANDS, contains_valid_command, parse


def test_text_without_slash_lines_yields_nothing():
    assert parse("Just a regular comment.\nNothing to do here.") == []
    assert parse("") == []


def test_parse_preserves_line_order_and_param_case():
    tokens = parse("/Kind Bug\r\n  /assign @Alice @bob  \n/pipeline \"In Progress\"")
    assert [t.name for t in tokens] == ["kind", "assign", "pipeline"]
    assert tokens[0].params == ("Bug",)
    assert tokens[1].params == ("@Alice", "@bob")
    assert tokens[2].params == ('"In', 'Progress"')
    assert tokens[0].source_line == "Kind Bug"


def test_unknown_commands_and_paths_are_ignored():
    tokens = parse("/usr/local/bin is a path\n/frobnicate now\n/close")
    assert [t.name for t in tokens] == ["close"]


def test_pipeline_closed_alias_becomes_close():
    assert [t.name for t in parse("/pipeline closed")] == ["close"]
    assert [t.name for t in parse("/pipeline   closed")] == ["close"]
    assert [t.name for t in parse("/Pipeline Closed")] == ["close"]
    assert parse("/pipeline closed")[0].params == ()


def test_bare_slash_line_is_skipped():
    assert parse("/\n/ \n/reopen") == parse("/reopen")


def test_vocabulary_includes_flag_removals():
    for name in ("remove-epic", "remove-wontfix", "tech-topic", "verify", "remove-release"):
        assert name in ALL_COMMANDS


def test_contains_valid_command():
    assert contains_valid_command("hello\n/kind bug")
    assert not contains_valid_command("hello\n/notacommand x")
    assert not contains_valid_command(None)
    assert not contains_valid_command("")
