from __future__ import annotations

import json

import pytest

from triagebot.cli import main


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    path = tmp_path / "triagebot.config.yaml"
    path.write_text("version: 1\ndatabase:\n  path: ledger.json\n")
    return path


def test_parse_prints_commands(tmp_path, capsys):
    source = tmp_path / "comment.md"
    source.write_text("Thanks!\n/kind bug\n/assign @alice @bob\n")

    assert main(["--quiet", "parse", str(source)]) == 0

    commands = json.loads(capsys.readouterr().out)
    assert [c["name"] for c in commands] == ["kind", "assign"]
    assert commands[0]["kind"] == "label"
    assert commands[1]["params"] == ["@alice", "@bob"]


def test_watermark_set_and_show(config_file, capsys):
    assert main(["--quiet", "watermark", "--config", str(config_file), "acme/widgets#7", "--set", "500"]) == 0
    assert json.loads(capsys.readouterr().out) == {"issue": "acme/widgets#7", "watermark": 500}

    assert main(["--quiet", "watermark", "--config", str(config_file), "acme/widgets#7"]) == 0
    assert json.loads(capsys.readouterr().out)["watermark"] == 500


def test_watermark_refuses_to_move_backwards(config_file, capsys):
    main(["--quiet", "watermark", "--config", str(config_file), "acme/widgets#7", "--set", "500"])
    capsys.readouterr()
    assert main(["--quiet", "watermark", "--config", str(config_file), "acme/widgets#7", "--set", "10"]) == 1
    assert "backwards" in capsys.readouterr().err


def test_invalid_issue_reference(config_file, capsys):
    assert main(["--quiet", "watermark", "--config", str(config_file), "widgets"]) == 1
    assert "Invalid issue reference" in capsys.readouterr().err


def test_missing_config_reports_error(tmp_path, capsys):
    assert main(["--quiet", "run", "--once", "--config", str(tmp_path / "missing.yaml")]) == 1
    assert "not found" in capsys.readouterr().err


def test_quiet_env(monkeypatch, tmp_path, capsys):
    monkeypatch.setenv("TRIAGEBOT_QUIET", "1")
    source = tmp_path / "c.md"
    source.write_text("/close\n")
    assert main(["parse", str(source)]) == 0
    out = capsys.readouterr().out
    assert "Performance" not in out
    assert json.loads(out)[0]["name"] == "close"
