from __future__ import annotations

from types import SimpleNamespace

import pytest

from triagebot.config import load_config
from triagebot.ledger import EphemeralKVStore, FileKVStore
from triagebot.models import IssueRef
from triagebot.runtime import (
    build_runtime,
    collect_candidates,
    execute_command,
    open_store,
    poll_forever,
    prepare_config,
)


@pytest.fixture
def cfg(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    path = tmp_path / "triagebot.config.yaml"
    path.write_text(
        "database: {path: ledger.json}\n"
        "behavior: {poll_interval_seconds: 3, only_issue: acme/widgets#7}\n"
    )
    return load_config(path)


def test_prepare_config_applies_dry_run(cfg):
    args = SimpleNamespace(config="any.yaml", dry_run=True)
    loaded = prepare_config(args, loader=lambda _path: cfg)
    assert loaded is cfg
    assert cfg.dry_run_default


def test_prepare_config_without_config_attribute():
    assert prepare_config(SimpleNamespace(file="-")) is None


def test_open_store_wraps_for_dry_run(cfg):
    assert isinstance(open_store(cfg), FileKVStore)
    assert isinstance(open_store(cfg, dry_run=True), EphemeralKVStore)


def test_build_runtime_and_only_issue_candidates(cfg):
    rt = build_runtime(cfg)
    assert rt.remote.zenhub is None
    assert rt.bot.only_issue == IssueRef("acme", "widgets", 7)
    assert collect_candidates(rt) == [IssueRef("acme", "widgets", 7)]


def test_poll_forever_sleeps_between_passes(cfg, monkeypatch):
    rt = build_runtime(cfg)
    passes: list[int] = []
    monkeypatch.setattr(rt.bot, "run_pass", lambda refs: passes.append(len(list(refs))) or [])
    sleeps: list[float] = []

    assert poll_forever(rt, sleep=sleeps.append, max_passes=2) == 2
    assert passes == [1, 1]
    assert sleeps == [3.0]


def test_poll_forever_survives_failed_pass(cfg, monkeypatch):
    rt = build_runtime(cfg)

    def boom(_refs):
        raise RuntimeError("ledger unavailable")

    monkeypatch.setattr(rt.bot, "run_pass", boom)
    assert poll_forever(rt, sleep=lambda _s: None, max_passes=1) == 1


def test_execute_command_returns_exit_code():
    assert execute_command(lambda: 3, "demo") == 3
    assert execute_command(lambda: None, "demo") == 0
    with pytest.raises(ValueError):
        execute_command(lambda: (_ for _ in ()).throw(ValueError("x")), "demo")
