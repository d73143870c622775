# -*- coding: utf-8 -*-
"""
Autore:        Lorenzo Biosa
Email:         lorenzo@biosa-labs.com
Copyright:
  © 2026 Biosa Labs. Tutti i diritti riservati.

Modulo: tests/test_main.py
Descrizione:
  Test dell'entrypoint CLI: parsing argomenti, errori di configurazione,
  riepilogo JSON su stdout, report errori su stderr ed exit code.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterator, List, Optional

import pytest
from _pytest.monkeypatch import MonkeyPatch

from repo_backup import driver as driver_mod
from repo_backup import main as main_mod
from repo_backup.git import CloneFailed
from repo_backup.models import RepositoryDescriptor
from repo_backup.providers import GitHub, GitLab, Provider
from repo_backup.utils.config import parse_config


class _StaticProvider(Provider):
    def __init__(self, destinations: List[str]) -> None:
        super().__init__("static")
        self.destinations = destinations

    def _discover(self) -> Iterator[RepositoryDescriptor]:
        for dest in self.destinations:
            yield RepositoryDescriptor.of(dest, f"git@example.test:{dest}.git")


class _FakeGitSync:
    """Sostituisce GitSync nel pool di default del Driver."""

    fail = {"static/broken"}

    def __init__(self, root_directory: Path, *, timeout: Optional[float] = None) -> None:
        self.root_directory = root_directory

    def sync(self, descriptor: RepositoryDescriptor) -> str:
        if descriptor.destination in self.fail:
            raise CloneFailed(descriptor.transport_url, self.root_directory / descriptor.destination)
        return "clone"


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch: MonkeyPatch) -> None:
    monkeypatch.setattr(main_mod, "setup_logging", lambda **_kw: None)


def _write_config(tmp_path: Path, extra: str = "") -> Path:
    path = tmp_path / "repo-backup.toml"
    path.write_text(f'[general]\nroot_directory = "backup"\nworker_count = 2\n{extra}', encoding="utf-8")
    return path


def test_parser_defaults() -> None:
    args = main_mod.build_parser().parse_args(["-vv"])
    assert args.verbose == 2
    assert args.config == "~/.repo-backup.toml"
    assert args.example_config is False


def test_example_config(capsys: pytest.CaptureFixture[str]) -> None:
    assert main_mod.main(["--example-config"]) == 0
    assert "[general]" in capsys.readouterr().out


def test_missing_config_file(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code = main_mod.main(["-c", str(tmp_path / "missing.toml")])

    err = capsys.readouterr().err
    assert code == 1
    assert "Error: Impossibile leggere" in err
    assert "\tCaused By:" in err


def test_invalid_config(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    path = tmp_path / "bad.toml"
    path.write_text("[general]\nworker_count = 2\n", encoding="utf-8")

    assert main_mod.main(["-c", str(path)]) == 1
    assert "root_directory" in capsys.readouterr().err


def test_run_with_failures(
    tmp_path: Path, monkeypatch: MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setattr(driver_mod, "GitSync", _FakeGitSync)
    monkeypatch.setattr(
        main_mod,
        "providers_registry",
        lambda _cfg: [_StaticProvider(["static/ok", "static/broken"])],
    )

    code = main_mod.main(["-c", str(_write_config(tmp_path))])

    out, err = capsys.readouterr()
    summary: Any = json.loads(out)["summary"]
    assert code == 1
    assert summary["statistics"] == {"total_seen": 2, "ignored": 0, "succeeded": 1, "failed": 1}
    assert "static/broken (git@example.test:static/broken.git)" in err


def test_driver_events_use_module_loggers(
    tmp_path: Path, monkeypatch: MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    monkeypatch.setattr(driver_mod, "GitSync", _FakeGitSync)
    monkeypatch.setattr(
        main_mod, "providers_registry", lambda _cfg: [_StaticProvider(["static/ok"])]
    )

    with caplog.at_level(logging.INFO, logger="repo_backup"):
        assert main_mod.main(["-c", str(_write_config(tmp_path))]) == 0

    by_event = {
        json.loads(r.getMessage())["event"]: r.name
        for r in caplog.records
        if r.getMessage().startswith("{")
    }
    assert by_event["run_complete"] == "repo_backup.driver"
    assert by_event["repository_synced"] == "repo_backup.driver"
    assert by_event["run_start"] == "repo_backup.driver"


def test_run_aborted_by_threshold(
    tmp_path: Path, monkeypatch: MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setattr(driver_mod, "GitSync", _FakeGitSync)
    monkeypatch.setattr(
        main_mod, "providers_registry", lambda _cfg: [_StaticProvider(["static/broken"])]
    )

    code = main_mod.main(["-c", str(_write_config(tmp_path, "error_threshold = 1\n"))])

    out, err = capsys.readouterr()
    assert code == 2
    assert json.loads(out)["summary"]["aborted"] is True
    assert "Interrotto" in err


def test_providers_registry() -> None:
    text = (
        '[general]\nroot_directory = "/srv"\n'
        '[github]\napi_key = "ghp_x"\n'
        '[gitlab]\napi_key = "glpat-x"\n'
    )
    providers = main_mod.providers_registry(parse_config(text, env={}))

    assert [type(p) for p in providers] == [GitHub, GitLab]
    assert [p.name for p in providers] == ["github", "gitlab"]
