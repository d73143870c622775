# -*- coding: utf-8 -*-
"""
Autore:        Lorenzo Biosa
Email:         lorenzo@biosa-labs.com
Copyright:
  © 2026 Biosa Labs. Tutti i diritti riservati.

Modulo: tests/test_report.py
Descrizione:
  Test del report errori: catena di cause indentata, nessuno stack trace.
"""

from __future__ import annotations

import io
from pathlib import Path

from repo_backup.git import CloneFailed, CommandFailed
from repo_backup.models import RepositoryDescriptor
from repo_backup.providers.base import NetworkError
from repo_backup.report import UpdateFailure, format_error_chain


def _clone_failure() -> CloneFailed:
    try:
        try:
            raise CommandFailed(["git", "clone"], 128, "Cloning...\nfatal: repository not found\n")
        except CommandFailed as exc:
            raise CloneFailed("git@x:a/1.git", Path("/srv/a/1")) from exc
    except CloneFailed as err:
        return err


def test_error_chain_lines() -> None:
    lines = format_error_chain(_clone_failure())

    assert lines == [
        "Error: Clone di git@x:a/1.git in /srv/a/1 fallito",
        "\tCaused By: `git clone` fallito con codice di uscita 128: fatal: repository not found",
    ]


def test_error_without_cause() -> None:
    assert format_error_chain(ValueError("boom")) == ["Error: boom"]


def test_implicit_context_is_followed() -> None:
    try:
        try:
            raise OSError("disk full")
        except OSError:
            raise RuntimeError("write failed")
    except RuntimeError as exc:
        lines = format_error_chain(exc, indent="  ")
    assert lines == ["Error: write failed", "  Caused By: disk full"]


def test_update_failure_display() -> None:
    failures = UpdateFailure()
    assert not failures

    failures.add(RepositoryDescriptor.of("a/1", "git@x:a/1.git"), _clone_failure())
    failures.add_discovery("gitlab", NetworkError("https://gitlab.com/api/v4/projects"))
    out = io.StringIO()
    failures.display(out)

    text = out.getvalue()
    assert len(failures) == 2
    assert "a/1 (git@x:a/1.git)" in text
    assert "\t\tCaused By: `git clone`" in text
    assert "gitlab\n\tError: Errore di rete su https://gitlab.com/api/v4/projects" in text
    assert "Traceback" not in text
