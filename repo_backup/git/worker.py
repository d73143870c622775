# -*- coding: utf-8 -*-
"""
===============================================================================
Modulo: worker.py
Descrizione:
    Worker di sincronizzazione git basato sulla CLI `git`.

    Per ogni descrittore:
      1) local_path = root_directory / destination_path
      2) se local_path non esiste: clone (submodule ricorsivi) del transport_url;
      3) se esiste: verifica che sia un working tree pulito, poi
         fetch --all --prune --tags, merge --ff-only e aggiornamento submodule.

    Ogni errore di sottoprocesso è incapsulato in una `SyncError` che indica
    il passo fallito, con il `CommandFailed` originale come causa.

    Il worker non ha stato mutabile condiviso: più sync possono girare in
    parallelo su destinazioni diverse.

Autore: Lorenzo Biosa <lorenzo@biosa-labs.com>
Licenza:
    Questo file è rilasciato secondo i termini della licenza del repository.
===============================================================================
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from repo_backup.models import RepositoryDescriptor
from repo_backup.utils.structured_logging import TRACE, get_logger, log_event, scoped_context

from .errors import (
    CloneFailed,
    CommandFailed,
    FastForwardFailed,
    FetchFailed,
    NotARepository,
    SubmoduleUpdateFailed,
    UnsavedChanges,
)

# Nessun prompt interattivo: credenziali mancanti devono fallire subito
GIT_ENV: Dict[str, str] = {
    "GIT_TERMINAL_PROMPT": "0",
    "GIT_ASKPASS": "",
    "LC_ALL": "C",
}

ACTION_CLONE = "clone"
ACTION_UPDATE = "update"

_logger = get_logger(__name__)


class GitSync:
    """
    Esegue clone/aggiornamento di un repository sotto `root_directory`.

    Args:
        root_directory: radice di backup.
        timeout: timeout in secondi per ogni comando git (None = nessuno).
        git: eseguibile git da usare.
        logger: logger esplicito (default: logger di modulo).
    """

    def __init__(
        self,
        root_directory: Path,
        *,
        timeout: Optional[float] = None,
        git: str = "git",
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.root_directory = Path(root_directory)
        self.timeout = timeout
        self.git = git
        self._logger = logger or _logger

    def local_path(self, descriptor: RepositoryDescriptor) -> Path:
        return self.root_directory.joinpath(*descriptor.destination_path.parts)

    def sync(self, descriptor: RepositoryDescriptor) -> str:
        """
        Sincronizza il repository e restituisce l'azione eseguita ("clone" | "update").

        Raises:
            SyncError: passo fallito (con causa concatenata).
        """
        path = self.local_path(descriptor)
        with scoped_context(repo=descriptor.destination):
            if not path.exists():
                self.clone(descriptor.transport_url, path)
                return ACTION_CLONE
            self.update(path)
            return ACTION_UPDATE

    # --------------------------------------------------------------------- #
    # Clone
    # --------------------------------------------------------------------- #
    def clone(self, url: str, path: Path) -> None:
        log_event(self._logger, "git_clone", {"url": url, "path": str(path)})
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise CloneFailed(url, path) from exc
        existed = path.exists()
        try:
            self._run(
                ["clone", "--recurse-submodules", "--", url, str(path)],
                cwd=path.parent,
            )
        except CommandFailed as exc:
            # Un clone interrotto (es. timeout) non deve restare come repository esistente
            if not existed and path.exists():
                log_event(
                    self._logger,
                    "git_clone_cleanup",
                    {"path": str(path)},
                    level=logging.DEBUG,
                )
                shutil.rmtree(path, ignore_errors=True)
            raise CloneFailed(url, path) from exc

    # --------------------------------------------------------------------- #
    # Aggiornamento
    # --------------------------------------------------------------------- #
    def update(self, path: Path) -> None:
        self.ensure_repository(path)

        changes = self.uncommitted_changes(path)
        if changes:
            raise UnsavedChanges(path, changes)

        log_event(self._logger, "git_fetch", {"path": str(path)})
        try:
            self._run(["fetch", "--all", "--prune", "--tags"], cwd=path)
        except CommandFailed as exc:
            raise FetchFailed(path) from exc

        if self.has_upstream(path):
            try:
                self._run(["merge", "--ff-only"], cwd=path)
            except CommandFailed as exc:
                raise FastForwardFailed(path) from exc
        else:
            log_event(
                self._logger,
                "git_merge_skipped",
                {"path": str(path), "reason": "nessun upstream per il branch corrente"},
                level=logging.DEBUG,
            )

        if (path / ".gitmodules").exists():
            try:
                self._run(["submodule", "update", "--init", "--recursive"], cwd=path)
            except CommandFailed as exc:
                raise SubmoduleUpdateFailed(path) from exc

    def ensure_repository(self, path: Path) -> None:
        """
        Verifica che `path` sia la radice di un working tree git.

        Raises:
            NotARepository: path non directory, non repository, o sottodirectory
                di un altro repository.
        """
        if not path.is_dir():
            raise NotARepository(path)
        try:
            toplevel = self._run(["rev-parse", "--show-toplevel"], cwd=path).strip()
        except CommandFailed as exc:
            raise NotARepository(path) from exc
        if not toplevel or Path(toplevel).resolve() != path.resolve():
            raise NotARepository(path)

    def uncommitted_changes(self, path: Path) -> int:
        """Numero di file tracciati con modifiche non committate."""
        try:
            out = self._run(["status", "--porcelain", "--untracked-files=no"], cwd=path)
        except CommandFailed as exc:
            raise NotARepository(path) from exc
        return len([line for line in out.splitlines() if line.strip()])

    def has_upstream(self, path: Path) -> bool:
        try:
            self._run(
                ["rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{upstream}"],
                cwd=path,
            )
        except CommandFailed:
            return False
        return True

    # --------------------------------------------------------------------- #
    # Esecuzione comandi
    # --------------------------------------------------------------------- #
    def _run(self, args: Sequence[str], *, cwd: Path) -> str:
        """
        Esegue `git <args>` in `cwd` e restituisce lo stdout.

        Raises:
            CommandFailed: eseguibile assente, timeout o codice di uscita non zero.
        """
        command: List[str] = [self.git, *args]
        log_event(
            self._logger,
            "git_command",
            {"command": " ".join(command), "cwd": str(cwd)},
            level=TRACE,
        )
        try:
            proc = subprocess.run(  # noqa: S603  # git con argomenti espliciti
                command,
                cwd=str(cwd),
                capture_output=True,
                text=True,
                timeout=self.timeout,
                env={**os.environ, **GIT_ENV},
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise CommandFailed(command, reason=f"scaduto dopo {self.timeout}s") from exc
        except OSError as exc:
            raise CommandFailed(
                command, reason=f"non eseguibile. {self.git} è installato?"
            ) from exc

        if proc.returncode != 0:
            log_event(
                self._logger,
                "git_command_failed",
                {
                    "command": " ".join(command),
                    "cwd": str(cwd),
                    "returncode": proc.returncode,
                    "stderr": proc.stderr.strip(),
                    "stdout": proc.stdout.strip(),
                },
                level=logging.DEBUG,
            )
            raise CommandFailed(command, proc.returncode, proc.stderr or proc.stdout)
        return proc.stdout
