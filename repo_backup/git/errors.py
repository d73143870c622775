# -*- coding: utf-8 -*-
"""
===============================================================================
Modulo: errors.py
Descrizione:
    Eccezioni della sincronizzazione git. Tutte locali a un singolo
    repository: registrate come esito, mai propagate oltre l'orchestratore.

    Gerarchia:
      SyncError
        ├── NotARepository       la destinazione esiste ma non è un working tree
        ├── UnsavedChanges       modifiche locali non committate
        ├── PathInUse            un'altra sync sulla stessa destinazione è in corso
        ├── CloneFailed
        ├── FetchFailed
        ├── FastForwardFailed
        └── SubmoduleUpdateFailed
      CommandFailed              errore del sottoprocesso, concatenato come __cause__

Autore: Lorenzo Biosa <lorenzo@biosa-labs.com>
Licenza:
    Questo file è rilasciato secondo i termini della licenza del repository.
===============================================================================
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence


class CommandFailed(Exception):
    """Un comando git è terminato con errore (o non è stato possibile eseguirlo)."""

    def __init__(
        self,
        command: Sequence[str],
        returncode: Optional[int] = None,
        output: str = "",
        reason: Optional[str] = None,
    ) -> None:
        self.command = list(command)
        self.returncode = returncode
        self.output = output
        cmd = " ".join(self.command)
        if reason:
            msg = f"`{cmd}` {reason}"
        elif returncode is not None:
            msg = f"`{cmd}` fallito con codice di uscita {returncode}"
        else:
            msg = f"`{cmd}` fallito"
        last_line = _last_line(output)
        if last_line:
            msg = f"{msg}: {last_line}"
        super().__init__(msg)


class SyncError(Exception):
    """Errore di sincronizzazione di un singolo repository."""


class NotARepository(SyncError):
    def __init__(self, path: Path) -> None:
        super().__init__(f"{path} esiste ma non è un repository git")
        self.path = path


class UnsavedChanges(SyncError):
    def __init__(self, path: Path, count: int) -> None:
        super().__init__(f"{path} contiene {count} modifiche locali non salvate")
        self.path = path
        self.count = count


class PathInUse(SyncError):
    def __init__(self, path: Path) -> None:
        super().__init__(f"{path} è già in sincronizzazione")
        self.path = path


class CloneFailed(SyncError):
    def __init__(self, url: str, path: Path) -> None:
        super().__init__(f"Clone di {url} in {path} fallito")
        self.url = url
        self.path = path


class FetchFailed(SyncError):
    def __init__(self, path: Path) -> None:
        super().__init__(f"Fetch dei remote di {path} fallito")
        self.path = path


class FastForwardFailed(SyncError):
    def __init__(self, path: Path) -> None:
        super().__init__(f"Merge fast-forward in {path} non possibile")
        self.path = path


class SubmoduleUpdateFailed(SyncError):
    def __init__(self, path: Path) -> None:
        super().__init__(f"Aggiornamento dei submodule di {path} fallito")
        self.path = path


def _last_line(output: str) -> str:
    lines = [line.strip() for line in output.splitlines() if line.strip()]
    return lines[-1] if lines else ""
