# -*- coding: utf-8 -*-
"""
===============================================================================
Pacchetto: repo_backup.git
Descrizione:
    Sincronizzazione locale dei repository:
      - GitSync: clone / fetch + fast-forward tramite la CLI git.
      - SyncPool: pool a capacità fissa con canale richiesta/risposta (Future).
      - Eccezioni SyncError per il matching programmatico degli errori.

Autore: Lorenzo Biosa <lorenzo@biosa-labs.com>
Copyright:
    © 2026 Biosa Labs. Tutti i diritti riservati.
===============================================================================
"""

from __future__ import annotations

from .errors import (
    CloneFailed,
    CommandFailed,
    FastForwardFailed,
    FetchFailed,
    NotARepository,
    PathInUse,
    SubmoduleUpdateFailed,
    SyncError,
    UnsavedChanges,
)
from .pool import SyncPool, SyncWorker
from .worker import GitSync

__all__ = [
    "GitSync",
    "SyncPool",
    "SyncWorker",
    "SyncError",
    "CommandFailed",
    "NotARepository",
    "UnsavedChanges",
    "PathInUse",
    "CloneFailed",
    "FetchFailed",
    "FastForwardFailed",
    "SubmoduleUpdateFailed",
]
