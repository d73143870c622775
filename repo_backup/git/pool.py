# -*- coding: utf-8 -*-
"""
===============================================================================
Modulo: pool.py
Descrizione:
    Pool di worker di sincronizzazione con esattamente `worker_count` slot
    concorrenti, basato su `concurrent.futures.ThreadPoolExecutor`.

    Canale richiesta/risposta: `submit(descriptor)` restituisce un
    `Future[SyncOutcome]`; il Future non fallisce mai, l'errore è nel campo
    `SyncOutcome.error`.

    - `free_slots()` indica quanti descrittori possono essere avviati subito:
      l'orchestratore invia solo quando c'è uno slot libero, gli altri
      restano in coda presso di lui.
    - Lo slot viene liberato prima che il Future sia completato, così chi
      riceve l'esito vede già lo slot disponibile.
    - Due descrittori in corso sulla stessa destinazione non sono ammessi:
      il secondo riceve subito un esito `PathInUse`.

Autore: Lorenzo Biosa <lorenzo@biosa-labs.com>
Licenza:
    Questo file è rilasciato secondo i termini della licenza del repository.
===============================================================================
"""

from __future__ import annotations

import contextvars
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import PurePosixPath
from types import TracebackType
from typing import Optional, Protocol, Set, Type

from repo_backup.models import RepositoryDescriptor, SyncOutcome
from repo_backup.utils.structured_logging import get_logger, log_event

from .errors import PathInUse, SyncError

_logger = get_logger(__name__)


class SyncWorker(Protocol):
    """Qualsiasi oggetto in grado di sincronizzare un descrittore (es. `GitSync`)."""

    def sync(self, descriptor: RepositoryDescriptor) -> Optional[str]:
        ...


class SyncPool:
    """
    Pool a capacità fissa di sincronizzazioni indipendenti.

    Args:
        worker: implementazione della singola sync (thread-safe, senza stato condiviso).
        worker_count: numero di slot concorrenti (>= 1).
        logger: logger esplicito.
    """

    def __init__(
        self,
        worker: SyncWorker,
        worker_count: int,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if worker_count < 1:
            raise ValueError("worker_count deve essere almeno 1.")
        self.worker = worker
        self.worker_count = worker_count
        self._logger = logger or _logger
        self._executor = ThreadPoolExecutor(
            max_workers=worker_count, thread_name_prefix="repo-backup-sync"
        )
        self._lock = threading.Lock()
        self._busy = 0
        self._paths: Set[PurePosixPath] = set()
        self._closed = False

    # --------------------------------------------------------------------- #
    # Capacità
    # --------------------------------------------------------------------- #
    def free_slots(self) -> int:
        with self._lock:
            return self.worker_count - self._busy

    def in_flight(self) -> int:
        with self._lock:
            return self._busy

    # --------------------------------------------------------------------- #
    # Richiesta / risposta
    # --------------------------------------------------------------------- #
    def submit(self, descriptor: RepositoryDescriptor) -> "Future[SyncOutcome]":
        """
        Avvia la sync del descrittore.

        Se non ci sono slot liberi la richiesta resta in coda nell'executor
        finché uno slot non si libera.

        Raises:
            RuntimeError: pool già chiuso.
        """
        with self._lock:
            if self._closed:
                raise RuntimeError("SyncPool già chiuso.")
            if descriptor.destination_path in self._paths:
                done: "Future[SyncOutcome]" = Future()
                done.set_result(
                    SyncOutcome(descriptor, error=PathInUse(descriptor.destination_path))
                )
                return done
            self._paths.add(descriptor.destination_path)
            self._busy += 1

        ctx = contextvars.copy_context()
        return self._executor.submit(ctx.run, self._execute, descriptor)

    def _execute(self, descriptor: RepositoryDescriptor) -> SyncOutcome:
        start = time.perf_counter()
        log_event(
            self._logger,
            "sync_start",
            {"repo": descriptor.destination, "url": descriptor.transport_url},
            level=logging.DEBUG,
        )
        try:
            action = self.worker.sync(descriptor)
            outcome = SyncOutcome(
                descriptor,
                action=action,
                duration_ms=(time.perf_counter() - start) * 1000.0,
            )
        except Exception as exc:  # l'esito porta l'errore, il Future non fallisce mai
            error = exc if isinstance(exc, SyncError) else _wrap_unexpected(descriptor, exc)
            outcome = SyncOutcome(
                descriptor,
                error=error,
                duration_ms=(time.perf_counter() - start) * 1000.0,
            )
        finally:
            with self._lock:
                self._busy -= 1
                self._paths.discard(descriptor.destination_path)

        log_event(
            self._logger,
            "sync_finished",
            outcome.as_event(),
            level=logging.DEBUG,
        )
        return outcome

    # --------------------------------------------------------------------- #
    # Ciclo di vita
    # --------------------------------------------------------------------- #
    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            self._closed = True
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "SyncPool":
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        self.shutdown(wait=True)


def _wrap_unexpected(descriptor: RepositoryDescriptor, exc: Exception) -> SyncError:
    err = SyncError(f"Errore inatteso sincronizzando {descriptor.destination}")
    err.__cause__ = exc
    return err
