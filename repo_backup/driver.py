# -*- coding: utf-8 -*-
"""
===============================================================================
Modulo: driver.py
Descrizione:
    Orchestratore di discovery e sincronizzazione.

    Flusso:
        Config → [Provider, ...] → stream unificato di descrittori
               → filtro blacklist → SyncPool → esito → Statistics
               → (continua | stop)

    Modello di concorrenza:
      - Un thread di discovery per provider: i provider lenti non bloccano
        quelli veloci. Ogni thread pubblica eventi su una `queue.Queue`.
      - Gli esiti delle sync arrivano sulla stessa coda (done-callback del
        Future restituito dal pool).
      - Un solo ciclo (il thread chiamante di `run()`) consuma gli eventi e
        muta `Statistics`: nessun lock sulle statistiche, nessun conteggio
        perso o doppio.
      - L'invio al pool avviene solo se c'è uno slot libero; i descrittori in
        eccesso attendono nella coda interna dell'orchestratore.

    Stati: IDLE → DISCOVERING → DRAINING → STOPPED.

    Soglia errori (`error_threshold > 0 and failed >= error_threshold`):
      - i thread di discovery vengono segnalati di fermarsi;
      - i descrittori in attesa vengono abbandonati (e contati nel log);
      - le sync già avviate vengono attese e il loro esito registrato;
      - il controllo di consistenza finale non viene eseguito;
      - exit code ABORTED.

    A fine run i thread di discovery vengono attesi per al massimo
    DISCOVERY_JOIN_TIMEOUT_SECONDS. Un provider bloccato in una chiamata che
    non controlla lo stop (es. attesa del reset del rate-limit) resta in
    esecuzione come thread daemon: viene registrato `discovery_threads_detached`
    e i suoi eventi successivi non vengono più letti.

Autore: Lorenzo Biosa <lorenzo@biosa-labs.com>
Copyright:
    © 2026 Biosa Labs. Tutti i diritti riservati.
Licenza:
    Questo file è rilasciato secondo i termini della licenza del repository.
===============================================================================
"""

from __future__ import annotations

import contextvars
import enum
import logging
import queue
import threading
import time
from collections import deque
from concurrent.futures import Future
from dataclasses import asdict, dataclass
from typing import Any, Deque, Dict, List, Optional, Union

from repo_backup.git import GitSync, SyncPool
from repo_backup.models import RepositoryDescriptor, SyncOutcome
from repo_backup.providers.base import Provider
from repo_backup.report import UpdateFailure, format_error_chain
from repo_backup.utils.config import GeneralConfig
from repo_backup.utils.structured_logging import get_logger, log_event

_logger = get_logger(__name__)

# Attesa massima complessiva dei thread di discovery a fine run
DISCOVERY_JOIN_TIMEOUT_SECONDS = 5.0


class ExitCode(enum.IntEnum):
    SUCCESS = 0
    COMPLETED_WITH_ERRORS = 1
    ABORTED = 2


class DriverState(enum.Enum):
    IDLE = "idle"
    DISCOVERING = "discovering"
    DRAINING = "draining"
    STOPPED = "stopped"


@dataclass
class Statistics:
    """Contatori del run. Mutati solo dal ciclo dell'orchestratore."""

    total_seen: int = 0
    ignored: int = 0
    succeeded: int = 0
    failed: int = 0

    def is_consistent(self) -> bool:
        return self.total_seen == self.ignored + self.succeeded + self.failed

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass
class RunReport:
    """Risultato di `Driver.run()`."""

    exit_code: ExitCode
    statistics: Statistics
    failures: UpdateFailure
    aborted: bool = False
    abandoned: int = 0

    def summary(self) -> Dict[str, Any]:
        return {
            "exit_code": int(self.exit_code),
            "aborted": self.aborted,
            "abandoned": self.abandoned,
            "statistics": self.statistics.as_dict(),
        }


# =============================================================================
# Eventi del ciclo principale
# =============================================================================
@dataclass(frozen=True)
class _Discovered:
    provider: str
    descriptor: RepositoryDescriptor


@dataclass(frozen=True)
class _DiscoveryFinished:
    provider: str
    error: Optional[BaseException] = None


@dataclass(frozen=True)
class _Synced:
    outcome: SyncOutcome


_Event = Union[_Discovered, _DiscoveryFinished, _Synced]


# =============================================================================
# Driver
# =============================================================================
class Driver:
    """
    Orchestratore di un singolo run.

    Args:
        general: impostazioni generali (root, worker_count, soglia, blacklist).
        pool: pool di sync da usare; se assente ne viene creato uno con
            `GitSync` e `worker_count` slot, chiuso a fine run.
        logger: logger esplicito.

    Esempio:
        >>> driver = Driver(config.general).register(GitHub(config.github))
        >>> report = driver.run()
    """

    def __init__(
        self,
        general: GeneralConfig,
        pool: Optional[SyncPool] = None,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.general = general
        self._pool = pool
        self._logger = logger or _logger
        self._providers: List[Provider] = []
        self.state = DriverState.IDLE

    def register(self, provider: Provider) -> "Driver":
        if self.state is not DriverState.IDLE:
            raise RuntimeError("Impossibile registrare provider dopo l'avvio del run.")
        self._providers.append(provider)
        return self

    @property
    def providers(self) -> List[Provider]:
        return list(self._providers)

    def _build_pool(self) -> SyncPool:
        worker = GitSync(self.general.root_directory, timeout=self.general.sync_timeout)
        return SyncPool(worker, self.general.worker_count)

    # --------------------------------------------------------------------- #
    # Run
    # --------------------------------------------------------------------- #
    def run(self) -> RunReport:
        """
        Esegue discovery e sincronizzazione fino al completamento o all'abort.

        Raises:
            RuntimeError: se il driver è già stato eseguito.
        """
        if self.state is not DriverState.IDLE:
            raise RuntimeError("Driver già eseguito: crearne uno nuovo per un altro run.")

        owns_pool = self._pool is None
        pool = self._pool if self._pool is not None else self._build_pool()
        try:
            return self._run(pool)
        finally:
            if owns_pool:
                pool.shutdown(wait=True)

    def _run(self, pool: SyncPool) -> RunReport:
        events: "queue.Queue[_Event]" = queue.Queue()
        stop = threading.Event()
        stats = Statistics()
        failures = UpdateFailure()
        pending: Deque[RepositoryDescriptor] = deque()
        start = time.perf_counter()

        log_event(
            self._logger,
            "run_start",
            {
                "providers": [p.name for p in self._providers],
                "root_directory": str(self.general.root_directory),
                "worker_count": pool.worker_count,
                "error_threshold": self.general.error_threshold,
                "blacklist_count": len(self.general.blacklist),
            },
        )

        self.state = DriverState.DISCOVERING
        threads: List[threading.Thread] = []
        for provider in self._providers:
            ctx = contextvars.copy_context()
            thread = threading.Thread(
                target=ctx.run,
                args=(self._discover, provider, events, stop),
                name=f"repo-backup-discovery-{provider.name}",
                daemon=True,
            )
            thread.start()
            threads.append(thread)

        active = len(self._providers)
        if active == 0:
            self.state = DriverState.DRAINING
        in_flight = 0
        aborted = False
        abandoned = 0

        while True:
            while not aborted and pending and in_flight < pool.worker_count:
                self._dispatch(pool, pending.popleft(), events)
                in_flight += 1

            if in_flight == 0 and (aborted or (active == 0 and not pending)):
                break

            event = events.get()

            if isinstance(event, _Discovered):
                if aborted:
                    continue
                stats.total_seen += 1
                if self.general.is_blacklisted(event.descriptor):
                    stats.ignored += 1
                    log_event(
                        self._logger,
                        "repository_ignored",
                        {"provider": event.provider, "repo": event.descriptor.destination},
                        level=logging.DEBUG,
                    )
                else:
                    pending.append(event.descriptor)

            elif isinstance(event, _DiscoveryFinished):
                active -= 1
                if event.error is not None:
                    failures.add_discovery(event.provider, event.error)
                    self._log_error_chain(
                        "provider_error", {"provider": event.provider}, event.error
                    )
                if active == 0 and not aborted:
                    self.state = DriverState.DRAINING
                    log_event(
                        self._logger,
                        "discovery_complete",
                        {"total_seen": stats.total_seen, "pending": len(pending)},
                        level=logging.DEBUG,
                    )

            else:
                in_flight -= 1
                outcome = event.outcome
                if outcome.error is None:
                    stats.succeeded += 1
                    log_event(self._logger, "repository_synced", outcome.as_event())
                    continue
                stats.failed += 1
                failures.add(outcome.descriptor, outcome.error)
                self._log_error_chain(
                    "repository_sync_failed",
                    {"repo": outcome.descriptor.destination, "url": outcome.descriptor.transport_url},
                    outcome.error,
                )
                if not aborted and self._threshold_reached(stats):
                    aborted = True
                    stop.set()
                    abandoned = len(pending)
                    pending.clear()
                    self.state = DriverState.DRAINING
                    log_event(
                        self._logger,
                        "error_threshold_reached",
                        {
                            "failed": stats.failed,
                            "error_threshold": self.general.error_threshold,
                            "abandoned": abandoned,
                            "in_flight": in_flight,
                        },
                        level=logging.ERROR,
                    )

        stop.set()
        self._join_discovery(threads)
        self.state = DriverState.STOPPED

        if aborted:
            exit_code = ExitCode.ABORTED
        else:
            if not stats.is_consistent():
                log_event(
                    self._logger,
                    "statistics_inconsistent",
                    stats.as_dict(),
                    level=logging.ERROR,
                )
            exit_code = ExitCode.COMPLETED_WITH_ERRORS if stats.failed else ExitCode.SUCCESS

        log_event(
            self._logger,
            "run_complete",
            {
                **stats.as_dict(),
                "exit_code": int(exit_code),
                "aborted": aborted,
                "abandoned": abandoned,
                "discovery_errors": len(failures.discovery_errors),
                "duration_ms": round((time.perf_counter() - start) * 1000.0, 2),
            },
            level=logging.WARNING if exit_code else logging.INFO,
        )
        return RunReport(
            exit_code=exit_code,
            statistics=stats,
            failures=failures,
            aborted=aborted,
            abandoned=abandoned,
        )

    # --------------------------------------------------------------------- #
    # Helper
    # --------------------------------------------------------------------- #
    def _threshold_reached(self, stats: Statistics) -> bool:
        threshold = self.general.error_threshold
        return threshold > 0 and stats.failed >= threshold

    def _dispatch(
        self,
        pool: SyncPool,
        descriptor: RepositoryDescriptor,
        events: "queue.Queue[_Event]",
    ) -> None:
        log_event(
            self._logger,
            "repository_dispatched",
            {"repo": descriptor.destination},
            level=logging.DEBUG,
        )
        future = pool.submit(descriptor)

        def _done(fut: "Future[SyncOutcome]") -> None:
            events.put(_Synced(fut.result()))

        future.add_done_callback(_done)

    def _discover(
        self,
        provider: Provider,
        events: "queue.Queue[_Event]",
        stop: threading.Event,
    ) -> None:
        error: Optional[BaseException] = None
        try:
            for descriptor in provider.repositories():
                if stop.is_set():
                    break
                events.put(_Discovered(provider.name, descriptor))
        except Exception as exc:  # riportato come evento, mai propagato dal thread
            error = exc
        finally:
            events.put(_DiscoveryFinished(provider.name, error))

    def _join_discovery(self, threads: List[threading.Thread]) -> None:
        deadline = time.monotonic() + DISCOVERY_JOIN_TIMEOUT_SECONDS
        for thread in threads:
            thread.join(timeout=max(0.0, deadline - time.monotonic()))
        detached = [t.name for t in threads if t.is_alive()]
        if detached:
            log_event(
                self._logger,
                "discovery_threads_detached",
                {"threads": detached, "timeout": DISCOVERY_JOIN_TIMEOUT_SECONDS},
                level=logging.WARNING,
            )

    def _log_error_chain(
        self, event: str, payload: Dict[str, Any], error: BaseException
    ) -> None:
        log_event(
            self._logger,
            event,
            {
                **payload,
                "error_type": type(error).__name__,
                "error_chain": format_error_chain(error, indent=""),
            },
            level=logging.ERROR,
        )
