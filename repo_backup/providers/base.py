# -*- coding: utf-8 -*-
"""
===============================================================================
Modulo: base.py
Descrizione:
    Astrazione base per i "provider" (GitHub, GitLab o sorgenti custom):
    ogni provider produce una sequenza lazy di `RepositoryDescriptor`
    paginando una API remota.

Linee guida:
    - Un provider è monouso: `repositories()` può essere consumato una sola
      volta; per ripartire si costruisce un nuovo provider.
    - Un errore a metà sequenza termina la sequenza (gli elementi già emessi
      restano validi) e viene propagato, mai silenziato.
    - Un provider non emette due volte la stessa destinazione in un run.
    - Logging strutturato tramite `repo_backup.utils.structured_logging`.

Autore: Lorenzo Biosa <lorenzo@biosa-labs.com>
Licenza:
    Questo file è rilasciato secondo i termini della licenza del repository.
===============================================================================
"""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from pathlib import PurePosixPath
from typing import Iterator, Optional, Set

from repo_backup.models import RepositoryDescriptor
from repo_backup.utils.structured_logging import get_logger, log_event

_logger = get_logger(__name__)


# =============================================================================
# Eccezioni di discovery
# =============================================================================
class FetchError(Exception):
    """Errore durante la scoperta dei repository (terminale per il provider)."""


class NetworkError(FetchError):
    """Errore di rete persistente dopo i retry."""

    def __init__(self, url: str) -> None:
        super().__init__(f"Errore di rete su {url}")
        self.url = url


class BadResponse(FetchError):
    """Il server ha risposto con uno status non 2xx."""

    def __init__(self, status: int, url: str, body: str = "") -> None:
        msg = f"Risposta non valida ({status}) da {url}"
        if body:
            msg = f"{msg}: {body[:200]}"
        super().__init__(msg)
        self.status = status
        self.url = url


class AuthenticationError(BadResponse):
    """Token mancante, non valido o con permessi insufficienti (401/403)."""


class MalformedPage(FetchError):
    """Il corpo di una pagina non è deserializzabile nel formato atteso."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Pagina non valida da {url}: {reason}")
        self.url = url


# =============================================================================
# Provider
# =============================================================================
class Provider(ABC):
    """
    Classe base per i provider.

    Le sottoclassi implementano `_discover()`; i chiamanti usano
    `repositories()`, che aggiunge logging, misura dei tempi, deduplica
    per destinazione e il vincolo di consumo singolo.

    Attributi:
        name (str): Nome leggibile e univoco del provider (es. "github").
    """

    name: str

    def __init__(self, name: str, *, logger: Optional[logging.Logger] = None) -> None:
        if not name.strip():
            raise ValueError("name obbligatorio e non può essere vuoto.")
        self.name = name.strip()
        self._logger = logger or _logger
        self._consumed = False
        self._lock = threading.Lock()

    @abstractmethod
    def _discover(self) -> Iterator[RepositoryDescriptor]:
        """Produce i descrittori nell'ordine della API remota."""

    def repositories(self) -> Iterator[RepositoryDescriptor]:
        """
        Restituisce la sequenza lazy dei repository del provider.

        Raises:
            RuntimeError: se la sequenza è già stata richiesta.
        """
        with self._lock:
            if self._consumed:
                raise RuntimeError(
                    f"Provider '{self.name}' già consumato: crearne uno nuovo per ripartire."
                )
            self._consumed = True
        return self._iterate()

    def _iterate(self) -> Iterator[RepositoryDescriptor]:
        log_event(self._logger, "provider_discovery_start", {"provider": self.name})
        start = time.perf_counter()
        seen: Set[PurePosixPath] = set()
        count = 0
        try:
            for descriptor in self._discover():
                if descriptor.destination_path in seen:
                    log_event(
                        self._logger,
                        "provider_duplicate_skipped",
                        {"provider": self.name, "repo": descriptor.destination},
                        level=logging.DEBUG,
                    )
                    continue
                seen.add(descriptor.destination_path)
                count += 1
                yield descriptor
        except Exception as exc:
            log_event(
                self._logger,
                "provider_discovery_failure",
                {
                    "provider": self.name,
                    "emitted": count,
                    "duration_ms": round((time.perf_counter() - start) * 1000.0, 2),
                    "error_type": type(exc).__name__,
                    "error_message": str(exc),
                },
                level=logging.ERROR,
            )
            raise
        log_event(
            self._logger,
            "provider_discovery_complete",
            {
                "provider": self.name,
                "emitted": count,
                "duration_ms": round((time.perf_counter() - start) * 1000.0, 2),
            },
        )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"
