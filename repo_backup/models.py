# -*- coding: utf-8 -*-
"""
===============================================================================
Modulo: models.py
Descrizione:
    Strutture dati condivise tra provider, worker git e orchestratore:
      - RepositoryDescriptor: coppia {destinazione relativa, URL di trasporto}
        prodotta dai provider. Immutabile, confrontabile per valore.
      - SyncOutcome: esito di una singola sincronizzazione (Ok | Err).

Autore: Lorenzo Biosa <lorenzo@biosa-labs.com>
Licenza:
    Questo file è rilasciato secondo i termini della licenza del repository.
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any, Dict, Optional, Union


def normalize_destination(value: Union[str, PurePosixPath]) -> PurePosixPath:
    """
    Normalizza un percorso di destinazione relativo (es. "github/owner/name").

    Separatori Windows e slash iniziali/finali vengono ignorati; i segmenti
    "." vengono scartati. I segmenti ".." non sono ammessi.

    Raises:
        ValueError: percorso vuoto o che risale sopra la radice di backup.
    """
    raw = str(value).replace("\\", "/").strip().strip("/")
    parts = [p for p in raw.split("/") if p and p != "."]
    if not parts:
        raise ValueError(f"Destinazione non valida: {value!r}")
    if ".." in parts:
        raise ValueError(f"Destinazione fuori dalla radice di backup: {value!r}")
    return PurePosixPath(*parts)


@dataclass(frozen=True)
class RepositoryDescriptor:
    """
    Repository da sincronizzare.

    Attributi:
        destination_path: percorso relativo alla root di backup
            (es. "github/octocat/hello-world").
        transport_url: URL di clone (ssh o https).
    """

    destination_path: PurePosixPath
    transport_url: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "destination_path", normalize_destination(self.destination_path))
        if not isinstance(self.transport_url, str):
            raise ValueError(
                f"transport_url non valido per {self.destination_path}: {self.transport_url!r}"
            )
        if not self.transport_url.strip():
            raise ValueError(f"transport_url vuoto per {self.destination_path}")

    @classmethod
    def of(cls, destination: str, url: str) -> "RepositoryDescriptor":
        return cls(PurePosixPath(destination), url)

    @property
    def destination(self) -> str:
        return self.destination_path.as_posix()

    def __str__(self) -> str:
        return f"{self.destination} ({self.transport_url})"


@dataclass(frozen=True)
class SyncOutcome:
    """
    Esito di una sincronizzazione. Prodotto una volta per descrittore
    inviato al pool, consumato una volta dall'orchestratore.
    """

    descriptor: RepositoryDescriptor
    error: Optional[BaseException] = None
    action: Optional[str] = None  # "clone" | "update"
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None

    def as_event(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "repo": self.descriptor.destination,
            "url": self.descriptor.transport_url,
            "ok": self.ok,
            "action": self.action,
            "duration_ms": round(self.duration_ms, 2),
        }
        if self.error is not None:
            payload["error_type"] = type(self.error).__name__
            payload["error_message"] = str(self.error)
        return payload
