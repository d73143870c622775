# -*- coding: utf-8 -*-
"""
===============================================================================
Modulo: report.py
Descrizione:
    Aggregazione e visualizzazione degli errori di un run:
      - `format_error_chain`: una riga di riepilogo più una riga indentata
        per ogni causa (`__cause__` / `__context__`), senza stack trace.
      - `UpdateFailure`: coppie (descrittore, errore) delle sync fallite ed
        errori di discovery dei provider, stampati una volta a fine run.

    Questo modulo è solo presentazione: il matching programmatico degli
    errori usa le classi in `repo_backup.git.errors` e
    `repo_backup.providers.base`.

Autore: Lorenzo Biosa <lorenzo@biosa-labs.com>
Licenza:
    Questo file è rilasciato secondo i termini della licenza del repository.
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, List, Optional, TextIO, Tuple

from repo_backup.models import RepositoryDescriptor


def iter_causes(exc: BaseException) -> Iterator[BaseException]:
    """Itera sulle cause di `exc` (esclusa `exc`), dalla più vicina alla più remota."""
    seen = {id(exc)}
    cause: Optional[BaseException] = exc.__cause__ or exc.__context__
    while cause is not None and id(cause) not in seen:
        seen.add(id(cause))
        yield cause
        cause = cause.__cause__ or cause.__context__


def format_error_chain(exc: BaseException, *, indent: str = "\t") -> List[str]:
    """
    Righe di presentazione per un errore e la sua catena di cause.

    Esempio:
        Error: Clone di git@github.com:o/r.git in /srv/github/o/r fallito
        \tCaused By: `git clone ...` fallito con codice di uscita 128: fatal: ...
    """
    lines = [f"Error: {exc}"]
    for cause in iter_causes(exc):
        lines.append(f"{indent}Caused By: {cause}")
    return lines


def _list_failures() -> List[Tuple[RepositoryDescriptor, BaseException]]:
    return []


def _list_discovery() -> List[Tuple[str, BaseException]]:
    return []


@dataclass
class UpdateFailure:
    """Errori raccolti durante un run."""

    failures: List[Tuple[RepositoryDescriptor, BaseException]] = field(
        default_factory=_list_failures
    )
    discovery_errors: List[Tuple[str, BaseException]] = field(default_factory=_list_discovery)

    def add(self, descriptor: RepositoryDescriptor, error: BaseException) -> None:
        self.failures.append((descriptor, error))

    def add_discovery(self, provider: str, error: BaseException) -> None:
        self.discovery_errors.append((provider, error))

    def __bool__(self) -> bool:
        return bool(self.failures or self.discovery_errors)

    def __len__(self) -> int:
        return len(self.failures) + len(self.discovery_errors)

    def lines(self) -> List[str]:
        out: List[str] = []
        if self.failures:
            out.append(f"{len(self.failures)} repository non sincronizzati:")
            for descriptor, error in self.failures:
                out.append(f"{descriptor.destination} ({descriptor.transport_url})")
                out.extend(f"\t{line}" for line in format_error_chain(error))
        if self.discovery_errors:
            out.append(f"{len(self.discovery_errors)} provider interrotti:")
            for provider, error in self.discovery_errors:
                out.append(provider)
                out.extend(f"\t{line}" for line in format_error_chain(error))
        return out

    def display(self, stream: TextIO) -> None:
        for line in self.lines():
            stream.write(line + "\n")
