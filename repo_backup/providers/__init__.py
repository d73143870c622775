# -*- coding: utf-8 -*-
"""
===============================================================================
Pacchetto: repo_backup.providers
Descrizione:
    Sorgenti di repository (GitHub, GitLab) dietro un'interfaccia comune:
    `Provider.repositories()` produce una sequenza lazy di descrittori.

Autore: Lorenzo Biosa <lorenzo@biosa-labs.com>
Copyright:
    © 2026 Biosa Labs. Tutti i diritti riservati.
===============================================================================
"""

from __future__ import annotations

from .base import (
    AuthenticationError,
    BadResponse,
    FetchError,
    MalformedPage,
    NetworkError,
    Provider,
)
from .github import GitHub
from .gitlab import GitLab
from .pagination import paginated

__all__ = [
    "Provider",
    "GitHub",
    "GitLab",
    "paginated",
    "FetchError",
    "NetworkError",
    "BadResponse",
    "AuthenticationError",
    "MalformedPage",
]
