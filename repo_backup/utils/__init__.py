# -*- coding: utf-8 -*-
"""
===============================================================================
Pacchetto: repo_backup.utils
Descrizione:
    Utilità comuni riutilizzabili:
      - Logging universale (setup/get_logger/log_event).
      - Configurazione TOML (GeneralConfig, provider, load_config).
      - HTTP client con retry/backoff (vedi http_client.py).

Autore: Lorenzo Biosa <lorenzo@biosa-labs.com>
Copyright:
    © 2026 Biosa Labs. Tutti i diritti riservati.
===============================================================================
"""

from __future__ import annotations

from .config import (
    Config,
    ConfigError,
    GeneralConfig,
    GitHubConfig,
    GitLabConfig,
    load_config,
    parse_config,
)
from .structured_logging import get_logger, log_event, setup_logging

__all__ = [
    "get_logger",
    "setup_logging",
    "log_event",
    "Config",
    "ConfigError",
    "GeneralConfig",
    "GitHubConfig",
    "GitLabConfig",
    "load_config",
    "parse_config",
]
