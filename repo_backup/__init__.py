# -*- coding: utf-8 -*-
"""
===============================================================================
Pacchetto: repo_backup
Descrizione:
    Pacchetto principale di repo-backup. Contiene moduli per:
      - Provider GitHub/GitLab (discovery paginata dei repository).
      - Sincronizzazione git concorrente (clone / fetch + fast-forward).
      - Orchestratore del run (blacklist, statistiche, soglia errori).
      - Utilità comuni (config, logging, HTTP).
      - Entrypoint CLI (vedi repo_backup/main.py).

Note:
    Questo __init__ definisce metadati e versione del pacchetto. Evitare import
    pesanti o esecuzione di codice con side-effect.

Autore: Lorenzo Biosa <lorenzo@biosa-labs.com>
Copyright:
    © 2026 Biosa Labs. Tutti i diritti riservati.
Licenza:
    Vedi LICENSE alla radice del repository.
===============================================================================
"""

from __future__ import annotations

# Metadati pacchetto
__title__ = "repo-backup"
__author__ = "Lorenzo Biosa"
__email__ = "lorenzo@biosa-labs.com"
__license__ = "Repository License"
__version__ = "0.1.0"

__all__ = [
    "__title__",
    "__author__",
    "__email__",
    "__license__",
    "__version__",
]
