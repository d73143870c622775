# -*- coding: utf-8 -*-
"""
Autore:        Lorenzo Biosa
Email:         lorenzo@biosa-labs.com
Copyright:
  © 2026 Biosa Labs. Tutti i diritti riservati.

Modulo: main.py
Descrizione:
  Entrypoint CLI di repo-backup:
    repo-backup [-v|--verbose]... [-c|--config PATH] [--example-config]

  - Carica la configurazione TOML (default: ~/.repo-backup.toml).
  - Registra i provider configurati (GitHub, GitLab).
  - Esegue il Driver e stampa:
      * su stdout un riepilogo JSON delle statistiche;
      * su stderr il report degli errori (una riga per errore più la catena
        di cause indentata, mai uno stack trace).

  Exit code:
    0  tutti i repository sincronizzati;
    1  completato con errori, oppure errore di avvio/configurazione;
    2  interrotto per superamento della soglia di errori.

  Osservabilità:
    - Verbosità: 0..3+ `-v` → WARNING/INFO/DEBUG/TRACE (default: LOG_LEVEL o WARNING).
    - JSON strutturato (default) o plain text (LOG_JSON=false).
    - Nessun log di segreti (token).

Licenza:
  Questo file è rilasciato secondo i termini della licenza del repository.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from typing import List, Optional, Sequence

from repo_backup.driver import Driver, ExitCode
from repo_backup.providers import GitHub, GitLab, Provider
from repo_backup.report import format_error_chain
from repo_backup.utils.config import (
    DEFAULT_CONFIG_PATH,
    Config,
    ConfigError,
    example_config,
    load_config,
)
from repo_backup.utils.structured_logging import (
    get_logger,
    log_event,
    request_id_context,
    setup_logging,
    verbosity_to_level,
)

_logger = logging.getLogger(__name__)


# =============================================================================
# Provider registry
# =============================================================================
def providers_registry(config: Config) -> List[Provider]:
    """Istanzia un provider per ogni sezione presente nella configurazione."""
    providers: List[Provider] = []
    if config.github is not None:
        providers.append(GitHub(config.github))
    if config.gitlab is not None:
        providers.append(GitLab(config.gitlab))
    return providers


# =============================================================================
# Parser CLI
# =============================================================================
def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="repo-backup",
        description="Scopre i repository su GitHub/GitLab e ne mantiene una copia locale.",
    )
    p.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Aumenta la verbosità (-v info, -vv debug, -vvv trace)",
    )
    p.add_argument(
        "-c",
        "--config",
        default=DEFAULT_CONFIG_PATH,
        help=f"File di configurazione TOML (default: {DEFAULT_CONFIG_PATH})",
    )
    p.add_argument(
        "--example-config",
        action="store_true",
        help="Stampa un file di configurazione d'esempio ed esce",
    )
    return p


def _log_level(verbosity: int) -> Optional[str]:
    # Senza -v vale LOG_LEVEL (se impostato), altrimenti WARNING
    if verbosity == 0 and os.environ.get("LOG_LEVEL"):
        return None
    return verbosity_to_level(verbosity)


# =============================================================================
# Main
# =============================================================================
def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.example_config:
        sys.stdout.write(example_config())
        return 0

    setup_logging(level=_log_level(args.verbose), json_mode=None, console=True)
    logger = get_logger(__name__)

    with request_id_context():
        log_event(
            logger,
            "cli_invocation",
            {"config": args.config, "verbosity": args.verbose},
            level=logging.DEBUG,
        )
        try:
            config = load_config(args.config)
        except ConfigError as exc:
            log_event(
                logger,
                "cli_config_error",
                {"config": args.config, "error_chain": format_error_chain(exc, indent="")},
                level=logging.ERROR,
            )
            for line in format_error_chain(exc):
                sys.stderr.write(line + "\n")
            return int(ExitCode.COMPLETED_WITH_ERRORS)

        providers = providers_registry(config)
        if not providers:
            log_event(
                logger,
                "cli_no_providers",
                {"config": args.config},
                level=logging.WARNING,
            )

        driver = Driver(config.general)
        for provider in providers:
            driver.register(provider)
        report = driver.run()

        print(json.dumps({"summary": report.summary()}, ensure_ascii=False))
        report.failures.display(sys.stderr)
        if report.aborted:
            sys.stderr.write(
                f"Interrotto: raggiunta la soglia di {config.general.error_threshold} errori "
                f"({report.abandoned} repository non avviati).\n"
            )
        return int(report.exit_code)


if __name__ == "__main__":
    raise SystemExit(main())
