# -*- coding: utf-8 -*-
"""
===============================================================================
Modulo: http_client.py
Descrizione:
    Client HTTP condiviso dai provider (GitHub, GitLab):
      - `new_session(headers)`: `requests.Session` con User-Agent, header di
        correlazione (X-Request-ID) e header del provider (Accept, token).
      - `request` / `get`: timeout (connect, read), retry con backoff
        esponenziale su errori di rete e status transitori (429/5xx),
        rispetto di `Retry-After` e attesa del reset del rate-limit.
      - `join_url`: composizione base + percorso API.

    Gli status non attesi non sollevano eccezioni: la `requests.Response`
    torna al chiamante, che decide (vedi `repo_backup.providers.pagination`).
    Solo un errore di rete persistente dopo MAX_RETRIES tentativi propaga
    `requests.RequestException`.

    I token viaggiano solo negli header della sessione e non vengono loggati.

Autore: Lorenzo Biosa <lorenzo@biosa-labs.com>
Copyright:
    © 2026 Biosa Labs. Tutti i diritti riservati.
Licenza:
    Vedi LICENSE alla radice del repository.
===============================================================================
"""

from __future__ import annotations

import logging
import time
from typing import Any, Mapping, Optional, Set, Tuple

import requests

from .structured_logging import TRACE, get_correlation_headers, get_logger, log_event

USER_AGENT = "repo-backup/0.1"

# (connect, read) in secondi
DEFAULT_TIMEOUT: Tuple[float, float] = (10.0, 30.0)

RETRYABLE_STATUS: Set[int] = {429, 500, 502, 503, 504}
MAX_RETRIES = 5
BACKOFF_BASE_SECONDS = 0.5
BACKOFF_MAX_SECONDS = 30.0
# Oltre questa attesa il rate-limit non viene aspettato: la risposta torna al chiamante
MAX_RATE_LIMIT_WAIT_SECONDS = 900

# GitHub usa il prefisso X-, GitLab no
RATE_LIMIT_HEADERS: Tuple[Tuple[str, str], ...] = (
    ("X-RateLimit-Remaining", "X-RateLimit-Reset"),
    ("RateLimit-Remaining", "RateLimit-Reset"),
)

_logger = get_logger(__name__)


def new_session(headers: Optional[Mapping[str, str]] = None) -> requests.Session:
    """Sessione dedicata a un provider (non condivisa tra provider)."""
    sess = requests.Session()
    sess.headers["User-Agent"] = USER_AGENT
    sess.headers.update(get_correlation_headers())
    sess.headers.update(headers or {})
    return sess


def request(
    method: str,
    url: str,
    *,
    session: requests.Session,
    params: Optional[Mapping[str, Any]] = None,
    headers: Optional[Mapping[str, str]] = None,
    timeout: Optional[Tuple[float, float]] = None,
    expected_status: Optional[Set[int]] = None,
    logger: Optional[logging.Logger] = None,
) -> requests.Response:
    """
    Esegue una richiesta con retry.

    Args:
        method: verbo HTTP.
        url: URL assoluto.
        session: sessione del provider (porta con sé l'autenticazione).
        params: query string aggiuntiva.
        headers: header extra per questa richiesta.
        timeout: (connect, read); default DEFAULT_TIMEOUT.
        expected_status: status considerati riusciti; default {200}.
        logger: logger del chiamante.

    Returns:
        L'ultima `requests.Response` ricevuta (anche se lo status non è atteso).

    Raises:
        requests.RequestException: errore di rete dopo MAX_RETRIES retry.
    """
    log = logger or _logger
    verb = method.upper()
    expected = expected_status or {200}

    attempt = 0
    while True:
        attempt += 1
        try:
            resp = session.request(
                method=verb,
                url=url,
                params=params,
                headers=dict(headers or {}),
                timeout=timeout or DEFAULT_TIMEOUT,
            )
        except requests.RequestException as exc:
            if attempt > MAX_RETRIES:
                raise
            _sleep(log, "network_retry", _backoff_seconds(attempt), url, attempt, error=str(exc))
            continue

        log_event(
            log,
            "http_response",
            {"method": verb, "url": url, "status": resp.status_code, "attempt": attempt},
            level=TRACE,
        )

        if resp.status_code in expected:
            _wait_rate_limit_reset(resp, log)
            return resp

        if resp.status_code in RETRYABLE_STATUS and attempt <= MAX_RETRIES:
            delay = _retry_after(resp)
            if delay is None:
                delay = _backoff_seconds(attempt)
            _sleep(log, "http_retry", delay, url, attempt, status=resp.status_code)
            continue

        log_event(
            log,
            "http_unexpected_status",
            {"method": verb, "url": url, "status": resp.status_code},
            level=logging.WARNING,
        )
        return resp


def get(
    url: str,
    *,
    session: requests.Session,
    params: Optional[Mapping[str, Any]] = None,
    headers: Optional[Mapping[str, str]] = None,
    timeout: Optional[Tuple[float, float]] = None,
    logger: Optional[logging.Logger] = None,
) -> requests.Response:
    return request(
        "GET",
        url,
        session=session,
        params=params,
        headers=headers,
        timeout=timeout,
        expected_status={200},
        logger=logger,
    )


def join_url(base: str, path: str) -> str:
    """
    join_url("https://api.github.com/", "/user/repos") -> "https://api.github.com/user/repos"
    Un `path` già assoluto viene restituito invariato.
    """
    if not path:
        raise ValueError("Percorso vuoto non valido.")
    if path.startswith(("http://", "https://")):
        return path
    return f"{base.rstrip('/')}/{path.lstrip('/')}"


# =============================================================================
# Attese
# =============================================================================
def _sleep(
    log: logging.Logger, event: str, seconds: float, url: str, attempt: int, **extra: Any
) -> None:
    log_event(
        log,
        event,
        {"url": url, "attempt": attempt, "sleep": round(seconds, 3), **extra},
        level=logging.WARNING,
    )
    time.sleep(seconds)


def _retry_after(resp: requests.Response) -> Optional[float]:
    value = resp.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return min(BACKOFF_MAX_SECONDS, max(0.0, float(value)))
    except ValueError:
        return None


def _wait_rate_limit_reset(resp: requests.Response, log: logging.Logger) -> None:
    """Se la quota di richieste è esaurita, attende il reset prima della prossima pagina."""
    for hdr_remaining, hdr_reset in RATE_LIMIT_HEADERS:
        remaining = resp.headers.get(hdr_remaining)
        reset = resp.headers.get(hdr_reset)
        if remaining is None or reset is None:
            continue
        try:
            if int(remaining) > 0:
                return
            wait_s = max(0, int(reset) - int(time.time())) + 1
        except ValueError:
            return
        if wait_s > MAX_RATE_LIMIT_WAIT_SECONDS:
            log_event(
                log,
                "rate_limit_exhausted",
                {"url": resp.url, "reset_in_seconds": wait_s},
                level=logging.WARNING,
            )
            return
        _sleep(log, "rate_limit_wait", float(wait_s), resp.url, 0)
        return


def _backoff_seconds(attempt: int) -> float:
    """Backoff esponenziale con jitter del ±10% derivato dall'orologio."""
    base = min(BACKOFF_MAX_SECONDS, BACKOFF_BASE_SECONDS * (2 ** (attempt - 1)))
    fraction = time.time() % 1
    return max(0.0, base + base * 0.1 * (2.0 * fraction - 1.0))
