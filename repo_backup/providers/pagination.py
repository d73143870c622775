# -*- coding: utf-8 -*-
"""
===============================================================================
Modulo: pagination.py
Descrizione:
    Ciclo di paginazione generico condiviso dai provider.

    Per ogni pagina:
      1) GET autenticata (la sessione porta l'autenticazione del provider);
      2) parsing del corpo JSON in una lista di elementi;
      3) estrazione del cursore "next" (header `Link` o campo equivalente);
      4) emissione di tutti gli elementi della pagina prima della successiva.

    Termina quando il cursore "next" è assente. Uno status non 2xx o un corpo
    non valido interrompono la paginazione con `BadResponse`/`MalformedPage`;
    gli elementi già emessi non vengono ritirati.

Autore: Lorenzo Biosa <lorenzo@biosa-labs.com>
Licenza:
    Questo file è rilasciato secondo i termini della licenza del repository.
===============================================================================
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, TypeVar, cast
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import requests

from repo_backup.utils import http_client
from repo_backup.utils.structured_logging import get_logger, log_event

from .base import AuthenticationError, BadResponse, MalformedPage, NetworkError

__all__ = ["paginated", "link_next", "json_list", "with_query"]

T = TypeVar("T")

ParseFunc = Callable[[Any], List[T]]
NextFunc = Callable[[requests.Response], Optional[str]]

_logger = get_logger(__name__)


def link_next(resp: requests.Response) -> Optional[str]:
    """
    Restituisce l'URL con relazione `next` dall'header `Link`, se presente.
    Esempio:
      <https://api.github.com/user/repos?page=2>; rel="next",
      <https://api.github.com/user/repos?page=5>; rel="last"
    """
    nxt = resp.links.get("next")
    if not nxt:
        return None
    url = nxt.get("url")
    return url or None


def json_list(data: Any) -> List[Dict[str, Any]]:
    """
    Parsing di default: il corpo deve essere un array JSON di oggetti.

    Raises:
        ValueError: corpo non array o con elementi non oggetto.
    """
    if not isinstance(data, list):
        raise ValueError(f"atteso un array JSON, trovato {type(data).__name__}")
    items: List[Dict[str, Any]] = []
    for elem in cast(List[object], data):
        if not isinstance(elem, dict):
            raise ValueError(f"elemento inatteso di tipo {type(elem).__name__}")
        items.append(cast(Dict[str, Any], elem))
    return items


def with_query(url: str, params: Mapping[str, Any]) -> str:
    """Restituisce `url` con i parametri di query aggiunti/sovrascritti."""
    parts = urlsplit(url)
    query = dict(parse_qsl(parts.query, keep_blank_values=True))
    query.update({k: str(v) for k, v in params.items()})
    return urlunsplit(parts._replace(query=urlencode(query)))


def paginated(
    session: requests.Session,
    first_page: str,
    parse: ParseFunc[T],
    *,
    next_page: NextFunc = link_next,
    logger: Optional[logging.Logger] = None,
) -> Iterator[T]:
    """
    Itera sugli elementi di un endpoint paginato.

    Args:
        session: sessione HTTP autenticata del provider.
        first_page: URL della prima pagina (query inclusa).
        parse: converte il JSON di una pagina in una lista di elementi.
        next_page: estrae l'URL della pagina successiva dalla risposta.
        logger: logger del chiamante.

    Yields:
        Gli elementi di ogni pagina, nell'ordine della API.

    Raises:
        AuthenticationError: status 401/403.
        BadResponse: altri status non 2xx.
        MalformedPage: corpo non JSON o non conforme a `parse`.
        NetworkError: errore di rete persistente.
    """
    log = logger or _logger
    url: Optional[str] = first_page
    page = 0

    while url:
        page += 1
        log_event(log, "paginate_request", {"url": url, "page": page}, level=logging.DEBUG)

        try:
            resp = http_client.get(url, session=session, logger=log)
        except requests.RequestException as exc:
            raise NetworkError(url) from exc

        if not 200 <= resp.status_code < 300:
            log_event(
                log,
                "paginate_bad_status",
                {"url": url, "page": page, "status": resp.status_code},
                level=logging.WARNING,
            )
            error_cls = AuthenticationError if resp.status_code in (401, 403) else BadResponse
            raise error_cls(resp.status_code, url, resp.text)

        try:
            data: Any = resp.json()
        except ValueError as exc:
            raise MalformedPage(url, "corpo non in formato JSON") from exc

        try:
            items = parse(data)
        except (KeyError, TypeError, ValueError) as exc:
            raise MalformedPage(url, str(exc)) from exc

        url = next_page(resp)
        log_event(
            log,
            "paginate_page_ok",
            {"page": page, "count": len(items), "has_next": url is not None},
            level=logging.DEBUG,
        )

        # Emetti gli elementi della pagina prima di richiedere la successiva
        yield from items

    log_event(log, "paginate_last_page", {"pages": page}, level=logging.DEBUG)
