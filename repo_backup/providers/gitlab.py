# -*- coding: utf-8 -*-
"""
===============================================================================
Modulo: gitlab.py
Descrizione:
    Provider GitLab (gitlab.com o istanza self-hosted, API v4).
    I filtri di GET /projects sono in AND, quindi ogni insieme abilitato
    viene interrogato separatamente:
      - owned=true       (progetti posseduti)
      - membership=true  (progetti dei gruppi/organizzazioni di cui si è membri)
      - starred=true     (progetti starred)
    La deduplica delle destinazioni avviene nel Provider base.

    Paginazione: header `Link: rel="next"`, con fallback su `X-Next-Page`.
    Destinazione: "gitlab/<path_with_namespace>".
    Trasporto: `ssh_url_to_repo` oppure `http_url_to_repo` secondo `protocol`.

Autore: Lorenzo Biosa <lorenzo@biosa-labs.com>
Licenza:
    Questo file è rilasciato secondo i termini della licenza del repository.
===============================================================================
"""

from __future__ import annotations

import logging
from pathlib import PurePosixPath
from typing import Any, Dict, Iterator, List, Optional, Tuple

import requests

from repo_backup.models import RepositoryDescriptor
from repo_backup.utils import http_client
from repo_backup.utils.config import GitLabConfig
from repo_backup.utils.structured_logging import log_event

from .base import Provider
from .pagination import json_list, link_next, paginated, with_query

PAGE_SIZE = 100


def gitlab_next_page(resp: requests.Response) -> Optional[str]:
    """
    Cursore della pagina successiva: `Link: rel="next"` se presente,
    altrimenti l'header `X-Next-Page` applicato all'URL corrente.
    """
    nxt = link_next(resp)
    if nxt:
        return nxt
    next_page = (resp.headers.get("X-Next-Page") or "").strip()
    if not next_page:
        return None
    return with_query(resp.url, {"page": next_page})


class GitLab(Provider):
    """Provider per GitLab."""

    def __init__(
        self,
        cfg: GitLabConfig,
        *,
        session: Optional[requests.Session] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        super().__init__(GitLabConfig.KEY, logger=logger)
        self.cfg = cfg
        self._session = session or http_client.new_session(
            {"Accept": "application/json", "PRIVATE-TOKEN": cfg.api_key}
        )

    def queries(self) -> List[Tuple[str, Dict[str, Any]]]:
        """Coppie (etichetta, filtri) da interrogare, nell'ordine di esecuzione."""
        selected: List[Tuple[str, Dict[str, Any]]] = []
        if self.cfg.owned:
            selected.append(("owned", {"owned": "true"}))
        if self.cfg.organisations:
            selected.append(("organisations", {"membership": "true"}))
        if self.cfg.starred:
            selected.append(("starred", {"starred": "true"}))
        return selected

    def _discover(self) -> Iterator[RepositoryDescriptor]:
        endpoint = http_client.join_url(self.cfg.host, "/api/v4/projects")
        for label, filters in self.queries():
            log_event(
                self._logger,
                "gitlab_fetch_projects",
                {"host": self.cfg.host, "query": label},
                level=logging.DEBUG,
            )
            url = with_query(
                endpoint,
                {**filters, "simple": "true", "per_page": PAGE_SIZE, "order_by": "id", "sort": "asc"},
            )
            yield from paginated(
                self._session,
                url,
                self._parse,
                next_page=gitlab_next_page,
                logger=self._logger,
            )

    def _parse(self, data: Any) -> List[RepositoryDescriptor]:
        return [self.to_descriptor(raw) for raw in json_list(data)]

    def to_descriptor(self, raw: Dict[str, Any]) -> RepositoryDescriptor:
        """
        Converte un progetto della API in descrittore.

        Raises:
            KeyError: campi obbligatori assenti.
        """
        path = raw["path_with_namespace"]
        url_key = "ssh_url_to_repo" if self.cfg.protocol == "ssh" else "http_url_to_repo"
        return RepositoryDescriptor(PurePosixPath(self.name, path), raw[url_key])
