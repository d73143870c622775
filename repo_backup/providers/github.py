# -*- coding: utf-8 -*-
"""
===============================================================================
Modulo: github.py
Descrizione:
    Provider GitHub: elenca i repository dell'utente autenticato.
      - Posseduti / di organizzazioni / da collaboratore:
        GET /user/repos?affiliation=owner,organization_member,collaborator
      - Starred: GET /user/starred
    La paginazione segue l'header `Link: rel="next"`.

    Destinazione: "github/<owner>/<name>" (da `full_name`).
    Trasporto: `ssh_url` oppure `clone_url` secondo `protocol`.

    Sicurezza:
      - Necessita di un token GitHub (PAT o fine-grained) con scope `repo`
        (o `public_repo` per i soli repository pubblici).

Autore: Lorenzo Biosa <lorenzo@biosa-labs.com>
Licenza:
    Questo file è rilasciato secondo i termini della licenza del repository.
===============================================================================
"""

from __future__ import annotations

import logging
from pathlib import PurePosixPath
from typing import Any, Dict, Iterator, List, Optional

import requests

from repo_backup.models import RepositoryDescriptor
from repo_backup.utils import http_client
from repo_backup.utils.config import GitHubConfig
from repo_backup.utils.structured_logging import log_event

from .base import Provider
from .pagination import json_list, paginated, with_query

PAGE_SIZE = 100

GITHUB_HEADERS: Dict[str, str] = {
    "Accept": "application/vnd.github+json",
    "X-GitHub-Api-Version": "2022-11-28",
}


class GitHub(Provider):
    """Provider per github.com (o GitHub Enterprise tramite `api_url`)."""

    def __init__(
        self,
        cfg: GitHubConfig,
        *,
        session: Optional[requests.Session] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        super().__init__(GitHubConfig.KEY, logger=logger)
        self.cfg = cfg
        self._session = session or http_client.new_session(
            {**GITHUB_HEADERS, "Authorization": f"Bearer {cfg.api_key}"}
        )

    def affiliations(self) -> str:
        """Valore del parametro `affiliation` (vuoto se nessuna affiliazione è abilitata)."""
        selected: List[str] = []
        if self.cfg.owned:
            selected.append("owner")
        if self.cfg.organisations:
            selected.append("organization_member")
        if self.cfg.collaborator:
            selected.append("collaborator")
        return ",".join(selected)

    def _discover(self) -> Iterator[RepositoryDescriptor]:
        affiliation = self.affiliations()
        if affiliation:
            log_event(
                self._logger,
                "github_fetch_owned",
                {"affiliation": affiliation},
                level=logging.DEBUG,
            )
            url = with_query(
                http_client.join_url(self.cfg.api_url, "/user/repos"),
                {"affiliation": affiliation, "per_page": PAGE_SIZE},
            )
            yield from paginated(self._session, url, self._parse, logger=self._logger)

        if self.cfg.starred:
            log_event(self._logger, "github_fetch_starred", level=logging.DEBUG)
            url = with_query(
                http_client.join_url(self.cfg.api_url, "/user/starred"),
                {"per_page": PAGE_SIZE},
            )
            yield from paginated(self._session, url, self._parse, logger=self._logger)

    def _parse(self, data: Any) -> List[RepositoryDescriptor]:
        return [self.to_descriptor(raw) for raw in json_list(data)]

    def to_descriptor(self, raw: Dict[str, Any]) -> RepositoryDescriptor:
        """
        Converte un oggetto repository della API in descrittore.

        Raises:
            KeyError: campi obbligatori assenti.
        """
        full_name = raw["full_name"]
        url_key = "ssh_url" if self.cfg.protocol == "ssh" else "clone_url"
        return RepositoryDescriptor(PurePosixPath(self.name, full_name), raw[url_key])
