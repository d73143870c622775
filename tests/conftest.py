# -*- coding: utf-8 -*-
"""
Autore:        Lorenzo Biosa
Email:         lorenzo@biosa-labs.com
Copyright:
  © 2026 Biosa Labs. Tutti i diritti riservati.

Modulo: tests/conftest.py
Descrizione:
  Fixture comuni per la suite di test:
    - fake_logger: logger configurato per i test.
    - gh_token: token GitHub fittizio (non utilizzato realmente).
    - fake_session: sessione HTTP finta (MagicMock) con metodo .request() e
      attributo .headers, per simulare una `requests.Session`.
    - make_response: costruisce `requests.Response` reali (status, JSON,
      header Link) così che `resp.links` e `resp.json()` si comportino come
      in produzione.
    - no_sleep: azzera le attese di retry/backoff del client HTTP.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, Optional
from unittest.mock import MagicMock

import pytest
import requests
from _pytest.monkeypatch import MonkeyPatch
from requests.structures import CaseInsensitiveDict

from repo_backup.utils import http_client

ResponseFactory = Callable[..., requests.Response]


@pytest.fixture
def fake_logger() -> logging.Logger:
    """
    Restituisce un logger di test con livello DEBUG.
    """
    logger = logging.getLogger("tests")
    logger.setLevel(logging.DEBUG)
    return logger


@pytest.fixture
def gh_token() -> str:
    """
    Token GitHub fittizio. Non viene usato per chiamate reali.
    """
    return "ghp_test_token"


@pytest.fixture
def fake_session() -> MagicMock:
    """
    Sessione HTTP finta con interfaccia minima compatibile con `requests.Session`.

    I test impostano le risposte in sequenza:
        sess.request.side_effect = [resp1, resp2, ...]
    e verificano gli URL richiesti tramite `sess.request.call_args_list`.
    """
    sess = MagicMock(spec_set=["request", "get", "headers"])
    sess.headers = {}
    return sess


def _make_response(
    url: str,
    body: Any = None,
    *,
    status: int = 200,
    headers: Optional[Dict[str, str]] = None,
    raw: Optional[bytes] = None,
) -> requests.Response:
    resp = requests.Response()
    resp.status_code = status
    resp.url = url
    resp.encoding = "utf-8"
    resp.headers = CaseInsensitiveDict({"Content-Type": "application/json", **(headers or {})})
    resp._content = raw if raw is not None else json.dumps(body).encode("utf-8")
    return resp


@pytest.fixture
def make_response() -> ResponseFactory:
    """
    Factory di `requests.Response`:
        make_response(url, body, status=200, headers={"Link": ...}, raw=b"...")
    """
    return _make_response


@pytest.fixture
def no_sleep(monkeypatch: MonkeyPatch) -> None:
    """Nessuna attesa reale durante retry/backoff e rate-limit."""
    monkeypatch.setattr(http_client.time, "sleep", lambda _s: None)
