# -*- coding: utf-8 -*-
"""
Autore:        Lorenzo Biosa
Email:         lorenzo@biosa-labs.com
Copyright:
  © 2026 Biosa Labs. Tutti i diritti riservati.

Modulo: tests/test_pagination.py
Descrizione:
  Test della paginazione generica (`repo_backup.providers.pagination`):
    - Tre pagine 10/10/4 con cursore `Link: rel="next"` → 24 elementi in ordine.
    - Errore a metà sequenza: gli elementi già emessi restano, poi l'errore.
    - Corpo non JSON → MalformedPage; 401 → AuthenticationError.
    - Errore di rete persistente → NetworkError con causa concatenata.
"""

from __future__ import annotations

from typing import Any, Dict, List
from unittest.mock import MagicMock

import pytest
import requests

from repo_backup.providers.base import (
    AuthenticationError,
    BadResponse,
    MalformedPage,
    NetworkError,
)
from repo_backup.providers.pagination import json_list, link_next, paginated, with_query

BASE = "https://api.test/items"


def _page(start: int, count: int) -> List[Dict[str, Any]]:
    return [{"id": i} for i in range(start, start + count)]


def _next(page: int) -> Dict[str, str]:
    return {"Link": f'<{BASE}?page={page}>; rel="next", <{BASE}?page=3>; rel="last"'}


def test_three_pages_yield_all_items_in_order(fake_session: MagicMock, make_response: Any) -> None:
    fake_session.request.side_effect = [
        make_response(BASE, _page(0, 10), headers=_next(2)),
        make_response(f"{BASE}?page=2", _page(10, 10), headers=_next(3)),
        make_response(f"{BASE}?page=3", _page(20, 4)),
    ]

    items = list(paginated(fake_session, BASE, json_list))

    assert [i["id"] for i in items] == list(range(24)), "Elementi attesi 0..23 in ordine"
    urls = [c.kwargs["url"] for c in fake_session.request.call_args_list]
    assert urls == [BASE, f"{BASE}?page=2", f"{BASE}?page=3"]


def test_pages_are_fetched_lazily(fake_session: MagicMock, make_response: Any) -> None:
    fake_session.request.side_effect = [
        make_response(BASE, _page(0, 2), headers=_next(2)),
        make_response(f"{BASE}?page=2", _page(2, 2)),
    ]

    gen = paginated(fake_session, BASE, json_list)
    assert next(gen) == {"id": 0}
    assert fake_session.request.call_count == 1, "La seconda pagina non deve essere ancora richiesta"


def test_error_mid_stream_keeps_emitted_items(fake_session: MagicMock, make_response: Any) -> None:
    fake_session.request.side_effect = [
        make_response(BASE, _page(0, 10), headers=_next(2)),
        make_response(f"{BASE}?page=2", {"message": "Not Found"}, status=404),
    ]

    got: List[Dict[str, Any]] = []
    with pytest.raises(BadResponse) as excinfo:
        for item in paginated(fake_session, BASE, json_list):
            got.append(item)

    assert len(got) == 10
    assert excinfo.value.status == 404
    assert not isinstance(excinfo.value, AuthenticationError)


def test_invalid_json_is_malformed_page(fake_session: MagicMock, make_response: Any) -> None:
    fake_session.request.side_effect = [make_response(BASE, raw=b"<html>oops</html>")]

    with pytest.raises(MalformedPage) as excinfo:
        list(paginated(fake_session, BASE, json_list))
    assert isinstance(excinfo.value.__cause__, ValueError)


def test_unexpected_shape_is_malformed_page(fake_session: MagicMock, make_response: Any) -> None:
    fake_session.request.side_effect = [make_response(BASE, {"items": []})]

    with pytest.raises(MalformedPage):
        list(paginated(fake_session, BASE, json_list))


@pytest.mark.parametrize("status", [401, 403])
def test_auth_failure(fake_session: MagicMock, make_response: Any, status: int) -> None:
    fake_session.request.side_effect = [
        make_response(BASE, {"message": "Bad credentials"}, status=status)
    ]

    with pytest.raises(AuthenticationError) as excinfo:
        list(paginated(fake_session, BASE, json_list))
    assert excinfo.value.status == status


@pytest.mark.usefixtures("no_sleep")
def test_network_error_after_retries(fake_session: MagicMock) -> None:
    fake_session.request.side_effect = requests.ConnectionError("connection refused")

    with pytest.raises(NetworkError) as excinfo:
        list(paginated(fake_session, BASE, json_list))
    assert isinstance(excinfo.value.__cause__, requests.ConnectionError)
    assert fake_session.request.call_count > 1, "Atteso almeno un retry"


@pytest.mark.usefixtures("no_sleep")
def test_transient_status_is_retried(fake_session: MagicMock, make_response: Any) -> None:
    fake_session.request.side_effect = [
        make_response(BASE, {"message": "unavailable"}, status=503),
        make_response(BASE, _page(0, 3)),
    ]

    items = list(paginated(fake_session, BASE, json_list))
    assert len(items) == 3


def test_link_next_absent(make_response: Any) -> None:
    assert link_next(make_response(BASE, [])) is None


def test_with_query_overrides_existing_params() -> None:
    url = with_query(f"{BASE}?page=1&per_page=20", {"page": 2})
    assert url == f"{BASE}?page=2&per_page=20"
