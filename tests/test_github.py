# -*- coding: utf-8 -*-
"""
Autore:        Lorenzo Biosa
Email:         lorenzo@biosa-labs.com
Copyright:
  © 2026 Biosa Labs. Tutti i diritti riservati.

Modulo: tests/test_github.py
Descrizione:
  Test del provider GitHub:
    - Parametro `affiliation` costruito dai flag di configurazione.
    - Repository posseduti + starred, deduplicati per destinazione.
    - Scelta del trasporto (ssh / https).
    - Provider monouso.
"""

from __future__ import annotations

from typing import Any, Dict
from unittest.mock import MagicMock

import pytest

from repo_backup.providers.base import AuthenticationError, MalformedPage
from repo_backup.providers.github import GitHub
from repo_backup.utils.config import GitHubConfig

OWNED = "https://api.github.com/user/repos?affiliation=owner&per_page=100"
STARRED = "https://api.github.com/user/starred?per_page=100"


def _repo(full_name: str) -> Dict[str, Any]:
    return {
        "full_name": full_name,
        "ssh_url": f"git@github.com:{full_name}.git",
        "clone_url": f"https://github.com/{full_name}.git",
    }


def test_affiliations_follow_flags(gh_token: str) -> None:
    gh = GitHub(GitHubConfig(api_key=gh_token, organisations=True, collaborator=True))
    assert gh.affiliations() == "owner,organization_member,collaborator"

    gh = GitHub(GitHubConfig(api_key=gh_token, owned=False))
    assert gh.affiliations() == ""


def test_owned_and_starred_deduplicated(
    gh_token: str, fake_session: MagicMock, make_response: Any
) -> None:
    fake_session.request.side_effect = [
        make_response(OWNED, [_repo("octocat/hello"), _repo("octocat/tools")]),
        make_response(STARRED, [_repo("octocat/hello"), _repo("psf/requests")]),
    ]
    gh = GitHub(GitHubConfig(api_key=gh_token), session=fake_session)

    repos = list(gh.repositories())

    assert [r.destination for r in repos] == [
        "github/octocat/hello",
        "github/octocat/tools",
        "github/psf/requests",
    ], "Ogni destinazione deve comparire una sola volta"
    assert repos[0].transport_url == "git@github.com:octocat/hello.git"
    urls = [c.kwargs["url"] for c in fake_session.request.call_args_list]
    assert urls == [OWNED, STARRED]


def test_https_protocol_and_starred_only(
    gh_token: str, fake_session: MagicMock, make_response: Any
) -> None:
    fake_session.request.side_effect = [make_response(STARRED, [_repo("psf/requests")])]
    cfg = GitHubConfig(api_key=gh_token, owned=False, protocol="https")
    gh = GitHub(cfg, session=fake_session)

    repos = list(gh.repositories())

    assert len(repos) == 1
    assert repos[0].transport_url == "https://github.com/psf/requests.git"
    assert fake_session.request.call_args.kwargs["url"] == STARRED


def test_bad_credentials_propagate(
    gh_token: str, fake_session: MagicMock, make_response: Any
) -> None:
    fake_session.request.side_effect = [
        make_response(OWNED, {"message": "Bad credentials"}, status=401)
    ]
    gh = GitHub(GitHubConfig(api_key=gh_token, starred=False), session=fake_session)

    with pytest.raises(AuthenticationError):
        list(gh.repositories())


def test_null_clone_url_is_malformed_page(
    gh_token: str, fake_session: MagicMock, make_response: Any
) -> None:
    fake_session.request.side_effect = [
        make_response(OWNED, [{"full_name": "octocat/hello", "ssh_url": None}])
    ]
    gh = GitHub(GitHubConfig(api_key=gh_token, starred=False), session=fake_session)

    with pytest.raises(MalformedPage, match="transport_url"):
        list(gh.repositories())


def test_provider_is_single_use(gh_token: str, fake_session: MagicMock, make_response: Any) -> None:
    fake_session.request.side_effect = [make_response(OWNED, [])]
    gh = GitHub(GitHubConfig(api_key=gh_token, starred=False), session=fake_session)

    assert list(gh.repositories()) == []
    with pytest.raises(RuntimeError):
        gh.repositories()


def test_default_session_carries_token(gh_token: str) -> None:
    gh = GitHub(GitHubConfig(api_key=gh_token))
    headers = gh._session.headers
    assert headers["Authorization"] == f"Bearer {gh_token}"
    assert headers["Accept"] == "application/vnd.github+json"
