# -*- coding: utf-8 -*-
"""
===============================================================================
Modulo: config.py
Descrizione:
    Configurazione di repo-backup. Fornisce:
      - Caricamento del file TOML (default: ~/.repo-backup.toml) con
        espansione di `~` e variabili d'ambiente nel percorso.
      - Dataclass tipizzate e immutabili (GeneralConfig, GitHubConfig,
        GitLabConfig, Config) validate in `__post_init__`.
      - Parsing tollerante dei valori (bool, interi) e normalizzazione delle
        chiavi (kebab-case o snake_case, alias storici come `dest-dir`).
      - Token dei provider da file oppure da ENV (GH_TOKEN/GITHUB_TOKEN,
        GITLAB_TOKEN).
      - Integrazione con il logging strutturato: nessun log di segreti.

    Esempio:
        [general]
        root_directory = "~/backups"
        worker_count = 4
        error_threshold = 10
        blacklist = ["github/octocat/huge-monorepo"]

        [github]
        api_key = "ghp_..."
        starred = true

        [gitlab]
        host = "https://gitlab.example.com"
        organisations = true

Autore: Lorenzo Biosa <lorenzo@biosa-labs.com>
Copyright:
    © 2026 Biosa Labs. Tutti i diritti riservati.
Licenza:
    Questo file è rilasciato secondo i termini della licenza del repository.
===============================================================================
"""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any, ClassVar, Dict, FrozenSet, Mapping, Optional, Union

from repo_backup.models import RepositoryDescriptor, normalize_destination

from .structured_logging import get_logger, log_event

DEFAULT_CONFIG_PATH = "~/.repo-backup.toml"

GITHUB_API_URL = "https://api.github.com"
GITLAB_HOST = "https://gitlab.com"
PROTOCOLS = ("ssh", "https")

_logger = get_logger(__name__)


class ConfigError(RuntimeError):
    """File di configurazione illeggibile, non valido o incompleto."""


# =============================================================================
# Helper di parsing (bool, int)
# =============================================================================
def _parse_bool(value: Any, *, key: str) -> bool:
    """
    Converte un valore TOML in booleano in modo tollerante.
    Accetta bool nativi e stringhe: "1", "true", "yes", "y", "on" | "0", "false", "no", "n", "off".
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        val = value.strip().lower()
        if val in ("1", "true", "yes", "y", "on"):
            return True
        if val in ("0", "false", "no", "n", "off"):
            return False
    raise ConfigError(f"'{key}' deve essere un booleano, trovato {value!r}.")


def _parse_int(value: Any, *, key: str, min_value: Optional[int] = None) -> int:
    """
    Converte un valore TOML in intero con vincolo minimo opzionale.
    """
    if isinstance(value, bool):
        raise ConfigError(f"'{key}' deve essere un intero, trovato {value!r}.")
    try:
        num = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"'{key}' deve essere un intero, trovato {value!r}.") from exc
    if min_value is not None and num < min_value:
        raise ConfigError(f"'{key}' deve essere >= {min_value}, trovato {num}.")
    return num


def _parse_str(value: Any, *, key: str) -> str:
    if not isinstance(value, str):
        raise ConfigError(f"'{key}' deve essere una stringa, trovato {value!r}.")
    return value.strip()


def _default_worker_count() -> int:
    return os.cpu_count() or 1


def _empty_blacklist() -> FrozenSet[PurePosixPath]:
    return frozenset()


# =============================================================================
# Dataclass di configurazione
# =============================================================================
@dataclass(frozen=True)
class GeneralConfig:
    """
    Impostazioni generali del run.

    Attributi:
        root_directory: radice sotto cui vengono clonati i repository.
        worker_count: numero di sincronizzazioni git concorrenti.
        error_threshold: numero di errori oltre cui interrompere (0 = illimitato).
        blacklist: destinazioni relative da non sincronizzare mai.
        sync_timeout: timeout in secondi per singolo comando git (None = nessuno).
    """

    root_directory: Path
    worker_count: int = field(default_factory=_default_worker_count)
    error_threshold: int = 0
    blacklist: FrozenSet[PurePosixPath] = field(default_factory=_empty_blacklist)
    sync_timeout: Optional[float] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "root_directory", Path(self.root_directory).expanduser())
        if self.worker_count < 1:
            raise ConfigError("worker_count deve essere almeno 1.")
        if self.error_threshold < 0:
            raise ConfigError("error_threshold non può essere negativo (0 = illimitato).")
        if self.sync_timeout is not None and self.sync_timeout <= 0:
            raise ConfigError("sync_timeout deve essere positivo.")
        try:
            normalized = frozenset(normalize_destination(p) for p in self.blacklist)
        except ValueError as exc:
            raise ConfigError(f"blacklist non valida: {exc}") from exc
        object.__setattr__(self, "blacklist", normalized)

    def is_blacklisted(self, descriptor: RepositoryDescriptor) -> bool:
        return descriptor.destination_path in self.blacklist


@dataclass(frozen=True)
class GitHubConfig:
    """
    Impostazioni del provider GitHub.

    `owned`, `organisations` e `collaborator` diventano il parametro
    `affiliation` di GET /user/repos; `starred` abilita GET /user/starred.
    """

    KEY: ClassVar[str] = "github"

    api_key: str = field(repr=False)
    owned: bool = True
    starred: bool = True
    organisations: bool = False
    collaborator: bool = False
    api_url: str = GITHUB_API_URL
    protocol: str = "ssh"

    def __post_init__(self) -> None:
        if not self.api_key.strip():
            raise ConfigError(
                "github.api_key obbligatorio (oppure impostare GH_TOKEN/GITHUB_TOKEN)."
            )
        if self.protocol not in PROTOCOLS:
            raise ConfigError(f"github.protocol deve essere uno tra {PROTOCOLS}.")


@dataclass(frozen=True)
class GitLabConfig:
    """
    Impostazioni del provider GitLab (gitlab.com o istanza self-hosted).
    """

    KEY: ClassVar[str] = "gitlab"

    api_key: str = field(repr=False)
    host: str = GITLAB_HOST
    owned: bool = True
    starred: bool = False
    organisations: bool = False
    protocol: str = "ssh"

    def __post_init__(self) -> None:
        if not self.api_key.strip():
            raise ConfigError("gitlab.api_key obbligatorio (oppure impostare GITLAB_TOKEN).")
        if self.protocol not in PROTOCOLS:
            raise ConfigError(f"gitlab.protocol deve essere uno tra {PROTOCOLS}.")
        host = self.host.strip().rstrip("/")
        if not host.startswith(("http://", "https://")):
            host = f"https://{host}"
        object.__setattr__(self, "host", host)


@dataclass(frozen=True)
class Config:
    """Configurazione completa, immutabile per tutta la durata del run."""

    general: GeneralConfig
    github: Optional[GitHubConfig] = None
    gitlab: Optional[GitLabConfig] = None


# =============================================================================
# Normalizzazione chiavi
# =============================================================================
_ALIASES: Dict[str, Dict[str, str]] = {
    "general": {
        "dest_dir": "root_directory",
        "root": "root_directory",
        "max_error_threshold": "error_threshold",
        "threads": "worker_count",
        "workers": "worker_count",
    },
    "github": {"token": "api_key", "api_host": "api_url"},
    "gitlab": {"token": "api_key", "hostname": "host", "url": "host"},
}

_ALLOWED: Dict[str, FrozenSet[str]] = {
    "general": frozenset(
        {"root_directory", "worker_count", "error_threshold", "blacklist", "sync_timeout"}
    ),
    "github": frozenset(
        {"api_key", "owned", "starred", "organisations", "collaborator", "api_url", "protocol"}
    ),
    "gitlab": frozenset({"api_key", "host", "owned", "starred", "organisations", "protocol"}),
}


def _normalize_section(name: str, raw: Any) -> Dict[str, Any]:
    if not isinstance(raw, dict):
        raise ConfigError(f"La sezione [{name}] deve essere una tabella.")
    aliases = _ALIASES[name]
    out: Dict[str, Any] = {}
    for key, value in raw.items():
        norm = key.strip().lower().replace("-", "_")
        norm = aliases.get(norm, norm)
        if norm == "organizations":
            norm = "organisations"
        out[norm] = value
    unknown = sorted(set(out) - _ALLOWED[name])
    if unknown:
        raise ConfigError(f"Chiavi sconosciute in [{name}]: {unknown}")
    return out


# =============================================================================
# Costruzione sezioni
# =============================================================================
def _build_general(raw: Dict[str, Any], *, base_dir: Optional[Path]) -> GeneralConfig:
    if "root_directory" not in raw:
        raise ConfigError("general.root_directory obbligatorio.")
    root_raw = os.path.expandvars(_parse_str(raw["root_directory"], key="general.root_directory"))
    if not root_raw:
        raise ConfigError("general.root_directory non può essere vuoto.")
    root = Path(root_raw).expanduser()
    if not root.is_absolute() and base_dir is not None:
        root = base_dir / root

    kwargs: Dict[str, Any] = {"root_directory": root}
    if "worker_count" in raw:
        kwargs["worker_count"] = _parse_int(raw["worker_count"], key="general.worker_count")
    if "error_threshold" in raw:
        kwargs["error_threshold"] = _parse_int(
            raw["error_threshold"], key="general.error_threshold"
        )
    if "sync_timeout" in raw:
        timeout = raw["sync_timeout"]
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)):
            raise ConfigError(f"'general.sync_timeout' deve essere un numero, trovato {timeout!r}.")
        kwargs["sync_timeout"] = float(timeout) if timeout else None
    if "blacklist" in raw:
        items = raw["blacklist"]
        if not isinstance(items, list):
            raise ConfigError("general.blacklist deve essere una lista di percorsi.")
        kwargs["blacklist"] = frozenset(_parse_str(i, key="general.blacklist") for i in items)
    return GeneralConfig(**kwargs)


def _token(raw: Dict[str, Any], key: str, env: Mapping[str, str], *env_keys: str) -> str:
    if "api_key" in raw:
        return _parse_str(raw["api_key"], key=key)
    for env_key in env_keys:
        value = (env.get(env_key) or "").strip()
        if value:
            return value
    return ""


def _build_github(raw: Dict[str, Any], env: Mapping[str, str]) -> GitHubConfig:
    kwargs: Dict[str, Any] = {
        "api_key": _token(raw, "github.api_key", env, "GH_TOKEN", "GITHUB_TOKEN")
    }
    for flag in ("owned", "starred", "organisations", "collaborator"):
        if flag in raw:
            kwargs[flag] = _parse_bool(raw[flag], key=f"github.{flag}")
    if "api_url" in raw:
        kwargs["api_url"] = _parse_str(raw["api_url"], key="github.api_url").rstrip("/")
    if "protocol" in raw:
        kwargs["protocol"] = _parse_str(raw["protocol"], key="github.protocol").lower()
    return GitHubConfig(**kwargs)


def _build_gitlab(raw: Dict[str, Any], env: Mapping[str, str]) -> GitLabConfig:
    kwargs: Dict[str, Any] = {"api_key": _token(raw, "gitlab.api_key", env, "GITLAB_TOKEN")}
    for flag in ("owned", "starred", "organisations"):
        if flag in raw:
            kwargs[flag] = _parse_bool(raw[flag], key=f"gitlab.{flag}")
    if "host" in raw:
        kwargs["host"] = _parse_str(raw["host"], key="gitlab.host")
    if "protocol" in raw:
        kwargs["protocol"] = _parse_str(raw["protocol"], key="gitlab.protocol").lower()
    return GitLabConfig(**kwargs)


# =============================================================================
# API pubbliche
# =============================================================================
def parse_config(
    text: str,
    *,
    source: str = "<string>",
    base_dir: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
) -> Config:
    """
    Costruisce la configurazione a partire dal testo TOML.

    Args:
        text: contenuto TOML.
        source: nome della sorgente (per i messaggi d'errore/log).
        base_dir: directory rispetto a cui risolvere una root relativa.
        env: ambiente da cui leggere i token mancanti (default: os.environ).

    Raises:
        ConfigError: TOML non valido, sezioni/chiavi sconosciute o campi mancanti.
    """
    environ: Mapping[str, str] = os.environ if env is None else env
    try:
        data = tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        log_event(
            _logger,
            "config_error",
            {"source": source, "reason": "toml non valido", "error": str(exc)},
            level=logging.ERROR,
        )
        raise ConfigError(f"Parsing del file di configurazione fallito ({source})") from exc

    unknown = sorted(set(data) - {"general", "github", "gitlab"})
    if unknown:
        raise ConfigError(f"Sezioni sconosciute in {source}: {unknown}")
    if "general" not in data:
        raise ConfigError(f"Sezione [general] mancante in {source}.")

    general = _build_general(_normalize_section("general", data["general"]), base_dir=base_dir)
    github = (
        _build_github(_normalize_section("github", data["github"]), environ)
        if "github" in data
        else None
    )
    gitlab = (
        _build_gitlab(_normalize_section("gitlab", data["gitlab"]), environ)
        if "gitlab" in data
        else None
    )

    config = Config(general=general, github=github, gitlab=gitlab)
    log_event(
        _logger,
        "config_loaded",
        {
            "source": source,
            "root_directory": str(general.root_directory),
            "worker_count": general.worker_count,
            "error_threshold": general.error_threshold,
            "blacklist_count": len(general.blacklist),
            "sync_timeout": general.sync_timeout,
            "github": github is not None,
            "gitlab": gitlab is not None,
        },
    )
    return config


def expand_config_path(path: Union[str, Path]) -> Path:
    """Espande `~` e variabili d'ambiente nel percorso del file di configurazione."""
    return Path(os.path.expandvars(str(path))).expanduser()


def load_config(path: Union[str, Path] = DEFAULT_CONFIG_PATH) -> Config:
    """
    Carica la configurazione da un file TOML su disco.

    Raises:
        ConfigError: file illeggibile o contenuto non valido.
    """
    file = expand_config_path(path)
    log_event(_logger, "config_read", {"path": str(file)}, level=logging.DEBUG)
    try:
        text = file.read_text(encoding="utf-8")
    except OSError as exc:
        log_event(
            _logger,
            "config_error",
            {"path": str(file), "reason": "file illeggibile", "error": str(exc)},
            level=logging.ERROR,
        )
        raise ConfigError(f"Impossibile leggere {file}") from exc
    return parse_config(text, source=str(file), base_dir=file.parent)


def example_config() -> str:
    """Restituisce un file di configurazione d'esempio (per `--example-config`)."""
    return """\
[general]
# Directory in cui clonare tutti i repository.
root_directory = "/srv/repo-backup"
# Sincronizzazioni git concorrenti (default: numero di CPU).
worker_count = 4
# Interrompe dopo N errori (0 = illimitato).
error_threshold = 0
# Destinazioni da non sincronizzare mai.
blacklist = []

[github]
# Personal access token con scope `repo` (oppure env GH_TOKEN/GITHUB_TOKEN).
api_key = "your API key"
owned = true
starred = false
organisations = false
protocol = "ssh"

[gitlab]
# Personal access token con scope `read_api` (oppure env GITLAB_TOKEN).
api_key = "your API key"
host = "https://gitlab.com"
owned = true
organisations = true
starred = false
protocol = "ssh"
"""
