"""
Secret and HTTP settings shared by every loader.

Secrets are loaded from ``.secrets/secret.toml`` by default. The lookup order is:

1. Explicit ``CONTENT_LOADERS_SECRETS_PATH`` environment variable.
2. Project-relative ``.secrets/secret.toml`` (both from CWD and the package root).
3. Project-relative ``.secrets/secrets.toml``.
4. Fallback to ``.secrets/secrets.example.toml`` for scaffolding values.

Environment variables (``YOUTUBE_API_KEY``, ``AIRTABLE_TOKEN``) fill in
credentials the file leaves empty. Call :func:`load_secrets` to retrieve a
:class:`SecretsBundle`.
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Mapping, Optional

DEFAULT_BLUESKY_SERVICE = "https://public.api.bsky.app"
DEFAULT_HTTP_TIMEOUT = 15.0
DEFAULT_HTTP_RETRIES = 1


@dataclass(slots=True)
class HTTPSettings:
    """Transport tuning applied to every HTTP client."""

    timeout: float = DEFAULT_HTTP_TIMEOUT
    retries: int = DEFAULT_HTTP_RETRIES
    user_agent: str = "content-loaders"


@dataclass(slots=True)
class CredentialSettings:
    """API credentials for sources that require them."""

    youtube_api_key: Optional[str] = None
    airtable_token: Optional[str] = None
    bluesky_service: str = DEFAULT_BLUESKY_SERVICE


@dataclass(slots=True)
class SecretsBundle:
    """Lightweight container for parsed secret values."""

    source_path: Optional[Path]
    data: Dict[str, Dict[str, object]]
    credentials: CredentialSettings = field(default_factory=CredentialSettings)
    http: HTTPSettings = field(default_factory=HTTPSettings)


def _discover_project_root() -> Optional[Path]:
    current = Path(__file__).resolve()
    for parent in current.parents:
        if (parent / "pyproject.toml").is_file():
            return parent
    return None


def _candidate_paths() -> Iterable[Path]:
    env_override = os.getenv("CONTENT_LOADERS_SECRETS_PATH")
    if env_override:
        yield Path(env_override).expanduser()

    def secrets_paths(base: Path) -> Iterable[Path]:
        secrets_dir = base / ".secrets"
        for filename in ("secret.toml", "secrets.toml", "secrets.example.toml"):
            yield secrets_dir / filename

    search_roots = [Path.cwd()]
    package_root = _discover_project_root()
    if package_root and package_root not in search_roots:
        search_roots.append(package_root)

    seen: set[Path] = set()
    for base in search_roots:
        for candidate in secrets_paths(base):
            if candidate not in seen:
                seen.add(candidate)
                yield candidate


def _load_toml(path: Path) -> Dict[str, Dict[str, object]]:
    with path.open("rb") as handle:
        return tomllib.load(handle)


def _section(raw: Mapping[str, object], name: str) -> Mapping[str, object]:
    section = raw.get(name, {}) if isinstance(raw, Mapping) else {}
    return section if isinstance(section, Mapping) else {}


def _string(section: Mapping[str, object], key: str) -> Optional[str]:
    value = section.get(key)
    return value if isinstance(value, str) and value else None


def _extract_credentials(raw: Mapping[str, object]) -> CredentialSettings:
    youtube = _section(raw, "youtube")
    airtable = _section(raw, "airtable")
    bluesky = _section(raw, "bluesky")
    return CredentialSettings(
        youtube_api_key=_string(youtube, "api_key") or os.getenv("YOUTUBE_API_KEY") or None,
        airtable_token=_string(airtable, "token") or os.getenv("AIRTABLE_TOKEN") or None,
        bluesky_service=_string(bluesky, "service") or DEFAULT_BLUESKY_SERVICE,
    )


def _extract_http(raw: Mapping[str, object]) -> HTTPSettings:
    section = _section(raw, "http")
    settings = HTTPSettings()
    timeout = section.get("timeout")
    if isinstance(timeout, (int, float)) and timeout > 0:
        settings.timeout = float(timeout)
    retries = section.get("retries")
    if isinstance(retries, int) and retries >= 1:
        settings.retries = retries
    user_agent = _string(section, "user_agent")
    if user_agent:
        settings.user_agent = user_agent
    return settings


def load_secrets(strict: bool = False) -> SecretsBundle:
    """
    Attempt to load secrets from the configured locations.

    Parameters
    ----------
    strict:
        When ``True`` the function raises ``FileNotFoundError`` if no secrets file is
        discovered. Defaults to ``False`` so anonymous sources (feeds, Bluesky, CSV)
        keep working without any configuration.
    """

    for path in _candidate_paths():
        if path.is_file():
            data = _load_toml(path)
            return SecretsBundle(
                source_path=path,
                data=data,
                credentials=_extract_credentials(data),
                http=_extract_http(data),
            )

    if strict:
        raise FileNotFoundError("No secrets file found. Configure CONTENT_LOADERS_SECRETS_PATH or .secrets/secret.toml.")

    return SecretsBundle(source_path=None, data={}, credentials=_extract_credentials({}), http=HTTPSettings())
