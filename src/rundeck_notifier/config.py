# config.py
from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, Field, ValidationError, field_validator

from .rundeck.api_client import RundeckClient
from .settings import DEFAULT_API_VERSION


class ConfigurationError(Exception):
    """Raised when a site or step configuration cannot be used."""
    pass


def _fix_empty(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


class RemoteSite(BaseModel):
    """A named Rundeck installation and the credentials to reach it."""
    name: str = ""
    url: str
    login: Optional[str] = None
    password: Optional[str] = None
    token: Optional[str] = None
    api_version: Optional[int] = None

    @field_validator("login", "password", "token", mode="before")
    @classmethod
    def _blank_is_absent(cls, value):
        return _fix_empty(value) if isinstance(value, str) else value

    @field_validator("url", mode="before")
    @classmethod
    def _strip_url(cls, value):
        return value.strip() if isinstance(value, str) else value

    @property
    def normalized_url(self) -> str:
        return self.url if self.url.endswith("/") else self.url + "/"

    @property
    def auth_kind(self) -> str:
        if self.token:
            return "token"
        if self.login and self.password:
            return f"login {self.login}"
        return "no credentials"


class StepConfig(BaseModel):
    """Per-job notifier configuration (what the Jenkins post-build step held)."""
    job_identifier: str
    options: str = ""
    node_filters: str = ""
    tag: str = ""
    wait_for_completion: bool = False
    fail_build_on_failure: bool = False
    site: str = ""


class ConfigFile(BaseModel):
    sites: List[RemoteSite] = Field(default_factory=list)
    steps: Dict[str, StepConfig] = Field(default_factory=dict)


def resolve_client(site: RemoteSite) -> RundeckClient:
    """
    Build a client for the site. Pure construction: nothing is sent over the network.

    Raises:
        ConfigurationError: If the URL is malformed or no usable credentials are set
    """
    parsed = urlparse(site.url or "")
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise ConfigurationError(f"Invalid Rundeck URL: {site.url!r}")
    try:
        parsed.port
    except ValueError as e:
        raise ConfigurationError(f"Invalid Rundeck URL: {site.url!r} ({e})") from e

    api_version = site.api_version if site.api_version and site.api_version > 0 else DEFAULT_API_VERSION

    if site.token:
        return RundeckClient(site.normalized_url, token=site.token, api_version=api_version)
    if site.login and site.password:
        return RundeckClient(
            site.normalized_url,
            login=site.login,
            password=site.password,
            api_version=api_version,
        )
    raise ConfigurationError(
        f"Site '{site.name}' needs either a token or a login and password"
    )


class SiteRegistry:
    """The one place named Rundeck sites are looked up."""

    def __init__(self, sites: List[RemoteSite]):
        self._sites: Dict[str, RemoteSite] = {}
        for site in sites:
            if site.name in self._sites:
                raise ConfigurationError(f"Duplicate Rundeck site name: {site.name!r}")
            self._sites[site.name] = site

    def __len__(self) -> int:
        return len(self._sites)

    def __iter__(self):
        return iter(self._sites.values())

    @property
    def names(self) -> List[str]:
        return list(self._sites)

    def get(self, name: Optional[str] = None) -> RemoteSite:
        """
        Return the site with this name.

        An empty name selects the first configured site.
        """
        if not self._sites:
            raise ConfigurationError("No Rundeck site configured")
        if not name:
            return next(iter(self._sites.values()))
        try:
            return self._sites[name]
        except KeyError:
            known = ", ".join(self.names)
            raise ConfigurationError(f"Unknown Rundeck site {name!r} (configured: {known})") from None


def load_config(path: str | Path) -> ConfigFile:
    """
    Load and validate the JSON config file.

    Raises:
        ConfigurationError: If the file is missing, is not JSON, or fails validation
    """
    cfg_path = Path(path).expanduser()
    if not cfg_path.exists():
        raise ConfigurationError(f"Config file not found: {cfg_path}")
    try:
        data = json.loads(cfg_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Config file {cfg_path} is not valid JSON: {e}") from e
    try:
        return ConfigFile.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Config file {cfg_path} is invalid:\n{e}") from e


def load_registry(path: str | Path) -> SiteRegistry:
    return SiteRegistry(load_config(path).sites)
