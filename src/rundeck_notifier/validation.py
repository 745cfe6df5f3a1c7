# validation.py
# Checks run while a site or a step is being configured, before any build.

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

from .config import ConfigurationError, RemoteSite, resolve_client
from .jobs import find_job
from .rundeck.api_client import (
    JobNotFoundError,
    LoginFailure,
    RundeckApiError,
    RundeckClient,
    TokenFailure,
    UnreachableError,
)


@dataclass(frozen=True)
class Validation:
    ok: bool
    message: str
    url: str = ""

    @classmethod
    def success(cls, message: str, url: str = "") -> Validation:
        return cls(True, message, url)

    @classmethod
    def error(cls, message: str) -> Validation:
        return cls(False, message)


def check_url(value: Optional[str]) -> Validation:
    url = (value or "").strip()
    if not url:
        return Validation.error("URL mandatory")
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return Validation.error(f"{url} is not a valid URL.")
    return Validation.success("")


def check_regex(value: Optional[str]) -> Validation:
    pattern = (value or "").strip()
    if not pattern:
        return Validation.success("")
    try:
        re.compile(pattern)
    except re.error as e:
        return Validation.error(str(e))
    return Validation.success("")


def check_connection(site: RemoteSite, client: Optional[RundeckClient] = None) -> Validation:
    """Configuration, then liveness, then credentials."""
    if client is None:
        try:
            client = resolve_client(site)
        except ConfigurationError as e:
            return Validation.error(f"Rundeck configuration is not valid ! {e}")

    try:
        client.ping()
    except UnreachableError:
        return Validation.error(f"We couldn't find a live Rundeck instance at {client.url}")

    try:
        client.test_auth()
    except LoginFailure:
        return Validation.error(f"Your credentials for the user {client.login} are not valid !")
    except TokenFailure:
        return Validation.error("Your token authentication is not valid!")
    except RundeckApiError as e:
        return Validation.error(f"Failed to check your credentials : {e}")

    return Validation.success("Your Rundeck instance is alive, and your credentials are valid !")


def check_job_identifier(
    identifier: Optional[str],
    site: RemoteSite,
    client: Optional[RundeckClient] = None,
) -> Validation:
    if client is None:
        try:
            client = resolve_client(site)
        except ConfigurationError:
            return Validation.error("Rundeck global configuration is not valid !")

    if not identifier or not identifier.strip():
        return Validation.error("The job identifier is mandatory !")

    try:
        job = find_job(identifier, client)
    except JobNotFoundError:
        return Validation.error(f"Could not find a job with the identifier : {identifier}")
    except RundeckApiError as e:
        return Validation.error(f"Failed to get job details : {e}")

    return Validation.success(
        f"Your Rundeck job is : {job.id} [{job.project}] {job.full_name}",
        url=job.show_url(client.url),
    )
