# rundeck/api_client.py
from __future__ import annotations

import http.client
import http.cookiejar
import json
import urllib.error
import urllib.request
from typing import Any, Callable, Dict, Mapping, Optional, TypeVar
from urllib.parse import quote, urlencode, urljoin

from ..settings import DEFAULT_API_VERSION, HTTP_TIMEOUT
from .models import Execution, RundeckJob

T = TypeVar("T")


class RundeckApiError(Exception):
    """Raised when a call to the Rundeck API fails."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class LoginFailure(RundeckApiError):
    """Raised when login/password authentication is rejected."""
    pass


class TokenFailure(RundeckApiError):
    """Raised when the API token is rejected."""
    pass


class UnreachableError(RundeckApiError):
    """Raised when the Rundeck endpoint does not answer the liveness check."""
    pass


class JobNotFoundError(RundeckApiError):
    """Raised when a job identifier does not resolve to any Rundeck job."""
    pass


def node_filter_string(filters: Mapping[str, str]) -> str:
    """
    Render node filters as a Rundeck filter expression.

    {"tags": "web", "name": "node 1"} -> 'tags: web name: "node 1"'
    """
    parts = []
    for key, value in filters.items():
        value = str(value)
        if " " in value and not value.startswith('"'):
            value = f'"{value}"'
        parts.append(f"{key}: {value}")
    return " ".join(parts)


def _error_message(body: str) -> str:
    # Rundeck error responses look like {"error": true, "message": "..."}
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, TypeError):
        return body.strip()[:200]
    if isinstance(data, dict):
        return str(data.get("message") or data.get("errorCode") or "")
    return ""


def _parse(factory: Callable[[Any], T], data: Any, what: str) -> T:
    """Build a model from a response payload; a payload of the wrong shape is an API error."""
    try:
        return factory(data)
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise RundeckApiError(f"Unexpected {what} response from Rundeck: {e!r}") from e


class RundeckClient:
    """HTTP client for the Rundeck JSON API."""

    def __init__(
        self,
        url: str,
        *,
        token: Optional[str] = None,
        login: Optional[str] = None,
        password: Optional[str] = None,
        api_version: int = DEFAULT_API_VERSION,
        timeout: int = HTTP_TIMEOUT,
    ):
        """
        Initialize Rundeck client.

        Args:
            url: Base URL of the Rundeck instance (e.g., "https://rundeck.example.com/")
            token: API token; when set, login/password are ignored
            login: User name for session (j_security_check) authentication
            password: Password for session authentication
            api_version: Rundeck API version used in request paths
            timeout: Socket timeout in seconds for every request
        """
        self.url = url if url.endswith("/") else url + "/"
        self.token = token
        self.login = login
        self.password = password
        self.api_version = api_version
        self.timeout = timeout

        # Session auth keeps the JSESSIONID cookie between calls
        self._cookies = http.cookiejar.CookieJar()
        self._opener = urllib.request.build_opener(urllib.request.HTTPCookieProcessor(self._cookies))
        self._logged_in = False

    def __repr__(self) -> str:
        auth = "token" if self.uses_token else f"login={self.login}"
        return f"RundeckClient({self.url!r}, {auth}, api_version={self.api_version})"

    @property
    def uses_token(self) -> bool:
        return bool(self.token)

    def api_url(self, path: str, params: Optional[Dict[str, str]] = None) -> str:
        url = urljoin(self.url, f"api/{self.api_version}/{path.lstrip('/')}")
        if params:
            url += "?" + urlencode(params)
        return url

    def _open(self, req: urllib.request.Request):
        return self._opener.open(req, timeout=self.timeout)

    def _auth_failure(self, message: str) -> RundeckApiError:
        if self.uses_token:
            return TokenFailure(message, status=401)
        return LoginFailure(message, status=401)

    def _login(self) -> None:
        """Open an authenticated session with login/password (once per client)."""
        if self._logged_in:
            return

        form = urlencode({"j_username": self.login or "", "j_password": self.password or ""})
        req = urllib.request.Request(
            urljoin(self.url, "j_security_check"),
            data=form.encode("utf-8"),
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            method="POST",
        )
        try:
            # Rundeck wants a session cookie before accepting the credentials
            with self._open(urllib.request.Request(self.url, method="GET")):
                pass
            with self._open(req) as response:
                landing = response.geturl()
        except urllib.error.HTTPError as e:
            raise LoginFailure(f"Login failed for user {self.login} : {e.code} {e.reason}", status=e.code) from e
        except OSError as e:
            reason = getattr(e, "reason", e)
            raise RundeckApiError(f"Network error: {reason}") from e
        except (ValueError, http.client.HTTPException) as e:
            raise RundeckApiError(f"Network error: {e!r}") from e

        # A rejected login redirects back to the login or error page
        if "/user/error" in landing or "/user/login" in landing:
            raise LoginFailure(f"Login failed for user {self.login}")
        self._logged_in = True

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, str]] = None,
        data: Optional[dict] = None,
    ) -> Any:
        """
        Make a request to the Rundeck API.

        Args:
            method: HTTP method (GET, POST, etc.)
            path: API path below /api/<version>/ (e.g., "execution/42")
            params: Optional query string parameters
            data: Optional JSON data to send in request body

        Returns:
            Parsed JSON response (dict or list)

        Raises:
            TokenFailure / LoginFailure: If authentication is rejected
            RundeckApiError: If the request fails for any other reason
        """
        if not self.uses_token:
            self._login()

        url = self.api_url(path, params)
        headers = {"Accept": "application/json"}
        if self.uses_token:
            headers["X-Rundeck-Auth-Token"] = self.token

        body = None
        if data is not None:
            headers["Content-Type"] = "application/json"
            body = json.dumps(data).encode("utf-8")

        req = urllib.request.Request(url, data=body, headers=headers, method=method)

        try:
            with self._open(req) as response:
                raw = response.read()
            payload = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise RundeckApiError(f"Response from {url} is not valid UTF-8: {e}") from e
        except urllib.error.HTTPError as e:
            error_body = e.read().decode("utf-8", errors="replace") if e.fp else ""
            detail = _error_message(error_body)
            if e.code in (401, 403):
                raise self._auth_failure(f"{e.code} {e.reason}. {detail}".strip()) from e
            raise RundeckApiError(f"API request failed: {e.code} {e.reason}. {detail}".strip(), status=e.code) from e
        except urllib.error.URLError as e:
            raise RundeckApiError(f"Network error: {e.reason}") from e
        except OSError as e:
            raise RundeckApiError(f"Network error: {e}") from e
        except (ValueError, http.client.HTTPException) as e:
            # malformed URL (InvalidURL) or a broken HTTP exchange
            raise RundeckApiError(f"Network error: {e!r}") from e

        if not payload:
            return {}
        try:
            return json.loads(payload)
        except json.JSONDecodeError as e:
            raise RundeckApiError(f"Invalid JSON response from {url}: {e}") from e

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def ping(self) -> None:
        """Check that something answers at the base URL."""
        try:
            with self._open(urllib.request.Request(self.url, method="GET")):
                pass
        except OSError as e:
            reason = getattr(e, "reason", e)
            raise UnreachableError(f"No live Rundeck instance at {self.url} : {reason}") from e
        except (ValueError, http.client.HTTPException) as e:
            raise UnreachableError(f"No live Rundeck instance at {self.url} : {e!r}") from e

    def test_auth(self) -> None:
        """Check that the configured credentials are accepted."""
        self._request("GET", "system/info")

    def find_job(self, project: str, group_path: str, name: str) -> RundeckJob:
        """
        Find a job by project, group path and name.

        An empty group path matches the first job with this exact name in any group.
        """
        params = {"jobExactFilter": name}
        if group_path:
            params["groupPathExact"] = group_path

        jobs = self._request("GET", f"project/{quote(project, safe='')}/jobs", params=params)
        if not jobs:
            jobs = []
        if not isinstance(jobs, list):
            raise RundeckApiError(f"Unexpected job list response from Rundeck: {type(jobs).__name__}")

        for data in jobs:
            job = _parse(
                lambda d: RundeckJob.from_dict({**d, "project": d.get("project") or project}),
                data,
                "job list",
            )
            if job.name != name:
                continue
            if group_path and job.group != group_path:
                continue
            return job

        raise JobNotFoundError(f"No job '{name}' in group '{group_path}' of project '{project}'")

    def get_job(self, job_id: str) -> RundeckJob:
        try:
            data = self._request("GET", f"job/{quote(job_id, safe='')}/info")
        except RundeckApiError as e:
            if e.status == 404:
                raise JobNotFoundError(f"No job with the ID '{job_id}'", status=404) from e
            raise
        return _parse(RundeckJob.from_dict, data, "job info")

    def trigger_job(
        self,
        job_id: str,
        options: Optional[Mapping[str, str]] = None,
        node_filters: Optional[Mapping[str, str]] = None,
    ) -> Execution:
        """Start a new execution of the job. Never retried: each call is a new run."""
        body: Dict[str, Any] = {}
        if options:
            body["options"] = dict(options)
        if node_filters:
            body["filter"] = node_filter_string(node_filters)

        try:
            data = self._request("POST", f"job/{quote(job_id, safe='')}/run", data=body)
        except RundeckApiError as e:
            if e.status == 404:
                raise JobNotFoundError(f"No job with the ID '{job_id}'", status=404) from e
            raise
        return _parse(Execution.from_dict, data, "job run")

    def get_execution(self, execution_id: int) -> Execution:
        data = self._request("GET", f"execution/{execution_id}")
        return _parse(Execution.from_dict, data, "execution")
