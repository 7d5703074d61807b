"""Moonraker HTTP client used to fetch Klipper configuration and status.

Talks to the `Moonraker HTTP API
<https://moonraker.readthedocs.io/en/latest/web_api/>`_ via
:mod:`requests`.  Only read-only endpoints are used: config file
contents and listings, ``print_stats`` and host system information.

Failures are raised as :class:`MoonrakerError` subclasses so callers can
tell a missing file from a refused connection without inspecting HTTP
status codes themselves.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import asdict, dataclass
from typing import Any
from urllib.parse import quote

import requests
from requests.exceptions import ConnectionError as ReqConnectionError
from requests.exceptions import RequestException, Timeout

logger = logging.getLogger(__name__)

# HTTP status codes eligible for automatic retry.
_RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({502, 503, 504})


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class MoonrakerError(Exception):
    """Base exception for all Moonraker communication errors."""

    def __init__(
        self,
        message: str,
        *,
        cause: Exception | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.cause = cause
        self.status_code = status_code


class ConfigFileNotFoundError(MoonrakerError):
    """The requested file or directory does not exist on the host."""


class AccessDeniedError(MoonrakerError):
    """Moonraker refused the request (HTTP 401/403)."""


class MoonrakerUnreachableError(MoonrakerError):
    """The Moonraker host could not be reached (refused or timed out)."""


class KlipperNotReadyError(MoonrakerError):
    """Moonraker answered but Klipper itself is not ready (HTTP 503)."""


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------


@dataclass
class ConfigFile:
    """Metadata for one file in Moonraker's ``config`` root."""

    path: str
    size: int = 0
    modified: float = 0.0  # Unix timestamp
    permissions: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serialisable dictionary."""
        return asdict(self)


@dataclass
class PrintStats:
    """The ``print_stats`` printer object."""

    state: str
    filename: str = ""
    message: str = ""
    total_duration: float | None = None
    print_duration: float | None = None
    filament_used: float | None = None
    total_layer: int | None = None
    current_layer: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serialisable dictionary."""
        return asdict(self)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _safe_get(data: Any, *keys: str, default: Any = None) -> Any:
    """Walk nested dicts safely, returning *default* on any miss or type error."""
    current = data
    for key in keys:
        if not isinstance(current, dict):
            return default
        current = current.get(key, default)
    return current


def _wildcard_regex(pattern: str) -> re.Pattern[str]:
    """Compile a ``*`` wildcard pattern into an unanchored, case-insensitive regex."""
    return re.compile(".*".join(re.escape(part) for part in pattern.split("*")), re.IGNORECASE)


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class MoonrakerClient:
    """Read-only client for a Moonraker instance.

    Args:
        host: Hostname or IP of the Moonraker host, e.g. ``"klipper.local"``.
            A scheme (``http://``) may be included; it defaults to HTTP.
        port: Moonraker port.
        api_key: Optional API key, sent as ``X-Api-Key`` when set.
        timeout: Per-request timeout in seconds.
        retries: Maximum number of attempts for transient failures
            (connection errors and HTTP 502/503/504).

    Raises:
        ValueError: If *host* is empty.
    """

    def __init__(
        self,
        host: str,
        port: int = 7125,
        api_key: str | None = None,
        timeout: float = 10,
        retries: int = 3,
    ) -> None:
        if not host or not host.strip():
            raise ValueError("host must not be empty")

        host = host.strip().rstrip("/")
        if not re.match(r"^https?://", host, re.IGNORECASE):
            host = "http://" + host

        self._host: str = host
        self._port: int = port
        self._base_url: str = f"{host}:{port}"
        self._api_key: str | None = api_key or None
        self._timeout: float = timeout
        self._retries: int = max(retries, 1)

        self._session: requests.Session = requests.Session()
        self._session.headers.update({"Content-Type": "application/json"})
        if self._api_key:
            self._session.headers.update({"X-Api-Key": self._api_key})

    def __repr__(self) -> str:
        return f"MoonrakerClient({self._base_url!r})"

    @property
    def base_url(self) -> str:
        return self._base_url

    def connection_info(self) -> str:
        """Human-readable connection summary, e.g. ``klipper.local:7125``."""
        authority = re.sub(r"^https?://", "", self._host, flags=re.IGNORECASE)
        suffix = " (with API key)" if self._api_key else ""
        return f"{authority}:{self._port}{suffix}"

    # ------------------------------------------------------------------
    # Internal HTTP helpers
    # ------------------------------------------------------------------

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
    ) -> requests.Response:
        """Execute an HTTP request with exponential-backoff retry logic.

        Returns the :class:`requests.Response` on success (2xx).

        Raises:
            MoonrakerError: On non-retryable HTTP errors, with
                ``status_code`` set.
            MoonrakerUnreachableError: On connection failures or timeouts
                once all retry attempts are exhausted.
        """
        url = f"{self._base_url}{path}"
        last_exc: MoonrakerError | None = None

        for attempt in range(self._retries):
            try:
                response = self._session.request(
                    method,
                    url,
                    params=params,
                    timeout=self._timeout,
                )

                if response.ok:
                    return response

                if response.status_code not in _RETRYABLE_STATUS_CODES:
                    body = response.text[:300]
                    if len(response.text) > 300:
                        body += " (truncated)"
                    raise MoonrakerError(
                        f"Moonraker returned HTTP {response.status_code} for {method} {path}: {body}",
                        status_code=response.status_code,
                    )

                last_exc = MoonrakerError(
                    f"Moonraker returned HTTP {response.status_code} "
                    f"for {method} {path} "
                    f"(attempt {attempt + 1}/{self._retries})",
                    status_code=response.status_code,
                )

            except Timeout as exc:
                last_exc = MoonrakerUnreachableError(
                    f"Connection timeout to Moonraker at {self.connection_info()}",
                    cause=exc,
                )
            except ReqConnectionError as exc:
                last_exc = MoonrakerUnreachableError(
                    f"Cannot connect to Moonraker at {self.connection_info()}. Is the printer running?",
                    cause=exc,
                )
            except RequestException as exc:
                raise MoonrakerError(
                    f"Request error for {method} {path}: {exc}",
                    cause=exc,
                ) from exc

            if attempt < self._retries - 1:
                backoff = 2**attempt
                logger.debug(
                    "Retrying %s %s in %ds (attempt %d/%d)",
                    method,
                    path,
                    backoff,
                    attempt + 1,
                    self._retries,
                )
                time.sleep(backoff)

        assert last_exc is not None
        raise last_exc

    def _get_json(self, path: str, **kwargs: Any) -> Any:
        """GET *path* and return the parsed JSON body."""
        response = self._request("GET", path, **kwargs)
        try:
            return response.json()
        except ValueError as exc:
            raise MoonrakerError(
                f"Invalid JSON in response from GET {path}",
                cause=exc,
            ) from exc

    # ------------------------------------------------------------------
    # Config files
    # ------------------------------------------------------------------

    def get_config_file(self, filename: str) -> str:
        """Return the raw text of *filename* from the ``config`` root.

        Calls ``GET /server/files/config/<filename>``.

        Raises:
            ConfigFileNotFoundError: If the file does not exist.
            AccessDeniedError: If Moonraker refuses access.
            MoonrakerUnreachableError: If the host cannot be reached.
        """
        path = f"/server/files/config/{quote(filename, safe='/')}"
        try:
            response = self._request("GET", path)
        except MoonrakerError as exc:
            if exc.status_code == 404:
                raise ConfigFileNotFoundError(
                    f"Config file '{filename}' not found", cause=exc, status_code=404
                ) from exc
            if exc.status_code in (401, 403):
                raise AccessDeniedError(
                    f"Access denied to config file '{filename}'", cause=exc, status_code=exc.status_code
                ) from exc
            raise
        logger.debug("Fetched %s (%d bytes)", filename, len(response.content))
        return response.text

    def list_config_files(self, pattern: str | None = None) -> list[ConfigFile]:
        """List files in the ``config`` root.

        Calls ``GET /server/files/list?root=config``.

        Args:
            pattern: Optional ``*`` wildcard, matched case-insensitively
                anywhere in each file's path.
        """
        params: dict[str, Any] = {"root": "config"}
        if pattern:
            params["extended"] = "true"
        try:
            payload = self._get_json("/server/files/list", params=params)
        except MoonrakerError as exc:
            if exc.status_code == 404:
                raise ConfigFileNotFoundError(
                    "Config directory not found", cause=exc, status_code=404
                ) from exc
            raise

        raw_files = _safe_get(payload, "result", default=[])
        if not isinstance(raw_files, list):
            raw_files = []

        files: list[ConfigFile] = []
        for entry in raw_files:
            if not isinstance(entry, dict) or not entry.get("path"):
                continue
            files.append(
                ConfigFile(
                    path=entry["path"],
                    size=entry.get("size") or 0,
                    modified=entry.get("modified") or 0.0,
                    permissions=entry.get("permissions"),
                )
            )

        if pattern:
            regex = _wildcard_regex(pattern)
            files = [f for f in files if regex.search(f.path)]
        return files

    # ------------------------------------------------------------------
    # Printer / host state
    # ------------------------------------------------------------------

    def get_printer_status(self) -> PrintStats:
        """Return the ``print_stats`` object.

        Calls ``GET /printer/objects/query?print_stats``.

        Raises:
            KlipperNotReadyError: If Klipper is not running (HTTP 503).
            MoonrakerError: If the response lacks ``print_stats``.
        """
        try:
            payload = self._get_json("/printer/objects/query", params={"print_stats": ""})
        except MoonrakerError as exc:
            if exc.status_code == 503:
                raise KlipperNotReadyError(
                    "Klipper is not ready or not running", cause=exc, status_code=503
                ) from exc
            raise

        stats = _safe_get(payload, "result", "status", "print_stats")
        if not isinstance(stats, dict):
            raise MoonrakerError("Invalid response structure from Moonraker")

        info = stats.get("info") if isinstance(stats.get("info"), dict) else {}
        return PrintStats(
            state=str(stats.get("state", "unknown")),
            filename=stats.get("filename") or "",
            message=stats.get("message") or "",
            total_duration=stats.get("total_duration"),
            print_duration=stats.get("print_duration"),
            filament_used=stats.get("filament_used"),
            total_layer=info.get("total_layer"),
            current_layer=info.get("current_layer"),
        )

    def get_system_info(self) -> dict[str, Any]:
        """Return host system information as Moonraker reports it.

        Calls ``GET /machine/system_info`` and unwraps the nested
        ``system_info`` key when present.
        """
        payload = self._get_json("/machine/system_info")
        result = _safe_get(payload, "result", default={})
        if isinstance(result, dict) and isinstance(result.get("system_info"), dict):
            return result["system_info"]
        if not isinstance(result, dict):
            raise MoonrakerError("Invalid response structure from Moonraker")
        return result

    def validate_connection(self) -> bool:
        """Return ``True`` if ``GET /server/info`` succeeds."""
        try:
            self._request("GET", "/server/info")
        except MoonrakerError as exc:
            logger.debug("Moonraker connection check failed: %s", exc)
            return False
        return True
