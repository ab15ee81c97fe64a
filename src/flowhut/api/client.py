"""HTTP client for the workflow server REST API."""

import logging
import socket
from pathlib import Path
from typing import Any

import httpx

from flowhut.api.models import StatusResponse, SubmitResponse, decode
from flowhut.errors import ApiError

logger = logging.getLogger(__name__)

API_PREFIX = "/api/workflows/v1"

# HTTP statuses worth retrying
TRANSIENT_STATUS_CODES = frozenset({408, 425, 429})


def _is_name_resolution_failure(exc: BaseException) -> bool:
    """Check whether a transport error was caused by DNS resolution."""
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        if isinstance(current, socket.gaierror):
            return True
        seen.add(id(current))
        current = current.__cause__ or current.__context__
    message = str(exc)
    return "Name or service not known" in message or "nodename nor servname" in message


class WorkflowApiClient:
    """Async client for submit/status/abort/metadata/logs calls.

    Calls are issued one at a time and awaited to completion. Each call takes
    the server URL explicitly, so one client serves jobs on several servers.
    """

    def __init__(
        self,
        timeout: float = 60.0,
        connect_timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.timeout = timeout
        self.connect_timeout = connect_timeout
        self._transport = transport
        self._http: httpx.AsyncClient | None = None

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout, connect=self.connect_timeout),
                transport=self._transport,
                headers={"Accept": "application/json"},
            )
        return self._http

    async def close(self) -> None:
        """Close the underlying HTTP connection pool."""
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    @staticmethod
    def _url(server_url: str, *parts: str) -> str:
        return "/".join([server_url.rstrip("/") + API_PREFIX, *parts])

    async def _request(self, method: str, url: str, **kwargs: Any) -> tuple[Any, str]:
        """Send a request and return the decoded JSON payload with the raw body text.

        Raises:
            ApiError: On transport errors, non-2xx responses or malformed JSON.
        """
        logger.debug(f"{method} {url}")
        try:
            response = await self._client().request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise ApiError(f"{method} {url} timed out") from e
        except (httpx.UnsupportedProtocol, httpx.InvalidURL) as e:
            raise ApiError(f"Invalid server URL {url}: {e}", transient=False) from e
        except httpx.TransportError as e:
            transient = not _is_name_resolution_failure(e)
            raise ApiError(f"Cannot reach {url}: {e}", transient=transient) from e
        except httpx.RequestError as e:
            raise ApiError(f"{method} {url} failed: {e}") from e

        body = response.text
        if not response.is_success:
            code = response.status_code
            transient = code >= 500 or code in TRANSIENT_STATUS_CODES
            raise ApiError(
                f"{method} {url} returned HTTP {code}",
                status_code=code,
                body=body,
                transient=transient,
            )

        try:
            return response.json(), body
        except ValueError as e:  # invalid JSON or invalid UTF-8
            raise ApiError(
                f"Malformed JSON from {url}",
                status_code=response.status_code,
                body=body,
            ) from e

    async def submit(
        self,
        server_url: str,
        workflow_source: Path,
        inputs: Path | None = None,
        options: Path | None = None,
        dependencies: Path | None = None,
    ) -> SubmitResponse:
        """Submit a workflow definition with optional inputs, options and dependency archive."""
        parts = {
            "workflowSource": workflow_source,
            "workflowInputs": inputs,
            "workflowOptions": options,
            "workflowDependencies": dependencies,
        }
        files = {
            field: (path.name, path.read_bytes())
            for field, path in parts.items()
            if path is not None
        }
        payload, body = await self._request("POST", self._url(server_url), files=files)
        return decode(SubmitResponse, payload, body)

    async def get_status(self, job_id: str, server_url: str) -> StatusResponse:
        payload, body = await self._request("GET", self._url(server_url, job_id, "status"))
        return decode(StatusResponse, payload, body)

    async def abort(self, job_id: str, server_url: str) -> StatusResponse:
        payload, body = await self._request("POST", self._url(server_url, job_id, "abort"))
        return decode(StatusResponse, payload, body)

    async def get_metadata(
        self,
        job_id: str,
        server_url: str,
        include_keys: list[str] | None = None,
        expand_subworkflows: bool = False,
    ) -> dict[str, Any]:
        """Fetch the job metadata, optionally restricted to some top-level keys."""
        params: dict[str, Any] = {"expandSubWorkflows": str(expand_subworkflows).lower()}
        if include_keys:
            params["includeKey"] = include_keys
        payload, body = await self._request(
            "GET", self._url(server_url, job_id, "metadata"), params=params
        )
        if not isinstance(payload, dict):
            raise ApiError(f"Unexpected metadata payload for {job_id}", body=body)
        return payload

    async def get_logs(self, job_id: str, server_url: str) -> dict[str, Any]:
        payload, body = await self._request("GET", self._url(server_url, job_id, "logs"))
        if not isinstance(payload, dict):
            raise ApiError(f"Unexpected logs payload for {job_id}", body=body)
        return payload

    async def __aenter__(self) -> "WorkflowApiClient":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        await self.close()
