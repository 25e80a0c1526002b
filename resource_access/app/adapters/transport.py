"""
Transport adapter: the single place outbound HTTP happens.

Wraps ``httpx`` with bearer-token injection, body encoding, and
normalization of every failure into ``ServiceError``.
"""

import inspect
import re
import time
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Tuple, Union

import httpx
import pydantic
from pydantic import BaseModel

from shared.config import BaseConfig
from shared.errors import AuthenticationError, ServiceError
from shared.logging import get_logger, set_request_id
from ..auth.storage import AuthStore, create_auth_store
from .models import DownloadedFile, Envelope, FormData, RequestDescriptor


UnauthenticatedCallback = Callable[[], Union[None, Awaitable[None]]]

_FILENAME_RE = re.compile(r'filename\*?=(?:UTF-8\'\')?"?([^";]+)"?', re.IGNORECASE)


def serialize_params(params: Optional[Mapping[str, Any]]) -> List[Tuple[str, Any]]:
    """Flatten query params: lists repeat the key, None and mappings are dropped."""
    if not params:
        return []
    pairs: List[Tuple[str, Any]] = []
    for key, value in params.items():
        if value is None or isinstance(value, Mapping):
            continue
        if isinstance(value, (list, tuple, set)):
            pairs.extend((key, item) for item in value if item is not None)
        elif isinstance(value, bool):
            pairs.append((key, "true" if value else "false"))
        else:
            pairs.append((key, value))
    return pairs


def encode_json(body: Any) -> Any:
    """Turn pydantic payloads (or lists of them) into JSON-ready data."""
    if isinstance(body, BaseModel):
        return body.model_dump(mode="json", exclude_unset=True)
    if isinstance(body, (list, tuple)):
        return [encode_json(item) for item in body]
    if isinstance(body, Mapping):
        return {key: encode_json(value) for key, value in body.items()}
    return body


def _error_payload(response: httpx.Response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _payload_message(payload: Mapping[str, Any]) -> Optional[str]:
    for field in ("message", "error", "detail"):
        value = payload.get(field)
        if isinstance(value, str) and value:
            return value
    return None


def _payload_errors(payload: Mapping[str, Any]) -> Optional[Dict[str, List[str]]]:
    errors = payload.get("errors")
    if not isinstance(errors, Mapping):
        return None
    normalized: Dict[str, List[str]] = {}
    for field, messages in errors.items():
        if isinstance(messages, str):
            normalized[str(field)] = [messages]
        elif isinstance(messages, (list, tuple)):
            normalized[str(field)] = [str(message) for message in messages]
    return normalized or None


class TransportAdapter:
    """HTTP transport for resource clients and CRUD hooks."""

    def __init__(self,
                 base_url: str,
                 auth_store: Optional[AuthStore] = None,
                 timeout: float = 30.0,
                 on_unauthenticated: Optional[UnauthenticatedCallback] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None,
                 show_api_logs: bool = False):
        self.base_url = base_url.rstrip("/")
        self.auth_store = auth_store or AuthStore()
        self.timeout = timeout
        self.on_unauthenticated = on_unauthenticated
        self.show_api_logs = show_api_logs
        self._transport = transport
        self.logger = get_logger("resource_access.transport")

    @classmethod
    def from_config(cls, config: BaseConfig, **kwargs) -> "TransportAdapter":
        kwargs.setdefault("auth_store", create_auth_store(config.storage_path))
        return cls(
            config.api_base_url,
            timeout=config.api_timeout,
            show_api_logs=config.show_api_logs,
            **kwargs
        )

    def _client(self, timeout: Optional[float]) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout if timeout is not None else self.timeout,
            transport=self._transport,
            headers={"Accept": "application/json"},
        )

    def _auth_headers(self) -> Dict[str, str]:
        token = self.auth_store.get_access_token()
        if token:
            return {"Authorization": f"Bearer {token}"}
        return {}

    def _request_kwargs(self, descriptor: RequestDescriptor) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {"headers": self._auth_headers()}
        kwargs["headers"]["X-Request-ID"] = set_request_id()
        params = serialize_params(descriptor.params)
        if params:
            kwargs["params"] = params

        body = descriptor.body
        if isinstance(body, FormData):
            # httpx sets multipart/form-data with its boundary
            kwargs["data"] = body.fields
            kwargs["files"] = body.files
        elif body is not None:
            kwargs["headers"]["Content-Type"] = "application/json"
            kwargs["json"] = encode_json(body)
        return kwargs

    async def _send(self, descriptor: RequestDescriptor, timeout: Optional[float]) -> httpx.Response:
        method = descriptor.method.upper()
        kwargs = self._request_kwargs(descriptor)
        if self.show_api_logs:
            self.logger.debug(
                "API request",
                method=method,
                path=descriptor.path,
                params=kwargs.get("params"),
                body=kwargs.get("json")
            )

        start = time.perf_counter()
        try:
            async with self._client(timeout) as client:
                response = await client.request(method, descriptor.path, **kwargs)
        except httpx.TimeoutException as exc:
            self.logger.error("Request timed out", method=method, path=descriptor.path, error=str(exc))
            raise ServiceError("Request timed out", code="TIMEOUT", details={"path": descriptor.path}) from exc
        except httpx.HTTPError as exc:
            self.logger.error("Network error", method=method, path=descriptor.path, error=str(exc))
            raise ServiceError(
                str(exc) or "Network error",
                code="NETWORK_ERROR",
                details={"path": descriptor.path}
            ) from exc

        duration_ms = round((time.perf_counter() - start) * 1000, 2)
        self.logger.debug(
            "HTTP response",
            method=method,
            path=descriptor.path,
            status_code=response.status_code,
            duration_ms=duration_ms
        )

        if not response.is_success:
            await self._raise_for_status(response, descriptor)
        return response

    async def _raise_for_status(self, response: httpx.Response, descriptor: RequestDescriptor) -> None:
        status = response.status_code
        payload = _error_payload(response)
        message = _payload_message(payload)

        if status == 401:
            self.logger.warning("Unauthenticated response, clearing credentials", path=descriptor.path)
            self.auth_store.clear_auth_data()
            if self.on_unauthenticated is not None:
                outcome = self.on_unauthenticated()
                if inspect.isawaitable(outcome):
                    await outcome
            raise AuthenticationError(message or "Authentication required", details={"path": descriptor.path})

        if status == 403:
            self.logger.error("Access denied", path=descriptor.path, message=message or "Forbidden")
        elif status >= 500:
            self.logger.error("Server error", path=descriptor.path, status_code=status,
                              message=message or "Internal Server Error")
        else:
            self.logger.info("Request rejected", path=descriptor.path, status_code=status, message=message)

        code = payload.get("code")
        raise ServiceError(
            message or f"Request failed with status {status}",
            code=str(code) if code is not None else f"HTTP_{status}",
            status=status,
            errors=_payload_errors(payload),
            details={"path": descriptor.path}
        )

    async def request(self, descriptor: RequestDescriptor, timeout: Optional[float] = None) -> Envelope[Any]:
        """Send a request and wrap the body in an ``Envelope``."""
        response = await self._send(descriptor, timeout)

        if not response.content:
            return Envelope(success=True, data=None, message=response.reason_phrase or "Success")

        try:
            body = response.json()
        except ValueError:
            body = response.text

        if Envelope.looks_like(body):
            if body.get("errors") is not None:
                body = {**body, "errors": _payload_errors(body)}
            try:
                return Envelope[Any].model_validate(body)
            except pydantic.ValidationError as exc:
                self.logger.error("Malformed response envelope", path=descriptor.path, error=str(exc))
                raise ServiceError(
                    "Malformed response envelope",
                    code="INVALID_RESPONSE",
                    status=response.status_code,
                    details={"path": descriptor.path}
                ) from exc

        return Envelope(
            success=response.is_success,
            data=body,
            message=response.reason_phrase or "Success"
        )

    async def download(self,
                       path: str,
                       params: Optional[Mapping[str, Any]] = None,
                       filename: Optional[str] = None,
                       timeout: Optional[float] = None) -> DownloadedFile:
        """Fetch a binary body; the filename falls back to Content-Disposition."""
        response = await self._send(RequestDescriptor("GET", path, params=params), timeout)

        if filename is None:
            match = _FILENAME_RE.search(response.headers.get("content-disposition", ""))
            filename = match.group(1) if match else "download"

        return DownloadedFile(
            filename=filename,
            content=response.content,
            content_type=response.headers.get("content-type")
        )
