"""Request dispatch for the Optidash API.

A dispatch turns a validated `DispatchPlan` into one HTTP request and
normalizes whatever happens next into a single `DispatchResult`. All paths
(pre-flight validation, file I/O, transport errors, response parsing) report
through one `Completion` token, so the caller's callback fires exactly once.
"""

from __future__ import annotations

import contextlib
import inspect
import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Iterator, Mapping

import httpx

from .exceptions import (
    OptidashAPIError,
    OptidashAuthError,
    OptidashError,
    OptidashHTTPError,
    OptidashIOError,
    OptidashNetworkError,
    OptidashParseError,
    OptidashRateLimitError,
    OptidashTimeoutError,
    OptidashValidationError,
)
from .request_options import DispatchPlan, Sink, Transport
from .security import parse_retry_after, redact_proxy, sanitize_headers
from .streams import async_destination_writer, async_upload_part, destination_writer, upload_part

logger = logging.getLogger(__name__)

META_HEADER = "x-optidash-meta"
BINARY_HEADER = "X-Optidash-Binary"
PARSE_ERROR = "Unable to parse JSON response from the Optidash API"


@dataclass(frozen=True)
class DispatchResult:
    """Outcome of one dispatch; unpacks as `(error, metadata, payload)`."""

    error: OptidashError | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    payload: bytes | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def __iter__(self) -> Iterator[Any]:
        return iter((self.error, self.metadata, self.payload))


class Completion:
    """Single-assignment result shared by every listener of one dispatch."""

    def __init__(self) -> None:
        self._result: DispatchResult | None = None
        self._delivered = False

    def resolve(
        self,
        error: OptidashError | None = None,
        metadata: Mapping[str, Any] | None = None,
        payload: bytes | None = None,
    ) -> bool:
        if self._result is not None:
            logger.debug("Ignoring late dispatch outcome", extra={"error": repr(error)})
            return False
        self._result = DispatchResult(error=error, metadata=dict(metadata or {}), payload=payload)
        return True

    @property
    def result(self) -> DispatchResult:
        if self._result is None:
            raise RuntimeError("dispatch finished without an outcome")
        return self._result

    def deliver(self, callback: Callable[[DispatchResult], Any] | None) -> tuple[DispatchResult, Any]:
        result = self.result
        if callback is None or self._delivered:
            return result, None
        self._delivered = True
        return result, callback(result)


@dataclass(frozen=True)
class ClientSettings:
    base_url: str
    timeout: float
    verify_ssl: bool = True
    headers: Mapping[str, str] = field(default_factory=dict)
    transport: Any = None


def _endpoint(plan: DispatchPlan, settings: ClientSettings) -> str:
    if plan.transport is Transport.UPLOAD:
        return f"{settings.base_url}/upload"
    return f"{settings.base_url}/fetch"


def _client_kwargs(plan: DispatchPlan, settings: ClientSettings) -> dict[str, Any]:
    kwargs: dict[str, Any] = {
        "auth": (plan.key, ""),
        "timeout": settings.timeout,
        "verify": settings.verify_ssl,
        "trust_env": False,
    }
    if plan.proxy:
        kwargs["proxy"] = plan.proxy
    if settings.transport is not None:
        kwargs["transport"] = settings.transport
    return kwargs


def _request_kwargs(
    plan: DispatchPlan,
    settings: ClientSettings,
    part: tuple[str, Any] | None,
) -> dict[str, Any]:
    headers = dict(settings.headers)
    if plan.is_binary:
        headers[BINARY_HEADER] = "1"

    body = dict(plan.request)
    kwargs: dict[str, Any] = {"headers": headers}
    if part is not None:
        kwargs["files"] = {"file": part}
        kwargs["data"] = {"data": json.dumps(body)}
    else:
        kwargs["json"] = body
    return kwargs


def _source_part(plan: DispatchPlan) -> contextlib.AbstractContextManager[Any]:
    if plan.transport is Transport.UPLOAD:
        return upload_part(plan.source)
    return contextlib.nullcontext()


def _async_source_part(plan: DispatchPlan) -> contextlib.AbstractAsyncContextManager[Any]:
    if plan.transport is Transport.UPLOAD:
        return async_upload_part(plan.source)
    return contextlib.nullcontext()


def _log_request(plan: DispatchPlan, url: str, kwargs: Mapping[str, Any]) -> None:
    logger.debug(
        "Sending Optidash request",
        extra={
            "url": url,
            "sink": plan.sink.value,
            "headers": sanitize_headers(kwargs["headers"]),
            "proxy": redact_proxy(plan.proxy),
        },
    )


def _failure(response: httpx.Response, metadata: Mapping[str, Any]) -> OptidashError | None:
    remote_failure = metadata.get("success") is False
    if not remote_failure and response.is_success:
        return None

    message = metadata.get("message")
    if not isinstance(message, str) or not message:
        message = f"Optidash API request failed with status {response.status_code}"

    kwargs: dict[str, Any] = {
        "status_code": response.status_code,
        "metadata": metadata,
        "headers": dict(response.headers),
        "retry_after": parse_retry_after(response.headers.get("Retry-After")),
    }
    if response.status_code in {401, 403}:
        return OptidashAuthError(message, **kwargs)
    if response.status_code == 429:
        return OptidashRateLimitError(message, **kwargs)
    if remote_failure:
        return OptidashAPIError(message, **kwargs)
    return OptidashHTTPError(message, **kwargs)


def _resolve_json(response: httpx.Response, completion: Completion) -> None:
    try:
        body = response.json()
    except ValueError as exc:
        if response.is_success:
            completion.resolve(OptidashParseError(PARSE_ERROR, status_code=response.status_code, cause=exc))
        else:
            completion.resolve(_failure(response, {}))
        return

    if not isinstance(body, dict):
        completion.resolve(OptidashParseError(PARSE_ERROR, status_code=response.status_code))
        return
    completion.resolve(_failure(response, body), body)


def _header_metadata(response: httpx.Response, completion: Completion) -> dict[str, Any] | None:
    """Parse the metadata header, resolving the completion when it is malformed."""
    raw = response.headers.get(META_HEADER)
    if not raw:
        return {}
    try:
        metadata = json.loads(raw)
    except ValueError as exc:
        completion.resolve(OptidashParseError(PARSE_ERROR, status_code=response.status_code, cause=exc))
        return None
    if not isinstance(metadata, dict):
        completion.resolve(OptidashParseError(PARSE_ERROR, status_code=response.status_code))
        return None
    return metadata


def _body_metadata(content: bytes) -> dict[str, Any]:
    try:
        parsed = json.loads(content)
    except ValueError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _write_error(exc: OSError, metadata: Mapping[str, Any]) -> OptidashIOError:
    return OptidashIOError(f"Unable to write response to destination: {exc}", metadata=metadata, cause=exc)


def _transport_error(exc: Exception) -> OptidashError:
    if isinstance(exc, httpx.TimeoutException):
        return OptidashTimeoutError("Request timed out", cause=exc)
    return OptidashNetworkError(f"Network error: {exc}", cause=exc)


_TRANSPORT_ERRORS = (httpx.HTTPError, httpx.InvalidURL, httpx.StreamError)


def _validation_failure(plan: DispatchPlan) -> OptidashValidationError:
    return OptidashValidationError(plan.errors[0], errors=plan.errors)


def _send_json(client: httpx.Client, url: str, kwargs: dict[str, Any], completion: Completion) -> None:
    response = client.post(url, **kwargs)
    _resolve_json(response, completion)


def _write_file(chunks: Iterator[bytes], plan: DispatchPlan, metadata: dict[str, Any], completion: Completion) -> None:
    try:
        with destination_writer(plan.destination) as writer:
            for chunk in chunks:
                writer.write(chunk)
    except OSError as exc:
        completion.resolve(_write_error(exc, metadata), metadata)
        return
    completion.resolve(None, metadata)


def _send_binary(
    client: httpx.Client,
    url: str,
    kwargs: dict[str, Any],
    plan: DispatchPlan,
    completion: Completion,
) -> None:
    # Headers are checked before the body is read, so nothing reaches the
    # sink for a failed request.
    with client.stream("POST", url, **kwargs) as response:
        metadata = _header_metadata(response, completion)
        if metadata is None:
            return
        if not response.is_success and not metadata:
            metadata = _body_metadata(response.read())
        failure = _failure(response, metadata)
        if failure is not None:
            completion.resolve(failure, metadata)
            return

        if plan.sink is Sink.FILE:
            _write_file(response.iter_bytes(), plan, metadata, completion)
        else:
            completion.resolve(None, metadata, b"".join(response.iter_bytes()))


def dispatch(
    plan: DispatchPlan,
    settings: ClientSettings,
    callback: Callable[[DispatchResult], Any] | None = None,
) -> DispatchResult:
    """Send one request and deliver its outcome to `callback` exactly once."""
    completion = Completion()
    if plan.errors:
        completion.resolve(_validation_failure(plan))
    else:
        url = _endpoint(plan, settings)
        try:
            with _source_part(plan) as part, httpx.Client(**_client_kwargs(plan, settings)) as client:
                kwargs = _request_kwargs(plan, settings, part)
                _log_request(plan, url, kwargs)
                if plan.is_binary:
                    _send_binary(client, url, kwargs, plan, completion)
                else:
                    _send_json(client, url, kwargs, completion)
        except _TRANSPORT_ERRORS as exc:
            completion.resolve(_transport_error(exc))
        except OSError as exc:
            completion.resolve(OptidashIOError(f"Unable to read upload source: {exc}", cause=exc))

    result, _ = completion.deliver(callback)
    return result


async def _write_file_async(
    chunks: AsyncIterator[bytes],
    plan: DispatchPlan,
    metadata: dict[str, Any],
    completion: Completion,
) -> None:
    try:
        async with async_destination_writer(plan.destination) as writer:
            async for chunk in chunks:
                await writer.write(chunk)
    except OSError as exc:
        completion.resolve(_write_error(exc, metadata), metadata)
        return
    completion.resolve(None, metadata)


async def _send_binary_async(
    client: httpx.AsyncClient,
    url: str,
    kwargs: dict[str, Any],
    plan: DispatchPlan,
    completion: Completion,
) -> None:
    async with client.stream("POST", url, **kwargs) as response:
        metadata = _header_metadata(response, completion)
        if metadata is None:
            return
        if not response.is_success and not metadata:
            metadata = _body_metadata(await response.aread())
        failure = _failure(response, metadata)
        if failure is not None:
            completion.resolve(failure, metadata)
            return

        if plan.sink is Sink.FILE:
            await _write_file_async(response.aiter_bytes(), plan, metadata, completion)
        else:
            chunks = [chunk async for chunk in response.aiter_bytes()]
            completion.resolve(None, metadata, b"".join(chunks))


async def async_dispatch(
    plan: DispatchPlan,
    settings: ClientSettings,
    callback: Callable[[DispatchResult], Any | Awaitable[Any]] | None = None,
) -> DispatchResult:
    """Asyncio counterpart of `dispatch`; `callback` may be a coroutine function."""
    completion = Completion()
    if plan.errors:
        completion.resolve(_validation_failure(plan))
    else:
        url = _endpoint(plan, settings)
        try:
            async with _async_source_part(plan) as part:
                async with httpx.AsyncClient(**_client_kwargs(plan, settings)) as client:
                    kwargs = _request_kwargs(plan, settings, part)
                    _log_request(plan, url, kwargs)
                    if plan.is_binary:
                        await _send_binary_async(client, url, kwargs, plan, completion)
                    else:
                        response = await client.post(url, **kwargs)
                        _resolve_json(response, completion)
        except _TRANSPORT_ERRORS as exc:
            completion.resolve(_transport_error(exc))
        except OSError as exc:
            completion.resolve(OptidashIOError(f"Unable to read upload source: {exc}", cause=exc))

    result, outcome = completion.deliver(callback)
    if inspect.isawaitable(outcome):
        await outcome
    return result
