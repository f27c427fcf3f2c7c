"""Main synchronous and asynchronous clients for the Optidash API."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Mapping, TypeVar

from pydantic import BaseModel

from .dispatcher import ClientSettings, DispatchResult, async_dispatch, dispatch
from .exceptions import OptidashValidationError
from .models import OPERATION_MODELS
from .request_options import (
    BUFFER_CALLBACK_ERROR,
    FILE_CALLBACK_ERROR,
    RequestOptions,
    Sink,
    build_plan,
)
from .security import validate_base_url

logger = logging.getLogger(__name__)

_SelfT = TypeVar("_SelfT", bound="_BaseOptidash")

MetaCallback = Callable[[Exception | None, dict[str, Any]], Any]
BufferCallback = Callable[[Exception | None, dict[str, Any], bytes | None], Any]


def _normalize_headers(headers: Mapping[str, str] | None) -> dict[str, str]:
    if not headers:
        return {}
    clean: dict[str, str] = {}
    for key, value in headers.items():
        clean[str(key)] = str(value)
    return clean


def _coerce_params(name: str, data: Any) -> dict[str, Any] | None:
    if isinstance(data, OPERATION_MODELS[name]):
        return data.to_request()
    if isinstance(data, BaseModel):
        return None
    if isinstance(data, Mapping):
        return dict(data)
    return None


def _meta_callback(callback: MetaCallback | None) -> Callable[[DispatchResult], Any] | None:
    if callback is None or not callable(callback):
        return None
    return lambda result: callback(result.error, result.metadata)


def _buffer_callback(callback: BufferCallback | None) -> Callable[[DispatchResult], Any] | None:
    if callback is None:
        return None
    return lambda result: callback(result.error, result.metadata, result.payload)


class _BaseOptidash:
    default_base_url = "https://api.optidash.ai/1.0"
    default_timeout = 30.0
    user_agent = "optidash-python/1.0.0"

    def __init__(
        self,
        key: str,
        *,
        base_url: str | None = None,
        timeout: float = default_timeout,
        verify_ssl: bool = True,
        headers: Mapping[str, str] | None = None,
        transport: Any = None,
    ) -> None:
        if not isinstance(key, str) or not key:
            raise OptidashValidationError("Optidash constructor requires a valid API Key")
        if timeout <= 0:
            raise OptidashValidationError("timeout must be greater than 0")

        self.base_url = (base_url or self.default_base_url).rstrip("/")
        validate_base_url(self.base_url)
        if not verify_ssl:
            logger.warning("TLS certificate verification is disabled for %s", self.base_url)

        default_headers = {
            "Accept": "application/json",
            "User-Agent": self.user_agent,
        }
        default_headers.update(_normalize_headers(headers))
        self._settings = ClientSettings(
            base_url=self.base_url,
            timeout=float(timeout),
            verify_ssl=verify_ssl,
            headers=default_headers,
            transport=transport,
        )
        self.options = RequestOptions(key=key)

    def _operation(self: _SelfT, name: str, data: Any) -> _SelfT:
        params = _coerce_params(name, data)
        if params is None:
            logger.debug("Ignoring %s() parameters of type %s", name, type(data).__name__)
            return self
        self.options.set_operation(name, params)
        return self

    def upload(self: _SelfT, source: Any) -> _SelfT:
        """Upload a local image: a file path, a readable binary stream or raw bytes."""
        self.options.set_upload(source)
        return self

    def fetch(self: _SelfT, url: str) -> _SelfT:
        """Process an image already hosted at `url`."""
        self.options.set_fetch(url)
        return self

    def proxy(self: _SelfT, address: str) -> _SelfT:
        if isinstance(address, str):
            self.options.proxy = address
        return self

    def optimize(self: _SelfT, data: Any) -> _SelfT:
        return self._operation("optimize", data)

    def flip(self: _SelfT, data: Any) -> _SelfT:
        return self._operation("flip", data)

    def resize(self: _SelfT, data: Any) -> _SelfT:
        return self._operation("resize", data)

    def scale(self: _SelfT, data: Any) -> _SelfT:
        return self._operation("scale", data)

    def crop(self: _SelfT, data: Any) -> _SelfT:
        return self._operation("crop", data)

    def watermark(self: _SelfT, data: Any) -> _SelfT:
        return self._operation("watermark", data)

    def mask(self: _SelfT, data: Any) -> _SelfT:
        """Apply an elliptical mask."""
        return self._operation("mask", data)

    def filter(self: _SelfT, data: Any) -> _SelfT:
        return self._operation("filter", data)

    def adjust(self: _SelfT, data: Any) -> _SelfT:
        return self._operation("adjust", data)

    def auto(self: _SelfT, data: Any) -> _SelfT:
        """Automatically enhance the image."""
        return self._operation("auto", data)

    def border(self: _SelfT, data: Any) -> _SelfT:
        return self._operation("border", data)

    def padding(self: _SelfT, data: Any) -> _SelfT:
        return self._operation("padding", data)

    def store(self: _SelfT, data: Any) -> _SelfT:
        """Store the processed image in external storage."""
        return self._operation("store", data)

    def output(self: _SelfT, data: Any) -> _SelfT:
        return self._operation("output", data)

    def webhook(self: _SelfT, data: Any) -> _SelfT:
        """Deliver the response to a webhook instead of the HTTP response."""
        return self._operation("webhook", data)

    def cdn(self: _SelfT, data: Any) -> _SelfT:
        return self._operation("cdn", data)

    @staticmethod
    def _require_callable(callback: Any, message: str) -> None:
        if callback is not None and not callable(callback):
            raise OptidashValidationError(message)


class Optidash(_BaseOptidash):
    """Synchronous client.

    Setters return the client so calls chain; a terminal call (`to_json`,
    `to_file`, `to_buffer`) sends the request, invokes the optional callback
    once and returns the `DispatchResult`. Configuration, transport and API
    failures are reported through the result instead of being raised.
    """

    def to_json(self, callback: MetaCallback | None = None) -> DispatchResult:
        plan = build_plan(self.options, Sink.JSON, callback=callback)
        return dispatch(plan, self._settings, _meta_callback(callback))

    def to_file(self, destination: Any, callback: MetaCallback | None = None) -> DispatchResult:
        """Stream a binary response into `destination`, a path or a writable stream."""
        self._require_callable(callback, FILE_CALLBACK_ERROR)
        plan = build_plan(self.options, Sink.FILE, destination=destination)
        return dispatch(plan, self._settings, _meta_callback(callback))

    def to_buffer(self, callback: BufferCallback | None = None) -> DispatchResult:
        """Collect a binary response in memory; the bytes land in `DispatchResult.payload`."""
        self._require_callable(callback, BUFFER_CALLBACK_ERROR)
        plan = build_plan(self.options, Sink.BUFFER)
        return dispatch(plan, self._settings, _buffer_callback(callback))


class AsyncOptidash(_BaseOptidash):
    """Asynchronous client.

    Terminal calls are coroutines. Callbacks may be plain functions or
    coroutine functions; each independent dispatch owns its own snapshot of
    the accumulated options, so several can run concurrently.
    """

    async def to_json(self, callback: Callable[..., Any | Awaitable[Any]] | None = None) -> DispatchResult:
        plan = build_plan(self.options, Sink.JSON, callback=callback)
        return await async_dispatch(plan, self._settings, _meta_callback(callback))

    async def to_file(
        self,
        destination: Any,
        callback: Callable[..., Any | Awaitable[Any]] | None = None,
    ) -> DispatchResult:
        self._require_callable(callback, FILE_CALLBACK_ERROR)
        plan = build_plan(self.options, Sink.FILE, destination=destination)
        return await async_dispatch(plan, self._settings, _meta_callback(callback))

    async def to_buffer(self, callback: Callable[..., Any | Awaitable[Any]] | None = None) -> DispatchResult:
        self._require_callable(callback, BUFFER_CALLBACK_ERROR)
        plan = build_plan(self.options, Sink.BUFFER)
        return await async_dispatch(plan, self._settings, _buffer_callback(callback))
