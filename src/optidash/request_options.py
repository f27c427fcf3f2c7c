"""Request accumulator and the validated plan handed to the dispatcher."""

from __future__ import annotations

import enum
import json
import os
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

import httpx

from .streams import is_readable_stream, is_writable_stream


UPLOAD_INPUT_ERROR = (
    "Optidash upload(string|stream) method requires a valid file path or a stream passed as an argument"
)
FETCH_INPUT_ERROR = "Optidash fetch(string) method requires a valid file URL passed as an argument"
ONE_INPUT_ERROR = (
    "Optidash only accepts one file input method per call: upload(string|stream) or fetch(string)"
)
ONE_SINK_ERROR = (
    "Optidash only accepts one response method per call: "
    "toJSON(fn), toFile(string|stream, fn) or toBuffer(fn)"
)
NO_INPUT_ERROR = "No file input has been specified: upload(string|stream) or fetch(string)"
JSON_CALLBACK_ERROR = "Optidash toJSON(fn) method requires a callback function"
FILE_CALLBACK_ERROR = (
    "Optidash toFile(string|stream, fn) method requires a callback function as a second parameter"
)
BUFFER_CALLBACK_ERROR = "Optidash toBuffer(fn) method requires a callback function"
PROXY_ERROR = "Optidash proxy(string) method requires a valid proxy URL such as http://host:port"
SERIALIZATION_ERROR = "Optidash operation parameters must be JSON serializable"
FILE_DESTINATION_ERROR = (
    "Optidash toFile(string|stream, fn) method requires a file path or a stream as a first parameter"
)


class Transport(str, enum.Enum):
    UPLOAD = "upload"
    FETCH = "fetch"


class Sink(str, enum.Enum):
    JSON = "json"
    FILE = "file"
    BUFFER = "buffer"

    @property
    def is_binary(self) -> bool:
        return self is not Sink.JSON

    @property
    def signature(self) -> str:
        return {
            Sink.JSON: "toJSON(fn)",
            Sink.FILE: "toFile(string|stream, fn)",
            Sink.BUFFER: "toBuffer(fn)",
        }[self]


@dataclass
class RequestOptions:
    """Mutable accumulator owned by a single client instance.

    Setters write into it; nothing here is validated as a combination until a
    terminal call asks for a `DispatchPlan`.
    """

    key: str
    request: dict[str, Any] = field(default_factory=dict)
    transport: Transport | None = None
    source: Any = None
    proxy: str | None = None
    sink: Sink | None = None
    errors: list[str] = field(default_factory=list)

    def set_operation(self, name: str, params: Mapping[str, Any]) -> None:
        self.request[name] = dict(params)

    def set_upload(self, source: Any) -> None:
        if not (isinstance(source, (str, os.PathLike, bytes, bytearray)) or is_readable_stream(source)):
            self.errors.append(UPLOAD_INPUT_ERROR)
        if self.transport is Transport.FETCH:
            self.errors.append(ONE_INPUT_ERROR)
        self.source = source
        self.transport = Transport.UPLOAD

    def set_fetch(self, url: Any) -> None:
        if not isinstance(url, str):
            self.errors.append(FETCH_INPUT_ERROR)
        if self.transport is Transport.UPLOAD:
            self.errors.append(ONE_INPUT_ERROR)
        self.request["url"] = url
        self.transport = Transport.FETCH


@dataclass(frozen=True)
class DispatchPlan:
    """Immutable snapshot of one terminal call."""

    key: str
    sink: Sink
    request: Mapping[str, Any]
    transport: Transport | None = None
    source: Any = None
    destination: Any = None
    proxy: str | None = None
    errors: tuple[str, ...] = ()

    @property
    def is_binary(self) -> bool:
        return self.sink.is_binary


def _is_valid_proxy(proxy: str) -> bool:
    try:
        httpx.Proxy(proxy)
    except (ValueError, httpx.InvalidURL):
        return False
    return True


def _is_serializable(request: Mapping[str, Any]) -> bool:
    try:
        json.dumps(dict(request))
    except (TypeError, ValueError):
        return False
    return True


def collect_errors(
    options: RequestOptions,
    sink: Sink,
    *,
    destination: Any = None,
    callback: Any = None,
) -> list[str]:
    """Return every configuration problem for a terminal call, in reporting order."""
    errors = list(options.errors)

    if options.sink is not None:
        errors.append(ONE_SINK_ERROR)
    if sink is Sink.FILE and not (isinstance(destination, (str, os.PathLike)) or is_writable_stream(destination)):
        errors.append(FILE_DESTINATION_ERROR)
    if sink is Sink.JSON and callback is not None and not callable(callback):
        errors.append(JSON_CALLBACK_ERROR)
    if options.transport is None:
        errors.append(NO_INPUT_ERROR)
    if options.proxy is not None and not _is_valid_proxy(options.proxy):
        errors.append(PROXY_ERROR)
    if not _is_serializable(options.request):
        errors.append(SERIALIZATION_ERROR)

    if sink.is_binary:
        if options.request.get("webhook"):
            errors.append(
                f"Binary responses with {sink.signature} method are not supported when using Webhooks"
            )
        if options.request.get("store"):
            errors.append(
                f"Binary responses with {sink.signature} method are not supported when using External Storage"
            )
    return errors


def build_plan(
    options: RequestOptions,
    sink: Sink,
    *,
    destination: Any = None,
    callback: Any = None,
) -> DispatchPlan:
    """Validate the accumulated options and freeze them for one dispatch.

    The sink is recorded on the accumulator so that a second terminal call on
    the same builder is reported as a conflict.
    """
    errors = collect_errors(options, sink, destination=destination, callback=callback)
    options.sink = sink

    request = dict(options.request)
    if sink.is_binary:
        request["response"] = {"mode": "binary"}

    return DispatchPlan(
        key=options.key,
        sink=sink,
        request=MappingProxyType(request),
        transport=options.transport,
        source=options.source,
        destination=destination,
        proxy=options.proxy,
        errors=tuple(errors),
    )
