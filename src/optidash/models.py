"""Typed parameter models for the Optidash image operations.

Every model allows extra keys so that API parameters added server side can be
passed through without a client release. Unset fields are dropped when the
model is serialized into the request body.
"""

from __future__ import annotations

from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict


class OptidashModel(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    def to_request(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True, by_alias=True)


class OptimizeOptions(OptidashModel):
    compression: str | None = None
    lossless: bool | None = None
    chroma: str | None = None


class FlipOptions(OptidashModel):
    horizontal: bool | None = None
    vertical: bool | None = None


class ResizeOptions(OptidashModel):
    mode: str | None = None
    width: int | None = None
    height: int | None = None
    gravity: str | None = None
    background: str | None = None


class ScaleOptions(OptidashModel):
    width: int | None = None
    height: int | None = None


class CropOptions(OptidashModel):
    mode: str | None = None
    width: int | None = None
    height: int | None = None
    x: int | None = None
    y: int | None = None
    gravity: str | None = None
    scale: bool | None = None


class WatermarkOptions(OptidashModel):
    url: str | None = None
    gravity: str | None = None
    opacity: float | None = None
    scale: float | None = None
    position: Mapping[str, Any] | None = None


class MaskOptions(OptidashModel):
    shape: str | None = None
    background: str | None = None


class FilterOptions(OptidashModel):
    blur: Mapping[str, Any] | None = None
    sharpen: Mapping[str, Any] | None = None
    grayscale: bool | None = None
    sepia: float | None = None
    invert: bool | None = None


class AdjustOptions(OptidashModel):
    brightness: float | None = None
    contrast: float | None = None
    exposure: float | None = None
    saturation: float | None = None
    vibrance: float | None = None
    hue: float | None = None
    gamma: float | None = None


class AutoOptions(OptidashModel):
    brightness: bool | None = None
    contrast: bool | None = None
    sharpen: bool | None = None
    straighten: bool | None = None


class BorderOptions(OptidashModel):
    size: int | None = None
    color: str | None = None
    radius: int | None = None


class PaddingOptions(OptidashModel):
    size: int | None = None
    top: int | None = None
    right: int | None = None
    bottom: int | None = None
    left: int | None = None
    color: str | None = None


class StoreOptions(OptidashModel):
    provider: str | None = None
    key: str | None = None
    secret: str | None = None
    bucket: str | None = None
    region: str | None = None
    path: str | None = None
    acl: str | None = None
    metadata: Mapping[str, str] | None = None
    headers: Mapping[str, str] | None = None


class OutputOptions(OptidashModel):
    format: str | None = None
    quality: int | None = None
    background: str | None = None
    progressive: bool | None = None


class WebhookOptions(OptidashModel):
    url: str | None = None


class CdnOptions(OptidashModel):
    ttl: int | None = None
    cache: bool | None = None


OPERATION_MODELS: dict[str, type[OptidashModel]] = {
    "optimize": OptimizeOptions,
    "flip": FlipOptions,
    "resize": ResizeOptions,
    "scale": ScaleOptions,
    "crop": CropOptions,
    "watermark": WatermarkOptions,
    "mask": MaskOptions,
    "filter": FilterOptions,
    "adjust": AdjustOptions,
    "auto": AutoOptions,
    "border": BorderOptions,
    "padding": PaddingOptions,
    "store": StoreOptions,
    "output": OutputOptions,
    "webhook": WebhookOptions,
    "cdn": CdnOptions,
}
