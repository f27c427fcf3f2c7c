"""Python client for the Optidash image processing API."""

from .client import AsyncOptidash, Optidash
from .dispatcher import DispatchResult
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
from .models import (
    AdjustOptions,
    AutoOptions,
    BorderOptions,
    CdnOptions,
    CropOptions,
    FilterOptions,
    FlipOptions,
    MaskOptions,
    OptimizeOptions,
    OutputOptions,
    PaddingOptions,
    ResizeOptions,
    ScaleOptions,
    StoreOptions,
    WatermarkOptions,
    WebhookOptions,
)

__version__ = "1.0.0"
__all__ = [
    "Optidash",
    "AsyncOptidash",
    "DispatchResult",
    "OptidashError",
    "OptidashValidationError",
    "OptidashHTTPError",
    "OptidashAuthError",
    "OptidashRateLimitError",
    "OptidashAPIError",
    "OptidashNetworkError",
    "OptidashTimeoutError",
    "OptidashIOError",
    "OptidashParseError",
    "OptimizeOptions",
    "FlipOptions",
    "ResizeOptions",
    "ScaleOptions",
    "CropOptions",
    "WatermarkOptions",
    "MaskOptions",
    "FilterOptions",
    "AdjustOptions",
    "AutoOptions",
    "BorderOptions",
    "PaddingOptions",
    "StoreOptions",
    "OutputOptions",
    "WebhookOptions",
    "CdnOptions",
]
