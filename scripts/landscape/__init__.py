"""Landscape integration module - signed calls to the Landscape API"""

__version__ = "0.1.0"

from .api import HttpTransport, LandscapeAPI
from .config import LandscapeSettings, load_settings
from .exceptions import (
    ApiError,
    ConfigurationError,
    DecodeError,
    LandscapeError,
    NetworkError,
    ScriptNotFoundError,
    UnexpectedStatus,
    UnknownActionError,
)
from .models import ApiCall, ApiCredentials, CanonicalRequest

__all__ = [
    "ApiCall",
    "ApiCredentials",
    "ApiError",
    "CanonicalRequest",
    "ConfigurationError",
    "DecodeError",
    "HttpTransport",
    "LandscapeAPI",
    "LandscapeError",
    "LandscapeSettings",
    "NetworkError",
    "ScriptNotFoundError",
    "UnexpectedStatus",
    "UnknownActionError",
    "load_settings",
]
