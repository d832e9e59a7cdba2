"""HTTP client submodule: request pipeline and traffic logging."""

from .client import HttpClient
from .logger import FileHTTPLogger
from .logger import HTTPLogger

__all__ = [
    "FileHTTPLogger",
    "HTTPLogger",
    "HttpClient",
]
