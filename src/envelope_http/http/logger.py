"""
HTTP traffic logger for debugging and auditing.

Writes every request, response, stream line and transport error to a file,
one entry per line, correlated by a per-call request ID.
"""

import json
from datetime import UTC
from datetime import datetime
from pathlib import Path
from typing import Any
from typing import Protocol

SENSITIVE_HEADERS = {"authorization", "proxy-authorization", "cookie", "x-api-key", "api-key"}


class HTTPLogger(Protocol):
    """Protocol for HTTP traffic logging callbacks."""

    def log_request(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        body: Any,
        request_id: str | None = None,
    ) -> None:
        """Log an outgoing HTTP request."""
        ...

    def log_response(
        self,
        url: str,
        status: int,
        body: Any,
        request_id: str | None = None,
    ) -> None:
        """Log an incoming HTTP response."""
        ...

    def log_sse_chunk(
        self,
        url: str,
        data: str,
        request_id: str | None = None,
    ) -> None:
        """Log one line of a streamed response."""
        ...

    def log_error(
        self,
        url: str,
        message: str,
        request_id: str | None = None,
    ) -> None:
        """Log a failed request."""
        ...


def mask_headers(headers: dict[str, str]) -> dict[str, str]:
    """Mask credential-bearing header values, keeping a short prefix and suffix."""
    masked = {}
    for key, value in headers.items():
        if key.lower() not in SENSITIVE_HEADERS:
            masked[key] = value
        elif len(value) > 14:
            masked[key] = value[:10] + "..." + value[-4:]
        else:
            masked[key] = "***"
    return masked


class FileHTTPLogger:
    """
    Logs HTTP traffic to a file.

    Format:
        [timestamp] [request_id] [direction] [type] payload

    Where:
        - timestamp: ISO 8601, millisecond precision, UTC
        - request_id: ID shared by all entries of one call, or "no-request"
        - direction: >>> outgoing, <<< incoming, !!! failure
        - type: REQUEST, RESPONSE, SSE or ERROR
        - payload: JSON-formatted data
    """

    def __init__(self, log_file: Path):
        """
        Initialize the file logger.

        Args:
            log_file: Path to the log file. Parent directories are created
                      if they don't exist.
        """
        self.log_file = log_file
        self.log_file.parent.mkdir(parents=True, exist_ok=True)
        self.log_file.touch(exist_ok=True)

    def _write(self, request_id: str | None, marker: str, payload: dict[str, Any]) -> None:
        timestamp = datetime.now(UTC).isoformat(timespec="milliseconds")
        rid = request_id or "no-request"
        entry = f"[{timestamp}] [{rid}] {marker} {json.dumps(payload, ensure_ascii=False, default=str)}"
        with self.log_file.open("a", encoding="utf-8") as f:
            f.write(entry + "\n")

    def log_request(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        body: Any,
        request_id: str | None = None,
    ) -> None:
        self._write(
            request_id,
            ">>> REQUEST",
            {"method": method, "url": url, "headers": mask_headers(headers), "body": body},
        )

    def log_response(
        self,
        url: str,
        status: int,
        body: Any,
        request_id: str | None = None,
    ) -> None:
        self._write(request_id, "<<< RESPONSE", {"url": url, "status": status, "body": body})

    def log_sse_chunk(
        self,
        url: str,
        data: str,
        request_id: str | None = None,
    ) -> None:
        # Stream lines are usually JSON; keep them structured in the log when they are
        parsed: Any
        try:
            parsed = json.loads(data)
        except json.JSONDecodeError:
            parsed = data
        self._write(request_id, "<<< SSE", {"url": url, "data": parsed})

    def log_error(
        self,
        url: str,
        message: str,
        request_id: str | None = None,
    ) -> None:
        self._write(request_id, "!!! ERROR", {"url": url, "message": message})
