"""
Example showing envelope-aware requests with handlers and a traffic log.

Set ENVELOPE_HTTP_BASE_URL (and optionally ENVELOPE_HTTP_TOKEN) in the
environment or a .env file.
"""

import asyncio
import os
from logging import basicConfig
from logging import getLogger
from pathlib import Path

from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.text import Text

from envelope_http import BusinessError
from envelope_http import FileHTTPLogger
from envelope_http import Handlers
from envelope_http import HttpClient
from envelope_http import RequestConfig
from envelope_http import RequestError

load_dotenv()

logger = getLogger(__name__)
console = Console()


def add_token(config: RequestConfig) -> RequestConfig:
    """Attach the bearer token to every request."""
    token = os.getenv("ENVELOPE_HTTP_TOKEN")
    if token:
        config.headers["Authorization"] = f"Bearer {token}"
    return config


def show_message(message: str) -> None:
    toast = Text()
    toast.append("Toast: ", style="bold yellow")
    toast.append(message, style="yellow")
    console.print(toast)


def on_backend_error(code: int | None, message: str) -> None:
    if code == 40101:
        console.print("[red]Session expired, please log in again.[/red]")
    else:
        show_message(message or f"backend error {code}")


async def main() -> None:
    console.print(Panel.fit("[bold blue]envelope_http request example[/bold blue]"))

    base_url = os.getenv("ENVELOPE_HTTP_BASE_URL", "http://localhost:8000/api")
    log_file = Path("logs") / "http.log"

    client = HttpClient(
        base_url,
        handlers=Handlers(
            handle_request_header=add_token,
            handle_global_message=show_message,
            handle_backend_error=on_backend_error,
        ),
        request_config=RequestConfig(timeout=60.0),
        http_logger=FileHTTPLogger(log_file),
    )

    async with client:
        try:
            user = await client.get("/users/1", {"expand": "profile"})
            console.print(f"[green]User:[/green] {user}")

            created = await client.post(
                "/users",
                {"name": "alice"},
                RequestConfig(show_global_message=False),
            )
            console.print(f"[green]Created:[/green] {created}")
        except BusinessError as e:
            logger.warning(f"Business error {e.code}: {e.message}")
        except RequestError as e:
            logger.error(f"Request failed: {e.message}")

    console.print(f"\n[dim]HTTP traffic logged to: {log_file.absolute()}[/dim]")


if __name__ == "__main__":
    basicConfig(
        level="INFO",
        format="[%(name)s] %(message)s",
        handlers=[RichHandler(rich_tracebacks=True)],
    )
    asyncio.run(main())
