"""
Example consuming an OpenAI-style SSE chat stream.

Set ENVELOPE_HTTP_BASE_URL to a server exposing POST /chat/completions.
The stream is aborted if it runs longer than 30 seconds.
"""

import asyncio
import os
from logging import basicConfig
from logging import getLogger
from typing import Any

from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel

from envelope_http import HttpClient
from envelope_http import RequestCancelledError
from envelope_http import StreamCallbacks
from envelope_http import StreamError
from envelope_http import StreamRequestOptions

load_dotenv()

logger = getLogger(__name__)
console = Console()


def delta_content(chunk: Any) -> str:
    """Pull the text delta out of a chat completion chunk."""
    choices = chunk.get("choices") or [{}]
    return choices[0].get("delta", {}).get("content") or ""


async def main() -> None:
    console.print(Panel.fit("[bold blue]envelope_http stream example[/bold blue]"))

    base_url = os.getenv("ENVELOPE_HTTP_BASE_URL", "http://localhost:8000/v1")
    api_key = os.getenv("OPENAI_API_KEY", "")

    callbacks = StreamCallbacks(
        on_start=lambda: console.print("[dim]Receiving stream...[/dim]"),
        on_message=lambda chunk, full_text: console.print(chunk, end=""),
        on_complete=lambda full_text: console.print(f"\n[green]Done, {len(full_text)} chars[/green]"),
        on_error=lambda error: console.print(f"\n[red]Stream failed: {error}[/red]"),
    )

    async with HttpClient(base_url) as client:
        consumer = client.stream_consumer(
            StreamRequestOptions(
                url="/chat/completions",
                headers={"Authorization": f"Bearer {api_key}"},
                body={
                    "model": "gpt-4o-mini",
                    "stream": True,
                    "messages": [{"role": "user", "content": "Tell me a short story."}],
                },
                extract_content=delta_content,
            ),
            callbacks,
        )
        asyncio.get_running_loop().call_later(30, consumer.abort)
        try:
            result = await consumer.run()
            logger.info(f"Final text: {result.full_text[:100]}...")
        except RequestCancelledError:
            logger.info("Stream aborted")
        except StreamError as e:
            logger.error(f"Server refused the stream: {e}")


if __name__ == "__main__":
    basicConfig(
        level="INFO",
        format="[%(name)s] %(message)s",
        handlers=[RichHandler(rich_tracebacks=True)],
    )
    asyncio.run(main())
