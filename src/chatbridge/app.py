"""Application bootstrap — builds the chat service and runs a console chat.

This is the single place that wires config, credential, ClientCache,
SessionStore and ChatService together, then drives them from stdin.

Console commands:
    /clear  forget the current conversation
    /ping   measure backend round-trip latency
    /info   show the default backend configuration
    /quit   exit (Ctrl+C / Ctrl+D work too)
"""

from __future__ import annotations

import asyncio
import signal
import threading
from collections.abc import Awaitable
from typing import TypeVar

from loguru import logger

from chatbridge.config import get_config
from chatbridge.errors import ChatBridgeError
from chatbridge.service import ChatService

CONSOLE_SESSION_ID = "console"
PROMPT = "> "

T = TypeVar("T")


class Application:
    """Top-level application that owns the chat service and console I/O."""

    def __init__(
        self,
        service: ChatService | None = None,
        session_id: str = CONSOLE_SESSION_ID,
    ) -> None:
        self.service = service or ChatService.from_config(get_config())
        self.session_id = session_id
        self._lines: asyncio.Queue[str | None] = asyncio.Queue()
        self._shutdown_event = asyncio.Event()

    async def handle_command(self, line: str) -> str | None:
        """Process one console line and return the text to print.

        Returns None when the user asked to quit. Errors from the service
        propagate to the caller.
        """
        line = line.strip()
        if not line:
            return ""

        if line in ("/quit", "/exit"):
            return None

        if line == "/clear":
            self.service.clear_conversation(self.session_id)
            return "Conversation cleared."

        if line == "/ping":
            latency = await self.service.ping()
            return f"Pong: {latency}ms"

        if line == "/info":
            info = self.service.get_service_info()
            lines = [
                f"Endpoint:   {info.endpoint}",
                f"Model:      {info.model_deployment}",
                f"Configured: {'yes' if info.is_configured else 'no'}",
            ]
            if info.configuration_error:
                lines.append(f"Error:      {info.configuration_error}")
            return "\n".join(lines)

        response = await self.service.send_message(self.session_id, line)
        return (
            f"{response.content}\n"
            f"[{response.model} | tokens {response.prompt_tokens}/"
            f"{response.completion_tokens}/{response.total_tokens} | "
            f"{response.response_time_ms}ms]"
        )

    async def start(self) -> None:
        """Run the console loop until /quit, EOF or a shutdown signal."""
        logger.info("chatbridge starting up...")

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self._signal_handler)
        self._start_reader(loop)

        if not self.service.is_configured:
            print(f"Warning: {self.service.configuration_error}")

        while True:
            print(PROMPT, end="", flush=True)
            done, line = await self._until_shutdown(self._lines.get())
            if not done or line is None:
                break

            try:
                done, output = await self._until_shutdown(self.handle_command(line))
            except ChatBridgeError as exc:
                print(f"Error: {exc}")
                continue

            if not done or output is None:
                break
            if output:
                print(output)

        logger.info("Shutting down...")
        await self.service.aclose()
        logger.info("chatbridge stopped.")

    async def _until_shutdown(self, awaitable: Awaitable[T]) -> tuple[bool, T | None]:
        """Await ``awaitable`` unless a shutdown signal arrives first.

        Returns (True, result) on completion, (False, None) when the
        shutdown won; the pending work is cancelled in that case.
        """
        work = asyncio.ensure_future(awaitable)
        stop = asyncio.create_task(self._shutdown_event.wait())
        await asyncio.wait({work, stop}, return_when=asyncio.FIRST_COMPLETED)

        if work.done():
            stop.cancel()
            return True, work.result()

        work.cancel()
        try:
            await work
        except asyncio.CancelledError:
            pass
        return False, None

    def _start_reader(self, loop: asyncio.AbstractEventLoop) -> None:
        """Read stdin on a daemon thread and feed lines into the queue."""

        def _read() -> None:
            while True:
                try:
                    line: str | None = input()
                except EOFError:
                    line = None
                loop.call_soon_threadsafe(self._lines.put_nowait, line)
                if line is None:
                    return

        threading.Thread(target=_read, name="console-reader", daemon=True).start()

    def _signal_handler(self) -> None:
        """Handle SIGINT/SIGTERM by setting the shutdown event."""
        logger.info("Shutdown signal received")
        self._shutdown_event.set()

    def run(self) -> None:
        """Synchronous entry point — creates event loop and runs the app."""
        asyncio.run(self.start())


def main() -> None:
    try:
        app = Application()
    except ChatBridgeError as exc:
        logger.error("Failed to start chatbridge: {}", exc)
        raise SystemExit(1) from exc
    app.run()


if __name__ == "__main__":
    main()
