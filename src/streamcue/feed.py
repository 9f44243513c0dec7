"""WebSocket trigger feed: receives redemptions, cheers and commands, and carries chat replies back."""

import asyncio
import random
import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any

import websockets
from pydantic import ValidationError

from .error_boundary import safe_handler
from .events import ChatOutMessage, CheerMessage, CommandMessage, RedemptionMessage, feed_message_adapter
from .logger import get_logger
from .task_tracker import TaskTracker
from .triggers import TriggerRegistry

logger = get_logger(__name__)


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    FAILED = "failed"


class ReconnectingWebSocketClient(ABC):
    """WebSocket client that reconnects with exponential backoff and jitter.

    ``max_reconnect_attempts`` of 0 retries forever.
    """

    def __init__(
        self,
        url: str,
        max_reconnect_attempts: int = 0,
        reconnect_delay_base: float = 1.0,
        reconnect_delay_cap: float = 60.0,
    ):
        self.url = url
        self.max_reconnect_attempts = max_reconnect_attempts
        self.reconnect_delay_base = reconnect_delay_base
        self.reconnect_delay_cap = reconnect_delay_cap

        self.state = ConnectionState.DISCONNECTED
        self._reconnect_attempts = 0
        self._reconnect_delay = reconnect_delay_base
        self._should_reconnect = True

        self.total_reconnects = 0
        self.successful_connects = 0
        self.last_connected_at = 0.0

    @abstractmethod
    async def _do_connect(self) -> bool:
        """Single connection attempt."""

    @abstractmethod
    async def _do_disconnect(self) -> None: ...

    @abstractmethod
    async def _do_listen(self) -> None:
        """Consume messages until the connection closes."""

    def _set_state(self, state: ConnectionState) -> None:
        if state is not self.state:
            logger.debug("Feed connection state changed", url=self.url, old=self.state.value, new=state.value)
            self.state = state

    def _attempts_exhausted(self) -> bool:
        return self.max_reconnect_attempts > 0 and self._reconnect_attempts >= self.max_reconnect_attempts

    async def connect(self) -> bool:
        self._set_state(ConnectionState.CONNECTING)
        self._reconnect_attempts = 0
        self._reconnect_delay = self.reconnect_delay_base

        while self._should_reconnect:
            try:
                logger.info("Attempting connection", url=self.url, attempt=self._reconnect_attempts + 1)
                if await self._do_connect():
                    self.successful_connects += 1
                    self.last_connected_at = time.time()
                    self._set_state(ConnectionState.CONNECTED)
                    logger.info("Connection established", url=self.url)
                    return True
            except asyncio.CancelledError:
                self._set_state(ConnectionState.FAILED)
                raise
            except Exception as e:
                logger.error("Connection attempt failed", url=self.url, error=str(e))

            self._reconnect_attempts += 1
            if self._attempts_exhausted():
                logger.error("Failed to connect after max attempts", url=self.url, attempts=self._reconnect_attempts)
                self._set_state(ConnectionState.FAILED)
                return False

            delay = self._reconnect_delay + random.uniform(0, 0.1) * self._reconnect_delay
            await asyncio.sleep(delay)
            self._reconnect_delay = min(self._reconnect_delay * 2, self.reconnect_delay_cap)

        return False

    async def listen_with_reconnect(self) -> None:
        while self._should_reconnect:
            try:
                if self.state is not ConnectionState.CONNECTED and not await self.connect():
                    break
                await self._do_listen()
                logger.info("Connection closed by server", url=self.url)
                await self._on_connection_lost()
            except websockets.exceptions.ConnectionClosed:
                logger.info("Connection lost", url=self.url)
                await self._on_connection_lost()
            except asyncio.CancelledError:
                logger.info("Listen loop cancelled", url=self.url)
                self._set_state(ConnectionState.DISCONNECTED)
                raise
            except Exception as e:
                logger.error("Unexpected error in listen loop", url=self.url, error=str(e), exc_info=e)
                self._set_state(ConnectionState.DISCONNECTED)
                if not self._should_reconnect:
                    break
                await asyncio.sleep(1)

    async def _on_connection_lost(self) -> None:
        self.total_reconnects += 1
        self._set_state(ConnectionState.DISCONNECTED)
        if not self._should_reconnect:
            return
        self._set_state(ConnectionState.RECONNECTING)
        await asyncio.sleep(min(self._reconnect_delay, self.reconnect_delay_cap))
        self._reconnect_delay = min(self._reconnect_delay * 2, self.reconnect_delay_cap)

    async def disconnect(self) -> None:
        logger.info("Disconnecting", url=self.url)
        self._should_reconnect = False
        await self._do_disconnect()
        self._set_state(ConnectionState.DISCONNECTED)

    def get_status(self) -> dict[str, Any]:
        return {
            "connected": self.state is ConnectionState.CONNECTED,
            "connection_state": self.state.value,
            "url": self.url,
            "reconnect_attempts": self._reconnect_attempts,
            "total_reconnects": self.total_reconnects,
            "successful_connects": self.successful_connects,
        }


class TriggerFeedClient(ReconnectingWebSocketClient):
    """Feeds trigger events into the TriggerRegistry and acts as the chat sink.

    Inbound JSON: ``{"type": "redemption" | "cheer" | "command", ...}``.
    Outbound JSON: ``{"type": "chat", "text": ...}``.
    """

    def __init__(
        self,
        url: str,
        registry: TriggerRegistry,
        tracker: TaskTracker,
        command_prefix: str = "!",
        **kwargs,
    ):
        super().__init__(url, **kwargs)
        self._registry = registry
        self._tracker = tracker
        self.command_prefix = command_prefix
        self.ws = None
        self.messages_received = 0
        self.messages_rejected = 0

    async def _do_connect(self) -> bool:
        try:
            self.ws = await websockets.connect(self.url)
            return True
        except (OSError, websockets.exceptions.WebSocketException) as e:
            logger.error("Failed to connect to trigger feed", url=self.url, error=str(e))
            return False

    async def _do_disconnect(self) -> None:
        if self.ws is not None:
            await self.ws.close()
            self.ws = None

    async def _do_listen(self) -> None:
        if self.ws is None:
            raise RuntimeError("Not connected to trigger feed")
        async for raw in self.ws:
            self.handle_message(raw)

    def handle_message(self, raw: str | bytes) -> asyncio.Task | None:
        """Validate one feed message and dispatch it on a tracked task."""
        self.messages_received += 1
        try:
            message = feed_message_adapter.validate_json(raw)
        except ValidationError as e:
            self.messages_rejected += 1
            preview = raw[:100] if isinstance(raw, str) else raw[:100].decode(errors="replace")
            logger.warning("Invalid feed message", error_count=e.error_count(), message_preview=preview)
            return None
        return self._tracker.create_task(self._dispatch(message), name=f"feed:{message.type}")

    @safe_handler
    async def _dispatch(self, message: RedemptionMessage | CheerMessage | CommandMessage) -> None:
        if isinstance(message, RedemptionMessage):
            await self._registry.handle_redemption(message.reward_id, message.to_user(), message)
        elif isinstance(message, CheerMessage):
            await self._registry.handle_cheer(message.to_user(), message)
        elif isinstance(message, CommandMessage):
            if self.command_prefix and not message.text.strip().startswith(self.command_prefix):
                return
            word, user_input = message.split(self.command_prefix)
            if word:
                await self._registry.handle_command(word, message.to_user(user_input), message)

    async def send_chat(self, text: str) -> None:
        if self.ws is None or self.state is not ConnectionState.CONNECTED:
            logger.warning("Chat message dropped, feed not connected", text_preview=text[:100])
            return
        await self.ws.send(ChatOutMessage(text=text).model_dump_json())
