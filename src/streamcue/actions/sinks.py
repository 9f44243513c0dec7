"""Collaborator contracts for non-audio side effects, plus the HTTP and process sinks streamcue ships."""

import asyncio
import shutil
import sys
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

import aiohttp

from ..logger import get_logger
from .models import ActionUser, OverlayConfig, PlugConfig, RewardConfig, SceneConfig, SignConfig

logger = get_logger(__name__)

Handler = Callable[[ActionUser, int | None], Awaitable[Any] | None]


class SceneController(Protocol):
    async def toggle(self, key: str, config: SceneConfig, state: bool) -> None: ...


class LightController(Protocol):
    async def set_light_state(self, light_id: int, x: float, y: float) -> None: ...

    async def run_plug(self, config: PlugConfig) -> None: ...


class OverlaySink(Protocol):
    async def show_preset(self, config: OverlayConfig) -> None: ...

    async def show_sign(self, config: SignConfig) -> None: ...


class ScreenshotDevice(Protocol):
    """Captures a screenshot and fires ``token`` on the completion registry when done."""

    async def capture(
        self, key: str, user: ActionUser, source_name: str | None, delay: float, token: str
    ) -> None: ...


class ChatSink(Protocol):
    async def send_chat(self, text: str) -> None: ...


class WebhookSink(Protocol):
    async def post_message(self, key: str, user_name: str, avatar_url: str | None, text: str) -> None: ...


class WebRequester(Protocol):
    async def get(self, url: str) -> None: ...


class UriLauncher(Protocol):
    async def launch(self, uri: str) -> None: ...


class UserDirectory(Protocol):
    async def avatar_url(self, user_id: str) -> str | None: ...

    async def user_by_login(self, login: str) -> ActionUser | None: ...


class RewardSink(Protocol):
    async def update_reward(self, reward_id: str, config: RewardConfig) -> None: ...


class CommandRunner(Protocol):
    async def run_command(self, word: str, user: ActionUser) -> bool: ...


@dataclass
class Collaborators:
    """Everything the composer may call out to. Unset collaborators disable their kinds."""

    handlers: Mapping[str, Handler] = field(default_factory=dict)
    scenes: SceneController | None = None
    lights: LightController | None = None
    overlay: OverlaySink | None = None
    screenshots: ScreenshotDevice | None = None
    chat: ChatSink | None = None
    webhooks: WebhookSink | None = None
    web: WebRequester | None = None
    launcher: UriLauncher | None = None
    users: UserDirectory | None = None
    rewards: RewardSink | None = None
    commands: CommandRunner | None = None


class DiscordWebhookSink:
    """Posts messages to Discord webhooks, one URL per trigger key. Single attempt, no retry."""

    def __init__(self, webhook_urls: Mapping[str, str], session: aiohttp.ClientSession | None = None):
        self.webhook_urls = dict(webhook_urls)
        self.session = session

    async def post_message(self, key: str, user_name: str, avatar_url: str | None, text: str) -> None:
        url = self.webhook_urls.get(key)
        if not url:
            logger.warning("No webhook configured for trigger", trigger_key=key)
            return
        payload: dict[str, Any] = {"username": user_name, "content": text}
        if avatar_url:
            payload["avatar_url"] = avatar_url

        session = self.session or aiohttp.ClientSession()
        try:
            async with session.post(url, json=payload) as response:
                if response.status >= 400:
                    logger.warning("Webhook rejected message", trigger_key=key, status=response.status)
        finally:
            if session is not self.session:
                await session.close()


class HttpWebRequester:
    """Fire-and-forget GET used by the ``web`` sub-action."""

    def __init__(self, session: aiohttp.ClientSession | None = None, timeout: float = 10.0):
        self.session = session
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    async def get(self, url: str) -> None:
        session = self.session or aiohttp.ClientSession(timeout=self.timeout)
        try:
            async with session.get(url) as response:
                logger.info("Web action requested", url=url, status=response.status)
        finally:
            if session is not self.session:
                await session.close()


def default_open_command() -> list[str]:
    if sys.platform == "darwin":
        return ["open"]
    if sys.platform == "win32":
        return ["cmd", "/c", "start", ""]
    return [shutil.which("xdg-open") or "xdg-open"]


class ProcessUriLauncher:
    """Hands custom URIs (``steam://``, ``obs://``...) to the OS opener."""

    def __init__(self, command: list[str] | None = None):
        self.command = command or default_open_command()

    async def launch(self, uri: str) -> None:
        process = await asyncio.create_subprocess_exec(
            *self.command,
            uri,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )
        code = await process.wait()
        if code != 0:
            logger.warning("URI launcher exited with error", uri=uri, exit_code=code)
