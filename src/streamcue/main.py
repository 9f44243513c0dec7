"""Main entry point for the streamcue service."""

import asyncio
import signal
from typing import Any

import aiohttp
from dotenv import load_dotenv

from . import __version__
from .actions.builtins import speech_handlers
from .actions.composer import ActionComposer, ComposerSettings
from .actions.models import load_events
from .actions.sinks import Collaborators, DiscordWebhookSink, HttpWebRequester, ProcessUriLauncher
from .audio.device import CommandPlaybackDevice
from .audio.sequencer import AudioChannelSequencer
from .completion import CompletionRegistry
from .config import StreamCueConfig, get_config
from .domains.phrasing import PhrasingOptions
from .feed import TriggerFeedClient
from .health import HealthRunner, start_health_server
from .logger import configure_json_logging, get_logger
from .settings_store import InMemorySettingsStore, JsonFileSettingsStore
from .speech.google import GoogleSpeechSynthesizer
from .speech.pipeline import SpeechSynthesisPipeline
from .speech.voices import VoiceLibrary
from .task_tracker import TaskTracker
from .triggers import TriggerRegistry, broadcaster_user

# Load environment variables
load_dotenv()

logger = get_logger(__name__)


class StreamCue:
    """Wires the trigger feed, action composer, speech pipeline and audio channels together."""

    def __init__(self, config: StreamCueConfig):
        self.config = config

        logger.info("Starting service with configuration", service=config.service_name, version=__version__)
        logger.info("Configuration", **config.to_dict())

        self.tracker = TaskTracker("streamcue")
        self.completions = CompletionRegistry(self.tracker)
        if config.storage.settings_dir is not None:
            self.store = JsonFileSettingsStore(config.storage.settings_dir)
        else:
            self.store = InMemorySettingsStore()

        self.synthesizer = GoogleSpeechSynthesizer(
            api_key=config.google.api_key,
            base_url=config.google.base_url,
            timeout=config.google.timeout,
        )
        self.voices = VoiceLibrary(
            self.store,
            self.synthesizer,
            default_voice=config.google.default_voice,
            randomize=config.google.randomize_voice,
            language_filter=config.google.randomize_voice_language_filter,
        )

        player_command = list(config.audio.player_command)
        self.sequencer = AudioChannelSequencer(
            lambda channel_id: CommandPlaybackDevice(self.tracker, player_command, name=f"channel:{channel_id}"),
            self.completions,
            self.tracker,
            tick_interval=config.audio.tick_interval,
        )

        speech = config.speech
        self.pipeline = SpeechSynthesisPipeline(
            self.synthesizer,
            self.sequencer,
            self.completions,
            self.store,
            self.voices,
            self.tracker,
            options=PhrasingOptions(
                said_template=speech.said_template,
                skip_said=speech.skip_said,
                speaker_timeout_ms=speech.speaker_timeout_ms,
                dictionary=dict(speech.dictionary),
                skip_dictionary_for_announcements=speech.skip_dictionary_for_announcements,
                wrap_ssml=speech.wrap_ssml,
                speaking_rate_override=speech.speaking_rate_override,
            ),
            speech_channel=speech.speech_channel,
            max_pending_ticks=speech.max_pending_ticks,
            tick_interval=speech.tick_interval,
            secret_prefixes=speech.secret_prefixes,
            empty_message_sound=speech.empty_message_sound.to_request() if speech.empty_message_sound else None,
            volume=config.audio.default_volume,
        )

        self.webhooks = DiscordWebhookSink(config.webhook_urls)
        self.web = HttpWebRequester()
        self.collaborators = Collaborators(
            handlers=speech_handlers(self.pipeline),
            webhooks=self.webhooks,
            web=self.web,
            launcher=ProcessUriLauncher(),
        )
        self.composer = ActionComposer(
            self.sequencer,
            self.pipeline,
            self.completions,
            self.store,
            self.tracker,
            collaborators=self.collaborators,
            settings=ComposerSettings(
                chatbot_name=config.chatbot_name,
                light_ids=list(config.light_ids),
                screenshot_sound=config.screenshot_sound,
            ),
        )
        self.registry = TriggerRegistry(
            self.composer,
            self.store,
            self.tracker,
            reward_ids=config.reward_ids,
            reward_sink=self.collaborators.rewards,
        )
        self.collaborators.commands = self.registry

        self.feed: TriggerFeedClient | None = None
        if config.feed.url:
            self.feed = TriggerFeedClient(
                config.feed.url,
                self.registry,
                self.tracker,
                command_prefix=config.feed.command_prefix,
                max_reconnect_attempts=config.feed.max_reconnect_attempts,
                reconnect_delay_base=config.feed.reconnect_delay_base,
                reconnect_delay_cap=config.feed.reconnect_delay_cap,
            )
            self.collaborators.chat = self.feed

        self.http_session: aiohttp.ClientSession | None = None
        self.health_runner: HealthRunner | None = None
        self.running = False

    def register_events(self) -> int:
        """Compile and bind every trigger in the events file. Returns how many were loaded."""
        if self.config.events_file is None:
            logger.warning("No events file configured, no triggers registered")
            return 0
        events = load_events(self.config.events_file)
        self.registry.register_all(events)
        return len(events)

    async def start(self):
        """Start the streamcue service."""
        logger.info("Starting streamcue service...")

        await self.synthesizer.start()
        self.http_session = aiohttp.ClientSession()
        self.webhooks.session = self.http_session
        self.web.session = self.http_session

        if not await self.voices.load():
            logger.warning("Continuing without voice catalog, default voices only")

        self.register_events()

        self.sequencer.start()
        self.pipeline.start()

        if self.feed is not None:
            self.tracker.create_task(self.feed.listen_with_reconnect(), name="feed:listen")
        else:
            logger.warning("No trigger feed configured, only programmatic triggers will run")

        self.health_runner = await start_health_server(
            port=self.config.health.port,
            service_name=self.config.service_name,
            host=self.config.health.host,
            status_provider=self.status,
        )

        self.running = True
        logger.info("streamcue started", triggers=len(self.composer.keys))

    async def stop(self):
        """Stop the streamcue service."""
        logger.info("Stopping streamcue...")
        self.running = False

        if self.health_runner:
            await self.health_runner.cleanup()

        if self.feed is not None:
            await self.feed.disconnect()

        await self.pipeline.stop()
        await self.sequencer.stop_all()
        await self.tracker.shutdown(timeout=5.0)

        if self.http_session is not None:
            await self.http_session.close()
            self.http_session = None
        await self.synthesizer.close()

        logger.info("streamcue stopped")

    async def run_command(self, word: str) -> bool:
        """Run a chat command as the broadcaster."""
        user = await broadcaster_user(self.collaborators.users, self.config.channel_name)
        return await self.registry.run_command(word, user)

    def status(self) -> dict[str, Any]:
        return {
            "running": self.running,
            "channels": self.sequencer.snapshot(),
            "speech": self.pipeline.snapshot(),
            "tasks": self.tracker.get_status(),
            "completions_pending": len(self.completions),
            "synthesizer": self.synthesizer.circuit_breaker.get_stats(),
            "feed": self.feed.get_status() if self.feed is not None else None,
            "triggers": {
                "rewards": len(self.registry.rewards),
                "commands": len(self.registry.commands),
                "cheers": len(self.registry.cheers),
            },
        }


def _install_signal_handlers(shutdown_event: asyncio.Event) -> None:
    def handle_shutdown():
        logger.info("Received shutdown signal")
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    try:
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, handle_shutdown)
    except NotImplementedError:
        logger.warning("Signal handlers not supported on this platform")


async def main():
    """Run the service until SIGINT or SIGTERM."""
    config = get_config()

    configure_json_logging(
        service_name=config.service_name,
        level=config.log_level,
        json_output=config.json_logs,
        version=__version__,
    )

    service = StreamCue(config)
    shutdown_event = asyncio.Event()
    _install_signal_handlers(shutdown_event)

    try:
        await service.start()
        await shutdown_event.wait()
    finally:
        await service.stop()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
