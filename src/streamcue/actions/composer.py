"""Compiles each trigger's configured sub-actions into one cached composite callback.

Composition happens once per registration. Only configured kinds get a
closure, each closure captures just its own config, and every closure runs
behind its own error boundary so one failing side effect never stops its
siblings.
"""

import asyncio
import inspect
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from ..audio.models import AudioRequest
from ..audio.sequencer import AudioChannelSequencer
from ..completion import CompletionRegistry, CompletionStatus, new_token
from ..error_boundary import error_boundary
from ..logger import get_logger
from ..settings_store import LABELS, SettingsStore
from ..speech.models import SpeechKind, SpeechRequest
from ..speech.pipeline import SpeechSynthesisPipeline
from ..task_tracker import TaskTracker
from .models import (
    ACTION_ORDER,
    ActionKind,
    ActionsConfig,
    ActionUser,
    AudioConfig,
    EventConfig,
)
from .sinks import Collaborators
from .text import as_list, pick, render

logger = get_logger(__name__)

SubAction = Callable[[ActionUser, int | None, Any], Awaitable[None] | None]
CompositeCallback = Callable[..., Awaitable[None]]

LIGHTS_SPEECH = "changed the color"


@dataclass
class ComposerSettings:
    chatbot_name: str = "streamcue"
    light_ids: list[int] = field(default_factory=list)
    screenshot_sound: AudioConfig | None = None


@dataclass
class CompiledTrigger:
    key: str
    kinds: tuple[ActionKind, ...]
    speech_token: str
    callback: CompositeCallback


class ActionComposer:
    """Registry of compiled composite callbacks keyed by trigger key."""

    def __init__(
        self,
        sequencer: AudioChannelSequencer,
        pipeline: SpeechSynthesisPipeline,
        completions: CompletionRegistry,
        store: SettingsStore,
        tracker: TaskTracker,
        collaborators: Collaborators | None = None,
        settings: ComposerSettings | None = None,
        rng: random.Random | None = None,
    ):
        self._sequencer = sequencer
        self._pipeline = pipeline
        self._completions = completions
        self._store = store
        self._tracker = tracker
        self.collaborators = collaborators or Collaborators()
        self.settings = settings or ComposerSettings()
        self._rng = rng or random.Random()
        self._triggers: dict[str, CompiledTrigger] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._triggers

    @property
    def keys(self) -> list[str]:
        return list(self._triggers)

    def get(self, key: str) -> CompositeCallback | None:
        compiled = self._triggers.get(key)
        return compiled.callback if compiled else None

    def compiled(self, key: str) -> CompiledTrigger | None:
        return self._triggers.get(key)

    def register(self, key: str, config: EventConfig | ActionsConfig) -> CompositeCallback:
        """Compile and cache the composite for ``key``, replacing any previous one."""
        actions = config.actions if isinstance(config, EventConfig) else config
        speech_token = new_token(f"tts-{key}")

        closures: list[tuple[ActionKind, SubAction]] = []
        for kind in ACTION_ORDER:
            closure = self._build(kind, key, actions, speech_token)
            if closure is not None:
                closures.append((kind, error_boundary(name=f"{key}:{kind.value}")(closure)))

        kinds = tuple(kind for kind, _ in closures)
        tracker = self._tracker

        async def composite(user: ActionUser, index: int | None = None, message: Any = None) -> None:
            pending = []
            for kind, closure in closures:
                result = closure(user, index, message)
                if inspect.isawaitable(result):
                    pending.append(tracker.create_task(result, name=f"action:{key}:{kind.value}"))
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        if key in self._triggers:
            logger.info("Replacing action callback", trigger_key=key)
        self._triggers[key] = CompiledTrigger(key, kinds, speech_token, composite)
        logger.info("Built action callback", trigger_key=key, kinds=[k.value for k in kinds])
        return composite

    def _build(self, kind: ActionKind, key: str, actions: ActionsConfig, speech_token: str) -> SubAction | None:
        if kind is ActionKind.SOUND_AND_SPEECH:
            if actions.audio is None and actions.speech is None:
                return None
            return self._build_sound_and_speech(actions, speech_token)

        config = getattr(actions, kind.value)
        if config is None or config == [] or config == "":
            return None

        builder = getattr(self, f"_build_{kind.value}")
        return builder(key, config, speech_token)

    def _missing(self, key: str, kind: ActionKind, collaborator: str) -> None:
        logger.warning(
            "Sub-action skipped, collaborator not configured",
            trigger_key=key,
            kind=kind.value,
            collaborator=collaborator,
        )

    def _build_handler(self, key, name, _token):
        handler = self.collaborators.handlers.get(name)
        if handler is None:
            self._missing(key, ActionKind.HANDLER, f"handler:{name}")
            return None

        def run_handler(user, index, message):
            return handler(user, index)

        return run_handler

    def _build_scene(self, key, config, _token):
        scenes = self.collaborators.scenes
        if scenes is None:
            self._missing(key, ActionKind.SCENE, "scenes")
            return None
        rng = self._rng

        async def toggle_scene(user, index, message):
            chosen = pick(config, index, rng)
            if chosen is not None:
                await scenes.toggle(key, chosen, chosen.state)

        return toggle_scene

    def _build_lights(self, key, config, _token):
        lights = self.collaborators.lights
        if lights is None:
            self._missing(key, ActionKind.LIGHTS, "lights")
            return None
        pipeline, light_ids, rng = self._pipeline, list(self.settings.light_ids), self._rng

        async def apply(color):
            for light_id in light_ids:
                await lights.set_light_state(light_id, color.x, color.y)

        def set_color(user, index, message):
            color = pick(config, index, rng)
            # Announce before returning so the line takes its serial ahead of later sub-actions
            pipeline.submit(SpeechRequest(text=LIGHTS_SPEECH, speaker=user.login, kind=SpeechKind.ACTION))
            return apply(color)

        return set_color

    def _build_plug(self, key, config, _token):
        lights = self.collaborators.lights
        if lights is None:
            self._missing(key, ActionKind.PLUG, "lights")
            return None

        async def run_plug(user, index, message):
            await lights.run_plug(config)

        return run_plug

    def _build_sound_and_speech(self, actions: ActionsConfig, speech_token: str) -> SubAction:
        audio, speech = actions.audio, actions.speech
        pipeline, sequencer, rng = self._pipeline, self._sequencer, self._rng
        chatbot_name = self.settings.chatbot_name

        def sound_and_speech(user, index, message):
            if audio is not None:
                sources = None
                if isinstance(audio.src, list) and index is not None:
                    sources = [pick(audio.src, index)]
                request = audio.to_request(sources=sources)
                # Sounds that go with speech keep their place in the speech order
                if speech is not None:
                    pipeline.submit_sound_effect(request)
                else:
                    sequencer.enqueue(request.channel, request)

            if speech is not None:
                entry = pick(speech.entries, index, rng)
                if entry:
                    pipeline.submit(
                        SpeechRequest(
                            text=render(entry, user),
                            speaker=render(speech.voice_of_user or chatbot_name, user),
                            kind=speech.type,
                            token=speech_token,
                        )
                    )

        return sound_and_speech

    def _build_overlay(self, key, config, _token):
        overlay = self.collaborators.overlay
        if overlay is None:
            self._missing(key, ActionKind.OVERLAY, "overlay")
            return None
        users = self.collaborators.users
        presets = as_list(config)

        async def show_overlay(user, index, message):
            for preset in presets:
                texts = list(preset.texts or [])
                if len(texts) < preset.text_areas:
                    texts.extend([user.name] * (preset.text_areas - len(texts)))
                image = preset.image_path
                if image is None and users is not None:
                    image = await users.avatar_url(user.id)
                await overlay.show_preset(
                    preset.model_copy(update={"texts": [render(t, user) for t in texts], "image_path": image})
                )

        return show_overlay

    def _build_sign(self, key, config, _token):
        overlay = self.collaborators.overlay
        if overlay is None:
            self._missing(key, ActionKind.SIGN, "overlay")
            return None
        users = self.collaborators.users

        async def show_sign(user, index, message):
            image = config.image
            if image is None and users is not None:
                image = await users.avatar_url(user.id)
            await overlay.show_sign(
                config.model_copy(
                    update={
                        "title": render(config.title, user),
                        "subtitle": render(config.subtitle, user),
                        "image": render(image or "", user),
                    }
                )
            )

        return show_sign

    def _build_exec(self, key, config, _token):
        launcher = self.collaborators.launcher
        if launcher is None:
            self._missing(key, ActionKind.EXEC, "launcher")
            return None
        uris = as_list(config.uri)

        async def launch(user, index, message):
            for uri in uris:
                await launcher.launch(render(uri, user))

        return launch

    def _build_web(self, key, url, _token):
        web = self.collaborators.web
        if web is None:
            self._missing(key, ActionKind.WEB, "web")
            return None

        async def request(user, index, message):
            await web.get(url)

        return request

    def _build_screenshot(self, key, config, speech_token):
        screenshots = self.collaborators.screenshots
        if screenshots is None:
            self._missing(key, ActionKind.SCREENSHOT, "screenshots")
            return None
        completions, sequencer = self._completions, self._sequencer
        sound = self.settings.screenshot_sound

        async def capture(user: ActionUser, delay: float, chain_sound: bool) -> None:
            token = new_token(f"screenshot-{key}")
            if chain_sound and config.source_name and sound is not None:
                completions.register(token, lambda status: sequencer.play(sound.to_request()))
            await screenshots.capture(key, user, config.source_name, delay, token)

        def screenshot(user, index, message):
            if user.input:
                # Capture once the spoken line for this trigger has finished
                def after_speech(status: CompletionStatus):
                    return capture(user, config.delay, True)

                completions.register(speech_token, after_speech)
                return None
            if config.source_name and sound is not None:
                sequencer.play(sound.to_request())
            return capture(user, 0.0, False)

        return screenshot

    def _build_webhook(self, key, messages, _token):
        webhooks = self.collaborators.webhooks
        if webhooks is None:
            self._missing(key, ActionKind.WEBHOOK, "webhooks")
            return None
        users, rng = self.collaborators.users, self._rng

        async def post(user, index, message):
            text = pick(messages, index, rng)
            if not text:
                return
            avatar = await users.avatar_url(user.id) if users is not None else None
            await webhooks.post_message(key, user.name, avatar, render(text, user))

        return post

    def _build_audio_url(self, key, config, _token):
        sequencer = self._sequencer

        def play_url(user, index, message):
            if user.input:
                sequencer.enqueue(
                    config.channel,
                    AudioRequest(
                        sources=[user.input],
                        channel=config.channel,
                        volume=config.volume,
                        repeat=config.repeat,
                    ),
                )

        return play_url

    def _build_chat(self, key, messages, _token):
        chat = self.collaborators.chat
        if chat is None:
            self._missing(key, ActionKind.CHAT, "chat")
            return None
        rng = self._rng

        async def send(user, index, message):
            text = pick(messages, index, rng)
            if text:
                await chat.send_chat(render(text, user))

        return send

    def _build_label(self, key, label_key, _token):
        store = self._store

        async def write_label(user, index, message):
            await store.push(LABELS, "key", {"key": label_key, "text": user.input})

        return write_label

    def _build_commands(self, key, config, _token):
        if self.collaborators.commands is None:
            self._missing(key, ActionKind.COMMANDS, "commands")
            return None
        collaborators, tracker = self.collaborators, self._tracker
        entries = as_list(config.entries)

        async def run_later(word: str, user: ActionUser, delay: float) -> None:
            if delay > 0:
                await asyncio.sleep(delay)
            await collaborators.commands.run_command(word, user)

        def run_commands(user, index, message):
            delay = 0.0
            for word in entries:
                text = user.input
                if " " in word:
                    text = text.split(" ", 1)[0] if text else ""
                logger.info("Scheduling command", trigger_key=key, command=word, delay=delay)
                tracker.create_task(
                    run_later(word, user.model_copy(update={"input": text}), delay), name=f"command:{word}"
                )
                delay += config.interval

        return run_commands
