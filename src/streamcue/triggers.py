"""Binds compiled composites to rewards, chat commands and cheers."""

import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from .actions.composer import ActionComposer, CompositeCallback
from .actions.models import ActionUser, CommandPermissions, EventConfig, RewardConfig
from .actions.sinks import RewardSink, UserDirectory
from .errors import ConfigurationError
from .logger import get_logger, trigger_context
from .settings_store import REWARD_COUNTERS, SettingsStore
from .task_tracker import TaskTracker

logger = get_logger(__name__)


@dataclass
class RewardBinding:
    key: str
    reward_id: str
    callback: CompositeCallback
    variants: list[RewardConfig] | None = None

    @property
    def incremental(self) -> bool:
        return self.variants is not None


@dataclass
class CommandBinding:
    word: str
    callback: CompositeCallback
    permissions: CommandPermissions = field(default_factory=CommandPermissions)
    cooldown: float | None = None
    last_run: float | None = None


@dataclass
class CheerBinding:
    key: str
    bits: int
    callback: CompositeCallback


class TriggerRegistry:
    """Dispatches incoming trigger events to the composites registered for them."""

    def __init__(
        self,
        composer: ActionComposer,
        store: SettingsStore,
        tracker: TaskTracker,
        reward_ids: Mapping[str, str] | None = None,
        reward_sink: RewardSink | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._composer = composer
        self._store = store
        self._tracker = tracker
        self.reward_ids = dict(reward_ids or {})
        self._reward_sink = reward_sink
        self._clock = clock

        self._rewards: dict[str, RewardBinding] = {}
        self._commands: dict[str, CommandBinding] = {}
        self._cheers: list[CheerBinding] = []

    @property
    def rewards(self) -> dict[str, RewardBinding]:
        return dict(self._rewards)

    @property
    def commands(self) -> dict[str, CommandBinding]:
        return dict(self._commands)

    @property
    def cheers(self) -> list[CheerBinding]:
        return list(self._cheers)

    def register_all(self, events: Mapping[str, EventConfig]) -> None:
        logger.info("Registering triggers", count=len(events))
        for key, event in events.items():
            if event.triggers.reward is not None:
                self._guarded(self.register_reward, key, event)
            if event.triggers.command is not None:
                self._guarded(self.register_command, key, event)
            if event.triggers.cheer is not None:
                self._guarded(self.register_cheer, key, event)

    def _guarded(self, register: Callable[[str, EventConfig], Any], key: str, event: EventConfig) -> None:
        try:
            register(key, event)
        except ConfigurationError as e:
            logger.error("Trigger not registered", trigger_key=key, error=str(e))

    def register_reward(self, key: str, event: EventConfig) -> RewardBinding:
        reward_id = self.reward_ids.get(key)
        if not reward_id:
            raise ConfigurationError(f"No reward id for '{key}', it might be missing a reward config")
        reward = event.triggers.reward
        binding = RewardBinding(
            key=key,
            reward_id=reward_id,
            callback=self._composer.register(key, event),
            variants=list(reward) if isinstance(reward, list) else None,
        )
        self._rewards[reward_id] = binding
        logger.info("Reward registered", trigger_key=key, reward_id=reward_id, incremental=binding.incremental)
        return binding

    def register_command(self, key: str, event: EventConfig) -> list[CommandBinding]:
        """Register each ``|``-separated word of ``key`` as its own command."""
        command = event.triggers.command
        words = [w.strip().lower() for w in key.split("|") if w.strip()]
        if not words:
            raise ConfigurationError(f"Command trigger '{key}' has no command words")

        bindings = []
        for word in words:
            binding = CommandBinding(
                word=word,
                callback=self._composer.register(word, event),
                permissions=command.permissions if command else CommandPermissions(),
                cooldown=command.cooldown if command else None,
            )
            self._commands[word] = binding
            bindings.append(binding)
        logger.info("Command registered", trigger_key=key, words=words)
        return bindings

    def register_cheer(self, key: str, event: EventConfig) -> CheerBinding:
        bits = event.triggers.cheer or 0
        if bits <= 0:
            raise ConfigurationError(f"Cannot register cheer for '{key}', threshold must be positive")
        binding = CheerBinding(key=key, bits=bits, callback=self._composer.register(key, event))
        self._cheers = [c for c in self._cheers if c.key != key] + [binding]
        self._cheers.sort(key=lambda c: c.bits)
        logger.info("Cheer registered", trigger_key=key, bits=bits)
        return binding

    async def handle_redemption(self, reward_id: str, user: ActionUser, message: Any = None) -> bool:
        binding = self._rewards.get(reward_id)
        if binding is None:
            logger.warning("Reward not found", reward_id=reward_id)
            return False

        with trigger_context(binding.key, user.login):
            count = None
            if binding.incremental:
                record = await self._store.pull(REWARD_COUNTERS, "key", binding.key)
                count = int(record.get("count", 0)) if record else 0

            self._tracker.create_task(binding.callback(user, count, message), name=f"reward:{binding.key}")

            if binding.incremental:
                await self._advance_reward(binding, count + 1)
        return True

    async def _advance_reward(self, binding: RewardBinding, count: int) -> None:
        if count >= len(binding.variants):
            logger.debug("Incremental reward at last variant", trigger_key=binding.key, count=count)
            return
        await self._store.push(REWARD_COUNTERS, "key", {"key": binding.key, "count": count})
        if self._reward_sink is None:
            logger.warning("No reward sink, reward variant not pushed", trigger_key=binding.key, count=count)
            return
        await self._reward_sink.update_reward(binding.reward_id, binding.variants[count])
        logger.info("Incremental reward advanced", trigger_key=binding.key, count=count)

    async def handle_command(self, word: str, user: ActionUser, message: Any = None) -> bool:
        """Run a chat command if the user may and the cooldown has passed."""
        binding = self._commands.get(word.lower())
        if binding is None:
            return False
        if not binding.permissions.allows(user):
            logger.debug("Command not permitted", command=word, user_login=user.login)
            return False

        now = self._clock()
        if binding.cooldown and binding.last_run is not None and now - binding.last_run < binding.cooldown:
            remaining = round(binding.cooldown - (now - binding.last_run), 1)
            logger.info("Command on cooldown", command=word, remaining=remaining)
            return False
        binding.last_run = now

        with trigger_context(word, user.login):
            await binding.callback(user, None, message)
        return True

    async def run_command(self, word: str, user: ActionUser) -> bool:
        """Programmatic execution: skips permissions and cooldown."""
        binding = self._commands.get(word.lower())
        if binding is None:
            logger.warning("Command not found", command=word)
            return False
        await binding.callback(user, None, None)
        return True

    def cheer_for(self, bits: int) -> CheerBinding | None:
        """Highest threshold the cheer meets."""
        matched = None
        for binding in self._cheers:
            if binding.bits <= bits:
                matched = binding
        return matched

    async def handle_cheer(self, user: ActionUser, message: Any = None) -> bool:
        binding = self.cheer_for(user.bits)
        if binding is None:
            logger.debug("No cheer trigger for amount", bits=user.bits)
            return False
        with trigger_context(binding.key, user.login):
            await binding.callback(user, None, message)
        return True


async def broadcaster_user(users: UserDirectory | None, channel_name: str) -> ActionUser:
    """Identity used when commands are run by the system rather than a viewer."""
    found = await users.user_by_login(channel_name) if users is not None else None
    if found is None:
        return ActionUser(login=channel_name, name=channel_name, is_broadcaster=True)
    return found.model_copy(update={"input": "", "is_broadcaster": True, "bits": 0, "bits_total": 0})
