import asyncio
import logging
from typing import Callable, Dict, List, Optional, Tuple

from . import emoji
from .controller import Controller
from .events import (
    MessageDeleted,
    ReactionAdded,
    RoleChangeKind,
    RoleChanged,
    RoleInfo,
    category_of,
    has_category,
    strip_category,
)
from .ratelimit import RateLimiter
from .services import ControllerView, MessageUnavailable, RoleService
from .store import PersistentStore, join_path

log = logging.getLogger(__name__)

EMPTIED_TEXT = "This category has had all of its roles removed."


class ControllerManager:
    """Creates, persists, reconciles and dispatches to role controllers.

    Controllers are keyed by (channel_id, message_id). The store mirrors the
    registry as ``guild.channel.message -> category`` so it can be rebuilt on
    startup.
    """

    def __init__(
        self,
        roles: RoleService,
        store: PersistentStore,
        rate_limit_calls: int = 1,
        rate_limit_window: float = 600.0,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.roles = roles
        self.store = store
        self.rate_limit_calls = rate_limit_calls
        self.rate_limit_window = rate_limit_window
        self._clock = clock
        self._controllers: Dict[Tuple[int, int], Controller] = {}
        self._create_lock = asyncio.Lock()

    # =========================================================
    # REGISTRY
    # =========================================================
    def _new_controller(self, guild_id: int, channel_id: int, message_id: int, category: str) -> Controller:
        limiter = RateLimiter(self.rate_limit_calls, self.rate_limit_window, clock=self._clock)
        return Controller(self.roles, guild_id, channel_id, message_id, category, limiter)

    def get(self, channel_id: int, message_id: int) -> Optional[Controller]:
        return self._controllers.get((channel_id, message_id))

    def controllers(self, guild_id: Optional[int] = None) -> List[Controller]:
        return [c for c in self._controllers.values() if guild_id is None or c.guild_id == guild_id]

    def get_controller(self, guild_id: int, category: str) -> Optional[Controller]:
        for controller in self._controllers.values():
            if controller.guild_id == guild_id and controller.category == category:
                return controller
        return None

    def controller_exists(self, guild_id: int, category: str) -> bool:
        return self.get_controller(guild_id, category) is not None

    async def init(self) -> None:
        await self.store.init()

        loaded = purged = 0
        for guild_key in await self.store.keys():
            for channel_key in await self._branch(guild_key):
                for message_key in await self._branch(join_path(guild_key, channel_key)):
                    path = join_path(guild_key, channel_key, message_key)
                    category = await self.store.get(path)

                    try:
                        guild_id, channel_id, message_id = int(guild_key), int(channel_key), int(message_key)
                        if not isinstance(category, str) or not category:
                            raise ValueError(f"category must be a non-empty string, got {category!r}")
                    except ValueError as e:
                        log.warning("Dropping malformed controller entry %s: %s", path, e)
                        await self.store.remove(path)
                        purged += 1
                        continue

                    try:
                        await self.roles.fetch_message(channel_id, message_id)
                    except MessageUnavailable as e:
                        log.info("Dropping controller %s (%s): %s", path, category, e)
                        await self.store.remove(path)
                        purged += 1
                        continue
                    except Exception:
                        log.exception("Could not verify controller %s (%s); skipping for now", path, category)
                        continue

                    controller = self._new_controller(guild_id, channel_id, message_id, category)
                    self._controllers[controller.key] = controller
                    loaded += 1

        log.info("Initialized: %d controller(s) loaded, %d purged.", loaded, purged)

    async def _branch(self, path: str) -> List[str]:
        """Child keys of an inner store node; a leaf where a node belongs is dropped."""
        node = await self.store.get(path)
        if node is None:
            return []
        if not isinstance(node, dict):
            log.warning("Dropping malformed controller entry %s: expected a mapping, got %r", path, node)
            await self.store.remove(path)
            return []
        return list(node)

    def close(self) -> None:
        self._controllers.clear()

    # =========================================================
    # RENDERING
    # =========================================================
    async def category_roles(self, guild_id: int, category: str, limit: Optional[int] = emoji.MAX_BUTTONS) -> List[RoleInfo]:
        roles = [r for r in await self.roles.list_roles(guild_id) if has_category(r.name, category)]
        if limit is not None:
            roles = roles[:limit]
        return roles

    def render(self, category: str, roles: List[RoleInfo]) -> ControllerView:
        if not roles:
            return ControllerView(title=f"Category: {category}", description=EMPTIED_TEXT)

        lines = [
            "Choose a role number to be assigned that role.",
            "",
            "You may only choose one role from this category at a time "
            "and may only change roles once every "
            f"{_describe_window(self.rate_limit_window)}.",
            f"React with {emoji.CANCEL_EMOJI} to remove your role.",
            "",
            "```ldif",
        ]
        for position, role in enumerate(roles, start=1):
            lines.append(f"{position}: {strip_category(role.name, category)}")
        lines.append("```")
        return ControllerView(title=f"Category: {category}", description="\n".join(lines))

    async def _attach_buttons(self, channel_id: int, message_id: int, count: int) -> None:
        for position in range(1, count + 1):
            await self.roles.add_reaction(channel_id, message_id, emoji.button_for(position))
        await self.roles.add_reaction(channel_id, message_id, emoji.CANCEL_EMOJI)

    # =========================================================
    # CREATE / SYNC
    # =========================================================
    async def create(self, guild_id: int, channel_id: int, category: str) -> Optional[Controller]:
        async with self._create_lock:
            existing = self.get_controller(guild_id, category)
            if existing is not None:
                return existing

            roles = await self.category_roles(guild_id, category)
            if not roles:
                return None

            message_id = await self.roles.send_view(channel_id, self.render(category, roles))
            try:
                await self._attach_buttons(channel_id, message_id, len(roles))
                await self.store.set(join_path(guild_id, channel_id, message_id), category)
            except Exception:
                # don't leave a half-built controller message behind
                log.warning("Creating %r controller in %s failed; deleting message %s", category, channel_id, message_id)
                await self.roles.delete_message(channel_id, message_id)
                raise

            controller = self._new_controller(guild_id, channel_id, message_id, category)
            self._controllers[controller.key] = controller

        log.info("Created %r with %d role(s)", controller, len(roles))
        return controller

    async def sync(self, controller: Controller) -> None:
        async with controller.lock:
            roles = await self.category_roles(controller.guild_id, controller.category)
            view = self.render(controller.category, roles)

            await self.roles.clear_reactions(controller.channel_id, controller.message_id)
            await self.roles.edit_view(controller.channel_id, controller.message_id, view)
            await self._attach_buttons(controller.channel_id, controller.message_id, len(roles))

        log.info("Synced %r (%d role(s))", controller, len(roles))

    # =========================================================
    # EVENTS
    # =========================================================
    async def on_reaction(self, event: ReactionAdded) -> None:
        controller = self.get(event.channel_id, event.message_id)
        if controller is None:
            return

        try:
            async with controller.lock:
                await controller.handle(event)
        except Exception:
            log.exception("Error handling reaction %s by %s on %r", event.emoji.key, event.user_id, controller)

    async def on_role_changed(self, event: RoleChanged) -> None:
        categories: List[str] = []
        current = category_of(event.role.name)

        if event.kind is RoleChangeKind.UPDATE:
            previous = category_of(event.previous.name) if event.previous else None
            if previous == current:
                return
            categories = [c for c in (previous, current) if c]
        elif current:
            categories = [current]

        for category in categories:
            controller = self.get_controller(event.role.guild_id, category)
            if controller is None:
                continue
            try:
                await self.sync(controller)
            except Exception:
                log.exception("Error syncing %r after role %s", controller, event.kind.value)

    async def on_message_deleted(self, event: MessageDeleted) -> None:
        path = join_path(event.guild_id, event.channel_id, event.message_id)
        if await self.store.exists(path):
            await self.store.remove(path)

        controller = self._controllers.pop((event.channel_id, event.message_id), None)
        if controller is not None:
            log.info("Removed %r: message deleted", controller)


def _describe_window(seconds: float) -> str:
    if seconds % 3600 == 0:
        hours = int(seconds // 3600)
        return "hour" if hours == 1 else f"{hours} hours"
    if seconds % 60 == 0:
        minutes = int(seconds // 60)
        return "minute" if minutes == 1 else f"{minutes} minutes"
    return f"{int(seconds)} seconds"
