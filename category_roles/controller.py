import asyncio
import enum
import logging
from typing import List

from . import emoji
from .events import ReactionAdded, RoleInfo, has_category
from .ratelimit import RateLimiter
from .services import RoleService

log = logging.getLogger(__name__)


class PressOutcome(enum.Enum):
    IGNORED = "ignored"
    CLEARED = "cleared"
    INVALID = "invalid"
    ALREADY_HELD = "already_held"
    RATE_LIMITED = "rate_limited"
    ASSIGNED = "assigned"


class Controller:
    """One bot message whose numbered reactions hand out the roles of a category.

    A member holds at most one role of the category at a time. Removing the old
    role and adding the new one are two separate API calls, so a failure between
    them leaves the member with no role of the category until their next press.
    """

    def __init__(
        self,
        roles: RoleService,
        guild_id: int,
        channel_id: int,
        message_id: int,
        category: str,
        limiter: RateLimiter,
    ):
        self.roles = roles
        self.guild_id = guild_id
        self.channel_id = channel_id
        self.message_id = message_id
        self.category = category
        self.limiter = limiter
        self.lock = asyncio.Lock()

    def __repr__(self) -> str:
        return f"<Controller category={self.category!r} channel={self.channel_id} message={self.message_id}>"

    @property
    def key(self):
        return (self.channel_id, self.message_id)

    async def category_roles(self) -> List[RoleInfo]:
        return [r for r in await self.roles.list_roles(self.guild_id) if has_category(r.name, self.category)]

    async def _strip(self, event: ReactionAdded) -> None:
        await self.roles.remove_reaction(self.channel_id, self.message_id, event.emoji.key, event.user_id)

    async def handle(self, event: ReactionAdded) -> PressOutcome:
        outcome = await self._press(event)
        log.debug("%r: user %s pressed %s -> %s", self, event.user_id, event.emoji.key, outcome.value)
        return outcome

    async def _press(self, event: ReactionAdded) -> PressOutcome:
        # Our own button artifacts.
        if event.user_id == self.roles.bot_user_id:
            return PressOutcome.IGNORED

        if event.is_bot:
            await self._strip(event)
            return PressOutcome.IGNORED

        member_roles = await self.roles.member_role_ids(self.guild_id, event.user_id)
        roles = await self.category_roles()
        held = [r.id for r in roles if r.id in member_roles]

        if emoji.is_cancel(event.emoji.name) and held:
            await self.roles.remove_roles(self.guild_id, event.user_id, held)
            await self._strip(event)
            return PressOutcome.CLEARED

        index = None if event.emoji.id else emoji.index_of(event.emoji.name)
        if index is None or not 1 <= index <= emoji.MAX_BUTTONS:
            await self._strip(event)
            return PressOutcome.INVALID

        if index > len(roles):
            await self._strip(event)
            return PressOutcome.INVALID
        target = roles[index - 1]

        if target.id in member_roles:
            await self._strip(event)
            return PressOutcome.ALREADY_HELD

        if not self.limiter.allow((self.message_id, event.user_id)):
            log.debug(
                "%r: user %s rate limited for %.0fs more",
                self, event.user_id, self.limiter.remaining((self.message_id, event.user_id)),
            )
            await self._strip(event)
            return PressOutcome.RATE_LIMITED

        if held:
            await self.roles.remove_roles(self.guild_id, event.user_id, held)
        await self.roles.add_role(self.guild_id, event.user_id, target.id)

        await self._strip(event)
        return PressOutcome.ASSIGNED
