import abc
import logging
from dataclasses import dataclass
from typing import Iterable, List, Set

import discord

from .events import RoleInfo

log = logging.getLogger(__name__)

EMBED_COLOR = 0x5865F2


class MessageUnavailable(Exception):
    """The message (or the channel holding it) is gone or unreadable."""

    def __init__(self, channel_id: int, message_id: int, reason: str = ""):
        self.channel_id = channel_id
        self.message_id = message_id
        self.reason = reason
        super().__init__(f"message {channel_id}/{message_id} unavailable{': ' + reason if reason else ''}")


@dataclass(frozen=True)
class ControllerView:
    title: str
    description: str


class RoleService(abc.ABC):
    """Everything the controllers need from the chat platform."""

    @property
    @abc.abstractmethod
    def bot_user_id(self) -> int: ...

    @abc.abstractmethod
    async def list_roles(self, guild_id: int) -> List[RoleInfo]: ...

    @abc.abstractmethod
    async def member_role_ids(self, guild_id: int, user_id: int) -> Set[int]: ...

    @abc.abstractmethod
    async def add_role(self, guild_id: int, user_id: int, role_id: int) -> None: ...

    @abc.abstractmethod
    async def remove_roles(self, guild_id: int, user_id: int, role_ids: Iterable[int]) -> None: ...

    @abc.abstractmethod
    async def send_view(self, channel_id: int, view: ControllerView) -> int: ...

    @abc.abstractmethod
    async def edit_view(self, channel_id: int, message_id: int, view: ControllerView) -> None: ...

    @abc.abstractmethod
    async def fetch_message(self, channel_id: int, message_id: int) -> None: ...

    @abc.abstractmethod
    async def add_reaction(self, channel_id: int, message_id: int, emoji: str) -> None: ...

    @abc.abstractmethod
    async def clear_reactions(self, channel_id: int, message_id: int) -> None: ...

    @abc.abstractmethod
    async def remove_reaction(self, channel_id: int, message_id: int, emoji: str, user_id: int) -> None: ...

    @abc.abstractmethod
    async def delete_message(self, channel_id: int, message_id: int) -> None: ...


# =========================================================
# DISCORD.PY IMPLEMENTATION
# =========================================================
class DiscordRoleService(RoleService):
    def __init__(self, client: discord.Client):
        self.client = client

    @property
    def bot_user_id(self) -> int:
        if self.client.user is None:
            raise RuntimeError("Bot user is not available before login.")
        return self.client.user.id

    def _guild(self, guild_id: int) -> discord.Guild:
        guild = self.client.get_guild(guild_id)
        if guild is None:
            raise LookupError(f"Guild {guild_id} is not available.")
        return guild

    async def _member(self, guild_id: int, user_id: int) -> discord.Member:
        guild = self._guild(guild_id)
        member = guild.get_member(user_id)
        if member is None:
            member = await guild.fetch_member(user_id)
        return member

    async def _channel(self, channel_id: int, message_id: int = 0) -> discord.abc.Messageable:
        channel = self.client.get_channel(channel_id)
        if channel is None:
            try:
                channel = await self.client.fetch_channel(channel_id)
            except (discord.NotFound, discord.Forbidden) as e:
                raise MessageUnavailable(channel_id, message_id, str(e)) from e
        if not isinstance(channel, discord.abc.Messageable):
            raise MessageUnavailable(channel_id, message_id, "not a text channel")
        return channel

    async def _partial(self, channel_id: int, message_id: int) -> discord.PartialMessage:
        channel = await self._channel(channel_id, message_id)
        return channel.get_partial_message(message_id)

    async def list_roles(self, guild_id: int) -> List[RoleInfo]:
        # Highest position first: the order shown in server settings.
        roles = sorted(self._guild(guild_id).roles, key=lambda r: r.position, reverse=True)
        return [RoleInfo(id=r.id, name=r.name, guild_id=guild_id) for r in roles]

    async def member_role_ids(self, guild_id: int, user_id: int) -> Set[int]:
        # Always ask the API: without the members intent the cached Member
        # never sees role updates, including the ones made here.
        member = await self._guild(guild_id).fetch_member(user_id)
        return {r.id for r in member.roles}

    async def add_role(self, guild_id: int, user_id: int, role_id: int) -> None:
        member = await self._member(guild_id, user_id)
        await member.add_roles(discord.Object(id=role_id), reason="Role controller")

    async def remove_roles(self, guild_id: int, user_id: int, role_ids: Iterable[int]) -> None:
        objs = [discord.Object(id=rid) for rid in role_ids]
        if not objs:
            return
        member = await self._member(guild_id, user_id)
        await member.remove_roles(*objs, reason="Role controller")

    def _embed(self, view: ControllerView) -> discord.Embed:
        return discord.Embed(title=view.title, description=view.description, color=EMBED_COLOR)

    async def send_view(self, channel_id: int, view: ControllerView) -> int:
        channel = await self._channel(channel_id)
        message = await channel.send(embed=self._embed(view))
        return message.id

    async def edit_view(self, channel_id: int, message_id: int, view: ControllerView) -> None:
        partial = await self._partial(channel_id, message_id)
        await partial.edit(embed=self._embed(view))

    async def fetch_message(self, channel_id: int, message_id: int) -> None:
        channel = await self._channel(channel_id, message_id)
        try:
            await channel.fetch_message(message_id)
        except (discord.NotFound, discord.Forbidden) as e:
            raise MessageUnavailable(channel_id, message_id, str(e)) from e

    async def add_reaction(self, channel_id: int, message_id: int, emoji: str) -> None:
        partial = await self._partial(channel_id, message_id)
        await partial.add_reaction(emoji)

    async def clear_reactions(self, channel_id: int, message_id: int) -> None:
        partial = await self._partial(channel_id, message_id)
        await partial.clear_reactions()

    async def remove_reaction(self, channel_id: int, message_id: int, emoji: str, user_id: int) -> None:
        partial = await self._partial(channel_id, message_id)
        try:
            await partial.remove_reaction(emoji, discord.Object(id=user_id))
        except discord.NotFound:
            # Already gone (user removed it, or a sync cleared the message).
            log.debug("Reaction %s by %s on %s already removed", emoji, user_id, message_id)

    async def delete_message(self, channel_id: int, message_id: int) -> None:
        partial = await self._partial(channel_id, message_id)
        await partial.delete()


def role_info(role: discord.Role) -> RoleInfo:
    return RoleInfo(id=role.id, name=role.name, guild_id=role.guild.id)
