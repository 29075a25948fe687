# =========================================================
# CATEGORY ROLE CONTROLLERS BOT
# Members pick one role per category by reacting to a bot message.
#
# Install:
#   pip install -e .
#
# Environment Variables:
#   DISCORD_BOT_TOKEN   = your bot token
#   DATA_FILE           = (recommended on hosted deployments) /app/data/role_controllers.json
#   COMMAND_PREFIX      = (optional) admin command prefix, default "+"
#   RATE_LIMIT_SECONDS  = (optional) cooldown between role changes, default 600
#   LOG_LEVEL           = (optional) DEBUG / INFO / WARNING, default INFO
#
# Roles belong to a category when named "<category>:<name>", e.g. "color:Red".
# Admin commands (Administrator permission):
#   +new <category>    post a controller for the category in this channel
#   +sync <category>   rebuild the controller after roles changed
# =========================================================

import logging
from typing import Iterable, List, Optional

import discord
from discord.ext import commands

from .config import COMMAND_PREFIX, DATA_FILE, DISCORD_BOT_TOKEN, FEEDBACK_TTL, LOG_LEVEL, RATE_LIMIT_SECONDS
from .events import MessageDeleted, ReactionAdded, ReactionEmoji, RoleChangeKind, RoleChanged
from .manager import ControllerManager
from .services import DiscordRoleService, role_info
from .store import JsonStore

log = logging.getLogger(__name__)


# =========================================================
# EVENT NORMALIZATION
# =========================================================
def reaction_event(payload: discord.RawReactionActionEvent) -> Optional[ReactionAdded]:
    if payload.guild_id is None:
        return None
    member = getattr(payload, "member", None)
    return ReactionAdded(
        guild_id=payload.guild_id,
        channel_id=payload.channel_id,
        message_id=payload.message_id,
        user_id=payload.user_id,
        emoji=ReactionEmoji(name=payload.emoji.name, id=payload.emoji.id),
        is_bot=bool(member is not None and member.bot),
    )


def role_event(kind: RoleChangeKind, role: discord.Role, previous: Optional[discord.Role] = None) -> RoleChanged:
    return RoleChanged(kind=kind, role=role_info(role), previous=role_info(previous) if previous else None)


def deleted_events(guild_id: Optional[int], channel_id: int, message_ids: Iterable[int]) -> List[MessageDeleted]:
    if guild_id is None:
        return []
    return [MessageDeleted(guild_id=guild_id, channel_id=channel_id, message_id=mid) for mid in message_ids]


# =========================================================
# ADMIN COMMANDS
# =========================================================
async def delete_invocation(ctx: commands.Context) -> None:
    try:
        await ctx.message.delete()
    except discord.HTTPException as e:
        log.warning("Could not delete command message %s: %s", ctx.message.id, e)


@commands.command(name="new", help="Create a new role controller for a category", usage="<category>")
@commands.guild_only()
@commands.has_permissions(administrator=True)
async def new_controller(ctx: commands.Context, category: str):
    await delete_invocation(ctx)
    manager: ControllerManager = ctx.bot.manager

    perms = ctx.channel.permissions_for(ctx.me)
    if not (perms.send_messages and perms.embed_links and perms.add_reactions):
        await ctx.author.send(
            f"I can't create role controllers in {ctx.channel.mention}. "
            "I need Send Messages, Embed Links and Add Reactions there."
        )
        return

    existing = manager.get_controller(ctx.guild.id, category)
    if existing:
        if existing.channel_id != ctx.channel.id:
            output = f"**A role controller for that category already exists in <#{existing.channel_id}>.**"
        else:
            output = "**A role controller for that category already exists.**"
        await ctx.send(output, delete_after=FEEDBACK_TTL)
        return

    controller = await manager.create(ctx.guild.id, ctx.channel.id, category)
    if controller is None:
        await ctx.send(
            f"**No roles found for category `{category}`.** "
            f"Name roles like `{category}:<name>` and try again.",
            delete_after=FEEDBACK_TTL,
        )


@commands.command(name="sync", help="Resync the controller for an active category", usage="<category>")
@commands.guild_only()
@commands.has_permissions(administrator=True)
async def sync_controller(ctx: commands.Context, category: str):
    await delete_invocation(ctx)
    manager: ControllerManager = ctx.bot.manager

    controller = manager.get_controller(ctx.guild.id, category)
    if not controller:
        await ctx.send("**Failed to find a role controller for that category.**", delete_after=FEEDBACK_TTL)
        return

    await manager.sync(controller)


# =========================================================
# BOT
# =========================================================
class RoleBot(commands.Bot):
    def __init__(self, data_file: str = DATA_FILE, prefix: str = COMMAND_PREFIX, rate_limit_seconds: float = RATE_LIMIT_SECONDS):
        intents = discord.Intents.default()
        intents.message_content = True
        super().__init__(command_prefix=commands.when_mentioned_or(prefix), intents=intents)
        self.manager = ControllerManager(
            DiscordRoleService(self),
            JsonStore(data_file),
            rate_limit_window=rate_limit_seconds,
        )
        self._controllers_loaded = False

    async def setup_hook(self):
        self.add_command(new_controller)
        self.add_command(sync_controller)

    async def on_ready(self):
        log.info("Logged in as %s (%s)", self.user, self.user.id if self.user else "?")
        # on_ready fires again after reconnects
        if self._controllers_loaded:
            return
        await self.manager.init()
        self._controllers_loaded = True

    async def close(self):
        self.manager.close()
        await super().close()

    async def on_raw_reaction_add(self, payload: discord.RawReactionActionEvent):
        event = reaction_event(payload)
        if event:
            await self.manager.on_reaction(event)

    async def on_guild_role_create(self, role: discord.Role):
        await self.manager.on_role_changed(role_event(RoleChangeKind.CREATE, role))

    async def on_guild_role_update(self, before: discord.Role, after: discord.Role):
        await self.manager.on_role_changed(role_event(RoleChangeKind.UPDATE, after, before))

    async def on_guild_role_delete(self, role: discord.Role):
        await self.manager.on_role_changed(role_event(RoleChangeKind.DELETE, role))

    async def on_raw_message_delete(self, payload: discord.RawMessageDeleteEvent):
        for event in deleted_events(payload.guild_id, payload.channel_id, [payload.message_id]):
            await self.manager.on_message_deleted(event)

    async def on_raw_bulk_message_delete(self, payload: discord.RawBulkMessageDeleteEvent):
        for event in deleted_events(payload.guild_id, payload.channel_id, payload.message_ids):
            await self.manager.on_message_deleted(event)

    async def on_command_error(self, ctx: commands.Context, error: commands.CommandError):
        if isinstance(error, commands.CommandNotFound):
            return
        if isinstance(error, commands.MissingPermissions):
            await ctx.send("Only administrators can manage role controllers.", delete_after=FEEDBACK_TTL)
            return
        if isinstance(error, commands.NoPrivateMessage):
            await ctx.send("That command only works in a server.")
            return
        if isinstance(error, commands.UserInputError):
            await ctx.send(f"Usage: `{ctx.clean_prefix}{ctx.command.name} {ctx.command.usage}`", delete_after=FEEDBACK_TTL)
            return
        log.error("Command %s failed", ctx.command, exc_info=error)


# =========================================================
# ENTRYPOINT
# =========================================================
def main():
    if not DISCORD_BOT_TOKEN:
        raise RuntimeError("DISCORD_BOT_TOKEN is not set.")
    bot = RoleBot()
    bot.run(DISCORD_BOT_TOKEN, log_level=getattr(logging, LOG_LEVEL, logging.INFO), root_logger=True)


if __name__ == "__main__":
    main()
