"""
Shared fixtures for the role controller tests.

FakeRoleService keeps guild roles, member roles and posted messages in memory
so the manager and controllers run without any Discord connection.
"""

import itertools
from typing import Dict, Iterable, List, Set, Tuple

import pytest

from category_roles.events import ReactionAdded, ReactionEmoji, RoleInfo
from category_roles.manager import ControllerManager
from category_roles.services import ControllerView, MessageUnavailable, RoleService
from category_roles.store import NestedDictStore

GUILD = 100
CHANNEL = 200
BOT_ID = 999


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRoleService(RoleService):
    def __init__(self):
        self._ids = itertools.count(5000)
        self.roles: Dict[int, List[RoleInfo]] = {}
        self.members: Dict[Tuple[int, int], Set[int]] = {}
        self.views: Dict[Tuple[int, int], ControllerView] = {}
        self.reactions: Dict[Tuple[int, int], List[Tuple[str, int]]] = {}
        self.sent: List[Tuple[int, int]] = []
        self.unavailable: Set[Tuple[int, int]] = set()
        self.broken: Set[Tuple[int, int]] = set()
        self.fail_add_role = False
        self.fail_add_reaction = False

    # helpers for tests
    def add_guild_role(self, name: str, guild_id: int = GUILD) -> RoleInfo:
        role = RoleInfo(id=next(self._ids), name=name, guild_id=guild_id)
        self.roles.setdefault(guild_id, []).append(role)
        return role

    def delete_guild_role(self, role: RoleInfo) -> None:
        self.roles[role.guild_id] = [r for r in self.roles[role.guild_id] if r.id != role.id]

    def rename_guild_role(self, role: RoleInfo, name: str) -> RoleInfo:
        renamed = RoleInfo(id=role.id, name=name, guild_id=role.guild_id)
        self.roles[role.guild_id] = [renamed if r.id == role.id else r for r in self.roles[role.guild_id]]
        return renamed

    def role_names_of(self, user_id: int, guild_id: int = GUILD) -> Set[str]:
        held = self.members.get((guild_id, user_id), set())
        return {r.name for r in self.roles.get(guild_id, []) if r.id in held}

    def emojis_on(self, channel_id: int, message_id: int) -> List[str]:
        return [e for e, _ in self.reactions.get((channel_id, message_id), [])]

    # RoleService
    @property
    def bot_user_id(self) -> int:
        return BOT_ID

    async def list_roles(self, guild_id: int) -> List[RoleInfo]:
        return list(self.roles.get(guild_id, []))

    async def member_role_ids(self, guild_id: int, user_id: int) -> Set[int]:
        return set(self.members.get((guild_id, user_id), set()))

    async def add_role(self, guild_id: int, user_id: int, role_id: int) -> None:
        if self.fail_add_role:
            raise RuntimeError("add_role failed")
        self.members.setdefault((guild_id, user_id), set()).add(role_id)

    async def remove_roles(self, guild_id: int, user_id: int, role_ids: Iterable[int]) -> None:
        self.members.setdefault((guild_id, user_id), set()).difference_update(role_ids)

    async def send_view(self, channel_id: int, view: ControllerView) -> int:
        message_id = next(self._ids)
        self.sent.append((channel_id, message_id))
        self.views[(channel_id, message_id)] = view
        self.reactions[(channel_id, message_id)] = []
        return message_id

    async def edit_view(self, channel_id: int, message_id: int, view: ControllerView) -> None:
        self.views[(channel_id, message_id)] = view

    async def fetch_message(self, channel_id: int, message_id: int) -> None:
        if (channel_id, message_id) in self.broken:
            raise RuntimeError("503 Service Unavailable")
        if (channel_id, message_id) in self.unavailable:
            raise MessageUnavailable(channel_id, message_id, "Unknown Message")

    async def add_reaction(self, channel_id: int, message_id: int, emoji: str) -> None:
        if self.fail_add_reaction:
            raise RuntimeError("add_reaction failed")
        self.reactions.setdefault((channel_id, message_id), []).append((emoji, BOT_ID))

    async def clear_reactions(self, channel_id: int, message_id: int) -> None:
        self.reactions[(channel_id, message_id)] = []

    async def remove_reaction(self, channel_id: int, message_id: int, emoji: str, user_id: int) -> None:
        reactions = self.reactions.get((channel_id, message_id), [])
        if (emoji, user_id) in reactions:
            reactions.remove((emoji, user_id))

    async def delete_message(self, channel_id: int, message_id: int) -> None:
        self.views.pop((channel_id, message_id), None)
        self.reactions.pop((channel_id, message_id), None)


def press(service: FakeRoleService, controller, user_id: int, emoji: str, emoji_id=None, is_bot=False) -> ReactionAdded:
    """Record the user's reaction on the message and build the matching event."""
    service.reactions.setdefault(controller.key, []).append((emoji, user_id))
    return ReactionAdded(
        guild_id=controller.guild_id,
        channel_id=controller.channel_id,
        message_id=controller.message_id,
        user_id=user_id,
        emoji=ReactionEmoji(name=emoji, id=emoji_id),
        is_bot=is_bot,
    )


@pytest.fixture
def service() -> FakeRoleService:
    return FakeRoleService()


@pytest.fixture
def store() -> NestedDictStore:
    return NestedDictStore()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def manager(service, store, clock) -> ControllerManager:
    return ControllerManager(service, store, rate_limit_window=600, clock=clock)


@pytest.fixture
def color_roles(service) -> List[RoleInfo]:
    return [service.add_guild_role("color:Red"), service.add_guild_role("color:Blue")]
