import enum
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class RoleInfo:
    id: int
    name: str
    guild_id: int


@dataclass(frozen=True)
class ReactionEmoji:
    name: Optional[str]
    id: Optional[int] = None

    @property
    def key(self) -> str:
        # Custom emoji are addressed as "name:id", unicode emoji by name.
        if self.id:
            return f"{self.name}:{self.id}"
        return self.name or ""


@dataclass(frozen=True)
class ReactionAdded:
    guild_id: int
    channel_id: int
    message_id: int
    user_id: int
    emoji: ReactionEmoji
    is_bot: bool = False


class RoleChangeKind(enum.Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class RoleChanged:
    kind: RoleChangeKind
    role: RoleInfo
    previous: Optional[RoleInfo] = None


@dataclass(frozen=True)
class MessageDeleted:
    guild_id: int
    channel_id: int
    message_id: int


def category_of(role_name: str) -> Optional[str]:
    """Category implied by a role name: the text before the first ':'."""
    head, sep, _ = role_name.partition(":")
    if not sep or not head:
        return None
    return head


def has_category(role_name: str, category: str) -> bool:
    return role_name.startswith(f"{category}:")


def strip_category(role_name: str, category: str) -> str:
    prefix = f"{category}:"
    if role_name.startswith(prefix):
        return role_name[len(prefix):]
    return role_name
