"""
Group records held by the GroupStore.

AvailableGroup is a group the user may request to join; JoinedGroup is a
membership record with its activity summary. Both serialize to plain dicts
for persistence.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Mapping

from .errors import StorageError

WELCOME_MESSAGE = "Welcome to the group!"
WELCOME_SENDER = "System"

AVATAR_PALETTE = (
    "bg-gradient-to-br from-indigo-600 via-purple-500 to-pink-500",
    "bg-gradient-to-br from-amber-500 via-orange-500 to-rose-500",
    "bg-gradient-to-br from-slate-700 via-slate-600 to-slate-500",
    "bg-gradient-to-br from-teal-500 via-emerald-500 to-lime-500",
    "bg-gradient-to-br from-blue-500 via-cyan-500 to-teal-500",
    "bg-gradient-to-br from-pink-500 via-rose-500 to-red-500",
)

_ID_SEPARATOR_RE = re.compile(r"[^a-z0-9]+")

# Keys written by earlier front-end builds, accepted on read
_LEGACY_KEYS = {
    "minWld": "min_balance",
    "avatarBg": "avatar_tag",
    "joinedAt": "joined_at",
    "lastMessage": "last_message",
    "lastSender": "last_sender",
    "unread": "unread_count",
}


def derive_group_id(name: str) -> str:
    """
    Derive a stable slug from a group name.

    Example:
        >>> derive_group_id("  Builders SP! ")
        'builders-sp'
    """
    return _ID_SEPARATOR_RE.sub("-", name.lower()).strip("-")


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class AvailableGroup:
    id: str
    name: str
    description: str
    min_balance: Decimal
    members: int = 0
    avatar_tag: str = AVATAR_PALETTE[0]

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["min_balance"] = str(self.min_balance)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AvailableGroup":
        values = _normalize_record(data)
        return cls(**{name: values[name] for name in _AVAILABLE_FIELDS if name in values})


@dataclass
class JoinedGroup:
    id: str
    name: str
    description: str
    min_balance: Decimal
    members: int = 0
    avatar_tag: str = AVATAR_PALETTE[0]
    joined_at: str = field(default_factory=utc_timestamp)
    last_message: str = WELCOME_MESSAGE
    last_sender: str = WELCOME_SENDER
    unread_count: int = 0

    @classmethod
    def from_available(cls, group: AvailableGroup) -> "JoinedGroup":
        return cls(
            id=group.id,
            name=group.name,
            description=group.description,
            min_balance=group.min_balance,
            members=group.members,
            avatar_tag=group.avatar_tag,
        )

    def to_available(self) -> AvailableGroup:
        return AvailableGroup(
            id=self.id,
            name=self.name,
            description=self.description,
            min_balance=self.min_balance,
            members=self.members,
            avatar_tag=self.avatar_tag,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["min_balance"] = str(self.min_balance)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "JoinedGroup":
        values = _normalize_record(data)
        return cls(**{name: values[name] for name in _JOINED_FIELDS if name in values})


_AVAILABLE_FIELDS = tuple(AvailableGroup.__dataclass_fields__)
_JOINED_FIELDS = tuple(JoinedGroup.__dataclass_fields__)


def _normalize_record(data: Mapping[str, Any]) -> Dict[str, Any]:
    if not isinstance(data, Mapping):
        raise StorageError("group record must be a mapping")

    values = {_LEGACY_KEYS.get(key, key): value for key, value in data.items()}
    for required in ("id", "name", "min_balance"):
        if required not in values:
            raise StorageError(f"group record missing {required!r}")

    if not isinstance(values["id"], str) or not values["id"]:
        raise StorageError("group record id must be a non-empty string")
    values.setdefault("description", "")

    try:
        values["min_balance"] = Decimal(str(values["min_balance"]))
    except InvalidOperation as exc:
        raise StorageError(f"invalid min_balance in group {values['id']!r}") from exc
    if not values["min_balance"].is_finite() or values["min_balance"] < 0:
        raise StorageError(f"invalid min_balance in group {values['id']!r}")

    for counter in ("members", "unread_count"):
        if counter in values:
            try:
                values[counter] = max(0, int(values[counter]))
            except (TypeError, ValueError) as exc:
                raise StorageError(f"invalid {counter} in group {values['id']!r}") from exc
    return values
