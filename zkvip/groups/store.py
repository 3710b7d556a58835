"""
Client-resident group membership store.

GroupStore owns two collections, available groups and joined groups, and
keeps them disjoint: a group id lives in at most one of them. Every
mutation is written to storage and only then announced to subscribers.
Methods are synchronous and never suspend, so within one trio run no reader
can observe a half-applied transition.

Single-instance assumption: two stores writing the same storage are not
coordinated. refresh() re-reads storage after an out-of-process change.
"""

from __future__ import annotations

import logging
import random
from dataclasses import replace
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional

from .errors import DuplicateGroupError, InvalidArgumentError, NotFoundError
from .events import ChangeNotifier, GroupEvent, Listener
from .models import AVATAR_PALETTE, AvailableGroup, JoinedGroup, derive_group_id
from .storage import (
    AVAILABLE_GROUPS_KEY,
    JOINED_GROUPS_KEY,
    GroupStorage,
    MemoryStorage,
)

logger = logging.getLogger(__name__)

DEFAULT_AVAILABLE_GROUPS = (
    AvailableGroup(
        id="zk-builders",
        name="ZK Builders",
        description="Daily discussions about ZK, proofs and tooling.",
        min_balance=Decimal("0.5"),
        members=124,
        avatar_tag=AVATAR_PALETTE[0],
    ),
    AvailableGroup(
        id="ethereum-sp",
        name="Ethereum São Paulo",
        description="Events, meetups and grants from the São Paulo community.",
        min_balance=Decimal("1"),
        members=89,
        avatar_tag=AVATAR_PALETTE[1],
    ),
)


class GroupStore:
    """
    Available/joined group collections with change notification.

    Example:
        >>> store = GroupStore(MemoryStorage())
        >>> store.seed_defaults()
        True
        >>> joined = store.join("zk-builders")
        >>> [g.id for g in store.list_available()]
        ['ethereum-sp']
    """

    def __init__(
        self,
        storage: Optional[GroupStorage] = None,
        *,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._storage = storage if storage is not None else MemoryStorage()
        self._rng = rng or random.Random()
        self._notifier = ChangeNotifier()
        self._available: Dict[str, AvailableGroup] = {}
        self._joined: Dict[str, JoinedGroup] = {}
        self._load()

    # ------------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------------

    def subscribe(self, event: GroupEvent, listener: Listener) -> Callable[[], None]:
        """Subscribe to a change signal; returns a disposer."""
        return self._notifier.subscribe(event, listener)

    def refresh(self) -> None:
        """Re-read storage (e.g. on regaining focus) and signal both collections."""
        self._load()
        self._notifier.emit(GroupEvent.AVAILABLE_CHANGED)
        self._notifier.emit(GroupEvent.JOINED_CHANGED)

    # ------------------------------------------------------------------------
    # Readers
    # ------------------------------------------------------------------------

    def list_available(
        self,
        excluding_joined: bool = True,
        max_min_balance: Any = None,
    ) -> List[AvailableGroup]:
        """
        Available groups, optionally only those with min_balance <= max_min_balance.

        Raises:
            InvalidArgumentError: max_min_balance is not a positive number
        """
        groups = list(self._available.values())
        if excluding_joined:
            groups = [group for group in groups if group.id not in self._joined]
        if max_min_balance is not None:
            ceiling = _parse_min_balance(max_min_balance)
            groups = [group for group in groups if group.min_balance <= ceiling]
        return groups

    def list_joined(self) -> List[JoinedGroup]:
        return [replace(group) for group in self._joined.values()]

    def get_joined(self, group_id: str) -> Optional[JoinedGroup]:
        group = self._joined.get(group_id)
        return replace(group) if group is not None else None

    def get_available(self, group_id: str) -> Optional[AvailableGroup]:
        return self._available.get(group_id)

    def is_joined(self, group_id: str) -> bool:
        return group_id in self._joined

    # ------------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------------

    def seed_defaults(self) -> bool:
        """
        Write the starter groups if the available collection was never written.

        Returns:
            True if seeding happened, False if the store was already initialized
        """
        if self._storage.load(AVAILABLE_GROUPS_KEY) is not None:
            return False

        available = dict(self._available)
        for group in DEFAULT_AVAILABLE_GROUPS:
            if group.id not in self._joined:
                available.setdefault(group.id, group)
        self._save_available(available)
        self._available = available
        logger.info("Seeded %d default groups", len(available))
        self._notifier.emit(GroupEvent.AVAILABLE_CHANGED)
        return True

    def create(
        self,
        name: str,
        description: str,
        min_balance: Any,
        avatar_tag: Optional[str] = None,
    ) -> AvailableGroup:
        """
        Create a new available group.

        Raises:
            InvalidArgumentError: Empty name/id, or min_balance not a positive number
            DuplicateGroupError: Derived id already available or joined
        """
        if not isinstance(name, str) or not name.strip():
            raise InvalidArgumentError("group name must not be empty")
        name = name.strip()
        minimum = _parse_min_balance(min_balance)

        group_id = derive_group_id(name)
        if not group_id:
            raise InvalidArgumentError(
                f"group name {name!r} must contain at least one letter or digit"
            )
        if group_id in self._available or group_id in self._joined:
            raise DuplicateGroupError(f"a group with this name already exists: {group_id}")

        group = AvailableGroup(
            id=group_id,
            name=name,
            description=description or "",
            min_balance=minimum,
            members=0,
            avatar_tag=avatar_tag or self._rng.choice(AVATAR_PALETTE),
        )
        available = dict(self._available)
        available[group_id] = group
        self._save_available(available)
        self._available = available
        logger.info("Created group %s (min balance %s)", group_id, minimum)
        self._notifier.emit(GroupEvent.AVAILABLE_CHANGED)
        return group

    def join(self, group_id: str) -> JoinedGroup:
        """
        Move a group from available to joined.

        Idempotent: joining an already-joined id returns the existing record
        unchanged and emits nothing.

        Raises:
            NotFoundError: If the id is neither available nor joined
        """
        existing = self._joined.get(group_id)
        if existing is not None:
            return replace(existing)

        available = self._available.get(group_id)
        if available is None:
            raise NotFoundError(f"unknown group: {group_id!r}")

        record = JoinedGroup.from_available(available)
        joined = dict(self._joined)
        joined[group_id] = record
        remaining = {gid: g for gid, g in self._available.items() if gid != group_id}

        # Persist joined first: a crash between the two writes leaves the id
        # in both records, which _load() resolves in favour of joined.
        self._save_joined(joined)
        self._save_available(remaining)
        self._joined = joined
        self._available = remaining

        logger.info("Joined group %s", group_id)
        self._notifier.emit(GroupEvent.JOINED_CHANGED)
        self._notifier.emit(GroupEvent.AVAILABLE_CHANGED)
        return replace(record)

    def remove(self, group_id: str) -> None:
        """Remove an id from the available collection; no-op if absent."""
        if group_id not in self._available:
            return
        remaining = {gid: g for gid, g in self._available.items() if gid != group_id}
        self._save_available(remaining)
        self._available = remaining
        self._notifier.emit(GroupEvent.AVAILABLE_CHANGED)

    def record_message(self, group_id: str, message: str, sender: str) -> None:
        """Update the activity summary of a joined group; no-op if not joined."""
        self._update_joined(
            group_id, last_message=str(message), last_sender=str(sender)
        )

    def increment_unread(self, group_id: str) -> None:
        """Bump the unread counter of a joined group; no-op if not joined."""
        group = self._joined.get(group_id)
        if group is not None:
            self._update_joined(group_id, unread_count=group.unread_count + 1)

    def clear_unread(self, group_id: str) -> None:
        """Reset the unread counter of a joined group; no-op if not joined."""
        self._update_joined(group_id, unread_count=0)

    # ------------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------------

    def _update_joined(self, group_id: str, **changes: Any) -> None:
        group = self._joined.get(group_id)
        if group is None:
            return
        joined = dict(self._joined)
        joined[group_id] = replace(group, **changes)
        self._save_joined(joined)
        self._joined = joined
        self._notifier.emit(GroupEvent.JOINED_CHANGED)

    def _load(self) -> None:
        joined_records = self._storage.load(JOINED_GROUPS_KEY) or []
        available_records = self._storage.load(AVAILABLE_GROUPS_KEY) or []

        joined: Dict[str, JoinedGroup] = {}
        for data in joined_records:
            group = JoinedGroup.from_dict(data)
            joined.setdefault(group.id, group)

        available: Dict[str, AvailableGroup] = {}
        for data in available_records:
            group = AvailableGroup.from_dict(data)
            if group.id in joined:
                logger.debug("Dropping %s from available: already joined", group.id)
                continue
            available.setdefault(group.id, group)

        self._joined = joined
        self._available = available

    def _save_available(self, available: Dict[str, AvailableGroup]) -> None:
        self._storage.save(
            AVAILABLE_GROUPS_KEY, [g.to_dict() for g in available.values()]
        )

    def _save_joined(self, joined: Dict[str, JoinedGroup]) -> None:
        self._storage.save(JOINED_GROUPS_KEY, [g.to_dict() for g in joined.values()])


def _parse_min_balance(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise InvalidArgumentError("minimum balance must be a number")
    try:
        minimum = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise InvalidArgumentError(f"minimum balance must be a number, got {value!r}") from exc
    if not minimum.is_finite() or minimum <= 0:
        raise InvalidArgumentError("minimum balance must be greater than zero")
    return minimum
