"""Tests for the available/joined group store."""

import random
from decimal import Decimal

import pytest

from zkvip.groups.errors import DuplicateGroupError, InvalidArgumentError, NotFoundError
from zkvip.groups.events import GroupEvent
from zkvip.groups.models import AVATAR_PALETTE, WELCOME_MESSAGE, WELCOME_SENDER
from zkvip.groups.storage import AVAILABLE_GROUPS_KEY, JOINED_GROUPS_KEY, MemoryStorage
from zkvip.groups.store import GroupStore


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def store(storage):
    store = GroupStore(storage, rng=random.Random(7))
    store.seed_defaults()
    return store


def _count(store, event):
    calls = []
    store.subscribe(event, lambda: calls.append(event))
    return calls


def _assert_disjoint(store):
    available = {g.id for g in store.list_available(excluding_joined=False)}
    joined = {g.id for g in store.list_joined()}
    assert not available & joined


class TestLowMinimumFilter:
    def test_keeps_groups_at_or_below_ceiling(self, store):
        store.create("Whales", "", "1000")
        assert {g.id for g in store.list_available(max_min_balance=1)} == {
            "zk-builders",
            "ethereum-sp",
        }
        assert [g.id for g in store.list_available(max_min_balance="0.5")] == [
            "zk-builders"
        ]

    def test_combines_with_joined_exclusion(self, store):
        store.join("zk-builders")
        assert [g.id for g in store.list_available(max_min_balance=1)] == ["ethereum-sp"]

    @pytest.mark.parametrize("bad", ["lots", 0, -1])
    def test_rejects_invalid_ceiling(self, store, bad):
        with pytest.raises(InvalidArgumentError):
            store.list_available(max_min_balance=bad)


class TestSeeding:
    def test_defaults(self, store):
        groups = {g.id: g for g in store.list_available()}
        assert set(groups) == {"zk-builders", "ethereum-sp"}
        assert groups["zk-builders"].min_balance == Decimal("0.5")
        assert groups["ethereum-sp"].min_balance == Decimal("1")
        assert groups["ethereum-sp"].members == 89

    def test_seed_only_once(self, store):
        store.remove("zk-builders")
        assert store.seed_defaults() is False
        assert [g.id for g in store.list_available()] == ["ethereum-sp"]

    def test_seed_persists_empty_state_detection(self, storage):
        store = GroupStore(storage)
        assert store.list_available() == []
        assert storage.load(AVAILABLE_GROUPS_KEY) is None
        assert store.seed_defaults() is True
        assert len(storage.load(AVAILABLE_GROUPS_KEY)) == 2

    def test_list_available_does_not_seed(self, storage):
        GroupStore(storage).list_available()
        assert storage.load(AVAILABLE_GROUPS_KEY) is None


class TestCreate:
    def test_create(self, store):
        calls = _count(store, GroupEvent.AVAILABLE_CHANGED)
        group = store.create("  Builders SP ", "Local builders", "0.25")

        assert group.id == "builders-sp"
        assert group.name == "Builders SP"
        assert group.min_balance == Decimal("0.25")
        assert group.members == 0
        assert group.avatar_tag in AVATAR_PALETTE
        assert store.get_available("builders-sp") == group
        assert calls == [GroupEvent.AVAILABLE_CHANGED]

    def test_duplicate_name(self, store):
        store.create("Builders SP", "", 1)
        with pytest.raises(DuplicateGroupError):
            store.create("builders sp!", "", 2)

    def test_duplicate_of_joined_group(self, store):
        store.join("zk-builders")
        with pytest.raises(DuplicateGroupError):
            store.create("ZK Builders", "", 1)

    def test_explicit_avatar(self, store):
        group = store.create("Art", "", 1, avatar_tag="bg-black")
        assert group.avatar_tag == "bg-black"

    @pytest.mark.parametrize("name", ["", "   ", "!!!", None])
    def test_invalid_name(self, store, name):
        with pytest.raises(InvalidArgumentError):
            store.create(name, "", 1)

    @pytest.mark.parametrize("minimum", [0, "-1", "abc", "", True, "NaN", None])
    def test_invalid_min_balance(self, store, minimum):
        with pytest.raises(InvalidArgumentError):
            store.create("New group", "", minimum)

    def test_failed_create_changes_nothing(self, store, storage):
        before = storage.load(AVAILABLE_GROUPS_KEY)
        with pytest.raises(InvalidArgumentError):
            store.create("New group", "", 0)
        assert storage.load(AVAILABLE_GROUPS_KEY) == before


class TestJoin:
    def test_join_moves_group(self, store, storage):
        joined = store.join("zk-builders")

        assert joined.id == "zk-builders"
        assert joined.last_message == WELCOME_MESSAGE
        assert joined.last_sender == WELCOME_SENDER
        assert joined.unread_count == 0
        assert joined.joined_at
        assert [g.id for g in store.list_available()] == ["ethereum-sp"]
        assert [g.id for g in store.list_joined()] == ["zk-builders"]
        assert [r["id"] for r in storage.load(JOINED_GROUPS_KEY)] == ["zk-builders"]
        assert [r["id"] for r in storage.load(AVAILABLE_GROUPS_KEY)] == ["ethereum-sp"]
        _assert_disjoint(store)

    def test_join_is_idempotent(self, store):
        first = store.join("zk-builders")
        joined_calls = _count(store, GroupEvent.JOINED_CHANGED)
        available_calls = _count(store, GroupEvent.AVAILABLE_CHANGED)

        second = store.join("zk-builders")
        assert second.joined_at == first.joined_at
        assert len(store.list_joined()) == 1
        assert joined_calls == []
        assert available_calls == []

    def test_join_emits_each_event_once(self, store):
        joined_calls = _count(store, GroupEvent.JOINED_CHANGED)
        available_calls = _count(store, GroupEvent.AVAILABLE_CHANGED)
        store.join("ethereum-sp")
        assert len(joined_calls) == 1
        assert len(available_calls) == 1

    def test_join_unknown(self, store):
        with pytest.raises(NotFoundError):
            store.join("nope")

    def test_returned_records_are_copies(self, store):
        joined = store.join("zk-builders")
        joined.unread_count = 99
        store.list_joined()[0].unread_count = 42
        assert store.get_joined("zk-builders").unread_count == 0

    def test_listeners_see_committed_state(self, store):
        seen = []
        store.subscribe(
            GroupEvent.JOINED_CHANGED,
            lambda: seen.append(
                (store.is_joined("zk-builders"), store.get_available("zk-builders"))
            ),
        )
        store.join("zk-builders")
        assert seen == [(True, None)]


class TestActivity:
    def test_record_message(self, store):
        store.join("zk-builders")
        calls = _count(store, GroupEvent.JOINED_CHANGED)
        store.record_message("zk-builders", "gm", "alice")
        group = store.get_joined("zk-builders")
        assert (group.last_message, group.last_sender) == ("gm", "alice")
        assert len(calls) == 1

    def test_unread_counter(self, store):
        store.join("zk-builders")
        store.increment_unread("zk-builders")
        store.increment_unread("zk-builders")
        assert store.get_joined("zk-builders").unread_count == 2
        store.clear_unread("zk-builders")
        assert store.get_joined("zk-builders").unread_count == 0

    @pytest.mark.parametrize(
        "mutate",
        [
            lambda s: s.increment_unread("unknown"),
            lambda s: s.clear_unread("unknown"),
            lambda s: s.record_message("unknown", "hi", "bob"),
            lambda s: s.increment_unread("ethereum-sp"),
        ],
    )
    def test_unknown_ids_are_noops(self, store, storage, mutate):
        calls = _count(store, GroupEvent.JOINED_CHANGED)
        mutate(store)
        assert calls == []
        assert storage.load(JOINED_GROUPS_KEY) is None


class TestRemove:
    def test_remove(self, store):
        calls = _count(store, GroupEvent.AVAILABLE_CHANGED)
        store.remove("zk-builders")
        assert store.get_available("zk-builders") is None
        assert len(calls) == 1

    def test_remove_absent_is_noop(self, store):
        calls = _count(store, GroupEvent.AVAILABLE_CHANGED)
        store.remove("missing")
        assert calls == []


class TestPersistence:
    def test_state_survives_reload(self, store, storage):
        store.create("Builders SP", "desc", "0.25")
        store.join("builders-sp")
        store.increment_unread("builders-sp")

        reloaded = GroupStore(storage)
        assert reloaded.get_joined("builders-sp").unread_count == 1
        assert reloaded.get_joined("builders-sp").min_balance == Decimal("0.25")
        assert {g.id for g in reloaded.list_available()} == {"zk-builders", "ethereum-sp"}

    def test_joined_wins_over_stale_available(self, storage):
        record = {
            "id": "zk-builders",
            "name": "ZK Builders",
            "description": "",
            "min_balance": "0.5",
        }
        storage.save(AVAILABLE_GROUPS_KEY, [record])
        storage.save(JOINED_GROUPS_KEY, [record])

        store = GroupStore(storage)
        assert store.list_available(excluding_joined=False) == []
        assert store.is_joined("zk-builders")

    def test_legacy_keys(self, storage):
        storage.save(
            JOINED_GROUPS_KEY,
            [
                {
                    "id": "old",
                    "name": "Old Group",
                    "description": "from a previous build",
                    "minWld": 2,
                    "members": 5,
                    "avatarBg": "bg-red",
                    "joinedAt": "2024-01-01T00:00:00+00:00",
                    "lastMessage": "hello",
                    "lastSender": "Bob",
                    "unread": 3,
                }
            ],
        )
        group = GroupStore(storage).get_joined("old")
        assert group.min_balance == Decimal("2")
        assert group.avatar_tag == "bg-red"
        assert group.joined_at == "2024-01-01T00:00:00+00:00"
        assert (group.last_message, group.last_sender, group.unread_count) == (
            "hello",
            "Bob",
            3,
        )

    def test_refresh_picks_up_external_changes(self, store, storage):
        other = GroupStore(storage)
        other.join("ethereum-sp")

        joined_calls = _count(store, GroupEvent.JOINED_CHANGED)
        available_calls = _count(store, GroupEvent.AVAILABLE_CHANGED)
        store.refresh()

        assert store.is_joined("ethereum-sp")
        assert len(joined_calls) == 1
        assert len(available_calls) == 1
        _assert_disjoint(store)


def test_subscription_disposer(store):
    calls = []
    dispose = store.subscribe(GroupEvent.AVAILABLE_CHANGED, lambda: calls.append(1))
    store.remove("zk-builders")
    dispose()
    dispose()
    store.remove("ethereum-sp")
    assert calls == [1]
