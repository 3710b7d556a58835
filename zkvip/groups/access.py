"""
Proof-gated group access.

A group moves from available to joined only through complete_join() with a
proof that verified locally. The single exception is
create_group_as_creator(): the creator of a new group joins it immediately
without a proof. That is a deliberate policy (the creator chose the
threshold), and it is security-relevant: anyone can create a group and be in
it without proving a balance. It lives behind its own method so it cannot be
reached from the general join path.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Set

from ..membership_proof.progress import ProgressCallback, StepTracker
from ..membership_proof.service import ProofService
from ..membership_proof.types import ProofResult, scale_amount
from .errors import JoinInProgressError, NotFoundError, ProofRejectedError
from .models import AvailableGroup, JoinedGroup
from .store import GroupStore

logger = logging.getLogger(__name__)


class AccessController:
    """
    Commits a joined-group record iff the proof run for that group succeeded.

    The threshold always comes from the stored group record, never from the
    caller's copy. At most one request_join() per group id runs at a time; a
    concurrent second request raises JoinInProgressError instead of racing the
    first. Each request gets its own StepTracker, readable via tracker_for().
    """

    def __init__(
        self,
        store: GroupStore,
        proof_service: Optional[ProofService] = None,
    ) -> None:
        self._store = store
        self._proof_service = proof_service
        self._in_flight: Set[str] = set()
        self._trackers: Dict[str, StepTracker] = {}

    @property
    def store(self) -> GroupStore:
        return self._store

    def is_join_in_flight(self, group_id: str) -> bool:
        return group_id in self._in_flight

    def tracker_for(self, group_id: str) -> Optional[StepTracker]:
        """Step tracker of the latest request_join() for group_id, if any."""
        return self._trackers.get(group_id)

    def complete_join(
        self, group: AvailableGroup, proof_outcome: ProofResult
    ) -> JoinedGroup:
        """
        Join group if proof_outcome verified against the stored minimum.

        Raises:
            ProofRejectedError: If the proof is missing, did not verify, or
                proves a threshold below the group's stored min_balance
            NotFoundError: If the group is neither available nor joined
        """
        if not isinstance(proof_outcome, ProofResult) or not proof_outcome.is_valid:
            raise ProofRejectedError(f"proof for group {group.id!r} is not valid")

        stored = self._store.get_available(group.id)
        if stored is None:
            # Already joined (idempotent) or unknown (NotFoundError)
            return self._store.join(group.id)

        required = scale_amount(stored.min_balance)
        public_inputs = proof_outcome.public_inputs
        if not public_inputs or public_inputs[0] < required:
            raise ProofRejectedError(
                f"proof for group {group.id!r} does not cover its minimum balance "
                f"of {stored.min_balance} WLD"
            )
        return self._store.join(group.id)

    async def request_join(
        self,
        group: AvailableGroup,
        wallet_address: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> JoinedGroup:
        """
        Check the wallet balance, prove eligibility and join group.

        Drives a fresh StepTracker through the four join steps and resets it
        on any failure.

        Raises:
            JoinInProgressError: Another join for this group is running
            NotFoundError: The group is neither available nor joined
            ValidationError / OracleError / BackendError: From the proof pipeline
            ProofRejectedError: The generated proof did not verify
        """
        if self._proof_service is None:
            raise RuntimeError("AccessController has no ProofService configured")
        if group.id in self._in_flight:
            raise JoinInProgressError(f"a join for group {group.id!r} is already running")

        existing = self._store.get_joined(group.id)
        if existing is not None:
            return existing
        stored = self._store.get_available(group.id)
        if stored is None:
            raise NotFoundError(f"unknown group: {group.id!r}")

        self._in_flight.add(group.id)
        tracker = StepTracker()
        self._trackers[group.id] = tracker
        tracker.start()

        def _progress(percent: int, text: str) -> None:
            tracker.on_progress(percent, text)
            if on_progress is not None:
                on_progress(percent, text)

        try:
            result = await self._proof_service.prove_eligibility(
                stored.min_balance, wallet_address, _progress
            )
            tracker.advance_to(3)
            joined = self.complete_join(stored, result)
            tracker.complete()
        except BaseException:
            tracker.reset()
            raise
        finally:
            self._in_flight.discard(group.id)

        return joined

    def create_group_as_creator(
        self,
        name: str,
        description: str,
        min_balance: Any,
        avatar_tag: Optional[str] = None,
    ) -> JoinedGroup:
        """
        Create a group and join it as its creator, without a proof.

        Raises:
            InvalidArgumentError / DuplicateGroupError: From GroupStore.create
        """
        group = self._store.create(name, description, min_balance, avatar_tag)
        logger.info(
            "Creator exemption: joining new group %s without a balance proof",
            group.id,
        )
        return self._store.join(group.id)
