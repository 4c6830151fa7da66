"""
Attestation Status Store

In-memory lifecycle records, one per attestation attempt. Every stage of the
pipeline writes its progress here; the API reads it for status polling.

The store is an explicit instance passed to each stage (tests build their own).
Records are returned as copies, so callers can never mutate stored state.

Invariants enforced here:
- ids are unique for the life of the process (create() rejects duplicates)
- phases only move forward one step at a time:
      preparing -> submitted -> waiting -> finalized -> proof-ready
  and any active phase may move to failed
- terminal records (proof-ready / failed) never change again
- proof only on proof-ready, error only on failed
"""

import logging
import threading
import time
import uuid
from typing import Callable, Dict, Optional

from veriflare.models.status import AttestationPhase, AttestationStatus, DecodedProof
from veriflare_canonical.timestamps import canonical_timestamp

logger = logging.getLogger(__name__)


class UnknownAttestationError(KeyError):
    pass


class InvalidTransitionError(ValueError):
    """A phase change the attestation lifecycle does not allow."""

    def __init__(self, attestation_id: str, current: AttestationPhase, target: AttestationPhase):
        self.attestation_id = attestation_id
        self.current = current
        self.target = target
        super().__init__(f"{attestation_id}: cannot move from {current.value} to {target.value}")


# Forward moves; every active phase may also move to failed
TRANSITIONS = {
    AttestationPhase.PREPARING: {AttestationPhase.SUBMITTED},
    AttestationPhase.SUBMITTED: {AttestationPhase.WAITING},
    AttestationPhase.WAITING: {AttestationPhase.FINALIZED},
    AttestationPhase.FINALIZED: {AttestationPhase.PROOF_READY},
    AttestationPhase.PROOF_READY: set(),
    AttestationPhase.FAILED: set(),
}


def can_transition(current: AttestationPhase, target: AttestationPhase) -> bool:
    if target == AttestationPhase.FAILED:
        return not current.is_terminal
    return target in TRANSITIONS[current]


class AttestationStatusStore:
    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._records: Dict[str, AttestationStatus] = {}
        self._updated: Dict[str, float] = {}
        self._lock = threading.Lock()

    def new_id(self) -> str:
        """att_<unix-ms>_<12 hex chars>"""
        return f"att_{int(self._clock() * 1000)}_{uuid.uuid4().hex[:12]}"

    def create(self, attestation_id: Optional[str] = None) -> AttestationStatus:
        attestation_id = attestation_id or self.new_id()
        now = canonical_timestamp()
        record = AttestationStatus(id=attestation_id, created_at=now, updated_at=now)

        with self._lock:
            if attestation_id in self._records:
                raise ValueError(f"Attestation id already exists: {attestation_id}")
            self._records[attestation_id] = record
            self._updated[attestation_id] = self._clock()

        logger.info(f"[STATUS] {attestation_id} created (preparing)")
        return record.model_copy(deep=True)

    def get(self, attestation_id: str) -> Optional[AttestationStatus]:
        with self._lock:
            record = self._records.get(attestation_id)
            return record.model_copy(deep=True) if record else None

    def __contains__(self, attestation_id: str) -> bool:
        with self._lock:
            return attestation_id in self._records

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def check_transition(self, attestation_id: str, target: AttestationPhase) -> AttestationStatus:
        """
        Return a copy of the record if it may move to `target` now.

        Stages call this before side effects (paying the fee, sleeping for
        the DA layer) so an out-of-order call fails before doing any work.

        Raises:
            UnknownAttestationError: No such record
            InvalidTransitionError: Record is in a phase that cannot move to target
        """
        with self._lock:
            record = self._records.get(attestation_id)
            if record is None:
                raise UnknownAttestationError(attestation_id)
            if not can_transition(record.phase, target):
                raise InvalidTransitionError(attestation_id, record.phase, target)
            return record.model_copy(deep=True)

    def _update(self, attestation_id: str, **changes) -> AttestationStatus:
        target = changes["phase"]
        with self._lock:
            record = self._records.get(attestation_id)
            if record is None:
                raise UnknownAttestationError(attestation_id)
            if record.is_terminal and target == AttestationPhase.FAILED:
                # Late failure from a stage unwinding after the record closed
                logger.warning(f"[STATUS] {attestation_id} already {record.phase.value}, ignoring failure")
                return record.model_copy(deep=True)
            if not can_transition(record.phase, target):
                raise InvalidTransitionError(attestation_id, record.phase, target)

            updated = record.model_copy(update={**changes, "updated_at": canonical_timestamp()})
            self._records[attestation_id] = updated
            self._updated[attestation_id] = self._clock()
            return updated.model_copy(deep=True)

    def mark_submitted(self, attestation_id: str, voting_round: int, tx_hash: str) -> AttestationStatus:
        logger.info(f"[STATUS] {attestation_id} submitted (round {voting_round})")
        return self._update(
            attestation_id, phase=AttestationPhase.SUBMITTED, voting_round=voting_round, tx_hash=tx_hash
        )

    def mark_waiting(self, attestation_id: str) -> AttestationStatus:
        return self._update(attestation_id, phase=AttestationPhase.WAITING)

    def mark_finalized(self, attestation_id: str) -> AttestationStatus:
        logger.info(f"[STATUS] {attestation_id} finalized")
        return self._update(attestation_id, phase=AttestationPhase.FINALIZED)

    def mark_proof_ready(self, attestation_id: str, proof: DecodedProof) -> AttestationStatus:
        logger.info(f"[STATUS] {attestation_id} proof-ready")
        return self._update(attestation_id, phase=AttestationPhase.PROOF_READY, proof=proof)

    def mark_failed(self, attestation_id: str, error: str, kind: str) -> AttestationStatus:
        logger.warning(f"[STATUS] {attestation_id} failed ({kind}): {error}")
        return self._update(
            attestation_id, phase=AttestationPhase.FAILED, error=error, error_kind=kind, proof=None
        )

    def fail_if_active(self, attestation_id: str, error: str, kind: str) -> bool:
        """Mark failed unless already terminal. Returns True if the record changed."""
        with self._lock:
            record = self._records.get(attestation_id)
            if record is None or record.is_terminal:
                return False
        self.mark_failed(attestation_id, error, kind)
        return True

    def prune(self, max_age_seconds: float) -> int:
        """Drop terminal records not updated for max_age_seconds. Returns count."""
        cutoff = self._clock() - max_age_seconds
        with self._lock:
            stale = [
                att_id for att_id, record in self._records.items()
                if record.is_terminal and self._updated[att_id] < cutoff
            ]
            for att_id in stale:
                del self._records[att_id]
                del self._updated[att_id]

        if stale:
            logger.info(f"[STATUS] Pruned {len(stale)} terminal records")
        return len(stale)
