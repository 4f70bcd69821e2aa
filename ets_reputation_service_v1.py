"""
Energy Trade Settlement (ETS) - Reputation Ledger
Version: 1.0.0

Reads, bounds and persists participant reputation scores, and evaluates the
penalty threshold that gates trading.
"""

from typing import Any, Dict
import math

from ets_enforcement_v1 import (
    InvariantEnforcer,
    DecisionLedger,
    ReputationScoreBounded,
    InvalidInvocation,
    DEFAULT_REPUTATION_SCORE,
    MIN_REPUTATION_SCORE,
    MAX_REPUTATION_SCORE,
    REPUTATION_PENALTY_THRESHOLD,
    logger
)
from ets_metrics import record_reputation_update
from ets_records_v1 import Reputation, encode_record, decode_record
from ets_store_v1 import KeyScheme, KeyValueStore


def clamp(v: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, v))


class ReputationLedger:
    """Participant reputation scores backed by the record store."""

    def __init__(self, key_scheme: KeyScheme, ledger: DecisionLedger):
        self.key_scheme = key_scheme
        self.enforcer = InvariantEnforcer([ReputationScoreBounded()], ledger)

    def key_for(self, participant: str) -> str:
        return self.key_scheme.reputation_key(participant)

    def read_score(self, ctx: KeyValueStore, participant: str) -> Reputation:
        """
        Return the stored reputation, or the default score when none exists.

        Absence is not an error. StoreError and RecordDecodeError propagate.
        """
        raw = ctx.get(self.key_for(participant))
        if raw is None:
            return Reputation(participant_address=participant, score=DEFAULT_REPUTATION_SCORE)

        return decode_record(Reputation, raw)

    def update_score(self, ctx: KeyValueStore, participant: str, delta: float) -> Reputation:
        """Add delta to the current score, clamp to [0, 100] and persist."""
        # NaN would slip through clamp() as 100
        if not math.isfinite(delta):
            raise InvalidInvocation(f"reputation delta must be finite, got {delta}")

        result = self.enforcer.enforce_action(
            self._write_score,
            ctx=ctx,
            participant=participant,
            delta=delta,
            reputation_ledger=self
        )
        reputation = result['reputation']

        record_reputation_update(delta, reputation.score)
        logger.info(f"[REPUTATION] {participant}: {result['previous_score']} {delta:+} -> {reputation.score}")
        return reputation

    def _write_score(self, ctx, participant: str, delta: float, **kwargs) -> Dict[str, Any]:
        current = self.read_score(ctx, participant)
        reputation = Reputation(
            participant_address=participant,
            score=clamp(current.score + delta, MIN_REPUTATION_SCORE, MAX_REPUTATION_SCORE)
        )
        ctx.put(self.key_for(participant), encode_record(reputation))

        return {
            'ctx': ctx,
            'participant': participant,
            'reputation': reputation,
            'previous_score': current.score,
            'reputation_ledger': self
        }

    def check_penalty(self, ctx: KeyValueStore, participant: str) -> bool:
        """True iff the participant's score is below the penalty threshold."""
        return self.read_score(ctx, participant).score < REPUTATION_PENALTY_THRESHOLD
