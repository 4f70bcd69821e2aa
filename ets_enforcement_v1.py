"""
Energy Trade Settlement (ETS) - Rule Enforcement Layer
Version: 1.0.0

Error taxonomy, signed decision ledger and the invariants that gate
energy asset creation and reputation updates.
"""

from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Deque, Dict, List, Optional
from enum import Enum
import hmac
import logging
from abc import ABC, abstractmethod

from ets_config import settings
from ets_metrics import record_invariant_check, rollback_counter

# ============================================
# SYSTEM CONFIGURATION
# ============================================

SYSTEM_SECRET = settings.DECISION_SIGNING_SECRET.encode()

REPUTATION_PENALTY_THRESHOLD = 40.0
DEFAULT_REPUTATION_SCORE = 50.0
MIN_REPUTATION_SCORE = 0.0
MAX_REPUTATION_SCORE = 100.0

class InvariantType(Enum):
    STATE = "state"
    SECURITY = "security"
    DATA_INTEGRITY = "data_integrity"

class Criticality(Enum):
    CRITICAL = "critical"
    IMPORTANT = "important"

class EnforcementResult(Enum):
    PROCEED = "proceed"
    ROLLBACK = "rollback"
    FREEZE = "freeze"

# ============================================
# LOGGING SETUP
# ============================================

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s'
)
logger = logging.getLogger("ETS.Enforcement")

# ============================================
# EXCEPTIONS
# ============================================

class ErrorKind(Enum):
    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"
    REPUTATION_TOO_LOW = "reputation_too_low"
    DECODE_ERROR = "decode_error"
    STORE_ERROR = "store_error"
    INVALID_INVOCATION = "invalid_invocation"
    INVARIANT_VIOLATION = "invariant_violation"

class LedgerError(Exception):
    """Base class for every failure surfaced to ledger callers."""
    kind: ErrorKind

class AssetNotFound(LedgerError):
    """Raised when no energy asset is stored under a tokenID."""
    kind = ErrorKind.NOT_FOUND

    def __init__(self, token_id: str):
        super().__init__(f"asset {token_id} does not exist")
        self.token_id = token_id

class AccountNotFound(LedgerError):
    """Raised when no token account is stored under an accountID."""
    kind = ErrorKind.NOT_FOUND

    def __init__(self, account_id: str):
        super().__init__(f"account {account_id} does not exist")
        self.account_id = account_id

class RecordDecodeError(LedgerError):
    """Raised when stored bytes cannot be parsed as a record."""
    kind = ErrorKind.DECODE_ERROR

class StoreError(LedgerError):
    """Raised when the underlying key-value store fails."""
    kind = ErrorKind.STORE_ERROR

class InvalidInvocation(LedgerError):
    """Raised for unknown functions or malformed invocation arguments."""
    kind = ErrorKind.INVALID_INVOCATION

class InvariantViolation(LedgerError):
    """Raised when an invariant is violated."""
    kind = ErrorKind.INVARIANT_VIOLATION

class ReputationTooLow(InvariantViolation):
    """Raised when a buyer or seller is below the penalty threshold."""
    kind = ErrorKind.REPUTATION_TOO_LOW

    def __init__(self, participant: str, role: str):
        super().__init__(f"{role} {participant} reputation too low")
        self.participant = participant
        self.role = role

class AssetAlreadyExists(InvariantViolation):
    """Raised when a tokenID already holds a record."""
    kind = ErrorKind.ALREADY_EXISTS

    def __init__(self, token_id: str):
        super().__init__(f"asset {token_id} already exists")
        self.token_id = token_id

class SystemCompromised(Exception):
    """Raised when a decision signature fails or rollback fails."""
    pass

# ============================================
# ENFORCEMENT DECISION RECORD
# ============================================

def sign_decision(invariant_id: str, result: bool, timestamp: datetime) -> str:
    """HMAC-SHA256 over the decision's identifying fields."""
    data = f"{invariant_id}:{result}:{timestamp.isoformat()}"
    return hmac.new(SYSTEM_SECRET, data.encode(), 'sha256').hexdigest()

@dataclass
class EnforcementDecision:
    """Immutable record of enforcement decision."""
    invariant_id: str
    check_type: str  # "PRE" | "POST"
    result: bool
    action: EnforcementResult
    timestamp: datetime
    state_snapshot: Dict[str, Any]
    signature: str

    def verify_signature(self) -> bool:
        expected = sign_decision(self.invariant_id, self.result, self.timestamp)
        return hmac.compare_digest(self.signature, expected)

# ============================================
# DECISION LEDGER
# ============================================

class DecisionLedger:
    """Append-only ledger of all enforcement decisions."""

    def __init__(self, max_entries: Optional[int] = None):
        # Oldest decisions are evicted once the ledger is full
        self.entries: Deque[EnforcementDecision] = deque(
            maxlen=max_entries or settings.DECISION_LEDGER_MAX_ENTRIES
        )

    def record(self, decision: EnforcementDecision):
        """Append decision to ledger (write-only)."""
        if not decision.verify_signature():
            raise SystemCompromised("Invalid signature on enforcement decision")

        self.entries.append(decision)
        logger.debug(f"LEDGER: Recorded {decision.check_type} for {decision.invariant_id}: {decision.result}")

    def passed_ratio(self) -> float:
        if not self.entries:
            return 1.0
        return sum(1 for e in self.entries if e.result) / len(self.entries)

    def verify_chain_integrity(self) -> bool:
        """Verify ledger has not been tampered with."""
        return all(entry.verify_signature() for entry in self.entries)

# ============================================
# BASE INVARIANT CLASS
# ============================================

class Invariant(ABC):
    """Base class for all invariants."""

    def __init__(
        self,
        id: str,
        statement: str,
        type: InvariantType,
        criticality: Criticality,
        dependencies: List[str],
        owner: str
    ):
        self.id = id
        self.statement = statement
        self.type = type
        self.criticality = criticality
        self.dependencies = dependencies
        self.owner = owner

    @abstractmethod
    def pre_check(self, **kwargs) -> bool:
        """Execute before action. Returns True if action can proceed."""
        pass

    @abstractmethod
    def post_check(self, result: Any, **kwargs) -> bool:
        """Execute after action. Returns True if invariant still holds."""
        pass

    @abstractmethod
    def rollback_action(self, state_before: Dict[str, Any]):
        """Define rollback procedure."""
        pass

    def describe(self) -> str:
        return f"{self.id} [{self.type.value}/{self.criticality.value}, owner={self.owner}]"

    def violation(self, **kwargs) -> InvariantViolation:
        """Exception raised when the pre-check fails."""
        return InvariantViolation(f"Pre-check failed: {self.id}")

# ============================================
# REPUTATION GATES
# ============================================

class ParticipantReputationGate(Invariant):
    """Blocks a trade role whose reputation is below the penalty threshold."""

    role = ""

    def pre_check(self, ctx, reputation_ledger, **kwargs) -> bool:
        participant = kwargs[self.role]
        penalized = reputation_ledger.check_penalty(ctx, participant)
        logger.info(f"PRE-CHECK {self.id}: {self.role}={participant}, penalized={penalized}")
        return not penalized

    def post_check(self, result: Any, **kwargs) -> bool:
        # Gate only; reputation is not written by asset creation
        return True

    def rollback_action(self, state_before: Dict[str, Any]):
        pass

    def violation(self, **kwargs) -> InvariantViolation:
        return ReputationTooLow(kwargs[self.role], self.role)

class BuyerReputationAboveThreshold(ParticipantReputationGate):
    """INV-101: Buyer reputation must be >= 40."""

    role = "buyer"

    def __init__(self):
        super().__init__(
            id="inv_101_buyer_reputation",
            statement="It is FORBIDDEN for a participant with score < 40 to buy in a new energy asset",
            type=InvariantType.SECURITY,
            criticality=Criticality.CRITICAL,
            dependencies=[],
            owner="reputation_ledger"
        )

class SellerReputationAboveThreshold(ParticipantReputationGate):
    """INV-102: Seller reputation must be >= 40."""

    role = "seller"

    def __init__(self):
        super().__init__(
            id="inv_102_seller_reputation",
            statement="It is FORBIDDEN for a participant with score < 40 to sell in a new energy asset",
            type=InvariantType.SECURITY,
            criticality=Criticality.CRITICAL,
            dependencies=["inv_101_buyer_reputation"],
            owner="reputation_ledger"
        )

# ============================================
# STATE INVARIANTS
# ============================================

class UniqueTokenIDs(Invariant):
    """INV-001: Every energy asset must have a unique tokenID."""

    def __init__(self):
        super().__init__(
            id="inv_001_unique_token_ids",
            statement="The system MUST always ensure every energy asset has a unique tokenID",
            type=InvariantType.STATE,
            criticality=Criticality.CRITICAL,
            dependencies=["inv_102_seller_reputation"],
            owner="asset_registry"
        )

    def pre_check(self, ctx, token_id: str, asset_registry, **kwargs) -> bool:
        exists = asset_registry.exists(ctx, token_id)
        logger.info(f"PRE-CHECK {self.id}: token_id={token_id}, exists={exists}")
        return not exists

    def post_check(self, result: Any, **kwargs) -> bool:
        stored = result['asset_registry'].exists(result['ctx'], result['token_id'])
        logger.info(f"POST-CHECK {self.id}: token_id={result['token_id']}, stored={stored}")
        return stored

    def rollback_action(self, state_before: Dict[str, Any]):
        ctx = state_before['ctx']
        key = state_before['asset_registry'].key_for(state_before['token_id'])
        ctx.discard(key)
        logger.warning(f"ROLLBACK {self.id}: Discarded pending write {key}")

    def violation(self, **kwargs) -> InvariantViolation:
        return AssetAlreadyExists(kwargs['token_id'])

class ReputationScoreBounded(Invariant):
    """INV-201: Reputation scores stay within [0, 100]."""

    def __init__(self):
        super().__init__(
            id="inv_201_reputation_bounded",
            statement="The system MUST always ensure reputation scores are between 0 and 100",
            type=InvariantType.DATA_INTEGRITY,
            criticality=Criticality.CRITICAL,
            dependencies=[],
            owner="reputation_ledger"
        )

    def pre_check(self, **kwargs) -> bool:
        return True

    def post_check(self, result: Any, **kwargs) -> bool:
        score = result['reputation_ledger'].read_score(result['ctx'], result['participant']).score
        valid = MIN_REPUTATION_SCORE <= score <= MAX_REPUTATION_SCORE
        logger.info(f"POST-CHECK {self.id}: participant={result['participant']}, score={score}, valid={valid}")
        return valid

    def rollback_action(self, state_before: Dict[str, Any]):
        ctx = state_before['ctx']
        key = state_before['reputation_ledger'].key_for(state_before['participant'])
        ctx.discard(key)
        logger.warning(f"ROLLBACK {self.id}: Discarded pending write {key}")

# ============================================
# ENFORCEMENT ENGINE
# ============================================

class InvariantEnforcer:
    """Runs invariants around an action in dependency order."""

    def __init__(self, invariants: List[Invariant], ledger: DecisionLedger):
        self.invariants = invariants
        self.ledger = ledger
        self.sorted_invariants = self._topological_sort(invariants)

    def _topological_sort(self, invariants: List[Invariant]) -> List[Invariant]:
        """Sort invariants by dependency order, keeping declaration order among peers."""
        sorted_invs = []
        remaining = [inv.id for inv in invariants]

        while remaining:
            ready = next(
                (
                    inv for inv in invariants
                    if inv.id in remaining and all(dep not in remaining for dep in inv.dependencies)
                ),
                None
            )

            if ready is None:
                raise InvariantViolation("Circular dependency detected in invariants")

            sorted_invs.append(ready)
            remaining.remove(ready.id)

        return sorted_invs

    def enforce_action(self, action: Callable[..., Dict[str, Any]], **kwargs) -> Dict[str, Any]:
        """Execute action with full invariant enforcement.

        Pre-checks short-circuit on the first failure. Store and decode
        errors raised by a check propagate unchanged.
        """
        state_before = self._capture_state(kwargs)

        for inv in self.sorted_invariants:
            decision, error = self._pre_check(inv, state_before, **kwargs)
            self.ledger.record(decision)

            if error is not None:
                logger.error(f"PRE-CHECK ERROR: {inv.describe()}: {error}")
                raise error

            if not decision.result:
                logger.error(f"PRE-CHECK FAILED: {inv.describe()}")
                raise inv.violation(**kwargs)

        try:
            result = action(**kwargs)
        except Exception as e:
            logger.error(f"ACTION FAILED: {e}")
            self._rollback(state_before, self.sorted_invariants, reason="action_failed")
            raise

        for inv in self.sorted_invariants:
            decision = self._post_check(inv, result, state_before)
            self.ledger.record(decision)

            if not decision.result:
                logger.error(f"POST-CHECK FAILED: {inv.describe()}")
                self._rollback(state_before, self.sorted_invariants, reason="post_check_failed")
                raise InvariantViolation(f"Post-check failed: {inv.id}")

        logger.debug("All invariant checks PASSED")
        return result

    def _pre_check(self, inv: Invariant, state: Dict, **kwargs):
        """Execute pre-action check; returns the decision and any ledger error raised."""
        error: Optional[LedgerError] = None
        try:
            result = inv.pre_check(**kwargs)
            action = EnforcementResult.PROCEED if result else EnforcementResult.FREEZE
        except LedgerError as e:
            result = False
            action = EnforcementResult.FREEZE
            error = e

        record_invariant_check(inv.id, inv.criticality.value, "PRE", result)
        return self._decision(inv, "PRE", result, action, state), error

    def _post_check(self, inv: Invariant, result: Any, state: Dict) -> EnforcementDecision:
        """Execute post-action check."""
        try:
            check_result = inv.post_check(result)
            action = EnforcementResult.PROCEED if check_result else EnforcementResult.ROLLBACK
        except LedgerError as e:
            logger.error(f"Post-check exception: {inv.id}", exc_info=e)
            check_result = False
            action = EnforcementResult.ROLLBACK

        record_invariant_check(inv.id, inv.criticality.value, "POST", check_result)
        return self._decision(inv, "POST", check_result, action, state)

    def _decision(
        self,
        inv: Invariant,
        check_type: str,
        result: bool,
        action: EnforcementResult,
        state: Dict
    ) -> EnforcementDecision:
        timestamp = datetime.now()
        return EnforcementDecision(
            invariant_id=inv.id,
            check_type=check_type,
            result=result,
            action=action,
            timestamp=timestamp,
            state_snapshot=self._snapshot(state),
            signature=sign_decision(inv.id, result, timestamp)
        )

    def _rollback(self, state_before: Dict, invariants: List[Invariant], reason: str):
        """Discard pending writes in reverse dependency order."""
        logger.warning("ROLLBACK INITIATED")
        rollback_counter.labels(reason=reason).inc()

        for inv in reversed(invariants):
            try:
                inv.rollback_action(state_before)
            except Exception as e:
                logger.critical(f"ROLLBACK FAILED for {inv.describe()}: {e}")
                raise SystemCompromised(f"Rollback failed for {inv.id}") from e

        logger.info("ROLLBACK COMPLETE")

    def _capture_state(self, kwargs: Dict) -> Dict[str, Any]:
        return {
            'timestamp': datetime.now(),
            **kwargs
        }

    def _snapshot(self, state: Dict[str, Any]) -> Dict[str, Any]:
        """Plain values only; contexts and services stay out of the ledger."""
        return {
            key: value for key, value in state.items()
            if value is None or isinstance(value, (str, int, float, bool, datetime))
        }
