"""
Energy Trade Settlement (ETS) - Energy Trading Contract
Version: 1.0.0

The ledger's invocation surface. Every operation takes the transaction
context as its first argument; submit_transaction() plays the host's part of
resolving a function by name, converting its string arguments and
committing the invocation's writes atomically.
"""

from typing import Any, Callable, Dict, List, Optional, Tuple
import math
import time

from ets_config import settings
from ets_enforcement_v1 import (
    DecisionLedger,
    InvalidInvocation,
    LedgerError,
    logger
)
from ets_metrics import asset_rejected_counter, record_invocation
from ets_records_v1 import EnergyAsset, Reputation, TokenAccount
from ets_reputation_service_v1 import ReputationLedger
from ets_asset_service_v1 import AssetRegistry
from ets_account_service_v1 import AccountLedger
from ets_bootstrap_v1 import LedgerBootstrap
from ets_store_v1 import KeyScheme, KeyValueStore, TransactionContext


def _as_str(name: str, value: Any) -> str:
    if not isinstance(value, str):
        raise InvalidInvocation(f"argument {name} must be a string, got {type(value).__name__}")
    return value

def _as_float(name: str, value: Any) -> float:
    if isinstance(value, bool):
        raise InvalidInvocation(f"argument {name} must be a number, got bool")
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise InvalidInvocation(f"argument {name} must be a number, got {value!r}") from e

    if not math.isfinite(number):
        raise InvalidInvocation(f"argument {name} must be finite, got {value!r}")
    return number


class EnergyTradingContract:
    """Energy trading rules over an explicit transaction context."""

    # ledger function name -> (method, [(param, converter)])
    FUNCTIONS: Dict[str, Tuple[str, List[Tuple[str, Callable[[str, Any], Any]]]]] = {
        'InitLedger': ('init_ledger', []),
        'ReadEnergyAsset': ('read_energy_asset', [('tokenID', _as_str)]),
        'EnergyAssetExists': ('energy_asset_exists', [('tokenID', _as_str)]),
        'CreateEnergyAsset': ('create_energy_asset', [
            ('tokenID', _as_str),
            ('buyerAddress', _as_str),
            ('sellerAddress', _as_str),
            ('energyAmount', _as_float),
            ('transactionPrice', _as_float),
            ('timestamp', _as_str),
            ('buyerDeposit', _as_float),
            ('sellerDeposit', _as_float),
        ]),
        'UpdateReputationScore': ('update_reputation_score', [
            ('participantAddress', _as_str),
            ('delta', _as_float),
        ]),
        'ReadReputationScore': ('read_reputation_score', [('participantAddress', _as_str)]),
        'CheckReputationPenalty': ('check_reputation_penalty', [('participantAddress', _as_str)]),
        'ReadTokenAccount': ('read_token_account', [('accountID', _as_str)]),
    }

    def __init__(
        self,
        key_scheme: Optional[KeyScheme] = None,
        decision_ledger: Optional[DecisionLedger] = None,
        bootstrap: Optional[LedgerBootstrap] = None
    ):
        self.key_scheme = key_scheme or KeyScheme.from_name(settings.KEY_NAMESPACE)
        self.decision_ledger = decision_ledger or DecisionLedger()

        self.reputations = ReputationLedger(self.key_scheme, self.decision_ledger)
        self.assets = AssetRegistry(self.key_scheme, self.reputations, self.decision_ledger)
        self.accounts = AccountLedger(self.key_scheme)
        self.bootstrap = bootstrap or LedgerBootstrap(self.key_scheme, self.accounts)

    # ============================================
    # INVOCATION SURFACE
    # ============================================

    def init_ledger(self, ctx: KeyValueStore) -> Dict[str, int]:
        return self.bootstrap.init_ledger(ctx)

    def read_energy_asset(self, ctx: KeyValueStore, token_id: str) -> EnergyAsset:
        return self.assets.read(ctx, token_id)

    def energy_asset_exists(self, ctx: KeyValueStore, token_id: str) -> bool:
        return self.assets.exists(ctx, token_id)

    def create_energy_asset(
        self,
        ctx: KeyValueStore,
        token_id: str,
        buyer_address: str,
        seller_address: str,
        energy_amount: float,
        transaction_price: float,
        timestamp: str,
        buyer_deposit: float,
        seller_deposit: float
    ) -> EnergyAsset:
        try:
            return self.assets.create(
                ctx,
                token_id,
                buyer_address,
                seller_address,
                energy_amount,
                transaction_price,
                timestamp,
                buyer_deposit,
                seller_deposit
            )
        except LedgerError as e:
            asset_rejected_counter.labels(kind=e.kind.value).inc()
            raise

    def update_reputation_score(self, ctx: KeyValueStore, participant_address: str, delta: float) -> Reputation:
        return self.reputations.update_score(ctx, participant_address, delta)

    def read_reputation_score(self, ctx: KeyValueStore, participant_address: str) -> Reputation:
        return self.reputations.read_score(ctx, participant_address)

    def check_reputation_penalty(self, ctx: KeyValueStore, participant_address: str) -> bool:
        return self.reputations.check_penalty(ctx, participant_address)

    def read_token_account(self, ctx: KeyValueStore, account_id: str) -> TokenAccount:
        return self.accounts.read_account(ctx, account_id)

    # ============================================
    # DISPATCH
    # ============================================

    def submit_transaction(self, store: KeyValueStore, function: str, *args: Any) -> Any:
        """Run a ledger function and commit its writes, or none of them on error."""
        return self._invoke(store, function, args, commit=True)

    def evaluate_transaction(self, store: KeyValueStore, function: str, *args: Any) -> Any:
        """Run a ledger function as a query; any writes are discarded."""
        return self._invoke(store, function, args, commit=False)

    def _resolve(self, function: str, args: Tuple[Any, ...]):
        if function not in self.FUNCTIONS:
            raise InvalidInvocation(f"unknown function {function}")

        method_name, params = self.FUNCTIONS[function]
        if len(args) != len(params):
            raise InvalidInvocation(
                f"{function} expects {len(params)} arguments, got {len(args)}"
            )

        converted = [convert(name, value) for (name, convert), value in zip(params, args)]
        return getattr(self, method_name), converted

    def _invoke(self, store: KeyValueStore, function: str, args: Tuple[Any, ...], commit: bool) -> Any:
        start = time.perf_counter()
        ctx = TransactionContext(store)

        try:
            method, converted = self._resolve(function, args)
            result = method(ctx, *converted)

            if commit:
                ctx.commit()
            else:
                ctx.rollback()
        except LedgerError as e:
            ctx.rollback()
            record_invocation(function, e.kind.value, time.perf_counter() - start)
            logger.warning(f"[CONTRACT] {function} failed ({e.kind.value}): {e}")
            raise
        except Exception:
            ctx.rollback()
            record_invocation(function, "internal_error", time.perf_counter() - start)
            raise

        record_invocation(function, "success", time.perf_counter() - start)
        return to_payload(result)


def to_payload(result: Any) -> Any:
    """Convert an operation result to its JSON-ready form."""
    if isinstance(result, (EnergyAsset, TokenAccount, Reputation)):
        return result.to_dict()
    return result
