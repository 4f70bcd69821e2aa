"""
Energy Trade Settlement (ETS) - Test Suite
Version: 1.0.0

Coverage for the ledger rule engine:
- Record encoding and the key scheme
- Reputation ledger (defaults, clamping, penalty threshold)
- Asset registry (check order, uniqueness, store failures)
- Enforcement engine (ordering, rollback, signed decisions)
- Bootstrap and contract dispatch
"""

import json
import logging
from datetime import datetime
from typing import Dict, Optional, Set

import pytest

from ets_enforcement_v1 import (
    DecisionLedger,
    EnforcementDecision,
    EnforcementResult,
    InvariantEnforcer,
    BuyerReputationAboveThreshold,
    SellerReputationAboveThreshold,
    UniqueTokenIDs,
    ReputationScoreBounded,
    ErrorKind,
    AssetNotFound,
    AccountNotFound,
    AssetAlreadyExists,
    ReputationTooLow,
    RecordDecodeError,
    StoreError,
    InvalidInvocation,
    InvariantViolation,
    SystemCompromised,
    sign_decision
)
from ets_records_v1 import (
    EnergyAsset,
    TokenAccount,
    Reputation,
    TransactionState,
    encode_record,
    decode_record
)
from ets_store_v1 import InMemoryKeyValueStore, KeyScheme, KeyValueStore, TransactionContext
from ets_reputation_service_v1 import ReputationLedger, clamp
from ets_asset_service_v1 import AssetRegistry
from ets_account_service_v1 import AccountLedger
from ets_bootstrap_v1 import LedgerBootstrap
from ets_contract_v1 import EnergyTradingContract

# ============================================
# MOCK SERVICES
# ============================================

class FailingStore(KeyValueStore):
    """Store whose reads and/or writes fail like an unreachable host."""

    def __init__(
        self,
        fail_get: bool = False,
        fail_put: bool = False,
        fail_delete: bool = False,
        keys: Optional[Set[str]] = None
    ):
        self.records: Dict[str, bytes] = {}
        self.fail_get = fail_get
        self.fail_put = fail_put
        self.fail_delete = fail_delete
        self.keys = keys

    def _fails(self, key: str) -> bool:
        return self.keys is None or key in self.keys

    def get(self, key: str) -> Optional[bytes]:
        if self.fail_get and self._fails(key):
            raise StoreError(f"state database unreachable reading {key}")
        return self.records.get(key)

    def put(self, key: str, value: bytes):
        if self.fail_put and self._fails(key):
            raise StoreError(f"state database unreachable writing {key}")
        self.records[key] = value

    def delete(self, key: str):
        if self.fail_delete:
            raise StoreError(f"state database unreachable deleting {key}")
        self.records.pop(key, None)

def build_services(key_scheme: Optional[KeyScheme] = None):
    scheme = key_scheme or KeyScheme.flat()
    ledger = DecisionLedger()
    reputations = ReputationLedger(scheme, ledger)
    assets = AssetRegistry(scheme, reputations, ledger)
    return reputations, assets, ledger

def put_score(store: KeyValueStore, participant: str, score: float, key_scheme: Optional[KeyScheme] = None):
    scheme = key_scheme or KeyScheme.flat()
    store.put(scheme.reputation_key(participant), encode_record(Reputation(participant, score)))

def create_args(token_id: str = "energy2", buyer: str = "buyer1", seller: str = "seller1") -> Dict:
    return {
        'token_id': token_id,
        'buyer': buyer,
        'seller': seller,
        'energy_amount': 50.5,
        'transaction_price': 0.3,
        'timestamp': "2025-05-04T09:00:00Z",
        'buyer_deposit': 5.0,
        'seller_deposit': 7.5
    }

# ============================================
# UNIT TESTS - RECORD ENCODING
# ============================================

class TestRecordEncoding:
    """Persisted record format."""

    def test_asset_omits_empty_signatures(self):
        """Empty signature fields are left out of the encoding."""
        asset = EnergyAsset("energy2", "buyer1", "seller1", 50.5, 0.3, "t", 5.0, 7.5)
        data = json.loads(encode_record(asset))

        assert list(data.keys()) == [
            'tokenID', 'buyerAddress', 'sellerAddress', 'energyAmount',
            'transactionPrice', 'timestamp', 'buyerDeposit', 'sellerDeposit',
            'transactionState'
        ]
        assert data['transactionState'] == "CREATED"

    def test_asset_keeps_populated_signatures(self):
        asset = EnergyAsset("e", "b", "s", 1, 1, "t", 0, 0, buyer_signature="sig-b", seller_signature="sig-s")
        data = json.loads(encode_record(asset))

        assert data['buyerSignature'] == "sig-b"
        assert data['sellerSignature'] == "sig-s"

    def test_integral_numbers_written_without_fraction(self):
        account = TokenAccount(account_id="buyer1", balance=100.0)
        assert encode_record(account) == b'{"accountID":"buyer1","balance":100}'

    def test_decode_ignores_unknown_and_defaults_missing(self):
        """Unknown fields are ignored, missing ones take zero values."""
        rep = decode_record(Reputation, b'{"participantAddress":"p1","extra":true}')

        assert rep.participant_address == "p1"
        assert rep.score == 0.0

    def test_decode_invalid_json(self):
        with pytest.raises(RecordDecodeError):
            decode_record(EnergyAsset, b'not-json{')

    def test_decode_non_object(self):
        with pytest.raises(RecordDecodeError):
            decode_record(Reputation, b'[1, 2, 3]')

    def test_decode_wrong_field_type(self):
        with pytest.raises(RecordDecodeError):
            decode_record(Reputation, b'{"participantAddress":"p1","score":"high"}')

    def test_decode_error_kind(self):
        with pytest.raises(RecordDecodeError) as exc_info:
            decode_record(TokenAccount, b'\xff\xfe')
        assert exc_info.value.kind == ErrorKind.DECODE_ERROR

    def test_non_finite_numbers_refused(self):
        """NaN and infinities have no JSON form."""
        asset = EnergyAsset("energy2", "b", "s", float("inf"), float("nan"), "t", 0, 0)

        with pytest.raises(InvalidInvocation):
            encode_record(asset)

    def test_decode_non_finite_number(self):
        with pytest.raises(RecordDecodeError):
            decode_record(Reputation, b'{"participantAddress":"p1","score":NaN}')

# ============================================
# UNIT TESTS - STORE LAYER
# ============================================

class TestKeyScheme:
    """Store key mapping."""

    def test_flat_scheme_shares_key_space(self):
        scheme = KeyScheme.flat()
        assert scheme.asset_key("x") == scheme.account_key("x") == scheme.reputation_key("x") == "x"
        assert scheme.name == "flat"

    def test_prefixed_scheme_separates_entities(self):
        scheme = KeyScheme.prefixed()
        keys = {scheme.asset_key("x"), scheme.account_key("x"), scheme.reputation_key("x")}

        assert len(keys) == 3
        assert scheme.name == "prefixed"

    def test_unknown_namespace(self):
        with pytest.raises(ValueError):
            KeyScheme.from_name("hierarchical")

class TestTransactionContext:
    """Per-invocation write set."""

    def test_reads_own_writes(self):
        store = InMemoryKeyValueStore()
        ctx = TransactionContext(store)
        ctx.put("k", b"v")

        assert ctx.get("k") == b"v"
        assert store.get("k") is None

    def test_commit_flushes(self):
        store = InMemoryKeyValueStore()
        ctx = TransactionContext(store)
        ctx.put("a", b"1")
        ctx.put("b", b"2")

        assert ctx.commit() == 2
        assert store.get("a") == b"1"
        assert len(store) == 2

    def test_rollback_discards(self):
        store = InMemoryKeyValueStore()
        ctx = TransactionContext(store)
        ctx.put("a", b"1")
        ctx.rollback()

        assert len(store) == 0

    def test_write_after_close_fails(self):
        ctx = TransactionContext(InMemoryKeyValueStore())
        ctx.commit()

        with pytest.raises(StoreError):
            ctx.put("a", b"1")

    def test_in_memory_store_rejects_non_bytes(self):
        with pytest.raises(StoreError):
            InMemoryKeyValueStore().put("a", "text")

    def test_failed_commit_restores_prior_values(self):
        """A put failing partway leaves the store as it was before commit."""
        store = FailingStore(fail_put=True, keys={"c"})
        store.records["a"] = b"old"
        ctx = TransactionContext(store)
        ctx.put("a", b"new")
        ctx.put("b", b"2")
        ctx.put("c", b"3")

        with pytest.raises(StoreError):
            ctx.commit()

        assert store.records == {"a": b"old"}
        assert ctx.closed == False

    def test_failed_restore_is_compromise(self):
        store = FailingStore(fail_put=True, fail_delete=True, keys={"b"})
        ctx = TransactionContext(store)
        ctx.put("a", b"1")
        ctx.put("b", b"2")

        with pytest.raises(SystemCompromised):
            ctx.commit()

# ============================================
# UNIT TESTS - REPUTATION LEDGER
# ============================================

class TestReputationLedger:
    """Reputation defaults, clamping and penalty threshold."""

    def test_unknown_participant_defaults_to_50(self):
        """A never-written address reads as 50, not as an error."""
        reputations, _, _ = build_services()
        rep = reputations.read_score(InMemoryKeyValueStore(), "nobody")

        assert rep.participant_address == "nobody"
        assert rep.score == 50

    def test_read_does_not_persist_default(self):
        reputations, _, _ = build_services()
        store = InMemoryKeyValueStore()
        reputations.read_score(store, "nobody")

        assert len(store) == 0

    def test_update_adds_delta_and_persists(self):
        reputations, _, _ = build_services()
        store = InMemoryKeyValueStore()

        rep = reputations.update_score(store, "p1", 10)

        assert rep.score == 60
        assert decode_record(Reputation, store.get("p1")).score == 60

    def test_update_clamps_upper_bound(self):
        """+1000 from any score lands on 100."""
        reputations, _, _ = build_services()
        store = InMemoryKeyValueStore()
        put_score(store, "p1", 95)

        assert reputations.update_score(store, "p1", 1000).score == 100

    def test_update_clamps_lower_bound(self):
        """-1000 from any score lands on 0."""
        reputations, _, _ = build_services()
        store = InMemoryKeyValueStore()

        assert reputations.update_score(store, "p1", -1000).score == 0

    @pytest.mark.parametrize("start", [0, 39.9, 50, 100])
    def test_minus_200_is_exactly_zero(self, start):
        reputations, _, _ = build_services()
        store = InMemoryKeyValueStore()
        put_score(store, "p1", start)

        reputations.update_score(store, "p1", -200)

        assert reputations.read_score(store, "p1").score == 0

    @pytest.mark.parametrize("delta", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_delta_rejected(self, delta):
        """A penalized score cannot be reset through a non-finite delta."""
        reputations, _, _ = build_services()
        store = InMemoryKeyValueStore()
        put_score(store, "p1", 0)

        with pytest.raises(InvalidInvocation):
            reputations.update_score(store, "p1", delta)
        assert reputations.read_score(store, "p1").score == 0

    def test_clamp_helper(self):
        assert clamp(150, 0, 100) == 100
        assert clamp(-3, 0, 100) == 0
        assert clamp(42.5, 0, 100) == 42.5

    def test_penalty_threshold(self):
        """Below 40 is penalized, 40 itself is not."""
        reputations, _, _ = build_services()
        store = InMemoryKeyValueStore()
        put_score(store, "low", 39.9)
        put_score(store, "edge", 40)

        assert reputations.check_penalty(store, "low") == True
        assert reputations.check_penalty(store, "edge") == False
        assert reputations.check_penalty(store, "unknown") == False

    def test_store_failure_is_not_default(self):
        """An unreachable store surfaces StoreError instead of score 50."""
        reputations, _, _ = build_services()

        with pytest.raises(StoreError):
            reputations.read_score(FailingStore(fail_get=True), "p1")

    def test_corrupt_record(self):
        reputations, _, _ = build_services()
        store = InMemoryKeyValueStore({"p1": b"{broken"})

        with pytest.raises(RecordDecodeError):
            reputations.check_penalty(store, "p1")

    def test_update_store_failure_writes_nothing(self):
        reputations, _, _ = build_services()
        store = FailingStore(fail_get=True)
        ctx = TransactionContext(store)

        with pytest.raises(StoreError):
            reputations.update_score(ctx, "p1", 5)
        assert ctx.write_set == {}
        assert store.records == {}

# ============================================
# UNIT TESTS - ASSET REGISTRY
# ============================================

class TestAssetRegistry:
    """Energy asset creation and lookup."""

    def test_create_then_read_round_trip(self):
        reputations, assets, _ = build_services()
        store = InMemoryKeyValueStore()

        created = assets.create(store, **create_args())
        stored = assets.read(store, "energy2")

        assert stored == created
        assert stored.buyer_address == "buyer1"
        assert stored.seller_address == "seller1"
        assert stored.energy_amount == 50.5
        assert stored.transaction_price == 0.3
        assert stored.timestamp == "2025-05-04T09:00:00Z"
        assert stored.buyer_deposit == 5.0
        assert stored.seller_deposit == 7.5
        assert stored.transaction_state == TransactionState.CREATED.value
        assert stored.buyer_signature == ""
        assert stored.seller_signature == ""

    def test_scenario_energy2(self):
        """Buyer 80, seller 85, unused tokenID: creation succeeds."""
        _, assets, _ = build_services()
        store = InMemoryKeyValueStore()
        put_score(store, "buyer1", 80)
        put_score(store, "seller1", 85)

        assert assets.exists(store, "energy2") == False
        assets.create(store, **create_args("energy2"))
        assert assets.exists(store, "energy2") == True

    def test_low_buyer_rejected_first(self):
        """Buyer 39.9 is reported even with a low seller and a taken tokenID."""
        _, assets, _ = build_services()
        store = InMemoryKeyValueStore()
        put_score(store, "buyer1", 39.9)
        put_score(store, "seller1", 10)
        store.put("energy2", b'{"tokenID":"energy2"}')

        with pytest.raises(ReputationTooLow) as exc_info:
            assets.create(store, **create_args("energy2"))

        assert exc_info.value.role == "buyer"
        assert exc_info.value.participant == "buyer1"
        assert exc_info.value.kind == ErrorKind.REPUTATION_TOO_LOW

    def test_low_seller_rejected_before_uniqueness(self):
        _, assets, _ = build_services()
        store = InMemoryKeyValueStore()
        put_score(store, "seller1", 12)
        store.put("energy2", b'{"tokenID":"energy2"}')

        with pytest.raises(ReputationTooLow) as exc_info:
            assets.create(store, **create_args("energy2"))

        assert exc_info.value.role == "seller"

    def test_duplicate_token_id(self):
        """Both participants pass but the tokenID already holds a record."""
        _, assets, _ = build_services()
        store = InMemoryKeyValueStore()
        assets.create(store, **create_args("energy2"))
        original = store.get("energy2")

        with pytest.raises(AssetAlreadyExists) as exc_info:
            assets.create(store, **create_args("energy2", buyer="someone", seller="else"))

        assert exc_info.value.kind == ErrorKind.ALREADY_EXISTS
        assert store.get("energy2") == original

    def test_read_missing(self):
        _, assets, _ = build_services()

        with pytest.raises(AssetNotFound) as exc_info:
            assets.read(InMemoryKeyValueStore(), "missing")
        assert exc_info.value.kind == ErrorKind.NOT_FOUND

    def test_read_corrupt(self):
        _, assets, _ = build_services()
        store = InMemoryKeyValueStore({"energy9": b"\x00\x01"})

        with pytest.raises(RecordDecodeError):
            assets.read(store, "energy9")

    def test_exists_store_failure(self):
        """A failed read is an error, not 'absent'."""
        _, assets, _ = build_services()

        with pytest.raises(StoreError):
            assets.exists(FailingStore(fail_get=True), "energy2")

    def test_create_store_failure_not_relabelled(self):
        """Store failures during checks propagate as StoreError."""
        _, assets, _ = build_services()
        store = FailingStore(fail_get=True, keys={"energy2"})

        with pytest.raises(StoreError):
            assets.create(store, **create_args("energy2"))
        assert store.records == {}

    def test_create_single_write(self):
        _, assets, _ = build_services()
        ctx = TransactionContext(InMemoryKeyValueStore())

        assets.create(ctx, **create_args())

        assert list(ctx.write_set.keys()) == ["energy2"]

    def test_rejection_short_circuits_checks(self):
        """Only the buyer check runs when the buyer is penalized."""
        _, assets, ledger = build_services()
        store = InMemoryKeyValueStore()
        put_score(store, "buyer1", 0)

        with pytest.raises(ReputationTooLow):
            assets.create(store, **create_args())

        assert [(e.invariant_id, e.result) for e in ledger.entries] == [
            ("inv_101_buyer_reputation", False)
        ]

    def test_flat_key_collision(self):
        """In the flat key space an asset shadows a same-named participant."""
        reputations, assets, _ = build_services()
        store = InMemoryKeyValueStore()
        assets.create(store, **create_args(token_id="trader7"))

        # Asset bytes decode as a reputation with score 0
        assert reputations.check_penalty(store, "trader7") == True

    def test_prefixed_keys_avoid_collision(self):
        scheme = KeyScheme.prefixed()
        reputations, assets, _ = build_services(scheme)
        store = InMemoryKeyValueStore()
        assets.create(store, **create_args(token_id="trader7"))

        assert reputations.check_penalty(store, "trader7") == False
        assert store.get("asset~trader7") is not None

# ============================================
# UNIT TESTS - ENFORCEMENT ENGINE
# ============================================

class TestInvariantEnforcer:
    """Ordering, rollback and decision signing."""

    def test_dependency_order(self):
        """Declaration order does not change buyer, seller, uniqueness order."""
        enforcer = InvariantEnforcer(
            [UniqueTokenIDs(), SellerReputationAboveThreshold(), BuyerReputationAboveThreshold()],
            DecisionLedger()
        )
        assert [inv.id for inv in enforcer.sorted_invariants] == [
            "inv_101_buyer_reputation",
            "inv_102_seller_reputation",
            "inv_001_unique_token_ids"
        ]

    def test_circular_dependency(self):
        a = ReputationScoreBounded()
        b = ReputationScoreBounded()
        a.id, a.dependencies = "a", ["b"]
        b.id, b.dependencies = "b", ["a"]

        with pytest.raises(InvariantViolation):
            InvariantEnforcer([a, b], DecisionLedger())

    def test_post_check_failure_rolls_back(self):
        """An out-of-bounds score is discarded from the write set."""
        reputations, _, ledger = build_services()
        enforcer = InvariantEnforcer([ReputationScoreBounded()], ledger)
        ctx = TransactionContext(InMemoryKeyValueStore())

        def write_unbounded(ctx, participant, **kwargs):
            ctx.put(participant, encode_record(Reputation(participant, 150)))
            return {'ctx': ctx, 'participant': participant, 'reputation_ledger': reputations}

        with pytest.raises(InvariantViolation):
            enforcer.enforce_action(write_unbounded, ctx=ctx, participant="p1", reputation_ledger=reputations)

        assert ctx.write_set == {}
        assert ledger.entries[-1].check_type == "POST"
        assert ledger.entries[-1].action == EnforcementResult.ROLLBACK

    def test_tampered_decision_rejected(self):
        ledger = DecisionLedger()
        decision = EnforcementDecision(
            invariant_id="inv_001_unique_token_ids",
            check_type="PRE",
            result=True,
            action=EnforcementResult.PROCEED,
            timestamp=datetime.now(),
            state_snapshot={},
            signature="0" * 64
        )

        with pytest.raises(SystemCompromised):
            ledger.record(decision)

    def test_signed_decisions_verify(self):
        timestamp = datetime.now()
        decision = EnforcementDecision(
            invariant_id="inv_201_reputation_bounded",
            check_type="POST",
            result=True,
            action=EnforcementResult.PROCEED,
            timestamp=timestamp,
            state_snapshot={},
            signature=sign_decision("inv_201_reputation_bounded", True, timestamp)
        )
        assert decision.verify_signature() == True

    def test_ledger_integrity_after_operations(self):
        reputations, assets, ledger = build_services()
        store = InMemoryKeyValueStore()
        assets.create(store, **create_args())
        reputations.update_score(store, "buyer1", -5)

        assert len(ledger.entries) == 8
        assert ledger.verify_chain_integrity() == True
        assert ledger.passed_ratio() == 1.0

    def test_snapshot_holds_plain_values_only(self):
        """Contexts and services are not retained by the ledger."""
        reputations, _, ledger = build_services()
        reputations.update_score(InMemoryKeyValueStore(), "p1", 5)

        assert len(ledger.entries) == 2
        for entry in ledger.entries:
            assert set(entry.state_snapshot.keys()) == {'timestamp', 'participant', 'delta'}

    def test_ledger_is_capped(self):
        ledger = DecisionLedger(max_entries=3)
        reputations = ReputationLedger(KeyScheme.flat(), ledger)
        store = InMemoryKeyValueStore()

        for _ in range(5):
            reputations.update_score(store, "p1", 1)

        assert len(ledger.entries) == 3
        assert ledger.entries[-1].check_type == "POST"
        assert ledger.verify_chain_integrity() == True

    def test_describe_metadata(self):
        assert UniqueTokenIDs().describe() == "inv_001_unique_token_ids [state/critical, owner=asset_registry]"

    def test_failure_log_names_owner(self, caplog):
        _, assets, _ = build_services()
        store = InMemoryKeyValueStore()
        put_score(store, "buyer1", 0)

        with caplog.at_level(logging.ERROR, logger="ETS.Enforcement"):
            with pytest.raises(ReputationTooLow):
                assets.create(store, **create_args())

        assert "inv_101_buyer_reputation [security/critical, owner=reputation_ledger]" in caplog.text

# ============================================
# UNIT TESTS - ACCOUNTS & BOOTSTRAP
# ============================================

class TestAccountLedger:

    def test_set_and_read(self):
        accounts = AccountLedger(KeyScheme.prefixed())
        store = InMemoryKeyValueStore()

        accounts.set_balance(store, "acct-1", 42.5)
        accounts.set_balance(store, "acct-1", 10)

        assert accounts.read_account(store, "acct-1") == TokenAccount("acct-1", 10)

    def test_read_missing(self):
        with pytest.raises(AccountNotFound):
            AccountLedger(KeyScheme.flat()).read_account(InMemoryKeyValueStore(), "ghost")

class TestLedgerBootstrap:
    """InitLedger seeding."""

    def test_seed_contents(self):
        scheme = KeyScheme.prefixed()
        contract = EnergyTradingContract(key_scheme=scheme)
        store = InMemoryKeyValueStore()

        counts = contract.init_ledger(store)

        assert counts == {'accounts': 2, 'assets': 1, 'reputations': 2}
        assert contract.read_token_account(store, "buyer1").balance == 100
        assert contract.read_token_account(store, "seller1").balance == 100
        assert contract.read_reputation_score(store, "buyer1").score == 80
        assert contract.read_reputation_score(store, "seller1").score == 85

        asset = contract.read_energy_asset(store, "energy1")
        assert asset.transaction_price == 0.25
        assert asset.buyer_signature == "buyer_signature_example"
        assert asset.seller_signature == "seller_signature_example"

    def test_flat_seed_reputation_overwrites_account(self):
        """Shared key space: the buyer1 reputation replaces the buyer1 account."""
        contract = EnergyTradingContract(key_scheme=KeyScheme.flat())
        store = InMemoryKeyValueStore()
        contract.init_ledger(store)

        assert contract.read_reputation_score(store, "buyer1").score == 80
        assert contract.read_token_account(store, "buyer1").balance == 0
        assert len(store) == 3

    def test_failure_midway_writes_nothing(self):
        """A bad asset after the accounts leaves the store untouched."""
        scheme = KeyScheme.flat()
        bad_asset = EnergyAsset("energy1", "b", "s", "lots", 0.25, "t", 0, 0)
        bootstrap = LedgerBootstrap(scheme, AccountLedger(scheme), assets=[bad_asset])
        store = InMemoryKeyValueStore()

        with pytest.raises(ValueError):
            bootstrap.init_ledger(store)

        assert len(store) == 0

    def test_store_failure_on_last_write_undoes_earlier_ones(self):
        contract = EnergyTradingContract(key_scheme=KeyScheme.prefixed())
        store = FailingStore(fail_put=True, keys={"reputation~seller1"})

        with pytest.raises(StoreError):
            contract.init_ledger(store)

        assert store.records == {}

    def test_store_failure_through_dispatch_writes_nothing(self):
        contract = EnergyTradingContract(key_scheme=KeyScheme.prefixed())
        store = FailingStore(fail_put=True, keys={"reputation~seller1"})

        with pytest.raises(StoreError):
            contract.submit_transaction(store, "InitLedger")

        assert store.records == {}

# ============================================
# INTEGRATION TESTS - CONTRACT DISPATCH
# ============================================

class TestContractDispatch:
    """Function-name dispatch with host-style commit semantics."""

    def test_init_then_create_energy2(self):
        contract = EnergyTradingContract(key_scheme=KeyScheme.flat())
        store = InMemoryKeyValueStore()
        contract.submit_transaction(store, "InitLedger")

        contract.submit_transaction(
            store, "CreateEnergyAsset",
            "energy2", "buyer1", "seller1", "50", "0.3", "2025-05-04T09:00:00Z", "5", "5"
        )

        assert contract.evaluate_transaction(store, "EnergyAssetExists", "energy2") == True
        payload = contract.evaluate_transaction(store, "ReadEnergyAsset", "energy2")
        assert payload['tokenID'] == "energy2"
        assert payload['energyAmount'] == 50
        assert payload['transactionState'] == "CREATED"
        assert 'buyerSignature' not in payload

    def test_read_missing_asset(self):
        contract = EnergyTradingContract(key_scheme=KeyScheme.flat())

        with pytest.raises(AssetNotFound):
            contract.evaluate_transaction(InMemoryKeyValueStore(), "ReadEnergyAsset", "missing")

    def test_reputation_never_not_found(self):
        contract = EnergyTradingContract(key_scheme=KeyScheme.flat())
        payload = contract.evaluate_transaction(InMemoryKeyValueStore(), "ReadReputationScore", "fresh")

        assert payload == {'participantAddress': "fresh", 'score': 50}

    def test_update_reputation_minus_200(self):
        contract = EnergyTradingContract(key_scheme=KeyScheme.flat())
        store = InMemoryKeyValueStore()

        payload = contract.submit_transaction(store, "UpdateReputationScore", "p1", "-200")

        assert payload['score'] == 0
        assert contract.evaluate_transaction(store, "CheckReputationPenalty", "p1") == True

    def test_rejected_create_commits_nothing(self):
        contract = EnergyTradingContract(key_scheme=KeyScheme.flat())
        store = InMemoryKeyValueStore()
        put_score(store, "buyer1", 39.9)

        with pytest.raises(ReputationTooLow):
            contract.submit_transaction(
                store, "CreateEnergyAsset", "energy2", "buyer1", "seller1", 1, 1, "t", 0, 0
            )
        assert store.keys() == ["buyer1"]

    def test_evaluate_discards_writes(self):
        contract = EnergyTradingContract(key_scheme=KeyScheme.flat())
        store = InMemoryKeyValueStore()

        payload = contract.evaluate_transaction(store, "UpdateReputationScore", "p1", 10)

        assert payload['score'] == 60
        assert len(store) == 0

    def test_unknown_function(self):
        contract = EnergyTradingContract(key_scheme=KeyScheme.flat())

        with pytest.raises(InvalidInvocation) as exc_info:
            contract.submit_transaction(InMemoryKeyValueStore(), "TransferTokens", "a", "b")
        assert exc_info.value.kind == ErrorKind.INVALID_INVOCATION

    def test_wrong_argument_count(self):
        contract = EnergyTradingContract(key_scheme=KeyScheme.flat())

        with pytest.raises(InvalidInvocation):
            contract.submit_transaction(InMemoryKeyValueStore(), "UpdateReputationScore", "p1")

    @pytest.mark.parametrize("delta", ["ten", None, True])
    def test_non_numeric_argument(self, delta):
        contract = EnergyTradingContract(key_scheme=KeyScheme.flat())

        with pytest.raises(InvalidInvocation):
            contract.submit_transaction(InMemoryKeyValueStore(), "UpdateReputationScore", "p1", delta)

    @pytest.mark.parametrize("delta", ["nan", "inf", "-Infinity", float("nan")])
    def test_non_finite_delta_rejected(self, delta):
        """A penalized buyer stays penalized."""
        contract = EnergyTradingContract(key_scheme=KeyScheme.flat())
        store = InMemoryKeyValueStore()
        put_score(store, "buyer1", 0)

        with pytest.raises(InvalidInvocation):
            contract.submit_transaction(store, "UpdateReputationScore", "buyer1", delta)

        assert contract.evaluate_transaction(store, "CheckReputationPenalty", "buyer1") == True

    def test_non_finite_asset_amounts_rejected(self):
        contract = EnergyTradingContract(key_scheme=KeyScheme.flat())
        store = InMemoryKeyValueStore()

        with pytest.raises(InvalidInvocation):
            contract.submit_transaction(
                store, "CreateEnergyAsset", "energy2", "buyer1", "seller1", "inf", "nan", "t", "0", "0"
            )
        assert len(store) == 0

    def test_store_failure_surfaces(self):
        contract = EnergyTradingContract(key_scheme=KeyScheme.flat())

        with pytest.raises(StoreError):
            contract.submit_transaction(FailingStore(fail_get=True), "EnergyAssetExists", "energy2")

if __name__ == "__main__":
    pytest.main([__file__, "-v", "--tb=short"])
