"""
Energy Trade Settlement (ETS) - Ledger Bootstrap
Version: 1.0.0

Seeds demo accounts, one sample energy asset and two reputation scores.
All seed writes are staged and published together, or not at all.
"""

from typing import Dict, List, Optional

from ets_enforcement_v1 import logger
from ets_records_v1 import EnergyAsset, TokenAccount, Reputation, TransactionState, encode_record
from ets_account_service_v1 import AccountLedger
from ets_store_v1 import KeyScheme, KeyValueStore, TransactionContext

# ============================================
# SEED DATA
# ============================================

SEED_ACCOUNTS = [
    TokenAccount(account_id="buyer1", balance=100.0),
    TokenAccount(account_id="seller1", balance=100.0),
]

SEED_ASSETS = [
    EnergyAsset(
        token_id="energy1",
        buyer_address="buyer1",
        seller_address="seller1",
        energy_amount=100.0,
        transaction_price=0.25,
        timestamp="2025-05-03T10:00:00Z",
        buyer_deposit=10.0,
        seller_deposit=10.0,
        transaction_state=TransactionState.CREATED.value,
        buyer_signature="buyer_signature_example",
        seller_signature="seller_signature_example"
    ),
]

SEED_REPUTATIONS = [
    Reputation(participant_address="buyer1", score=80),
    Reputation(participant_address="seller1", score=85),
]

# ============================================
# BOOTSTRAP
# ============================================

class LedgerBootstrap:
    """Writes the initial ledger contents."""

    def __init__(
        self,
        key_scheme: KeyScheme,
        account_ledger: AccountLedger,
        accounts: Optional[List[TokenAccount]] = None,
        assets: Optional[List[EnergyAsset]] = None,
        reputations: Optional[List[Reputation]] = None
    ):
        self.key_scheme = key_scheme
        self.account_ledger = account_ledger
        self.accounts = SEED_ACCOUNTS if accounts is None else accounts
        self.assets = SEED_ASSETS if assets is None else assets
        self.reputations = SEED_REPUTATIONS if reputations is None else reputations

    def init_ledger(self, ctx: KeyValueStore) -> Dict[str, int]:
        """
        Seed accounts, then assets, then reputations.

        Writes go to a staging context layered on ctx; if any write fails the
        staging context is discarded and ctx is left exactly as it was.
        """
        staging = TransactionContext(ctx)

        try:
            for account in self.accounts:
                self.account_ledger.set_balance(staging, account.account_id, account.balance)

            for asset in self.assets:
                staging.put(self.key_scheme.asset_key(asset.token_id), encode_record(asset))

            for rep in self.reputations:
                staging.put(self.key_scheme.reputation_key(rep.participant_address), encode_record(rep))

            written = staging.commit()
        except Exception as e:
            logger.error(f"[BOOTSTRAP] Seeding failed, nothing written: {e}")
            staging.rollback()
            raise

        logger.info(
            f"[BOOTSTRAP] Seeded {len(self.accounts)} accounts, "
            f"{len(self.assets)} assets, {len(self.reputations)} reputations ({written} keys)"
        )

        return {
            'accounts': len(self.accounts),
            'assets': len(self.assets),
            'reputations': len(self.reputations)
        }
