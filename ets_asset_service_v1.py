"""
Energy Trade Settlement (ETS) - Energy Asset Registry
Version: 1.0.0

Creates and reads energy trade records with full invariant enforcement.
"""

from typing import Any, Dict

from ets_enforcement_v1 import (
    InvariantEnforcer,
    DecisionLedger,
    BuyerReputationAboveThreshold,
    SellerReputationAboveThreshold,
    UniqueTokenIDs,
    AssetNotFound,
    logger
)
from ets_metrics import record_asset_created
from ets_records_v1 import EnergyAsset, TransactionState, encode_record, decode_record
from ets_reputation_service_v1 import ReputationLedger
from ets_store_v1 import KeyScheme, KeyValueStore


class AssetRegistry:
    """Registry of energy trade proposals."""

    def __init__(
        self,
        key_scheme: KeyScheme,
        reputation_ledger: ReputationLedger,
        ledger: DecisionLedger
    ):
        self.key_scheme = key_scheme
        self.reputation_ledger = reputation_ledger

        # Evaluated buyer, then seller, then uniqueness
        self.invariants = [
            BuyerReputationAboveThreshold(),
            SellerReputationAboveThreshold(),
            UniqueTokenIDs()
        ]
        self.enforcer = InvariantEnforcer(self.invariants, ledger)

    def key_for(self, token_id: str) -> str:
        return self.key_scheme.asset_key(token_id)

    def exists(self, ctx: KeyValueStore, token_id: str) -> bool:
        """Check if a record is stored under token_id."""
        return ctx.get(self.key_for(token_id)) is not None

    def read(self, ctx: KeyValueStore, token_id: str) -> EnergyAsset:
        raw = ctx.get(self.key_for(token_id))
        if raw is None:
            raise AssetNotFound(token_id)

        return decode_record(EnergyAsset, raw)

    def create(
        self,
        ctx: KeyValueStore,
        token_id: str,
        buyer: str,
        seller: str,
        energy_amount: float,
        transaction_price: float,
        timestamp: str,
        buyer_deposit: float,
        seller_deposit: float
    ) -> EnergyAsset:
        """
        Create a new energy asset.

        Checks run in a fixed order and stop at the first failure:
        1. buyer reputation (ReputationTooLow)
        2. seller reputation (ReputationTooLow)
        3. tokenID uniqueness (AssetAlreadyExists)
        Only then is the record written, in a single put.
        """
        result = self.enforcer.enforce_action(
            self._write_asset,
            ctx=ctx,
            token_id=token_id,
            buyer=buyer,
            seller=seller,
            energy_amount=energy_amount,
            transaction_price=transaction_price,
            timestamp=timestamp,
            buyer_deposit=buyer_deposit,
            seller_deposit=seller_deposit,
            asset_registry=self,
            reputation_ledger=self.reputation_ledger
        )
        asset = result['asset']

        record_asset_created(asset.energy_amount)
        logger.info(f"[ASSETS] Created {token_id}: {buyer} <- {seller}, {energy_amount} @ {transaction_price}")
        return asset

    def _write_asset(
        self,
        ctx,
        token_id: str,
        buyer: str,
        seller: str,
        energy_amount: float,
        transaction_price: float,
        timestamp: str,
        buyer_deposit: float,
        seller_deposit: float,
        **kwargs
    ) -> Dict[str, Any]:
        asset = EnergyAsset(
            token_id=token_id,
            buyer_address=buyer,
            seller_address=seller,
            energy_amount=energy_amount,
            transaction_price=transaction_price,
            timestamp=timestamp,
            buyer_deposit=buyer_deposit,
            seller_deposit=seller_deposit,
            transaction_state=TransactionState.CREATED.value
        )
        ctx.put(self.key_for(token_id), encode_record(asset))

        return {
            'ctx': ctx,
            'token_id': token_id,
            'asset': asset,
            'asset_registry': self
        }
