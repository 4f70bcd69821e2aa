"""
Energy Trade Settlement - Enforcement Layer Integration
Re-exports ledger components for API usage
"""

from ets_enforcement_v1 import (
    # Core enforcement
    Invariant,
    InvariantEnforcer,
    DecisionLedger,
    EnforcementDecision,
    EnforcementResult,

    # Exceptions
    ErrorKind,
    LedgerError,
    AssetNotFound,
    AccountNotFound,
    RecordDecodeError,
    StoreError,
    InvalidInvocation,
    InvariantViolation,
    ReputationTooLow,
    AssetAlreadyExists,
    SystemCompromised,

    # Invariants
    BuyerReputationAboveThreshold,
    SellerReputationAboveThreshold,
    UniqueTokenIDs,
    ReputationScoreBounded,

    # Logging
    logger
)

from ets_records_v1 import EnergyAsset, TokenAccount, Reputation, record_from_dict
from ets_store_v1 import KeyValueStore, InMemoryKeyValueStore, TransactionContext, KeyScheme
from ets_contract_v1 import EnergyTradingContract

__all__ = [
    'Invariant',
    'InvariantEnforcer',
    'DecisionLedger',
    'EnforcementDecision',
    'EnforcementResult',

    'ErrorKind',
    'LedgerError',
    'AssetNotFound',
    'AccountNotFound',
    'RecordDecodeError',
    'StoreError',
    'InvalidInvocation',
    'InvariantViolation',
    'ReputationTooLow',
    'AssetAlreadyExists',
    'SystemCompromised',

    'BuyerReputationAboveThreshold',
    'SellerReputationAboveThreshold',
    'UniqueTokenIDs',
    'ReputationScoreBounded',

    'EnergyAsset',
    'TokenAccount',
    'Reputation',
    'record_from_dict',

    'KeyValueStore',
    'InMemoryKeyValueStore',
    'TransactionContext',
    'KeyScheme',
    'EnergyTradingContract',

    'logger'
]
