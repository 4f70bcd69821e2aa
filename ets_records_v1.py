"""
Energy Trade Settlement (ETS) - Ledger Records
Version: 1.0.0

Energy assets, token accounts and reputation records, and the JSON
encoding they are persisted with.
"""

from dataclasses import dataclass
from typing import Any, Dict, Type, TypeVar
from enum import Enum
import json
import math

from ets_enforcement_v1 import InvalidInvocation, RecordDecodeError

# ============================================
# DATA MODELS
# ============================================

class TransactionState(Enum):
    # Only CREATED is produced; the field is kept as an opaque label
    CREATED = "CREATED"

@dataclass
class EnergyAsset:
    """One bilateral energy trade proposal."""
    token_id: str
    buyer_address: str
    seller_address: str
    energy_amount: float
    transaction_price: float
    timestamp: str
    buyer_deposit: float
    seller_deposit: float
    transaction_state: str = TransactionState.CREATED.value

    # Inert, carried for data compatibility
    buyer_signature: str = ""
    seller_signature: str = ""

    FIELDS = (
        ('token_id', 'tokenID', 'str'),
        ('buyer_address', 'buyerAddress', 'str'),
        ('seller_address', 'sellerAddress', 'str'),
        ('energy_amount', 'energyAmount', 'num'),
        ('transaction_price', 'transactionPrice', 'num'),
        ('timestamp', 'timestamp', 'str'),
        ('buyer_deposit', 'buyerDeposit', 'num'),
        ('seller_deposit', 'sellerDeposit', 'num'),
        ('transaction_state', 'transactionState', 'str'),
        ('buyer_signature', 'buyerSignature', 'omitempty'),
        ('seller_signature', 'sellerSignature', 'omitempty'),
    )

    def to_dict(self) -> Dict:
        return _to_dict(self)

@dataclass
class TokenAccount:
    """Token balance held by an account."""
    account_id: str
    balance: float

    FIELDS = (
        ('account_id', 'accountID', 'str'),
        ('balance', 'balance', 'num'),
    )

    def to_dict(self) -> Dict:
        return _to_dict(self)

@dataclass
class Reputation:
    """Participant reputation score in [0, 100]."""
    participant_address: str
    score: float

    FIELDS = (
        ('participant_address', 'participantAddress', 'str'),
        ('score', 'score', 'num'),
    )

    def to_dict(self) -> Dict:
        return _to_dict(self)

Record = TypeVar("Record", EnergyAsset, TokenAccount, Reputation)

# ============================================
# ENCODING
# ============================================

def _json_number(value: float):
    # 100.0 is written as 100, matching records written by other ledger peers
    value = float(value)
    if value.is_integer():
        return int(value)
    return value

def _to_dict(record) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    for attr, name, kind in record.FIELDS:
        value = getattr(record, attr)
        if kind == 'omitempty':
            if value:
                data[name] = value
        elif kind == 'num':
            data[name] = _json_number(value)
        else:
            data[name] = value
    return data

def encode_record(record) -> bytes:
    """Serialize a record to compact JSON bytes.

    NaN and infinities have no JSON form and are refused.
    """
    data = record.to_dict()
    try:
        return json.dumps(data, separators=(',', ':'), allow_nan=False).encode('utf-8')
    except ValueError as e:
        raise InvalidInvocation(f"{type(record).__name__} has a non-finite number: {data}") from e

def _read_field(data: Dict[str, Any], name: str, kind: str, record_type: str):
    value = data.get(name)

    if kind == 'num':
        if value is None:
            return 0.0
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise RecordDecodeError(f"{record_type}.{name}: expected number, got {type(value).__name__}")
        if not math.isfinite(value):
            raise RecordDecodeError(f"{record_type}.{name}: non-finite number {value}")
        return float(value)

    if value is None:
        return ""
    if not isinstance(value, str):
        raise RecordDecodeError(f"{record_type}.{name}: expected string, got {type(value).__name__}")
    return value

def record_from_dict(record_cls: Type[Record], data: Dict[str, Any]) -> Record:
    """
    Build a record from its JSON object.

    Unknown fields are ignored and missing fields take zero values, so
    records written by older or newer peers still load.
    """
    if not isinstance(data, dict):
        raise RecordDecodeError(f"{record_cls.__name__}: expected JSON object, got {type(data).__name__}")

    kwargs = {
        attr: _read_field(data, name, kind, record_cls.__name__)
        for attr, name, kind in record_cls.FIELDS
    }
    return record_cls(**kwargs)

def decode_record(record_cls: Type[Record], raw: bytes) -> Record:
    """Parse stored bytes into a record, raising RecordDecodeError when malformed."""
    try:
        data = json.loads(raw)
    except (UnicodeDecodeError, ValueError) as e:
        raise RecordDecodeError(f"{record_cls.__name__}: stored bytes are not valid JSON: {e}") from e

    return record_from_dict(record_cls, data)
