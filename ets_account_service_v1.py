"""
Energy Trade Settlement (ETS) - Token Account Ledger
Version: 1.0.0

Balance records keyed by account id. Balances are written only by the
bootstrap routine; trade logic never debits or credits them.
"""

from ets_enforcement_v1 import AccountNotFound, logger
from ets_records_v1 import TokenAccount, encode_record, decode_record
from ets_store_v1 import KeyScheme, KeyValueStore


class AccountLedger:
    """Token account balances backed by the record store."""

    def __init__(self, key_scheme: KeyScheme):
        self.key_scheme = key_scheme

    def key_for(self, account_id: str) -> str:
        return self.key_scheme.account_key(account_id)

    def set_balance(self, ctx: KeyValueStore, account_id: str, balance: float) -> TokenAccount:
        """Unconditionally overwrite the account's balance."""
        account = TokenAccount(account_id=account_id, balance=balance)
        ctx.put(self.key_for(account_id), encode_record(account))
        logger.info(f"[ACCOUNTS] Set balance {account_id} = {balance}")
        return account

    def read_account(self, ctx: KeyValueStore, account_id: str) -> TokenAccount:
        raw = ctx.get(self.key_for(account_id))
        if raw is None:
            raise AccountNotFound(account_id)
        return decode_record(TokenAccount, raw)
