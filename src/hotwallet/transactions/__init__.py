"""Transaction building, coin selection and signing."""

from hotwallet.transactions.base import SignedTransaction, TxState
from hotwallet.transactions.selector import CoinSelection, select_utxos

__all__ = [
    "CoinSelection",
    "SignedTransaction",
    "TxState",
    "select_utxos",
]
