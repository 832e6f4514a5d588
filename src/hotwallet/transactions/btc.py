"""Bitcoin transaction building and signing for P2PKH inputs.

Transactions are assembled and signed with bitcoinlib. Inputs are legacy
P2PKH (the address type this wallet issues); outputs may pay P2PKH, P2SH or
segwit addresses. Every input must carry a SIGHASH_ALL signature that
verifies before the transaction is serialized.
"""

import logging

from bitcoinlib.encoding import double_sha256
from bitcoinlib.keys import BKeyError, Key
from bitcoinlib.transactions import Transaction, TransactionError

from hotwallet.config import Network
from hotwallet.errors import SigningFailed
from hotwallet.hdwallet.btc import check_address
from hotwallet.transactions.base import SignedTransaction
from hotwallet.transactions.selector import CoinSelection

logger = logging.getLogger(__name__)

# bitcoinlib network names
BITCOINLIB_NETWORK = {Network.MAINNET: "bitcoin", Network.TESTNET: "testnet"}


def load_key(secret: bytes, network: Network, compressed: bool = True) -> Key:
    """bitcoinlib signing key for a raw 32-byte secret."""
    try:
        return Key(secret.hex(), network=BITCOINLIB_NETWORK[network], compressed=compressed)
    except BKeyError as e:
        raise SigningFailed(f"Cannot load signing key: {e}")


def input_total(tx: Transaction) -> int:
    return sum(txin.value for txin in tx.inputs)


def output_total(tx: Transaction) -> int:
    return sum(txout.value for txout in tx.outputs)


def build_transaction(
    selection: CoinSelection,
    to_address: str,
    change_address: str,
    key: Key,
    network: Network,
) -> Transaction:
    """Assemble the inputs, the recipient output and, if any, the change output.

    Raises:
        InvalidAddress: If the recipient or change address is invalid for ``network``
        SigningFailed: If the assembled transaction does not balance
    """
    to_address = check_address(to_address, network)
    change_address = check_address(change_address, network)

    tx = Transaction(
        network=BITCOINLIB_NETWORK[network], fee=selection.fee, witness_type="legacy"
    )
    for utxo in selection.inputs:
        tx.add_input(
            utxo.txid,
            utxo.output_index,
            keys=key,
            value=utxo.value_satoshis,
            witness_type="legacy",
        )

    tx.add_output(selection.spend, to_address)
    if selection.has_change:
        tx.add_output(selection.change, change_address)

    if input_total(tx) != output_total(tx) + selection.fee:
        raise SigningFailed(
            f"Unbalanced transaction: in={input_total(tx)} "
            f"out={output_total(tx)} fee={selection.fee}"
        )
    return tx


def sign_transaction(tx: Transaction, key: Key) -> SignedTransaction:
    """Sign every input with one key.

    Raises:
        SigningFailed: If any input is left unsigned or a signature does not verify
    """
    try:
        tx.sign([key])
    except (TransactionError, BKeyError) as e:
        raise SigningFailed(f"Failed to sign transaction: {e}")

    unsigned = [index for index, txin in enumerate(tx.inputs) if not txin.signatures]
    if unsigned:
        raise SigningFailed(f"Transaction is not fully signed, missing inputs {unsigned}")
    if not tx.verify():
        raise SigningFailed("Transaction signatures failed verification")

    raw_hex = tx.raw_hex()
    txid = double_sha256(bytes.fromhex(raw_hex))[::-1].hex()
    fee = input_total(tx) - output_total(tx)
    logger.debug(f"Signed BTC tx {txid}: {len(tx.inputs)} inputs, {len(tx.outputs)} outputs")

    return SignedTransaction(raw_hex=raw_hex, txid=txid, fee=fee)
