"""In-memory chain backends served through ``httpx.MockTransport``.

One ``FakeChain`` answers every endpoint the engine talks to: the Esplora
API, the mempool fee API, JSON-RPC nodes and Etherscan.
"""

import json
from decimal import Decimal
from typing import Optional

import httpx
from bitcoinlib.encoding import double_sha256
from bitcoinlib.transactions import Transaction
from web3 import Web3

from hotwallet.config import USDT_CONTRACT_SEPOLIA, Settings

GWEI = 10**9

# secp256k1 private keys 1 and 2
KEY_ONE = "0x" + "00" * 31 + "01"
KEY_TWO = "0x" + "00" * 31 + "02"

BTC_MAINNET_ADDRESS_ONE = "1BgGZ9tcN4rm9KBzDn7KprQz87SZ26SAMH"
BTC_TESTNET_ADDRESS_ONE = "mrCDrCybB6J1vRfbwM5hemdJz73FwDBC8r"
BTC_TESTNET_BECH32 = "tb1qw508d6qejxtdg4y5r3zarvary0c5xw7kxpjzsx"

ETH_ADDRESS_ONE = "0x7E5F4552091A69125d5DfCb7b8C2659029395Bdf"
ETH_ADDRESS_TWO = "0x2B5AD5c4795c026514f8317c7a215E218DcCD6cF"

USDT_CONTRACT = USDT_CONTRACT_SEPOLIA

ESPLORA_URL = "https://esplora.test/api"
FEE_API_URL = "https://fees.test/api"
RPC_PRIMARY = "https://rpc-primary.test"
RPC_BACKUP = "https://rpc-backup.test"
ETHERSCAN_URL = "https://etherscan.test/api"


def make_settings(**overrides) -> Settings:
    """Settings pointing every testnet endpoint at the fake chain."""
    values = {
        "btc_api_testnet": ESPLORA_URL,
        "btc_fee_api_testnet": FEE_API_URL,
        "btc_live_testnet_fees": False,
        "btc_fallback_fee_testnet": Decimal("1"),
        "eth_sepolia_endpoint": RPC_PRIMARY,
        "eth_sepolia_fallbacks": RPC_BACKUP,
        "etherscan_api_sepolia": ETHERSCAN_URL,
        "etherscan_api_key": "",
        "master_key": None,
        "send_lock_timeout": 0.5,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def utxo(txid_byte: str, value: int, vout: int = 0, confirmed: bool = True) -> dict:
    """Esplora-shaped UTXO entry."""
    status = {"confirmed": confirmed}
    if confirmed:
        status["block_height"] = 2500000
    return {"txid": txid_byte * 32, "vout": vout, "value": value, "status": status}


class FakeChain:
    """Scriptable chain state behind a single mock transport."""

    def __init__(self):
        # Bitcoin
        self.utxos: dict[str, list[dict]] = {}
        self.btc_history: dict[str, list[dict]] = {}
        self.btc_txs: dict[str, dict] = {}
        self.hour_fee: Optional[int] = None
        self.reject_btc_broadcast: Optional[str] = None
        self.btc_broadcasts: list[str] = []

        # Ethereum
        self.dead_urls: set[str] = set()
        self.failing_methods: set[str] = set()
        self.eth_balances: dict[str, int] = {}
        self.token_balances: dict[str, int] = {}
        self.token_decimals = 6
        self.balance_of_result: Optional[str] = None
        self.nonce = 0
        self.tx_count = 0
        self.gas_price = 20 * GWEI
        self.base_fee = 10 * GWEI
        self.priority_fee = 2 * GWEI
        self.receipts: dict[str, dict] = {}
        self.reject_eth_broadcast: Optional[str] = None
        self.eth_broadcasts: list[str] = []
        self.etherscan_response: dict = {
            "status": "0",
            "message": "No transactions found",
            "result": [],
        }

        self.requests: list[httpx.Request] = []

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def rpc_methods(self) -> list[str]:
        return [
            json.loads(request.content)["method"]
            for request in self.requests
            if request.url.host.startswith("rpc-")
        ]

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        if any(url.startswith(dead) for dead in self.dead_urls):
            raise httpx.ConnectError("Connection refused", request=request)

        host = request.url.host
        if host == "esplora.test":
            return self._esplora(request)
        if host == "fees.test":
            if self.hour_fee is None:
                return httpx.Response(503, text="unavailable")
            return httpx.Response(200, json={"fastestFee": self.hour_fee * 2, "hourFee": self.hour_fee})
        if host.startswith("rpc-"):
            return self._rpc(request)
        if host == "etherscan.test":
            return httpx.Response(200, json=self.etherscan_response)
        return httpx.Response(404, text="not found")

    # ======================
    # Esplora
    # ======================

    def _esplora(self, request: httpx.Request) -> httpx.Response:
        parts = request.url.path.removeprefix("/api/").split("/")

        if request.method == "POST" and parts == ["tx"]:
            raw = request.content.decode()
            if self.reject_btc_broadcast:
                return httpx.Response(400, text=self.reject_btc_broadcast)
            self.btc_broadcasts.append(raw)
            return httpx.Response(200, text=self._apply_btc_tx(raw))

        if parts[0] == "address" and parts[2] == "utxo":
            if parts[1].startswith("bad"):
                return httpx.Response(400, text="Invalid Bitcoin address")
            return httpx.Response(200, json=self.utxos.get(parts[1], []))

        if parts[0] == "address" and parts[2] == "txs":
            return httpx.Response(200, json=self.btc_history.get(parts[1], []))

        if parts[0] == "tx" and len(parts) == 2:
            tx = self.btc_txs.get(parts[1])
            if tx is None:
                return httpx.Response(404, text="Transaction not found")
            return httpx.Response(200, json=tx)

        return httpx.Response(404, text="not found")

    # ======================
    # JSON-RPC
    # ======================

    def _rpc(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        method, params = payload["method"], payload["params"]

        if method in self.failing_methods:
            error = {"code": -32601, "message": f"the method {method} is not available"}
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": payload["id"], "error": error})

        if method == "eth_sendRawTransaction" and self.reject_eth_broadcast:
            error = {"code": -32000, "message": self.reject_eth_broadcast}
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": payload["id"], "error": error})

        result = self._rpc_result(method, params)
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": payload["id"], "result": result})

    def _rpc_result(self, method: str, params: list):
        if method == "eth_blockNumber":
            return hex(5000000)
        if method == "eth_getBalance":
            return hex(self.eth_balances.get(params[0].lower(), 0))
        if method == "eth_call":
            data = params[0]["data"]
            if data.startswith("0x313ce567"):
                return "0x" + hex(self.token_decimals)[2:].zfill(64)
            if data.startswith("0x70a08231"):
                if self.balance_of_result is not None:
                    return self.balance_of_result
                owner = "0x" + data[-40:]
                return "0x" + hex(self.token_balances.get(owner, 0))[2:].zfill(64)
            return "0x"
        if method == "eth_gasPrice":
            return hex(self.gas_price)
        if method == "eth_getBlockByNumber":
            return {"number": hex(5000000), "baseFeePerGas": hex(self.base_fee)}
        if method == "eth_maxPriorityFeePerGas":
            return hex(self.priority_fee)
        if method == "eth_getTransactionCount":
            return hex(self.nonce if params[1] == "pending" else self.tx_count)
        if method == "eth_sendRawTransaction":
            self.eth_broadcasts.append(params[0])
            return Web3.to_hex(Web3.keccak(hexstr=params[0]))
        if method == "eth_getTransactionReceipt":
            return self.receipts.get(params[0])
        raise AssertionError(f"Unexpected RPC method {method}")

    def _apply_btc_tx(self, raw: str) -> str:
        """Spend the inputs of a broadcast transaction and credit its outputs unconfirmed."""
        txid = double_sha256(bytes.fromhex(raw))[::-1].hex()
        try:
            tx = Transaction.parse_hex(raw, network="testnet")
        except Exception:
            # Opaque payloads are accepted without touching the UTXO set
            return txid

        spent = {(txin.prev_txid.hex(), txin.output_n_int) for txin in tx.inputs}
        for address, entries in self.utxos.items():
            self.utxos[address] = [e for e in entries if (e["txid"], e["vout"]) not in spent]

        for vout, txout in enumerate(tx.outputs):
            self.utxos.setdefault(txout.address, []).append(
                {"txid": txid, "vout": vout, "value": txout.value, "status": {"confirmed": False}}
            )
        return txid
