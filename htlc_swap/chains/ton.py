"""
TON clients for htlc-swap.

- TonCenterClient: toncenter v2 HTTP API (seqno, account state, sendBoc)
- TonWallet: deployed v4r2 wallet driven by the injected mnemonic; signs
  and sends internal messages to the HTLC contract
- TonApiClient: tonapi.io account transactions, read by the correlator

All HTTP goes through httpx; transport failures surface as HTLCError.
"""

import hmac
import time
import base64
import hashlib
import logging
from typing import Optional, Dict, Any, List, Callable

import httpx
from nacl.signing import SigningKey

from ..config import TONConfig, require
from ..errors import HTLCError, InvalidArgument
from .boc import Address, Cell, begin_cell

log = logging.getLogger(__name__)

WALLET_V4_SUBWALLET_ID = 698983191
SEND_MODE_PAY_FEES_SEPARATELY = 1
SEND_MODE_IGNORE_ERRORS = 2
PBKDF_ITERATIONS = 100000


def key_from_mnemonic(words: List[str], password: str = "") -> SigningKey:
    """Ed25519 key of a standard 24 word TON mnemonic."""
    entropy = hmac.new(" ".join(words).encode(), password.encode(), hashlib.sha512).digest()
    seed = hashlib.pbkdf2_hmac("sha512", entropy, b"TON default seed", PBKDF_ITERATIONS, 64)
    return SigningKey(seed[:32])


class TonCenterClient:
    """toncenter v2 JSON API over httpx."""

    def __init__(self, base_url: str, api_key: str = "", timeout: float = 15.0,
                 http: Optional[httpx.Client] = None):
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["X-API-Key"] = api_key
        self.base_url = base_url.rstrip("/")
        self.http = http or httpx.Client(timeout=timeout, headers=headers)

    def _request(self, method: str, path: str, **kwargs) -> Any:
        url = f"{self.base_url}/{path}"
        try:
            resp = self.http.request(method, url, **kwargs)
            resp.raise_for_status()
            data = resp.json()
        except httpx.TimeoutException:
            raise HTLCError(f"toncenter timeout: {path}")
        except httpx.HTTPStatusError as e:
            raise HTLCError(f"toncenter HTTP {e.response.status_code}: {path}")
        except (httpx.HTTPError, ValueError) as e:
            raise HTLCError(f"toncenter request failed: {path}: {e}")

        if not data.get("ok", False):
            raise HTLCError(f"toncenter error: {data.get('error', data)}")
        return data.get("result")

    def get_address_state(self, address: str) -> str:
        """'active', 'uninitialized' or 'frozen'."""
        return self._request("GET", "getAddressState", params={"address": address})

    def get_seqno(self, address: str) -> int:
        """Run the wallet's seqno get-method."""
        result = self._request("POST", "runGetMethod", json={
            "address": address,
            "method": "seqno",
            "stack": [],
        })
        if result.get("exit_code", 0) != 0:
            raise HTLCError(f"seqno get-method failed: exit_code={result.get('exit_code')}")
        stack = result.get("stack") or []
        if not stack:
            return 0
        return int(stack[0][1], 16)

    def send_boc(self, boc_b64: str) -> Dict:
        return self._request("POST", "sendBoc", json={"boc": boc_b64})

    def close(self):
        self.http.close()


class TonWallet:
    """
    Signing v4r2 wallet bound to a toncenter client.

    The wallet must already be deployed at `address`. Exposes the narrow
    surface the TON adapter needs: address, seqno and send_message.
    """

    def __init__(self, client: TonCenterClient, mnemonic: str, address: str,
                 subwallet_id: int = WALLET_V4_SUBWALLET_ID, message_ttl: int = 60,
                 clock: Callable[[], float] = time.time):
        words = mnemonic.split()
        if len(words) != 24:
            raise InvalidArgument(f"TON mnemonic must have 24 words, got {len(words)}")
        self._key = key_from_mnemonic(words)
        self.public_key = bytes(self._key.verify_key)

        self._address = Address.parse(address)
        self.address = self._address.to_string(True, bounceable=False)
        self.client = client
        self.subwallet_id = subwallet_id
        self.message_ttl = message_ttl
        self.clock = clock

    @classmethod
    def from_config(cls, config: TONConfig) -> "TonWallet":
        client = TonCenterClient(
            config.toncenter_url,
            api_key=config.toncenter_api_key,
            timeout=config.http_timeout,
        )
        return cls(
            client,
            require(config.mnemonic, "HTLC_TON_MNEMONIC"),
            require(config.wallet_address, "HTLC_TON_WALLET_ADDRESS"),
            message_ttl=config.message_ttl,
        )

    def is_deployed(self) -> bool:
        return self.client.get_address_state(self.address) == "active"

    def get_seqno(self) -> int:
        return self.client.get_seqno(self.address)

    def build_transfer(self, destination: str, value: int, body: Optional[Cell],
                       bounce: bool, seqno: int) -> Cell:
        """Signed external message carrying one internal transfer."""
        internal = (begin_cell()
                    .store_uint(0, 1)              # int_msg_info$0
                    .store_bit(1)                  # ihr_disabled
                    .store_bit(bounce)
                    .store_bit(0)                  # bounced
                    .store_address(None)           # src, set by the wallet
                    .store_address(Address.parse(destination))
                    .store_coins(value)
                    .store_bit(0)                  # no extra currencies
                    .store_coins(0)                # ihr_fee
                    .store_coins(0)                # fwd_fee
                    .store_uint(0, 64)             # created_lt
                    .store_uint(0, 32)             # created_at
                    .store_bit(0))                 # no state init
        if body is None:
            internal.store_bit(0)
        else:
            internal.store_bit(1).store_ref(body)
        internal = internal.end_cell()

        signing = (begin_cell()
                   .store_uint(self.subwallet_id, 32)
                   .store_uint(int(self.clock()) + self.message_ttl, 32)
                   .store_uint(seqno, 32)
                   .store_uint(0, 8)               # op: simple send
                   .store_uint(SEND_MODE_PAY_FEES_SEPARATELY | SEND_MODE_IGNORE_ERRORS, 8)
                   .store_ref(internal)
                   .end_cell())
        signature = self._key.sign(signing.hash()).signature

        signed_body = begin_cell().store_bytes(signature).store_cell(signing).end_cell()
        return (begin_cell()
                .store_uint(0b10, 2)               # ext_in_msg_info$10
                .store_address(None)
                .store_address(self._address)
                .store_coins(0)                    # import_fee
                .store_bit(0)                      # no state init
                .store_bit(1)
                .store_ref(signed_body)
                .end_cell())

    def send_message(self, destination: str, value: int, body: Optional[Cell],
                     bounce: bool = True, seqno: Optional[int] = None) -> int:
        """
        Sign and broadcast one internal message.

        Returns:
            The seqno the transfer was signed with.
        """
        if seqno is None:
            seqno = self.get_seqno()
        message = self.build_transfer(destination, value, body, bounce, seqno)
        self.client.send_boc(base64.b64encode(message.to_boc()).decode())
        log.info(f"TON message sent: to={destination[:12]}... value={value} seqno={seqno}")
        return seqno


class TonApiClient:
    """tonapi.io REST client (read-only)."""

    def __init__(self, base_url: str, token: str = "", timeout: float = 15.0,
                 http: Optional[httpx.Client] = None):
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self.base_url = base_url.rstrip("/")
        self.http = http or httpx.Client(timeout=timeout, headers=headers)

    @classmethod
    def from_config(cls, config: TONConfig) -> "TonApiClient":
        return cls(config.tonapi_url, token=config.tonapi_token, timeout=config.http_timeout)

    def get_account_transactions(self, account: str, limit: int = 100) -> List[Dict]:
        """Most recent transactions first, as returned by tonapi."""
        url = f"{self.base_url}/v2/blockchain/accounts/{account}/transactions"
        try:
            resp = self.http.get(url, params={"limit": limit})
            resp.raise_for_status()
            data = resp.json()
        except httpx.TimeoutException:
            raise HTLCError(f"tonapi timeout: {account}")
        except httpx.HTTPStatusError as e:
            raise HTLCError(f"tonapi HTTP {e.response.status_code}: {account}")
        except (httpx.HTTPError, ValueError) as e:
            raise HTLCError(f"tonapi request failed: {e}")
        return data.get("transactions", [])

    def close(self):
        self.http.close()
