import contextlib
from threading import RLock
from typing import Any, Dict, Iterator, List, Optional, Sequence, Set, Tuple, Union

import eth_abi
import eth_abi.exceptions
from eth_typing import ChecksumAddress
from eth_utils.address import to_checksum_address
from hexbytes import HexBytes
from web3 import Web3
from web3.exceptions import ContractLogicError
from web3.types import RPCEndpoint

from . import config
from .baseclasses import AbstractChainState
from .constants import ZERO_ADDRESS
from .erc20_token import TokenInfo
from .exceptions import EVMRevertError, HpsimError
from .functions import balance_slot_key, encode_function_calldata
from .logging import logger
from .uniswap.v2_dataclasses import UniswapV2PoolAttributes

# Number of storage slots searched for an ERC-20 balance mapping
BALANCE_SLOT_SEARCH_DEPTH = 20

# Storage slots that hold the logic contract address of common proxy patterns
PROXY_IMPLEMENTATION_SLOTS = (
    # EIP-1967 logic
    0x360894A13BA1A3210667C828492DB98DCA3E2076CC3735A920A3CA505D382BBC,
    # EIP-1967 beacon
    0xA3F0AD74E5423AEBFD80D3EF4346578335A9A72AEAEE59FF6CB3582B35133D50,
    # OpenZeppelin (pre EIP-1967)
    0x7050C9E0F4CA769C69BD3A8EF740BC37934F8E2C036E5A723FD8EE048ED3F8C3,
    # EIP-1822
    0xC5F16F0FCC639FA48A6947836D9850F504798523BF8C9A3A87D5876CF622BCF7,
)


class AnvilForkState(AbstractChainState):
    """
    Chain state backed by a local Anvil fork.

    Writes are real transactions sent from impersonated accounts, and
    `transaction()` brackets them with `evm_snapshot` / `evm_revert` so a
    failed or uncommitted simulation leaves the fork untouched. The fork
    must be mining automatically.
    """

    def __init__(
        self,
        w3: Optional[Web3] = None,
        gas_balance: int = 10 * 10**18,
    ) -> None:
        self.w3 = w3 if w3 is not None else config.get_web3()
        self.gas_balance = gas_balance
        self.balance_slots: Dict[ChecksumAddress, int] = {}
        self._impersonated: Set[ChecksumAddress] = set()
        self._state_lock = RLock()

    def _rpc(self, method: str, params: List[Any]) -> Any:
        response = self.w3.provider.make_request(RPCEndpoint(method), params)
        if response.get("error"):
            raise HpsimError(f"RPC call {method} failed: {response['error']}")
        return response["result"]

    def _call(
        self,
        to: ChecksumAddress,
        calldata: HexBytes,
        sender: Optional[ChecksumAddress] = None,
    ) -> bytes:
        transaction: Dict[str, Any] = {"to": to, "data": calldata}
        if sender is not None:
            transaction["from"] = sender
        try:
            return bytes(self.w3.eth.call(transaction, block_identifier="latest"))
        except ContractLogicError as exc:
            raise EVMRevertError(str(exc)) from exc

    def _decode(self, types: Sequence[str], data: bytes) -> Tuple:
        try:
            return eth_abi.decode(types=list(types), data=data)
        except eth_abi.exceptions.DecodingError as exc:
            raise HpsimError(f"Could not decode contract data {data!r} as {types}") from exc

    def _impersonate(self, account: ChecksumAddress) -> None:
        if account in self._impersonated:
            return
        self._rpc("anvil_impersonateAccount", [account])
        self._rpc("anvil_setBalance", [account, hex(self.gas_balance)])
        self._impersonated.add(account)
        logger.debug(f"Impersonating {account}")

    def _send(self, sender: ChecksumAddress, to: ChecksumAddress, calldata: HexBytes) -> None:
        self._impersonate(sender)
        try:
            tx_hash = self.w3.eth.send_transaction(
                {"from": sender, "to": to, "data": calldata}
            )
        except ContractLogicError as exc:
            # raised during gas estimation
            raise EVMRevertError(str(exc)) from exc
        receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash)
        if receipt["status"] != 1:
            raise EVMRevertError(f"Transaction {Web3.to_hex(tx_hash)} reverted")

    def balance_of(self, token: ChecksumAddress, holder: ChecksumAddress) -> int:
        (balance,) = self._decode(
            ["uint256"],
            self._call(
                to_checksum_address(token),
                encode_function_calldata("balanceOf(address)", (to_checksum_address(holder),)),
            ),
        )
        return balance

    def get_reserves(self, pool: ChecksumAddress) -> Tuple[int, int, int]:
        reserves_token0, reserves_token1, block_timestamp_last = self._decode(
            ["uint112", "uint112", "uint32"],
            self._call(to_checksum_address(pool), encode_function_calldata("getReserves()")),
        )
        return reserves_token0, reserves_token1, block_timestamp_last

    def get_pool_attributes(self, pool: Union[ChecksumAddress, str]) -> UniswapV2PoolAttributes:
        pool = to_checksum_address(pool)
        (token0,) = self._decode(["address"], self._call(pool, encode_function_calldata("token0()")))
        (token1,) = self._decode(["address"], self._call(pool, encode_function_calldata("token1()")))
        return UniswapV2PoolAttributes(
            address=pool,
            token0=to_checksum_address(token0),
            token1=to_checksum_address(token1),
        )

    def get_implementation(self, token: Union[ChecksumAddress, str]) -> Optional[ChecksumAddress]:
        """
        Return the logic contract address if `token` is a proxy, found by
        reading the well-known implementation storage slots
        """

        token = to_checksum_address(token)
        for slot in PROXY_IMPLEMENTATION_SLOTS:
            value = bytes(self.w3.eth.get_storage_at(token, slot, block_identifier="latest"))
            implementation = to_checksum_address(value[-20:].rjust(20, b"\x00"))
            if implementation != ZERO_ADDRESS:
                logger.debug(f"{token}: implementation {implementation} at slot {hex(slot)}")
                return implementation
        return None

    def get_token_info(self, token: Union[ChecksumAddress, str]) -> TokenInfo:
        token = to_checksum_address(token)
        (name,) = self._decode(["string"], self._call(token, encode_function_calldata("name()")))
        (symbol,) = self._decode(
            ["string"], self._call(token, encode_function_calldata("symbol()"))
        )
        (decimals,) = self._decode(
            ["uint8"], self._call(token, encode_function_calldata("decimals()"))
        )
        return TokenInfo(
            address=token,
            name=name,
            symbol=symbol,
            decimals=decimals,
            implementation=self.get_implementation(token),
        )

    def transfer(
        self,
        token: ChecksumAddress,
        sender: ChecksumAddress,
        recipient: ChecksumAddress,
        amount: int,
    ) -> bool:
        token = to_checksum_address(token)
        sender = to_checksum_address(sender)
        calldata = encode_function_calldata(
            "transfer(address,uint256)", (to_checksum_address(recipient), amount)
        )

        # The return flag is only visible to a call, so preflight before sending.
        # Tokens that return nothing (e.g. USDT) are treated as successful.
        return_data = self._call(token, calldata, sender=sender)
        if return_data:
            (success,) = self._decode(["bool"], return_data)
            if not success:
                logger.debug(f"{token}: transfer from {sender} returned False")
                return False

        self._send(sender, token, calldata)
        return True

    def swap(
        self,
        pool: ChecksumAddress,
        amount0_out: int,
        amount1_out: int,
        recipient: ChecksumAddress,
        data: bytes,
        sender: ChecksumAddress,
    ) -> None:
        pool = to_checksum_address(pool)
        sender = to_checksum_address(sender)
        calldata = encode_function_calldata(
            "swap(uint256,uint256,address,bytes)",
            (amount0_out, amount1_out, to_checksum_address(recipient), data),
        )
        # preflight to capture the revert reason
        self._call(pool, calldata, sender=sender)
        self._send(sender, pool, calldata)

    def find_balance_slot(
        self,
        token: Union[ChecksumAddress, str],
        holder: Union[ChecksumAddress, str],
    ) -> Optional[int]:
        """
        Identify the storage slot of the token's balance mapping by tracing a
        `balanceOf` call and matching the storage keys it touched.

        Returns None if no slot below `BALANCE_SLOT_SEARCH_DEPTH` matched.
        """

        token = to_checksum_address(token)
        holder = to_checksum_address(holder)

        if token in self.balance_slots:
            return self.balance_slots[token]

        trace = self._rpc(
            "debug_traceCall",
            [
                {
                    "from": holder,
                    "to": token,
                    "data": Web3.to_hex(
                        encode_function_calldata("balanceOf(address)", (holder,))
                    ),
                },
                "latest",
                {"tracer": "prestateTracer"},
            ],
        )
        prestate = {to_checksum_address(address): account for address, account in trace.items()}
        touched_storage = {
            HexBytes(key) for key in prestate.get(token, {}).get("storage", {}).keys()
        }

        for slot in range(BALANCE_SLOT_SEARCH_DEPTH):
            if balance_slot_key(holder, slot) in touched_storage:
                logger.debug(f"{token}: balance mapping found at slot {slot}")
                self.balance_slots[token] = slot
                return slot

        return None

    def set_token_balance(
        self,
        token: Union[ChecksumAddress, str],
        holder: Union[ChecksumAddress, str],
        amount: int,
    ) -> None:
        token = to_checksum_address(token)
        holder = to_checksum_address(holder)

        slot = self.find_balance_slot(token, holder)
        if slot is None:
            raise HpsimError(f"Could not find the balance slot for token {token}")

        self._rpc(
            "anvil_setStorageAt",
            [
                token,
                Web3.to_hex(balance_slot_key(holder, slot)),
                Web3.to_hex(amount.to_bytes(32, "big")),
            ],
        )

    @contextlib.contextmanager
    def transaction(self, commit: bool = True) -> Iterator["AnvilForkState"]:
        with self._state_lock:
            snapshot_id = self._rpc("evm_snapshot", [])
            try:
                yield self
            except BaseException:
                logger.debug(f"Fork transaction failed, reverting to snapshot {snapshot_id}")
                self._revert(snapshot_id)
                raise
            else:
                if not commit:
                    self._revert(snapshot_id)

    def _revert(self, snapshot_id: str) -> None:
        self._rpc("evm_revert", [snapshot_id])
        # account balances funded for gas were rolled back too
        self._impersonated.clear()
