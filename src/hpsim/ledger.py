import contextlib
import dataclasses
from threading import RLock
from typing import TYPE_CHECKING, Dict, Iterator, Tuple, Union

from eth_typing import ChecksumAddress
from eth_utils.address import to_checksum_address

from .baseclasses import AbstractChainState
from .exceptions import LiquidityPoolError
from .logging import logger

if TYPE_CHECKING:
    from .erc20_token import Erc20Token, TokenInfo
    from .uniswap.v2_liquidity_pool import LiquidityPool


@dataclasses.dataclass(slots=True)
class LedgerState:
    balances: Dict[ChecksumAddress, Dict[ChecksumAddress, int]] = dataclasses.field(
        default_factory=dict
    )
    reserves: Dict[ChecksumAddress, Tuple[int, int, int]] = dataclasses.field(
        default_factory=dict
    )

    def copy(self) -> "LedgerState":
        return LedgerState(
            balances={token: holders.copy() for token, holders in self.balances.items()},
            reserves=self.reserves.copy(),
        )


class Ledger(AbstractChainState):
    """
    An in-memory chain state holding ERC-20 balances and Uniswap V2 reserves.

    Token and pool objects register themselves on creation and keep all of
    their mutable values here, so a single checkpoint captures everything a
    simulation can touch.
    """

    def __init__(self, block_number: int = 0, block_timestamp: int = 0) -> None:
        self._state_lock = RLock()
        self._state = LedgerState()
        self.block_number = block_number
        self.block_timestamp = block_timestamp
        self.tokens: Dict[ChecksumAddress, "Erc20Token"] = {}
        self.pools: Dict[ChecksumAddress, "LiquidityPool"] = {}

    def __repr__(self):  # pragma: no cover
        return f"Ledger(block={self.block_number}, tokens={len(self.tokens)}, pools={len(self.pools)})"

    @property
    def state(self) -> LedgerState:
        return self._state

    def register_token(self, token: "Erc20Token") -> None:
        with self._state_lock:
            if token.address in self.tokens:
                raise ValueError(f"Token {token.address} is already registered")
            self.tokens[token.address] = token
            self._state.balances.setdefault(token.address, {})

    def register_pool(self, pool: "LiquidityPool") -> None:
        with self._state_lock:
            if pool.address in self.pools:
                raise LiquidityPoolError(f"Pool {pool.address} is already registered")
            self.pools[pool.address] = pool
            self._state.reserves.setdefault(pool.address, (0, 0, 0))

    def get_token(self, address: Union[ChecksumAddress, str]) -> "Erc20Token":
        try:
            return self.tokens[to_checksum_address(address)]
        except KeyError:
            raise ValueError(f"Unknown token {address}") from None

    def get_pool(self, address: Union[ChecksumAddress, str]) -> "LiquidityPool":
        try:
            return self.pools[to_checksum_address(address)]
        except KeyError:
            raise LiquidityPoolError(f"Unknown pool {address}") from None

    def is_pool(self, address: ChecksumAddress) -> bool:
        return address in self.pools

    def advance_block(self, seconds: int = 12) -> None:
        with self._state_lock:
            self.block_number += 1
            self.block_timestamp += seconds

    # Raw storage access used by the token and pool helpers. Reads take the
    # lock so an open transaction is never observed from another thread.
    def _read_balance(self, token: ChecksumAddress, holder: ChecksumAddress) -> int:
        with self._state_lock:
            return self._state.balances[token].get(holder, 0)

    def _write_balance(self, token: ChecksumAddress, holder: ChecksumAddress, amount: int) -> None:
        if amount < 0:
            raise ValueError(f"Negative balance for {holder} on {token}")
        self._state.balances[token][holder] = amount

    def _read_reserves(self, pool: ChecksumAddress) -> Tuple[int, int, int]:
        with self._state_lock:
            return self._state.reserves[pool]

    def _write_reserves(self, pool: ChecksumAddress, reserves: Tuple[int, int, int]) -> None:
        self._state.reserves[pool] = reserves

    # AbstractChainState
    def balance_of(self, token: ChecksumAddress, holder: ChecksumAddress) -> int:
        return self.get_token(token).balance_of(holder)

    def transfer(
        self,
        token: ChecksumAddress,
        sender: ChecksumAddress,
        recipient: ChecksumAddress,
        amount: int,
    ) -> bool:
        return self.get_token(token).transfer(sender, recipient, amount)

    def get_reserves(self, pool: ChecksumAddress) -> Tuple[int, int, int]:
        return self.get_pool(pool).get_reserves()

    def swap(
        self,
        pool: ChecksumAddress,
        amount0_out: int,
        amount1_out: int,
        recipient: ChecksumAddress,
        data: bytes,
        sender: ChecksumAddress,
    ) -> None:
        # The V2 pair does not check msg.sender, so the sender is unused here
        self.get_pool(pool).swap(amount0_out, amount1_out, recipient, data)

    def set_token_balance(
        self,
        token: Union[ChecksumAddress, str],
        holder: Union[ChecksumAddress, str],
        amount: int,
    ) -> None:
        with self._state_lock:
            self._write_balance(
                self.get_token(token).address,
                to_checksum_address(holder),
                amount,
            )

    def get_token_info(self, token: Union[ChecksumAddress, str]) -> "TokenInfo":
        return self.get_token(token).info

    @contextlib.contextmanager
    def transaction(self, commit: bool = True) -> Iterator["Ledger"]:
        with self._state_lock:
            checkpoint = self._state.copy()
            try:
                yield self
            except BaseException:
                logger.debug("Ledger transaction failed, restoring checkpoint")
                self._state = checkpoint
                raise
            else:
                if not commit:
                    logger.debug("Ledger transaction not committed, restoring checkpoint")
                    self._state = checkpoint
