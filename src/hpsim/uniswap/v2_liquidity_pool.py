from fractions import Fraction
from typing import TYPE_CHECKING, Optional, Tuple, Union

from eth_typing import ChecksumAddress
from eth_utils.address import to_checksum_address

from ..baseclasses import PoolHelper
from ..constants import MAX_UINT32, MAX_UINT112, UNISWAP_V2_FEE
from ..erc20_token import Erc20Token
from ..exceptions import EVMRevertError, LiquidityPoolError
from ..logging import logger
from .v2_dataclasses import UniswapV2PoolAttributes, UniswapV2PoolState
from .v2_functions import get_amount_out, sort_tokens

if TYPE_CHECKING:
    from ..ledger import Ledger


class LiquidityPool(PoolHelper):
    """
    A Uniswap V2 pair whose reserves and token balances live in a `Ledger`.

    `swap` follows the pair contract: the output is paid first, then the
    input is inferred from the pool's token balances and the fee-adjusted
    constant-product invariant is checked against the stored reserves.
    """

    def __init__(
        self,
        ledger: "Ledger",
        address: Union[ChecksumAddress, str],
        token_a: Union[Erc20Token, ChecksumAddress, str],
        token_b: Union[Erc20Token, ChecksumAddress, str],
        fee: Fraction = UNISWAP_V2_FEE,
        name: Optional[str] = None,
        silent: bool = False,
    ) -> None:
        self.ledger = ledger
        self.address: ChecksumAddress = to_checksum_address(address)

        token0_address, token1_address = sort_tokens(
            token_a.address if isinstance(token_a, Erc20Token) else token_a,
            token_b.address if isinstance(token_b, Erc20Token) else token_b,
        )
        self.token0: Erc20Token = ledger.get_token(token0_address)
        self.token1: Erc20Token = ledger.get_token(token1_address)

        if not 0 <= fee < 1:
            raise ValueError(f"Invalid fee {fee}")
        self.fee = fee

        self.name = (
            name
            if name is not None
            else f"{self.token0}-{self.token1} (V2, {100 * self.fee.numerator / self.fee.denominator:.2f}%)"
        )
        self._unlocked = True

        ledger.register_pool(self)

        if not silent:
            logger.info(self.name)
            logger.info(f"• Address: {self.address}")
            logger.info(f"• Token 0: {self.token0} - Reserves: {self.reserves_token0}")
            logger.info(f"• Token 1: {self.token1} - Reserves: {self.reserves_token1}")

    def __repr__(self):  # pragma: no cover
        return f"LiquidityPool(address={self.address}, token0={self.token0}, token1={self.token1})"

    @property
    def attributes(self) -> UniswapV2PoolAttributes:
        return UniswapV2PoolAttributes(
            address=self.address,
            token0=self.token0.address,
            token1=self.token1.address,
        )

    @property
    def reserves_token0(self) -> int:
        return self.ledger._read_reserves(self.address)[0]

    @property
    def reserves_token1(self) -> int:
        return self.ledger._read_reserves(self.address)[1]

    @property
    def state(self) -> UniswapV2PoolState:
        reserves_token0, reserves_token1, block_timestamp_last = self.ledger._read_reserves(
            self.address
        )
        return UniswapV2PoolState(
            pool=self.address,
            reserves_token0=reserves_token0,
            reserves_token1=reserves_token1,
            block_timestamp_last=block_timestamp_last,
        )

    def get_reserves(self) -> Tuple[int, int, int]:
        return self.ledger._read_reserves(self.address)

    def _update(self, balance0: int, balance1: int) -> None:
        if balance0 > MAX_UINT112 or balance1 > MAX_UINT112:
            raise EVMRevertError("UniswapV2: OVERFLOW")
        self.ledger._write_reserves(
            self.address,
            (balance0, balance1, self.ledger.block_timestamp % (MAX_UINT32 + 1)),
        )
        logger.debug(f"{self.name}: reserves updated to ({balance0}, {balance1})")

    def _safe_transfer(self, token: Erc20Token, to: ChecksumAddress, amount: int) -> None:
        try:
            success = token.transfer(self.address, to, amount)
        except EVMRevertError as exc:
            raise EVMRevertError("UniswapV2: TRANSFER_FAILED") from exc
        if not success:
            raise EVMRevertError("UniswapV2: TRANSFER_FAILED")

    def swap(
        self,
        amount0_out: int,
        amount1_out: int,
        to: Union[ChecksumAddress, str],
        data: bytes = b"",
    ) -> None:
        to = to_checksum_address(to)

        # a revert discards every effect of the call, as in the EVM
        with self.ledger.transaction():
            if not self._unlocked:
                raise EVMRevertError("UniswapV2: LOCKED")
            self._unlocked = False
            try:
                if amount0_out <= 0 and amount1_out <= 0:
                    raise EVMRevertError("UniswapV2: INSUFFICIENT_OUTPUT_AMOUNT")
                if amount0_out < 0 or amount1_out < 0:
                    raise EVMRevertError("UniswapV2: INSUFFICIENT_OUTPUT_AMOUNT")

                reserves_token0, reserves_token1, _ = self.get_reserves()
                if amount0_out >= reserves_token0 or amount1_out >= reserves_token1:
                    raise EVMRevertError("UniswapV2: INSUFFICIENT_LIQUIDITY")

                if to in (self.token0.address, self.token1.address):
                    raise EVMRevertError("UniswapV2: INVALID_TO")

                if amount0_out > 0:
                    self._safe_transfer(self.token0, to, amount0_out)
                if amount1_out > 0:
                    self._safe_transfer(self.token1, to, amount1_out)
                if data:
                    # Flash swap callbacks are not executed
                    logger.debug(f"{self.name}: ignoring callback data {data!r}")

                balance0 = self.token0.balance_of(self.address)
                balance1 = self.token1.balance_of(self.address)

                amount0_in = (
                    balance0 - (reserves_token0 - amount0_out)
                    if balance0 > reserves_token0 - amount0_out
                    else 0
                )
                amount1_in = (
                    balance1 - (reserves_token1 - amount1_out)
                    if balance1 > reserves_token1 - amount1_out
                    else 0
                )
                if amount0_in <= 0 and amount1_in <= 0:
                    raise EVMRevertError("UniswapV2: INSUFFICIENT_INPUT_AMOUNT")

                fee_denominator = self.fee.denominator
                balance0_adjusted = balance0 * fee_denominator - amount0_in * self.fee.numerator
                balance1_adjusted = balance1 * fee_denominator - amount1_in * self.fee.numerator
                if (
                    balance0_adjusted * balance1_adjusted
                    < reserves_token0 * reserves_token1 * fee_denominator**2
                ):
                    raise EVMRevertError("UniswapV2: K")

                self._update(balance0, balance1)
            finally:
                self._unlocked = True

    def sync(self) -> None:
        """
        Force the reserves to match the pool's token balances
        """

        with self.ledger._state_lock:
            self._update(
                self.token0.balance_of(self.address),
                self.token1.balance_of(self.address),
            )

    def skim(self, to: Union[ChecksumAddress, str]) -> None:
        """
        Send any token balance above the reserves to `to`
        """

        to = to_checksum_address(to)
        with self.ledger.transaction():
            reserves_token0, reserves_token1, _ = self.get_reserves()
            excess0 = self.token0.balance_of(self.address) - reserves_token0
            excess1 = self.token1.balance_of(self.address) - reserves_token1
            if excess0 > 0:
                self._safe_transfer(self.token0, to, excess0)
            if excess1 > 0:
                self._safe_transfer(self.token1, to, excess1)

    def calculate_tokens_out_from_tokens_in(
        self,
        token_in: Union[Erc20Token, ChecksumAddress, str],
        token_in_quantity: int,
        override_state: Optional[UniswapV2PoolState] = None,
    ) -> int:
        """
        Calculates the expected token OUTPUT for a target INPUT at current pool reserves.
        Uses the self.token0 and self.token1 pointers to determine which token is being swapped in
        """

        if override_state is not None:
            if override_state.pool != self.address:
                raise LiquidityPoolError(
                    f"Override state for pool {override_state.pool} applied to {self.address}"
                )
            logger.debug("Reserve overrides applied:")
            logger.debug(f"token0: {override_state.reserves_token0}")
            logger.debug(f"token1: {override_state.reserves_token1}")
            reserves_token0 = override_state.reserves_token0
            reserves_token1 = override_state.reserves_token1
        else:
            reserves_token0, reserves_token1, _ = self.get_reserves()

        if token_in == self.token0:
            reserve_in, reserve_out = reserves_token0, reserves_token1
        elif token_in == self.token1:
            reserve_in, reserve_out = reserves_token1, reserves_token0
        else:
            raise LiquidityPoolError(f"Could not identify token_in {token_in} in pool {self}")

        return get_amount_out(
            amount_in=token_in_quantity,
            reserve_in=reserve_in,
            reserve_out=reserve_out,
            fee=self.fee,
        )
