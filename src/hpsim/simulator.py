import dataclasses
from fractions import Fraction
from typing import Tuple, Union

from eth_typing import ChecksumAddress
from eth_utils.address import to_checksum_address

from .baseclasses import AbstractChainState, PoolHelper, TokenHelper
from .constants import MAX_UINT256, SIMULATOR_ADDRESS
from .exceptions import EVMRevertError, InvalidInput, SwapRejected, TransferRejected
from .logging import logger
from .uniswap.v2_dataclasses import UniswapV2PoolSwapAmounts
from .uniswap.v2_functions import get_amount_out, get_reserves_in_out, sort_tokens

PoolReference = Union[PoolHelper, ChecksumAddress, str]
TokenReference = Union[TokenHelper, ChecksumAddress, str]


def _to_address(reference: Union[PoolReference, TokenReference]) -> ChecksumAddress:
    if isinstance(reference, (PoolHelper, TokenHelper)):
        return reference.address
    return to_checksum_address(reference)


@dataclasses.dataclass(slots=True, frozen=True)
class SwapSimulationResult:
    pool: ChecksumAddress
    token_in: ChecksumAddress
    token_out: ChecksumAddress
    amount_in: int
    amount_received: int
    reserve_in: int
    reserve_out: int
    predicted_amount_out: int
    actual_amount_out: int

    @property
    def input_tax(self) -> Fraction:
        """
        Fraction of the input withheld before it reached the pool
        """
        return Fraction(self.amount_in - self.amount_received, self.amount_in)

    @property
    def output_tax(self) -> Fraction:
        """
        Fraction of the predicted output that never reached the recipient
        """
        return Fraction(
            self.predicted_amount_out - self.actual_amount_out,
            self.predicted_amount_out,
        )

    @property
    def is_taxed(self) -> bool:
        return self.actual_amount_out != self.predicted_amount_out


class SwapSimulator:
    """
    Executes a real transfer-then-swap against a Uniswap V2 pool and reports
    the amount the constant-product curve promised next to the amount that
    actually arrived.

    The simulator keeps no state between calls. Balances are held by
    `address` on the chain state, which must be funded before a simulation.
    """

    def __init__(
        self,
        state: AbstractChainState,
        address: Union[ChecksumAddress, str] = SIMULATOR_ADDRESS,
    ) -> None:
        self.state = state
        self.address: ChecksumAddress = to_checksum_address(address)

    @staticmethod
    def quote_output(amount_in: int, reserve_in: int, reserve_out: int) -> int:
        return get_amount_out(
            amount_in=amount_in,
            reserve_in=reserve_in,
            reserve_out=reserve_out,
        )

    def resolve_reserves(
        self,
        pool: PoolReference,
        token_in: TokenReference,
        token_out: TokenReference,
    ) -> Tuple[int, int]:
        reserves_token0, reserves_token1, _ = self.state.get_reserves(_to_address(pool))
        return get_reserves_in_out(
            reserves_token0=reserves_token0,
            reserves_token1=reserves_token1,
            token_in=_to_address(token_in),
            token_out=_to_address(token_out),
        )

    def simulate_swap(
        self,
        amount_in: int,
        pool: PoolReference,
        token_in: TokenReference,
        token_out: TokenReference,
        commit: bool = True,
    ) -> SwapSimulationResult:
        """
        Transfer `amount_in` of `token_in` to `pool`, then request the
        constant-product output of `token_out` for the amount the pool
        actually received.

        Arguments
        ---------
        amount_in : int
            Quantity of `token_in` sent from the simulator's balance.
        pool : LiquidityPool or str
            The V2 pool (or its address).
        token_in, token_out : Erc20Token or str
            The pool's two tokens, in swap direction.
        commit : bool
            Keep the resulting state. If False the chain state is restored
            after the result is measured.

        Returns
        -------
        A `SwapSimulationResult`.

        Raises
        ------
        TransferRejected
            The input token transfer reverted or returned False.
        SwapRejected
            The pool reverted the swap.
        InvalidInput
            `amount_in` is not a positive uint256, or nothing reached the pool.
        InsufficientLiquidity
            No quote could be made because a reserve is empty.

        A received amount too small to quote a single unit out asks the pool
        for (0, 0), which the pair rejects with INSUFFICIENT_OUTPUT_AMOUNT and
        is reported as `SwapRejected`.
        """

        if amount_in <= 0 or amount_in > MAX_UINT256:
            raise InvalidInput(f"amount_in must be a positive uint256, got {amount_in}")

        pool_address = _to_address(pool)
        token_in_address = _to_address(token_in)
        token_out_address = _to_address(token_out)
        token0, _ = sort_tokens(token_in_address, token_out_address)

        with self.state.transaction(commit=commit):
            # input transfer, judged by the token's own success flag
            try:
                success = self.state.transfer(
                    token=token_in_address,
                    sender=self.address,
                    recipient=pool_address,
                    amount=amount_in,
                )
            except EVMRevertError as exc:
                raise TransferRejected(token_in_address, exc.error) from exc
            if not success:
                raise TransferRejected(token_in_address, "transfer returned False")

            # the reserves have not been synced yet, so the pool's
            # surplus balance is what it actually received
            reserve_in, reserve_out = self.resolve_reserves(
                pool_address, token_in_address, token_out_address
            )
            amount_received = self.state.balance_of(token_in_address, pool_address) - reserve_in
            logger.debug(
                f"Pool {pool_address} received {amount_received} of {amount_in} sent ({token_in_address})"
            )

            # quote against the received amount, not the amount sent
            predicted_amount_out = self.quote_output(amount_received, reserve_in, reserve_out)

            balance_before = self.state.balance_of(token_out_address, self.address)

            swap_amounts = UniswapV2PoolSwapAmounts(
                amounts=(0, predicted_amount_out)
                if token_in_address == token0
                else (predicted_amount_out, 0)
            )
            try:
                self.state.swap(
                    pool=pool_address,
                    amount0_out=swap_amounts.amounts[0],
                    amount1_out=swap_amounts.amounts[1],
                    recipient=self.address,
                    data=b"",
                    sender=self.address,
                )
            except EVMRevertError as exc:
                raise SwapRejected(pool_address, exc.error) from exc

            # output measured by balance delta
            actual_amount_out = (
                self.state.balance_of(token_out_address, self.address) - balance_before
            )

        result = SwapSimulationResult(
            pool=pool_address,
            token_in=token_in_address,
            token_out=token_out_address,
            amount_in=amount_in,
            amount_received=amount_received,
            reserve_in=reserve_in,
            reserve_out=reserve_out,
            predicted_amount_out=predicted_amount_out,
            actual_amount_out=actual_amount_out,
        )
        logger.debug(f"Simulated swap: {result}")
        return result

    def transfer_and_swap(
        self,
        amount_in: int,
        pool: PoolReference,
        token_in: TokenReference,
        token_out: TokenReference,
        commit: bool = True,
    ) -> Tuple[int, int]:
        """
        Run `simulate_swap` and return (predicted_amount_out, actual_amount_out)
        """

        result = self.simulate_swap(
            amount_in=amount_in,
            pool=pool,
            token_in=token_in,
            token_out=token_out,
            commit=commit,
        )
        return result.predicted_amount_out, result.actual_amount_out
