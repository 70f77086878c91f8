import dataclasses
import enum
from typing import Dict, Iterable, List, Optional, Set

from eth_typing import ChecksumAddress
from eth_utils.address import to_checksum_address

from .erc20_token import TokenInfo
from .exceptions import HpsimError, LiquidityPoolError, SimulationError
from .logging import logger
from .simulator import SwapSimulationResult, SwapSimulator
from .uniswap.v2_dataclasses import UniswapV2PoolAttributes


@dataclasses.dataclass(slots=True, frozen=True)
class SafeToken:
    address: ChecksumAddress
    symbol: str
    decimals: int
    # Whole-token amount used for the buy test. Large enough that a pool
    # which can absorb it has meaningful liquidity.
    test_amount: int

    @property
    def test_amount_raw(self) -> int:
        return self.test_amount * 10**self.decimals


DEFAULT_SAFE_TOKENS = (
    SafeToken(
        address=to_checksum_address("0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2"),
        symbol="WETH",
        decimals=18,
        test_amount=20,
    ),
    SafeToken(
        address=to_checksum_address("0xdAC17F958D2ee523a2206206994597C13D831ec7"),
        symbol="USDT",
        decimals=6,
        test_amount=10_000,
    ),
    SafeToken(
        address=to_checksum_address("0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"),
        symbol="USDC",
        decimals=6,
        test_amount=10_000,
    ),
    SafeToken(
        address=to_checksum_address("0x6B175474E89094C44Da98b954EedeAC495271d0F"),
        symbol="DAI",
        decimals=18,
        test_amount=10_000,
    ),
)


class HoneypotReason(enum.Enum):
    BUY_REJECTED = "buy rejected"
    BUY_TAXED = "buy taxed"
    SELL_REJECTED = "sell rejected"
    SELL_TAXED = "sell taxed"


@dataclasses.dataclass(slots=True, frozen=True)
class TokenVerdict:
    token: ChecksumAddress
    pool: ChecksumAddress
    safe_token: ChecksumAddress
    reason: Optional[HoneypotReason] = None
    buy: Optional[SwapSimulationResult] = None
    sell: Optional[SwapSimulationResult] = None
    error: Optional[str] = None

    @property
    def is_honeypot(self) -> bool:
        return self.reason is not None


class HoneypotFilter:
    """
    Classify tokens by buying them with a known safe token and selling the
    proceeds back through the same pool. A token passes only if both swaps
    succeed and deliver exactly the constant-product output.

    Every check runs in an uncommitted transaction, so the chain state is
    unchanged afterwards.

    `setup` runs before the first check. It drops safe tokens that cannot be
    used on this chain state, i.e. whose balance cannot be seeded or whose
    metadata cannot be read.
    """

    def __init__(
        self,
        simulator: SwapSimulator,
        safe_tokens: Iterable[SafeToken] = DEFAULT_SAFE_TOKENS,
    ) -> None:
        self.simulator = simulator
        self.safe_tokens: Dict[ChecksumAddress, SafeToken] = {
            token.address: token for token in safe_tokens
        }
        self.honeypot: Dict[ChecksumAddress, HoneypotReason] = {}
        self.safe_tokens_found: Set[ChecksumAddress] = set()
        self.token_info: Dict[ChecksumAddress, TokenInfo] = {}
        self.safe_token_info: Dict[ChecksumAddress, TokenInfo] = {}
        self._usable_safe_tokens: Optional[Dict[ChecksumAddress, SafeToken]] = None

    def setup(self) -> Dict[ChecksumAddress, SafeToken]:
        """
        Check every configured safe token against the chain state and return
        the usable ones, keyed by address. A token is usable if its balance
        can be seeded and its metadata read; the on-chain decimals replace
        the configured ones.
        """

        state = self.simulator.state
        usable: Dict[ChecksumAddress, SafeToken] = {}

        for safe_token in self.safe_tokens.values():
            try:
                with state.transaction(commit=False):
                    state.set_token_balance(
                        safe_token.address,
                        self.simulator.address,
                        safe_token.test_amount_raw,
                    )
                info = state.get_token_info(safe_token.address)
            # ValueError: a token the ledger does not know
            except (HpsimError, ValueError) as e:
                logger.warning(f"Safe token {safe_token.symbol} ({safe_token.address}) skipped: {e}")
                continue

            if info.decimals != safe_token.decimals:
                logger.warning(
                    f"{safe_token.symbol}: {info.decimals} decimals on chain, {safe_token.decimals} configured"
                )
                safe_token = dataclasses.replace(safe_token, decimals=info.decimals)

            logger.info(f"{info.name} ({safe_token.address})")
            self.safe_token_info[safe_token.address] = info
            usable[safe_token.address] = safe_token

        self._usable_safe_tokens = usable
        return usable

    def _record(self, verdict: TokenVerdict) -> TokenVerdict:
        if verdict.reason is not None:
            self.honeypot[verdict.token] = verdict.reason
            return verdict

        self.safe_tokens_found.add(verdict.token)
        try:
            self.token_info[verdict.token] = self.simulator.state.get_token_info(verdict.token)
        except HpsimError as e:
            logger.warning(f"Could not read token info for {verdict.token}: {e}")
        return verdict

    def check_pool(self, pool: UniswapV2PoolAttributes) -> Optional[TokenVerdict]:
        """
        Test the non-safe token of `pool`.

        Returns None if the pool has no safe token, two safe tokens, a safe
        token that `setup` found unusable, or if its other token was already
        classified.

        Errors reading or seeding chain state outside the buy and sell swaps
        propagate as `HpsimError`.
        """

        usable_safe_tokens = (
            self._usable_safe_tokens if self._usable_safe_tokens is not None else self.setup()
        )

        token0_is_safe = pool.token0 in self.safe_tokens
        token1_is_safe = pool.token1 in self.safe_tokens

        if token0_is_safe == token1_is_safe:
            return None

        if token0_is_safe:
            safe_address, test_token = pool.token0, pool.token1
        else:
            safe_address, test_token = pool.token1, pool.token0

        if safe_address not in usable_safe_tokens:
            logger.debug(f"Pool {pool.address} skipped: safe token {safe_address} is unusable")
            return None
        safe_token = usable_safe_tokens[safe_address]

        if test_token in self.honeypot or test_token in self.safe_tokens_found:
            return None

        amount_in = safe_token.test_amount_raw
        state = self.simulator.state

        with state.transaction(commit=False):
            state.set_token_balance(safe_token.address, self.simulator.address, amount_in)

            # Buy test
            try:
                buy = self.simulator.simulate_swap(
                    amount_in=amount_in,
                    pool=pool.address,
                    token_in=safe_token.address,
                    token_out=test_token,
                )
            except (SimulationError, LiquidityPoolError) as e:
                logger.info(f"<BUY ERROR> {test_token}: {e}")
                return self._record(
                    TokenVerdict(
                        token=test_token,
                        pool=pool.address,
                        safe_token=safe_token.address,
                        reason=HoneypotReason.BUY_REJECTED,
                        error=str(e),
                    )
                )

            if buy.is_taxed:
                return self._record(
                    TokenVerdict(
                        token=test_token,
                        pool=pool.address,
                        safe_token=safe_token.address,
                        reason=HoneypotReason.BUY_TAXED,
                        buy=buy,
                    )
                )

            # Sell test
            try:
                sell = self.simulator.simulate_swap(
                    amount_in=buy.actual_amount_out,
                    pool=pool.address,
                    token_in=test_token,
                    token_out=safe_token.address,
                )
            except (SimulationError, LiquidityPoolError) as e:
                logger.info(f"<SELL ERROR> {test_token}: {e}")
                return self._record(
                    TokenVerdict(
                        token=test_token,
                        pool=pool.address,
                        safe_token=safe_token.address,
                        reason=HoneypotReason.SELL_REJECTED,
                        buy=buy,
                        error=str(e),
                    )
                )

            return self._record(
                TokenVerdict(
                    token=test_token,
                    pool=pool.address,
                    safe_token=safe_token.address,
                    reason=HoneypotReason.SELL_TAXED
                    if sell.is_taxed or sell.amount_received != sell.amount_in
                    else None,
                    buy=buy,
                    sell=sell,
                )
            )

    def filter_tokens(self, pools: Iterable[UniswapV2PoolAttributes]) -> List[TokenVerdict]:
        verdicts = []
        for idx, pool in enumerate(pools):
            try:
                verdict = self.check_pool(pool)
            except HpsimError as e:
                logger.warning(f"⚠️ [{idx}] pool {pool.address} skipped: {e}")
                continue
            if verdict is None:
                continue
            if verdict.is_honeypot:
                logger.info(f"❌ [{idx}] {verdict.token}: {verdict.reason.value}")
            else:
                logger.info(f"✅ [{idx}] {verdict.token}")
            verdicts.append(verdict)

        logger.info(
            f"Checked {len(verdicts)} tokens: {len(self.safe_tokens_found)} safe, {len(self.honeypot)} honeypots"
        )
        return verdicts
