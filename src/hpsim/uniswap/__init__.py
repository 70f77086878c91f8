from .v2_dataclasses import (
    UniswapV2PoolAttributes,
    UniswapV2PoolState,
    UniswapV2PoolSwapAmounts,
)
from .v2_functions import get_amount_out, get_reserves_in_out, sort_tokens
from .v2_liquidity_pool import LiquidityPool
