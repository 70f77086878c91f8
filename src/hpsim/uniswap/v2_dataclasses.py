import dataclasses
from typing import Tuple

from eth_typing import ChecksumAddress


@dataclasses.dataclass(slots=True, frozen=True)
class UniswapV2PoolState:
    pool: ChecksumAddress
    reserves_token0: int
    reserves_token1: int
    block_timestamp_last: int = 0


@dataclasses.dataclass(slots=True, frozen=True)
class UniswapV2PoolAttributes:
    address: ChecksumAddress
    token0: ChecksumAddress
    token1: ChecksumAddress


@dataclasses.dataclass(slots=True, frozen=True)
class UniswapV2PoolSwapAmounts:
    amounts: Tuple[int, int]
