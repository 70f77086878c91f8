from fractions import Fraction
from typing import Tuple, Union

from eth_typing import ChecksumAddress
from eth_utils.address import to_checksum_address

from ..constants import MAX_UINT256, UNISWAP_V2_FEE
from ..exceptions import InsufficientLiquidity, InvalidInput


def get_amount_out(
    amount_in: int,
    reserve_in: int,
    reserve_out: int,
    fee: Fraction = UNISWAP_V2_FEE,
) -> int:
    """
    Calculate the output of a constant-product swap, reproducing
    `UniswapV2Library.getAmountOut` exactly.

    Arguments
    ---------
    amount_in : int
        Quantity of the input token received by the pool.
    reserve_in : int
        Pool reserve of the input token.
    reserve_out : int
        Pool reserve of the output token.
    fee : Fraction, optional
        Fee charged on the input, 3/1000 (0.3%) by default.

    Returns
    -------
    The output quantity, rounded down.
    """

    if amount_in <= 0:
        raise InvalidInput(f"amount_in must be positive, got {amount_in}")
    if amount_in > MAX_UINT256:
        raise InvalidInput(f"amount_in {amount_in} exceeds the uint256 range")
    if reserve_in <= 0 or reserve_out <= 0:
        raise InsufficientLiquidity(
            f"Both reserves must be positive, got reserve_in={reserve_in}, reserve_out={reserve_out}"
        )

    amount_in_with_fee = amount_in * (fee.denominator - fee.numerator)
    numerator = amount_in_with_fee * reserve_out
    denominator = reserve_in * fee.denominator + amount_in_with_fee
    return numerator // denominator


def sort_tokens(
    token_a: Union[ChecksumAddress, str],
    token_b: Union[ChecksumAddress, str],
) -> Tuple[ChecksumAddress, ChecksumAddress]:
    """
    Order two token addresses the way a V2 factory orders the pair, by the
    numeric value of the address.
    """

    token_a = to_checksum_address(token_a)
    token_b = to_checksum_address(token_b)

    if token_a == token_b:
        raise ValueError(f"Identical token addresses: {token_a}")

    if int(token_a, 16) < int(token_b, 16):
        return token_a, token_b
    else:
        return token_b, token_a


def get_reserves_in_out(
    reserves_token0: int,
    reserves_token1: int,
    token_in: Union[ChecksumAddress, str],
    token_out: Union[ChecksumAddress, str],
) -> Tuple[int, int]:
    """
    Map the raw (token0, token1) reserve slots to (reserve_in, reserve_out)
    """

    token0, _ = sort_tokens(token_in, token_out)
    if to_checksum_address(token_in) == token0:
        return reserves_token0, reserves_token1
    else:
        return reserves_token1, reserves_token0
