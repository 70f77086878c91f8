from fractions import Fraction

from eth_utils.address import to_checksum_address

ZERO_ADDRESS = to_checksum_address("0x0000000000000000000000000000000000000000")

MAX_UINT32 = 2**32 - 1
MAX_UINT112 = 2**112 - 1
MAX_UINT256 = 2**256 - 1

# Uniswap V2 charges 0.3% on the input amount
UNISWAP_V2_FEE = Fraction(3, 1000)

# Address used by the simulator as the caller of its transfer
# and swap. Any address without code will do on a fork.
SIMULATOR_ADDRESS = to_checksum_address("0x4E17607Fb72C01C280d7b5c41Ba9A2109D74a32C")
