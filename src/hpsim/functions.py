from typing import Any, List, Sequence, Tuple, Union

import eth_abi
from eth_typing import ChecksumAddress
from eth_utils.address import to_checksum_address
from hexbytes import HexBytes
from web3 import Web3


def encode_function_calldata(
    function_prototype: str,
    function_arguments: Sequence[Any] = (),
) -> HexBytes:
    """
    Build calldata from a canonical prototype such as
    "transfer(address,uint256)" and its arguments
    """

    selector = Web3.keccak(text=function_prototype)[:4]
    argument_types = function_prototype[function_prototype.index("(") + 1 : -1]
    if not argument_types:
        return HexBytes(selector)
    return HexBytes(
        selector
        + eth_abi.encode(
            types=argument_types.split(","),
            args=list(function_arguments),
        )
    )


def balance_slot_key(holder: Union[ChecksumAddress, str], slot: int) -> HexBytes:
    """
    Storage key for `holder` in a Solidity `mapping(address => uint256)`
    declared at storage slot `slot`
    """

    return HexBytes(
        Web3.keccak(
            eth_abi.encode(
                types=["address", "uint256"],
                args=[to_checksum_address(holder), slot],
            )
        )
    )


def generate_payloads(
    from_address: Union[ChecksumAddress, str],
    pool_address: Union[ChecksumAddress, str],
    token_in_address: Union[ChecksumAddress, str],
    amount_in: int,
    amounts_out: Tuple[int, int],
) -> List[Tuple[ChecksumAddress, bytes, int]]:
    """
    Build the (address, calldata, value) payloads for a single V2 hop: the
    input token is transferred to the pool, then the pool pays
    `amounts_out` to `from_address`.
    """

    from_address = to_checksum_address(from_address)
    msg_value: int = 0

    return [
        (
            # address
            to_checksum_address(token_in_address),
            # bytes calldata
            bytes(
                encode_function_calldata(
                    "transfer(address,uint256)",
                    (to_checksum_address(pool_address), amount_in),
                )
            ),
            msg_value,
        ),
        (
            # address
            to_checksum_address(pool_address),
            # bytes calldata
            bytes(
                encode_function_calldata(
                    "swap(uint256,uint256,address,bytes)",
                    (*amounts_out, from_address, b""),
                )
            ),
            msg_value,
        ),
    ]
