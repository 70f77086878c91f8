from typing import Optional

from eth_typing import ChecksumAddress


class HpsimError(Exception):
    """
    Base exception, intended as a generic exception and a base class for
    all more-specific exceptions raised by the various modules
    """

    pass


class EVMRevertError(HpsimError):
    """
    Raised when a simulated or forked contract call reverts
    """

    def __init__(self, error: str) -> None:
        self.error = error
        super().__init__(f"EVM Revert: {error}")


# 1st level exceptions (derived from `HpsimError`)
class LiquidityPoolError(HpsimError):
    pass


class SimulationError(HpsimError):
    pass


# 2nd level exceptions for Liquidity Pool classes
class InvalidInput(LiquidityPoolError):
    """
    Raised when a swap quote is requested for a zero or out-of-range amount
    """

    pass


class InsufficientLiquidity(LiquidityPoolError):
    """
    Raised when one of the reserves used for a swap quote is empty
    """

    pass


# 2nd level exceptions for the swap simulator
class TransferRejected(SimulationError):
    """
    The input token refused to move into the pool, either by reverting or by
    returning a false success flag
    """

    def __init__(self, token: ChecksumAddress, reason: Optional[str] = None) -> None:
        self.token = token
        self.reason = reason
        super().__init__(f"Transfer of {token} rejected: {reason}")


class SwapRejected(SimulationError):
    """
    The pool reverted the swap call
    """

    def __init__(self, pool: ChecksumAddress, reason: Optional[str] = None) -> None:
        self.pool = pool
        self.reason = reason
        super().__init__(f"Swap at pool {pool} rejected: {reason}")
