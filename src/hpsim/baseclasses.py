from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, ContextManager, Tuple

from eth_typing import ChecksumAddress

if TYPE_CHECKING:
    from .erc20_token import TokenInfo


class AbstractChainState(ABC):
    """
    A read/write view of token balances and pool reserves, plus the ability to
    invoke a pool swap. The swap simulator only talks to chain state through
    this interface, so it runs unchanged against the in-memory ledger or a
    forked chain.
    """

    @abstractmethod
    def balance_of(self, token: ChecksumAddress, holder: ChecksumAddress) -> int:
        ...

    @abstractmethod
    def transfer(
        self,
        token: ChecksumAddress,
        sender: ChecksumAddress,
        recipient: ChecksumAddress,
        amount: int,
    ) -> bool:
        """
        Move `amount` of `token` from `sender` to `recipient`. Returns the
        token's success flag, and raises `EVMRevertError` if the token reverts.
        """
        ...

    @abstractmethod
    def get_reserves(self, pool: ChecksumAddress) -> Tuple[int, int, int]:
        ...

    @abstractmethod
    def swap(
        self,
        pool: ChecksumAddress,
        amount0_out: int,
        amount1_out: int,
        recipient: ChecksumAddress,
        data: bytes,
        sender: ChecksumAddress,
    ) -> None:
        ...

    @abstractmethod
    def set_token_balance(
        self,
        token: ChecksumAddress,
        holder: ChecksumAddress,
        amount: int,
    ) -> None:
        ...

    @abstractmethod
    def get_token_info(self, token: ChecksumAddress) -> "TokenInfo":
        """
        Name, symbol, decimals and proxy implementation of `token`
        """
        ...

    @abstractmethod
    def transaction(self, commit: bool = True) -> ContextManager:
        """
        Run a block of operations as one atomic state transition. All effects
        are discarded if the block raises, or if `commit` is False.
        """
        ...


class PoolHelper(ABC):
    address: ChecksumAddress
    name: str

    def __eq__(self, other) -> bool:
        if issubclass(type(other), PoolHelper):
            return self.address == other.address
        elif isinstance(other, str):
            return self.address.lower() == other.lower()
        else:
            raise NotImplementedError

    def __hash__(self):
        return hash(self.address)

    def __str__(self):
        return self.name

    # All abstract methods below must be implemented by derived classes
    @abstractmethod
    def calculate_tokens_out_from_tokens_in(
        self, token_in, token_in_quantity, override_state
    ):
        ...

    @abstractmethod
    def get_reserves(self):
        ...

    @abstractmethod
    def swap(self, amount0_out, amount1_out, to, data):
        ...


class TokenHelper(ABC):
    address: ChecksumAddress
    symbol: str

    def __eq__(self, other) -> bool:
        if issubclass(type(other), TokenHelper):
            return self.address == other.address
        elif isinstance(other, str):
            return self.address.lower() == other.lower()
        else:
            raise NotImplementedError

    def __lt__(self, other) -> bool:
        if issubclass(type(other), TokenHelper):
            return int(self.address, 16) < int(other.address, 16)
        elif isinstance(other, str):
            return int(self.address, 16) < int(other, 16)
        else:
            raise NotImplementedError

    def __hash__(self):
        return hash(self.address)

    def __str__(self):
        return self.symbol

    @abstractmethod
    def balance_of(self, holder):
        ...

    @abstractmethod
    def transfer(self, sender, recipient, amount):
        ...
