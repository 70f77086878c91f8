import dataclasses
from fractions import Fraction
from typing import TYPE_CHECKING, Iterable, Literal, Optional, Set, Union

from eth_typing import ChecksumAddress
from eth_utils.address import to_checksum_address

from .baseclasses import TokenHelper
from .constants import ZERO_ADDRESS
from .exceptions import EVMRevertError
from .logging import logger

if TYPE_CHECKING:
    from .ledger import Ledger


@dataclasses.dataclass(slots=True, frozen=True)
class TokenInfo:
    address: ChecksumAddress
    name: str
    symbol: str
    decimals: int
    # Logic contract behind a proxy, if the token is one
    implementation: Optional[ChecksumAddress] = None


class Erc20Token(TokenHelper):
    """
    A standard ERC-20 token whose balances live in a `Ledger`
    """

    def __init__(
        self,
        ledger: "Ledger",
        address: Union[ChecksumAddress, str],
        symbol: str,
        decimals: int = 18,
        name: Optional[str] = None,
        silent: bool = False,
    ) -> None:
        self.ledger = ledger
        self.address: ChecksumAddress = to_checksum_address(address)
        self.symbol = symbol
        self.name = name if name is not None else symbol
        self.decimals = decimals

        ledger.register_token(self)

        if not silent:
            logger.info(f"{self.name} ({self.symbol}) @ {self.address}")

    def __repr__(self):  # pragma: no cover
        return f"{type(self).__name__}(address={self.address}, symbol='{self.symbol}', decimals={self.decimals})"

    @property
    def info(self) -> TokenInfo:
        return TokenInfo(
            address=self.address,
            name=self.name,
            symbol=self.symbol,
            decimals=self.decimals,
        )

    @property
    def total_supply(self) -> int:
        with self.ledger._state_lock:
            return sum(self.ledger.state.balances[self.address].values())

    def balance_of(self, holder: Union[ChecksumAddress, str]) -> int:
        return self.ledger._read_balance(self.address, to_checksum_address(holder))

    def transfer(
        self,
        sender: Union[ChecksumAddress, str],
        recipient: Union[ChecksumAddress, str],
        amount: int,
    ) -> bool:
        """
        Move `amount` from `sender` to `recipient`.

        Returns the success flag reported by the token. Restricted tokens may
        return False, or even True, without moving the balance, so callers
        that need the real outcome must compare balances.
        """

        sender = to_checksum_address(sender)
        recipient = to_checksum_address(recipient)

        with self.ledger._state_lock:
            if amount < 0:
                raise EVMRevertError("ERC20: negative transfer amount")
            if recipient == ZERO_ADDRESS:
                raise EVMRevertError("ERC20: transfer to the zero address")

            if not self._before_transfer(sender, recipient, amount):
                return self._on_blocked_return_value()

            sender_balance = self.balance_of(sender)
            if sender_balance < amount:
                raise EVMRevertError("ERC20: transfer amount exceeds balance")

            fee = self._transfer_fee(sender, recipient, amount)

            self.ledger._write_balance(self.address, sender, sender_balance - amount)
            self.ledger._write_balance(
                self.address, recipient, self.balance_of(recipient) + amount - fee
            )
            if fee:
                fee_recipient = self._fee_recipient()
                self.ledger._write_balance(
                    self.address, fee_recipient, self.balance_of(fee_recipient) + fee
                )

            logger.debug(
                f"{self.symbol}: {sender} -> {recipient}, amount={amount}, fee={fee}"
            )
            return True

    # Hooks for derived token behaviors
    def _before_transfer(
        self,
        sender: ChecksumAddress,
        recipient: ChecksumAddress,
        amount: int,
    ) -> bool:
        return True

    def _on_blocked_return_value(self) -> bool:
        return False

    def _transfer_fee(
        self,
        sender: ChecksumAddress,
        recipient: ChecksumAddress,
        amount: int,
    ) -> int:
        return 0

    def _fee_recipient(self) -> ChecksumAddress:
        return self.address


class FeeOnTransferToken(Erc20Token):
    """
    A token that withholds a fraction of every transfer.

    Transfers out of a registered pool are "buys" and pay `buy_tax`,
    transfers into a registered pool are "sells" and pay `sell_tax`, and all
    other transfers pay `transfer_tax`.
    """

    def __init__(
        self,
        ledger: "Ledger",
        address: Union[ChecksumAddress, str],
        symbol: str,
        decimals: int = 18,
        name: Optional[str] = None,
        buy_tax: Fraction = Fraction(0),
        sell_tax: Fraction = Fraction(0),
        transfer_tax: Fraction = Fraction(0),
        tax_recipient: Optional[Union[ChecksumAddress, str]] = None,
        silent: bool = False,
    ) -> None:
        for tax in (buy_tax, sell_tax, transfer_tax):
            if not 0 <= tax <= 1:
                raise ValueError(f"Tax {tax} is outside of [0, 1]")

        self.buy_tax = Fraction(buy_tax)
        self.sell_tax = Fraction(sell_tax)
        self.transfer_tax = Fraction(transfer_tax)
        self.tax_recipient: Optional[ChecksumAddress] = (
            to_checksum_address(tax_recipient) if tax_recipient is not None else None
        )
        super().__init__(
            ledger=ledger,
            address=address,
            symbol=symbol,
            decimals=decimals,
            name=name,
            silent=silent,
        )

    def _transfer_fee(
        self,
        sender: ChecksumAddress,
        recipient: ChecksumAddress,
        amount: int,
    ) -> int:
        if self.ledger.is_pool(sender):
            tax = self.buy_tax
        elif self.ledger.is_pool(recipient):
            tax = self.sell_tax
        else:
            tax = self.transfer_tax
        return amount * tax.numerator // tax.denominator

    def _fee_recipient(self) -> ChecksumAddress:
        return self.tax_recipient if self.tax_recipient is not None else self.address


class RestrictedErc20Token(Erc20Token):
    """
    A token that refuses some transfers, the usual honeypot mechanic.

    A transfer is blocked if either party is blacklisted, if it is a buy
    (sent by a registered pool) while `buys_enabled` is False, or if it is a
    sell (sent to a registered pool) while `sells_enabled` is False.

    `on_blocked` selects how a blocked transfer fails:
        "revert" - the call reverts
        "return_false" - returns False and moves nothing
        "forge_success" - returns True and moves nothing
    """

    def __init__(
        self,
        ledger: "Ledger",
        address: Union[ChecksumAddress, str],
        symbol: str,
        decimals: int = 18,
        name: Optional[str] = None,
        blacklist: Iterable[Union[ChecksumAddress, str]] = (),
        buys_enabled: bool = True,
        sells_enabled: bool = True,
        on_blocked: Literal["revert", "return_false", "forge_success"] = "revert",
        silent: bool = False,
    ) -> None:
        if on_blocked not in ("revert", "return_false", "forge_success"):
            raise ValueError(f"Unknown blocked transfer mode {on_blocked!r}")

        self.blacklist: Set[ChecksumAddress] = {
            to_checksum_address(address) for address in blacklist
        }
        self.buys_enabled = buys_enabled
        self.sells_enabled = sells_enabled
        self.on_blocked = on_blocked
        super().__init__(
            ledger=ledger,
            address=address,
            symbol=symbol,
            decimals=decimals,
            name=name,
            silent=silent,
        )

    def _before_transfer(
        self,
        sender: ChecksumAddress,
        recipient: ChecksumAddress,
        amount: int,
    ) -> bool:
        if sender in self.blacklist or recipient in self.blacklist:
            reason = "blacklisted"
        elif not self.buys_enabled and self.ledger.is_pool(sender):
            reason = "buys disabled"
        elif not self.sells_enabled and self.ledger.is_pool(recipient):
            reason = "sells disabled"
        else:
            return True

        logger.debug(f"{self.symbol}: blocked transfer {sender} -> {recipient} ({reason})")
        if self.on_blocked == "revert":
            raise EVMRevertError(f"{self.symbol}: transfer blocked ({reason})")
        return False

    def _on_blocked_return_value(self) -> bool:
        return self.on_blocked == "forge_success"
