from fractions import Fraction

import pytest
from hpsim import (
    Erc20Token,
    FeeOnTransferToken,
    HoneypotFilter,
    HoneypotReason,
    Ledger,
    RestrictedErc20Token,
    SafeToken,
    SwapSimulator,
)
from hpsim.uniswap import UniswapV2PoolAttributes

from conftest import POOL_ADDRESS, TEST_TOKEN_ADDRESS, USDC_ADDRESS, WETH_ADDRESS, build_pool

OTHER_TOKEN_ADDRESS = "0xE00000000000000000000000000000000000000e"
SECOND_POOL_ADDRESS = "0x0000000000000000000000000000000000000C0c"

SAFE_WETH = SafeToken(address=WETH_ADDRESS, symbol="WETH", decimals=18, test_amount=1)


@pytest.fixture()
def honeypot_filter(simulator: SwapSimulator) -> HoneypotFilter:
    return HoneypotFilter(simulator, safe_tokens=[SAFE_WETH])


def _deep_pool(ledger: Ledger, weth: Erc20Token, token: Erc20Token, address=None):
    kwargs = {} if address is None else {"address": address}
    return build_pool(ledger, weth, token, 100 * 10**18, 10**24, **kwargs)


def test_safe_token_test_amount():
    assert SAFE_WETH.test_amount_raw == 10**18
    usdc = SafeToken(address=USDC_ADDRESS, symbol="USDC", decimals=6, test_amount=10_000)
    assert usdc.test_amount_raw == 10_000 * 10**6


def test_clean_token_is_safe(ledger: Ledger, weth: Erc20Token, honeypot_filter: HoneypotFilter):
    token = Erc20Token(ledger, TEST_TOKEN_ADDRESS, "TEST", silent=True)
    pool = _deep_pool(ledger, weth, token)

    verdict = honeypot_filter.check_pool(pool.attributes)

    assert verdict is not None
    assert not verdict.is_honeypot
    assert verdict.token == token.address
    assert verdict.safe_token == weth.address
    assert verdict.buy.actual_amount_out == verdict.buy.predicted_amount_out
    assert verdict.sell.amount_in == verdict.buy.actual_amount_out
    assert token.address in honeypot_filter.safe_tokens_found
    assert honeypot_filter.honeypot == {}


def test_check_leaves_state_unchanged(
    ledger: Ledger, weth: Erc20Token, honeypot_filter: HoneypotFilter
):
    token = Erc20Token(ledger, TEST_TOKEN_ADDRESS, "TEST", silent=True)
    pool = _deep_pool(ledger, weth, token)
    before = ledger.state.copy()

    honeypot_filter.check_pool(pool.attributes)

    assert ledger.state == before
    assert weth.balance_of(honeypot_filter.simulator.address) == 0


def test_buy_rejected(ledger: Ledger, weth: Erc20Token, honeypot_filter: HoneypotFilter):
    token = RestrictedErc20Token(
        ledger, TEST_TOKEN_ADDRESS, "HONEY", buys_enabled=False, silent=True
    )
    pool = _deep_pool(ledger, weth, token)

    verdict = honeypot_filter.check_pool(pool.attributes)

    assert verdict.reason is HoneypotReason.BUY_REJECTED
    assert verdict.buy is None
    assert "TRANSFER_FAILED" in verdict.error
    assert honeypot_filter.honeypot == {token.address: HoneypotReason.BUY_REJECTED}


def test_buy_taxed(ledger: Ledger, weth: Erc20Token, honeypot_filter: HoneypotFilter):
    token = FeeOnTransferToken(
        ledger, TEST_TOKEN_ADDRESS, "TAX", buy_tax=Fraction(3, 100), silent=True
    )
    pool = _deep_pool(ledger, weth, token)

    verdict = honeypot_filter.check_pool(pool.attributes)

    assert verdict.reason is HoneypotReason.BUY_TAXED
    assert verdict.buy.actual_amount_out < verdict.buy.predicted_amount_out
    assert verdict.sell is None


def test_forged_buy_is_taxed(ledger: Ledger, weth: Erc20Token, honeypot_filter: HoneypotFilter):
    token = RestrictedErc20Token(
        ledger,
        TEST_TOKEN_ADDRESS,
        "HONEY",
        buys_enabled=False,
        on_blocked="forge_success",
        silent=True,
    )
    pool = _deep_pool(ledger, weth, token)

    verdict = honeypot_filter.check_pool(pool.attributes)

    assert verdict.reason is HoneypotReason.BUY_TAXED
    assert verdict.buy.actual_amount_out == 0


@pytest.mark.parametrize("on_blocked", ["revert", "return_false"])
def test_sell_rejected(
    ledger: Ledger, weth: Erc20Token, honeypot_filter: HoneypotFilter, on_blocked
):
    token = RestrictedErc20Token(
        ledger,
        TEST_TOKEN_ADDRESS,
        "HONEY",
        sells_enabled=False,
        on_blocked=on_blocked,
        silent=True,
    )
    pool = _deep_pool(ledger, weth, token)

    verdict = honeypot_filter.check_pool(pool.attributes)

    assert verdict.reason is HoneypotReason.SELL_REJECTED
    assert verdict.buy is not None
    assert verdict.sell is None


def test_sell_taxed(ledger: Ledger, weth: Erc20Token, honeypot_filter: HoneypotFilter):
    token = FeeOnTransferToken(
        ledger, TEST_TOKEN_ADDRESS, "TAX", sell_tax=Fraction(10, 100), silent=True
    )
    pool = _deep_pool(ledger, weth, token)

    verdict = honeypot_filter.check_pool(pool.attributes)

    assert verdict.reason is HoneypotReason.SELL_TAXED
    assert verdict.sell.amount_received < verdict.sell.amount_in
    assert verdict.sell.actual_amount_out == verdict.sell.predicted_amount_out


def test_pools_without_exactly_one_safe_token_are_skipped(
    ledger: Ledger, weth: Erc20Token, simulator: SwapSimulator
):
    usdc = Erc20Token(ledger, USDC_ADDRESS, "USDC", decimals=6, silent=True)
    token = Erc20Token(ledger, TEST_TOKEN_ADDRESS, "TEST", silent=True)
    other = Erc20Token(ledger, OTHER_TOKEN_ADDRESS, "OTHER", silent=True)
    safe_pair = build_pool(ledger, weth, usdc, 10**18, 10**9)
    unsafe_pair = build_pool(ledger, token, other, 10**18, 10**18, address=SECOND_POOL_ADDRESS)

    honeypot_filter = HoneypotFilter(
        simulator,
        safe_tokens=[
            SAFE_WETH,
            SafeToken(address=USDC_ADDRESS, symbol="USDC", decimals=6, test_amount=1),
        ],
    )

    assert honeypot_filter.check_pool(safe_pair.attributes) is None
    assert honeypot_filter.check_pool(unsafe_pair.attributes) is None


def test_classified_tokens_are_skipped(
    ledger: Ledger, weth: Erc20Token, honeypot_filter: HoneypotFilter
):
    token = Erc20Token(ledger, TEST_TOKEN_ADDRESS, "TEST", silent=True)
    pool = _deep_pool(ledger, weth, token)

    assert honeypot_filter.check_pool(pool.attributes) is not None
    assert honeypot_filter.check_pool(pool.attributes) is None


def test_default_safe_tokens(ledger: Ledger, simulator: SwapSimulator):
    usdc = Erc20Token(ledger, USDC_ADDRESS, "USDC", decimals=6, silent=True)
    token = Erc20Token(ledger, TEST_TOKEN_ADDRESS, "TEST", silent=True)
    # 1,000,000 USDC of liquidity, enough to absorb the 10,000 USDC test amount
    pool = build_pool(ledger, usdc, token, 10**12, 10**24)

    verdict = HoneypotFilter(simulator).check_pool(pool.attributes)

    assert verdict.safe_token == usdc.address
    assert verdict.buy.amount_in == 10_000 * 10**6
    assert not verdict.is_honeypot


def test_filter_tokens(ledger: Ledger, weth: Erc20Token, honeypot_filter: HoneypotFilter):
    clean = Erc20Token(ledger, TEST_TOKEN_ADDRESS, "TEST", silent=True)
    honey = RestrictedErc20Token(
        ledger, OTHER_TOKEN_ADDRESS, "HONEY", sells_enabled=False, silent=True
    )
    clean_pool = _deep_pool(ledger, weth, clean)
    honey_pool = _deep_pool(ledger, weth, honey, address=SECOND_POOL_ADDRESS)

    verdicts = honeypot_filter.filter_tokens(
        [clean_pool.attributes, honey_pool.attributes, clean_pool.attributes]
    )

    assert [verdict.token for verdict in verdicts] == [clean.address, honey.address]
    assert honeypot_filter.safe_tokens_found == {clean.address}
    assert honeypot_filter.honeypot == {honey.address: HoneypotReason.SELL_REJECTED}


def test_setup_drops_unknown_safe_tokens(ledger: Ledger, weth: Erc20Token, simulator: SwapSimulator):
    honeypot_filter = HoneypotFilter(simulator)

    usable = honeypot_filter.setup()

    assert list(usable) == [weth.address]
    assert honeypot_filter.safe_token_info == {weth.address: weth.info}


def test_setup_uses_decimals_from_chain_state(ledger: Ledger, simulator: SwapSimulator):
    usdc = Erc20Token(ledger, USDC_ADDRESS, "USDC", decimals=6, silent=True)
    misconfigured = SafeToken(address=USDC_ADDRESS, symbol="USDC", decimals=18, test_amount=1)

    usable = HoneypotFilter(simulator, safe_tokens=[misconfigured]).setup()

    assert usable[usdc.address].decimals == 6
    assert usable[usdc.address].test_amount_raw == 10**6


def test_pool_with_unusable_safe_token_is_skipped(ledger: Ledger, simulator: SwapSimulator):
    Erc20Token(ledger, TEST_TOKEN_ADDRESS, "TEST", silent=True)
    # configured as safe, but never registered with the ledger
    safe_tokens = [SafeToken(address=USDC_ADDRESS, symbol="USDC", decimals=6, test_amount=1)]
    attributes = UniswapV2PoolAttributes(
        address=POOL_ADDRESS, token0=USDC_ADDRESS, token1=TEST_TOKEN_ADDRESS
    )

    assert HoneypotFilter(simulator, safe_tokens=safe_tokens).check_pool(attributes) is None


def test_token_info_is_recorded_for_safe_tokens(
    ledger: Ledger, weth: Erc20Token, honeypot_filter: HoneypotFilter
):
    clean = Erc20Token(ledger, TEST_TOKEN_ADDRESS, "TEST", name="Test Token", silent=True)
    honey = RestrictedErc20Token(
        ledger, OTHER_TOKEN_ADDRESS, "HONEY", sells_enabled=False, silent=True
    )
    clean_pool = _deep_pool(ledger, weth, clean)
    honey_pool = _deep_pool(ledger, weth, honey, address=SECOND_POOL_ADDRESS)

    honeypot_filter.filter_tokens([clean_pool.attributes, honey_pool.attributes])

    assert honeypot_filter.token_info == {clean.address: clean.info}
    assert honeypot_filter.token_info[clean.address].name == "Test Token"
