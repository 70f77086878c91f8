# pragma: no cover

import dotenv
import pytest
import web3
from eth_utils.address import to_checksum_address

import hpsim
from hpsim.constants import SIMULATOR_ADDRESS

WETH_ADDRESS = to_checksum_address("0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2")
USDC_ADDRESS = to_checksum_address("0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48")
# Arbitrary addresses for test tokens, chosen so the test token sorts after WETH
TEST_TOKEN_ADDRESS = to_checksum_address("0xF00000000000000000000000000000000000000d")
POOL_ADDRESS = to_checksum_address("0x0000000000000000000000000000000000000B0b")


@pytest.fixture(scope="session")
def load_env() -> dict:
    env_file = dotenv.find_dotenv("tests.env")
    return dotenv.dotenv_values(env_file)


# Set up a web3 connection to a local Anvil fork, if one is configured
@pytest.fixture(scope="session")
def local_anvil_fork_web3(load_env: dict) -> web3.Web3:
    node_uri = load_env.get("ARCHIVE_NODE_HTTP_URI")
    if not node_uri:
        pytest.skip("ARCHIVE_NODE_HTTP_URI is not set in tests.env")
    w3 = web3.Web3(web3.HTTPProvider(node_uri))
    if not w3.is_connected():
        pytest.skip(f"Could not connect to {node_uri}")
    return w3


@pytest.fixture(scope="function", autouse=True)
def clear_hpsim_state() -> None:
    # The configured Web3 instance is module-level state, which will leak
    # between tests if not cleared
    hpsim.config.clear_web3()


@pytest.fixture()
def ledger() -> hpsim.Ledger:
    return hpsim.Ledger(block_number=1, block_timestamp=1_700_000_000)


@pytest.fixture()
def weth(ledger: hpsim.Ledger) -> hpsim.Erc20Token:
    return hpsim.Erc20Token(ledger, WETH_ADDRESS, "WETH", silent=True)


@pytest.fixture()
def simulator(ledger: hpsim.Ledger) -> hpsim.SwapSimulator:
    return hpsim.SwapSimulator(ledger, address=SIMULATOR_ADDRESS)


def build_pool(
    ledger: hpsim.Ledger,
    token_a: hpsim.Erc20Token,
    token_b: hpsim.Erc20Token,
    reserve_a: int,
    reserve_b: int,
    address: str = POOL_ADDRESS,
) -> hpsim.LiquidityPool:
    """
    Create a pool holding `reserve_a` of `token_a` and `reserve_b` of `token_b`
    """

    pool = hpsim.LiquidityPool(ledger, address, token_a, token_b, silent=True)
    ledger.set_token_balance(token_a.address, pool.address, reserve_a)
    ledger.set_token_balance(token_b.address, pool.address, reserve_b)
    pool.sync()
    return pool
