from . import config, exceptions, uniswap
from .config import get_web3, set_web3
from .erc20_token import Erc20Token, FeeOnTransferToken, RestrictedErc20Token, TokenInfo
from .fork import AnvilForkState
from .functions import generate_payloads
from .honeypot import HoneypotFilter, HoneypotReason, SafeToken, TokenVerdict
from .ledger import Ledger
from .logging import logger
from .simulator import SwapSimulationResult, SwapSimulator
from .uniswap.v2_functions import get_amount_out as quote_output
from .uniswap.v2_liquidity_pool import LiquidityPool
