import os
from typing import Optional

import dotenv
from web3 import Web3

from .logging import logger

_web3: Optional[Web3] = None


def get_web3() -> Web3:
    if _web3 is None:
        raise ValueError("A Web3 instance has not been provided.")
    return _web3


def set_web3(w3: Web3) -> None:
    global _web3

    if w3.is_connected() is False:
        raise ValueError("Web3 object is not connected.")

    _web3 = w3


def clear_web3() -> None:
    global _web3
    _web3 = None


def connect_from_env(env_file: str = ".env") -> Web3:
    """
    Load the RPC endpoint from the environment (or an env file found by
    `python-dotenv`) and register a connected Web3 instance.

    The endpoint is read from `HTTP_URL`, which should point at an Anvil
    fork when the fork backend is used.
    """

    dotenv.load_dotenv(dotenv.find_dotenv(env_file))

    http_url = os.environ.get("HTTP_URL")
    if not http_url:
        raise ValueError("HTTP_URL is not set in the environment")

    w3 = Web3(Web3.HTTPProvider(http_url))
    set_web3(w3)
    logger.info(f"Connected to {http_url} (chain ID {w3.eth.chain_id})")
    return w3
