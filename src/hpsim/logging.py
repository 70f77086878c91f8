import logging

logger = logging.getLogger("hpsim")
logger.propagate = False
logger.setLevel(logging.INFO)

if not logger.hasHandlers():
    _handler = logging.StreamHandler()
    _handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    logger.addHandler(_handler)
