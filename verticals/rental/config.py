"""Rental store configuration.

Re-exports the RentalConfig from the patterns module; the instance is
built once from the environment at import time.
"""

from patterns.domain_config import RentalConfig

config = RentalConfig.from_env()
