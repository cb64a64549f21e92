"""Protocol configuration for the Trove Ledger model"""

from dataclasses import dataclass

from fixed_point import DECIMALS
from protocol_errors import ConfigError

# Collateral parameters
MIN_COLLATERAL_RATIO = 150  # 150% - required after every ratio-worsening operation
LIQUIDATION_RATIO = 110  # 110% - troves below this can be liquidated
LIQUIDATION_PENALTY_PERCENT = 5  # 5% of collateral kept by the protocol

# Debt parameters
MIN_DEBT = 100 * DECIMALS  # 100 debt tokens
BORROWING_FEE = 5_000_000  # 0.5% origination fee
REDEMPTION_FEE_FLOOR = 5_000_000  # 0.5%

# Interest rate parameters
MIN_INTEREST_RATE = 5_000_000  # 0.5% annual
MAX_INTEREST_RATE = 2_000_000_000  # 200% annual
SECONDS_PER_YEAR = 31_536_000
INTEREST_YIELD_SPLIT = 500_000_000  # 50% of interest goes to the stability pool

# Price feed parameters
INITIAL_PRICE = 50_000_000  # $0.05
MAX_PRICE_DEVIATION_PERCENT = 5
MAX_PRICE_STALENESS = 3600  # 1 hour
TWAP_WEIGHT = 9  # new_twap = (old_twap * 9 + price) / 10


@dataclass(frozen=True)
class ProtocolConfig:
    """
    Immutable set of protocol parameters.

    Rates and fees are fractions scaled by ``DECIMALS`` (5_000_000 is 0.5%),
    collateral ratios are whole percentages.
    """
    min_collateral_ratio: int = MIN_COLLATERAL_RATIO
    liquidation_ratio: int = LIQUIDATION_RATIO
    liquidation_penalty_percent: int = LIQUIDATION_PENALTY_PERCENT
    min_debt: int = MIN_DEBT
    borrowing_fee: int = BORROWING_FEE
    redemption_fee_floor: int = REDEMPTION_FEE_FLOOR
    min_interest_rate: int = MIN_INTEREST_RATE
    max_interest_rate: int = MAX_INTEREST_RATE
    seconds_per_year: int = SECONDS_PER_YEAR
    interest_yield_split: int = INTEREST_YIELD_SPLIT
    initial_price: int = INITIAL_PRICE
    max_price_deviation_percent: int = MAX_PRICE_DEVIATION_PERCENT
    max_price_staleness: int = MAX_PRICE_STALENESS

    def __post_init__(self):
        for name, value in vars(self).items():
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise ConfigError(f"{name} must be a non-negative integer")

        if self.liquidation_ratio > self.min_collateral_ratio:
            raise ConfigError("Liquidation ratio cannot exceed the minimum collateral ratio")
        if self.liquidation_ratio < 100:
            raise ConfigError("Liquidation ratio must be at least 100%")
        if self.liquidation_penalty_percent >= 100:
            raise ConfigError("Liquidation penalty must be below 100%")
        if self.min_interest_rate > self.max_interest_rate:
            raise ConfigError("Minimum interest rate cannot exceed the maximum")
        if self.min_debt == 0:
            raise ConfigError("Minimum debt must be positive")
        if self.seconds_per_year == 0:
            raise ConfigError("Seconds per year must be positive")
        if self.interest_yield_split > DECIMALS:
            raise ConfigError("Interest yield split cannot exceed 100%")
        if self.initial_price == 0:
            raise ConfigError("Initial price must be positive")


DEFAULT_CONFIG = ProtocolConfig()
