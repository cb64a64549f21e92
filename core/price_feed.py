"""
Price Feed Model for the Trove Ledger.

This module simulates the price oracle consumed by the TroveManager. Allow-listed
feeders push spot prices; each accepted update also moves an exponentially
smoothed TWAP. Updates that stray too far from the TWAP are rejected, and reads
fail once the feed has gone stale.
"""

import logging

from fixed_point import require_positive
from protocol_config import DEFAULT_CONFIG, TWAP_WEIGHT
from protocol_errors import PriceDeviationError, StalePriceError, UnauthorizedError

logger = logging.getLogger(__name__)


class PriceFeed:
    """
    Simulates a TWAP price oracle with a feeder allow-list.
    """

    def __init__(self, owner, clock, config=DEFAULT_CONFIG, initial_price=None):
        self.owner = owner
        self.clock = clock
        self.config = config

        price = config.initial_price if initial_price is None else initial_price
        require_positive(price, "Price")

        # The deployer is the first feeder
        self.feeders = {owner}

        self.current_price = price
        self.twap_price = price
        self.last_update = clock.now()

    def add_feeder(self, caller, feeder):
        """Adds ``feeder`` to the allow-list. Only callable by the owner."""
        self._only_owner(caller)
        self.feeders.add(feeder)
        logger.info("Feeder %s added", feeder)

    def remove_feeder(self, caller, feeder):
        """Removes ``feeder`` from the allow-list. Only callable by the owner."""
        self._only_owner(caller)
        self.feeders.discard(feeder)
        logger.info("Feeder %s removed", feeder)

    def is_feeder(self, account):
        return account in self.feeders

    def update_price(self, caller, new_price):
        """
        Pushes a new spot price.

        Args:
            caller: Address of the feeder
            new_price: New spot price, scaled by DECIMALS

        Returns:
            The new TWAP

        Raises:
            UnauthorizedError: If the caller is not a feeder
            InvalidArgumentError: If the price is not positive
            PriceDeviationError: If the price deviates from the TWAP by more
                than the configured percentage
        """
        if caller not in self.feeders:
            raise UnauthorizedError("Not authorized")
        require_positive(new_price, "Price")

        twap = self.twap_price
        deviation = self.deviation_percent(new_price)
        if deviation > self.config.max_price_deviation_percent:
            raise PriceDeviationError(
                f"Deviation too high: {deviation}% from TWAP {twap}"
            )

        new_twap = (twap * TWAP_WEIGHT + new_price) // (TWAP_WEIGHT + 1)

        self.twap_price = new_twap
        self.current_price = new_price
        self.last_update = self.clock.now()

        logger.debug("Price updated to %d (TWAP %d)", new_price, new_twap)
        return new_twap

    def deviation_percent(self, price):
        """Whole-percent deviation of ``price`` from the current TWAP."""
        twap = self.twap_price
        if twap == 0:
            return 0
        return (abs(price - twap) * 100) // twap

    def get_price(self):
        """Returns the spot price. Fails if the feed is stale."""
        self._check_staleness()
        return self.current_price

    def get_twap_price(self):
        """Returns the smoothed price. Fails if the feed is stale."""
        self._check_staleness()
        return self.twap_price

    def is_stale(self):
        return self.clock.now() - self.last_update > self.config.max_price_staleness

    def get_last_update(self):
        return self.last_update

    def _check_staleness(self):
        if self.is_stale():
            raise StalePriceError("Price is stale")

    def _only_owner(self, caller):
        if caller != self.owner:
            raise UnauthorizedError("Only owner")
