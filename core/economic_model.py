"""
Economic Model for the Trove Ledger.

This main module combines all the individual components to create a complete
economic model of the protocol: price feed, debt token, trove manager and
stability pool, wired together with their authorizations. It can be used
to simulate various scenarios and test the economic behavior of the protocol.
"""

import logging

import numpy as np
import matplotlib.pyplot as plt

from block_clock import BlockClock
from fixed_point import DECIMALS, collateral_value
from price_feed import PriceFeed
from protocol_config import DEFAULT_CONFIG
from stability_pool import StabilityPool
from token_ledger import TokenLedger
from trove_manager import TroveManager

logger = logging.getLogger(__name__)

HOUR = 60 * 60
DAY = 24 * HOUR


class ProtocolModel:
    """
    Complete economic model of the protocol.
    Combines all components and provides simulation capabilities.
    """

    def __init__(self, initial_price=None, config=DEFAULT_CONFIG, seed=None, start_time=0):
        self.config = config

        # Accounts operating the system
        self.deployer = "deployer"

        # Set up clock and price feed
        self.clock = BlockClock(start_time)
        self.price_feed = PriceFeed(self.deployer, self.clock, config, initial_price)

        # Create token
        self.debt_token = TokenLedger(self.deployer, name="Debt Token", symbol="DEBT")

        # Create trove manager and pool
        self.trove_manager = TroveManager(
            self.deployer,
            self.price_feed,
            self.clock,
            address="trove_manager",
            debt_token=self.debt_token,
            config=config,
        )
        self.stability_pool = StabilityPool(
            self.trove_manager.address,
            address="stability_pool",
            debt_token=self.debt_token,
        )

        # Link components
        self.trove_manager.set_stability_pool(self.deployer, self.stability_pool)
        self.debt_token.add_minter(self.deployer, self.trove_manager.address)
        self.debt_token.add_minter(self.deployer, self.stability_pool.address)

        self.rng = np.random.default_rng(seed)

        # History tracking for simulations
        self.history = {
            "time": [],
            "price": [],
            "total_debt": [],
            "total_collateral": [],
            "active_troves": [],
            "pool_deposits": [],
            "pool_collateral": [],
        }
        self.liquidations = []
        self._update_history()

    # --- Operations ---

    def open_trove(self, owner, collateral, debt, interest_rate):
        """Opens a trove and records the new system state."""
        trove = self.trove_manager.open_trove(owner, collateral, debt, interest_rate)
        self._update_history()
        return trove

    def provide_to_pool(self, depositor, amount):
        """Deposits debt tokens held by ``depositor`` into the Stability Pool."""
        settlement = self.stability_pool.deposit(depositor, amount)
        self._update_history()
        return settlement

    def advance_time(self, seconds):
        return self.clock.advance(seconds)

    def price_band(self):
        """Lowest and highest price the feed will currently accept."""
        twap = self.price_feed.twap_price
        max_move = twap * self.config.max_price_deviation_percent // 100
        return max(1, twap - max_move), twap + max_move

    def update_price(self, new_price):
        """
        Pushes a price to the feed, clamped into the accepted deviation band.

        Returns:
            The price actually accepted
        """
        low, high = self.price_band()
        accepted = int(np.clip(int(new_price), low, high))
        self.price_feed.update_price(self.deployer, accepted)
        return accepted

    def liquidate_undercollateralized(self):
        """
        Keeper sweep over all active troves.

        Troves whose debt exceeds a non-empty pool are skipped, since the
        pool cannot absorb them whole.

        Returns:
            List of LiquidationValues for the troves liquidated
        """
        results = []
        for owner in self.trove_manager.get_active_troves():
            if not self.trove_manager.is_liquidatable(owner):
                continue

            debt = self.trove_manager.get_entire_debt(owner)
            pool_deposits = self.stability_pool.get_total_deposits()
            if 0 < pool_deposits < debt:
                logger.warning(
                    "Skipping liquidation of %s: debt %d exceeds pool deposits %d",
                    owner, debt, pool_deposits,
                )
                continue

            results.append(self.trove_manager.liquidate(owner))

        self.liquidations.extend(results)
        return results

    def accounting_matches(self):
        """True when the ledger totals equal the sums over active troves."""
        active = [trove for trove in self.trove_manager.troves.values() if trove.active]
        return (
            self.trove_manager.total_collateral == sum(trove.collateral for trove in active)
            and self.trove_manager.total_debt == sum(trove.debt for trove in active)
            and self.trove_manager.trove_count == len(active)
        )

    # --- Scenario setup ---

    def populate(self, num_borrowers, deposit_share=0.5, min_ratio=160, max_ratio=300):
        """
        Opens troves for ``num_borrowers`` random borrowers.

        Each borrower locks between 10k and 100k collateral units at a random
        collateral ratio and deposits ``deposit_share`` of the borrowed tokens
        into the Stability Pool.

        Returns:
            List of borrower addresses
        """
        price = self.price_feed.get_price()
        max_rate = min(self.config.max_interest_rate, DECIMALS // 10)
        borrowers = []
        first_index = len(self.trove_manager.troves)

        for i in range(num_borrowers):
            owner = f"borrower{first_index + i}"
            collateral = int(self.rng.uniform(10_000, 100_000) * DECIMALS)
            ratio = int(self.rng.integers(min_ratio, max_ratio + 1))
            debt = max(self.config.min_debt, collateral_value(collateral, price) * 100 // ratio)
            rate = int(self.rng.integers(self.config.min_interest_rate, max_rate + 1))

            self.trove_manager.open_trove(owner, collateral, debt, rate)
            borrowers.append(owner)

            deposit = int(debt * deposit_share)
            if deposit > 0:
                self.stability_pool.deposit(owner, deposit)

        self._update_history()
        return borrowers

    # --- Simulation ---

    def simulate_market_scenario(self, days, price_volatility=0.02, plot_results=True, forward_interest=True):
        """
        Run a simulation with random price movements over the specified period.

        Every hour the clock advances, a new log-normal price step is pushed to
        the feed, undercollateralized troves are liquidated and, optionally,
        accrued interest is forwarded to the Stability Pool.

        Args:
            days: Number of days to simulate
            price_volatility: Standard deviation of hourly log returns for price
            plot_results: Whether to generate plots of the results
            forward_interest: Whether to forward interest revenue every step

        Returns:
            Dictionary with simulation results
        """
        steps = days * 24

        # Arrays to store history
        time_points = np.zeros(steps)
        price_points = np.zeros(steps)
        total_debt_points = np.zeros(steps)
        total_coll_points = np.zeros(steps)
        active_troves_points = np.zeros(steps)
        pool_deposit_points = np.zeros(steps)

        log_returns = self.rng.normal(0, price_volatility, steps)
        liquidations_before = len(self.liquidations)

        for i in range(steps):
            self.advance_time(HOUR)

            # Update price with random movement
            proposed = self.price_feed.current_price * np.exp(log_returns[i])
            self.update_price(proposed)

            # Touch every trove so accrued interest is realised
            for owner in self.trove_manager.get_active_troves():
                self.trove_manager.adjust_interest_rate(owner, self.trove_manager.get_trove_interest_rate(owner))

            self.liquidate_undercollateralized()
            if forward_interest:
                self.trove_manager.forward_interest_revenue()

            self._update_history()

            # Record historical data
            time_points[i] = self.clock.now() / DAY
            price_points[i] = self.price_feed.current_price / DECIMALS
            total_debt_points[i] = self.trove_manager.total_debt / DECIMALS
            total_coll_points[i] = self.trove_manager.total_collateral / DECIMALS
            active_troves_points[i] = self.trove_manager.trove_count
            pool_deposit_points[i] = self.stability_pool.total_deposits / DECIMALS

        if plot_results:
            fig, axs = plt.subplots(5, 1, figsize=(12, 18), sharex=True)

            axs[0].plot(time_points, price_points)
            axs[0].set_title('Collateral Price')
            axs[0].set_ylabel('USD')

            axs[1].plot(time_points, total_debt_points)
            axs[1].set_title('Total System Debt')
            axs[1].set_ylabel('DEBT')

            axs[2].plot(time_points, total_coll_points)
            axs[2].set_title('Total Collateral')
            axs[2].set_ylabel('Collateral')

            axs[3].plot(time_points, active_troves_points)
            axs[3].set_title('Active Troves')
            axs[3].set_ylabel('Count')

            axs[4].plot(time_points, pool_deposit_points)
            axs[4].set_title('Stability Pool Deposits')
            axs[4].set_ylabel('DEBT')
            axs[4].set_xlabel('Days')

            plt.tight_layout()
            plt.show()

        return {
            'final_price': self.price_feed.current_price,
            'final_system_debt': self.trove_manager.total_debt,
            'final_collateral': self.trove_manager.total_collateral,
            'active_troves': self.trove_manager.trove_count,
            'liquidations': len(self.liquidations) - liquidations_before,
            'pool_deposits': self.stability_pool.total_deposits,
            'pool_collateral': self.stability_pool.collateral_balance,
        }

    def _update_history(self):
        self.history["time"].append(self.clock.now())
        self.history["price"].append(self.price_feed.current_price)
        self.history["total_debt"].append(self.trove_manager.total_debt)
        self.history["total_collateral"].append(self.trove_manager.total_collateral)
        self.history["active_troves"].append(self.trove_manager.trove_count)
        self.history["pool_deposits"].append(self.stability_pool.total_deposits)
        self.history["pool_collateral"].append(self.stability_pool.collateral_balance)
