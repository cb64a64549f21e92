"""
Trove Manager Model for the Trove Ledger.

This module simulates the TroveManager contract which handles the core logic for
troves including interest accrual, collateralization checks and liquidations.

The TroveManager is responsible for:
1. Managing the lifecycle of troves (creation, modification, closure)
2. Enforcing collateralization requirements at every ratio-worsening operation
3. Accruing simple interest on each trove whenever it is touched
4. Liquidating undercollateralized troves through the Stability Pool
5. Forwarding a share of accrued interest to the Stability Pool

Each owner holds at most one trove, keyed by the owner's address. Every call
reads the clock once, validates and computes all new values first, and only
then commits, so a failing call leaves no trace.
"""

import logging
from collections import namedtuple
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from fixed_point import (
    DECIMALS,
    add_amount,
    checked_mul,
    checked_sub,
    collateral_ratio,
    mul_div,
    require_amount,
    require_positive,
)
from protocol_config import DEFAULT_CONFIG
from protocol_errors import (
    CollateralRatioError,
    InsufficientBalanceError,
    InvalidArgumentError,
    TroveStateError,
    UnauthorizedError,
)

logger = logging.getLogger(__name__)


class Status(Enum):
    """
    Represents the possible states of a trove.

    Only active troves accept operations; closed troves keep their record
    (zeroed) and their owner may open a new one.
    """
    NON_EXISTENT = 0  # Trove has never been opened
    ACTIVE = 1  # Normal active trove with collateral and possibly debt
    CLOSED_BY_OWNER = 2  # Trove was voluntarily closed by its owner
    CLOSED_BY_LIQUIDATION = 3  # Trove was liquidated due to insufficient collateral


@dataclass
class Trove:
    """
    Represents a single trove (borrower position).

    Users deposit collateral and borrow debt tokens against it at an interest
    rate of their choosing. Debt grows with simple interest each time the trove
    is touched; the minimum collateral ratio is only checked when an operation
    could worsen it, so price moves and interest can push a trove into
    liquidation range.
    """
    owner: object
    collateral: int = 0  # Collateral locked in the trove
    debt: int = 0  # Recorded debt, including fees and interest accrued so far
    interest_rate: int = 0  # Annual rate scaled by DECIMALS
    last_accrual_time: int = 0  # Timestamp of last interest accrual
    status: Status = Status.NON_EXISTENT

    @property
    def active(self) -> bool:
        return self.status == Status.ACTIVE


@dataclass
class LiquidationValues:
    """
    Values calculated during the liquidation of a trove.

    The whole trove is liquidated: its entire debt is offset against the
    Stability Pool together with its collateral minus the liquidation penalty,
    which the protocol keeps.
    """
    owner: object
    entire_debt: int = 0  # Debt extinguished, including interest accrued at liquidation
    accrued_interest: int = 0  # Interest accrued by the liquidation call itself
    entire_coll: int = 0  # Collateral seized
    coll_penalty: int = 0  # Collateral retained by the protocol
    coll_to_send_to_sp: int = 0  # Collateral handed to the Stability Pool
    offset_by_sp: bool = False  # False when the pool was empty or missing


# New values produced by bringing a trove's debt current
Accrual = namedtuple("Accrual", ["interest", "debt", "total_debt", "interest_revenue"])


class TroveManager:
    """
    Simulates the TroveManager contract which handles trove operations.

    Collaborators:
    - PriceFeed: spot price for every ratio check; a stale price aborts the call
    - BlockClock: read once per call for interest accrual
    - StabilityPool: absorbs liquidated debt and collateral, receives interest
    - TokenLedger (optional): debt token minted on borrow, burned on repay
    """

    def __init__(self, owner, price_feed, clock, address="trove_manager",
                 stability_pool=None, debt_token=None, config=DEFAULT_CONFIG):
        self.owner = owner
        self.address = address

        # Connected contracts
        self.price_feed = price_feed
        self.clock = clock
        self.stability_pool = stability_pool
        self.debt_token = debt_token

        self.config = config

        # State variables
        self.troves = {}  # owner -> Trove

        # Protocol stats, equal to the sums over active troves
        self.total_collateral = 0
        self.total_debt = 0
        self.trove_count = 0

        # Interest accrued on troves and not yet forwarded
        self.accrued_interest_revenue = 0

        # Share of forwarded interest kept by the protocol
        self.protocol_revenue = 0

        # Collateral kept as liquidation penalty
        self.liquidation_penalty_collateral = 0

        # Redemption tracking
        self.base_rate = 0

    # --- Setup ---

    def set_stability_pool(self, caller, stability_pool):
        """Connects the Stability Pool. Only callable by the owner."""
        self._only_owner(caller)
        self.stability_pool = stability_pool
        logger.info("Stability pool set to %s", getattr(stability_pool, "address", stability_pool))

    # --- Trove operations ---

    def open_trove(self, owner, collateral: int, debt: int, interest_rate: int) -> Trove:
        """
        Opens a new trove with a user-set interest rate.

        The borrowing fee is added on top of the requested debt. The collateral
        ratio check uses the requested debt.

        Args:
            owner: Address of the trove owner
            collateral: Amount of collateral to lock
            debt: Amount of debt tokens to borrow
            interest_rate: Annual interest rate scaled by DECIMALS

        Returns:
            The newly opened trove

        Raises:
            TroveStateError: If the owner already has an active trove
            InvalidArgumentError: If collateral is zero, debt is below minimum
                or the rate is out of bounds
            CollateralRatioError: If the trove would start below the minimum ratio
        """
        now = self.clock.now()

        existing = self.troves.get(owner)
        if existing is not None and existing.active:
            raise TroveStateError("Trove already exists")

        require_amount(collateral, "Collateral")
        if collateral == 0:
            raise InvalidArgumentError("Collateral must be positive")
        require_amount(debt, "Debt")
        if debt < self.config.min_debt:
            raise InvalidArgumentError(f"Debt below minimum of {self.config.min_debt}")
        self._require_valid_rate(interest_rate)

        # Check collateral ratio
        price = self.price_feed.get_price()
        self._require_min_ratio(collateral, debt, price)

        # Apply borrowing fee
        fee = mul_div(debt, self.config.borrowing_fee, DECIMALS)
        recorded_debt = add_amount(debt, fee)

        new_total_collateral = add_amount(self.total_collateral, collateral)
        new_total_debt = add_amount(self.total_debt, recorded_debt)

        if self.debt_token:
            self.debt_token.mint(self.address, owner, debt)

        trove = Trove(
            owner=owner,
            collateral=collateral,
            debt=recorded_debt,
            interest_rate=interest_rate,
            last_accrual_time=now,
            status=Status.ACTIVE,
        )
        self.troves[owner] = trove

        # Update totals
        self.total_collateral = new_total_collateral
        self.total_debt = new_total_debt
        self.trove_count += 1

        logger.info(
            "Trove opened for %s: collateral %d, debt %d (fee %d), rate %d",
            owner, collateral, recorded_debt, fee, interest_rate,
        )
        return trove

    def adjust_interest_rate(self, owner, new_rate: int) -> None:
        """Changes the trove's interest rate after accruing interest at the old one."""
        now = self.clock.now()
        trove = self._get_active_trove(owner)
        self._require_valid_rate(new_rate)

        accrual = self._accrue(trove, now)

        self._apply_accrual(trove, accrual, now)
        trove.interest_rate = new_rate

        logger.info("Trove of %s: interest rate set to %d", owner, new_rate)

    def add_collateral(self, owner, amount: int) -> None:
        """Adds collateral to an active trove."""
        require_positive(amount)
        now = self.clock.now()
        trove = self._get_active_trove(owner)

        accrual = self._accrue(trove, now)
        new_collateral = add_amount(trove.collateral, amount)
        new_total_collateral = add_amount(self.total_collateral, amount)

        self._apply_accrual(trove, accrual, now)
        trove.collateral = new_collateral
        self.total_collateral = new_total_collateral

        logger.info("Trove of %s: collateral added %d", owner, amount)

    def withdraw_collateral(self, owner, amount: int) -> None:
        """
        Withdraws collateral from an active trove.

        Raises:
            InsufficientBalanceError: If the trove holds less than ``amount``
            CollateralRatioError: If the trove still has debt and would fall
                below the minimum ratio
        """
        require_positive(amount)
        now = self.clock.now()
        trove = self._get_active_trove(owner)

        if trove.collateral < amount:
            raise InsufficientBalanceError("Insufficient collateral")

        accrual = self._accrue(trove, now)
        new_collateral = trove.collateral - amount

        if accrual.debt > 0:
            price = self.price_feed.get_price()
            self._require_min_ratio(new_collateral, accrual.debt, price)

        new_total_collateral = checked_sub(self.total_collateral, amount)

        self._apply_accrual(trove, accrual, now)
        trove.collateral = new_collateral
        self.total_collateral = new_total_collateral

        logger.info("Trove of %s: collateral withdrawn %d", owner, amount)

    def borrow(self, owner, amount: int) -> int:
        """
        Borrows more debt tokens against an active trove.

        The borrowing fee is charged on ``amount`` and the ratio is checked
        against the resulting debt.

        Returns:
            The trove's new debt
        """
        require_positive(amount)
        now = self.clock.now()
        trove = self._get_active_trove(owner)

        accrual = self._accrue(trove, now)

        fee = mul_div(amount, self.config.borrowing_fee, DECIMALS)
        increase = add_amount(amount, fee)
        new_debt = add_amount(accrual.debt, increase)

        price = self.price_feed.get_price()
        self._require_min_ratio(trove.collateral, new_debt, price)

        new_total_debt = add_amount(accrual.total_debt, increase)

        if self.debt_token:
            self.debt_token.mint(self.address, owner, amount)

        self._apply_accrual(trove, accrual, now)
        trove.debt = new_debt
        self.total_debt = new_total_debt

        logger.info("Trove of %s: borrowed %d (fee %d), debt %d", owner, amount, fee, new_debt)
        return new_debt

    def repay(self, owner, amount: int) -> int:
        """
        Repays debt, clamped to the outstanding amount.

        Returns:
            The amount actually repaid
        """
        require_positive(amount)
        now = self.clock.now()
        trove = self._get_active_trove(owner)

        accrual = self._accrue(trove, now)
        repay_amount = min(amount, accrual.debt)

        new_debt = accrual.debt - repay_amount
        new_total_debt = checked_sub(accrual.total_debt, repay_amount)

        if self.debt_token and repay_amount > 0:
            self.debt_token.burn(self.address, owner, repay_amount)

        self._apply_accrual(trove, accrual, now)
        trove.debt = new_debt
        self.total_debt = new_total_debt

        logger.info("Trove of %s: repaid %d, debt %d", owner, repay_amount, new_debt)
        return repay_amount

    def close_trove(self, owner) -> int:
        """
        Closes a trove whose debt has been fully repaid.

        Returns:
            The collateral released to the owner

        Raises:
            TroveStateError: If the trove still has debt after accrual
        """
        now = self.clock.now()
        trove = self._get_active_trove(owner)

        accrual = self._accrue(trove, now)
        if accrual.debt != 0:
            raise TroveStateError("Must repay all debt first")

        collateral = trove.collateral
        new_total_collateral = checked_sub(self.total_collateral, collateral)
        new_count = checked_sub(self.trove_count, 1)

        self._apply_accrual(trove, accrual, now)
        trove.collateral = 0
        trove.debt = 0
        trove.status = Status.CLOSED_BY_OWNER

        self.total_collateral = new_total_collateral
        self.trove_count = new_count

        logger.info("Trove of %s closed, %d collateral released", owner, collateral)
        return collateral

    # --- Liquidation functions ---

    def is_liquidatable(self, owner) -> bool:
        """
        Checks whether a trove can be liquidated at the current price.

        The debt used includes interest accrued since the trove was last touched.
        """
        trove = self.troves.get(owner)
        if trove is None or not trove.active:
            return False

        debt = self.get_entire_debt(owner)
        if debt == 0:
            return False

        price = self.price_feed.get_price()
        return collateral_ratio(trove.collateral, debt, price) < self.config.liquidation_ratio

    def liquidate(self, owner) -> LiquidationValues:
        """
        Liquidates a single undercollateralized trove.

        The trove's interest is accrued first. If its collateral ratio is then
        below the liquidation ratio, the protocol keeps the liquidation penalty
        and hands the rest of the collateral, together with the entire debt,
        to the Stability Pool's offset. The trove is closed as a whole.

        An empty Stability Pool absorbs nothing, yet the liquidation still
        closes the trove. A failing offset fails the liquidation.

        Args:
            owner: Address of the trove owner

        Returns:
            LiquidationValues with the detailed results of the liquidation

        Raises:
            TroveStateError: If the trove is not active or not below the liquidation ratio
        """
        now = self.clock.now()

        trove = self.troves.get(owner)
        if trove is None or not trove.active:
            raise TroveStateError("Trove not liquidatable")

        accrual = self._accrue(trove, now)
        if accrual.debt == 0:
            raise TroveStateError("Trove not liquidatable")

        price = self.price_feed.get_price()
        ratio = collateral_ratio(trove.collateral, accrual.debt, price)
        if ratio >= self.config.liquidation_ratio:
            raise TroveStateError(f"Trove not liquidatable: collateral ratio {ratio}%")

        values = LiquidationValues(
            owner=owner,
            entire_debt=accrual.debt,
            accrued_interest=accrual.interest,
            entire_coll=trove.collateral,
        )
        values.coll_penalty = mul_div(trove.collateral, self.config.liquidation_penalty_percent, 100)
        values.coll_to_send_to_sp = trove.collateral - values.coll_penalty

        new_total_collateral = checked_sub(self.total_collateral, trove.collateral)
        new_total_debt = checked_sub(accrual.total_debt, accrual.debt)
        new_count = checked_sub(self.trove_count, 1)
        new_penalty_collateral = add_amount(self.liquidation_penalty_collateral, values.coll_penalty)

        # Process SP offset
        if self.stability_pool is not None:
            values.offset_by_sp = self.stability_pool.offset(
                self.address, values.entire_debt, values.coll_to_send_to_sp
            )
        else:
            logger.warning("No stability pool connected; liquidation of %s is not offset", owner)

        # Close the trove
        self._apply_accrual(trove, accrual, now)
        trove.collateral = 0
        trove.debt = 0
        trove.status = Status.CLOSED_BY_LIQUIDATION

        self.total_collateral = new_total_collateral
        self.total_debt = new_total_debt
        self.trove_count = new_count
        self.liquidation_penalty_collateral = new_penalty_collateral

        logger.info(
            "Trove of %s liquidated at %d%%: debt %d, collateral %d (penalty %d), offset %s",
            owner, ratio, values.entire_debt, values.entire_coll, values.coll_penalty, values.offset_by_sp,
        )
        return values

    # --- Interest revenue ---

    def forward_interest_revenue(self) -> int:
        """
        Forwards the Stability Pool's share of accrued interest revenue.

        ``interest_yield_split`` of the revenue accrued since the last call goes
        to the pool's ``receive_interest`` (minted to the pool when a debt token
        is connected); the remainder is booked as protocol revenue.

        Returns:
            Amount forwarded to the Stability Pool
        """
        revenue = self.accrued_interest_revenue
        if revenue == 0 or self.stability_pool is None:
            return 0

        to_pool = mul_div(revenue, self.config.interest_yield_split, DECIMALS)
        new_protocol_revenue = add_amount(self.protocol_revenue, revenue - to_pool)

        if to_pool > 0:
            if self.debt_token:
                if not self.debt_token.is_minter(self.address):
                    raise UnauthorizedError("Trove manager cannot mint interest revenue")
                # The mint after receive_interest must not fail
                add_amount(self.debt_token.total_supply, to_pool)
                add_amount(self.debt_token.balance_of(self.stability_pool.address), to_pool)
            self.stability_pool.receive_interest(self.address, to_pool)
            if self.debt_token:
                self.debt_token.mint(self.address, self.stability_pool.address, to_pool)

        self.accrued_interest_revenue = 0
        self.protocol_revenue = new_protocol_revenue

        logger.info("Interest revenue forwarded: %d to pool, %d to protocol", to_pool, revenue - to_pool)
        return to_pool

    # --- Redemption ---

    def get_redemption_fee(self) -> int:
        """Returns the current redemption fee rate, never below the floor."""
        return max(self.base_rate, self.config.redemption_fee_floor)

    # --- Interest accrual ---

    def _accrue(self, trove: Trove, now: int) -> Accrual:
        """
        Calculates the trove's debt brought current to ``now``.

        Simple, non-compounding interest on the recorded debt for the time
        since the last accrual. Nothing is written; see ``_apply_accrual``.
        """
        interest = self._pending_interest(trove, now)
        return Accrual(
            interest=interest,
            debt=add_amount(trove.debt, interest),
            total_debt=add_amount(self.total_debt, interest),
            interest_revenue=add_amount(self.accrued_interest_revenue, interest),
        )

    def _pending_interest(self, trove: Trove, now: int) -> int:
        elapsed = checked_sub(now, trove.last_accrual_time)
        if elapsed == 0 or trove.debt == 0 or trove.interest_rate == 0:
            return 0

        return mul_div(
            checked_mul(trove.debt, trove.interest_rate),
            elapsed,
            DECIMALS * self.config.seconds_per_year,
        )

    def _apply_accrual(self, trove: Trove, accrual: Accrual, now: int) -> None:
        """Commits an accrual. The timestamp is stamped even when no interest accrued."""
        trove.debt = accrual.debt
        trove.last_accrual_time = now
        self.total_debt = accrual.total_debt
        self.accrued_interest_revenue = accrual.interest_revenue

        if accrual.interest > 0:
            logger.debug("Trove of %s accrued %d interest", trove.owner, accrual.interest)

    # --- Checks ---

    def _get_active_trove(self, owner) -> Trove:
        trove = self.troves.get(owner)
        if trove is None or not trove.active:
            raise TroveStateError("No active trove")
        return trove

    def _require_valid_rate(self, rate):
        require_amount(rate, "Interest rate")
        if rate < self.config.min_interest_rate:
            raise InvalidArgumentError("Interest rate too low")
        if rate > self.config.max_interest_rate:
            raise InvalidArgumentError("Interest rate too high")

    def _require_min_ratio(self, collateral, debt, price):
        ratio = collateral_ratio(collateral, debt, price)
        if ratio < self.config.min_collateral_ratio:
            raise CollateralRatioError(
                f"Below minimum collateral ratio: {ratio}% < {self.config.min_collateral_ratio}%"
            )

    def _only_owner(self, caller):
        if caller != self.owner:
            raise UnauthorizedError("Only owner")

    # --- Getter functions ---

    def get_trove(self, owner) -> Optional[Trove]:
        return self.troves.get(owner)

    def get_trove_collateral(self, owner) -> int:
        trove = self.troves.get(owner)
        return trove.collateral if trove else 0

    def get_trove_debt(self, owner) -> int:
        """Returns the recorded debt, without interest accrued since the last touch."""
        trove = self.troves.get(owner)
        return trove.debt if trove else 0

    def get_entire_debt(self, owner) -> int:
        """Returns the debt including interest pending at the current time."""
        trove = self.troves.get(owner)
        if trove is None:
            return 0
        return add_amount(trove.debt, self._pending_interest(trove, self.clock.now()))

    def get_trove_interest_rate(self, owner) -> int:
        trove = self.troves.get(owner)
        return trove.interest_rate if trove else 0

    def get_trove_active(self, owner) -> bool:
        trove = self.troves.get(owner)
        return trove.active if trove else False

    def get_collateral_ratio(self, owner) -> int:
        """Current collateral ratio in percent, 0 when the trove has no debt."""
        debt = self.get_entire_debt(owner)
        if debt == 0:
            return 0
        return collateral_ratio(self.troves[owner].collateral, debt, self.price_feed.get_price())

    def get_total_collateral(self) -> int:
        return self.total_collateral

    def get_total_debt(self) -> int:
        return self.total_debt

    def get_trove_count(self) -> int:
        return self.trove_count

    def get_tcr(self) -> int:
        """Total collateral ratio in percent, 0 when the system has no debt."""
        if self.total_debt == 0:
            return 0
        return collateral_ratio(self.total_collateral, self.total_debt, self.price_feed.get_price())

    def get_active_troves(self):
        """Returns the owners of all active troves."""
        return [owner for owner, trove in self.troves.items() if trove.active]
