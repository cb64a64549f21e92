"""
Stability Pool Model for the Trove Ledger.

This module simulates the StabilityPool contract which holds debt tokens deposited by Stability Pool depositors.
When a trove is liquidated, the Stability Pool offsets the debt and receives collateral as compensation.

Liquidation proceeds are distributed in O(1) per operation: ``offset`` only bumps
running per-unit sums, and each depositor realises their share lazily on their
next interaction by diffing the sums against the snapshot taken at their last one.
"""

import logging
from dataclasses import dataclass

from fixed_point import (
    PRECISION,
    add_amount,
    checked_add,
    checked_sub,
    mul_div,
    require_amount,
    require_positive,
)
from protocol_errors import InsufficientBalanceError, UnauthorizedError

logger = logging.getLogger(__name__)


@dataclass
class Deposit:
    """A depositor's recorded deposit and the running sums it was last settled against."""
    amount: int = 0
    collateral_snapshot: int = 0  # cumulative_collateral_per_unit at last settlement
    loss_snapshot: int = 0  # cumulative_loss_per_unit at last settlement
    interest_snapshot: int = 0  # cumulative_interest_per_unit at last settlement


@dataclass
class Settlement:
    """
    Outcome of settling a deposit against the current running sums.

    Computed without touching pool state; the ``new_*`` fields are the values the
    pool takes on once the settlement is applied.
    """
    depositor: object
    collateral_gain: int = 0
    debt_loss: int = 0
    interest_gain: int = 0
    new_deposit: int = 0
    new_collateral_balance: int = 0
    new_interest_gains_owed: int = 0
    new_collateral_paid: int = 0
    new_interest_paid: int = 0


class StabilityPool:
    """
    Simulates the StabilityPool contract which holds deposits and absorbs liquidations.
    """

    def __init__(self, trove_manager, address="stability_pool", debt_token=None):
        self.address = address

        # Identity allowed to call offset and receive_interest
        self.trove_manager = trove_manager

        # Optional token moved on deposit, withdrawal, payout and offset
        self.debt_token = debt_token

        # Deposits
        self.deposits = {}  # address -> Deposit
        self.total_deposits = 0

        # Running per-unit sums, scaled by PRECISION; never decrease
        self.cumulative_collateral_per_unit = 0
        self.cumulative_loss_per_unit = 0
        self.cumulative_interest_per_unit = 0

        # Collateral gains from liquidations not yet paid to depositors
        self.collateral_balance = 0

        # Interest received while there were no deposits to distribute it to
        self.pending_interest_revenue = 0

        # Interest distributed through the running sum but not yet paid out
        self.interest_gains_owed = 0

        # Cumulative payouts per depositor
        self.collateral_paid = {}  # address -> collateral
        self.interest_paid = {}  # address -> debt tokens

    # --- Depositor operations ---

    def deposit(self, depositor, amount):
        """
        Adds ``amount`` to the depositor's deposit.

        Pending gains and losses are settled first and the snapshot is refreshed.

        Args:
            depositor: Address of the depositor
            amount: Amount to deposit

        Returns:
            The settlement applied before the deposit
        """
        require_positive(amount)

        settlement = self._compute_settlement(depositor)
        new_deposit = add_amount(settlement.new_deposit, amount)
        new_total = add_amount(self.total_deposits, amount)
        interest_per_unit = self._pending_interest_per_unit(new_total)

        # Move tokens before committing; a failed transfer leaves the pool untouched
        if self.debt_token:
            self.debt_token.transfer(depositor, self.address, amount)
            if settlement.interest_gain > 0:
                self.debt_token.transfer(self.address, depositor, settlement.interest_gain)

        self._apply_settlement(settlement)
        self.deposits[depositor].amount = new_deposit
        self.total_deposits = new_total

        # Interest that arrived while the pool was empty is now spread over the deposits
        self._distribute_pending_interest(interest_per_unit)

        logger.info("Deposit of %d by %s (balance %d, pool %d)", amount, depositor, new_deposit, new_total)
        return settlement

    def withdraw(self, depositor, amount):
        """
        Withdraws ``amount`` from the depositor's settled deposit.

        Args:
            depositor: Address of the depositor
            amount: Amount to withdraw

        Returns:
            The settlement applied before the withdrawal

        Raises:
            InsufficientBalanceError: If the settled deposit is smaller than ``amount``
        """
        require_positive(amount)

        settlement = self._compute_settlement(depositor)
        if amount > settlement.new_deposit:
            raise InsufficientBalanceError("Insufficient deposit")

        new_deposit = settlement.new_deposit - amount
        new_total = checked_sub(self.total_deposits, amount)

        if self.debt_token:
            self.debt_token.transfer(self.address, depositor, amount + settlement.interest_gain)

        self._apply_settlement(settlement)
        self.deposits[depositor].amount = new_deposit
        self.total_deposits = new_total

        logger.info("Withdrawal of %d by %s (balance %d, pool %d)", amount, depositor, new_deposit, new_total)
        return settlement

    def claim_rewards(self, depositor):
        """
        Settles the depositor's pending collateral gain, interest gain and debt loss.

        Returns:
            The settlement applied
        """
        settlement = self._compute_settlement(depositor)
        if depositor not in self.deposits:
            return settlement

        if self.debt_token and settlement.interest_gain > 0:
            self.debt_token.transfer(self.address, depositor, settlement.interest_gain)

        self._apply_settlement(settlement)
        return settlement

    # --- Trove manager entry points ---

    def offset(self, caller, debt_to_offset, collateral_to_add):
        """
        Offsets debt with deposits in the Stability Pool during liquidations.

        The absorbed debt is removed from ``total_deposits`` immediately, while each
        depositor's own balance only shrinks at their next settlement.

        Args:
            caller: Must be the trove manager
            debt_to_offset: Amount of debt to cancel with deposits in the pool
            collateral_to_add: Amount of collateral to add to the pool

        Returns:
            True if the pool absorbed the liquidation, False if it was empty
        """
        self._only_trove_manager(caller)
        require_amount(debt_to_offset, "Debt to offset")
        require_amount(collateral_to_add, "Collateral to add")

        total = self.total_deposits
        if total == 0:
            logger.warning(
                "Offset of %d debt / %d collateral ignored: pool is empty",
                debt_to_offset, collateral_to_add,
            )
            return False

        # Per-unit gains and losses
        collateral_per_unit = mul_div(collateral_to_add, PRECISION, total)
        loss_per_unit = mul_div(debt_to_offset, PRECISION, total)

        new_cumulative_collateral = checked_add(self.cumulative_collateral_per_unit, collateral_per_unit)
        new_cumulative_loss = checked_add(self.cumulative_loss_per_unit, loss_per_unit)
        new_collateral_balance = add_amount(self.collateral_balance, collateral_to_add)
        new_total = checked_sub(total, debt_to_offset)

        # Burn the debt that was absorbed
        if self.debt_token and debt_to_offset > 0:
            self.debt_token.burn(self.address, self.address, debt_to_offset)

        self.cumulative_collateral_per_unit = new_cumulative_collateral
        self.cumulative_loss_per_unit = new_cumulative_loss
        self.collateral_balance = new_collateral_balance
        self.total_deposits = new_total

        logger.info(
            "Offset %d debt against pool, %d collateral added (pool %d)",
            debt_to_offset, collateral_to_add, new_total,
        )
        return True

    def receive_interest(self, caller, amount):
        """
        Receives interest revenue forwarded by the trove manager.

        The revenue joins ``pending_interest_revenue``. While the pool holds
        deposits the pending amount is spread over them through the interest
        running sum; otherwise it waits for the next deposit.

        Args:
            caller: Must be the trove manager
            amount: Amount of interest revenue

        Returns:
            Amount distributed to depositors by this call
        """
        self._only_trove_manager(caller)
        require_amount(amount)

        new_pending = add_amount(self.pending_interest_revenue, amount)

        if self.total_deposits == 0:
            self.pending_interest_revenue = new_pending
            if new_pending > 0:
                logger.warning("Interest revenue of %d pending until the pool has deposits", new_pending)
            return 0

        interest_per_unit = self._pending_interest_per_unit(self.total_deposits, new_pending)
        self.pending_interest_revenue = new_pending
        return self._distribute_pending_interest(interest_per_unit)

    # --- Internal ---

    def _compute_settlement(self, depositor):
        """
        Calculates a depositor's gains and losses since their last snapshot.

        Args:
            depositor: Address of the depositor

        Returns:
            Settlement with the values to commit
        """
        record = self.deposits.get(depositor, Deposit())
        deposit = record.amount

        settlement = Settlement(
            depositor=depositor,
            new_deposit=deposit,
            new_collateral_balance=self.collateral_balance,
            new_interest_gains_owed=self.interest_gains_owed,
            new_collateral_paid=self.collateral_paid.get(depositor, 0),
            new_interest_paid=self.interest_paid.get(depositor, 0),
        )
        if deposit == 0:
            return settlement

        settlement.collateral_gain = self._accrued(
            deposit, self.cumulative_collateral_per_unit, record.collateral_snapshot
        )
        settlement.debt_loss = self._accrued(
            deposit, self.cumulative_loss_per_unit, record.loss_snapshot
        )

        # Flat subtraction, floored at zero
        if settlement.debt_loss > 0:
            settlement.new_deposit = deposit - settlement.debt_loss if deposit > settlement.debt_loss else 0

        # Interest accrues on the deposit left after losses, capped at what the pool owes
        settlement.interest_gain = min(
            self._accrued(settlement.new_deposit, self.cumulative_interest_per_unit, record.interest_snapshot),
            self.interest_gains_owed,
        )

        if settlement.collateral_gain > 0:
            settlement.new_collateral_balance = checked_sub(self.collateral_balance, settlement.collateral_gain)
            settlement.new_collateral_paid = add_amount(settlement.new_collateral_paid, settlement.collateral_gain)

        if settlement.interest_gain > 0:
            settlement.new_interest_gains_owed = checked_sub(self.interest_gains_owed, settlement.interest_gain)
            settlement.new_interest_paid = add_amount(settlement.new_interest_paid, settlement.interest_gain)

        return settlement

    @staticmethod
    def _accrued(deposit, cumulative, snapshot):
        return mul_div(deposit, checked_sub(cumulative, snapshot), PRECISION)

    def _apply_settlement(self, settlement):
        """Commits a computed settlement and refreshes the depositor's snapshots."""
        depositor = settlement.depositor
        if depositor not in self.deposits:
            self.deposits[depositor] = Deposit()

        self.deposits[depositor].amount = settlement.new_deposit
        self.collateral_balance = settlement.new_collateral_balance
        self.interest_gains_owed = settlement.new_interest_gains_owed

        if settlement.collateral_gain > 0:
            self.collateral_paid[depositor] = settlement.new_collateral_paid
        if settlement.interest_gain > 0:
            self.interest_paid[depositor] = settlement.new_interest_paid

        if settlement.collateral_gain or settlement.debt_loss or settlement.interest_gain:
            logger.debug(
                "Settled %s: collateral gain %d, debt loss %d, interest gain %d",
                depositor, settlement.collateral_gain, settlement.debt_loss, settlement.interest_gain,
            )

        self._update_snapshots(depositor)

    def _update_snapshots(self, depositor):
        record = self.deposits[depositor]
        record.collateral_snapshot = self.cumulative_collateral_per_unit
        record.loss_snapshot = self.cumulative_loss_per_unit
        record.interest_snapshot = self.cumulative_interest_per_unit

    def _pending_interest_per_unit(self, total_deposits, pending=None):
        """Per-unit increase that distributing ``pending`` interest over ``total_deposits`` yields."""
        if pending is None:
            pending = self.pending_interest_revenue
        if pending == 0 or total_deposits == 0:
            return 0
        per_unit = mul_div(pending, PRECISION, total_deposits)
        # Overflow surfaces here, before any caller commits
        checked_add(self.cumulative_interest_per_unit, per_unit)
        add_amount(self.interest_gains_owed, pending)
        return per_unit

    def _distribute_pending_interest(self, interest_per_unit):
        """Moves pending interest into the running sum. Returns the amount distributed."""
        if self.pending_interest_revenue == 0 or self.total_deposits == 0:
            return 0

        distributed = self.pending_interest_revenue
        self.cumulative_interest_per_unit += interest_per_unit
        self.interest_gains_owed += distributed
        self.pending_interest_revenue = 0

        logger.info("Distributed %d interest revenue over %d deposits", distributed, self.total_deposits)
        return distributed

    def _only_trove_manager(self, caller):
        if caller != self.trove_manager:
            raise UnauthorizedError("Only TroveManager")

    # --- Views ---

    def get_deposit(self, depositor):
        """Returns the recorded (unsettled) deposit."""
        return self.deposits.get(depositor, Deposit()).amount

    def get_total_deposits(self):
        """Returns the total deposits in the Stability Pool."""
        return self.total_deposits

    def get_collateral_balance(self):
        """Returns the collateral held for depositors."""
        return self.collateral_balance

    def get_pending_interest_revenue(self):
        return self.pending_interest_revenue

    def get_interest_gains_owed(self):
        return self.interest_gains_owed

    def get_pending_collateral_gain(self, depositor):
        """Calculates a depositor's unsettled collateral gain."""
        return self._compute_settlement(depositor).collateral_gain

    def get_pending_debt_loss(self, depositor):
        """Calculates a depositor's unsettled debt loss."""
        return self._compute_settlement(depositor).debt_loss

    def get_pending_interest_gain(self, depositor):
        """Calculates a depositor's unsettled interest gain."""
        return self._compute_settlement(depositor).interest_gain

    def get_compounded_deposit(self, depositor):
        """Deposit the depositor would hold after settling now."""
        return self._compute_settlement(depositor).new_deposit
