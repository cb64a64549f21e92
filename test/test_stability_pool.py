"""
Unit tests for the StabilityPool module.

Amounts here are small raw integers; the pool works on any unit as long as
the running sums are scaled by PRECISION.
"""

import unittest
import sys
import os

# Add the core directory to the path
sys.path.append(os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "core"))

from fixed_point import PRECISION
from protocol_errors import (
    ArithmeticFault,
    InsufficientBalanceError,
    InvalidArgumentError,
    UnauthorizedError,
)
from stability_pool import StabilityPool
from token_ledger import TokenLedger


class TestStabilityPool(unittest.TestCase):
    def setUp(self):
        """Set up the test environment."""
        self.trove_manager = "trove_manager"
        self.stability_pool = StabilityPool(self.trove_manager)

        # Users for testing
        self.user_a = "UserA"
        self.user_b = "UserB"
        self.user_c = "UserC"

    def test_initial_state(self):
        self.assertEqual(self.stability_pool.get_total_deposits(), 0)
        self.assertEqual(self.stability_pool.get_collateral_balance(), 0)
        self.assertEqual(self.stability_pool.get_deposit(self.user_a), 0)
        self.assertEqual(self.stability_pool.get_pending_collateral_gain(self.user_a), 0)

    def test_deposit(self):
        self.stability_pool.deposit(self.user_a, 1000)
        self.stability_pool.deposit(self.user_a, 500)

        self.assertEqual(self.stability_pool.get_deposit(self.user_a), 1500)
        self.assertEqual(self.stability_pool.get_total_deposits(), 1500)

    def test_deposit_rejects_invalid_amounts(self):
        with self.assertRaises(InvalidArgumentError):
            self.stability_pool.deposit(self.user_a, 0)
        with self.assertRaises(InvalidArgumentError):
            self.stability_pool.deposit(self.user_a, -5)

        self.assertEqual(self.stability_pool.get_total_deposits(), 0)
        self.assertNotIn(self.user_a, self.stability_pool.deposits)

    def test_offset_two_equal_depositors(self):
        """Two depositors of 1000 share an offset of 200 debt and 20 collateral equally."""
        self.stability_pool.deposit(self.user_a, 1000)
        self.stability_pool.deposit(self.user_b, 1000)

        absorbed = self.stability_pool.offset(self.trove_manager, 200, 20)

        self.assertTrue(absorbed)
        # The pool total shrinks at once; individual deposits only on settlement
        self.assertEqual(self.stability_pool.get_total_deposits(), 1800)
        self.assertEqual(self.stability_pool.get_deposit(self.user_a), 1000)
        self.assertEqual(self.stability_pool.get_collateral_balance(), 20)
        self.assertEqual(self.stability_pool.cumulative_collateral_per_unit, 20 * PRECISION // 2000)
        self.assertEqual(self.stability_pool.cumulative_loss_per_unit, 200 * PRECISION // 2000)

        settlement = self.stability_pool.claim_rewards(self.user_a)

        self.assertEqual(settlement.collateral_gain, 10)
        self.assertEqual(settlement.debt_loss, 100)
        self.assertEqual(self.stability_pool.get_deposit(self.user_a), 900)
        self.assertEqual(self.stability_pool.get_collateral_balance(), 10)
        self.assertEqual(self.stability_pool.collateral_paid[self.user_a], 10)

        # Settling again yields nothing
        again = self.stability_pool.claim_rewards(self.user_a)
        self.assertEqual(again.collateral_gain, 0)
        self.assertEqual(again.debt_loss, 0)

        self.stability_pool.claim_rewards(self.user_b)
        self.assertEqual(self.stability_pool.get_deposit(self.user_b), 900)
        self.assertEqual(self.stability_pool.get_collateral_balance(), 0)

    def test_proportional_gains(self):
        """Each depositor's share is within rounding of deposit / total."""
        self.stability_pool.deposit(self.user_a, 300)
        self.stability_pool.deposit(self.user_b, 700)

        self.stability_pool.offset(self.trove_manager, 100, 33)

        gain_a = self.stability_pool.get_pending_collateral_gain(self.user_a)
        gain_b = self.stability_pool.get_pending_collateral_gain(self.user_b)
        self.assertLessEqual(abs(gain_a - 33 * 300 / 1000), 1)
        self.assertLessEqual(abs(gain_b - 33 * 700 / 1000), 1)
        self.assertLessEqual(gain_a + gain_b, 33)

        self.assertEqual(self.stability_pool.get_pending_debt_loss(self.user_a), 30)
        self.assertEqual(self.stability_pool.get_pending_debt_loss(self.user_b), 70)

    def test_running_sums_never_decrease(self):
        self.stability_pool.deposit(self.user_a, 10_000)
        previous = (0, 0)

        for debt, collateral in [(100, 50), (0, 7), (250, 0), (1, 1)]:
            self.stability_pool.offset(self.trove_manager, debt, collateral)
            current = (
                self.stability_pool.cumulative_collateral_per_unit,
                self.stability_pool.cumulative_loss_per_unit,
            )
            self.assertGreaterEqual(current[0], previous[0])
            self.assertGreaterEqual(current[1], previous[1])
            previous = current

    def test_late_depositor_gets_no_past_gains(self):
        """A new deposit is snapshotted at the current running sums."""
        self.stability_pool.deposit(self.user_a, 1000)
        self.stability_pool.offset(self.trove_manager, 100, 50)

        self.stability_pool.deposit(self.user_c, 500)

        self.assertEqual(self.stability_pool.get_pending_collateral_gain(self.user_c), 0)
        self.assertEqual(self.stability_pool.get_pending_debt_loss(self.user_c), 0)
        self.assertEqual(self.stability_pool.get_pending_collateral_gain(self.user_a), 50)

    def test_flat_loss_after_pool_composition_changes(self):
        """
        Losses are subtracted at the deposit's recorded size, not compounded.

        A depositor who already lost half the deposit is charged the second
        loss on the full original amount, so the settled deposits no longer
        add up to the pool total.
        """
        self.stability_pool.deposit(self.user_a, 1000)
        self.stability_pool.offset(self.trove_manager, 500, 0)

        self.stability_pool.deposit(self.user_b, 500)
        self.assertEqual(self.stability_pool.get_total_deposits(), 1000)

        self.stability_pool.offset(self.trove_manager, 500, 0)
        self.assertEqual(self.stability_pool.get_total_deposits(), 500)

        # A proportional model would leave both at 250
        self.assertEqual(self.stability_pool.get_compounded_deposit(self.user_a), 0)
        self.assertEqual(self.stability_pool.get_compounded_deposit(self.user_b), 250)

    def test_loss_floored_at_zero(self):
        self.stability_pool.deposit(self.user_a, 100)
        self.stability_pool.offset(self.trove_manager, 100, 0)

        self.assertEqual(self.stability_pool.get_total_deposits(), 0)
        settlement = self.stability_pool.claim_rewards(self.user_a)
        self.assertEqual(settlement.debt_loss, 100)
        self.assertEqual(self.stability_pool.get_deposit(self.user_a), 0)

    def test_withdraw_settles_first(self):
        self.stability_pool.deposit(self.user_a, 1000)
        self.stability_pool.deposit(self.user_b, 1000)
        self.stability_pool.offset(self.trove_manager, 200, 20)

        settlement = self.stability_pool.withdraw(self.user_a, 900)

        self.assertEqual(settlement.collateral_gain, 10)
        self.assertEqual(self.stability_pool.get_deposit(self.user_a), 0)
        self.assertEqual(self.stability_pool.get_total_deposits(), 900)

    def test_withdraw_more_than_settled_deposit(self):
        """The check is against the deposit after losses; a failure changes nothing."""
        self.stability_pool.deposit(self.user_a, 1000)
        self.stability_pool.deposit(self.user_b, 1000)
        self.stability_pool.offset(self.trove_manager, 200, 20)

        with self.assertRaises(InsufficientBalanceError) as context:
            self.stability_pool.withdraw(self.user_a, 901)

        self.assertIn("insufficient deposit", str(context.exception).lower())
        self.assertEqual(self.stability_pool.get_deposit(self.user_a), 1000)
        self.assertEqual(self.stability_pool.get_total_deposits(), 1800)
        self.assertEqual(self.stability_pool.get_collateral_balance(), 20)
        self.assertEqual(self.stability_pool.deposits[self.user_a].collateral_snapshot, 0)

    def test_withdraw_without_deposit(self):
        with self.assertRaises(InsufficientBalanceError):
            self.stability_pool.withdraw(self.user_a, 1)

    def test_offset_with_empty_pool(self):
        """An empty pool absorbs nothing and reports it."""
        absorbed = self.stability_pool.offset(self.trove_manager, 100, 10)

        self.assertFalse(absorbed)
        self.assertEqual(self.stability_pool.cumulative_collateral_per_unit, 0)
        self.assertEqual(self.stability_pool.cumulative_loss_per_unit, 0)
        self.assertEqual(self.stability_pool.get_collateral_balance(), 0)

    def test_offset_only_trove_manager(self):
        self.stability_pool.deposit(self.user_a, 1000)

        with self.assertRaises(UnauthorizedError) as context:
            self.stability_pool.offset(self.user_a, 100, 10)

        self.assertIn("only trovemanager", str(context.exception).lower())
        self.assertEqual(self.stability_pool.get_total_deposits(), 1000)

    def test_offset_larger_than_pool(self):
        """Debt beyond the pool's deposits traps without changing anything."""
        self.stability_pool.deposit(self.user_a, 100)

        with self.assertRaises(ArithmeticFault):
            self.stability_pool.offset(self.trove_manager, 101, 5)

        self.assertEqual(self.stability_pool.get_total_deposits(), 100)
        self.assertEqual(self.stability_pool.cumulative_loss_per_unit, 0)
        self.assertEqual(self.stability_pool.get_collateral_balance(), 0)

    def test_collateral_payout_underflow_traps(self):
        """Paying more collateral than the pool holds is an arithmetic fault."""
        self.stability_pool.deposit(self.user_a, 1000)
        self.stability_pool.offset(self.trove_manager, 0, 20)
        self.stability_pool.collateral_balance = 5

        with self.assertRaises(ArithmeticFault):
            self.stability_pool.claim_rewards(self.user_a)

        self.assertEqual(self.stability_pool.deposits[self.user_a].collateral_snapshot, 0)

    # --- Interest ---

    def test_receive_interest_distributes_over_deposits(self):
        self.stability_pool.deposit(self.user_a, 1000)
        self.stability_pool.deposit(self.user_b, 1000)

        distributed = self.stability_pool.receive_interest(self.trove_manager, 50)

        self.assertEqual(distributed, 50)
        self.assertEqual(self.stability_pool.get_interest_gains_owed(), 50)
        self.assertEqual(self.stability_pool.get_pending_interest_gain(self.user_a), 25)
        self.assertEqual(self.stability_pool.get_pending_interest_gain(self.user_b), 25)

        settlement = self.stability_pool.claim_rewards(self.user_a)
        self.assertEqual(settlement.interest_gain, 25)
        self.assertEqual(self.stability_pool.interest_paid[self.user_a], 25)
        self.assertEqual(self.stability_pool.get_interest_gains_owed(), 25)

        # Interest does not change the deposit itself
        self.assertEqual(self.stability_pool.get_deposit(self.user_a), 1000)

    def test_receive_interest_while_empty_waits_for_deposit(self):
        distributed = self.stability_pool.receive_interest(self.trove_manager, 100)

        self.assertEqual(distributed, 0)
        self.assertEqual(self.stability_pool.get_pending_interest_revenue(), 100)

        self.stability_pool.deposit(self.user_a, 1000)

        self.assertEqual(self.stability_pool.get_pending_interest_revenue(), 0)
        self.assertEqual(self.stability_pool.get_interest_gains_owed(), 100)
        self.assertEqual(self.stability_pool.get_pending_interest_gain(self.user_a), 100)

    def test_interest_after_offset_accrues_on_reduced_deposits(self):
        """Interest received after an offset is shared by the deposits left after losses."""
        self.stability_pool.deposit(self.user_a, 1000)
        self.stability_pool.deposit(self.user_b, 1000)
        self.stability_pool.offset(self.trove_manager, 200, 20)

        self.stability_pool.receive_interest(self.trove_manager, 180)

        settlement_a = self.stability_pool.claim_rewards(self.user_a)
        settlement_b = self.stability_pool.claim_rewards(self.user_b)

        self.assertEqual(settlement_a.interest_gain, 90)
        self.assertEqual(settlement_b.interest_gain, 90)
        self.assertEqual(self.stability_pool.get_interest_gains_owed(), 0)

        # Both deposits stay usable
        self.stability_pool.withdraw(self.user_b, 900)
        self.stability_pool.deposit(self.user_a, 100)
        self.assertEqual(self.stability_pool.get_deposit(self.user_a), 1000)
        self.assertEqual(self.stability_pool.get_total_deposits(), 1000)

    def test_interest_gain_never_exceeds_owed(self):
        """Claims after interest and an offset never ask for more than the pool owes."""
        self.stability_pool.deposit(self.user_a, 300)
        self.stability_pool.deposit(self.user_b, 700)
        self.stability_pool.receive_interest(self.trove_manager, 7)
        self.stability_pool.offset(self.trove_manager, 333, 0)
        self.stability_pool.receive_interest(self.trove_manager, 11)

        total_paid = 0
        for user in (self.user_a, self.user_b):
            total_paid += self.stability_pool.claim_rewards(user).interest_gain

        self.assertLessEqual(total_paid, 18)
        self.assertEqual(self.stability_pool.get_interest_gains_owed(), 18 - total_paid)

    def test_claim_without_deposit_leaves_no_record(self):
        settlement = self.stability_pool.claim_rewards(self.user_c)

        self.assertEqual(settlement.collateral_gain, 0)
        self.assertEqual(settlement.interest_gain, 0)
        self.assertNotIn(self.user_c, self.stability_pool.deposits)

    def test_receive_interest_only_trove_manager(self):
        with self.assertRaises(UnauthorizedError):
            self.stability_pool.receive_interest(self.user_a, 100)
        self.assertEqual(self.stability_pool.get_pending_interest_revenue(), 0)


class TestStabilityPoolWithToken(unittest.TestCase):
    def setUp(self):
        self.debt_token = TokenLedger("deployer")
        self.stability_pool = StabilityPool("trove_manager", debt_token=self.debt_token)
        self.debt_token.add_minter("deployer", "trove_manager")
        self.debt_token.add_minter("deployer", self.stability_pool.address)

        self.debt_token.mint("trove_manager", "UserA", 1000)

    def test_deposit_moves_tokens_into_pool(self):
        self.stability_pool.deposit("UserA", 600)

        self.assertEqual(self.debt_token.balance_of("UserA"), 400)
        self.assertEqual(self.debt_token.balance_of(self.stability_pool.address), 600)

    def test_deposit_without_tokens_changes_nothing(self):
        with self.assertRaises(InsufficientBalanceError):
            self.stability_pool.deposit("UserB", 100)

        self.assertEqual(self.stability_pool.get_total_deposits(), 0)
        self.assertNotIn("UserB", self.stability_pool.deposits)

    def test_offset_burns_absorbed_debt(self):
        self.stability_pool.deposit("UserA", 1000)

        self.stability_pool.offset("trove_manager", 200, 40)

        self.assertEqual(self.debt_token.balance_of(self.stability_pool.address), 800)
        self.assertEqual(self.debt_token.total_supply, 800)

        self.stability_pool.withdraw("UserA", 800)
        self.assertEqual(self.debt_token.balance_of("UserA"), 800)
        self.assertEqual(self.debt_token.balance_of(self.stability_pool.address), 0)
        self.assertEqual(self.stability_pool.collateral_paid["UserA"], 40)

    def test_interest_paid_in_tokens(self):
        self.stability_pool.deposit("UserA", 1000)

        # The trove manager mints the interest to the pool alongside the call
        self.stability_pool.receive_interest("trove_manager", 30)
        self.debt_token.mint("trove_manager", self.stability_pool.address, 30)

        self.stability_pool.claim_rewards("UserA")
        self.assertEqual(self.debt_token.balance_of("UserA"), 30)
        self.assertEqual(self.debt_token.balance_of(self.stability_pool.address), 1000)


if __name__ == "__main__":
    unittest.main()
