"""
Simulation Example for the Trove Ledger Economic Model.

This script walks through a liquidation cascade step by step: borrowers open
troves, fund the Stability Pool, the collateral price slides hour by hour, and
depositors settle their collateral gains and debt losses afterwards.
"""

import logging
import sys
import os

# Add the core directory to the path
sys.path.append(os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "core"))
from economic_model import ProtocolModel, HOUR
from fixed_point import DECIMALS


def units(amount):
    return amount / DECIMALS


def print_state(model):
    tm = model.trove_manager
    sp = model.stability_pool
    print(f"  Price: ${units(model.price_feed.current_price):.4f}")
    print(f"  Active troves: {tm.get_trove_count()}")
    print(f"  Total collateral: {units(tm.get_total_collateral()):,.2f}")
    print(f"  Total debt: {units(tm.get_total_debt()):,.2f}")
    print(f"  Total collateral ratio: {tm.get_tcr()}%")
    print(f"  Stability pool deposits: {units(sp.get_total_deposits()):,.2f}")
    print(f"  Stability pool collateral: {units(sp.get_collateral_balance()):,.2f}")


def run_liquidation_cascade():
    print("=== Running Liquidation Cascade ===")
    model = ProtocolModel(seed=7)
    tm = model.trove_manager
    sp = model.stability_pool

    print("\n--- Opening troves ---")
    rate = 50_000_000  # 5%
    risky = [("alice", 3_100), ("bob", 3_300), ("carol", 3_600)]
    for owner, collateral_units in risky:
        model.open_trove(owner, collateral_units * DECIMALS, 100 * DECIMALS, rate)
        print(f"  {owner}: {collateral_units} collateral, 100 debt, ratio {tm.get_collateral_ratio(owner)}%")

    # A well collateralized borrower who funds the pool
    model.open_trove("whale", 200_000 * DECIMALS, 2_000 * DECIMALS, rate)
    model.provide_to_pool("whale", 1_500 * DECIMALS)
    print("  whale: 200000 collateral, 2000 debt, 1500 deposited to the pool")

    print("\nInitial state:")
    print_state(model)

    # The feed only accepts prices within 5% of its TWAP, so the slide is gradual
    print("\n--- Sliding the price down ---")
    for hour in range(1, 121):
        model.advance_time(HOUR)
        accepted = model.update_price(model.price_feed.current_price * 0.95)
        for values in model.liquidate_undercollateralized():
            print(
                f"  hour {hour}: liquidated {values.owner} at ${units(accepted):.4f} "
                f"(debt {units(values.entire_debt):.2f}, collateral to pool {units(values.coll_to_send_to_sp):.2f})"
            )
        if hour % 24 == 0:
            print(f"  hour {hour}: price ${units(accepted):.4f}")

    print("\n--- Whale settles with the pool ---")
    settlement = sp.claim_rewards("whale")
    print(f"  Collateral gain: {units(settlement.collateral_gain):,.2f}")
    print(f"  Debt loss: {units(settlement.debt_loss):,.2f}")
    print(f"  Remaining deposit: {units(sp.get_deposit('whale')):,.2f}")

    print("\nFinal state:")
    print_state(model)
    print(f"  Accounting consistent: {model.accounting_matches()}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")
    run_liquidation_cascade()
