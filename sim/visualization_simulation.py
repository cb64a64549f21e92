"""
Visualization simulation for the Trove Ledger Economic Model.

This script demonstrates the protocol with visualizations.
"""

import logging
import sys
import os

# Add the core directory to the path
sys.path.append(os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "core"))
from economic_model import ProtocolModel


def run_visualization_simulation():
    # Initialize the protocol
    model = ProtocolModel(seed=42)

    print("Creating initial troves...")
    borrowers = model.populate(20, deposit_share=0.6)
    for owner in borrowers:
        trove = model.trove_manager.get_trove(owner)
        print(
            f"{owner}: {trove.collateral / 1e9:,.0f} collateral, "
            f"{trove.debt / 1e9:,.2f} debt, CR: {model.trove_manager.get_collateral_ratio(owner)}%"
        )

    print(f"\nStability pool holds {model.stability_pool.total_deposits / 1e9:,.2f} DEBT")

    # Run a simulation with price movements and plot results
    print("\nRunning simulation with visualizations...")
    results = model.simulate_market_scenario(30, price_volatility=0.01, plot_results=True)

    print("\nSimulation Results:")
    for key, value in results.items():
        print(f"  {key}: {value}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")
    run_visualization_simulation()
