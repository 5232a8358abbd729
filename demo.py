#!/usr/bin/env python3
"""
demo.py - Walkthrough: a trading session on the simulated exchange

Each step builds on the previous one. Press Enter to advance.

WHAT YOU'LL SEE:
  1: The market     - Instruments, quotes and the background tick
  2: Accounts       - Signup, login and the starting balance
  3: Trading        - Buys, sells and the weighted-average cost basis
  4: Rejections     - Failed trades leave every balance untouched
  5: Persistence    - Logging in again rebuilds the same session

Run:
    python demo.py                 # Interactive mode (press Enter for each step)
    python demo.py --quick         # Run all steps without pausing

Session files are written to a temporary directory and removed afterwards.
"""

from dataclasses import dataclass
import logging
import sys
import tempfile
import time

from marketsim import (
    CsvFileStore, UserDirectory, Ledger, PriceSimulator, SimulatorConfig,
    InsufficientFunds, InsufficientShares, UnknownSymbol,
    create_default_simulator,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the walkthrough. Modify these to experiment."""
    username: str = "alice"
    password: str = "correct horse"
    tick_interval: float = 0.5
    seed: int = 42
    symbol: str = "AAPL"
    first_buy: int = 10
    second_buy: int = 5
    sell_quantity: int = 8


CONFIG = DemoConfig()

QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    """Print a step header with learning objective."""
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    """Print a section header within a step."""
    print(f"\n--- {text} ---\n")


def print_market(simulator: PriceSimulator, limit: int = 8):
    print(f"{'Symbol':<10} {'Name':<22} {'Price':>10} {'Change %':>9}")
    for inst in simulator.list()[:limit]:
        print(f"{inst.symbol:<10} {inst.name:<22} {inst.price:>10.2f} {inst.daily_change_percent:>8.2f}%")


def print_session(ledger: Ledger):
    print(f"Balance: {ledger.balance:.2f}")
    print(f"{'Symbol':<8} {'Qty':>5} {'Avg':>10} {'Price':>10} {'Value':>12} {'P/L':>10}")
    for pos in ledger.positions():
        print(f"{pos.symbol:<8} {pos.quantity:>5} {pos.avg_cost:>10.2f} {pos.price:>10.2f} "
              f"{pos.market_value:>12.2f} {pos.unrealized_pnl:>10.2f}")
    print("History (most recent first):")
    for tx in ledger.transactions():
        print(f"  {tx.timestamp:%Y-%m-%d %H:%M:%S}  {tx!r}")


# ============================================================================
# STEPS
# ============================================================================

def step_01_market() -> PriceSimulator:
    step_header(1, "The Market",
        "Prices random-walk on a background thread; readers get snapshots.")

    config = SimulatorConfig(tick_interval=CONFIG.tick_interval, seed=CONFIG.seed)
    simulator = create_default_simulator(config)
    print(f">>> simulator = create_default_simulator(...)  # {len(simulator)} instruments")
    print_market(simulator)

    ticks = []
    simulator.start(on_tick=lambda: ticks.append(simulator.tick_count))
    time.sleep(CONFIG.tick_interval * 4)

    section_header(f"After {len(ticks)} ticks")
    print_market(simulator)
    return simulator


def step_02_accounts(store: CsvFileStore) -> UserDirectory:
    step_header(2, "Accounts",
        "New users start with a fixed cash balance stored in the user directory.")

    users = UserDirectory(store)
    account = users.signup(CONFIG.username, CONFIG.password)
    print(f">>> users.signup({CONFIG.username!r}, ...) -> {account}")
    print(f"Directory file: {store.users_path}")
    return users


def step_03_trading(users: UserDirectory, simulator: PriceSimulator) -> Ledger:
    step_header(3, "Trading",
        "Each trade reads one quote and charges exactly price x quantity.")

    ledger = users.open_session(CONFIG.username, CONFIG.password, simulator)
    ledger.buy(CONFIG.symbol, CONFIG.first_buy)
    time.sleep(CONFIG.tick_interval * 2)
    ledger.buy(CONFIG.symbol, CONFIG.second_buy)
    ledger.sell(CONFIG.symbol, CONFIG.sell_quantity)

    section_header("Session")
    print_session(ledger)
    return ledger


def step_04_rejections(ledger: Ledger):
    step_header(4, "Rejections",
        "Business-rule failures are raised before any state changes.")

    before = ledger.snapshot()
    attempts = [
        ("buy", "NESTLE", 1000, InsufficientFunds),
        ("sell", CONFIG.symbol, 10_000, InsufficientShares),
        ("buy", "NOPE", 1, UnknownSymbol),
    ]
    for action, symbol, quantity, expected in attempts:
        try:
            getattr(ledger, action)(symbol, quantity)
        except expected as exc:
            print(f"    {type(exc).__name__}: {exc}")
    after = ledger.snapshot()
    print(f"\nState unchanged: {before == after}")


def step_05_persistence(users: UserDirectory, simulator: PriceSimulator, ledger: Ledger):
    step_header(5, "Persistence",
        "Logging in again rebuilds balance, holdings and history from disk.")

    reloaded = users.open_session(CONFIG.username, CONFIG.password, simulator, verbose=False)
    print_session(reloaded)
    print(f"\nBalance matches:  {reloaded.balance == ledger.balance}")
    print(f"Holdings match:   {reloaded.holdings() == ledger.holdings()}")
    print(f"History matches:  {reloaded.transactions() == ledger.transactions()}")


def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")

    with tempfile.TemporaryDirectory(prefix="marketsim-demo-") as data_dir:
        store = CsvFileStore(data_dir)
        simulator = step_01_market()
        try:
            wait_for_enter()
            users = step_02_accounts(store)
            wait_for_enter()
            ledger = step_03_trading(users, simulator)
            wait_for_enter()
            step_04_rejections(ledger)
            wait_for_enter()
            step_05_persistence(users, simulator, ledger)
        finally:
            simulator.stop()

    print("\n" + "=" * 70)
    print("       WALKTHROUGH COMPLETE")
    print("=" * 70)
    print("""
    Next steps:
      - See marketsim/ledger.py for the trade and persistence rules
      - See marketsim/simulator.py for the tick algorithm
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()
