#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Learn the Tax Ledger Step by Step

A guided walk through the procrastination-tax escrow ledger. Each step builds
on the previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:   Foundation      - The empty ledger, scheduling, overpayment
  4-6:   The Tax         - On-time execution, late execution, the cap
  7-8:   Administration  - Cancellation, withdrawals, beneficiary
  9-10:  Guarantees      - Rejections, conservation, replay

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
import sys

from taxledger import (
    TaxLedger, TaxConfig, PayoutRail, LedgerError,
    tax_rate,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    start_time: datetime = datetime(2025, 1, 1, 9, 0, 0)
    base_tax_rate: int = 100        # 1% per day^1.5
    max_tax_rate: int = 5000        # 50% cap

    rent: int = 1_200_00
    gym: int = 45_00
    gym_deposit: int = 50_00
    invoice: int = 10_000_00


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
    print(f"\n--- {text} ---\n")


def show_books(ledger: TaxLedger):
    info = ledger.get_contract_info()
    print(f"Total held:    {info.total_balance}")
    print(f"Tax pool:      {info.available_tax}")
    print(f"User funds:    {info.user_funds}")


# ============================================================================
# PHASE 1: FOUNDATION (Steps 1-3)
# ============================================================================

def step_01_empty_ledger():
    """Create an empty ledger with a payout rail."""
    step_header(1, "The Empty Ledger",
        "A ledger has an owner, a clock, a tax configuration and a payout rail.")

    print(">>> rail = PayoutRail()")
    print(">>> ledger = TaxLedger('household', owner='admin', transfer=rail, ...)")
    rail = PayoutRail()
    ledger = TaxLedger(
        "household",
        owner="admin",
        config=TaxConfig(CONFIG.base_tax_rate, CONFIG.max_tax_rate),
        transfer=rail,
        initial_time=CONFIG.start_time,
        verbose=True,
    )

    section_header("Initial State")
    print(f"Ledger:        {ledger!r}")
    print(f"Owner:         {ledger.owner}")
    print(f"Beneficiary:   {ledger.beneficiary}")
    print(f"Current time:  {ledger.current_time}")
    show_books(ledger)
    return ledger, rail


def step_02_schedule(ledger: TaxLedger):
    """Escrow a payment for later."""
    step_header(2, "Scheduling",
        "schedule() locks value in escrow and returns a content-derived id.")

    print(f">>> rent = ledger.schedule('alice', {CONFIG.rent}, {CONFIG.rent}, 'rent')")
    rent = ledger.schedule("alice", CONFIG.rent, CONFIG.rent, "rent")

    section_header("The Record")
    print(ledger.get_transaction(rent))
    print(f"\nId: {rent}")
    print("""
    The id is a SHA-256 over the ledger name, owner, amount, time and a
    sequence number. Schedule the same thing twice and you get two ids.
    """)
    show_books(ledger)
    return rent


def step_03_overpayment(ledger: TaxLedger):
    """Deposit more than the amount."""
    step_header(3, "Overpayment",
        "Any excess deposit becomes a spare balance the owner can withdraw.")

    print(f">>> gym = ledger.schedule('bob', {CONFIG.gym}, {CONFIG.gym_deposit}, 'gym')")
    gym = ledger.schedule("bob", CONFIG.gym, CONFIG.gym_deposit, "gym")
    print(f"\nBob's spare balance: {ledger.get_spare_balance('bob')}")
    show_books(ledger)
    return gym


# ============================================================================
# PHASE 2: THE TAX (Steps 4-6)
# ============================================================================

def step_04_on_time(ledger: TaxLedger, gym: str):
    """Execute on the same day."""
    step_header(4, "On-Time Execution",
        "Within the first whole day the tax is zero.")

    ledger.advance_time(ledger.current_time + timedelta(hours=23, minutes=59))
    print(f"Days passed: {ledger.get_days_passed(gym)}")
    print(f"Tax rate:    {ledger.get_current_tax_rate(gym)}bp")
    print("\n>>> ledger.execute('bob', gym)")
    ledger.execute("bob", gym)


def step_05_late(ledger: TaxLedger, rent: str):
    """Execute a few days late."""
    step_header(5, "Late Execution",
        "The rate grows as base * days * isqrt(days).")

    section_header("Rate Schedule")
    for days in (0, 1, 2, 3, 4, 9, 16, 30):
        rate = tax_rate(CONFIG.base_tax_rate, days, CONFIG.max_tax_rate)
        print(f"  day {days:>3}: {rate:>5}bp")

    ledger.advance_time(ledger.current_time + timedelta(days=3))
    details = ledger.get_transaction_details(rent)
    section_header("Rent, Three Days Later")
    print(f"Days passed:   {details.days_passed}")
    print(f"Tax rate:      {details.tax_rate}bp")
    print(f"Tax:           {details.current_tax}")
    print(f"Payout:        {details.payout_if_executed_now}")

    print("\n>>> ledger.execute('alice', rent)")
    ledger.execute("alice", rent)
    show_books(ledger)


def step_06_cap(ledger: TaxLedger):
    """Execute very late."""
    step_header(6, "The Cap",
        "However late, the tax never exceeds max_tax_rate.")

    invoice = ledger.schedule("carol", CONFIG.invoice, CONFIG.invoice, "invoice")
    ledger.advance_time(ledger.current_time + timedelta(days=400))
    print(f"Days passed: {ledger.get_days_passed(invoice)}")
    print(f"Tax rate:    {ledger.get_current_tax_rate(invoice)}bp (capped)")
    ledger.execute("carol", invoice)
    show_books(ledger)


# ============================================================================
# PHASE 3: ADMINISTRATION (Steps 7-8)
# ============================================================================

def step_07_cancel(ledger: TaxLedger):
    """Administrative cancellation."""
    step_header(7, "Cancellation",
        "The owner can cancel a pending transaction. The escrow goes to spare balance, untaxed.")

    tx_id = ledger.schedule("dave", 300_00, 300_00, "subscription")
    ledger.advance_time(ledger.current_time + timedelta(days=10))
    print(f"Tax if dave executed now: {ledger.get_transaction_details(tx_id).current_tax}")
    print("\n>>> ledger.cancel('admin', tx_id)")
    ledger.cancel("admin", tx_id)
    print(f"Dave's spare balance: {ledger.get_spare_balance('dave')}")
    return tx_id


def step_08_withdrawals(ledger: TaxLedger, rail: PayoutRail):
    """Withdraw spare balances and the tax pool."""
    step_header(8, "Withdrawals",
        "Users withdraw spare balances. The owner sweeps the tax pool to the beneficiary.")

    ledger.withdraw_user_balance("bob")
    ledger.withdraw_user_balance("dave")
    ledger.set_beneficiary("admin", "treasury")
    ledger.withdraw_protocol_tax("admin")

    section_header("Everything Paid Out")
    for recipient, amount in sorted(rail.by_recipient().items()):
        print(f"  {recipient:<10} {amount:>12}")
    show_books(ledger)


# ============================================================================
# PHASE 4: GUARANTEES (Steps 9-10)
# ============================================================================

def step_09_rejections(ledger: TaxLedger, cancelled: str):
    """Invalid calls are rejected and change nothing."""
    step_header(9, "Rejections",
        "Every failure raises a LedgerError subclass and leaves state untouched.")

    before = ledger.verify_conservation()
    attempts = [
        ("execute a cancelled transaction", lambda: ledger.execute("dave", cancelled)),
        ("cancel as a non-owner", lambda: ledger.cancel("mallory", cancelled)),
        ("withdraw an empty balance", lambda: ledger.withdraw_user_balance("bob")),
        ("underfunded schedule", lambda: ledger.schedule("erin", 100, 99)),
    ]
    for label, attempt in attempts:
        try:
            attempt()
        except LedgerError as exc:
            print(f"  {label:<34} -> {type(exc).__name__}")
    assert ledger.verify_conservation() == before


def step_10_replay(ledger: TaxLedger):
    """Conservation and replay."""
    step_header(10, "Conservation and Replay",
        "The books always balance, and the event log rebuilds the ledger exactly.")

    result = ledger.verify_conservation()
    print(f"Conservation valid: {result['valid']}")
    print(f"Events logged:      {len(ledger.event_log)}")

    ledger.verbose = False
    replayed = ledger.replay()
    print(f"Replayed tax pool:  {replayed.tax_pool} (original {ledger.tax_pool})")
    print(f"Replay identical:   {replayed.event_log == ledger.event_log}")


def main():
    """Run the complete tutorial."""
    print("=" * 70)
    print("       TAX LEDGER - INTERACTIVE TUTORIAL")
    print("=" * 70)
    if QUICK_MODE:
        print("Running in QUICK mode (no pauses)")
    else:
        print("Running in INTERACTIVE mode (press Enter to advance)")
    wait_for_enter()

    ledger, rail = step_01_empty_ledger()
    wait_for_enter()
    rent = step_02_schedule(ledger)
    wait_for_enter()
    gym = step_03_overpayment(ledger)
    wait_for_enter()

    step_04_on_time(ledger, gym)
    wait_for_enter()
    step_05_late(ledger, rent)
    wait_for_enter()
    step_06_cap(ledger)
    wait_for_enter()

    cancelled = step_07_cancel(ledger)
    wait_for_enter()
    step_08_withdrawals(ledger, rail)
    wait_for_enter()

    step_09_rejections(ledger, cancelled)
    wait_for_enter()
    step_10_replay(ledger)

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)
    print("""
    You've learned:
      - Escrow is locked at schedule time; excess goes to spare balance
      - Execution is free on day 0, then taxed as base * days * isqrt(days)
      - The rate is capped, so a payout is never wiped out
      - Cancellation refunds untaxed into spare balance
      - Every unit deposited is escrowed, spare, taxed or paid out

    Next steps:
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()
