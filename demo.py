#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Learn the Market Step by Step

A walkthrough of the bazaar market simulator. Each step builds on the
previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:  Foundation     - Inventory, rates, quotes
  4-6:  Two-Phase Trades - Reserve, finalize, rejections
  7-8:  Time           - Expiry, clock renormalization
  9-10: Many Markets   - Rebalancing, event fan-out, audit log

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
import sys
import tempfile

from bazaar import (
    Market, MarketConfig, ResourceKind, ResourceUnit, Broadcaster,
    MarketError, TokenStatus, write_audit_log,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    reference: Decimal = Decimal("1000")
    a: Decimal = Decimal("100")
    b: Decimal = Decimal("100")
    c: Decimal = Decimal("100")

    trade_amount: Decimal = Decimal("10")
    large_amount: Decimal = Decimal("70")

    seed: int = 2024


CONFIG = DemoConfig()
QUICK_MODE = "--quick" in sys.argv

FLAT_RATES = {kind: Decimal("1") for kind in ResourceKind}

A = ResourceKind.A
B = ResourceKind.B


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


def show_inventory(market: Market):
    print(f"{'KIND':<10} {'HELD':>14} {'BUY RATE':>14} {'SELL RATE':>14}")
    for label in market.list_inventory():
        print(f"{label.kind.value:<10} {label.quantity:>14.4f} "
              f"{label.buy_rate:>14.6f} {label.sell_rate:>14.6f}")


def flat_config(**overrides) -> MarketConfig:
    params = dict(default_rates=FLAT_RATES, rebalance_probability=Decimal("0"), seed=CONFIG.seed)
    params.update(overrides)
    return MarketConfig(**params)


# ============================================================================
# PHASE 1: FOUNDATION (Steps 1-3)
# ============================================================================

def step_01_create_market() -> Market:
    step_header(1, "The Market",
        "See the four inventories and the rates derived from them.")

    print("""
    The market holds four kinds of resource:

    REFERENCE - the numeraire; every price is paid in it, its rate is always 1
    A, B, C   - tradeable kinds, repriced from inventory pressure

    To keep the arithmetic readable every default rate here is 1.
    """)

    print(">>> market = Market.with_quantities(1000, 100, 100, 100, verbose=True)")
    market = Market.with_quantities(
        CONFIG.reference, CONFIG.a, CONFIG.b, CONFIG.c,
        config=flat_config(), verbose=True,
    )

    section_header("Initial Inventory")
    show_inventory(market)
    return market


def step_02_quotes(market: Market) -> Market:
    step_header(2, "Quotes",
        "Buy quotes include quantity discounts; sell quotes pay the sell rate.")

    for amount in (CONFIG.trade_amount, Decimal("30"), Decimal("50")):
        print(f"quote_buy(A, {amount}) = {market.quote_buy(A, amount)}")
    print(f"quote_sell(A, {CONFIG.trade_amount}) = {market.quote_sell(A, CONFIG.trade_amount)}")

    section_header("Key Insight")
    print("""
    sell_rate = buy_rate * 0.93, so the market never loses on a round trip.
    Quotes change nothing; only reservations move quantity.
    """)
    return market


def step_03_floors(market: Market) -> Market:
    step_header(3, "Floors",
        "A quarter of each initial inventory is never for sale.")

    try:
        market.quote_buy(A, Decimal("80"))
    except MarketError as exc:
        print(f"quote_buy(A, 80) rejected: {type(exc).__name__}: {exc}")
    print(f"quote_buy(A, 75) = {market.quote_buy(A, Decimal('75'))}")
    return market


# ============================================================================
# PHASE 2: TWO-PHASE TRADES (Steps 4-6)
# ============================================================================

def step_04_buy(market: Market) -> Market:
    step_header(4, "Buying",
        "Reserve quantity at a bid, then finalize with a Reference payment.")

    price = market.quote_buy(A, CONFIG.large_amount)
    token = market.reserve_buy(A, CONFIG.large_amount, price, "alice")
    print(f"\nToken: {token}")

    section_header("Inventory While Reserved")
    show_inventory(market)

    payment = ResourceUnit(ResourceKind.REFERENCE, price + Decimal("5"))
    goods = market.finalize_buy(token, payment)
    print(f"\nalice received {goods} and keeps change {payment}")
    return market


def step_05_sell(market: Market) -> Market:
    step_header(5, "Selling",
        "The market pre-funds its purchase when the reservation is made.")

    offer = market.quote_sell(B, CONFIG.trade_amount)
    token = market.reserve_sell(B, CONFIG.trade_amount, offer, "bob")
    print(f"Budget after reservation: {market.budget}")

    payout = market.finalize_sell(token, ResourceUnit(B, CONFIG.trade_amount))
    print(f"bob received {payout}")
    return market


def step_06_rejections(market: Market) -> Market:
    step_header(6, "Rejections",
        "A rejected call changes nothing and does not advance the clock.")

    tick = market.current_tick
    for attempt in (
        lambda: market.reserve_buy(A, CONFIG.trade_amount, Decimal("0.01"), "carol"),
        lambda: market.reserve_sell(B, CONFIG.trade_amount, Decimal("1000"), "carol"),
        lambda: market.finalize_buy("lock_buy-nobody-0", ResourceUnit(ResourceKind.REFERENCE, 1)),
    ):
        try:
            attempt()
        except MarketError:
            pass
    print(f"\nTick before: {tick}, tick after: {market.current_tick}")
    return market


# ============================================================================
# PHASE 3: TIME (Steps 7-8)
# ============================================================================

def step_07_expiry(market: Market) -> Market:
    step_header(7, "Expiry",
        "Unfinalized reservations return to the inventory after 12 ticks.")

    token = market.reserve_buy(B, CONFIG.trade_amount, market.quote_buy(B, CONFIG.trade_amount), "dave")
    created = market.current_tick - 1
    while market.status(token) == TokenStatus.ACTIVE:
        market.advance_clock()
    print(f"\n{token} created at {created}, expired at {market.current_tick}")
    try:
        market.finalize_buy(token, ResourceUnit(ResourceKind.REFERENCE, 100))
    except MarketError as exc:
        print(f"Finalizing now fails with {type(exc).__name__}")
    return market


def step_08_renormalization():
    step_header(8, "Clock Renormalization",
        "Ticks are bounded; at the limit everything shifts back to 0.")

    market = Market.with_quantities(
        1000, 100, 100, 100, config=flat_config(max_tick=20), verbose=True,
    )
    for _ in range(10):
        market.advance_clock()
    token = market.reserve_buy(A, 5, 5, "erin")
    while market.clock.epoch == 0:
        market.advance_clock()
    reservation = market.reservations.get_buy(token)
    print(f"\nTick {market.current_tick}, epoch {market.clock.epoch}, "
          f"{token} now created at {reservation.created_at}")


# ============================================================================
# PHASE 4: MANY MARKETS (Steps 9-10)
# ============================================================================

def step_09_rebalancing():
    step_header(9, "Rebalancing",
        "Surplus value is moved to under-stocked kinds at default rates.")

    market = Market.with_quantities(
        1000, 100, 100, 100,
        config=flat_config(rebalance_probability=Decimal("1")), verbose=True,
    )
    market.advance_clock()
    show_inventory(market)
    result = market.verify_conservation()
    print(f"\nConservation holds: {result['valid']}")


def step_10_many_markets():
    step_header(10, "Event Fan-Out and the Audit Log",
        "Markets hear each other's events; every call is audited.")

    hub = Broadcaster()
    bvc = Market.random(config=MarketConfig(seed=CONFIG.seed), sink=hub)
    nyse = Market.random(config=MarketConfig(name="NYSE", seed=CONFIG.seed + 1))
    hub.subscribe(nyse.on_event)

    price = bvc.quote_buy(ResourceKind.C, Decimal("100"))
    token = bvc.reserve_buy(ResourceKind.C, Decimal("100"), price, "frank")
    bvc.finalize_buy(token, ResourceUnit(ResourceKind.REFERENCE, price))
    print(f"{bvc!r}\n{nyse!r}")

    path = Path(tempfile.gettempdir()) / "bazaar-demo" / "audit.log"
    written = write_audit_log(bvc.audit_trail, path)
    print(f"\nWrote {written} audit lines to {path}:")
    print(path.read_text(encoding="utf-8"))


def main():
    """Run the complete tutorial."""
    print("=" * 70)
    print("       BAZAAR - INTERACTIVE TUTORIAL")
    print("=" * 70)

    if QUICK_MODE:
        print("Running in QUICK mode (no pauses)")
    else:
        print("Running in INTERACTIVE mode (press Enter to advance)")

    wait_for_enter()

    market = step_01_create_market()
    wait_for_enter()

    for step in (step_02_quotes, step_03_floors, step_04_buy, step_05_sell,
                 step_06_rejections, step_07_expiry):
        market = step(market)
        wait_for_enter()

    step_08_renormalization()
    wait_for_enter()

    step_09_rebalancing()
    wait_for_enter()

    step_10_many_markets()

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)
    print("""
    Next steps:
      - See bazaar/market.py for the operation sequence
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()
