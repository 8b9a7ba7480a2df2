#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: The Reflection Token and Prize Draw

A step-by-step walk through the token ledger and the draw engine. Each step
builds on the previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-4:   Token           - Genesis, taxed transfers, conservation, reflection
  5-6:   Safety          - Rejections, atomicity, pause and circuit breaker
  7-10:  Prize Draw      - Entry, schedule, randomness, payout
  11-12: Collaborators   - Governance delay queue, bridge
  13:    Fairness        - Modulo bias and a Monte Carlo uniformity check

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
import sys

from luckyledger import (
    ReflectionLedger, TokenConfig, DrawEngine, DrawConfig,
    MockRandomnessOracle, Timelock, TokenBridge, bind_rate_setters,
    UNIT, PRIZE_CAP, LedgerError,
    to_tokens, modulo_bias, simulate_winner_counts, uniformity_pvalue,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    start_time: datetime = datetime(2025, 1, 1, 9, 0, 0)
    draw_time: datetime = datetime(2025, 1, 7, 12, 0, 0)

    holders: tuple = ("alice", "bob", "carol", "dave")
    holder_funding: int = 50_000 * UNIT
    trade_rounds: int = 20
    trade_size: int = 5_000 * UNIT

    governance_delay: timedelta = timedelta(days=2)

    simulated_participants: int = 7
    simulated_draws: int = 70_000


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


def fmt(raw: int) -> str:
    return f"{to_tokens(raw):,.4f}"


# ============================================================================
# PHASE 1: TOKEN (Steps 1-4)
# ============================================================================

def step_01_genesis():
    step_header(1, "Genesis",
        "The whole supply is minted once, to the owner, with no tax.")

    token = ReflectionLedger(
        TokenConfig(owner="owner", treasury="treasury", prize_vault="vault"),
        initial_time=CONFIG.start_time,
        verbose=True,
    )

    section_header("Initial State")
    print(f"Token:          {token.name} ({token.symbol}), {token.decimals} decimals")
    print(f"Total supply:   {fmt(token.total_supply())}")
    print(f"Owner balance:  {fmt(token.balance_of('owner'))}")
    print(f"Tax / reflect:  {token.tax_rate_bps} bps / {token.reflection_rate_bps} bps")
    print(f"Excluded:       {sorted(token.excluded)}")
    return token


def step_02_taxed_transfer(token: ReflectionLedger):
    step_header(2, "A Taxed Transfer",
        "Every ordinary transfer splits into net, treasury, vault and reflection legs.")

    token.events.verbose = False
    plan = token.transfer("owner", "alice", 1_000 * UNIT)
    split = plan.split

    section_header("Split of 1,000 tokens")
    print(f"Net to alice:     {fmt(split.net)}")
    print(f"Treasury share:   {fmt(split.treasury_share)}")
    print(f"Vault share:      {fmt(split.vault_share)}")
    print(f"Reflection:       {fmt(split.reflection)}")
    for move in plan.moves:
        print(f"  {move!r}")
    return token


def step_03_conservation(token: ReflectionLedger):
    step_header(3, "Conservation",
        "Raw balances always sum to the fixed supply; nothing is created or lost.")

    for holder in CONFIG.holders:
        token.transfer("owner", holder, CONFIG.holder_funding)

    check = token.verify_supply()
    print(f"Supply:           {fmt(check['supply'])}")
    print(f"Sum of balances:  {fmt(check['sum_of_balances'])}")
    print(f"Valid:            {check['valid']}")
    return token


def step_04_reflection(token: ReflectionLedger):
    step_header(4, "Reflection",
        "Holders who simply hold see their effective balance grow as others trade.")

    before = token.get_reflected_balance("dave")
    for i in range(CONFIG.trade_rounds):
        sender, receiver = ("alice", "bob") if i % 2 == 0 else ("bob", "alice")
        token.transfer(sender, receiver, CONFIG.trade_size)
    after = token.get_reflected_balance("dave")

    print(f"Dave raw balance:        {fmt(token.balance_of('dave'))}")
    print(f"Dave reflected (before): {fmt(before)}")
    print(f"Dave reflected (after):  {fmt(after)}")
    print(f"Vault now holds:         {fmt(token.balance_of('vault'))}")
    return token


# ============================================================================
# PHASE 2: SAFETY (Steps 5-6)
# ============================================================================

def step_05_rejections(token: ReflectionLedger):
    step_header(5, "Rejections Are Atomic",
        "A refused transfer leaves every balance exactly as it was.")

    snapshot = token.state_snapshot()
    try:
        token.transfer("carol", "dave", 10 ** 30)
    except LedgerError as e:
        print(f"Rejected: {type(e).__name__}: {e}")
    print(f"State unchanged: {token.state_snapshot() == snapshot}")
    return token


def step_06_switches(token: ReflectionLedger):
    step_header(6, "Pause and Circuit Breaker",
        "Safety switches halt all value movement until the owner resumes it.")

    token.pause("owner")
    try:
        token.transfer("alice", "bob", UNIT)
    except LedgerError as e:
        print(f"While paused: {type(e).__name__}: {e}")
    token.unpause("owner")

    token.activate_circuit_breaker("owner")
    try:
        token.transfer("alice", "bob", UNIT)
    except LedgerError as e:
        print(f"While tripped: {type(e).__name__}: {e}")
    token.deactivate_circuit_breaker("owner")
    print(f"Paused: {token.paused}, breaker: {token.circuit_breaker_active}")
    return token


# ============================================================================
# PHASE 3: PRIZE DRAW (Steps 7-10)
# ============================================================================

def step_07_engine(token: ReflectionLedger):
    step_header(7, "The Draw Engine",
        "The vault approves the engine, which pays prizes with transfer_from.")

    oracle = MockRandomnessOracle(seed="tutorial")
    engine = DrawEngine(token, oracle, DrawConfig(
        owner="owner", prize_vault="vault", oracle=oracle.address,
    ))
    token.approve("vault", engine.address, PRIZE_CAP)
    print(f"Engine state:  {engine.state.value}")
    print(f"Prize pool:    {fmt(engine.compute_prize_pool())}")
    return engine, oracle


def step_08_entries(engine: DrawEngine):
    step_header(8, "Entering the Draw",
        "Holders with at least 777 tokens may enter once per draw.")

    engine.open_lottery("owner")
    for holder in CONFIG.holders:
        engine.enter_lottery(holder)
    try:
        engine.enter_lottery("alice")
    except LedgerError as e:
        print(f"Second entry: {type(e).__name__}: {e}")
    engine.close_lottery("owner")
    print(f"Participants: {engine.participants}")
    return engine


def step_09_schedule(token: ReflectionLedger, engine: DrawEngine):
    step_header(9, "Draw Days",
        "A draw can only start on the 7th, 17th or 27th of the month.")

    try:
        engine.start_draw("anyone")
    except LedgerError as e:
        print(f"On {token.current_time:%b %d}: {type(e).__name__}")
    token.advance_time(CONFIG.draw_time)
    request_id = engine.start_draw("anyone")
    print(f"On {token.current_time:%b %d}: draw {engine.current_draw_id} started, request {request_id}")
    print(f"Prize pool fixed at {fmt(engine.prize_pool)}")
    return request_id


def step_10_fulfillment(token: ReflectionLedger, engine: DrawEngine, oracle: MockRandomnessOracle, request_id: int):
    step_header(10, "Randomness Arrives",
        "The oracle answers later; the engine picks the winner and pays it.")

    words = oracle.fulfill(request_id)
    record = engine.draw_record(engine.current_draw_id)
    print(f"Random word:  {words[0]:#x}")
    print(f"Winner:       {record.winner}")
    print(f"Prize:        {fmt(record.prize_pool)}")
    print(f"Engine state: {engine.state.value}")
    print(f"Supply valid: {token.verify_supply()['valid']}")


# ============================================================================
# PHASE 4: COLLABORATORS (Steps 11-12)
# ============================================================================

def step_11_governance(token: ReflectionLedger):
    step_header(11, "Governance Delay",
        "Rate changes are queued and can only run after a fixed delay.")

    timelock = Timelock(token, admin="council", delay=CONFIG.governance_delay)
    bind_rate_setters(timelock, token)
    token.set_governance("owner", timelock.address)

    op_id = timelock.schedule("council", "set_tax_rate", rate_bps=150)
    print(f"Queued {op_id[:12]}..., executable at {timelock.eta(op_id)}")
    try:
        timelock.execute("council", "set_tax_rate", rate_bps=150)
    except LedgerError as e:
        print(f"Too early: {type(e).__name__}")
    token.advance_time(token.current_time + CONFIG.governance_delay)
    timelock.execute("council", "set_tax_rate", rate_bps=150)
    print(f"Tax rate now {token.tax_rate_bps} bps")


def step_12_bridge(token: ReflectionLedger):
    step_header(12, "Bridge",
        "Locking pulls tokens through the allowance path; only the net amount counts.")

    bridge = TokenBridge(token, owner="owner")
    token.approve("carol", bridge.address, 1_000 * UNIT)
    received = bridge.lock("carol", 1_000 * UNIT)
    print(f"Locked 1,000, bridge received {fmt(received)}")
    bridge.release("owner", "carol", received)
    print(f"Released; locked total {fmt(bridge.locked_total)}")


# ============================================================================
# PHASE 5: FAIRNESS (Step 13)
# ============================================================================

def step_13_fairness():
    step_header(13, "Is word % n Fair?",
        "The modulo step is biased only negligibly for 256-bit words.")

    n = CONFIG.simulated_participants
    print(f"Worst-case bias with {n} participants: {float(modulo_bias(256, n)):.3e}")
    counts = simulate_winner_counts(n, CONFIG.simulated_draws, seed=7)
    print(f"Winner counts over {CONFIG.simulated_draws:,} draws: {counts.tolist()}")
    print(f"Chi-square p-value: {uniformity_pvalue(counts):.3f}")


def main():
    """Run the complete tutorial."""
    print("=" * 70)
    print("       LUCKYLEDGER - INTERACTIVE TUTORIAL")
    print("=" * 70)

    if QUICK_MODE:
        print("Running in QUICK mode (no pauses)")
    else:
        print("Running in INTERACTIVE mode (press Enter to advance)")

    wait_for_enter()

    token = step_01_genesis()
    wait_for_enter()

    token = step_02_taxed_transfer(token)
    wait_for_enter()

    token = step_03_conservation(token)
    wait_for_enter()

    token = step_04_reflection(token)
    wait_for_enter()

    token = step_05_rejections(token)
    wait_for_enter()

    token = step_06_switches(token)
    wait_for_enter()

    engine, oracle = step_07_engine(token)
    wait_for_enter()

    engine = step_08_entries(engine)
    wait_for_enter()

    request_id = step_09_schedule(token, engine)
    wait_for_enter()

    step_10_fulfillment(token, engine, oracle, request_id)
    wait_for_enter()

    step_11_governance(token)
    wait_for_enter()

    step_12_bridge(token)
    wait_for_enter()

    step_13_fairness()

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)
    print("""
    Next steps:
      - See luckyledger/token.py for the transfer path
      - See luckyledger/draw.py for the draw state machine
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()
