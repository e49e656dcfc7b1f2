"""
Hopeless ($HOPE) - Redistribution Bot
Every cycle: find the biggest loser -> claim creator fees -> buy $HOPE
-> send 50% to the loser -> burn 50%.
"""

import sys
import time
import random
import signal
import threading
from dataclasses import dataclass, asdict
from datetime import datetime, timezone

from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solana.rpc.api import Client

import config
import chain
from chain import ChainError, ConfirmationTimeout
from distribute import BURNED, DistributionError, distribute
from fees import claim_fees
from holders import CooldownTracker, get_holders
from logger import Style, log, emit_event, init_log_file, print_banner, short
from swap import SwapError, buy_tokens


@dataclass
class CycleRecord:
    cycle: int
    recipient: str
    loser_pnl: float
    sol_used: float
    tokens_sent: float
    tokens_burned: float
    tx_send: str | None
    tx_burn: str | None
    burn_status: str
    timestamp: str

    def to_event(self) -> dict:
        return {"type": "distribution", **asdict(self)}


# State (touched between cycles only)
state_lock = threading.Lock()
cooldowns = CooldownTracker()
bot_state = {
    "cycle": 0,
    "running": False,
    "last_record": None,
    "started_at": None,
}


def get_status() -> dict:
    with state_lock:
        last = bot_state["last_record"]
        return {
            "cycle": bot_state["cycle"],
            "running": bot_state["running"],
            "started_at": bot_state["started_at"],
            "last_distribution": last.to_event() if last else None,
        }


def _separator(title: str):
    line = "═" * 60
    print(f"\n{Style.DIM}{line}{Style.RESET}")
    log("CYCLE", title, Style.BLUE)
    print(f"{Style.DIM}{line}{Style.RESET}\n")


def run_cycle(client: Client, keypair: Keypair) -> CycleRecord | None:
    """
    One full pass. Returns the CycleRecord when tokens were distributed, None when the
    cycle was skipped or a step failed. Never raises.
    """
    with state_lock:
        bot_state["cycle"] += 1
        bot_state["running"] = True
        cycle = bot_state["cycle"]

    _separator(f"🔄 CYCLE #{cycle}")
    step = "STEP 1 (rank holders)"

    try:
        # STEP 1: Find the biggest loser (lowest PnL)
        log("STEP 1", "Finding holder with biggest loss...", Style.BLUE)
        holders = get_holders(client, cooldowns, cycle, str(keypair.pubkey()))

        if not holders:
            log("SKIP", "⚠️ No eligible holders. Skipping cycle.", Style.YELLOW)
            return None

        top = holders[0]
        if top.pnl >= 0:
            log("SKIP", "🎉 Everyone is in profit! No losers to help. Skipping cycle.", Style.YELLOW)
            return None

        log("LOSER", f"☠️ TOP LOSER: {top.wallet}", Style.MAGENTA)
        log("LOSER", f"   💸 Unrealized Loss: {top.pnl:.6f} SOL", Style.MAGENTA)
        log("LOSER", f"   💰 Cost Basis: {top.cost_basis:.6f} SOL", Style.MAGENTA)
        log("LOSER", f"   📊 Current Value: {top.current_value:.6f} SOL", Style.MAGENTA)
        log("LOSER", f"   🪙 Balance: {top.balance:.2f} tokens", Style.MAGENTA)

        if config.DRY_RUN:
            log("DRY RUN", "Would claim, buy and distribute now. Skipping.", Style.YELLOW)
            return None

        # STEP 2: Claim creator fees
        step = "STEP 2 (claim fees)"
        log("STEP 2", "Claiming creator fees...", Style.BLUE)
        sol_available = claim_fees(client, keypair)
        if sol_available <= 0:
            log("SKIP", "⚠️ No fees available. Skipping cycle.", Style.YELLOW)
            return None

        # STEP 3: Buy tokens with the fees
        step = "STEP 3 (buy tokens)"
        log("STEP 3", "Buying tokens with creator fees...", Style.BLUE)
        tokens_received = buy_tokens(client, keypair, sol_available)
        if tokens_received <= 0:
            log("SKIP", "❌ Swap returned 0 tokens. Aborting cycle.", Style.YELLOW)
            return None

        # STEP 4: Distribute 50% to loser + burn 50%
        step = "STEP 4 (distribute)"
        log("STEP 4", "Distributing 50% to loser + burning 50%...", Style.BLUE)
        decimals = chain.get_mint_decimals(client, Pubkey.from_string(config.TOKEN_MINT))
        result = distribute(client, keypair, top.wallet, tokens_received, decimals)

        # A confirmed send is final, so the win counts even if the burn was not
        if result.sent:
            cooldowns.record_win(top.wallet, cycle)

        record = CycleRecord(
            cycle=cycle,
            recipient=top.wallet,
            loser_pnl=top.pnl,
            sol_used=sol_available,
            tokens_sent=result.to_send / 10 ** decimals,
            tokens_burned=result.to_burn / 10 ** decimals if result.complete else 0.0,
            tx_send=result.tx_send,
            tx_burn=result.tx_burn or result.burn_pending,
            burn_status=result.burn_status,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )
        with state_lock:
            bot_state["last_record"] = record

        _print_summary(record)
        emit_event(record.to_event())
        return record

    except DistributionError as e:
        # Only the send step raises; nothing was burned
        log("ERROR", f"❌ {step} failed: {e}. Tokens stay in the operator wallet.", Style.RED)
    except ConfirmationTimeout as e:
        log("ERROR", f"❌ {step} unconfirmed: {e}. Outcome unknown, treating as failed.", Style.RED)
    except (ChainError, SwapError) as e:
        log("ERROR", f"❌ {step} failed: {e}", Style.RED)
    except Exception as e:
        log("ERROR", f"❌ Cycle failed at {step}: {e!r}", Style.RED)
    finally:
        with state_lock:
            bot_state["running"] = False

    return None


def _print_summary(record: CycleRecord):
    complete = record.burn_status == BURNED
    title = "✅ CYCLE COMPLETE" if complete else f"⚠️ CYCLE PARTIAL (burn {record.burn_status})"
    color = Style.GREEN if complete else Style.YELLOW
    log("SUMMARY", title, color)
    log("SUMMARY", f"🎯 Recipient:      {record.recipient}", color)
    log("SUMMARY", f"💸 Loser's PnL:    {record.loser_pnl:.6f} SOL", color)
    log("SUMMARY", f"💵 SOL used:       {record.sol_used:.6f} SOL", color)
    log("SUMMARY", f"📤 Sent to loser:  {record.tokens_sent:.2f}", color)
    log("SUMMARY", f"🔥 Burned:         {record.tokens_burned:.2f}", color)
    log("SUMMARY", f"📜 Send TX:        {record.tx_send or '-'}", color)
    log("SUMMARY", f"📜 Burn TX:        {record.tx_burn or '-'}", color)


def next_interval() -> float:
    """Base interval with uniform jitter on both sides, in seconds."""
    jitter = random.uniform(-config.JITTER_SEC, config.JITTER_SEC)
    return max(0.0, config.INTERVAL_SEC + jitter)


def run_scheduler(client: Client, keypair: Keypair, stop_event: threading.Event, max_cycles: int = None):
    """First cycle immediately, then one per interval. Cycles never overlap."""
    completed = 0
    while not stop_event.is_set():
        run_cycle(client, keypair)
        completed += 1

        if stop_event.is_set() or (max_cycles is not None and completed >= max_cycles):
            break

        delay = next_interval()
        log("SCHEDULE", f"⏳ Next cycle in {delay:.1f}s", Style.DIM)
        stop_event.wait(delay)

    if stop_event.is_set():
        log("SYSTEM", "🛑 Shutdown requested, stopping scheduler", Style.RED)


def _install_signal_handlers(stop_event: threading.Event):
    def handler(signum, frame):
        # May run while log_lock is held by this thread: no logging here
        stop_event.set()

    signal.signal(signal.SIGINT, handler)
    if hasattr(signal, "SIGTERM"):
        signal.signal(signal.SIGTERM, handler)


def _print_shutdown_summary():
    status = get_status()
    last = status["last_distribution"]
    if last:
        log("SYSTEM", f"📊 Last recipient: {last['recipient']}", Style.DIM)
        log("SYSTEM", f"📊 Amount: {last['tokens_sent']:.2f}", Style.DIM)
        log("SYSTEM", f"📊 Time: {last['timestamp']}", Style.DIM)
    log("SYSTEM", f"📊 Total cycles run: {status['cycle']}", Style.DIM)
    print(f"\n{Style.RED}🛑 Bot Stopped{Style.RESET}")


# --- MAIN ---
def main() -> int:
    print_banner()
    init_log_file()

    try:
        config.validate()
        keypair = chain.load_keypair(config.PRIVATE_KEY)
    except ValueError as e:
        log("ERROR", f"Configuration error: {e}", Style.RED)
        return 1
    log("INIT", "✅ Configuration validated", Style.GREEN)

    client = Client(config.RPC_URL, timeout=config.HTTP_TIMEOUT_SEC)
    log("INIT", f"🌐 RPC: {config.RPC_URL}", Style.DIM)
    log("INIT", f"👛 Bot wallet: {keypair.pubkey()}", Style.DIM)

    try:
        balance = chain.get_sol_balance(client, keypair.pubkey())
    except ChainError as e:
        log("ERROR", f"❌ RPC unreachable: {e}", Style.RED)
        return 1
    log("INIT", f"💰 Wallet balance: {balance:.6f} SOL", Style.DIM)

    if balance < config.MIN_STARTUP_SOL:
        log("ERROR", f"❌ Wallet balance too low. Fund the wallet with at least {config.MIN_STARTUP_SOL} SOL.", Style.RED)
        return 1

    log("INIT", f"🪙 Token: {short(config.TOKEN_MINT)}", Style.DIM)
    log("INIT", f"⏱️ Cycle interval: {config.INTERVAL_SEC}s ± {config.JITTER_SEC}s", Style.DIM)
    log("INIT", f"🔥 Burn method: {config.BURN_METHOD} | Claim method: {config.CLAIM_METHOD}", Style.DIM)
    if config.DRY_RUN:
        log("INIT", "🧪 DRY RUN: no transactions will be sent", Style.YELLOW)

    with state_lock:
        bot_state["started_at"] = time.time()

    stop_event = threading.Event()
    _install_signal_handlers(stop_event)
    run_scheduler(client, keypair, stop_event)

    _print_shutdown_summary()
    return 0


if __name__ == "__main__":
    sys.exit(main())
