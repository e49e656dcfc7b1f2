"""
Cycle & Scheduler Tests
=======================
Skip conditions, step-failure containment and scheduling.
"""

import json
import os
import signal
import time
import threading
from unittest.mock import MagicMock

import pytest

import config
import main
from chain import ChainError, ConfirmationTimeout
from distribute import BURN_ABANDONED, BURN_UNCONFIRMED, DistributionError, DistributionResult
from holders import CooldownTracker, HolderRecord
from swap import SwapError
from conftest import make_wallet


def holder(wallet, pnl):
    return HolderRecord(
        wallet=wallet, token_account=make_wallet(), balance=100.0, balance_raw=100_000_000,
        swap_bought=100.0, swap_spent=1.0, retained_ratio=1.0, cost_basis=1.0,
        effective_balance=100.0, current_value=1.0 + pnl, pnl=pnl,
    )


@pytest.fixture
def pipeline(monkeypatch):
    """Every collaborator of run_cycle replaced by a MagicMock."""
    monkeypatch.setattr(main, "cooldowns", CooldownTracker())
    monkeypatch.setitem(main.bot_state, "cycle", 0)
    monkeypatch.setitem(main.bot_state, "last_record", None)

    mocks = MagicMock()
    loser = make_wallet()
    mocks.loser = loser
    mocks.get_holders.return_value = [holder(loser, -2.5), holder(make_wallet(), -1.0)]
    mocks.claim_fees.return_value = 0.25
    mocks.buy_tokens.return_value = 1001
    mocks.distribute.return_value = DistributionResult(to_send=500, to_burn=501, tx_send="send-sig", tx_burn="burn-sig")

    monkeypatch.setattr(main, "get_holders", mocks.get_holders)
    monkeypatch.setattr(main, "claim_fees", mocks.claim_fees)
    monkeypatch.setattr(main, "buy_tokens", mocks.buy_tokens)
    monkeypatch.setattr(main, "distribute", mocks.distribute)
    monkeypatch.setattr(main.chain, "get_mint_decimals", lambda client, mint: 0)
    return mocks


def no_ledger_mutation(mocks):
    mocks.claim_fees.assert_not_called()
    mocks.buy_tokens.assert_not_called()
    mocks.distribute.assert_not_called()


class TestRunCycle:

    def test_full_cycle(self, pipeline, keypair, isolated_logs):
        record = main.run_cycle(MagicMock(), keypair)

        assert record.cycle == 1
        assert record.recipient == pipeline.loser
        assert record.loser_pnl == -2.5
        assert record.sol_used == 0.25
        assert record.tokens_sent == 500
        assert record.tokens_burned == 501
        assert (record.tx_send, record.tx_burn) == ("send-sig", "burn-sig")
        pipeline.distribute.assert_called_once()
        assert pipeline.distribute.call_args.args[2:4] == (pipeline.loser, 1001)
        assert not main.cooldowns.is_eligible(pipeline.loser, 2)

        events = json.loads((isolated_logs / "events.json").read_text())
        assert events[-1]["type"] == "distribution"
        assert events[-1]["recipient"] == pipeline.loser
        assert events[-1]["tx_burn"] == "burn-sig"

    def test_no_holders_skips_before_any_mutation(self, pipeline, keypair):
        pipeline.get_holders.return_value = []
        assert main.run_cycle(MagicMock(), keypair) is None
        no_ledger_mutation(pipeline)

    def test_everyone_in_profit_skips(self, pipeline, keypair):
        pipeline.get_holders.return_value = [holder(make_wallet(), 0.0), holder(make_wallet(), 3.0)]
        assert main.run_cycle(MagicMock(), keypair) is None
        no_ledger_mutation(pipeline)

    def test_dry_run_never_claims(self, pipeline, keypair, monkeypatch):
        monkeypatch.setattr(config, "DRY_RUN", True)
        assert main.run_cycle(MagicMock(), keypair) is None
        no_ledger_mutation(pipeline)

    def test_insufficient_fees_skips(self, pipeline, keypair):
        pipeline.claim_fees.return_value = 0.0
        assert main.run_cycle(MagicMock(), keypair) is None
        pipeline.buy_tokens.assert_not_called()

    def test_zero_tokens_skips(self, pipeline, keypair):
        pipeline.buy_tokens.return_value = 0
        assert main.run_cycle(MagicMock(), keypair) is None
        pipeline.distribute.assert_not_called()

    @pytest.mark.parametrize("error", [
        SwapError("no liquidity"),
        ChainError("blockhash expired"),
        ConfirmationTimeout("sig", 60),
    ])
    def test_swap_failure_contained(self, pipeline, keypair, error):
        pipeline.buy_tokens.side_effect = error
        assert main.run_cycle(MagicMock(), keypair) is None
        pipeline.distribute.assert_not_called()
        assert main.cooldowns.is_eligible(pipeline.loser, 2)

    def test_send_failure_no_win_recorded(self, pipeline, keypair):
        pipeline.distribute.side_effect = DistributionError("send", ChainError("rejected"))
        assert main.run_cycle(MagicMock(), keypair) is None
        assert main.cooldowns.is_eligible(pipeline.loser, 2)

    def test_abandoned_burn_is_partial(self, pipeline, keypair):
        pipeline.distribute.return_value = DistributionResult(500, 501, "send-sig", None, burn_status=BURN_ABANDONED)

        record = main.run_cycle(MagicMock(), keypair)

        assert record.tx_burn is None
        assert record.burn_status == BURN_ABANDONED
        assert record.tokens_burned == 0.0
        assert not main.cooldowns.is_eligible(pipeline.loser, 2)

    def test_unconfirmed_burn_keeps_pending_signature(self, pipeline, keypair, isolated_logs):
        pipeline.distribute.return_value = DistributionResult(
            500, 501, "send-sig", None, burn_status=BURN_UNCONFIRMED, burn_pending="burn-sig-1",
        )

        record = main.run_cycle(MagicMock(), keypair)

        assert record.burn_status == BURN_UNCONFIRMED
        assert record.tx_burn == "burn-sig-1"
        assert record.tokens_burned == 0.0
        events = json.loads((isolated_logs / "events.json").read_text())
        assert events[-1]["burn_status"] == BURN_UNCONFIRMED

    def test_burn_only_cycle_records_no_win(self, pipeline, keypair):
        pipeline.buy_tokens.return_value = 1
        pipeline.distribute.return_value = DistributionResult(0, 1, None, "burn-sig")

        record = main.run_cycle(MagicMock(), keypair)

        assert record.tx_send is None
        assert record.tokens_sent == 0
        assert main.cooldowns.is_eligible(pipeline.loser, 2)

    def test_unexpected_error_contained(self, pipeline, keypair):
        pipeline.get_holders.side_effect = RuntimeError("boom")
        assert main.run_cycle(MagicMock(), keypair) is None
        assert main.bot_state["running"] is False

    def test_cycle_counter_and_cooldown_rotation(self, pipeline, keypair):
        other = pipeline.get_holders.return_value[1].wallet

        def ranked(client, cooldowns, cycle, operator):
            candidates = [holder(pipeline.loser, -2.5), holder(other, -1.0)]
            return [h for h in candidates if cooldowns.is_eligible(h.wallet, cycle)]

        pipeline.get_holders.side_effect = ranked

        records = [main.run_cycle(MagicMock(), keypair) for _ in range(4)]
        winners = [r.recipient if r else None for r in records]

        # cycle 3: both wallets still cooling down
        assert winners == [pipeline.loser, other, None, pipeline.loser]
        assert main.bot_state["cycle"] == 4


class TestScheduler:

    def test_interval_jitter_bounds(self, monkeypatch):
        monkeypatch.setattr(config, "INTERVAL_SEC", 300)
        monkeypatch.setattr(config, "JITTER_SEC", 2)
        for _ in range(200):
            assert 298 <= main.next_interval() <= 302

    def test_interval_never_negative(self, monkeypatch):
        monkeypatch.setattr(config, "INTERVAL_SEC", 1)
        monkeypatch.setattr(config, "JITTER_SEC", 5)
        for _ in range(200):
            assert main.next_interval() >= 0

    def test_runs_immediately_then_waits(self, monkeypatch, keypair):
        run = MagicMock()
        monkeypatch.setattr(main, "run_cycle", run)
        monkeypatch.setattr(main, "next_interval", lambda: 0.0)
        stop = threading.Event()

        main.run_scheduler(MagicMock(), keypair, stop, max_cycles=3)

        assert run.call_count == 3

    def test_stop_finishes_in_flight_cycle(self, monkeypatch, keypair):
        stop = threading.Event()
        finished = []

        def cycle(client, kp):
            stop.set()  # shutdown arrives mid-cycle
            finished.append(True)

        monkeypatch.setattr(main, "run_cycle", cycle)
        main.run_scheduler(MagicMock(), keypair, stop)

        assert finished == [True]

    def test_failed_cycle_does_not_stop_schedule(self, monkeypatch, keypair):
        outcomes = iter([None, None, None])
        run = MagicMock(side_effect=lambda c, k: next(outcomes))
        monkeypatch.setattr(main, "run_cycle", run)
        monkeypatch.setattr(main, "next_interval", lambda: 0.0)

        main.run_scheduler(MagicMock(), keypair, threading.Event(), max_cycles=3)

        assert run.call_count == 3

    @pytest.mark.skipif(os.name == "nt", reason="POSIX signals")
    def test_signal_during_log_write_does_not_deadlock(self):
        import logger

        stop = threading.Event()
        saved = {sig: signal.getsignal(sig) for sig in (signal.SIGINT, signal.SIGTERM)}
        try:
            main._install_signal_handlers(stop)
            # Handler runs on the main thread while it holds the log lock
            with logger.log_lock:
                os.kill(os.getpid(), signal.SIGINT)
                deadline = time.monotonic() + 2
                while not stop.is_set() and time.monotonic() < deadline:
                    time.sleep(0.01)
            assert stop.is_set()
        finally:
            for sig, handler in saved.items():
                signal.signal(sig, handler)

    def test_shutdown_logged_after_loop(self, monkeypatch, keypair, isolated_logs):
        stop = threading.Event()
        monkeypatch.setattr(main, "run_cycle", lambda c, k: stop.set())

        main.run_scheduler(MagicMock(), keypair, stop)

        entries = json.loads((isolated_logs / "logs.json").read_text())
        assert "Shutdown requested" in entries[-1]["msg"]


class TestStartup:

    def test_missing_config_exits_nonzero(self, monkeypatch):
        monkeypatch.setattr(config, "PRIVATE_KEY", "")
        assert main.main() == 1

    def test_unreachable_rpc_exits_nonzero(self, monkeypatch, keypair):
        import base58
        monkeypatch.setattr(config, "PRIVATE_KEY", base58.b58encode(bytes(keypair)).decode())
        monkeypatch.setattr(main, "Client", MagicMock())
        monkeypatch.setattr(main.chain, "get_sol_balance", MagicMock(side_effect=ChainError("refused")))
        assert main.main() == 1

    def test_unfunded_wallet_exits_nonzero(self, monkeypatch, keypair, capsys):
        import base58
        monkeypatch.setattr(config, "PRIVATE_KEY", base58.b58encode(bytes(keypair)).decode())
        monkeypatch.setattr(main, "Client", MagicMock())
        monkeypatch.setattr(main.chain, "get_sol_balance", MagicMock(return_value=0.001))
        assert main.main() == 1
        assert f"at least {config.MIN_STARTUP_SOL} SOL" in capsys.readouterr().out
