"""
Holder discovery and the anti-abuse PnL ranking.

Only genuine purchases count towards a wallet's cost basis:

    SWAP        = got tokens + paid SOL (real purchase)  -> COUNTED
    TRANSFER IN = got tokens + paid ~0 SOL (gas)         -> IGNORED
    AIRDROP     = got tokens + paid 0 SOL                -> IGNORED

    effectiveBalance = min(balance, swapBought)
    retainedRatio    = min(1, balance / swapBought)
    adjustedCost     = swapSpent * retainedRatio
    PnL              = effectiveBalance * price - adjustedCost
"""

from dataclasses import dataclass
from typing import Callable, Iterable

import requests
from solders.pubkey import Pubkey
from solders.signature import Signature
from solana.rpc.api import Client

import config
import chain
from logger import log, debug, short, Style

GAS_THRESHOLD = 0.001  # SOL spent must exceed this to count as a swap
HISTORY_LIMIT = 30
MIN_VALUE_SOL = 0.001
COOLDOWN_CYCLES = 2

EXCLUDED = frozenset([
    "11111111111111111111111111111111",
    "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA",
    "ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL",
    "1nc1nerator11111111111111111111111111111111",
    "5Q544fKrFoe6tsEbD7S8EmxGTJYAKtTVhAW5Q5pge4j1",
    "6EF8rrecthR5Dkzon8Nwu78hRvfCKubJ14M5uBEwF6P",
])


@dataclass
class SwapHistory:
    total_bought: float = 0.0
    total_spent: float = 0.0


@dataclass
class HolderRecord:
    wallet: str
    token_account: str
    balance: float
    balance_raw: int
    swap_bought: float
    swap_spent: float
    retained_ratio: float
    cost_basis: float
    effective_balance: float
    current_value: float
    pnl: float


class CooldownTracker:
    """Remembers which cycle each wallet last won. Process lifetime only."""

    def __init__(self, cooldown_cycles: int = COOLDOWN_CYCLES):
        self.cooldown_cycles = cooldown_cycles
        self._won_at: dict[str, int] = {}

    def record_win(self, wallet: str, cycle: int):
        self._won_at[wallet] = cycle

    def is_eligible(self, wallet: str, cycle: int) -> bool:
        won_at = self._won_at.get(wallet)
        if won_at is None:
            return True
        return cycle - won_at > self.cooldown_cycles

    def __len__(self):
        return len(self._won_at)


def is_excluded(wallet: str, operator: str = "") -> bool:
    return wallet in EXCLUDED or (bool(operator) and wallet == operator)


# --- PRICE SOURCE ---
def get_price(mint: str) -> float:
    """Token price in SOL from the Jupiter price API. 0.0 when unavailable."""
    try:
        response = requests.get(
            config.PRICE_API,
            params={"ids": mint, "vsToken": config.SOL_MINT},
            timeout=config.HTTP_TIMEOUT_SEC,
        )
        response.raise_for_status()
        data = response.json()
        price = float(((data.get("data") or {}).get(mint) or {}).get("price") or 0)
    except (requests.RequestException, ValueError, TypeError, AttributeError) as e:
        log("WARN", f"⚠️ Price fetch failed: {e}", Style.YELLOW)
        return 0.0

    if price <= 0:
        log("WARN", "⚠️ Jupiter returned 0 price", Style.YELLOW)
        return 0.0
    return price


# --- SWAP HISTORY ---
def _key(k) -> str:
    # Parsed messages wrap keys in objects with a .pubkey attribute
    return str(getattr(k, "pubkey", k))


def _token_amount(balances, owner: str, mint: str) -> float:
    total = 0.0
    for b in balances or []:
        if str(b.mint) != mint or b.owner is None or str(b.owner) != owner:
            continue
        amount = b.ui_token_amount
        total += int(amount.amount) / (10 ** amount.decimals)
    return total


def classify_transaction(tx, owner: str, mint: str) -> tuple[float, float] | None:
    """
    (tokens_bought, sol_spent) when `tx` is a genuine purchase by `owner`,
    otherwise None. `tx` is the `.value` of a get_transaction response.
    """
    meta = tx.transaction.meta
    if meta is None or meta.err is not None:
        return None

    token_delta = (
        _token_amount(meta.post_token_balances, owner, mint)
        - _token_amount(meta.pre_token_balances, owner, mint)
    )
    if token_delta <= 0:
        return None

    keys = [_key(k) for k in tx.transaction.transaction.message.account_keys]
    if owner not in keys:
        return None
    idx = keys.index(owner)

    sol_spent = (meta.pre_balances[idx] - meta.post_balances[idx]) / config.LAMPORTS_PER_SOL
    if sol_spent <= GAS_THRESHOLD:
        return None
    return token_delta, sol_spent


def get_swap_history(client: Client, owner: str, mint: str, limit: int = HISTORY_LIMIT) -> SwapHistory:
    """Sum genuine purchases over the wallet's last `limit` transactions."""
    history = SwapHistory()

    try:
        signatures = client.get_signatures_for_address(Pubkey.from_string(owner), limit=limit).value or []
    except Exception as e:
        debug("HISTORY", f"Could not fetch swap history for {short(owner)}: {e}")
        return history

    for entry in signatures:
        try:
            sig = entry.signature
            if isinstance(sig, str):
                sig = Signature.from_string(sig)
            tx = client.get_transaction(sig, encoding="json", max_supported_transaction_version=0).value
            if tx is None:
                continue
            purchase = classify_transaction(tx, owner, mint)
        except Exception as e:
            debug("HISTORY", f"Skipping tx for {short(owner)}: {e}")
            continue

        if purchase:
            history.total_bought += purchase[0]
            history.total_spent += purchase[1]

    return history


# --- RANKING ---
def _group_by_owner(accounts: Iterable[dict]) -> list[dict]:
    # One entry per wallet, first-seen order, balances summed
    grouped: dict[str, dict] = {}
    for acc in accounts:
        owner = acc["owner"]
        if owner in grouped:
            grouped[owner]["balance"] += acc["balance"]
            grouped[owner]["balance_raw"] += acc["balance_raw"]
        else:
            grouped[owner] = dict(acc)
    return list(grouped.values())


def rank_holders(
    accounts: Iterable[dict],
    price: float,
    history: Callable[[str], SwapHistory],
    cooldowns: CooldownTracker,
    cycle: int,
    operator: str = "",
) -> list[HolderRecord]:
    """Eligible holders, most negative PnL first. Ties keep scan order."""
    holders = []

    for acc in _group_by_owner(accounts):
        wallet = acc["owner"]
        balance = acc["balance"]
        if balance <= 0 or not wallet or is_excluded(wallet, operator):
            continue

        swaps = history(wallet)
        # No swap history -> not a real buyer (got tokens via transfer/airdrop)
        if swaps.total_bought <= 0 or swaps.total_spent <= 0:
            continue

        retained_ratio = min(1.0, balance / swaps.total_bought)
        effective_balance = min(balance, swaps.total_bought)
        cost_basis = swaps.total_spent * retained_ratio
        current_value = effective_balance * price

        holders.append(HolderRecord(
            wallet=wallet,
            token_account=acc["address"],
            balance=balance,
            balance_raw=acc["balance_raw"],
            swap_bought=swaps.total_bought,
            swap_spent=swaps.total_spent,
            retained_ratio=retained_ratio,
            cost_basis=cost_basis,
            effective_balance=effective_balance,
            current_value=current_value,
            pnl=current_value - cost_basis,
        ))

    eligible = []
    for h in holders:
        # Without a price every value is 0; ranking falls back to cost basis
        if price > 0 and h.current_value < MIN_VALUE_SOL:
            continue
        if not cooldowns.is_eligible(h.wallet, cycle):
            debug("RANK", f"{short(h.wallet)}: cooldown, skip")
            continue
        eligible.append(h)

    eligible.sort(key=lambda h: h.pnl)
    return eligible


def get_holders(client: Client, cooldowns: CooldownTracker, cycle: int, operator: str = "") -> list[HolderRecord]:
    mint = config.TOKEN_MINT

    log("HOLDERS", "🔍 Fetching token holders...", Style.CYAN)
    accounts = chain.get_token_accounts(client, Pubkey.from_string(mint))
    log("HOLDERS", f"📊 Found {len(accounts)} token accounts", Style.CYAN)

    price = get_price(mint)
    if price > 0:
        log("PRICE", f"💰 Token price: {price:.12f} SOL", Style.CYAN)
    else:
        log("PRICE", "⚠️ No price, ranking by cost basis only", Style.YELLOW)

    eligible = rank_holders(
        accounts,
        price,
        lambda wallet: get_swap_history(client, wallet, mint),
        cooldowns,
        cycle,
        operator,
    )
    log("HOLDERS", f"👥 Eligible: {len(eligible)}", Style.CYAN)

    if eligible:
        t = eligible[0]
        log(
            "HOLDERS",
            f"☠️ Top loser: {short(t.wallet)} | PnL: {t.pnl:.6f} SOL | Bal: {t.balance:.2f} | "
            f"Bought: {t.swap_bought:.2f} | Retained: {t.retained_ratio * 100:.0f}%",
            Style.MAGENTA,
        )
    return eligible
