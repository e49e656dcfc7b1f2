"""
Distribute bought tokens: 50% to the top loser, 50% destroyed.

The send must confirm before the burn is attempted. A failed send aborts
with nothing burned; a failed burn after a confirmed send is a partial
completion (the send is final). A burn that was submitted but never
confirmed is not resubmitted: its outcome is unknown.
"""

from dataclasses import dataclass

from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solana.rpc.api import Client
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import (
    BurnCheckedParams,
    TransferCheckedParams,
    burn_checked,
    create_associated_token_account,
    get_associated_token_address,
    transfer_checked,
)

import config
import chain
from chain import ConfirmationTimeout
from logger import log, debug, short, Style


class DistributionError(Exception):
    def __init__(self, step: str, cause: Exception):
        super().__init__(f"{step} failed: {cause}")
        self.step = step
        self.cause = cause


BURNED = "burned"
BURN_UNCONFIRMED = "unconfirmed"
BURN_ABANDONED = "abandoned"


@dataclass
class DistributionResult:
    to_send: int
    to_burn: int
    tx_send: str | None  # None when the send share was 0
    tx_burn: str | None  # confirmed burn only
    burn_status: str = BURNED
    burn_pending: str | None = None  # submitted, never confirmed

    @property
    def complete(self) -> bool:
        return self.burn_status == BURNED

    @property
    def sent(self) -> bool:
        return self.tx_send is not None


def split_amount(total: int) -> tuple[int, int]:
    """(to_send, to_burn) with to_send + to_burn == total and to_burn >= to_send."""
    if total <= 0:
        raise ValueError("Nothing to distribute")
    to_send = total // 2
    return to_send, total - to_send


def _ensure_ata_ix(client: Client, payer: Pubkey, owner: Pubkey, mint: Pubkey) -> tuple[Pubkey, list]:
    ata = get_associated_token_address(owner, mint)
    if chain.account_exists(client, ata):
        debug("DIST", f"Token account exists for {short(str(owner))}")
        return ata, []
    log("DIST", f"Creating token account for {short(str(owner))}...", Style.DIM)
    return ata, [create_associated_token_account(payer, owner, mint)]


def _transfer(client: Client, keypair: Keypair, owner: Pubkey, mint: Pubkey, amount: int, decimals: int) -> str:
    payer = keypair.pubkey()
    source = get_associated_token_address(payer, mint)
    dest, ixs = _ensure_ata_ix(client, payer, owner, mint)
    ixs.append(transfer_checked(TransferCheckedParams(
        program_id=TOKEN_PROGRAM_ID,
        source=source,
        mint=mint,
        dest=dest,
        owner=payer,
        amount=amount,
        decimals=decimals,
    )))
    return chain.send_instructions(client, keypair, ixs)


def _burn(client: Client, keypair: Keypair, mint: Pubkey, amount: int, decimals: int) -> str:
    if config.BURN_METHOD == "dead_wallet":
        log("BURN", "🔥 Sending to dead wallet...", Style.RED)
        return _transfer(client, keypair, Pubkey.from_string(config.DEAD_WALLET), mint, amount, decimals)

    log("BURN", "🔥 Burning via SPL burn instruction...", Style.RED)
    payer = keypair.pubkey()
    ix = burn_checked(BurnCheckedParams(
        program_id=TOKEN_PROGRAM_ID,
        account=get_associated_token_address(payer, mint),
        mint=mint,
        owner=payer,
        amount=amount,
        decimals=decimals,
    ))
    return chain.send_instructions(client, keypair, [ix])


def distribute(client: Client, keypair: Keypair, recipient: str, total_raw: int, decimals: int) -> DistributionResult:
    mint = Pubkey.from_string(config.TOKEN_MINT)
    to_send, to_burn = split_amount(total_raw)

    log("DIST", "📦 Distribution plan:", Style.CYAN)
    log("DIST", f"   ➜ Send {to_send / 10 ** decimals:.2f} to {short(recipient)}", Style.CYAN)
    log("DIST", f"   ➜ Burn {to_burn / 10 ** decimals:.2f} 🔥", Style.CYAN)

    # STEP 1: send to loser, must confirm before anything is burned
    tx_send = None
    if to_send > 0:
        try:
            tx_send = _transfer(client, keypair, Pubkey.from_string(recipient), mint, to_send, decimals)
        except Exception as e:
            raise DistributionError("send", e) from e
        log("SUCCESS", f"✅ Transfer confirmed: {chain.solscan(tx_send)}", Style.GREEN)
    else:
        log("DIST", "Send share is 0, burning only", Style.YELLOW)

    # STEP 2: destroy the other half
    result = DistributionResult(to_send=to_send, to_burn=to_burn, tx_send=tx_send, tx_burn=None)
    for attempt in range(1 + max(0, config.BURN_RETRIES)):
        try:
            result.tx_burn = _burn(client, keypair, mint, to_burn, decimals)
            break
        except ConfirmationTimeout as e:
            # Already submitted; a second burn could destroy stranded tokens
            result.burn_status = BURN_UNCONFIRMED
            result.burn_pending = e.signature
            log("ERROR", f"❌ Burn unconfirmed, not retrying: {e}", Style.RED)
            return result
        except Exception as e:
            log("WARN", f"⚠️ Burn attempt {attempt + 1} failed: {e}", Style.YELLOW)

    if result.tx_burn:
        log("SUCCESS", f"✅ Burned: {chain.solscan(result.tx_burn)}", Style.GREEN)
    else:
        result.burn_status = BURN_ABANDONED
        log("ERROR", f"❌ Burn abandoned, {to_burn} raw tokens left in wallet", Style.RED)
    return result
