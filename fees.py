"""
Creator fee claiming.

Works in two modes, re-detected every cycle:
1. CURVE_ACTIVE -> token still on the pump.fun bonding curve, fees must be withdrawn
2. MIGRATED     -> token left the curve, fees land in the creator wallet directly
"""

from enum import Enum

import requests
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.instruction import Instruction, AccountMeta
from solders.system_program import ID as SYSTEM_PROGRAM_ID
from solana.rpc.api import Client
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import get_associated_token_address

import config
import chain
from logger import log, debug, Style

# --- PUMP.FUN PROGRAM CONSTANTS ---
PUMP_PROGRAM = Pubkey.from_string("6EF8rrecthR5Dkzon8Nwu78hRvfCKubJ14M5uBEwF6P")
PUMP_GLOBAL = Pubkey.from_string("4wTV1YmiEkRvAtNtsSGPtUrqRYQMe5SKy2uB4Jjaxnjf")
PUMP_EVENT_AUTHORITY = Pubkey.from_string("Ce6TQqeHC9p8KetsN6JsjHK7UTZk7nasjjnr7XxXp9F1")
PUMP_FEE_RECIPIENT = Pubkey.from_string("CebN5WGQ4jvEPvsVU4EoHEpgzq1VV7AbicfhtW4xC9iM")
WITHDRAW_DISCRIMINATOR = bytes([183, 18, 70, 156, 148, 109, 161, 34])
MIN_CURVE_SOL = 0.001


class FeeState(Enum):
    CURVE_ACTIVE = "curve_active"
    MIGRATED = "migrated"


def get_bonding_curve_pda(mint: Pubkey) -> Pubkey:
    pda, _ = Pubkey.find_program_address([b"bonding-curve", bytes(mint)], PUMP_PROGRAM)
    return pda


def detect_fee_state(client: Client, mint: Pubkey) -> FeeState:
    try:
        info = client.get_account_info(get_bonding_curve_pda(mint)).value
    except Exception as e:
        debug("FEES", f"Bonding curve lookup failed: {e}")
        return FeeState.MIGRATED

    if info is None or len(info.data) == 0:
        debug("FEES", "No bonding curve account found - token likely migrated")
        return FeeState.MIGRATED
    return FeeState.CURVE_ACTIVE


def build_withdraw_instruction(payer: Pubkey, mint: Pubkey) -> Instruction:
    bonding_curve = get_bonding_curve_pda(mint)
    associated_bonding_curve = get_associated_token_address(bonding_curve, mint)
    accounts = [
        AccountMeta(PUMP_GLOBAL, is_signer=False, is_writable=False),
        AccountMeta(bonding_curve, is_signer=False, is_writable=True),
        AccountMeta(associated_bonding_curve, is_signer=False, is_writable=True),
        AccountMeta(mint, is_signer=False, is_writable=False),
        AccountMeta(payer, is_signer=True, is_writable=True),
        AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(PUMP_FEE_RECIPIENT, is_signer=False, is_writable=True),
        AccountMeta(PUMP_EVENT_AUTHORITY, is_signer=False, is_writable=False),
        AccountMeta(PUMP_PROGRAM, is_signer=False, is_writable=False),
    ]
    return Instruction(PUMP_PROGRAM, WITHDRAW_DISCRIMINATOR, accounts)


def _withdraw_via_pumpportal(client: Client, keypair: Keypair, mint: Pubkey) -> str:
    response = requests.post(
        config.PUMPPORTAL_TRADE_API,
        json={
            "publicKey": str(keypair.pubkey()),
            "action": "collectCreatorFee",
            "priorityFee": 0.000001,
            "pool": "pump",
            "mint": str(mint),
        },
        timeout=config.HTTP_TIMEOUT_SEC,
    )
    if response.status_code != 200 or len(response.content) == 0:
        raise chain.ChainError(f"PumpPortal claim failed: {response.status_code} - {response.text}")
    return chain.sign_and_send_transaction(client, keypair, response.content, skip_preflight=True)


def _withdraw_via_program(client: Client, keypair: Keypair, mint: Pubkey) -> str:
    ix = build_withdraw_instruction(keypair.pubkey(), mint)
    return chain.send_instructions(client, keypair, [ix])


def withdraw_curve_fees(client: Client, keypair: Keypair, mint: Pubkey) -> float:
    """Withdraw from the bonding curve. Returns usable SOL, 0.0 on any failure."""
    try:
        curve = client.get_account_info(get_bonding_curve_pda(mint)).value
        if curve is None:
            log("WARN", "⚠️ Bonding curve account not found", Style.YELLOW)
            return 0.0

        curve_sol = curve.lamports / config.LAMPORTS_PER_SOL
        log("FEES", f"📊 Bonding curve balance: {curve_sol:.6f} SOL", Style.DIM)
        if curve_sol < MIN_CURVE_SOL:
            log("FEES", "💭 No significant fees to withdraw from bonding curve", Style.DIM)
            return 0.0

        if config.CLAIM_METHOD == "program":
            sig = _withdraw_via_program(client, keypair, mint)
        else:
            sig = _withdraw_via_pumpportal(client, keypair, mint)
        log("SUCCESS", f"✅ Fees withdrawn: {chain.solscan(sig)}", Style.GREEN)

        balance = chain.get_sol_balance(client, keypair.pubkey())
    except Exception as e:
        # Unclaimed fees stay in the curve for a later cycle
        log("WARN", f"⚠️ Failed to withdraw from bonding curve: {e}", Style.YELLOW)
        return 0.0

    return max(0.0, balance - config.GAS_RESERVE)


def claim_fees(client: Client, keypair: Keypair) -> float:
    """
    Usable SOL for this cycle's buyback.
    0.0 means insufficient: nothing withdrawn, or below MIN_FEE_SOL.
    """
    log("FEES", "💵 Checking available creator fees...", Style.CYAN)
    mint = Pubkey.from_string(config.TOKEN_MINT)

    if detect_fee_state(client, mint) == FeeState.CURVE_ACTIVE:
        log("FEES", "🔗 Token is on pump.fun bonding curve - withdrawing fees...", Style.CYAN)
        available = withdraw_curve_fees(client, keypair, mint)
    else:
        log("FEES", "🌊 Token migrated - fees go directly to wallet", Style.CYAN)
        balance = chain.get_sol_balance(client, keypair.pubkey())
        available = max(0.0, balance - config.GAS_RESERVE)
        log("FEES", f"💼 Wallet balance: {balance:.6f} SOL", Style.DIM)

    log("FEES", f"✅ Available for buyback: {available:.6f} SOL", Style.CYAN)

    if available < config.MIN_FEE_SOL:
        log("SKIP", f"⚠️ Below threshold ({config.MIN_FEE_SOL} SOL)", Style.YELLOW)
        return 0.0
    return available
