"""
Ledger helpers: keypair loading, balances, holder scan, send & confirm.
Every RPC failure surfaces as ChainError so callers can abort a cycle step.
"""

import json
import time
import base58
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.message import Message
from solders.instruction import Instruction
from solders.signature import Signature
from solders.transaction import Transaction, VersionedTransaction
from solders.transaction_status import TransactionConfirmationStatus
from solana.rpc.api import Client
from solana.rpc.types import MemcmpOpts, TxOpts
from spl.token.constants import TOKEN_PROGRAM_ID

import config

TOKEN_ACCOUNT_SIZE = 165
CONFIRMED_STATES = (TransactionConfirmationStatus.Confirmed, TransactionConfirmationStatus.Finalized)
DEFAULT_DECIMALS = 6


class ChainError(Exception):
    """Ledger unavailable or a submitted transaction failed."""


class ConfirmationTimeout(ChainError):
    """Submitted, but no confirmation inside the timeout. Outcome unknown."""

    def __init__(self, signature: str, timeout: float):
        super().__init__(f"Transaction {signature} not confirmed after {timeout:.0f}s")
        self.signature = signature


def load_keypair(key: str) -> Keypair:
    try:
        key = key.strip()
        if key.startswith("[") and key.endswith("]"):
            byte_array = json.loads(key)
            return Keypair.from_bytes(bytes(byte_array))
        return Keypair.from_bytes(base58.b58decode(key))
    except Exception as e:
        raise ValueError(f"Failed to load keypair: {e}") from e


def solscan(signature: str) -> str:
    return f"https://solscan.io/tx/{signature}"


def get_sol_balance(client: Client, pubkey: Pubkey) -> float:
    try:
        response = client.get_balance(pubkey)
    except Exception as e:
        raise ChainError(f"Balance check failed for {pubkey}: {e}") from e
    return (response.value or 0) / config.LAMPORTS_PER_SOL


def get_token_accounts(client: Client, mint: Pubkey) -> list[dict]:
    """
    All SPL token accounts of `mint` (165-byte layout, mint at offset 0).
    Returns dicts: {"address", "owner", "balance", "balance_raw"}.
    """
    try:
        response = client.get_program_accounts_json_parsed(
            TOKEN_PROGRAM_ID,
            filters=[TOKEN_ACCOUNT_SIZE, MemcmpOpts(offset=0, bytes=str(mint))],
        )
    except Exception as e:
        raise ChainError(f"Holder scan failed: {e}") from e

    accounts = []
    for keyed in response.value or []:
        parsed = keyed.account.data.parsed
        info = parsed.get("info") if isinstance(parsed, dict) else None
        if not info:
            continue
        token_amount = info.get("tokenAmount") or {}
        accounts.append({
            "address": str(keyed.pubkey),
            "owner": info.get("owner", ""),
            "balance": float(token_amount.get("uiAmountString") or 0),
            "balance_raw": int(token_amount.get("amount") or 0),
        })
    return accounts


def get_mint_decimals(client: Client, mint: Pubkey) -> int:
    try:
        return client.get_token_supply(mint).value.decimals
    except Exception:
        return DEFAULT_DECIMALS


def account_exists(client: Client, address: Pubkey) -> bool:
    try:
        return client.get_account_info(address).value is not None
    except Exception as e:
        raise ChainError(f"Account lookup failed for {address}: {e}") from e


def confirm_signature(client: Client, signature: str, timeout: float = None, poll: float = 1.0) -> str:
    """Block until `signature` reaches confirmed commitment. Raises on error or timeout."""
    timeout = config.CONFIRM_TIMEOUT_SEC if timeout is None else timeout
    sig = Signature.from_string(signature)
    deadline = time.monotonic() + timeout

    while True:
        try:
            status = client.get_signature_statuses([sig]).value[0]
        except Exception:
            # Status polling is best effort until the deadline
            status = None

        if status is not None:
            if status.err is not None:
                raise ChainError(f"Transaction {signature} failed: {status.err}")
            if status.confirmation_status in CONFIRMED_STATES:
                return signature

        if time.monotonic() >= deadline:
            raise ConfirmationTimeout(signature, timeout)
        time.sleep(poll)


def send_instructions(client: Client, keypair: Keypair, instructions: list[Instruction]) -> str:
    """Build a legacy transaction from `instructions`, sign, send and confirm."""
    try:
        blockhash = client.get_latest_blockhash().value.blockhash
        msg = Message(instructions, keypair.pubkey())
        tx = Transaction([keypair], msg, blockhash)
        response = client.send_transaction(tx)
    except Exception as e:
        raise ChainError(f"Submit failed: {e}") from e

    if not response.value:
        raise ChainError("Submit returned no signature")
    return confirm_signature(client, str(response.value))


def sign_and_send_transaction(client: Client, keypair: Keypair, tx_bytes: bytes, skip_preflight: bool = False) -> str:
    """Sign an externally built versioned transaction, send and confirm it."""
    try:
        tx = VersionedTransaction.from_bytes(tx_bytes)
        signed_tx = VersionedTransaction(tx.message, [keypair])
        opts = TxOpts(skip_preflight=skip_preflight, max_retries=3)
        response = client.send_raw_transaction(bytes(signed_tx), opts)
    except Exception as e:
        raise ChainError(f"Tx failed: {e}") from e

    if not response.value:
        raise ChainError("Submit returned no signature")
    return confirm_signature(client, str(response.value))
