import base64
import requests
from solders.keypair import Keypair
from solana.rpc.api import Client

import config
import chain
from logger import log, debug, Style


class SwapError(Exception):
    """Quote or swap build failed. Nothing was spent."""


def fetch_quote(amount_lamports: int) -> dict:
    """Jupiter quote for SOL -> TOKEN, bounded by the fixed max slippage."""
    response = requests.get(
        f"{config.JUPITER_API}/quote",
        params={
            "inputMint": config.SOL_MINT,
            "outputMint": config.TOKEN_MINT,
            "amount": str(amount_lamports),
            "slippageBps": str(config.SLIPPAGE_BPS),
        },
        timeout=config.HTTP_TIMEOUT_SEC,
    )
    if response.status_code != 200:
        raise SwapError(f"Quote request failed: {response.status_code} - {response.text}")

    quote = response.json()
    if not quote.get("outAmount"):
        raise SwapError("Jupiter returned no output amount - possibly no liquidity")
    return quote


def fetch_swap_transaction(quote: dict, payer: str) -> bytes:
    """Serialized swap transaction for `quote`, ready for signing"""
    response = requests.post(
        f"{config.JUPITER_API}/swap",
        json={
            "quoteResponse": quote,
            "userPublicKey": payer,
            "wrapAndUnwrapSol": True,
            "dynamicComputeUnitLimit": True,
            "prioritizationFeeLamports": config.PRIORITY_FEE_LAMPORTS,
        },
        timeout=config.HTTP_TIMEOUT_SEC,
    )
    if response.status_code != 200:
        raise SwapError(f"Swap request failed: {response.status_code} - {response.text}")

    tx_data = response.json().get("swapTransaction")
    if not tx_data:
        raise SwapError("No swap transaction returned from Jupiter")
    return base64.b64decode(tx_data)


def buy_tokens(client: Client, keypair: Keypair, sol_amount: float) -> int:
    """
    Spend `sol_amount` SOL on the tracked token.
    Returns the quoted output (raw units). Raises SwapError / ChainError.
    """
    lamports = int(sol_amount * config.LAMPORTS_PER_SOL)
    if lamports <= 0:
        raise SwapError("Swap amount must be positive")

    log("SWAP", f"🔄 Swapping {sol_amount:.6f} SOL → token...", Style.CYAN)

    try:
        quote = fetch_quote(lamports)
        output_amount = int(quote["outAmount"])
        log("SWAP", f"📊 Quote received: {sol_amount:.6f} SOL → {output_amount} tokens (raw)", Style.CYAN)
        if output_amount == 0:
            raise SwapError("Zero output amount - no liquidity available")

        debug("SWAP", "Building swap transaction...")
        swap_tx = fetch_swap_transaction(quote, str(keypair.pubkey()))
    except requests.RequestException as e:
        raise SwapError(f"Jupiter API error: {e}") from e

    # Past this point SOL may leave the wallet; a timeout is an unknown outcome
    sig = chain.sign_and_send_transaction(client, keypair, swap_tx)

    log("SUCCESS", f"✅ Swap confirmed! Received ~{output_amount} tokens", Style.GREEN)
    log("TX", chain.solscan(sig), Style.GREEN)
    return output_amount
