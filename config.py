"""
Hopeless ($HOPE) - Redistribution Bot configuration
All settings come from the environment (.env supported).
"""

import os
from dotenv import load_dotenv

load_dotenv()

# --- WALLET & TOKEN ---
PRIVATE_KEY = os.getenv("PRIVATE_KEY", "")
TOKEN_MINT = os.getenv("TOKEN_MINT", "")
RPC_URL = os.getenv("RPC_URL", "https://api.mainnet-beta.solana.com")

# --- CYCLE TIMING ---
INTERVAL_SEC = int(os.getenv("INTERVAL_SEC", "300"))
JITTER_SEC = int(os.getenv("JITTER_SEC", "2"))

# --- JUPITER (quote / swap / price) ---
JUPITER_API = os.getenv("JUPITER_API", "https://quote-api.jup.ag/v6")
PRICE_API = os.getenv("PRICE_API", f"{JUPITER_API}/price")
SLIPPAGE_BPS = 500  # 5%, fixed
PRIORITY_FEE_LAMPORTS = int(os.getenv("PRIORITY_FEE_LAMPORTS", "100000"))

# --- FEE CLAIM SETTINGS ---
MIN_FEE_SOL = float(os.getenv("MIN_FEE_SOL", "0.005"))
GAS_RESERVE = float(os.getenv("GAS_RESERVE", "0.01"))
CLAIM_METHOD = os.getenv("CLAIM_METHOD", "pumpportal").lower()  # pumpportal | program
PUMPPORTAL_TRADE_API = "https://pumpportal.fun/api/trade-local"

# --- BURN ---
BURN_METHOD = os.getenv("BURN_METHOD", "spl").lower()  # spl | dead_wallet
DEAD_WALLET = os.getenv("DEAD_WALLET", "1nc1nerator11111111111111111111111111111111")
BURN_RETRIES = int(os.getenv("BURN_RETRIES", "1"))

# --- NETWORK ---
CONFIRM_TIMEOUT_SEC = float(os.getenv("CONFIRM_TIMEOUT_SEC", "60"))
HTTP_TIMEOUT_SEC = float(os.getenv("HTTP_TIMEOUT_SEC", "15"))

# --- MISC ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
DRY_RUN = os.getenv("DRY_RUN", "false").lower() == "true"
PORT = int(os.getenv("PORT", "8000"))

SOL_MINT = "So11111111111111111111111111111111111111112"  # Wrapped SOL
LAMPORTS_PER_SOL = 1_000_000_000
MIN_STARTUP_SOL = 0.005


def validate():
    """Raise ValueError when required settings are missing or malformed."""
    if not PRIVATE_KEY:
        raise ValueError("PRIVATE_KEY is required in .env file")
    if not TOKEN_MINT:
        raise ValueError("TOKEN_MINT is required in .env file")
    if len(PRIVATE_KEY) < 32:
        raise ValueError("PRIVATE_KEY looks invalid (too short)")
    if len(TOKEN_MINT) < 32:
        raise ValueError("TOKEN_MINT looks invalid (too short)")
    if BURN_METHOD not in ("spl", "dead_wallet"):
        raise ValueError(f"BURN_METHOD must be 'spl' or 'dead_wallet', got '{BURN_METHOD}'")
    if CLAIM_METHOD not in ("pumpportal", "program"):
        raise ValueError(f"CLAIM_METHOD must be 'pumpportal' or 'program', got '{CLAIM_METHOD}'")
    if INTERVAL_SEC <= 0:
        raise ValueError("INTERVAL_SEC must be positive")
    if JITTER_SEC < 0:
        raise ValueError("JITTER_SEC must not be negative")
