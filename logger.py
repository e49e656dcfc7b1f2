import os
import json
import threading
from datetime import datetime

import config


# --- TERMINAL STYLING ---
class Style:
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    # Foreground
    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    BLUE = "\033[94m"
    MAGENTA = "\033[95m"
    CYAN = "\033[96m"
    WHITE = "\033[97m"


# --- LOGGING SYSTEM ---
LOG_FILE_PATH = "web/public/logs.json"
EVENTS_FILE_PATH = "web/public/events.json"
MAX_LOG_ENTRIES = 500
MAX_EVENTS = 100

log_lock = threading.Lock()


def init_log_file(path: str = None):
    """Ensure the web/public directory exists and the JSON file holds a list"""
    path = path or LOG_FILE_PATH
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    if not os.path.exists(path):
        with open(path, "w") as f:
            json.dump([], f)


def _append_json(path: str, entry: dict, keep: int):
    # Caller holds log_lock
    init_log_file(path)
    with open(path, "r") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError:
            data = []

    data.append(entry)
    if len(data) > keep:
        data = data[-keep:]

    with open(path, "w") as f:
        json.dump(data, f)


def log(tag: str, msg: str, color: str = Style.WHITE):
    timestamp = datetime.now().strftime("%H:%M:%S")

    # 1. Console Output
    print(f"{Style.DIM}[{timestamp}]{Style.RESET} {color}{Style.BOLD}[{tag:^10}]{Style.RESET} {msg}")

    # 2. JSON Output for Web UI
    entry = {
        "timestamp": timestamp,
        "tag": tag,
        "msg": msg,
        "color": color.replace("\033", ""),
    }

    with log_lock:
        try:
            _append_json(LOG_FILE_PATH, entry, MAX_LOG_ENTRIES)
        except OSError as e:
            print(f"Log Error: {e}")


def debug(tag: str, msg: str):
    if config.LOG_LEVEL == "DEBUG":
        log(tag, msg, Style.DIM)


def emit_event(event: dict):
    """Publish a completed-cycle record for the web feed and log scrapers."""
    print(f"\n[EVENT] {json.dumps(event)}\n")
    with log_lock:
        try:
            _append_json(EVENTS_FILE_PATH, event, MAX_EVENTS)
        except OSError as e:
            print(f"Event Log Error: {e}")


def short(wallet: str) -> str:
    return f"{wallet[:4]}...{wallet[-4:]}"


def print_banner():
    # Attempt to enable ANSI on Windows
    if os.name == "nt":
        os.system("color")

    banner = f"""{Style.BOLD}{Style.WHITE}
    ██   ██  ██████  ██████  ███████
    ██   ██ ██    ██ ██   ██ ██
    ███████ ██    ██ ██████  █████
    ██   ██ ██    ██ ██      ██
    ██   ██  ██████  ██      ███████
             {Style.DIM}>> THE TOKEN THAT REWARDS PAIN <<{Style.RESET}
    """
    print(banner)
    print(f"{Style.DIM}    v1.0 | HOPELESS REDISTRIBUTION BOT{Style.RESET}\n")
