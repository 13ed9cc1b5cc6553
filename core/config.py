import os
from dotenv import load_dotenv
load_dotenv()

class CFG:
    # Drivers
    REFRESH_SEC = float(os.getenv("REFRESH_SEC", "30"))
    TICK_SEC = float(os.getenv("TICK_SEC", "3"))

    # History / analytics
    HISTORY_LEN = int(os.getenv("HISTORY_LEN", "50"))
    MA_WINDOW = int(os.getenv("MA_WINDOW", "5"))
    TICK_JITTER = float(os.getenv("TICK_JITTER", "0.0005"))  # ±0.05% per tick

    # Market data endpoints
    COINGECKO_URL = os.getenv("COINGECKO_URL", "https://api.coingecko.com/api/v3")
    FRANKFURTER_URL = os.getenv("FRANKFURTER_URL", "https://api.frankfurter.app")
    HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "10"))

    # Display currency for economics fields (prices stay USD)
    DISPLAY_CURRENCY = os.getenv("DISPLAY_CURRENCY", "USD").upper()
    DISPLAY_RATE = float(os.getenv("DISPLAY_RATE", "1.0"))
    # currencies offered by the UI picker, "CODE:units per USD" pairs
    CURRENCY_RATES = os.getenv("CURRENCY_RATES", "USD:1,EUR:0.92,GBP:0.79,JPY:149.5,KES:129.5,NGN:1550")

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
    SNAPSHOT_PATH = os.getenv("SNAPSHOT_PATH", "storage/market_state.json")
    SNAPSHOT_MIN_SEC = float(os.getenv("SNAPSHOT_MIN_SEC", "1"))   # throttle for UI snapshot writes

    # UI -> engine commands (one JSON file per command)
    CONTROL_DIR = os.getenv("CONTROL_DIR", "storage/control")
    CONTROL_POLL_SEC = float(os.getenv("CONTROL_POLL_SEC", "1"))
