import os

from dotenv import load_dotenv

load_dotenv()


def _bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


# Slot grid
DAY_START = os.getenv("SHIFTBOARD_DAY_START", "06:00")
DAY_END = os.getenv("SHIFTBOARD_DAY_END", "22:00")
SLOT_MINUTES = int(os.getenv("SHIFTBOARD_SLOT_MINUTES", "30"))
WINDOW_DAYS = int(os.getenv("SHIFTBOARD_WINDOW_DAYS", "14"))

# Per doctor, per date
DAILY_CAP_MINUTES = int(os.getenv("SHIFTBOARD_DAILY_CAP_MINUTES", str(8 * 60)))

# Consecutive worked days (starting today) that trigger the overtime advisory
OVERTIME_DAYS = int(os.getenv("SHIFTBOARD_OVERTIME_DAYS", "8"))

# Observed behaviour: replacing a doctor skips the daily cap check
REPLACEMENT_ENFORCES_CAP = _bool(os.getenv("SHIFTBOARD_REPLACEMENT_ENFORCES_CAP"))

# Base URL of the schedule API used by ShiftApiClient
API_URL = os.getenv("SHIFTBOARD_API_URL", "http://localhost:8000")
API_TIMEOUT_SECONDS = float(os.getenv("SHIFTBOARD_API_TIMEOUT_SECONDS", "10"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
# "json" or "console"
LOG_FORMAT = os.getenv("LOG_FORMAT", "json")
