import os
import yaml

ROOT_PATH = os.path.dirname(__file__)
CONFIG_FILE_PATH = os.path.join(ROOT_PATH, "env.yaml")

if os.path.exists(CONFIG_FILE_PATH):
    with open(CONFIG_FILE_PATH, "r") as r_file:
        data = yaml.safe_load(r_file) or dict()
else:
    data = dict()


class ApplicationConfig:
    DB_URI = data.get("DB_URI", "sqlite+aiosqlite:///./credits.db")
    DB_CREATE_ALL = bool(data.get("DB_CREATE_ALL", True))
    API_PREFIX = data.get("API_PREFIX", "")
    API_PORT = data.get("API_PORT", 8000)
    API_HOST = data.get("API_HOST", "0.0.0.0")
    CORS_ORIGINS = data.get("CORS_ORIGINS", [])
    CORS_ALLOW_CREDENTIALS = data.get("CORS_ALLOW_CREDENTIALS", True)
    LOG_LEVEL = data.get("LOG_LEVEL", "INFO")

    # Ledger
    CREDIT_LOCK_TIMEOUT_SECONDS = float(data.get("CREDIT_LOCK_TIMEOUT_SECONDS", 5))
    CREDIT_MAX_RETRIES = int(data.get("CREDIT_MAX_RETRIES", 3))
    CREDIT_DEFAULT_EXPIRY_DAYS = int(data.get("CREDIT_DEFAULT_EXPIRY_DAYS", 365))
    RESERVATION_DEFAULT_TTL_SECONDS = int(data.get("RESERVATION_DEFAULT_TTL_SECONDS", 900))
    CONFIG_CACHE_TTL_SECONDS = float(data.get("CONFIG_CACHE_TTL_SECONDS", 30))
    CONFIG_CACHE_MAX_SIZE = int(data.get("CONFIG_CACHE_MAX_SIZE", 10000))

    # Transfers
    TRANSFER_FEE_RATE = str(data.get("TRANSFER_FEE_RATE", "0"))
    DEFAULT_TRANSFER_APPROVAL_LEVEL = int(data.get("DEFAULT_TRANSFER_APPROVAL_LEVEL", 1))

    # Alerts
    LOW_BALANCE_THRESHOLD = str(data.get("LOW_BALANCE_THRESHOLD", "100"))
    EXPIRY_WARNING_DAYS = data.get("EXPIRY_WARNING_DAYS", [30, 7, 1])
    ALERT_WEBHOOK_URL = data.get("ALERT_WEBHOOK_URL", None)

    # Expiry sweep
    EXPIRY_SWEEP_ENABLED = bool(data.get("EXPIRY_SWEEP_ENABLED", True))
    EXPIRY_SWEEP_INTERVAL_SECONDS = data.get("EXPIRY_SWEEP_INTERVAL_SECONDS", 3600)  # Hourly

    # Reservation reaper
    RESERVATION_REAP_ENABLED = bool(data.get("RESERVATION_REAP_ENABLED", True))
    RESERVATION_REAP_INTERVAL_SECONDS = data.get("RESERVATION_REAP_INTERVAL_SECONDS", 60)

    # Ledger reconciliation
    RECONCILIATION_ENABLED = bool(data.get("RECONCILIATION_ENABLED", True))
    RECONCILIATION_INTERVAL_SECONDS = data.get("RECONCILIATION_INTERVAL_SECONDS", 86400)  # Daily
