import os
import sys

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes")


# ----------------------------
# Config & Constants
# ----------------------------
DATABASE_URL = os.environ.get("DATABASE_URL", None)

if DATABASE_URL is None:
    print("NEED DATABASE_URL! e.g. DATABASE_URL=sqlite:///./coffeeshop.db")
    sys.exit(1)

SITE_NAME = os.environ.get("SITE_NAME", "Coffee Shop")

SESSION_SECRET = os.environ.get("SESSION_SECRET", "coffee-shop-secret")
SESSION_MAX_AGE = int(os.environ.get("SESSION_MAX_AGE", str(24 * 60 * 60)))

ADMIN_USERNAME = os.environ.get("ADMIN_USERNAME", "admin")
ADMIN_PASSWORD = os.environ.get("ADMIN_PASSWORD", "admin123")

MIDTRANS_SERVER_KEY = os.environ.get("MIDTRANS_SERVER_KEY", "")
MIDTRANS_CLIENT_KEY = os.environ.get("MIDTRANS_CLIENT_KEY", "")
MIDTRANS_IS_PRODUCTION = _flag("MIDTRANS_IS_PRODUCTION")

MOCK_SECRET = os.environ.get("MOCK_SECRET", "supersecret")
MOCK_WEBHOOK_URL = os.environ.get(
    "MOCK_WEBHOOK_URL",
    "http://localhost:8000/payment/notification"
)

REDIS_URL = os.environ.get("REDIS_URL", "redis://127.0.0.1:6379")

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
LOG_JSON = _flag("LOG_JSON")

# the payment page polls this often (milliseconds)
PAYMENT_POLL_INTERVAL_MS = 3000
