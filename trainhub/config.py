import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./trainhub.db")

# Firebase Configuration
FIREBASE_PROJECT_ID = os.getenv("FIREBASE_PROJECT_ID")

# Frontend base URL for links in emails (feedback forms, dashboards)
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

# Resend Email Configuration
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "TrainHub <noreply@trainhub.app>")

# Currency shown in agreement financial terms (formatting is a frontend concern)
CURRENCY = os.getenv("CURRENCY", "USD")

# Feedback links expire after this many days
FEEDBACK_LINK_TTL_DAYS = int(os.getenv("FEEDBACK_LINK_TTL_DAYS", "7"))

# Notification outbox dispatch
NOTIFICATION_BATCH_SIZE = int(os.getenv("NOTIFICATION_BATCH_SIZE", "100"))
NOTIFICATION_MAX_ATTEMPTS = int(os.getenv("NOTIFICATION_MAX_ATTEMPTS", "5"))
NOTIFICATION_EMAIL_ENABLED = os.getenv("NOTIFICATION_EMAIL_ENABLED", "true").lower() == "true"

# Bounded retries for transient store errors (idempotent operations only)
DB_RETRY_ATTEMPTS = int(os.getenv("DB_RETRY_ATTEMPTS", "3"))
DB_RETRY_BACKOFF = float(os.getenv("DB_RETRY_BACKOFF", "0.2"))
