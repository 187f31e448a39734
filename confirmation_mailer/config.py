import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

# Server
HOST = os.getenv("HOST", "0.0.0.0")  # noqa: S104 - container deployment binds all interfaces
PORT = int(os.getenv("PORT", "8080"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# "*" matches the permissive default of the frontend integration
ALLOWED_ORIGINS = [
    origin.strip() for origin in os.getenv("ALLOWED_ORIGINS", "*").split(",") if origin.strip()
]
SECURITY_HEADERS_ENABLED = os.getenv("SECURITY_HEADERS_ENABLED", "true").lower() == "true"

DEFAULT_SMTP_HOST = "smtp.gmail.com"
DEFAULT_SMTP_PORT = 465
DEFAULT_CONFIRMATION_SUBJECT = "Registration Confirmation"


@dataclass(frozen=True)
class MailerConfig:
    """Credentials and message settings for the confirmation mailer.

    Missing credentials are tolerated here; they fail on the first send.
    """

    sender: Optional[str]
    account_email: Optional[str]
    client_id: Optional[str]
    client_secret: Optional[str]
    refresh_token: Optional[str]
    access_token: Optional[str] = None
    smtp_host: str = DEFAULT_SMTP_HOST
    smtp_port: int = DEFAULT_SMTP_PORT
    smtp_timeout: Optional[float] = None
    subject: str = DEFAULT_CONFIRMATION_SUBJECT


def _optional_float(value: Optional[str]) -> Optional[float]:
    if value is None or value.strip() == "":
        return None
    return float(value)


def load_mailer_config(environ: Optional[dict] = None) -> MailerConfig:
    """Build a MailerConfig from the process environment (or a given mapping)."""
    env = os.environ if environ is None else environ

    account_email = env.get("GMAIL_EMAIL") or None
    return MailerConfig(
        # MAILGUN_SENDER is the variable name used by existing deployments
        sender=env.get("MAILGUN_SENDER") or account_email,
        account_email=account_email,
        client_id=env.get("GMAIL_CLIENT_ID") or None,
        client_secret=env.get("GMAIL_CLIENT_SECRET") or None,
        refresh_token=env.get("GMAIL_REFRESH_TOKEN") or None,
        access_token=env.get("GMAIL_ACCESS_TOKEN") or None,
        smtp_host=env.get("SMTP_HOST") or DEFAULT_SMTP_HOST,
        smtp_port=int(env.get("SMTP_PORT") or DEFAULT_SMTP_PORT),
        smtp_timeout=_optional_float(env.get("SMTP_TIMEOUT")),
        subject=env.get("CONFIRMATION_SUBJECT") or DEFAULT_CONFIRMATION_SUBJECT,
    )
