"""
Gmail Transport
Sends mail through Gmail SMTP authenticated with OAuth2 (XOAUTH2)
"""

import asyncio
import logging
import smtplib
import ssl
import time
from email.message import EmailMessage
from email.policy import SMTP as SMTP_POLICY
from email.utils import formatdate, getaddresses, make_msgid, parseaddr
from typing import Optional, Protocol

import httpx

from ..config import MailerConfig
from ..exceptions import TransportError
from ..schemas import Accepted, OutgoingEmail, Rejected, SendOutcome
from ..utils.sanitization import mask_email

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"  # noqa: S105 - OAuth endpoint URL

# Refresh tokens this long before Google says they expire
TOKEN_EXPIRY_MARGIN_SECONDS = 300


class MailTransport(Protocol):
    """Anything that can submit one email and report the provider's outcome"""

    async def send(self, email: OutgoingEmail) -> SendOutcome:
        ...


def build_mime_message(email: OutgoingEmail) -> EmailMessage:
    """Build an HTML message with CRLF line endings ready for SMTP DATA"""
    sender_address = parseaddr(email.sender)[1]
    domain = sender_address.rpartition("@")[2] or None

    msg = EmailMessage(policy=SMTP_POLICY)
    msg["Subject"] = email.subject
    msg["From"] = email.sender
    msg["To"] = email.to
    msg["Date"] = formatdate(localtime=True)
    msg["Message-ID"] = make_msgid(domain=domain)
    msg.set_content(email.html, subtype="html")
    return msg


def xoauth2_string(user: str, access_token: str) -> str:
    return f"user={user}\x01auth=Bearer {access_token}\x01\x01"


class GmailOAuth2Transport:
    """
    Long-lived Gmail client shared by all requests.

    Each send opens its own SMTP session; the only state kept between sends
    is the cached OAuth2 access token, which is guarded by a lock.
    """

    def __init__(
        self,
        config: MailerConfig,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self._http_transport = http_transport
        self._access_token = config.access_token
        # None means the expiry is unknown (token supplied through configuration)
        self._token_expires_at: Optional[float] = None
        self._token_lock = asyncio.Lock()

    def _can_refresh(self) -> bool:
        return bool(
            self.config.client_id and self.config.client_secret and self.config.refresh_token
        )

    def _token_is_fresh(self) -> bool:
        if not self._access_token:
            return False
        if self._token_expires_at is None:
            return True
        return time.monotonic() < self._token_expires_at

    async def get_access_token(self, stale_token: Optional[str] = None) -> str:
        """
        Return a usable access token, refreshing it when needed.

        Args:
            stale_token: A token the server just refused. If it is still the
                cached one, a new token is requested.
        """
        async with self._token_lock:
            if self._token_is_fresh() and self._access_token != stale_token:
                return self._access_token
            return await self._refresh_access_token()

    async def _refresh_access_token(self) -> str:
        if not self._can_refresh():
            raise TransportError(
                "Gmail OAuth2 credentials are not configured "
                "(GMAIL_CLIENT_ID, GMAIL_CLIENT_SECRET, GMAIL_REFRESH_TOKEN)"
            )

        logger.info("🔄 Requesting new Gmail access token...")
        try:
            async with httpx.AsyncClient(transport=self._http_transport) as client:
                response = await client.post(
                    GOOGLE_TOKEN_URL,
                    data={
                        "client_id": self.config.client_id,
                        "client_secret": self.config.client_secret,
                        "refresh_token": self.config.refresh_token,
                        "grant_type": "refresh_token",
                    },
                )
        except httpx.HTTPError as e:
            logger.error(f"❌ Gmail token request failed: {e}")
            raise TransportError(f"Gmail token request failed: {e}", cause=e) from e

        if response.status_code != 200:
            logger.error(f"❌ Gmail token refresh failed: HTTP {response.status_code}")
            raise TransportError(f"Gmail token refresh failed with HTTP {response.status_code}")

        tokens = response.json()
        new_access_token = tokens.get("access_token")
        if not new_access_token:
            logger.error("❌ No access token in refresh response")
            raise TransportError("No access token in Gmail token refresh response")

        expires_in = tokens.get("expires_in", 3600)
        self._access_token = new_access_token
        self._token_expires_at = (
            time.monotonic() + max(int(expires_in) - TOKEN_EXPIRY_MARGIN_SECONDS, 0)
        )
        logger.info("✅ Gmail access token refreshed")
        return new_access_token

    async def send(self, email: OutgoingEmail) -> SendOutcome:
        if not self.config.account_email:
            raise TransportError("GMAIL_EMAIL is not configured")

        message = build_mime_message(email)
        access_token = await self.get_access_token()

        logger.info(
            f"📧 Sending confirmation email via {self.config.smtp_host} to: {mask_email(email.to)}"
        )
        try:
            outcome = await self._submit(message, email, access_token)
        except smtplib.SMTPAuthenticationError as e:
            if not self._can_refresh():
                raise TransportError(
                    f"Gmail rejected the access token: {e.smtp_code}", cause=e, smtp_code=e.smtp_code
                ) from e
            logger.warning("⚠️ Gmail refused the access token, requesting a new one")
            access_token = await self.get_access_token(stale_token=access_token)
            try:
                outcome = await self._submit(message, email, access_token)
            except smtplib.SMTPAuthenticationError as retry_error:
                raise TransportError(
                    f"Gmail authentication failed: {retry_error.smtp_code}",
                    cause=retry_error,
                    smtp_code=retry_error.smtp_code,
                ) from retry_error

        if isinstance(outcome, Accepted):
            logger.info(f"✅ Email accepted by Gmail: {outcome.info.get('messageId')}")
        else:
            logger.warning(f"⚠️ Email rejected by Gmail: {outcome.info.get('response')}")
        return outcome

    async def _submit(
        self, message: EmailMessage, email: OutgoingEmail, access_token: str
    ) -> SendOutcome:
        try:
            return await asyncio.to_thread(self._deliver, message, email, access_token)
        except smtplib.SMTPAuthenticationError:
            raise
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"❌ Gmail SMTP send failed: {e}")
            raise TransportError(
                f"SMTP delivery failed: {e}", cause=e, smtp_code=getattr(e, "smtp_code", None)
            ) from e

    def _connect(self) -> smtplib.SMTP:
        host = self.config.smtp_host
        port = self.config.smtp_port
        kwargs = {}
        if self.config.smtp_timeout is not None:
            kwargs["timeout"] = self.config.smtp_timeout

        context = ssl.create_default_context()
        if port == 465:
            return smtplib.SMTP_SSL(host, port, context=context, **kwargs)

        server = smtplib.SMTP(host, port, **kwargs)
        try:
            server.starttls(context=context)
        except (smtplib.SMTPException, OSError):
            server.close()
            raise
        return server

    def _deliver(self, message: EmailMessage, email: OutgoingEmail, access_token: str) -> SendOutcome:
        """Run one SMTP session. Blocking; called from a worker thread."""
        envelope_from = parseaddr(email.sender)[1]
        recipients = [address for _, address in getaddresses([email.to]) if address]
        payload = message.as_bytes()

        info = {
            "accepted": [],
            "rejected": [],
            "envelope": {"from": envelope_from, "to": recipients},
            "messageId": message["Message-ID"],
        }

        server = self._connect()
        try:
            server.ehlo()
            auth_string = xoauth2_string(self.config.account_email, access_token)
            # On failure Gmail sends a 334 challenge that must be answered with an empty line
            server.auth(
                "XOAUTH2", lambda challenge=None: auth_string if challenge is None else ""
            )

            envelope_start = time.monotonic()
            code, resp = server.mail(envelope_from)
            if code != 250:
                _reset_quietly(server)
                info["rejected"] = list(recipients)
                info["response"] = _format_reply(code, resp)
                return Rejected(info=info)

            rejected_errors = []
            for recipient in recipients:
                code, resp = server.rcpt(recipient)
                if code in (250, 251):
                    info["accepted"].append(recipient)
                else:
                    info["rejected"].append(recipient)
                    rejected_errors.append(
                        {"recipient": recipient, "response": _format_reply(code, resp)}
                    )
            info["envelopeTime"] = _elapsed_ms(envelope_start)

            if not info["accepted"]:
                _reset_quietly(server)
                info["rejectedErrors"] = rejected_errors
                info["response"] = "All recipients were rejected"
                return Rejected(info=info)

            message_start = time.monotonic()
            try:
                code, resp = server.data(payload)
            except smtplib.SMTPDataError as e:
                info["response"] = _format_reply(e.smtp_code, e.smtp_error)
                return Rejected(info=info)
            info["messageTime"] = _elapsed_ms(message_start)
            info["messageSize"] = len(payload)
            info["response"] = _format_reply(code, resp)
            if rejected_errors:
                info["rejectedErrors"] = rejected_errors

            if code != 250:
                return Rejected(info=info)
            return Accepted(info=info)
        finally:
            try:
                server.quit()
            except (smtplib.SMTPException, OSError):
                server.close()


def _format_reply(code: int, resp) -> str:
    if isinstance(resp, bytes):
        resp = resp.decode("utf-8", errors="replace")
    return f"{code} {resp}".strip()


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def _reset_quietly(server: smtplib.SMTP) -> None:
    """Abort the pending transaction; a failure here must not hide the refusal"""
    try:
        server.rset()
    except (smtplib.SMTPException, OSError) as e:
        logger.debug(f"RSET after refusal failed: {e}")
