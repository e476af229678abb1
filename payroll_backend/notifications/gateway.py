"""Email gateway — the single-message send primitive used by the dispatcher.

``SmtpEmailGateway`` opens one SMTP connection per message in a worker
thread so the event loop never blocks on the socket. ``SimulatedEmailGateway``
stands in when no SMTP server is configured.
"""

from __future__ import annotations

import asyncio
import logging
import smtplib
import ssl
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, make_msgid
from typing import Optional, Protocol

from payroll_backend.common.exceptions import DeliveryError, TransportError
from payroll_backend.config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutgoingEmail:
    to: str
    subject: str
    html: str
    text: Optional[str] = None


class EmailGateway(Protocol):
    """What the dispatcher needs from a mail transport."""

    simulated: bool

    async def verify(self) -> None:
        """Raise ``TransportError`` when the transport cannot be established."""

    async def send(self, message: OutgoingEmail) -> str:
        """Deliver one message and return its message id; raise ``DeliveryError``."""


class SmtpEmailGateway:
    """SMTP transport with connect/greeting/socket timeouts."""

    simulated = False

    def __init__(
        self,
        host: str,
        port: int,
        user: str,
        password: str,
        from_email: str,
        from_name: str = "",
        use_tls: bool = True,
        use_ssl: bool = False,
        timeout: float = 30.0,
    ) -> None:
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.from_email = from_email
        self.from_name = from_name
        self.use_tls = use_tls
        self.use_ssl = use_ssl
        self.timeout = timeout

    @classmethod
    def from_settings(cls, config: Settings) -> "SmtpEmailGateway":
        return cls(
            host=config.SMTP_HOST,
            port=config.SMTP_PORT,
            user=config.SMTP_USER,
            password=config.SMTP_PASSWORD,
            from_email=config.EMAIL_FROM or config.SMTP_USER,
            from_name=config.EMAIL_FROM_NAME,
            use_tls=config.SMTP_USE_TLS,
            use_ssl=config.SMTP_USE_SSL,
            timeout=config.SMTP_CONNECT_TIMEOUT,
        )

    # ── Blocking helpers (run in a worker thread) ───────────────────

    def _connect(self) -> smtplib.SMTP:
        # ``timeout`` covers the TCP connect, the greeting and every later socket read.
        if self.use_ssl:
            server: smtplib.SMTP = smtplib.SMTP_SSL(
                self.host, self.port, timeout=self.timeout,
                context=ssl.create_default_context(),
            )
        else:
            server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
            if self.use_tls:
                server.starttls(context=ssl.create_default_context())
        if self.user:
            server.login(self.user, self.password)
        return server

    def _verify_blocking(self) -> None:
        server = self._connect()
        server.quit()

    def _build_message(self, message: OutgoingEmail, message_id: str) -> MIMEMultipart:
        mime = MIMEMultipart("alternative")
        mime["Subject"] = message.subject
        mime["From"] = formataddr((self.from_name, self.from_email)) if self.from_name else self.from_email
        mime["To"] = message.to
        mime["Message-ID"] = message_id
        if message.text:
            mime.attach(MIMEText(message.text, "plain", "utf-8"))
        mime.attach(MIMEText(message.html, "html", "utf-8"))
        return mime

    def _send_blocking(self, message: OutgoingEmail) -> str:
        message_id = make_msgid(domain=self.from_email.rpartition("@")[2] or None)
        server = self._connect()
        try:
            server.send_message(self._build_message(message, message_id))
        finally:
            try:
                server.quit()
            except smtplib.SMTPException:
                server.close()
        return message_id

    # ── Async API ───────────────────────────────────────────────────

    async def verify(self) -> None:
        try:
            await asyncio.to_thread(self._verify_blocking)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("SMTP transport %s:%s unavailable: %s", self.host, self.port, exc)
            raise TransportError(f"Cannot connect to mail server {self.host}:{self.port}: {exc}") from exc
        logger.info("SMTP transport %s:%s verified", self.host, self.port)

    async def send(self, message: OutgoingEmail) -> str:
        work = asyncio.ensure_future(asyncio.to_thread(self._send_blocking, message))
        try:
            return await asyncio.shield(work)
        except asyncio.CancelledError:
            # The worker thread cannot be interrupted; stay pending until its
            # connection is closed.
            await asyncio.wait({work})
            work.exception()  # a late failure is already reported as the timeout
            raise
        except (smtplib.SMTPException, OSError) as exc:
            raise DeliveryError(str(exc) or exc.__class__.__name__) from exc


class SimulatedEmailGateway:
    """Accepts every message without a network call and keeps an outbox."""

    simulated = True

    def __init__(self) -> None:
        self.outbox: list[OutgoingEmail] = []

    async def verify(self) -> None:
        return None

    async def send(self, message: OutgoingEmail) -> str:
        self.outbox.append(message)
        logger.info("Simulated email to %s: %s", message.to, message.subject)
        return make_msgid(domain="simulated.local")


def build_email_gateway(config: Settings) -> EmailGateway:
    if config.smtp_configured:
        return SmtpEmailGateway.from_settings(config)
    logger.warning("SMTP is not configured; payslip emails run in simulation mode")
    return SimulatedEmailGateway()
