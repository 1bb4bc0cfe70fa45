"""Outbound email: verification, password reset and student invites.

Emails are sent fire-and-forget. The NotificationDispatcher schedules each
send as a tracked asyncio task and returns immediately; a failed delivery
is logged and never fails the request that triggered it. Messages queued
against a database session are held until that session commits and are
dropped if it rolls back. drain() awaits in-flight sends at shutdown.

Delivery goes through the Resend HTTP API. Without an API key (local
development) messages are only logged, without their bodies.
"""

import asyncio
from dataclasses import dataclass
from typing import Protocol
from urllib.parse import quote, urlencode

import httpx
import structlog
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from homeschool.core.config import Settings

logger = structlog.get_logger()

_RESEND_API_URL = "https://api.resend.com/emails"
_RESEND_TIMEOUT = 10.0
_OUTBOX_KEY = "homeschool_email_outbox"


@dataclass(frozen=True)
class EmailMessage:
    """A plain-text email ready for delivery."""

    to: str
    subject: str
    text: str


class EmailTransport(Protocol):
    """Delivers one message or raises."""

    async def send(self, message: EmailMessage) -> None: ...


class ResendTransport:
    """Send email with a single HTTP POST to Resend."""

    def __init__(self, *, api_key: str, sender: str) -> None:
        self._api_key = api_key
        self._sender = sender

    async def send(self, message: EmailMessage) -> None:
        async with httpx.AsyncClient() as client:
            resp = await client.post(
                _RESEND_API_URL,
                headers={"Authorization": f"Bearer {self._api_key}"},
                json={
                    "from": self._sender,
                    "to": message.to,
                    "subject": message.subject,
                    "text": message.text,
                },
                timeout=_RESEND_TIMEOUT,
            )
            resp.raise_for_status()


class LogOnlyTransport:
    """Development transport: records that an email would have been sent."""

    async def send(self, message: EmailMessage) -> None:
        logger.info(
            "email_not_delivered_no_api_key",
            to=message.to,
            subject=message.subject,
        )


class NotificationDispatcher:
    """Builds identity emails and delivers them in the background.

    Args:
        transport: Delivery backend.
        frontend_url: Base URL for links inside emails.
        verification_ttl_hours: Shown in the verification email.
        reset_ttl_minutes: Shown in the reset email.
        invite_ttl_days: Shown in the invite email.
    """

    def __init__(
        self,
        transport: EmailTransport,
        *,
        frontend_url: str,
        verification_ttl_hours: int = 24,
        reset_ttl_minutes: int = 60,
        invite_ttl_days: int = 7,
    ) -> None:
        self._transport = transport
        self._frontend_url = frontend_url.rstrip("/")
        self._verification_ttl_hours = verification_ttl_hours
        self._reset_ttl_minutes = reset_ttl_minutes
        self._invite_ttl_days = invite_ttl_days
        self._pending: set[asyncio.Task[None]] = set()

    def _link(self, path: str, token: str) -> str:
        return f"{self._frontend_url}{path}?{urlencode({'token': token}, quote_via=quote)}"

    async def _deliver(self, message: EmailMessage, kind: str) -> None:
        try:
            await self._transport.send(message)
        except Exception:
            logger.warning("email_delivery_failed", kind=kind, exc_info=True)
        else:
            logger.info("email_sent", kind=kind)

    def _schedule(self, message: EmailMessage, kind: str) -> None:
        task = asyncio.create_task(self._deliver(message, kind))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def _hold(self, session: Session, message: EmailMessage, kind: str) -> None:
        outbox = session.info.get(_OUTBOX_KEY)
        if outbox is None:
            outbox = session.info[_OUTBOX_KEY] = []
            event.listen(session, "after_commit", self._release)
            event.listen(session, "after_rollback", self._discard)
        outbox.append((message, kind))

    def _release(self, session: Session) -> None:
        outbox = session.info[_OUTBOX_KEY]
        while outbox:
            message, kind = outbox.pop(0)
            self._schedule(message, kind)

    def _discard(self, session: Session) -> None:
        outbox = session.info[_OUTBOX_KEY]
        if outbox:
            logger.info(
                "email_dropped_on_rollback",
                kinds=[kind for _, kind in outbox],
            )
            outbox.clear()

    def dispatch(
        self,
        message: EmailMessage,
        kind: str,
        *,
        db: AsyncSession | None = None,
    ) -> None:
        """Schedule delivery without waiting for it.

        Args:
            message: Email to send.
            kind: Short label used in log events.
            db: Session whose open transaction the send depends on. The
                message goes out only after that transaction commits.
        """
        if db is not None and db.in_transaction():
            self._hold(db.sync_session, message, kind)
            return
        self._schedule(message, kind)

    def send_verification_email(
        self,
        *,
        to: str,
        name: str | None,
        token: str,
        db: AsyncSession | None = None,
    ) -> None:
        """Queue the "verify your email" message."""
        greeting = f"Hi {name}," if name else "Hi,"
        self.dispatch(
            EmailMessage(
                to=to,
                subject="Verify your Homeschool Hub email",
                text=(
                    f"{greeting}\n\nThanks for joining Homeschool Hub. "
                    f"Verify your email address to activate your account:\n\n"
                    f"{self._link('/verify-email', token)}\n\n"
                    f"This link expires in {self._verification_ttl_hours} hours."
                ),
            ),
            "verification",
            db=db,
        )

    def send_password_reset_email(
        self,
        *,
        to: str,
        name: str | None,
        token: str,
        db: AsyncSession | None = None,
    ) -> None:
        """Queue the password reset message."""
        greeting = f"Hi {name}," if name else "Hi,"
        self.dispatch(
            EmailMessage(
                to=to,
                subject="Reset your Homeschool Hub password",
                text=(
                    f"{greeting}\n\nUse this link to choose a new password:\n\n"
                    f"{self._link('/reset-password', token)}\n\n"
                    f"This link expires in {self._reset_ttl_minutes} minutes. "
                    "If you didn't request this, you can safely ignore this email."
                ),
            ),
            "password_reset",
            db=db,
        )

    def send_student_invite_email(
        self,
        *,
        to: str,
        student_name: str,
        parent_name: str | None,
        token: str,
        db: AsyncSession | None = None,
    ) -> None:
        """Queue a student invite carrying the invite code."""
        inviter = parent_name or "Your parent"
        self.dispatch(
            EmailMessage(
                to=to,
                subject="You have been invited to Homeschool Hub",
                text=(
                    f"Hi {student_name},\n\n{inviter} has invited you to join "
                    "Homeschool Hub as a student.\n\n"
                    f"Sign up here: {self._link('/student-signup', token)}\n\n"
                    f"Or paste this invite code on the signup page: {token}\n\n"
                    f"This invite expires in {self._invite_ttl_days} days."
                ),
            ),
            "student_invite",
            db=db,
        )

    @property
    def pending(self) -> int:
        """Number of sends still in flight."""
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for in-flight sends to finish."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)


def create_dispatcher(settings: Settings) -> NotificationDispatcher:
    """Build the dispatcher for the configured email backend."""
    api_key = settings.resend_api_key.get_secret_value()
    transport: EmailTransport
    if api_key:
        transport = ResendTransport(api_key=api_key, sender=settings.email_from)
    else:
        transport = LogOnlyTransport()
    return NotificationDispatcher(
        transport,
        frontend_url=settings.frontend_url,
        verification_ttl_hours=settings.verification_token_ttl_hours,
        reset_ttl_minutes=settings.password_reset_token_ttl_minutes,
        invite_ttl_days=settings.invite_ttl_days,
    )
