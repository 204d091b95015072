import logging
import smtplib
import ssl
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formatdate, make_msgid
from enum import Enum
from typing import Any, Callable, Dict, Optional

from ..errors import NotificationError
from .email_templates import FEATURE_TOGGLES, NotificationEvent, render
from .logging import log_event


SMTP_TIMEOUT_SECONDS = 15


class DispatchStatus(str, Enum):
    DELIVERED = "delivered"
    # notifications switched off, not configured or not requested; not a failure
    DISABLED = "disabled"
    FAILED = "failed"


@dataclass(frozen=True)
class DispatchResult:
    status: DispatchStatus
    error: Optional[str] = None
    reason: Optional[str] = None

    @property
    def delivered(self) -> bool:
        return self.status is DispatchStatus.DELIVERED

    @classmethod
    def disabled(cls, reason: str) -> "DispatchResult":
        return cls(DispatchStatus.DISABLED, reason=reason)

    @classmethod
    def failed(cls, error: str) -> "DispatchResult":
        return cls(DispatchStatus.FAILED, error=error)

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status.value, "delivered": self.delivered, "error": self.error, "reason": self.reason}


class SmtpTransport:
    """One SMTP session per message, bounded by ``timeout`` for connect, greeting and socket reads."""

    def __init__(self, settings, timeout: int = SMTP_TIMEOUT_SECONDS) -> None:
        self.host = settings.smtp_host.strip()
        self.port = int(settings.smtp_port or 587)
        self.user = settings.smtp_user
        self.password = settings.smtp_password
        self.timeout = timeout

    def _connect(self) -> smtplib.SMTP:
        context = ssl.create_default_context()
        client = None
        try:
            if self.port == 465:
                client = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout, context=context)
            else:
                client = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
                client.ehlo()
                if client.has_extn("starttls"):
                    client.starttls(context=context)
                    client.ehlo()
            if self.user:
                client.login(self.user, self.password)
            return client
        except (smtplib.SMTPException, OSError) as exc:
            if client is not None:
                client.close()
            raise NotificationError(f"SMTP connection to {self.host}:{self.port} failed: {exc}") from exc

    def send(self, message: EmailMessage) -> None:
        client = self._connect()
        try:
            client.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            raise NotificationError(f"SMTP send failed: {exc}") from exc
        finally:
            try:
                client.quit()
            except (smtplib.SMTPException, OSError):
                pass

    def verify(self) -> None:
        client = self._connect()
        try:
            client.noop()
        finally:
            try:
                client.quit()
            except (smtplib.SMTPException, OSError):
                pass


class NotificationDispatcher:
    """Renders and sends transactional emails; never raises to the caller.

    ``settings_store`` is anything with a ``load()`` returning the current
    operator settings; it is consulted on every send so settings edits apply
    without a restart. ``transport_factory`` builds a transport from those
    settings (tests swap in a fake).
    """

    def __init__(self, settings_store, transport_factory: Callable = SmtpTransport, log_repo=None) -> None:
        self._settings_store = settings_store
        self._transport_factory = transport_factory
        self._log_repo = log_repo
        self.logger = logging.getLogger(__name__)

    def send(
        self,
        event,
        recipient: Optional[str],
        data: Dict[str, Any],
        reference: Optional[str] = None,
    ) -> DispatchResult:
        subject: Optional[str] = None
        try:
            event = NotificationEvent(event)
            settings = self._settings_store.load()
            result = self._precheck(event, settings, recipient)
            if result is None:
                rendered = render(event, settings, data)
                subject = rendered.subject
                message = self._build_message(settings, recipient, rendered.subject, rendered.html)
                self._transport_factory(settings).send(message)
                result = DispatchResult(DispatchStatus.DELIVERED)
        except NotificationError as exc:
            result = DispatchResult.failed(str(exc))
        except Exception as exc:  # rendering or settings problems must not break the caller
            self.logger.exception("Notification %s could not be prepared", event)
            result = DispatchResult.failed(f"{type(exc).__name__}: {exc}")

        self._record(event, recipient, result, subject, reference)
        return result

    def notify_operator(self, event, data: Dict[str, Any], reference: Optional[str] = None) -> DispatchResult:
        """Send to the operator contact address from settings."""
        try:
            recipient = self._settings_store.load().admin_email
        except Exception as exc:
            self.logger.exception("Operator settings could not be read")
            result = DispatchResult.failed(f"{type(exc).__name__}: {exc}")
            self._record(event, "", result, None, reference)
            return result
        return self.send(event, recipient, data, reference=reference)

    def test_connection(self) -> Dict[str, Any]:
        settings = self._settings_store.load()
        if not settings.smtp_configured:
            return {"success": False, "error": "Email not configured"}
        try:
            self._transport_factory(settings).verify()
        except NotificationError as exc:
            return {"success": False, "error": str(exc)}
        return {"success": True, "message": "SMTP connection successful!"}

    @staticmethod
    def _precheck(event: NotificationEvent, settings, recipient: Optional[str]) -> Optional[DispatchResult]:
        if not settings.smtp_configured:
            return DispatchResult.disabled("email not configured")
        toggle = FEATURE_TOGGLES.get(event)
        if toggle and not getattr(settings, toggle, True):
            return DispatchResult.disabled(f"{toggle} is off")
        if not (recipient or "").strip():
            return DispatchResult.disabled("no recipient address")
        return None

    @staticmethod
    def _build_message(settings, recipient: str, subject: str, html: str) -> EmailMessage:
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = settings.sender
        message["To"] = recipient.strip()
        message["Date"] = formatdate(localtime=True)
        message["Message-ID"] = make_msgid()
        message.set_content(f"{subject}\n\nThis message is best viewed in an HTML-capable email client.")
        message.add_alternative(html, subtype="html")
        return message

    def _record(self, event, recipient, result: DispatchResult, subject, reference) -> None:
        event_name = event.value if isinstance(event, NotificationEvent) else str(event)
        if result.status is DispatchStatus.FAILED:
            log_event("error", "notification.failed", notification=event_name, recipient=recipient,
                      reference=reference, error=result.error)
        else:
            log_event("info", f"notification.{result.status.value}", notification=event_name,
                      recipient=recipient, reference=reference, reason=result.reason)
        if self._log_repo is None:
            return
        try:
            self._log_repo.add_record(
                event=event_name,
                recipient=recipient or "",
                status=result.status.value,
                subject=subject,
                reference=reference,
                error_message=result.error,
            )
        except OSError:
            self.logger.exception("Could not write notification log")
