"""
Notification collaborator -- templated messages to admins and employees.

Responsibility:
    Renders Jinja2 text templates shipped in ``ledger_kernel/templates`` and
    hands them to a delivery backend.  Alerting and payroll depend only on
    the ``Notifier`` protocol.

Backends:
    LoggingNotifier -- renders and logs the message (development, tests).
    SmtpNotifier    -- renders and sends plain-text mail through smtplib.

Commit binding:
    CommitBoundNotifier wraps a backend for code that commits in steps.  It
    holds messages until the caller has committed the work they announce;
    messages queued inside a SAVEPOINT or transaction that rolls back are
    dropped with it.

Failure modes:
    - ``NotificationError`` from a backend when delivery fails.
    - ``deliver_safely`` catches every delivery failure, logs it, and returns
      False; notification problems never propagate to ledger or payroll
      callers.
"""

import smtplib
from email.message import EmailMessage
from typing import Any, Protocol

from jinja2 import Environment, PackageLoader, StrictUndefined
from sqlalchemy import event
from sqlalchemy.orm import Session, SessionTransaction

from ledger_kernel.exceptions import NotificationError
from ledger_kernel.logging_config import get_logger

logger = get_logger("services.notification")

TEMPLATE_SUFFIX = ".txt.j2"

_environment = Environment(
    loader=PackageLoader("ledger_kernel", "templates"),
    undefined=StrictUndefined,
    keep_trailing_newline=True,
    autoescape=False,
)


def render_template(template: str, variables: dict[str, Any]) -> str:
    """Render ``template`` (name without suffix) with ``variables``."""
    return _environment.get_template(f"{template}{TEMPLATE_SUFFIX}").render(**variables)


class Notifier(Protocol):
    """Capability to send a templated notification to one recipient."""

    def send_templated_notification(
        self,
        recipient: str,
        subject: str,
        template: str,
        variables: dict[str, Any],
    ) -> None: ...


class LoggingNotifier:
    """Renders the message and writes it to the structured log."""

    def send_templated_notification(
        self,
        recipient: str,
        subject: str,
        template: str,
        variables: dict[str, Any],
    ) -> None:
        body = render_template(template, variables)
        logger.info(
            "notification_logged",
            extra={
                "recipient": recipient,
                "subject": subject,
                "template": template,
                "body": body,
            },
        )


class SmtpNotifier:
    """Sends rendered templates as plain-text email."""

    def __init__(
        self,
        host: str,
        port: int,
        sender: str,
        username: str | None = None,
        password: str | None = None,
        use_tls: bool = True,
        timeout: float = 10.0,
    ):
        self.host = host
        self.port = port
        self.sender = sender
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    def send_templated_notification(
        self,
        recipient: str,
        subject: str,
        template: str,
        variables: dict[str, Any],
    ) -> None:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = recipient
        message["Subject"] = subject
        message.set_content(render_template(template, variables))

        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                if self.use_tls:
                    smtp.starttls()
                if self.username:
                    smtp.login(self.username, self.password or "")
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            raise NotificationError(recipient, template, str(exc)) from exc

        logger.info(
            "notification_sent",
            extra={"recipient": recipient, "subject": subject, "template": template},
        )


def build_notifier(settings: Any) -> Notifier:
    """Build the notifier selected by ``NotificationSettings``."""
    if settings.backend == "smtp":
        smtp = settings.smtp
        return SmtpNotifier(
            host=smtp.host,
            port=smtp.port,
            sender=smtp.sender,
            username=smtp.username,
            password=smtp.password,
            use_tls=smtp.use_tls,
        )
    return LoggingNotifier()


def deliver_safely(
    notifier: Notifier,
    recipient: str,
    subject: str,
    template: str,
    variables: dict[str, Any],
) -> bool:
    """Send a notification, logging and swallowing any failure."""
    try:
        notifier.send_templated_notification(recipient, subject, template, variables)
    except Exception:
        logger.warning(
            "notification_failed",
            extra={"recipient": recipient, "template": template},
            exc_info=True,
        )
        return False
    return True


class CommitBoundNotifier:
    """
    Holds notifications until the session's work is committed.

    Contract:
        ``send_templated_notification`` only queues.  The caller commits the
        session and then calls ``flush()``.  A rollback of the SAVEPOINT
        (or outer transaction) that was innermost when a message was queued
        drops that message, as does a rollback of any enclosing one.
    """

    def __init__(self, session: Session, notifier: Notifier):
        self._session = session
        self._notifier = notifier
        self._queued: list[tuple[SessionTransaction | None, tuple]] = []
        event.listen(session, "after_soft_rollback", self._on_rollback)

    def send_templated_notification(
        self,
        recipient: str,
        subject: str,
        template: str,
        variables: dict[str, Any],
    ) -> None:
        self._queued.append(
            (
                self._session.get_nested_transaction(),
                (recipient, subject, template, variables),
            )
        )

    @property
    def pending(self) -> int:
        return len(self._queued)

    def flush(self) -> int:
        """Deliver everything queued; returns how many were delivered."""
        queued, self._queued = self._queued, []
        return sum(deliver_safely(self._notifier, *message) for _, message in queued)

    def discard(self) -> int:
        dropped = len(self._queued)
        self._queued = []
        return dropped

    def _on_rollback(self, session: Session, previous_transaction: SessionTransaction) -> None:
        if not previous_transaction.nested:
            dropped = self.discard()
        else:
            kept = [
                (tx, message)
                for tx, message in self._queued
                if not _encloses(previous_transaction, tx)
            ]
            dropped = len(self._queued) - len(kept)
            self._queued = kept
        if dropped:
            logger.info("notifications_dropped_on_rollback", extra={"dropped": dropped})


def _encloses(outer: SessionTransaction, inner: SessionTransaction | None) -> bool:
    while inner is not None:
        if inner is outer:
            return True
        inner = inner.parent
    return False
