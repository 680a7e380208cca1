"""
Mail delivery dispatcher - fire-and-forget email sends with status callbacks.

The command caller must be answered within a few seconds, so emails are
handed to a small worker pool. When a send finishes, an optional status
callback gets a human-readable update (for example an edit of the original
Discord reply). The callback is best-effort: its failures are logged and
never affect verification state.
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field

from .exceptions import EmailDeliveryError
from .ports import EmailSender, StatusCallback

logger = logging.getLogger(__name__)

DELIVERY_SENT = (
    "✅ An email has been sent to your address.\n"
    "Please use /verify <token> to verify your email address."
)
DELIVERY_FAILED = "⚠️ Error sending email :("


@dataclass
class DeliveryDispatcher:
    """Runs EmailSender.send() on a bounded thread pool."""

    email_sender: EmailSender
    max_workers: int = 4
    _executor: ThreadPoolExecutor = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._executor = ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="gatekeeper-mail"
        )

    def submit(
        self,
        to: str,
        subject: str,
        body: str,
        on_status: StatusCallback | None = None,
    ) -> Future[bool]:
        """
        Queue one email.

        Returns:
            Future resolving to True when the message was handed off,
            False when delivery failed
        """
        return self._executor.submit(self._deliver, to, subject, body, on_status)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def _deliver(
        self, to: str, subject: str, body: str, on_status: StatusCallback | None
    ) -> bool:
        try:
            self.email_sender.send(to, subject, body)
        except EmailDeliveryError as exc:
            # exception text may contain the recipient address
            logger.warning("Verification email delivery failed: %s", type(exc).__name__)
            _notify(on_status, DELIVERY_FAILED)
            return False
        except Exception as exc:
            # no traceback: frames and message may hold the recipient address
            logger.error(
                "Email sender raised unexpected %s; reported as failed", type(exc).__name__
            )
            _notify(on_status, DELIVERY_FAILED)
            return False

        _notify(on_status, DELIVERY_SENT)
        return True


def _notify(on_status: StatusCallback | None, text: str) -> None:
    if on_status is None:
        return
    try:
        on_status(text)
    except Exception:
        logger.warning("Delivery status callback failed", exc_info=True)
