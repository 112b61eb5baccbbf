"""
Mock email channel for the demo.

Listeners hand outbound mail to this channel instead of a real sender. In a
real system this would be SendGrid, AWS SES or similar, usually behind a
background task queue so a slow send doesn't hold up the broadcasting thread.

Design decisions:
- All sends are logged to console for visibility
- The channel records sent messages for test assertions
- Failures can be simulated, either randomly or for the next send
"""

import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

# Configure logging for the mail channel
logger = logging.getLogger("notifications")
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(
        "%(asctime)s | %(levelname)s | %(message)s",
        datefmt="%H:%M:%S"
    ))
    logger.addHandler(handler)
logger.setLevel(logging.INFO)


class DeliveryError(Exception):
    """Raised by ``EmailChannel.send`` when ``raise_on_failure`` is set."""


@dataclass
class NotificationResult:
    """
    Result of a send attempt.

    Captures success/failure and metadata for debugging and testing.
    """
    success: bool
    recipient: str
    subject: str
    body: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    error: Optional[str] = None

    def __str__(self) -> str:
        status = "✓" if self.success else "✗"
        return f"{status} EMAIL to {self.recipient}: {self.subject}"

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "recipient": self.recipient,
            "subject": self.subject,
            "error": self.error,
        }


class EmailChannel:
    """
    Mock email channel.

    Logs sends to console and tracks them for test assertions.
    """

    def __init__(self, fail_rate: float = 0.0, raise_on_failure: bool = False):
        """
        Args:
            fail_rate: Probability of send failure (0.0 to 1.0), for testing
            raise_on_failure: Raise DeliveryError instead of returning a failed result
        """
        self.fail_rate = fail_rate
        self.raise_on_failure = raise_on_failure
        self.sent_messages: list[NotificationResult] = []
        self._fail_next = False

    def fail_next(self) -> None:
        """Make the next send fail regardless of ``fail_rate``."""
        self._fail_next = True

    def send(
        self,
        to: str,
        subject: str,
        body: str,
        from_addr: str = "accounts@lifecycle-demo.example",
    ) -> NotificationResult:
        """
        Send an email (mock implementation).

        Returns:
            NotificationResult indicating success/failure

        Raises:
            DeliveryError: If the send fails and ``raise_on_failure`` is set
        """
        failed = self._fail_next or random.random() < self.fail_rate
        self._fail_next = False

        if failed:
            result = NotificationResult(
                success=False,
                recipient=to,
                subject=subject,
                body=body,
                error="Simulated email delivery failure",
            )
            logger.error(f"[EMAIL FAILED] To: {to} | Subject: {subject} | Error: {result.error}")
        else:
            result = NotificationResult(
                success=True,
                recipient=to,
                subject=subject,
                body=body,
            )
            logger.info(f"[EMAIL] To: {to} | Subject: {subject} | From: {from_addr}")
            logger.debug(f"[EMAIL BODY] {body}")

        self.sent_messages.append(result)
        if failed and self.raise_on_failure:
            raise DeliveryError(f"Could not deliver '{subject}' to {to}")
        return result

    def get_sent_count(self) -> int:
        """Get the number of messages sent (for testing)."""
        return len(self.sent_messages)

    def get_successful_sends(self) -> list[NotificationResult]:
        return [m for m in self.sent_messages if m.success]

    def clear_history(self):
        """Clear sent message history (useful between tests)."""
        self.sent_messages.clear()

    def find_message_to(self, recipient: str) -> Optional[NotificationResult]:
        """Find the first message sent to a specific recipient."""
        for msg in self.sent_messages:
            if msg.recipient == recipient:
                return msg
        return None

    def messages_to(self, recipient: str) -> list[NotificationResult]:
        return [m for m in self.sent_messages if m.recipient == recipient]
