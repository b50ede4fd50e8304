"""
Console alert sink adapter - Implements AlertSink protocol.

Community alerts are written to the application log for demo purposes.
A deployment that notifies subscribers replaces this adapter.
"""

import logging

from trust_engine.domain.models import AlertKind, CommunityAlert

logger = logging.getLogger(__name__)


class ConsoleAlertSink:
    """
    Implements AlertSink protocol via console logging.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def publish(self, alert: CommunityAlert) -> None:
        """
        Log the alert. Removals and disputes log at WARNING, restorations at INFO.

        Args:
            alert: Alert emitted by the lifecycle monitor
        """
        level = logging.INFO if alert.kind is AlertKind.PROOF_RESTORED else logging.WARNING
        logger.log(
            level,
            "[ALERT] %s subject=%s proof=%s: %s",
            alert.kind.value,
            alert.subject_id,
            alert.proof_id,
            alert.message,
        )
