# Overview: Notification collaborator for end-of-day summaries.

"""
Daily summary delivery.

Email delivery is owned by a separate service. The reconciliation flow hands
a summary to a Notifier and never waits on, or fails because of, delivery.
"""

from __future__ import annotations

import logging

from ..money import format_cents

logger = logging.getLogger(__name__)


class Notifier:
    def send_daily_summary(self, business, summary: dict) -> None:
        raise NotImplementedError


class LoggingNotifier(Notifier):
    """Default notifier: records the summary in the application log."""

    def send_daily_summary(self, business, summary: dict) -> None:
        logger.info(
            "Daily summary for business %s (%s): sales=%s refunds=%s net=%s transactions=%s",
            business.id,
            business.name,
            format_cents(summary.get("total_sales", 0)),
            format_cents(summary.get("total_refunds", 0)),
            format_cents(summary.get("net_sales", 0)),
            summary.get("transaction_count", 0),
        )
