"""Alert email composition and queue processing."""

from prospera.notifications.digest import (
    compose_alert_email,
    compose_digest,
    format_brl,
    format_date_br,
    order_alerts,
)
from prospera.notifications.dispatcher import (
    EmailDigestDispatcher,
    RecipientNotFound,
    daily_due,
    weekly_due,
)

__all__ = [
    "EmailDigestDispatcher",
    "RecipientNotFound",
    "compose_alert_email",
    "compose_digest",
    "daily_due",
    "format_brl",
    "format_date_br",
    "order_alerts",
    "weekly_due",
]
