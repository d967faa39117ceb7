"""
Alert Email Composition

Plain-text bodies in Portuguese (pt-BR), one block per alert:

    - <title>
      <description>
      Data: dd/mm/yyyy
      Prioridade: Alta|Média|Baixa
"""

from datetime import date, datetime
from typing import Union

from prospera.models import Alert, NotificationFrequency


DIGEST_LABELS = {
    NotificationFrequency.DAILY: ("Diário", "diário"),
    NotificationFrequency.WEEKLY: ("Semanal", "semanal"),
}


def format_date_br(value: Union[date, datetime]) -> str:
    """dd/mm/yyyy"""
    return value.strftime("%d/%m/%Y")


def format_brl(amount: float) -> str:
    """Brazilian number format with two decimals: 1.234,56"""
    text = f"{amount:,.2f}"
    return text.replace(",", "_").replace(".", ",").replace("_", ".")


def order_alerts(alerts: list[Alert]) -> list[Alert]:
    """Priority descending (high > medium > low), then date ascending."""
    return sorted(alerts, key=lambda a: (-a.priority.rank, a.date))


def alert_block(alert: Alert) -> str:
    return (
        f"\n- {alert.title}\n"
        f"  {alert.description}\n"
        f"  Data: {format_date_br(alert.date)}\n"
        f"  Prioridade: {alert.priority.label}\n"
    )


def _footer(platform_url: str) -> str:
    return f"\n\nAcesse a plataforma para mais detalhes: {platform_url}\n\n"


def compose_digest(
    alerts: list[Alert],
    frequency: NotificationFrequency,
    brand_name: str,
    platform_url: str,
) -> tuple[str, str]:
    """
    Subject and body of a daily or weekly digest.

    Alerts are rendered in digest order regardless of input order.
    """
    if frequency not in DIGEST_LABELS:
        raise ValueError(f"No digest for frequency: {frequency.value}")

    title_label, text_label = DIGEST_LABELS[frequency]
    subject = f"{brand_name} - Resumo {title_label} de Alertas"

    body = f"Olá,\n\nSegue o resumo {text_label} dos seus alertas na {brand_name}:\n\n"
    body += "".join(alert_block(a) for a in order_alerts(alerts))
    body += _footer(platform_url)
    return subject, body


def compose_alert_email(
    alert: Alert,
    brand_name: str,
    platform_url: str,
) -> tuple[str, str]:
    """Subject and body of a single-alert (immediate) email."""
    subject = f"{brand_name} - Alerta: {alert.title}"
    body = f"Olá,\n\nVocê tem um novo alerta na {brand_name}:\n\n"
    body += alert_block(alert)
    body += _footer(platform_url)
    return subject, body
