"""
Email Templates
===============

HTML bodies and subjects for alert notifications and the daily summary.
"""

from datetime import date
from html import escape
from typing import Sequence

from sla_sentinel.alerting.domain import Alert

CELL = "padding: 8px; border: 1px solid #ddd;"
HEAD_CELL = CELL + " background: #f2f2f2; font-weight: bold;"

LEVEL_COLORS = {
    "CRITICAL": "#d32f2f",
    "HIGH": "#f57c00",
    "MEDIUM": "#fbc02d",
    "LOW": "#388e3c",
}


def _text(value) -> str:
    return escape("" if value is None else str(value))


def alert_subject(alert: Alert) -> str:
    return f"[ALERTA SLA] {alert.alert_type} ({alert.level})"


def build_alert_html(alert: Alert) -> str:
    color = LEVEL_COLORS.get(alert.level, "#333333")
    rows = [
        ("Solicitud", alert.request_id),
        ("Tipo SLA", alert.sla_code),
        ("Rol", alert.role_name),
        ("Responsable", alert.contact_name),
        ("Nivel", alert.level),
        ("Mensaje", alert.message),
    ]
    body_rows = "".join(
        f'<tr><td style="{HEAD_CELL}">{label}</td><td style="{CELL}">{_text(value)}</td></tr>'
        for label, value in rows
    )
    return f"""
    <html>
    <body style="font-family: Arial, sans-serif; padding: 20px;">
        <h2 style="color: {color};">Notificacion de alerta SLA</h2>
        <table style="border-collapse: collapse; width: 100%; max-width: 600px;">
            {body_rows}
        </table>
    </body>
    </html>
    """


def daily_summary_subject(day: date, alert_count: int) -> str:
    return f"[RESUMEN DIARIO SLA] {day.strftime('%d/%m/%Y')} - {alert_count} alertas críticas"


def build_daily_summary_html(alerts: Sequence[Alert], day: date) -> str:
    """Table of open CRITICAL/HIGH alerts, one row per alert."""
    headers = ["ID", "Nivel", "Mensaje", "Responsable", "Correo", "Rol", "Tipo SLA", "Fecha"]
    header_row = "".join(f'<th style="{HEAD_CELL}">{h}</th>' for h in headers)

    rows = []
    for alert in alerts:
        color = LEVEL_COLORS.get(alert.level, "#333333")
        created = alert.created_at.strftime("%d/%m/%Y %H:%M") if alert.created_at else ""
        rows.append(
            "<tr>"
            f'<td style="{CELL}">{_text(alert.request_id)}</td>'
            f'<td style="{CELL} color: {color}; font-weight: bold;">{_text(alert.level)}</td>'
            f'<td style="{CELL}">{_text(alert.message)}</td>'
            f'<td style="{CELL}">{_text(alert.contact_name)}</td>'
            f'<td style="{CELL}">{_text(alert.contact_email)}</td>'
            f'<td style="{CELL}">{_text(alert.role_name)}</td>'
            f'<td style="{CELL}">{_text(alert.sla_code)}</td>'
            f'<td style="{CELL}">{created}</td>'
            "</tr>"
        )

    return f"""
    <html>
    <body style="font-family: Arial, sans-serif; padding: 20px;">
        <h2 style="color: #d32f2f;">Resumen diario de alertas SLA</h2>
        <p>Fecha: {day.strftime('%d/%m/%Y')} | Alertas abiertas: {len(alerts)}</p>
        <table style="border-collapse: collapse; width: 100%;">
            <thead><tr>{header_row}</tr></thead>
            <tbody>{''.join(rows)}</tbody>
        </table>
    </body>
    </html>
    """
