"""
Tests for SmtpMailTransport with smtplib patched out.
"""

import smtplib
from email import message_from_string
from unittest.mock import patch

import pytest

from sla_sentinel.alerting.infrastructure import SmtpMailTransport
from sla_sentinel.core import MailDeliveryException


def transport(**kwargs) -> SmtpMailTransport:
    options = dict(
        host="smtp.test",
        port=2525,
        user="bot",
        password="secret",
        use_tls=True,
        sender="sla@example.com",
        timeout=5
    )
    options.update(kwargs)
    return SmtpMailTransport(**options)


async def test_sends_html_over_starttls():
    with patch("smtplib.SMTP") as smtp:
        server = smtp.return_value.__enter__.return_value

        await transport().send(["ana@example.com"], "Asunto", "<b>hola</b>")

    smtp.assert_called_once_with("smtp.test", 2525, timeout=5)
    server.starttls.assert_called_once()
    server.login.assert_called_once_with("bot", "secret")
    sender, recipients, raw = server.sendmail.call_args.args
    assert sender == "sla@example.com"
    assert recipients == ["ana@example.com"]
    message = message_from_string(raw)
    assert message["Subject"] == "Asunto"
    assert message["To"] == "ana@example.com"
    assert message.get_payload()[0].get_content_type() == "text/html"


async def test_plain_smtp_without_credentials():
    with patch("smtplib.SMTP") as smtp:
        server = smtp.return_value.__enter__.return_value

        await transport(use_tls=False, user="", password="").send(["a@example.com"], "s", "<p/>")

    server.starttls.assert_not_called()
    server.login.assert_not_called()
    server.sendmail.assert_called_once()


async def test_attachment_is_added():
    with patch("smtplib.SMTP") as smtp:
        server = smtp.return_value.__enter__.return_value

        await transport().send_with_attachment(
            ["a@example.com"], "Reporte", "<p>adjunto</p>", b"id,nivel\n1,HIGH\n", "alertas.csv", "text/csv"
        )

    message = message_from_string(server.sendmail.call_args.args[2])
    attachment = message.get_payload()[1]
    assert attachment.get_filename() == "alertas.csv"
    assert attachment.get_payload(decode=True) == b"id,nivel\n1,HIGH\n"


async def test_smtp_errors_become_delivery_failures():
    with patch("smtplib.SMTP") as smtp:
        smtp.return_value.__enter__.return_value.sendmail.side_effect = smtplib.SMTPRecipientsRefused({})

        with pytest.raises(MailDeliveryException):
            await transport().send(["a@example.com"], "s", "<p/>")


async def test_connection_errors_become_delivery_failures():
    with patch("smtplib.SMTP", side_effect=ConnectionRefusedError("refused")):
        with pytest.raises(MailDeliveryException):
            await transport().send(["a@example.com"], "s", "<p/>")


async def test_unconfigured_host_fails_without_connecting():
    with patch("smtplib.SMTP") as smtp:
        with pytest.raises(MailDeliveryException):
            await transport(host="").send(["a@example.com"], "s", "<p/>")

    smtp.assert_not_called()
