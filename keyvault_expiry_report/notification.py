"""Mail transports for the expiration report and admin alerts."""

from __future__ import annotations

import html
import logging
import os
import re
import smtplib
import time
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Optional

from .config import NotificationConfig

LOGGER = logging.getLogger("keyvault_expiry_report.notification")

_TAG_RE = re.compile(r"<[^>]+>")


@dataclass(frozen=True)
class MailResult:
    """Represents a successfully handed-off email."""

    recipient: str
    message_id: str


def html_to_text(body: str) -> str:
    """Crude plain-text fallback for clients that refuse HTML."""

    without_style = re.sub(r"<style.*?</style>", "", body, flags=re.S | re.I)
    text = _TAG_RE.sub(" ", without_style.replace("</tr>", "\n").replace("</p>", "\n"))
    lines = [" ".join(line.split()) for line in html.unescape(text).splitlines()]
    return "\n".join(line for line in lines if line)


class SMTPMailer:
    """Sends HTML mail through an SMTP relay."""

    def __init__(self, config: NotificationConfig, smtp_factory=None) -> None:
        self._config = config
        # 465 is the implicit-TLS submission port; STARTTLS is never valid there.
        self._implicit_ssl = config.smtp_ssl or config.smtp_port == 465
        if smtp_factory is not None:
            self._smtp_factory = smtp_factory
        elif self._implicit_ssl:
            self._smtp_factory = smtplib.SMTP_SSL
        else:
            self._smtp_factory = smtplib.SMTP

    def _build_message(self, recipient: str, subject: str, html_body: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self._config.sender
        message["To"] = recipient
        message["Subject"] = subject
        message.set_content(html_to_text(html_body))
        message.add_alternative(html_body, subtype="html")
        return message

    def send(self, recipient: str, subject: str, html_body: str) -> MailResult:
        message = self._build_message(recipient, subject, html_body)
        with self._smtp_factory(
            self._config.smtp_host,
            self._config.smtp_port,
            timeout=self._config.timeout_seconds,
        ) as server:
            if self._config.smtp_starttls and not self._implicit_ssl:
                server.starttls()
            if self._config.smtp_username and self._config.smtp_password:
                server.login(self._config.smtp_username, self._config.smtp_password)
            server.send_message(message)
        LOGGER.info("Sent '%s' to %s via SMTP", subject, recipient)
        return MailResult(recipient=recipient, message_id=message.get("Message-ID", ""))


class SESMailer:
    """Wrapper around AWS SES for delivering the report."""

    def __init__(self, config: NotificationConfig, ses_client: Optional[object] = None) -> None:
        self._config = config
        if ses_client is not None:
            self._ses = ses_client
            self._client_error_cls = Exception  # fallback
        else:
            import boto3
            from botocore.exceptions import ClientError

            self._client_error_cls = ClientError
            session_kwargs = {"region_name": config.region}
            if config.access_key and config.secret_key:
                session_kwargs.update(
                    aws_access_key_id=config.access_key,
                    aws_secret_access_key=config.secret_key,
                )
            endpoint_url = os.getenv("AWS_ENDPOINT_URL")  # e.g. http://localhost:4566 for LocalStack
            if endpoint_url:
                self._ses = boto3.client("ses", endpoint_url=endpoint_url, **session_kwargs)
            else:
                self._ses = boto3.client("ses", **session_kwargs)

    def send(self, recipient: str, subject: str, html_body: str) -> MailResult:
        request = {
            "Source": self._config.sender,
            "Destination": {"ToAddresses": [recipient]},
            "Message": {
                "Subject": {"Data": subject[:998], "Charset": "UTF-8"},  # RFC 5322 line limit
                "Body": {
                    "Text": {"Data": html_to_text(html_body), "Charset": "UTF-8"},
                    "Html": {"Data": html_body, "Charset": "UTF-8"},
                },
            },
        }

        # Simple retry/backoff for throttling & transient errors
        last_exc: Optional[Exception] = None
        for attempt in range(5):
            try:
                response = self._ses.send_email(**request)
                message_id = response.get("MessageId", "")
                LOGGER.info("Sent '%s' to %s via SES (%s)", subject, recipient, message_id)
                return MailResult(recipient=recipient, message_id=message_id)
            except self._client_error_cls as e:  # type: ignore
                # On throttling / 5xx, backoff; otherwise re-raise
                code = getattr(e, "response", {}).get("Error", {}).get("Code")
                if code in {"Throttling", "InternalFailure", "ServiceUnavailable"} and attempt < 4:
                    time.sleep(2 ** attempt)  # 1,2,4,8 seconds
                    last_exc = e
                    continue
                raise
        # If we somehow exit the loop without returning/raising earlier
        if last_exc:
            raise last_exc
        return MailResult(recipient=recipient, message_id="")


def build_mailer(config: NotificationConfig):
    if config.transport == "ses":
        return SESMailer(config)
    return SMTPMailer(config)
