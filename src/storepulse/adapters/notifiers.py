"""Alert delivery channels."""

import json
import logging
import smtplib
from email.message import EmailMessage

import httpx

from storepulse.core.errors import AlertChannelError
from storepulse.core.models import Alert

logger = logging.getLogger(__name__)


class LogChannel:
    """Writes alerts to the ``storepulse.alerts`` logger as warnings."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._logger = log or logging.getLogger("storepulse.alerts")

    def send(self, alert: Alert) -> None:
        self._logger.warning(
            "Alert triggered: %s",
            alert.name,
            extra={
                "alert": alert.name,
                "severity": alert.severity,
                "alert_message": alert.message,
            },
        )


class EmailChannel:
    """Sends alerts over SMTP.

    Without an SMTP host or recipients the alert is only logged, so a
    development setup can keep ``email`` in its rule channels.
    """

    def __init__(
        self,
        host: str | None = None,
        port: int = 25,
        sender: str = "storepulse@localhost",
        recipients: list[str] | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._host = host
        self._port = port
        self._sender = sender
        self._recipients = recipients or []
        self._timeout = timeout

    def build_message(self, alert: Alert) -> EmailMessage:
        message = EmailMessage()
        message["Subject"] = f"[{alert.severity.upper()}] {alert.name}"
        message["From"] = self._sender
        message["To"] = ", ".join(self._recipients)
        message.set_content(
            f"{alert.message}\n\n{json.dumps(alert.context, indent=2, default=str)}"
        )
        return message

    def send(self, alert: Alert) -> None:
        if not self._host or not self._recipients:
            logger.info("Email alert would be sent", extra={"alert": alert.name})
            return
        try:
            with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as smtp:
                smtp.send_message(self.build_message(alert))
        except (OSError, smtplib.SMTPException) as exc:
            raise AlertChannelError("email", str(exc)) from exc


class _HttpChannel:
    """Base for channels that POST JSON to a URL."""

    name = "http"

    def __init__(
        self,
        url: str | None,
        client: httpx.Client | None = None,
        timeout: float = 5.0,
    ) -> None:
        self._url = url
        self._client = client
        self._timeout = timeout

    def payload(self, alert: Alert) -> dict:
        raise NotImplementedError

    def send(self, alert: Alert) -> None:
        if not self._url:
            raise AlertChannelError(self.name, "no URL configured")
        try:
            if self._client is not None:
                response = self._client.post(
                    self._url, json=self.payload(alert), timeout=self._timeout
                )
            else:
                response = httpx.post(
                    self._url, json=self.payload(alert), timeout=self._timeout
                )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise AlertChannelError(self.name, str(exc)) from exc


class SlackChannel(_HttpChannel):
    """Posts alerts to a Slack incoming webhook."""

    name = "slack"

    def payload(self, alert: Alert) -> dict:
        return {
            "text": f"Alert: {alert.name}",
            "attachments": [
                {
                    "color": "danger" if alert.is_critical else "warning",
                    "fields": [
                        {"title": "Severity", "value": alert.severity, "short": True},
                        {"title": "Message", "value": alert.message, "short": False},
                    ],
                }
            ],
        }


class WebhookChannel(_HttpChannel):
    """Posts the alert dictionary to a generic webhook."""

    name = "webhook"

    def payload(self, alert: Alert) -> dict:
        return json.loads(json.dumps(alert.to_dict(), default=str))
