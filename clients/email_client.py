"""
Transactional email via the Mailgun HTTP API.

Basic auth with the API key as password, form-encoded message body.
Delivery is best-effort: failures are logged and reported through the
returned DeliveryOutcome, never raised. Callers decide whether to care.
"""

import html
import logging
from dataclasses import dataclass

import requests

logger = logging.getLogger(__name__)

DEFAULT_API_BASE = "https://api.eu.mailgun.net"


@dataclass(frozen=True)
class DeliveryOutcome:
    """Result of a send attempt."""

    sent: bool
    error: str | None = None


_LAYOUT = """<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{title}</title>
</head>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
  <h1 style="text-align: center;">{app_name}</h1>
  <div style="border: 1px solid #e0e0e0; border-radius: 8px; padding: 20px; background-color: #f9f9f9;">
    <h2>{title}</h2>
    {body}
    <div style="text-align: center;">
      <a href="{link}" style="display: inline-block; background-color: #3b82f6; color: white; text-decoration: none; padding: 10px 20px; border-radius: 5px; margin: 20px 0;">{button}</a>
    </div>
    {footnote}
  </div>
  <p style="margin-top: 30px; font-size: 12px; color: #666; text-align: center;">
    Tämä on automaattinen viesti, älä vastaa tähän viestiin.
  </p>
</body>
</html>
"""


def render_verification_email(link: str, app_name: str, ttl_hours: int) -> str:
    """HTML body for the email verification message."""
    return _LAYOUT.format(
        title="Vahvista sähköpostiosoitteesi",
        app_name=html.escape(app_name),
        body=(
            "<p>Hei,</p>"
            "<p>Kiitos rekisteröitymisestäsi. Vahvista sähköpostiosoitteesi "
            "klikkaamalla alla olevaa painiketta:</p>"
        ),
        link=html.escape(link, quote=True),
        button="Vahvista sähköpostiosoite",
        footnote=(
            f"<p>Jos et rekisteröitynyt palveluun {html.escape(app_name)}, "
            "voit jättää tämän viestin huomiotta.</p>"
            f"<p>Vahvistuslinkki on voimassa {ttl_hours} tuntia.</p>"
        ),
    )


def render_password_reset_email(link: str, app_name: str, ttl_hours: int) -> str:
    """HTML body for the password reset message."""
    return _LAYOUT.format(
        title="Salasanan palautus",
        app_name=html.escape(app_name),
        body=(
            "<p>Hei,</p>"
            "<p>Olemme vastaanottaneet pyynnön palauttaa salasanasi. Voit asettaa "
            "uuden salasanan klikkaamalla alla olevaa painiketta:</p>"
        ),
        link=html.escape(link, quote=True),
        button="Palauta salasana",
        footnote=(
            "<p>Jos et pyytänyt salasanan palautusta, voit jättää tämän viestin huomiotta.</p>"
            f"<p>Palautuslinkki on voimassa {ttl_hours} tuntia.</p>"
        ),
    )


class MailgunClient:
    """Send HTML email through one Mailgun sending domain."""

    def __init__(
        self,
        api_key: str,
        domain: str,
        sender: str,
        api_base: str = DEFAULT_API_BASE,
        app_name: str = "Bilo",
    ):
        """
        Initialize with Mailgun credentials.

        Args:
            api_key: Mailgun private API key
            domain: Sending domain registered with Mailgun
            sender: From header, e.g. "Bilo <noreply@bilo.fi>"
            api_base: Regional API host
            app_name: Product name used in templates and subjects

        Raises:
            ValueError: If any credential is empty
        """
        if not api_key:
            raise ValueError("api_key is required")
        if not domain:
            raise ValueError("domain is required")
        if not sender:
            raise ValueError("sender is required")

        self.api_key = api_key
        self.domain = domain
        self.sender = sender
        self.app_name = app_name
        self.messages_url = f"{api_base.rstrip('/')}/v3/{domain}/messages"

    def send_email(self, to: str, subject: str, html_body: str) -> DeliveryOutcome:
        """
        Send one message.

        Returns:
            DeliveryOutcome(sent=True) on a 2xx response, otherwise sent=False
            with the failure reason. Never raises for delivery problems.
        """
        try:
            response = requests.post(
                self.messages_url,
                auth=("api", self.api_key),
                data={
                    "from": self.sender,
                    "to": to,
                    "subject": subject,
                    "html": html_body,
                },
                timeout=10,
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Mailgun connection failed: {e}")
            return DeliveryOutcome(sent=False, error=f"Connection failed: {e}")

        if not response.ok:
            logger.error(
                f"Mailgun API error {response.status_code}: {response.reason}"
            )
            return DeliveryOutcome(
                sent=False,
                error=f"Mailgun API error: {response.status_code} {response.reason}",
            )

        logger.info(f"Email sent to {to}: {subject}")
        return DeliveryOutcome(sent=True)

    def send_verification_email(self, email: str, link: str, ttl_hours: int) -> DeliveryOutcome:
        """Send the email verification link."""
        return self.send_email(
            to=email,
            subject=f"Vahvista sähköpostiosoitteesi - {self.app_name}",
            html_body=render_verification_email(link, self.app_name, ttl_hours),
        )

    def send_password_reset_email(self, email: str, link: str, ttl_hours: int) -> DeliveryOutcome:
        """Send the password reset link."""
        return self.send_email(
            to=email,
            subject=f"Salasanan palautus - {self.app_name}",
            html_body=render_password_reset_email(link, self.app_name, ttl_hours),
        )
