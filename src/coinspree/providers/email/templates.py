"""Email templates: remote template store with built-in fallbacks."""
import logging
import re

import httpx
from pydantic import ValidationError

from coinspree.schemas.emails import EmailTemplate

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")

DEFAULT_TEMPLATES: dict[str, EmailTemplate] = {
    "ath-notification": EmailTemplate(
        subject="\U0001F680 {{cryptoName}} ({{symbol}}) Hit New All-Time High!",
        html="""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <div style="background: linear-gradient(90deg, #f59e0b, #ef4444); padding: 20px; text-align: center;">
    <h1 style="color: white; margin: 0;">New All-Time High Alert!</h1>
  </div>
  <div style="padding: 20px; background-color: #f9fafb;">
    <h2 style="color: #1f2937;">{{cryptoName}} ({{symbol}}) Reached {{newATH}}</h2>
    <div style="background: white; padding: 15px; border-radius: 8px; margin: 15px 0;">
      <p><strong>New ATH:</strong> {{newATH}}</p>
      <p><strong>Previous ATH:</strong> {{previousATH}}</p>
      <p><strong>Increase:</strong> +{{percentageIncrease}}%</p>
      <p><strong>Time:</strong> {{athDate}}</p>
    </div>
    <p style="text-align: center;"><a href="{{dashboardUrl}}">View Dashboard</a></p>
    <p style="text-align: center; font-size: 12px;"><a href="{{unsubscribeUrl}}">Unsubscribe from notifications</a></p>
    <p style="color: #6b7280; font-size: 14px;">
      This notification was sent because you have an active subscription to CoinSpree notifications.
    </p>
  </div>
</div>
""",
        text=(
            "{{cryptoName}} ({{symbol}}) Hit New All-Time High!\n\n"
            "New ATH: {{newATH}}\nPrevious ATH: {{previousATH}}\n"
            "Increase: +{{percentageIncrease}}%\nTime: {{athDate}}\n\n"
            "View your dashboard: {{dashboardUrl}}\n\nUnsubscribe: {{unsubscribeUrl}}"
        ),
    ),
    "welcome": EmailTemplate(
        subject="Welcome to CoinSpree - Never Miss an All-Time High Again!",
        html="""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <div style="background: #3b82f6; padding: 20px; text-align: center;">
    <h1 style="color: white; margin: 0;">Welcome to CoinSpree!</h1>
  </div>
  <div style="padding: 20px;">
    <p>Your account has been created. You're now ready to never miss another all-time high.</p>
    <ol>
      <li>Visit your <a href="{{dashboardUrl}}">dashboard</a> to see the top cryptocurrencies</li>
      <li>Set up a <a href="{{subscriptionUrl}}">subscription</a> to receive ATH notifications</li>
      <li>Customize your <a href="{{notificationsUrl}}">notification preferences</a></li>
    </ol>
    <p>The CoinSpree Team</p>
    <p style="text-align: center; font-size: 12px;"><a href="{{unsubscribeUrl}}">Unsubscribe from emails</a></p>
  </div>
</div>
""",
        text=(
            "Welcome to CoinSpree!\n\nYour account has been created. "
            "Visit your dashboard: {{dashboardUrl}}\n\n"
            "Set up notifications: {{subscriptionUrl}}\n\nUnsubscribe: {{unsubscribeUrl}}"
        ),
    ),
    "subscription-expiry": EmailTemplate(
        subject="Your CoinSpree Subscription Expires in {{daysUntilExpiry}} Days",
        html="""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <div style="background: #f59e0b; padding: 20px; text-align: center;">
    <h1 style="color: white; margin: 0;">Subscription Expiring Soon</h1>
  </div>
  <div style="padding: 20px;">
    <p>Hi {{email}},</p>
    <p>Your CoinSpree subscription will expire in <strong>{{daysUntilExpiry}} days</strong>.</p>
    <p style="text-align: center;"><a href="{{renewUrl}}">Renew Subscription</a></p>
    <p style="text-align: center; font-size: 12px;"><a href="{{unsubscribeUrl}}">Unsubscribe from emails</a></p>
  </div>
</div>
""",
        text=(
            "Your CoinSpree subscription expires in {{daysUntilExpiry}} days. "
            "Renew now: {{renewUrl}}\n\nUnsubscribe: {{unsubscribeUrl}}"
        ),
    ),
    "password-reset": EmailTemplate(
        subject="Reset Your CoinSpree Password",
        html="""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <div style="background: #6366f1; padding: 20px; text-align: center;">
    <h1 style="color: white; margin: 0;">Password Reset Request</h1>
  </div>
  <div style="padding: 20px;">
    <p>Hi {{email}},</p>
    <p>We received a request to reset the password for your CoinSpree account.</p>
    <p style="text-align: center;"><a href="{{resetUrl}}">Reset Password</a></p>
    <p>This link will expire in 1 hour. If you didn't request this, please ignore this email.</p>
  </div>
</div>
""",
        text=(
            "Reset your CoinSpree password: {{resetUrl}}\n\nThis link expires in 1 hour.\n\n"
            "If you didn't request this, please ignore this email."
        ),
    ),
}


def render(template: EmailTemplate, replacements: dict[str, str]) -> EmailTemplate:
    """Substitute ``{{name}}`` placeholders; unknown placeholders are left as-is."""

    def _sub(text: str) -> str:
        return _PLACEHOLDER.sub(lambda m: replacements.get(m.group(1), m.group(0)), text)

    return EmailTemplate(
        subject=_sub(template.subject),
        html=_sub(template.html),
        text=_sub(template.text),
    )


class TemplateStore:
    """Resolves templates from Vercel Edge Config, falling back to DEFAULT_TEMPLATES.

    Edge Config items are keyed ``email-template-{name}`` and hold
    ``{subject, html, text}``.
    """

    BASE_URL = "https://edge-config.vercel.com"

    def __init__(
        self,
        edge_config_id: str | None = None,
        token: str | None = None,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._edge_config_id = edge_config_id
        self._token = token
        self._client = httpx.AsyncClient(
            base_url=self.BASE_URL, timeout=timeout, transport=transport
        )

    async def get(self, name: str) -> EmailTemplate:
        """Return the named template. Raises KeyError for an unknown name."""
        if name not in DEFAULT_TEMPLATES:
            raise KeyError(f"Email template '{name}' not found")
        if not self._edge_config_id or not self._token:
            return DEFAULT_TEMPLATES[name]

        try:
            response = await self._client.get(
                f"/{self._edge_config_id}/item/email-template-{name}",
                headers={"Authorization": f"Bearer {self._token}"},
            )
            if response.status_code == 404:
                return DEFAULT_TEMPLATES[name]
            response.raise_for_status()
            return EmailTemplate.model_validate(response.json())
        except (httpx.HTTPError, ValidationError, ValueError) as exc:
            logger.warning("Failed to get email template %s from Edge Config: %s", name, exc)
            return DEFAULT_TEMPLATES[name]

    async def close(self) -> None:
        await self._client.aclose()
