"""
MJML Email Templates
Lifecycle notification emails using MJML for responsive, cross-client compatibility
"""

import html
from typing import Optional

from .config import FRONTEND_URL

# App theme colors - Indigo/Slate color scheme
THEME = {
    "primary": "#4f46e5",
    "primary_dark": "#4338ca",
    "primary_light": "#e0e7ff",
    "background": "#f8fafc",
    "card_bg": "#ffffff",
    "text_primary": "#0f172a",
    "text_secondary": "#334155",
    "text_muted": "#64748b",
    "border": "#e2e8f0",
    "success": "#16a34a",
    "warning": "#f59e0b",
    "danger": "#ef4444",
}


def get_base_template(
    title: str,
    preview_text: str,
    content_sections: str,
    cta_url: Optional[str] = None,
    cta_label: Optional[str] = None,
) -> str:
    """Base MJML template wrapper for all emails"""

    cta_section = ""
    if cta_url and cta_label:
        cta_section = f"""
        <mj-section padding="20px 0">
          <mj-column>
            <mj-button
              href="{cta_url}"
              background-color="{THEME['primary']}"
              color="#ffffff"
              font-weight="600"
              border-radius="8px"
              padding="18px 40px"
              font-size="16px">
              {cta_label}
            </mj-button>
          </mj-column>
        </mj-section>
        """

    return f"""
    <mjml>
      <mj-head>
        <mj-title>{title}</mj-title>
        <mj-preview>{preview_text}</mj-preview>
        <mj-attributes>
          <mj-all font-family="-apple-system, BlinkMacSystemFont, 'Segoe UI', 'Helvetica Neue', Arial, sans-serif" />
          <mj-text font-size="16px" line-height="1.6" color="{THEME['text_secondary']}" />
        </mj-attributes>
      </mj-head>
      <mj-body background-color="{THEME['background']}">
        <mj-section background-color="#ffffff" padding="32px 40px 48px 40px">
          <mj-column>
            <mj-text font-size="24px" font-weight="600" color="{THEME['text_primary']}" line-height="1.3" padding="0 0 16px 0">
              {title}
            </mj-text>

            {content_sections}
          </mj-column>
        </mj-section>

        {cta_section}

        <mj-section padding="32px 20px">
          <mj-column>
            <mj-text align="center" font-size="13px" color="#94a3b8" padding="0">
              You're receiving this because you have an account with TrainHub.
            </mj-text>
          </mj-column>
        </mj-section>
      </mj-body>
    </mjml>
    """


# Where each notification family sends the reader
_CTA_BY_PREFIX = {
    "booking_": ("/dashboard/bookings", "View Booking"),
    "agreement_": ("/dashboard/bookings", "Review Agreement"),
    "training_application_": ("/dashboard/training-requests", "View Application"),
    "training_request_": ("/dashboard/training-requests", "View Request"),
    "feedback_": ("/dashboard/bookings", "View Feedback"),
}


def resolve_cta(notification_type: str, data: dict) -> tuple[Optional[str], Optional[str]]:
    """Pick the dashboard link and button label for a notification type"""
    for prefix, (path, label) in _CTA_BY_PREFIX.items():
        if notification_type.startswith(prefix):
            booking_id = data.get("booking_id")
            if booking_id and path.endswith("/bookings"):
                return f"{FRONTEND_URL}{path}/{booking_id}", label
            return f"{FRONTEND_URL}{path}", label
    return None, None


def _text(value) -> str:
    """Escape once for the markup; stored free text already arrives escaped"""
    return html.escape(html.unescape(str(value)))


def lifecycle_notification_template(
    user_name: Optional[str],
    title: str,
    message: str,
    notification_type: str,
    data: dict,
) -> str:
    """Generic lifecycle event email (booking, agreement, application updates)"""
    greeting = f"Hi {_text(user_name)}," if user_name else "Hi,"
    content = f"""
    <mj-text>
      {greeting}
    </mj-text>

    <mj-text>
      {_text(message)}
    </mj-text>
    """

    topic = data.get("topic")
    status = data.get("status")
    if topic or status:
        details = []
        if topic:
            details.append(f"Training: {_text(topic)}")
        if status:
            details.append(f"Status: {_text(status).replace('_', ' ').title()}")
        content += f"""
    <mj-text color="{THEME['text_muted']}">
      {'<br/>'.join(details)}
    </mj-text>
    """

    cta_url, cta_label = resolve_cta(notification_type, data)
    return get_base_template(
        title=_text(title),
        preview_text=_text(html.unescape(message)[:120]),
        content_sections=content,
        cta_url=cta_url,
        cta_label=cta_label,
    )
