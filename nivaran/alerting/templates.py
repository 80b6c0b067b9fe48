"""
Emergency Alert Templates.

One channel-agnostic `AlertMessage` is built per escalation; the renderers in
this module turn it into the text each channel carries.

Template Design Principles:
1. Lead with WHO: subject name and time first
2. Lead with WHY: at most three risk factors, most important first
3. Lead with WHAT NEXT: a concrete action and the crisis resources
4. Short-message bodies must survive a 160-character gateway
"""

import html
from datetime import datetime
from enum import StrEnum
from string import Formatter
from typing import Optional, Sequence
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog

from nivaran.alerting.schemas import AlertMessage, Channel, Contact, RiskEvent

logger = structlog.get_logger(__name__)

SMS_SEGMENT_LIMIT = 160
HEADLINE_FACTOR_COUNT = 3


# ============================================================================
# TEMPLATE TYPES
# ============================================================================


class TemplateType(StrEnum):
    """Renderings of an alert message."""

    GENERIC = "generic"
    SMS = "sms"
    EMAIL = "email"
    CHAT = "chat"
    CONTACT_SHEET = "contact_sheet"
    ALERT_FILE = "alert_file"
    TEST = "test"


TEMPLATES: dict[TemplateType, str] = {
    TemplateType.GENERIC: """EMERGENCY ALERT - NIVARAN RECOVERY SUPPORT

HIGH RISK USER DETECTED
Name: {subject_name}
Time: {display_time}

RISK FACTORS:
{factor_lines}

IMMEDIATE ACTION REQUIRED
Contact user immediately for crisis intervention.

Emergency Hotline: {hotline}
Crisis Text: {text_line}
Emergency Services: {emergency_number}

This is an automated alert from Nivaran Recovery Support System.""",

    TemplateType.SMS: "NIVARAN EMERGENCY: {subject_name} is HIGH RISK ({display_time}). {factors_inline}. Contact now. Hotline {hotline}",

    TemplateType.EMAIL: """NIVARAN EMERGENCY ALERT

HIGH RISK USER DETECTED

User Details:
- Name: {subject_name}
- Time: {display_time}
- Responder contact: {contact_phone}

RISK FACTORS IDENTIFIED:
{all_factor_lines}

IMMEDIATE ACTION REQUIRED:
1. Contact the user immediately
2. Provide crisis intervention support
3. Consider emergency services if needed
4. Follow up within 24 hours

Emergency Resources:
- Crisis Hotline: {hotline}
- Crisis Text Line: {text_line}
- Emergency Services: {emergency_number}

This is an automated alert from the Nivaran Recovery Support System.
Please respond immediately to ensure user safety.

---
Nivaran Recovery Support Team
Emergency Notification System""",

    TemplateType.CHAT: """*NIVARAN EMERGENCY ALERT*

*HIGH RISK USER DETECTED*

*User:* {subject_name}
*Time:* {display_time}

*RISK FACTORS:*
{factor_lines}

*IMMEDIATE ACTION REQUIRED*
Contact user immediately for crisis intervention.

*Emergency Resources:*
• Crisis Hotline: {hotline}
• Crisis Text Line: {text_line}
• Emergency Services: {emergency_number}

_This is an automated alert from Nivaran Recovery Support System._""",

    TemplateType.CONTACT_SHEET: """EMERGENCY CONTACT NUMBERS:
{contact_lines}

MESSAGE TO SEND:
{body}

COPY THIS MESSAGE AND SEND TO ALL NUMBERS ABOVE IMMEDIATELY!""",

    TemplateType.ALERT_FILE: """NIVARAN EMERGENCY ALERT
Generated: {display_time}

HIGH-RISK USER DETECTED: {subject_name}

EMERGENCY CONTACTS (CALL IMMEDIATELY):
{contact_lines}

MESSAGE TO CONVEY:
{body}

INSTRUCTIONS:
1. Call all numbers above immediately
2. Inform them about the high-risk user
3. Provide crisis intervention support
4. Follow up within 24 hours

This is an automated emergency alert from Nivaran Recovery Support System.""",

    TemplateType.TEST: """NIVARAN TEST MESSAGE

This is a test of the emergency notification system.
Time: {display_time}

If you received this, the system is working correctly.
Please reply "OK" to confirm receipt.

- Nivaran Recovery Support Team""",
}

EMAIL_SUBJECT = "NIVARAN EMERGENCY ALERT - High Risk User Detected"
TEST_EMAIL_SUBJECT = "NIVARAN TEST - Emergency notification check"

PRINT_DOCUMENT = """<html>
<head>
  <title>EMERGENCY ALERT</title>
  <style>
    body {{ font-family: Arial, sans-serif; margin: 20px; }}
    .header {{ background: red; color: white; padding: 20px; text-align: center; font-size: 24px; font-weight: bold; }}
    .content {{ padding: 20px; }}
    .contacts {{ background: #ffffcc; padding: 15px; margin: 10px 0; border: 2px solid red; }}
    .message {{ background: #ffeeee; padding: 15px; margin: 10px 0; border: 1px solid red; }}
  </style>
</head>
<body onload="window.print()">
  <div class="header">NIVARAN EMERGENCY ALERT</div>
  <div class="content">
    <h2>HIGH-RISK USER DETECTED: {subject_name}</h2>
    <p><strong>Time:</strong> {display_time}</p>
    <div class="contacts">
      <h3>CALL THESE NUMBERS IMMEDIATELY:</h3>
      {contact_items}
    </div>
    <div class="message">
      <h3>MESSAGE TO CONVEY:</h3>
      <pre>{body}</pre>
    </div>
    <h3>IMMEDIATE ACTION REQUIRED:</h3>
    <ul>
      <li>Call all numbers above immediately</li>
      <li>Provide crisis intervention support</li>
      <li>Follow up within 24 hours</li>
    </ul>
  </div>
</body>
</html>
"""


# ============================================================================
# MESSAGE BUILDER
# ============================================================================


def format_display_time(moment: datetime, tz_name: str) -> str:
    """Human-readable local time for responders."""
    try:
        tz = ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        tz = None
    local = moment.astimezone(tz) if tz else moment
    return local.strftime("%d/%m/%Y, %I:%M:%S %p")


def build_alert_message(
    event: RiskEvent,
    risk_factors: Sequence[str],
    *,
    hotline: str,
    text_line: str,
    emergency_number: str,
    tz_name: str = "UTC",
    is_test: bool = False,
) -> AlertMessage:
    """Compose the channel-agnostic alert for one risk event."""
    return AlertMessage(
        subject_id=event.subject_id,
        subject_name=event.subject_name,
        created_at=event.captured_at,
        risk_factors=list(risk_factors),
        headline_factors=list(risk_factors[:HEADLINE_FACTOR_COUNT]),
        hotline=hotline,
        text_line=text_line,
        emergency_number=emergency_number,
        display_time=format_display_time(event.captured_at, tz_name),
        is_test=is_test,
    )


def _bullets(factors: Sequence[str]) -> str:
    return "\n".join(f"• {factor}" for factor in factors)


def _contact_lines(contacts: Sequence[Contact]) -> str:
    return "\n".join(f"{c.label}: {c.phone_number}" for c in contacts)


def _params(message: AlertMessage) -> dict:
    return {
        "subject_name": message.subject_name,
        "display_time": message.display_time,
        "factor_lines": _bullets(message.headline_factors),
        "all_factor_lines": _bullets(message.risk_factors),
        "factors_inline": "; ".join(message.headline_factors),
        "hotline": message.hotline,
        "text_line": message.text_line,
        "emergency_number": message.emergency_number,
    }


# ============================================================================
# CHANNEL RENDERERS
# ============================================================================


def render_generic(message: AlertMessage) -> str:
    """Plain-text alert used for records, device-local actions and logs."""
    if message.is_test:
        return render_template(TemplateType.TEST, _params(message))
    return render_template(TemplateType.GENERIC, _params(message))


def render_sms(message: AlertMessage, limit: Optional[int] = None) -> str:
    """Compact short-message body, optionally cut to `limit` characters."""
    if message.is_test:
        text = render_template(TemplateType.TEST, _params(message))
    else:
        text = render_template(TemplateType.SMS, _params(message))
    if limit is not None and len(text) > limit:
        text = text[: limit - 3].rstrip() + "..."
    return text


def render_email(message: AlertMessage, contact: Contact) -> tuple[str, str]:
    """(subject, body) for the responder mailbox."""
    if message.is_test:
        return TEST_EMAIL_SUBJECT, render_template(TemplateType.TEST, _params(message))
    params = _params(message) | {"contact_phone": contact.phone_number}
    return EMAIL_SUBJECT, render_template(TemplateType.EMAIL, params)


def render_chat(message: AlertMessage) -> str:
    """WhatsApp-flavoured markup."""
    if message.is_test:
        return render_template(TemplateType.TEST, _params(message))
    return render_template(TemplateType.CHAT, _params(message))


def render_contact_sheet(message: AlertMessage, contacts: Sequence[Contact]) -> str:
    """Clipboard text: every number plus the message to relay."""
    return render_template(
        TemplateType.CONTACT_SHEET,
        {"contact_lines": _contact_lines(contacts), "body": render_generic(message)},
    )


def render_alert_file(message: AlertMessage, contacts: Sequence[Contact]) -> str:
    """Content of the downloadable alert-summary file."""
    return render_template(
        TemplateType.ALERT_FILE,
        {
            "display_time": message.display_time,
            "subject_name": message.subject_name,
            "contact_lines": _contact_lines(contacts),
            "body": render_generic(message),
        },
    )


def render_print_document(message: AlertMessage, contacts: Sequence[Contact]) -> str:
    """Print-ready HTML notice. All interpolated text is escaped."""
    contact_items = "".join(
        f"<p><strong>{html.escape(c.label)}:</strong> {html.escape(c.phone_number)}</p>"
        for c in contacts
    )
    return PRINT_DOCUMENT.format(
        subject_name=html.escape(message.subject_name),
        display_time=html.escape(message.display_time),
        contact_items=contact_items,
        body=html.escape(render_generic(message)),
    )


# ============================================================================
# OPERATOR SUMMARIES
# ============================================================================


CHANNEL_LABELS = {
    Channel.SHORT_MESSAGE: "SMS",
    Channel.EMAIL: "Email",
    Channel.CHAT_LINK: "WhatsApp",
    Channel.DEVICE_LOCAL: "Device",
}


def render_success_summary(
    subject_name: str,
    channel_results: dict[Channel, bool],
    contacts: Sequence[Contact],
    display_time: str,
) -> str:
    """Summary shown to the operator when at least one channel delivered."""
    lines = [f"EMERGENCY ALERT SENT FOR {subject_name.upper()}", ""]
    for channel, ok in channel_results.items():
        label = CHANNEL_LABELS.get(channel, channel.value)
        lines.append(f"{label}: {'Sent successfully' if ok else 'Failed'}")
    lines.append(f"Time: {display_time}")
    lines.append("")
    network_ok = any(
        ok for channel, ok in channel_results.items() if channel != Channel.DEVICE_LOCAL
    )
    if network_ok:
        lines.append("IMMEDIATE ACTION REQUIRED - Check your phone for alerts!")
    else:
        lines.append("Automated network channels failed. CALL THESE NUMBERS NOW:")
        lines.extend(f"  {c.label}: {c.phone_number}" for c in contacts)
    return "\n".join(lines)


def render_failure_summary(subject_name: str, contacts: Sequence[Contact]) -> str:
    """Summary shown when every channel failed: call the responders by hand."""
    lines = [
        f"EMERGENCY ALERT FAILED FOR {subject_name}",
        "",
        "All automated channels failed; call these numbers now:",
    ]
    lines.extend(f"  {c.label}: {c.phone_number}" for c in contacts)
    lines.append("")
    lines.append("IMMEDIATE MANUAL INTERVENTION REQUIRED!")
    return "\n".join(lines)


# ============================================================================
# TEMPLATE RENDERING
# ============================================================================


def render_template(template_type: TemplateType, parameters: dict) -> str:
    """
    Render a template with named parameters.

    A missing parameter renders as an empty string so an alert still goes
    out, and is logged as `template_parameter_missing`.
    """
    template = TEMPLATES.get(template_type)
    if template is None:
        return f"Unknown template: {template_type}"

    values = _Defaulting(parameters)
    text = template.format_map(values)
    if values.missing:
        logger.warning(
            "template_parameter_missing",
            template=template_type.value,
            missing=sorted(values.missing),
        )
    return text


def template_fields(template_type: TemplateType) -> set[str]:
    """Placeholder names a template expects."""
    return {
        field for _, field, _, _ in Formatter().parse(TEMPLATES[template_type]) if field
    }


class _Defaulting(dict):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.missing: set[str] = set()

    def __missing__(self, key: str) -> str:
        self.missing.add(key)
        return ""
