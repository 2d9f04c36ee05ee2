"""Email templates, rendered with jinja2 (autoescaped, strict undefined)."""

from typing import Tuple

from jinja2 import DictLoader, Environment, StrictUndefined, select_autoescape

BRAND = "PressKit Pro"

_LAYOUT = """<!DOCTYPE html>
<html>
  <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
    <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
      <h1 style="color: #6366f1;">{{ brand }}</h1>
      {% block content %}{% endblock %}
      <hr style="border: none; border-top: 1px solid #eee; margin: 30px 0;">
      <p style="font-size: 12px; color: #999;">&copy; {{ brand }}. All rights reserved.</p>
    </div>
  </body>
</html>
"""

_WELCOME = """{% extends "layout.html" %}{% block content %}
<h2>Welcome, {{ name }}!</h2>
<p>Thanks for joining {{ brand }}. Please verify your email address to unlock every feature.</p>
<p><a href="{{ verify_url }}" style="background: #6366f1; color: #fff; padding: 12px 24px; text-decoration: none; border-radius: 6px;">Verify Email</a></p>
<p>If the button does not work, copy this link into your browser:<br>{{ verify_url }}</p>
<p>This link will expire in 24 hours.</p>
{% endblock %}
"""

_PASSWORD_RESET = """{% extends "layout.html" %}{% block content %}
<h2>Password Reset Request</h2>
<p>Hi {{ name }}, we received a request to reset your password.</p>
<p><a href="{{ reset_url }}" style="background: #6366f1; color: #fff; padding: 12px 24px; text-decoration: none; border-radius: 6px;">Reset Password</a></p>
<p>This link will expire in 1 hour. If you did not request a reset, you can ignore this email.</p>
{% endblock %}
"""

_CONTACT_NOTIFICATION = """{% extends "layout.html" %}{% block content %}
<h2>New {{ inquiry_type }} inquiry for {{ epk_title }}</h2>
<p><strong>From:</strong> {{ sender_name }} &lt;{{ sender_email }}&gt;</p>
{% if company %}<p><strong>Company:</strong> {{ company }}</p>{% endif %}
<p><strong>Subject:</strong> {{ subject }}</p>
<div style="background: #f5f5f5; padding: 15px; border-radius: 6px;">{{ message }}</div>
<p><a href="{{ dashboard_url }}">View in dashboard</a></p>
{% endblock %}
"""

_INQUIRY_RESPONSE = """{% extends "layout.html" %}{% block content %}
<h2>Re: {{ subject }}</h2>
<p>Hi {{ sender_name }},</p>
<div style="background: #f5f5f5; padding: 15px; border-radius: 6px;">{{ response }}</div>
<p style="color: #666;">Your original message:</p>
<blockquote style="border-left: 3px solid #ddd; padding-left: 10px; color: #666;">{{ original_message }}</blockquote>
<p>Sent on behalf of {{ epk_title }} via {{ brand }}.</p>
{% endblock %}
"""

_SUBSCRIPTION_CONFIRMATION = """{% extends "layout.html" %}{% block content %}
<h2>Subscription Confirmed</h2>
<p>Hi {{ name }}, your {{ plan }} plan is now active.</p>
<p>Thank you for supporting {{ brand }}!</p>
{% endblock %}
"""

SUBJECTS = {
    "welcome": "Welcome to {brand} - Verify Your Email",
    "password_reset": "{brand} - Password Reset Request",
    "contact_notification": "New inquiry: {subject}",
    "inquiry_response": "Re: {subject}",
    "subscription_confirmation": "{brand} - Subscription Confirmed",
}

environment = Environment(
    loader=DictLoader(
        {
            "layout.html": _LAYOUT,
            "welcome.html": _WELCOME,
            "password_reset.html": _PASSWORD_RESET,
            "contact_notification.html": _CONTACT_NOTIFICATION,
            "inquiry_response.html": _INQUIRY_RESPONSE,
            "subscription_confirmation.html": _SUBSCRIPTION_CONFIRMATION,
        }
    ),
    autoescape=select_autoescape(["html"]),
    undefined=StrictUndefined,
)


def render(template_name: str, **context) -> Tuple[str, str]:
    """Render ``template_name`` and return ``(subject, html)``."""
    context.setdefault("brand", BRAND)
    subject = SUBJECTS[template_name].format(**context)
    html = environment.get_template(f"{template_name}.html").render(**context)
    return subject, html
