"""Transactional emails sent on account, inquiry and billing events."""

from typing import Any, Mapping

from presskit.features.notifications.mailer import Mailer
from presskit.features.notifications.templates import render


def display_name(user: Mapping[str, Any]) -> str:
    profile = user.get("profile") or {}
    return profile.get("firstName") or user.get("username") or "there"


class NotificationService:
    def __init__(self, mailer: Mailer, client_url: str):
        self.mailer = mailer
        self.client_url = client_url.rstrip("/")

    def _send(self, to: str, template: str, **context) -> None:
        subject, html = render(template, **context)
        self.mailer.send(to, subject, html)

    def send_welcome(self, user: Mapping[str, Any], verify_token: str) -> None:
        self._send(
            user["email"],
            "welcome",
            name=display_name(user),
            verify_url=f"{self.client_url}/verify-email?token={verify_token}",
        )

    def send_password_reset(self, user: Mapping[str, Any], reset_token: str) -> None:
        self._send(
            user["email"],
            "password_reset",
            name=display_name(user),
            reset_url=f"{self.client_url}/reset-password?token={reset_token}",
        )

    def send_contact_notification(self, to: str, epk: Mapping[str, Any], inquiry: Mapping[str, Any]) -> None:
        sender = inquiry["sender"]
        self._send(
            to,
            "contact_notification",
            epk_title=epk["title"],
            inquiry_type=inquiry["type"],
            sender_name=sender["name"],
            sender_email=sender["email"],
            company=sender.get("company"),
            subject=inquiry["subject"],
            message=inquiry["message"],
            dashboard_url=f"{self.client_url}/dashboard/inquiries/{inquiry['id']}",
        )

    def send_inquiry_response(self, inquiry: Mapping[str, Any], epk: Mapping[str, Any], response: str) -> None:
        sender = inquiry["sender"]
        self._send(
            sender["email"],
            "inquiry_response",
            subject=inquiry["subject"],
            sender_name=sender["name"],
            response=response,
            original_message=inquiry["message"],
            epk_title=epk["title"],
        )

    def send_subscription_confirmation(self, user: Mapping[str, Any], plan: str) -> None:
        self._send(user["email"], "subscription_confirmation", name=display_name(user), plan=plan)
