"""
Built-in email templates.

Each entry is used whenever the ``email_templates`` table has no row for
its key. Placeholders use ``${name}`` syntax and are filled with
``string.Template.safe_substitute`` so unknown placeholders survive as-is.
"""

from typing import Dict

WELCOME = "welcome"
REGISTRATION_ALERT = "registration_alert"
APPROVAL = "approval"
REJECTION = "rejection"
DELETION = "deletion"
ADMIN_WELCOME = "admin_welcome"
PASSWORD_RESET = "password_reset"


def _html(heading: str, body: str) -> str:
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">'
        f'<h2 style="color: #28A8E0;">{heading}</h2>'
        f"{body}"
        '<p style="color: #666666; font-size: 14px;">Best regards,<br/>The Portal Team</p>'
        '<p style="color: #999999; font-size: 12px;">&copy; ${year}. All rights reserved.</p>'
        "</div>"
    )


DEFAULT_TEMPLATES: Dict[str, Dict[str, str]] = {
    WELCOME: {
        "subject": "Thanks for registering - your account is pending approval",
        "body_text": (
            "Hello ${full_name},\n\n"
            "Thank you for registering. An administrator will review your application shortly. "
            "You will receive another email once your account has been approved.\n\n"
            "Best,\nThe Portal Team"
        ),
        "body_html": _html(
            "Hello ${full_name},",
            "<p>Thank you for registering. An administrator will review your application shortly.</p>"
            "<p><strong>Status:</strong> Pending approval</p>",
        ),
    },
    REGISTRATION_ALERT: {
        "subject": "New registration awaiting approval: ${email}",
        "body_text": (
            "A new member has registered and is waiting for approval.\n\n"
            "Name: ${full_name}\nEmail: ${email}\nOrganization: ${organization_name}\n\n"
            "Review pending users: ${dashboard_url}"
        ),
        "body_html": _html(
            "New registration",
            "<p>A new member has registered and is waiting for approval.</p>"
            "<p><strong>Name:</strong> ${full_name}<br/><strong>Email:</strong> ${email}<br/>"
            "<strong>Organization:</strong> ${organization_name}</p>"
            '<p><a href="${dashboard_url}">Review pending users</a></p>',
        ),
    },
    APPROVAL: {
        "subject": "Account Approved - Welcome!",
        "body_text": (
            "Hello ${full_name},\n\n"
            "Great news! Your account has been approved. You can now log in to access "
            "the member dashboard and all available resources.\n\n${login_url}\n\n"
            "Best,\nThe Portal Team"
        ),
        "body_html": _html(
            "Hello ${full_name},",
            "<p>Great news! Your account has been approved. You can now log in to access "
            "the member dashboard and all available resources.</p>"
            '<p><a href="${login_url}">Log In Now</a></p>',
        ),
    },
    REJECTION: {
        "subject": "Account Application Update",
        "body_text": (
            "Hello ${full_name},\n\n"
            "We regret to inform you that your account application has not been approved at this time.\n\n"
            "Reason: ${reason}\n\n"
            "If you believe this was an error, please contact us.\n\nBest,\nThe Portal Team"
        ),
        "body_html": _html(
            "Hello ${full_name},",
            "<p>We regret to inform you that your account application has not been approved at this time.</p>"
            "<p><strong>Reason:</strong> ${reason}</p>",
        ),
    },
    DELETION: {
        "subject": "Account Deleted",
        "body_text": (
            "Hello ${full_name},\n\n"
            "Your account has been permanently deleted by an administrator.\n\n"
            "If you believe this was an error, please contact us.\n\nBest,\nThe Portal Team"
        ),
        "body_html": _html(
            "Hello ${full_name},",
            "<p>Your account has been permanently deleted by an administrator.</p>",
        ),
    },
    ADMIN_WELCOME: {
        "subject": "Administrator Account Created - Welcome!",
        "body_text": (
            "Hello ${full_name},\n\n"
            "Your administrator account has been created.\n\n"
            "Email: ${email}\nPassword: ${password}\n\n"
            "Please log in at: ${admin_login_url}\n\n"
            "Please change your password after your first login.\n\nBest,\nThe Portal Team"
        ),
        "body_html": _html(
            "Welcome ${full_name}!",
            "<p>Your administrator account has been created.</p>"
            "<p><strong>Email:</strong> ${email}<br/><strong>Password:</strong> ${password}</p>"
            '<p><a href="${admin_login_url}">Access Admin Dashboard</a></p>'
            "<p>Please change your password after your first login.</p>",
        ),
    },
    PASSWORD_RESET: {
        "subject": "Password Reset Request",
        "body_text": (
            "Hello ${full_name},\n\n"
            "We received a request to reset your password. Use the link below within ${expires_minutes} minutes:\n\n"
            "${reset_url}\n\n"
            "If you did not request this, you can ignore this email.\n\nBest,\nThe Portal Team"
        ),
        "body_html": _html(
            "Hello ${full_name},",
            "<p>We received a request to reset your password.</p>"
            '<p><a href="${reset_url}">Reset Password</a></p>'
            "<p>This link expires in ${expires_minutes} minutes. If you did not request this, you can ignore this email.</p>",
        ),
    },
}

TEMPLATE_KEYS = tuple(sorted(DEFAULT_TEMPLATES))
