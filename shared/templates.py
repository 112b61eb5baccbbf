"""
Account mail templates.

Templates use Python's string formatting with {variable} placeholders. The
mail listener picks one per lifecycle event and renders it with the user's
details.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class MailType(str, Enum):
    """Account mail sent in response to user lifecycle events."""
    WELCOME = "welcome"
    NAME_CHANGED = "name_changed"
    EMAIL_CHANGED = "email_changed"
    ACCOUNT_CLOSED = "account_closed"


@dataclass
class MailTemplate:
    mail_type: MailType
    subject: str
    body: str

    def render(self, **kwargs) -> tuple[str, str]:
        """
        Render the template with provided variables.

        Returns:
            Tuple of (subject, body)
        """
        return self.subject.format(**kwargs), self.body.format(**kwargs)


# =============================================================================
# Template Definitions
# =============================================================================

TEMPLATES: dict[MailType, MailTemplate] = {

    MailType.WELCOME: MailTemplate(
        mail_type=MailType.WELCOME,
        subject="Welcome aboard, {name}!",
        body="""Hi {name},

Your account has been created. You can sign in with {email}.

See you around!
""",
    ),

    MailType.NAME_CHANGED: MailTemplate(
        mail_type=MailType.NAME_CHANGED,
        subject="Your display name was changed",
        body="""Hi {new_name},

Your display name was changed from "{old_name}" to "{new_name}".

If you didn't make this change, please contact support.
""",
    ),

    MailType.EMAIL_CHANGED: MailTemplate(
        mail_type=MailType.EMAIL_CHANGED,
        subject="Your account email was changed",
        body="""Hi {name},

The email address on your account was changed from {old_email} to {new_email}.

If you didn't make this change, please contact support.
""",
    ),

    MailType.ACCOUNT_CLOSED: MailTemplate(
        mail_type=MailType.ACCOUNT_CLOSED,
        subject="Your account has been closed",
        body="""Hi {name},

Your account has been closed and your data removed. Sorry to see you go!
""",
    ),
}


def get_template(mail_type: MailType) -> Optional[MailTemplate]:
    """Get a template by mail type."""
    return TEMPLATES.get(mail_type)


def render_mail(mail_type: MailType, **context) -> tuple[str, str]:
    """
    Render a mail template.

    Returns:
        (subject, body)

    Raises:
        ValueError: If no template exists for the mail type
    """
    template = get_template(mail_type)
    if not template:
        raise ValueError(f"No template found for mail type: {mail_type}")
    return template.render(**context)
