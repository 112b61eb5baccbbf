"""Tests for account mail templates."""

import pytest

from shared.templates import TEMPLATES, MailType, get_template, render_mail


class TestTemplates:

    def test_every_mail_type_has_a_template(self):
        assert set(TEMPLATES) == set(MailType)

    def test_welcome(self):
        subject, body = render_mail(MailType.WELCOME, name="Ada", email="ada@example.com")

        assert subject == "Welcome aboard, Ada!"
        assert "ada@example.com" in body

    def test_name_changed(self):
        subject, body = render_mail(MailType.NAME_CHANGED, old_name="Ada", new_name="Ada L.")

        assert subject == "Your display name was changed"
        assert 'from "Ada" to "Ada L."' in body

    def test_email_changed(self):
        _, body = render_mail(
            MailType.EMAIL_CHANGED,
            name="Ada",
            old_email="ada@example.com",
            new_email="ada@example.org",
        )

        assert "from ada@example.com to ada@example.org" in body

    def test_missing_variable(self):
        with pytest.raises(KeyError):
            render_mail(MailType.WELCOME, name="Ada")

    def test_get_template(self):
        assert get_template(MailType.ACCOUNT_CLOSED).mail_type is MailType.ACCOUNT_CLOSED

    def test_unknown_template(self, monkeypatch):
        monkeypatch.delitem(TEMPLATES, MailType.ACCOUNT_CLOSED)

        with pytest.raises(ValueError):
            render_mail(MailType.ACCOUNT_CLOSED, name="Ada")
