"""Tests for email rendering and the Mailgun transport."""

from __future__ import annotations

import urllib.error
import urllib.parse
from datetime import UTC, datetime
from unittest.mock import patch

import pytest

from estatenews.config import EstateNewsConfig
from estatenews.notifications import (
    DigestEntry,
    format_danish_date,
    render_article_notification,
    render_weekly_digest,
)
from estatenews.shared.email import EmailMessage, MailgunTransport, create_email_transport
from estatenews.shared.errors import ConfigurationError, EmailSendError

SITE = "https://estatenews.dk/"


class TestDanishDate:
    def test_format(self):
        assert format_danish_date(datetime(2026, 1, 12, tzinfo=UTC)) == "12. januar"
        assert format_danish_date(datetime(2026, 12, 3, tzinfo=UTC)) == "3. december"


class TestArticleNotification:
    def test_subject_and_links(self):
        message = render_article_notification(
            to="reader@example.dk",
            recipient_name="Mette",
            title="Ny handel i Aarhus",
            summary="Kort resumé.",
            slug="ny-handel-i-aarhus",
            category_name="Investering",
            site_url=SITE,
        )
        assert message.to == "reader@example.dk"
        assert message.subject == "Ny artikel i Investering: Ny handel i Aarhus"
        assert "Hej Mette," in message.text
        assert "https://estatenews.dk/nyheder/ny-handel-i-aarhus" in message.text
        assert "https://estatenews.dk/profile/preferences" in message.html

    def test_html_is_escaped(self):
        message = render_article_notification(
            to="r@example.dk",
            recipient_name=None,
            title="<script>alert(1)</script>",
            summary="A & B",
            slug="x",
            category_name="Kontor",
            site_url=SITE,
            image="https://blob.example/a.png",
        )
        assert "<script>" not in message.html
        assert "A &amp; B" in message.html
        assert 'src="https://blob.example/a.png"' in message.html
        assert message.text.startswith("Hej,")


class TestWeeklyDigest:
    def test_lists_every_article(self):
        entries = [
            DigestEntry(title="Første", summary="S1", slug="foerste", category_name="Kontor"),
            DigestEntry(title="Anden", summary="S2", slug="anden", category_name="Lager"),
        ]
        message = render_weekly_digest(
            to="r@example.dk",
            recipient_name=None,
            articles=entries,
            week_start="7. marts",
            week_end="14. marts",
            site_url=SITE,
        )
        assert message.subject == "Ugens nyheder fra Estate News (7. marts - 14. marts)"
        assert "Her er ugens 2 artikler" in message.text
        assert "[Kontor] Første" in message.text
        assert "https://estatenews.dk/nyheder/anden" in message.html

    def test_singular_noun(self):
        entry = DigestEntry(title="Eneste", slug="eneste", category_name="Hotel")
        message = render_weekly_digest(
            to="r@example.dk",
            recipient_name="Ole",
            articles=[entry],
            week_start="1. maj",
            week_end="8. maj",
            site_url=SITE,
        )
        assert "Her er ugens 1 artikel fra" in message.text


class TestMailgunTransport:
    @patch("urllib.request.urlopen")
    def test_send(self, mock_urlopen):
        mock_urlopen.return_value.__enter__.return_value.read.return_value = b'{"id": "<msg-1@mg>"}'
        transport = MailgunTransport("key-1", "mg.example.dk")

        message_id = transport.send(EmailMessage(to="r@example.dk", subject="Hej", text="Tekst"))

        assert message_id == "<msg-1@mg>"
        request = mock_urlopen.call_args.args[0]
        assert request.full_url == "https://api.eu.mailgun.net/v3/mg.example.dk/messages"
        assert request.get_header("Authorization").startswith("Basic ")
        form = urllib.parse.parse_qs(request.data.decode())
        assert form["from"] == ["Estate News <noreply@mg.example.dk>"]
        assert form["to"] == ["r@example.dk"]
        assert form["html"] == ["Tekst"]

    @patch("urllib.request.urlopen")
    def test_http_error(self, mock_urlopen):
        mock_urlopen.side_effect = urllib.error.HTTPError(
            "https://api.eu.mailgun.net", 401, "Unauthorized", {}, None
        )
        with pytest.raises(EmailSendError, match="HTTP 401"):
            MailgunTransport("bad", "mg.example.dk").send(EmailMessage(to="r@example.dk", subject="s", text="t"))

    @patch("urllib.request.urlopen", side_effect=urllib.error.URLError("no route"))
    def test_network_error(self, mock_urlopen):
        with pytest.raises(EmailSendError, match="no route"):
            MailgunTransport("k", "mg.example.dk").send(EmailMessage(to="r@example.dk", subject="s", text="t"))

    def test_factory_requires_credentials(self):
        with pytest.raises(ConfigurationError):
            create_email_transport(EstateNewsConfig())

    def test_factory(self):
        config = EstateNewsConfig.model_validate(
            {"email": {"mailgun_api_key": "k", "mailgun_domain": "mg.example.dk", "mailgun_host": "https://api.mailgun.net"}}
        )
        transport = create_email_transport(config)
        assert transport.host == "https://api.mailgun.net"
