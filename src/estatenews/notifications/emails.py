"""Email bodies for article notifications and the weekly digest."""

from __future__ import annotations

import html
from collections.abc import Sequence
from datetime import datetime

from pydantic import BaseModel

from estatenews.shared.email import EmailMessage

DANISH_MONTHS = (
    "januar",
    "februar",
    "marts",
    "april",
    "maj",
    "juni",
    "juli",
    "august",
    "september",
    "oktober",
    "november",
    "december",
)

_WRAPPER = """\
<!DOCTYPE html>
<html lang="da">
<body style="margin:0;padding:0;background:#f4f4f5;font-family:Arial,Helvetica,sans-serif;color:#18181b;">
<div style="max-width:600px;margin:0 auto;padding:24px;background:#ffffff;">
{body}
<hr style="border:none;border-top:1px solid #e4e4e7;margin:32px 0 16px;">
<p style="font-size:12px;color:#71717a;">
Du modtager denne email, fordi du abonnerer på Estate News.
<a href="{preferences_url}" style="color:#71717a;">Administrer dine præferencer</a>
</p>
</div>
</body>
</html>"""


class DigestEntry(BaseModel):
    """One article line in a digest email."""

    title: str
    summary: str = ""
    slug: str
    image: str | None = None
    category_name: str


def format_danish_date(value: datetime) -> str:
    """Format as ``12. januar``."""
    return f"{value.day}. {DANISH_MONTHS[value.month - 1]}"


def article_url(site_url: str, slug: str) -> str:
    return f"{site_url.rstrip('/')}/nyheder/{slug}"


def preferences_url(site_url: str) -> str:
    return f"{site_url.rstrip('/')}/profile/preferences"


def _greeting(name: str | None) -> str:
    return f"Hej {name}," if name else "Hej,"


def render_article_notification(
    *,
    to: str,
    recipient_name: str | None,
    title: str,
    summary: str,
    slug: str,
    category_name: str,
    site_url: str,
    image: str | None = None,
) -> EmailMessage:
    """Build the immediate notification for one new article."""
    url = article_url(site_url, slug)
    subject = f"Ny artikel i {category_name}: {title}"

    text = "\n".join(
        [
            _greeting(recipient_name),
            "",
            f"Der er netop udgivet en ny artikel i {category_name}:",
            "",
            title,
            summary,
            "",
            f"Læs hele artiklen: {url}",
            "",
            f"Administrer dine præferencer: {preferences_url(site_url)}",
        ]
    )

    image_html = ""
    if image:
        image_html = (
            f'<img src="{html.escape(image, quote=True)}" alt="" '
            'style="width:100%;height:auto;border-radius:8px;margin-bottom:16px;">'
        )
    body = (
        f"<p>{html.escape(_greeting(recipient_name))}</p>"
        f'<p style="font-size:12px;text-transform:uppercase;color:#71717a;">{html.escape(category_name)}</p>'
        f"{image_html}"
        f'<h1 style="font-size:22px;margin:0 0 12px;">{html.escape(title)}</h1>'
        f"<p>{html.escape(summary)}</p>"
        f'<p><a href="{html.escape(url, quote=True)}" style="color:#2563eb;">Læs hele artiklen</a></p>'
    )
    return EmailMessage(
        to=to,
        subject=subject,
        text=text,
        html=_WRAPPER.format(body=body, preferences_url=html.escape(preferences_url(site_url), quote=True)),
    )


def render_weekly_digest(
    *,
    to: str,
    recipient_name: str | None,
    articles: Sequence[DigestEntry],
    week_start: str,
    week_end: str,
    site_url: str,
) -> EmailMessage:
    """Build one subscriber's weekly digest."""
    count = len(articles)
    noun = "artikel" if count == 1 else "artikler"
    subject = f"Ugens nyheder fra Estate News ({week_start} - {week_end})"

    text_lines = [
        _greeting(recipient_name),
        "",
        f"Her er ugens {count} {noun} fra {week_start} til {week_end}:",
        "",
    ]
    html_items: list[str] = []
    for entry in articles:
        url = article_url(site_url, entry.slug)
        text_lines.extend([f"[{entry.category_name}] {entry.title}", entry.summary, url, ""])
        html_items.append(
            '<div style="margin-bottom:24px;">'
            f'<p style="font-size:12px;text-transform:uppercase;color:#71717a;margin:0;">'
            f"{html.escape(entry.category_name)}</p>"
            f'<h2 style="font-size:18px;margin:4px 0 8px;"><a href="{html.escape(url, quote=True)}" '
            f'style="color:#18181b;text-decoration:none;">{html.escape(entry.title)}</a></h2>'
            f"<p style=\"margin:0;\">{html.escape(entry.summary)}</p>"
            "</div>"
        )
    text_lines.append(f"Administrer dine præferencer: {preferences_url(site_url)}")

    body = (
        f"<p>{html.escape(_greeting(recipient_name))}</p>"
        f"<p>Her er ugens {count} {noun} fra {html.escape(week_start)} til {html.escape(week_end)}:</p>"
        + "".join(html_items)
    )
    return EmailMessage(
        to=to,
        subject=subject,
        text="\n".join(text_lines),
        html=_WRAPPER.format(body=body, preferences_url=html.escape(preferences_url(site_url), quote=True)),
    )
