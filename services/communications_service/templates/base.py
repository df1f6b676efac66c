"""
Shared email layout for RangeReady.

All email templates should use `wrap_html()` so every outgoing email carries
the same header, typography and footer. Inline styles only; many mail
clients strip <style> blocks.

Usage:
    from services.communications_service.templates.base import wrap_html, detail_box

    html = wrap_html(
        title="You're booked",
        body_html="<p>Hi Sam, ...</p>" + detail_box({...}),
        header_color=COLOR_GREEN,
    )
"""

from html import escape
from typing import Optional

# ─── Color presets ────────────────────────────────────────────────────
COLOR_SLATE = "#1e293b"
COLOR_GREEN = "#15803d"
COLOR_AMBER = "#b45309"
COLOR_RED = "#b91c1c"


def wrap_html(
    title: str,
    body_html: str,
    subtitle: str = "",
    header_color: str = COLOR_SLATE,
    preheader: str = "",
) -> str:
    """Wrap inner content in the branded layout.

    Args:
        title: Heading shown in the coloured header.
        body_html: Main content, already formatted and escaped.
        subtitle: Smaller text below the title.
        header_color: Header background colour.
        preheader: Hidden preview text shown in the inbox list.
    """
    subtitle_html = (
        f'<p style="margin:8px 0 0;font-size:15px;opacity:0.9;">{escape(subtitle)}</p>'
        if subtitle
        else ""
    )
    preheader_html = (
        f'<span style="display:none;max-height:0;overflow:hidden;">{escape(preheader)}</span>'
        if preheader
        else ""
    )
    return f"""\
<!DOCTYPE html>
<html lang="en">
<head><meta charset="utf-8" /><title>{escape(title)}</title></head>
<body style="margin:0;padding:0;background:#f1f5f9;font-family:Arial,Helvetica,sans-serif;color:#334155;">
    {preheader_html}
    <div style="max-width:600px;margin:0 auto;padding:24px 12px;">
        <div style="background:{header_color};color:#ffffff;padding:28px 32px;border-radius:10px 10px 0 0;">
            <h1 style="margin:0;font-size:22px;">{escape(title)}</h1>
            {subtitle_html}
        </div>
        <div style="background:#ffffff;padding:28px 32px;line-height:1.6;">
            {body_html}
        </div>
        <div style="padding:18px 32px;text-align:center;font-size:12px;color:#94a3b8;">
            <p style="margin:4px 0;"><strong>RangeReady Firearms Training</strong></p>
            <p style="margin:4px 0;">You are receiving this email because you booked a course with us.</p>
        </div>
    </div>
</body>
</html>"""


def detail_box(items: dict[str, Optional[str]], accent_color: str = COLOR_SLATE) -> str:
    """Render label/value rows. Empty values are skipped."""
    rows = "".join(
        f'<div style="margin:4px 0;"><strong>{escape(label)}:</strong> {escape(str(value))}</div>'
        for label, value in items.items()
        if value
    )
    return (
        f'<div style="border-left:4px solid {accent_color};background:#f8fafc;'
        f'padding:14px 18px;margin:18px 0;">{rows}</div>'
    )


def cta_button(label: str, url: str, color: str = COLOR_SLATE) -> str:
    return (
        f'<p style="text-align:center;margin:24px 0;"><a href="{escape(url)}" '
        f'style="background:{color};color:#ffffff;padding:12px 28px;border-radius:8px;'
        f'text-decoration:none;font-weight:bold;">{escape(label)}</a></p>'
    )


def sign_off(extra_message: str = "") -> str:
    extra = f"<p>{escape(extra_message)}</p>" if extra_message else ""
    return f"{extra}<p>See you on the range,<br />The RangeReady Team</p>"
