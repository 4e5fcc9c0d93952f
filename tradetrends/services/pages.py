"""Same-site HTML pages served instead of a redirect."""
from __future__ import annotations

from html import escape
from typing import Optional

_STYLE = (
    "body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; "
    "max-width: 640px; margin: 60px auto; padding: 0 20px; color: #333; line-height: 1.6; } "
    "h1 { color: #1a1a1a; } "
    ".actions a { display: inline-block; margin: 8px 12px 0 0; padding: 10px 18px; "
    "border-radius: 6px; background: #f0f0f0; color: #1a1a1a; text-decoration: none; } "
    ".actions a.primary { background: #ff9900; color: #111; }"
)


def _page(title: str, body: str) -> str:
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <meta name="robots" content="noindex, nofollow">
    <title>{escape(title)} - TradeTrends</title>
    <style>{_STYLE}</style>
</head>
<body>
{body}
</body>
</html>"""


def loop_detected_page(destination: Optional[str]) -> str:
    """Break a bounce loop: explain and offer a manual link instead of redirecting again."""
    link = ""
    if destination:
        link = (f'<a class="primary" href="{escape(destination)}" '
                f'rel="nofollow sponsored noopener">Continue to the deal</a>')
    return _page("Redirect Loop Detected", f"""    <h1>Redirect Loop Detected</h1>
    <p>We sent you to this deal several times in a few seconds, which usually means
    something between your browser and the store is bouncing you back here.
    We stopped the automatic redirect so you don't get stuck.</p>
    <p class="actions">{link}<a href="/">Back to deals</a></p>""")


def self_redirect_page() -> str:
    """Shown when a deal's destination points at our own site."""
    return _page("Deal Temporarily Unavailable", """    <h1>Deal Temporarily Unavailable</h1>
    <p>This deal's link is misconfigured and would send you back to this site.
    We've been notified and will fix it shortly.</p>
    <p class="actions"><a href="/">Browse other deals</a></p>""")
