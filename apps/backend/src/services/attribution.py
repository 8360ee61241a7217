"""The "Made with DeepSite" badge added to published sites.

The fragment is a pure function of the repo id (and the public app URL), so
the exact text injected at deploy time can be stripped again on remix.
"""

from __future__ import annotations

from core.config import get_settings


BODY_CLOSE = "</body>"


def attribution_fragment(repo_id: str, app_url: str | None = None) -> str:
    base = (app_url or get_settings().PUBLIC_APP_URL).rstrip("/")
    return (
        '<p style="border-radius: 8px; text-align: center; font-size: 12px; '
        "color: #fff; margin-top: 16px;position: fixed; left: 8px; bottom: 8px; "
        'z-index: 10; background: rgba(0, 0, 0, 0.8); padding: 4px 8px;">'
        f'Made with <img src="{base}/logo.svg" alt="DeepSite Logo" '
        'style="width: 16px; height: 16px; vertical-align: middle;'
        'display:inline-block;margin-right:3px;filter:brightness(0) invert(1);">'
        f'<a href="{base}" style="color: #fff;text-decoration: underline;" '
        'target="_blank" >DeepSite</a> - 🧬 '
        f'<a href="{base}?remix={repo_id}" '
        'style="color: #fff;text-decoration: underline;" target="_blank" >Remix</a>'
        "</p>"
    )


def inject_attribution(html: str, repo_id: str) -> str:
    """Insert the badge immediately before the first ``</body>``.

    Documents without a closing body tag are returned unchanged.
    """
    return html.replace(BODY_CLOSE, attribution_fragment(repo_id) + BODY_CLOSE, 1)


def strip_attribution(html: str, repo_id: str) -> str:
    """Remove one occurrence of the badge for ``repo_id``."""
    return html.replace(attribution_fragment(repo_id), "", 1)
