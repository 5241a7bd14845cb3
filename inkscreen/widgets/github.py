"""GitHub repository star count widget."""

from __future__ import annotations

import datetime
import logging
from typing import Optional
from urllib.parse import quote

from pydantic import BaseModel

from inkscreen.core.http_client import FetchError
from inkscreen.domain.models import GitHubConfig, RenderedFragment, Widget, WidgetKind
from inkscreen.widgets.base import GeneratorContext, fragment, register
from inkscreen.widgets.html import css_number, escape, font_style, px

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com/repos"
GITHUB_HEADERS = {
    "Accept": "application/vnd.github.v3+json",
    "User-Agent": "Inker-E-Ink-Display",
}

STAR_POINTS = "12,2 15.09,8.26 22,9.27 17,14.14 18.18,21.02 12,17.77 5.82,21.02 7,14.14 2,9.27 8.91,8.26"


class GitHubStars(BaseModel):
    stars: int
    name: str


def format_stars(count: int) -> str:
    """Compact star count: ``1.2M``, ``45.3k`` or the plain number."""
    if count >= 1_000_000:
        return f"{count / 1_000_000:.1f}M"
    if count >= 1_000:
        return f"{count / 1_000:.1f}k"
    return str(count)


async def _github_token(ctx: GeneratorContext) -> Optional[str]:
    if ctx.settings is not None:
        token = await ctx.settings.get_github_token()
        if token:
            return token
    return ctx.github_token or None


def _log_rate_limit(owner: str, repo: str, error: FetchError) -> None:
    remaining = error.headers.get("x-ratelimit-remaining")
    reset = error.headers.get("x-ratelimit-reset")
    reset_at = "unknown"
    if reset and reset.isdigit():
        reset_at = datetime.datetime.fromtimestamp(int(reset), tz=datetime.timezone.utc).isoformat()
    logger.warning(
        "GitHub API error %s for %s/%s. Rate limit remaining: %s, resets at: %s",
        error.status_code,
        owner,
        repo,
        remaining,
        reset_at,
    )


async def fetch_github_stars(owner: str, repo: str, ctx: GeneratorContext) -> Optional[GitHubStars]:
    """Look up a repository's star count with a five minute cache.

    After a failed request the last known value is served even if expired.

    Returns:
        GitHubStars, or None when nothing was ever fetched successfully
    """
    key = ctx.cache.normalize_key("github", owner, repo)
    cached = ctx.cache.get_fresh(key)
    if cached is not None:
        logger.debug("GitHub stars for %s/%s served from cache", owner, repo)
        return cached

    headers = dict(GITHUB_HEADERS)
    token = await _github_token(ctx)
    if token:
        headers["Authorization"] = f"Bearer {token}"
    else:
        logger.debug("Fetching GitHub stars for %s/%s without token (rate limit: 60/hr)", owner, repo)

    url = f"{GITHUB_API_URL}/{quote(owner, safe='')}/{quote(repo, safe='')}"
    try:
        data = await ctx.fetcher.get_json(url, headers=headers)
        result = GitHubStars(
            stars=int(data.get("stargazers_count") or 0),
            name=str(data.get("full_name") or f"{owner}/{repo}"),
        )
    except FetchError as e:
        if e.status_code is not None:
            _log_rate_limit(owner, repo, e)
        else:
            logger.warning("Failed to fetch GitHub stars: %s", e)
        return ctx.cache.get_stale(key)
    except (AttributeError, TypeError, ValueError) as e:
        logger.warning("Unexpected GitHub response for %s/%s: %s", owner, repo, e)
        return ctx.cache.get_stale(key)

    ctx.cache.set(key, result)
    logger.debug("GitHub stars for %s/%s: %d (cached)", owner, repo, result.stars)
    return result


@register(WidgetKind.GITHUB)
async def generate_github(
    widget: Widget, config: GitHubConfig, ctx: GeneratorContext
) -> RenderedFragment:
    result = await fetch_github_stars(config.owner, config.repo, ctx)
    stars = result.stars if result is not None else 0

    font_size = config.font_size
    icon_size = min(font_size * 1.2, 48)
    small = max(12, font_size * 0.4)

    html = '<div style="display: flex; flex-direction: column; align-items: center;">'
    html += '<div style="display: flex; align-items: center; gap: 8px;">'
    if config.show_icon:
        html += (
            f'<svg width="{css_number(icon_size)}" height="{css_number(icon_size)}" viewBox="0 0 24 24"'
            f' fill="currentColor"><polygon points="{STAR_POINTS}" /></svg>'
        )
    html += f'<span style="font-size: {px(font_size)}; font-weight: bold;">{format_stars(stars)}</span>'
    html += "</div>"
    if config.show_repo_name:
        html += (
            f'<div style="font-size: {px(small)}; color: #888; margin-top: 4px;">'
            f"{escape(config.owner)}/{escape(config.repo)}</div>"
        )
    html += "</div>"

    style = f"{font_style(font_size, config.font_family)} justify-content: center;"
    return fragment(widget, html, style, degraded=result is None)
