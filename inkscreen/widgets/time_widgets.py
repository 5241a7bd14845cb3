"""Clock, date, text, countdown and days-until widgets."""

from __future__ import annotations

import datetime
import logging

from inkscreen.core.timezone_utils import parse_target_datetime, resolve_timezone
from inkscreen.domain.models import (
    ClockConfig,
    CountdownConfig,
    DateConfig,
    DaysUntilConfig,
    RenderedFragment,
    TextConfig,
    Widget,
    WidgetKind,
)
from inkscreen.widgets.base import GeneratorContext, fragment, register
from inkscreen.widgets.html import css_number, escape, font_style, justify_for, placeholder, px

logger = logging.getLogger(__name__)

MONTH_NAMES = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)

WEEKDAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


def format_clock(now: datetime.datetime, twelve_hour: bool, show_seconds: bool) -> str:
    """Format a time as ``HH:MM[:SS]`` or ``hh:MM[:SS] AM/PM``."""
    minute_second = f"{now.minute:02d}"
    if show_seconds:
        minute_second += f":{now.second:02d}"

    if not twelve_hour:
        return f"{now.hour:02d}:{minute_second}"

    hour = now.hour % 12 or 12
    suffix = "AM" if now.hour < 12 else "PM"
    return f"{hour:02d}:{minute_second} {suffix}"


def format_long_date(
    today: datetime.date, weekday: bool, day: bool, month: bool, year: bool
) -> str:
    """Format a date the way en-US long dates read.

    Examples: ``Saturday, October 18, 2026``, ``October 2026``, ``October 18``.
    Selecting nothing gives month, day and year.
    """
    if not (weekday or day or month or year):
        day = month = year = True

    if month and day:
        text = f"{MONTH_NAMES[today.month - 1]} {today.day}"
    elif month:
        text = MONTH_NAMES[today.month - 1]
    elif day:
        text = str(today.day)
    else:
        text = ""

    if year:
        if month and day:
            text = f"{text}, {today.year}"
        else:
            text = f"{text} {today.year}".strip()

    if weekday:
        name = WEEKDAY_NAMES[today.weekday()]
        text = f"{name}, {text}" if text else name

    return text


@register(WidgetKind.CLOCK)
async def generate_clock(
    widget: Widget, config: ClockConfig, ctx: GeneratorContext
) -> RenderedFragment:
    zone = resolve_timezone(config.timezone, ctx.default_timezone)
    now = ctx.now().astimezone(zone)
    text = format_clock(now, config.format == "12h", config.show_seconds)

    style = (
        f"{font_style(config.font_size, config.font_family)}"
        f" justify-content: {justify_for(config.text_align)}; white-space: nowrap; padding: 0 8px;"
    )
    return fragment(widget, escape(text), style)


@register(WidgetKind.DATE)
async def generate_date(
    widget: Widget, config: DateConfig, ctx: GeneratorContext
) -> RenderedFragment:
    if config.locale.lower() not in ("en-us", "en"):
        logger.debug("Date locale %r not supported, using en-US", config.locale)

    zone = resolve_timezone(config.timezone, ctx.default_timezone)
    today = ctx.now().astimezone(zone).date()
    text = format_long_date(today, config.weekday, config.show_day, config.show_month, config.show_year)
    logger.debug("Date widget: zone=%s, rendered %r", zone.key, text)

    style = (
        f"{font_style(config.font_size, config.font_family)}"
        f" line-height: {px(config.font_size * 1.2)}; white-space: nowrap; padding: 0 8px;"
        f" justify-content: {justify_for(config.text_align)};"
    )
    return fragment(widget, escape(text), style)


@register(WidgetKind.TEXT)
async def generate_text(
    widget: Widget, config: TextConfig, ctx: GeneratorContext
) -> RenderedFragment:
    text = config.text or "Text"
    html = f'<div style="width: 100%; text-align: {config.text_align};">{escape(text)}</div>'
    style = (
        f"{font_style(config.font_size, config.font_family)}"
        f" font-weight: {escape(config.font_weight)}; color: {escape(config.color)};"
        " padding: 10px; line-height: 1.2;"
    )
    return fragment(widget, html, style)


@register(WidgetKind.DAYS_UNTIL)
async def generate_days_until(
    widget: Widget, config: DaysUntilConfig, ctx: GeneratorContext
) -> RenderedFragment:
    zone = resolve_timezone(None, ctx.default_timezone)
    target = parse_target_datetime(config.target_date, zone)
    if target is None:
        logger.warning("Days-until widget %s has invalid target date %r", widget.id, config.target_date)
        return fragment(widget, placeholder("Invalid date"), degraded=True)

    today = ctx.now().astimezone(zone).date()
    days = abs((target.astimezone(zone).date() - today).days)

    style = (
        f"{font_style(config.font_size, config.font_family)}"
        f" color: {escape(config.color)}; white-space: nowrap; padding: 0 8px;"
    )
    return fragment(widget, escape(f"{config.label_prefix}{days}{config.label_suffix}"), style)


@register(WidgetKind.COUNTDOWN)
async def generate_countdown(
    widget: Widget, config: CountdownConfig, ctx: GeneratorContext
) -> RenderedFragment:
    style = (
        f"{font_style(config.font_size, config.font_family)}"
        " flex-direction: column; justify-content: center; white-space: nowrap; padding: 0 8px;"
    )

    zone = resolve_timezone(None, ctx.default_timezone)
    target = parse_target_datetime(config.target_date, zone)
    if target is None:
        logger.warning("Countdown widget %s has invalid target date %r", widget.id, config.target_date)
        return fragment(widget, placeholder("Invalid date"), style, degraded=True)

    remaining = int((target - ctx.now()).total_seconds())
    if remaining <= 0:
        return fragment(widget, escape(config.label or "Time's up!"), style)

    days, rest = divmod(remaining, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, seconds = divmod(rest, 60)

    parts = []
    if config.show_days and days > 0:
        parts.append(f"{days}d")
    if config.show_hours:
        parts.append(f"{hours:02d}h")
    if config.show_minutes:
        parts.append(f"{minutes:02d}m")
    if config.show_seconds:
        parts.append(f"{seconds:02d}s")

    html = ""
    if config.label:
        html += (
            f'<div style="font-size: {css_number(config.font_size * 0.5)}px; margin-bottom: 4px;">'
            f"{escape(config.label)}</div>"
        )
    html += f'<div style="font-weight: bold;">{escape(" ".join(parts))}</div>'
    return fragment(widget, html, style)
