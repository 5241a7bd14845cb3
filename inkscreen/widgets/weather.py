"""Weather widget backed by the Open-Meteo forecast API."""

from __future__ import annotations

import datetime
import logging
import math
from typing import Any, Optional

from pydantic import BaseModel

from inkscreen.core.http_client import FetchError
from inkscreen.core.timezone_utils import resolve_timezone
from inkscreen.domain.models import RenderedFragment, WeatherConfig, Widget, WidgetKind
from inkscreen.rendering.eink import round_half_up
from inkscreen.widgets.base import GeneratorContext, fragment, register
from inkscreen.widgets.html import css_number, escape, px
from inkscreen.widgets.time_widgets import WEEKDAY_NAMES

logger = logging.getLogger(__name__)

OPEN_METEO_URL = "https://api.open-meteo.com/v1/forecast"
WEATHER_FIELDS = "temperature_2m,weather_code,relative_humidity_2m,wind_speed_10m"

FORECAST_HOURS: dict[str, int] = {
    "morning": 8,
    "noon": 12,
    "afternoon": 15,
    "evening": 19,
    "night": 22,
}
DEFAULT_FORECAST_HOUR = 12

# WMO weather interpretation codes -> (condition, icon)
WEATHER_CONDITIONS: dict[int, tuple[str, str]] = {
    0: ("Clear", "sun"),
    1: ("Mostly Clear", "sun"),
    2: ("Partly Cloudy", "cloud-sun"),
    3: ("Cloudy", "cloud"),
    45: ("Foggy", "fog"),
    48: ("Icy Fog", "fog"),
    51: ("Light Drizzle", "drizzle"),
    53: ("Drizzle", "drizzle"),
    55: ("Heavy Drizzle", "drizzle"),
    56: ("Freezing Drizzle", "drizzle"),
    57: ("Heavy Freezing Drizzle", "drizzle"),
    61: ("Light Rain", "rain"),
    63: ("Rain", "rain"),
    65: ("Heavy Rain", "rain"),
    66: ("Freezing Rain", "rain"),
    67: ("Heavy Freezing Rain", "rain"),
    71: ("Light Snow", "snow"),
    73: ("Snow", "snow"),
    75: ("Heavy Snow", "snow"),
    77: ("Snow Grains", "snow"),
    80: ("Light Showers", "rain"),
    81: ("Showers", "rain"),
    82: ("Heavy Showers", "rain"),
    85: ("Snow Showers", "snow"),
    86: ("Heavy Snow Showers", "snow"),
    95: ("Thunderstorm", "thunder"),
    96: ("Thunderstorm + Hail", "thunder"),
    99: ("Heavy Thunderstorm", "thunder"),
}


class WeatherReading(BaseModel):
    """One point of weather data, already rounded for display."""

    temperature: int
    weather_code: int
    humidity: Optional[float] = None
    wind_speed: int = 0
    day_name: str = "Today"


def weather_condition(code: int) -> tuple[str, str]:
    return WEATHER_CONDITIONS.get(code, ("Unknown", "cloud"))


def day_name_for(forecast_day: int, target: datetime.date) -> str:
    if forecast_day == 0:
        return "Today"
    if forecast_day == 1:
        return "Tomorrow"
    return WEEKDAY_NAMES[target.weekday()]


def _reading(block: dict[str, Any], index: Optional[int], day_name: str) -> WeatherReading:
    def value(key: str) -> Any:
        raw = block[key]
        return raw[index] if index is not None else raw

    humidity = value("relative_humidity_2m")
    return WeatherReading(
        temperature=round_half_up(float(value("temperature_2m"))),
        weather_code=int(value("weather_code")),
        humidity=humidity,
        wind_speed=round_half_up(float(value("wind_speed_10m"))),
        day_name=day_name,
    )


def select_reading(
    data: dict[str, Any], forecast_day: int, forecast_time: str, now: datetime.datetime
) -> WeatherReading:
    """Pick the current block or the matching hourly entry from a forecast.

    Args:
        data: Open-Meteo response body
        forecast_day: Days ahead (0 = today)
        forecast_time: current/morning/noon/afternoon/evening/night
        now: Local time used for "today" and the current hour

    Returns:
        WeatherReading for the requested slot, falling back to current data
        when the hourly series has no matching entry

    Raises:
        KeyError, TypeError, ValueError: If the response is malformed
    """
    target = now.date() + datetime.timedelta(days=forecast_day)
    day_name = day_name_for(forecast_day, target)

    if forecast_day == 0 and forecast_time == "current":
        return _reading(data["current"], None, day_name)

    if forecast_time == "current":
        hour = now.hour
    else:
        hour = FORECAST_HOURS.get(forecast_time, DEFAULT_FORECAST_HOUR)
    slot = f"{target.isoformat()}T{hour:02d}:00"

    hourly = data.get("hourly") or {}
    times = hourly.get("time") or []
    if slot in times:
        return _reading(hourly, times.index(slot), day_name)

    logger.debug("No hourly weather entry for %s, using current conditions", slot)
    return _reading(data["current"], None, day_name)


async def fetch_weather(config: WeatherConfig, ctx: GeneratorContext) -> Optional[WeatherReading]:
    """Fetch a reading, serving a cached one for five minutes.

    Returns:
        The reading, an expired cached reading after a failed fetch, or None
    """
    key = ctx.cache.normalize_key(
        "weather", config.latitude, config.longitude, config.forecast_day, config.forecast_time
    )
    cached = ctx.cache.get_fresh(key)
    if cached is not None:
        return cached

    params = {
        "latitude": config.latitude,
        "longitude": config.longitude,
        "current": WEATHER_FIELDS,
        "hourly": WEATHER_FIELDS,
        "forecast_days": max(config.forecast_day + 1, 1),
        "timezone": "auto",
    }
    logger.debug("Fetching weather for %s,%s", config.latitude, config.longitude)

    zone = resolve_timezone(None, ctx.default_timezone)
    try:
        data = await ctx.fetcher.get_json(OPEN_METEO_URL, params=params)
        reading = select_reading(data, config.forecast_day, config.forecast_time, ctx.now().astimezone(zone))
    except (FetchError, KeyError, IndexError, TypeError, ValueError) as e:
        logger.warning("Failed to fetch weather: %s", e)
        return ctx.cache.get_stale(key)

    ctx.cache.set(key, reading)
    return reading


def _n(value: float) -> str:
    return css_number(round(value, 2))


def weather_icon_svg(icon: str, size: float) -> str:
    """Inline SVG for a condition icon, drawn in ``currentColor``."""
    cx = cy = size / 2
    r = size * 0.3
    color = "currentColor"

    def ellipse(dx: float, dy: float, rx: float, ry: float) -> str:
        return (
            f'<ellipse cx="{_n(cx + dx)}" cy="{_n(cy + dy)}" rx="{_n(rx)}" ry="{_n(ry)}" fill="{color}"/>'
        )

    def rays(x: float, y: float, inner: float, outer: float, angles: range, width: float) -> str:
        lines = []
        for angle in angles:
            rad = math.radians(angle)
            lines.append(
                f'<line x1="{_n(x + math.cos(rad) * inner)}" y1="{_n(y + math.sin(rad) * inner)}"'
                f' x2="{_n(x + math.cos(rad) * outer)}" y2="{_n(y + math.sin(rad) * outer)}"'
                f' stroke="{color}" stroke-width="{_n(width)}"/>'
            )
        return "".join(lines)

    def cloud(dy: float) -> str:
        return (
            ellipse(-5, dy, r * 0.7, r * 0.5)
            + ellipse(6, dy, r * 0.6, r * 0.45)
            + ellipse(0, dy - 5, r * 0.85, r * 0.6)
        )

    if icon == "sun":
        body = f'<circle cx="{_n(cx)}" cy="{_n(cy)}" r="{_n(r)}" fill="{color}"/>'
        body += rays(cx, cy, r + 4, r + 10, range(0, 360, 45), 2)
    elif icon == "cloud":
        body = ellipse(-5, 5, r * 0.8, r * 0.6) + ellipse(8, 5, r * 0.7, r * 0.5) + ellipse(0, -2, r, r * 0.7)
    elif icon == "cloud-sun":
        body = f'<circle cx="{_n(cx + 10)}" cy="{_n(cy - 8)}" r="{_n(r * 0.5)}" fill="{color}"/>'
        body += rays(cx + 10, cy - 8, r * 0.5 + 3, r * 0.5 + 7, range(0, 360, 60), 1.5)
        body += ellipse(-5, 8, r * 0.7, r * 0.5) + ellipse(6, 8, r * 0.6, r * 0.45) + ellipse(0, 2, r * 0.85, r * 0.6)
    elif icon == "rain":
        body = cloud(-5)
        for dx in (-8, 0, 8):
            body += (
                f'<line x1="{_n(cx + dx)}" y1="{_n(cy + 5)}" x2="{_n(cx + dx - 4)}" y2="{_n(cy + 15)}"'
                f' stroke="{color}" stroke-width="2"/>'
            )
    elif icon == "drizzle":
        body = cloud(-5)
        for dx, dy in ((-6, 8), (2, 12), (8, 6)):
            body += f'<circle cx="{_n(cx + dx)}" cy="{_n(cy + dy)}" r="2" fill="{color}"/>'
    elif icon == "snow":
        body = cloud(-5)
        for dx, dy in ((-8, 12), (0, 16), (8, 10)):
            body += f'<text x="{_n(cx + dx)}" y="{_n(cy + dy)}" font-size="12" fill="{color}">*</text>'
    elif icon == "thunder":
        body = cloud(-8)
        points = ((-2, 0), (5, 0), (0, 8), (8, 8), (-3, 20), (0, 10), (-6, 10))
        path = " L ".join(f"{_n(cx + dx)} {_n(cy + dy)}" for dx, dy in points)
        body += f'<path d="M {path} Z" fill="{color}"/>'
    elif icon == "fog":
        body = "".join(
            f'<line x1="{_n(cx - half)}" y1="{_n(cy + dy)}" x2="{_n(cx + half)}" y2="{_n(cy + dy)}"'
            f' stroke="{color}" stroke-width="3" stroke-linecap="round"/>'
            for half, dy in ((15, -8), (12, 0), (15, 8))
        )
    else:
        body = f'<circle cx="{_n(cx)}" cy="{_n(cy)}" r="{_n(r)}" fill="none" stroke="{color}" stroke-width="2"/>'

    return f'<svg width="{_n(size)}" height="{_n(size)}" viewBox="0 0 {_n(size)} {_n(size)}">{body}</svg>'


def unavailable_html(location: str) -> str:
    return f'<div style="color: #666;">{escape(location)}<br>Weather unavailable</div>'


@register(WidgetKind.WEATHER)
async def generate_weather(
    widget: Widget, config: WeatherConfig, ctx: GeneratorContext
) -> RenderedFragment:
    style = "justify-content: center; padding: 8px;"
    reading = await fetch_weather(config, ctx)
    if reading is None:
        return fragment(widget, unavailable_html(config.location), style, degraded=True)

    imperial = config.units == "imperial"
    condition, icon = weather_condition(reading.weather_code)
    temperature = round_half_up(reading.temperature * 9 / 5 + 32) if imperial else reading.temperature
    wind = round_half_up(reading.wind_speed * 0.621) if imperial else reading.wind_speed
    temp_unit = "°F" if imperial else "°C"
    wind_unit = "mph" if imperial else "km/h"

    font_size = config.font_size
    icon_size = min(font_size * 1.5, 48)
    small = max(10, font_size * 0.4)

    html = '<div style="display: flex; flex-direction: column; align-items: center; gap: 4px;">'
    if config.show_day_name and config.forecast_day > 0:
        html += f'<div style="font-size: {px(small)}; color: #666;">{escape(reading.day_name)}</div>'

    html += '<div style="display: flex; align-items: center; gap: 8px;">'
    if config.show_icon:
        html += f'<div style="color: currentColor;">{weather_icon_svg(icon, icon_size)}</div>'
    html += '<div style="display: flex; flex-direction: column;">'
    if config.show_temperature:
        html += f'<div style="font-size: {px(font_size)}; font-weight: bold;">{temperature}{temp_unit}</div>'
    if config.show_condition:
        html += f'<div style="font-size: {px(small)}; color: #666;">{escape(condition)}</div>'
    html += "</div></div>"

    if config.show_humidity and reading.humidity is not None:
        html += f'<div style="font-size: {px(small)}; color: #888;">Humidity: {css_number(reading.humidity)}%</div>'
    if config.show_wind:
        html += f'<div style="font-size: {px(small)}; color: #888;">Wind: {wind} {wind_unit}</div>'
    if config.show_location:
        html += (
            f'<div style="font-size: {px(small * 0.9)}; color: #999; margin-top: 4px;">'
            f"{escape(config.location)}</div>"
        )
    html += "</div>"

    return fragment(widget, html, style)
