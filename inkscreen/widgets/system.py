"""Battery, WiFi and device info widgets.

These read the optional ``DeviceContext`` of the render. When a device is
rendering but did not report a field, the field shows a fixed placeholder.
Renders without any device (editor previews) show sample values.
"""

from __future__ import annotations

from typing import Optional

from inkscreen.domain.models import (
    BatteryConfig,
    DeviceInfoConfig,
    RenderedFragment,
    WifiConfig,
    Widget,
    WidgetKind,
)
from inkscreen.rendering.eink import round_half_up
from inkscreen.widgets.base import GeneratorContext, fragment, register
from inkscreen.widgets.html import css_number, escape, px

SAMPLE_BATTERY = 85
SAMPLE_WIFI_DBM = -55

DEFAULT_DEVICE_NAME = "TRMNL Device"
DEFAULT_FIRMWARE = "v1.0.0"
DEFAULT_MAC = "AA:BB:CC:DD:EE:FF"

WIFI_ICON = (
    '<svg width="24" height="24" viewBox="0 0 24 24" fill="none" stroke="currentColor"'
    ' stroke-width="2" stroke-linecap="round" stroke-linejoin="round">'
    '<path d="M8.111 16.404a5.5 5.5 0 017.778 0" />'
    '<path d="M12 20h.01" />'
    '<path d="M4.93 13.071c3.904-3.905 10.236-3.905 14.141 0" />'
    '<path d="M1.394 9.393c5.857-5.857 15.355-5.857 21.213 0" />'
    "</svg>"
)


def battery_level(ctx: GeneratorContext) -> Optional[float]:
    if ctx.device is None:
        return SAMPLE_BATTERY
    return ctx.device.battery


def wifi_level(ctx: GeneratorContext) -> Optional[int]:
    if ctx.device is None:
        return SAMPLE_WIFI_DBM
    return ctx.device.wifi


def battery_icon(level: Optional[float]) -> str:
    fill_width = round_half_up(level / 100 * 14) if level is not None else 0
    return (
        '<svg width="24" height="24" viewBox="0 0 24 24" fill="none" stroke="currentColor" stroke-width="2">'
        '<rect x="1" y="6" width="18" height="12" rx="2" />'
        '<rect x="19" y="9" width="4" height="6" rx="1" />'
        f'<rect x="3" y="8" width="{fill_width}" height="8" fill="currentColor" rx="1" />'
        "</svg>"
    )


@register(WidgetKind.BATTERY)
async def generate_battery(
    widget: Widget, config: BatteryConfig, ctx: GeneratorContext
) -> RenderedFragment:
    level = battery_level(ctx)

    html = '<div style="display: flex; align-items: center; gap: 8px;">'
    if config.show_icon:
        html += battery_icon(level)
    if config.show_percentage:
        label = f"{css_number(level)}%" if level is not None else "--%"
        html += f"<span>{label}</span>"
    html += "</div>"

    return fragment(widget, html, f"font-size: {px(config.font_size)}; justify-content: center;")


@register(WidgetKind.WIFI)
async def generate_wifi(
    widget: Widget, config: WifiConfig, ctx: GeneratorContext
) -> RenderedFragment:
    level = wifi_level(ctx)

    html = '<div style="display: flex; align-items: center; gap: 8px;">'
    if config.show_icon:
        html += WIFI_ICON
    if config.show_strength:
        label = f"{level} dBm" if level is not None else "-- dBm"
        html += f"<span>{label}</span>"
    html += "</div>"

    return fragment(widget, html, f"font-size: {px(config.font_size)}; justify-content: center;")


@register(WidgetKind.DEVICE_INFO)
async def generate_device_info(
    widget: Widget, config: DeviceInfoConfig, ctx: GeneratorContext
) -> RenderedFragment:
    device = ctx.device
    name = (device.device_name if device else None) or DEFAULT_DEVICE_NAME
    firmware = (device.firmware_version if device else None) or DEFAULT_FIRMWARE
    mac = (device.mac_address if device else None) or DEFAULT_MAC

    html = '<div style="display: flex; flex-direction: column; align-items: center; gap: 4px;">'
    if config.show_name:
        html += f'<div style="font-weight: bold;">{escape(name)}</div>'
    if config.show_firmware:
        html += f'<div style="color: #666;">Firmware: {escape(firmware)}</div>'
    if config.show_mac:
        html += f'<div style="color: #888; font-size: 12px;">{escape(mac)}</div>'
    html += "</div>"

    return fragment(widget, html, f"font-size: {px(config.font_size)}; justify-content: center;")
