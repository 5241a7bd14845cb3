"""Data models for screen designs and their widgets.

Widget configuration arrives as an open key/value map. ``config_for`` turns it
into the typed config model of the widget's kind with every default filled in.
Parsing is tolerant: unknown keys are kept and ignored, missing keys take
their default, and a value of the wrong type or out of range falls back to the
default instead of failing the render.
"""

from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidationInfo,
    ValidatorFunctionWrapHandler,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)


class RenderMode(str, Enum):
    """Which post-processing branch is applied to the scene raster."""

    DEVICE = "device"  # dither + invert, what the panel displays
    PREVIEW = "preview"  # raw full-colour raster
    EINK_PREVIEW = "einkPreview"  # dither only, device look on a normal screen

    @classmethod
    def parse(cls, value: Union[str, "RenderMode", bool, None]) -> "RenderMode":
        """Parse a mode, accepting the legacy boolean ``preview`` flag."""
        if isinstance(value, RenderMode):
            return value
        if value is None:
            return cls.DEVICE
        if isinstance(value, bool):
            return cls.PREVIEW if value else cls.DEVICE
        for mode in cls:
            if mode.value.lower() == str(value).strip().lower():
                return mode
        raise ValueError(f"Unknown render mode: {value!r}")


class WidgetKind(str, Enum):
    """Widget template kinds known to the renderer."""

    CLOCK = "clock"
    DATE = "date"
    TEXT = "text"
    WEATHER = "weather"
    QRCODE = "qrcode"
    BATTERY = "battery"
    WIFI = "wifi"
    DEVICE_INFO = "deviceinfo"
    IMAGE = "image"
    COUNTDOWN = "countdown"
    DAYS_UNTIL = "daysuntil"
    DIVIDER = "divider"
    RECTANGLE = "rectangle"
    GITHUB = "github"
    CUSTOM_WIDGET = "customWidget"


_KIND_ALIASES: dict[str, str] = {
    "daysuntil": WidgetKind.DAYS_UNTIL.value,
    "days-until": WidgetKind.DAYS_UNTIL.value,
    "customwidget": WidgetKind.CUSTOM_WIDGET.value,
    "custom-widget": WidgetKind.CUSTOM_WIDGET.value,
    "custom-widget-base": WidgetKind.CUSTOM_WIDGET.value,
    "device-info": WidgetKind.DEVICE_INFO.value,
    "qr": WidgetKind.QRCODE.value,
}


def normalize_kind(name: str) -> str:
    """Map template name spellings onto the canonical kind tag."""
    key = name.strip()
    lowered = key.lower()
    if lowered in _KIND_ALIASES:
        return _KIND_ALIASES[lowered]
    for kind in WidgetKind:
        if kind.value.lower() == lowered:
            return kind.value
    return key


class Widget(BaseModel):
    """One positioned widget on a screen design."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    id: Union[int, str] = 0
    template_kind: str = Field(..., alias="templateKind")
    x: float = 0
    y: float = 0
    width: float = Field(default=100, ge=0)
    height: float = Field(default=100, ge=0)
    rotation: float = 0
    z_index: int = Field(default=0, alias="zIndex")
    config: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _template_name_as_kind(cls, data: Any) -> Any:
        # Stored widgets carry their kind as template.name
        if isinstance(data, dict) and "templateKind" not in data and "template_kind" not in data:
            template = data.get("template")
            if isinstance(template, dict) and template.get("name"):
                data = {**data, "templateKind": template["name"]}
        return data

    @field_validator("template_kind")
    @classmethod
    def _normalize_kind(cls, value: str) -> str:
        return normalize_kind(value)

    @field_validator("config", mode="before")
    @classmethod
    def _none_config(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else {}

    @property
    def kind(self) -> Optional[WidgetKind]:
        """Known kind, or None for kinds this renderer does not implement."""
        try:
            return WidgetKind(self.template_kind)
        except ValueError:
            return None


class ScreenDesign(BaseModel):
    """Read-only snapshot of a design handed to the renderer."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    id: Union[int, str]
    name: str = ""
    width: int = Field(default=800, gt=0)
    height: int = Field(default=480, gt=0)
    background: str = "#ffffff"
    widgets: list[Widget] = Field(default_factory=list)
    captured_at: Optional[datetime] = Field(default=None, alias="capturedAt")

    @field_validator("background", mode="before")
    @classmethod
    def _default_background(cls, value: Any) -> Any:
        return value or "#ffffff"


class DeviceContext(BaseModel):
    """Live device data for battery/wifi/device-info widgets."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    battery: Optional[float] = None
    wifi: Optional[int] = None
    device_name: Optional[str] = None
    firmware_version: Optional[str] = None
    mac_address: Optional[str] = None

    @field_validator("battery")
    @classmethod
    def _clamp_battery(cls, value: Optional[float]) -> Optional[float]:
        if value is None:
            return None
        return min(100.0, max(0.0, value))


class RenderedFragment(BaseModel):
    """Content produced by one widget generator, placed by the composer."""

    widget_id: Union[int, str]
    kind: str
    html: str
    style: str = ""
    degraded: bool = False


class Placement(BaseModel):
    """Where a widget box ended up in the composed scene."""

    widget_id: Union[int, str]
    kind: str
    x: float
    y: float
    width: float
    height: float
    rotation: float = 0
    z_index: int = 0
    visible: bool = True


class Scene(BaseModel):
    """Fully composed document, ready for rasterization."""

    width: int
    height: int
    background: str
    html: str
    placements: list[Placement] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Per-kind configuration
# ---------------------------------------------------------------------------

TextAlign = Literal["left", "center", "right"]


class WidgetConfig(BaseModel):
    """Base for per-kind configs; invalid values fall back to defaults."""

    model_config = ConfigDict(extra="allow", populate_by_name=True, alias_generator=to_camel)

    opacity: float = Field(default=100, ge=0, le=100)

    @field_validator("*", mode="wrap")
    @classmethod
    def _fallback_to_default(
        cls, value: Any, handler: ValidatorFunctionWrapHandler, info: ValidationInfo
    ) -> Any:
        try:
            return handler(value)
        except ValidationError:
            field = cls.model_fields[info.field_name]
            logger.debug("Invalid %s=%r for %s, using default", info.field_name, value, cls.__name__)
            return field.get_default(call_default_factory=True)


class ClockConfig(WidgetConfig):
    format: Literal["24h", "12h"] = "24h"
    show_seconds: bool = False
    timezone: Optional[str] = "local"
    font_size: float = Field(default=48, gt=0)
    font_family: str = "monospace"
    text_align: TextAlign = "left"


class DateConfig(WidgetConfig):
    locale: str = "en-US"
    show_weekday: Optional[bool] = None
    show_day_of_week: Optional[bool] = None
    show_day: bool = True
    show_month: bool = True
    show_year: bool = True
    timezone: Optional[str] = ""
    font_size: float = Field(default=24, gt=0)
    font_family: str = "sans-serif"
    text_align: TextAlign = "center"

    @property
    def weekday(self) -> bool:
        if self.show_weekday is not None:
            return self.show_weekday
        return bool(self.show_day_of_week)


class TextConfig(WidgetConfig):
    text: str = "Text"
    font_size: float = Field(default=24, gt=0)
    font_family: str = "sans-serif"
    font_weight: Union[int, str] = "normal"
    color: str = "#000000"
    text_align: TextAlign = "left"


class DaysUntilConfig(WidgetConfig):
    target_date: str = "2025-12-25"
    label_prefix: str = "Days till Christmas: "
    label_suffix: str = ""
    font_size: float = Field(default=32, gt=0)
    font_family: str = "sans-serif"
    color: str = "#000000"


class CountdownConfig(WidgetConfig):
    target_date: str = "2025-12-31T23:59:59"
    label: str = ""
    show_days: bool = True
    show_hours: bool = True
    show_minutes: bool = True
    show_seconds: bool = True
    font_size: float = Field(default=32, gt=0)
    font_family: str = "monospace"


class WeatherConfig(WidgetConfig):
    location: str = "Unknown"
    latitude: float = Field(default=52.2297, ge=-90, le=90)
    longitude: float = Field(default=21.0122, ge=-180, le=180)
    units: Literal["metric", "imperial"] = "metric"
    forecast_day: int = Field(default=0, ge=0, le=15)
    forecast_time: str = "current"
    show_icon: bool = True
    show_temperature: bool = True
    show_condition: bool = True
    show_location: bool = True
    show_humidity: bool = False
    show_wind: bool = False
    show_day_name: bool = False
    font_size: float = Field(default=32, gt=0)


class QRCodeConfig(WidgetConfig):
    content: str = "https://example.com"
    size: Optional[int] = Field(default=None, gt=0)


class BatteryConfig(WidgetConfig):
    show_percentage: bool = False
    show_icon: bool = False
    font_size: float = Field(default=16, gt=0)


class WifiConfig(WidgetConfig):
    show_strength: bool = True
    show_icon: bool = True
    font_size: float = Field(default=16, gt=0)


class DeviceInfoConfig(WidgetConfig):
    show_name: bool = True
    show_firmware: bool = True
    show_mac: bool = False
    font_size: float = Field(default=14, gt=0)


class ImageConfig(WidgetConfig):
    url: str = ""
    image_url: str = ""
    fit: Literal["contain", "cover", "fill", "none", "scale-down"] = "contain"

    @property
    def source(self) -> str:
        return (self.url or self.image_url).strip()


class DividerConfig(WidgetConfig):
    orientation: Literal["horizontal", "vertical"] = "horizontal"
    thickness: float = Field(default=2, gt=0)
    color: str = "#000000"
    style: Literal["solid", "dashed", "dotted"] = "solid"


class RectangleConfig(WidgetConfig):
    background_color: Optional[str] = None
    fill_color: Optional[str] = None
    border_color: str = "#000000"
    border_width: float = Field(default=0, ge=0)
    border_radius: float = Field(default=0, ge=0)

    @property
    def fill(self) -> str:
        return self.background_color or self.fill_color or "#000000"


class GitHubConfig(WidgetConfig):
    owner: str = "facebook"
    repo: str = "react"
    show_icon: bool = True
    show_repo_name: bool = False
    font_size: float = Field(default=32, gt=0)
    font_family: str = "sans-serif"


class CustomWidgetConfig(WidgetConfig):
    custom_widget_id: Optional[Union[int, str]] = None
    font_size: float = Field(default=24, gt=0)
    font_family: str = "sans-serif"
    font_weight: Union[int, str] = "normal"
    text_align: TextAlign = "center"
    vertical_align: Literal["top", "middle", "bottom"] = "middle"
    color: str = "#000000"
    cell_overrides: dict[str, dict[str, Any]] = Field(default_factory=dict)


CONFIG_MODELS: dict[WidgetKind, type[WidgetConfig]] = {
    WidgetKind.CLOCK: ClockConfig,
    WidgetKind.DATE: DateConfig,
    WidgetKind.TEXT: TextConfig,
    WidgetKind.DAYS_UNTIL: DaysUntilConfig,
    WidgetKind.COUNTDOWN: CountdownConfig,
    WidgetKind.WEATHER: WeatherConfig,
    WidgetKind.QRCODE: QRCodeConfig,
    WidgetKind.BATTERY: BatteryConfig,
    WidgetKind.WIFI: WifiConfig,
    WidgetKind.DEVICE_INFO: DeviceInfoConfig,
    WidgetKind.IMAGE: ImageConfig,
    WidgetKind.DIVIDER: DividerConfig,
    WidgetKind.RECTANGLE: RectangleConfig,
    WidgetKind.GITHUB: GitHubConfig,
    WidgetKind.CUSTOM_WIDGET: CustomWidgetConfig,
}


def config_for(widget: Widget) -> WidgetConfig:
    """Return the typed, default-filled config for a widget.

    Unknown kinds get the bare ``WidgetConfig``.
    """
    kind = widget.kind
    model = CONFIG_MODELS.get(kind, WidgetConfig) if kind is not None else WidgetConfig
    return model.model_validate(widget.config)
