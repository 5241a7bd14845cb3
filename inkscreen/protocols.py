"""Protocol definitions for the renderer's external collaborators.

Persistence, custom widget evaluation, settings and device notification live
outside this package. These Protocols are the contracts the render service
relies on; ``inkscreen.stores`` provides file-backed defaults.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional, Protocol, Union

if TYPE_CHECKING:
    import asyncio

    from PIL import Image

    from inkscreen.domain.models import ScreenDesign, Scene

DesignId = Union[int, str]


class DesignStore(Protocol):
    """Protocol for screen design persistence."""

    async def get_design(self, design_id: DesignId) -> Optional[ScreenDesign]:
        """Load a design snapshot.

        Args:
            design_id: Design identifier

        Returns:
            The design, or None if it does not exist
        """
        ...

    async def save_design(self, design: ScreenDesign) -> None:
        """Persist a design, replacing any previous version."""
        ...

    async def touch_capture_timestamp(self, design_id: DesignId) -> None:
        """Record that a device capture was just made."""
        ...

    def design_lock(self, design_id: DesignId) -> asyncio.Lock:
        """Lock held across every load-modify-save of one design."""
        ...


class CustomWidgetResolver(Protocol):
    """Protocol for evaluating user-defined custom widgets."""

    async def get_rendered_content(self, custom_widget_id: DesignId) -> tuple[dict[str, Any], Any]:
        """Evaluate a custom widget.

        Args:
            custom_widget_id: Custom widget identifier

        Returns:
            (widget_config, rendered_content) where content is a string, a
            list, a ``{label|title, value}`` object or a grid descriptor

        Raises:
            CustomWidgetNotFoundError: If the id is unknown
        """
        ...


class SettingsProvider(Protocol):
    """Protocol for runtime settings stored outside the environment."""

    async def get_github_token(self) -> Optional[str]:
        """Return the configured GitHub API token, if any."""
        ...


class DeviceNotifier(Protocol):
    """Protocol for telling devices that their screen changed."""

    async def notify(self, design_id: DesignId) -> int:
        """Flag devices showing a design for refresh.

        Returns:
            Number of devices affected
        """
        ...


class RasterEngine(Protocol):
    """Protocol for anything that can turn a scene into pixels."""

    async def rasterize(self, scene: Scene, width: int, height: int) -> Image.Image:
        """Capture the scene as an RGBA image of exactly width x height.

        Raises:
            CaptureError: If capture fails
        """
        ...
