"""Exception hierarchy for the rendering pipeline.

Only two kinds of failure ever reach a caller of the render service: a missing
input (design or custom widget not found), raised before any rendering work
starts, and a capture failure of the headless engine. Widget-level failures
are recovered inside the widget generators and never appear here.
"""


class InkscreenError(Exception):
    """Base exception for all inkscreen errors.

    Catch this at process boundaries (HTTP handlers, CLI) to map any
    inkscreen failure onto a response or exit code.
    """


class RenderError(InkscreenError):
    """The render of a whole screen failed.

    Callers may retry. Never raised for a single widget that failed to
    produce content; those degrade to a placeholder.
    """


class CaptureError(RenderError):
    """The headless rendering engine could not produce a raster.

    Raised when:
    - The browser process crashed or disconnected mid-capture
    - Loading the scene or taking the screenshot timed out
    - The captured raster could not be decoded

    Should result in HTTP 502 Bad Gateway response.
    """


class NotFoundError(InkscreenError):
    """A referenced input does not exist.

    Raised before any fetch or browser work begins.

    Should result in HTTP 404 Not Found response.
    """


class DesignNotFoundError(NotFoundError):
    """The requested screen design does not exist."""

    def __init__(self, design_id: object):
        super().__init__(f"Screen design not found: {design_id}")
        self.design_id = design_id


class CustomWidgetNotFoundError(NotFoundError):
    """A custom widget referenced by the design does not exist."""

    def __init__(self, custom_widget_id: object):
        super().__init__(f"Custom widget not found: {custom_widget_id}")
        self.custom_widget_id = custom_widget_id


class ImageLoadError(InkscreenError):
    """A widget image could not be loaded or decoded.

    Always recovered inside the widget that requested the image.
    """

    def __init__(self, message: str, not_found: bool = False):
        super().__init__(message)
        self.not_found = not_found


class ImageProcessingError(InkscreenError):
    """An uploaded image could not be decoded or processed.

    Should result in HTTP 400 Bad Request response.
    """


class ConfigurationError(InkscreenError):
    """Configuration is missing or invalid in a way that prevents startup."""
