"""JSON-file collaborators used by the CLI and the HTTP server.

Layout under the data directory::

    designs/<id>.json          screen designs (camelCase, as the editor saves them)
    custom_widgets/<id>.json   {"config": {...}, "content": <rendered content>}
    devices.json               [{"id", "name", "designId", "refreshPending"}, ...]

Writes go to a temporary file in the same directory and are moved into place,
so a reader never sees a half-written file.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
import re
import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import IO, Any, Optional

from pydantic import ValidationError

from inkscreen.core.exceptions import CustomWidgetNotFoundError, InkscreenError
from inkscreen.core.timezone_utils import now_utc
from inkscreen.domain.models import ScreenDesign
from inkscreen.protocols import DesignId

logger = logging.getLogger(__name__)

_SAFE_ID = re.compile(r"^[A-Za-z0-9_-]+$")


def _safe_id(value: DesignId) -> str:
    text = str(value)
    if not _SAFE_ID.match(text):
        raise ValueError(f"Invalid identifier: {text!r}")
    return text


def read_json(path: Path) -> Optional[Any]:
    """Read a JSON file; None if it does not exist."""
    try:
        with path.open("r", encoding="utf-8") as fh:
            return json.load(fh)
    except FileNotFoundError:
        return None


def _replace_atomic(path: Path, write: Callable[[IO[Any]], None], mode: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path: Optional[Path] = None
    encoding = None if "b" in mode else "utf-8"
    try:
        with tempfile.NamedTemporaryFile(mode, dir=path.parent, delete=False, encoding=encoding) as tf:
            tmp_path = Path(tf.name)
            write(tf)
            tf.flush()
            os.fsync(tf.fileno())
        tmp_path.replace(path)
    except OSError:
        if tmp_path is not None:
            with contextlib.suppress(OSError):
                tmp_path.unlink()
        raise


def write_json_atomic(path: Path, data: Any) -> None:
    """Write JSON to a temporary file in the same directory, then replace."""
    _replace_atomic(path, lambda fh: json.dump(data, fh, ensure_ascii=False, indent=2), "w")


def write_bytes_atomic(path: Path, data: bytes) -> None:
    """Binary counterpart of ``write_json_atomic`` for PNG captures and drawings."""
    _replace_atomic(path, lambda fh: fh.write(data), "wb")


class DesignLocks:
    """One ``asyncio.Lock`` per design id, created on first use.

    Held across a whole load-modify-save so concurrent changes to the same
    design are applied one after the other.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def __call__(self, design_id: DesignId) -> asyncio.Lock:
        key = str(design_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock


class JsonDesignStore:
    """Design store reading ``<data_dir>/designs/<id>.json``."""

    def __init__(self, data_dir: Path):
        self.directory = Path(data_dir) / "designs"
        self._lock = asyncio.Lock()
        self.design_lock = DesignLocks()

    def path_for(self, design_id: DesignId) -> Path:
        return self.directory / f"{_safe_id(design_id)}.json"

    async def get_design(self, design_id: DesignId) -> Optional[ScreenDesign]:
        try:
            path = self.path_for(design_id)
        except ValueError:
            return None

        data = await asyncio.to_thread(read_json, path)
        if data is None:
            return None
        try:
            return ScreenDesign.model_validate(data)
        except ValidationError as e:
            raise InkscreenError(f"Design file {path} is invalid: {e}") from e

    async def save_design(self, design: ScreenDesign) -> None:
        path = self.path_for(design.id)
        data = design.model_dump(mode="json", by_alias=True)
        async with self._lock:
            await asyncio.to_thread(write_json_atomic, path, data)
        logger.debug("Saved screen design %s to %s", design.id, path)

    async def touch_capture_timestamp(self, design_id: DesignId) -> None:
        async with self.design_lock(design_id):
            design = await self.get_design(design_id)
            if design is None:
                return
            await self.save_design(design.model_copy(update={"captured_at": now_utc()}))


class InMemoryDesignStore:
    """Design store over a dict; used for one-off CLI renders and tests."""

    def __init__(self, designs: Optional[list[ScreenDesign]] = None):
        self.designs: dict[str, ScreenDesign] = {str(d.id): d for d in designs or []}
        self.design_lock = DesignLocks()

    async def get_design(self, design_id: DesignId) -> Optional[ScreenDesign]:
        return self.designs.get(str(design_id))

    async def save_design(self, design: ScreenDesign) -> None:
        self.designs[str(design.id)] = design

    async def touch_capture_timestamp(self, design_id: DesignId) -> None:
        design = self.designs.get(str(design_id))
        if design is not None:
            self.designs[str(design_id)] = design.model_copy(update={"captured_at": now_utc()})


class FileCustomWidgetResolver:
    """Custom widget resolver reading ``<data_dir>/custom_widgets/<id>.json``.

    Each file holds content that an external job already evaluated.
    """

    def __init__(self, data_dir: Path):
        self.directory = Path(data_dir) / "custom_widgets"

    async def get_rendered_content(self, custom_widget_id: DesignId) -> tuple[dict[str, Any], Any]:
        try:
            path = self.directory / f"{_safe_id(custom_widget_id)}.json"
        except ValueError as e:
            raise CustomWidgetNotFoundError(custom_widget_id) from e

        data = await asyncio.to_thread(read_json, path)
        if not isinstance(data, dict):
            raise CustomWidgetNotFoundError(custom_widget_id)

        config = data.get("config")
        return (config if isinstance(config, dict) else {}), data.get("content")


class EnvSettingsProvider:
    """Settings provider holding the token from configuration."""

    def __init__(self, github_token: Optional[str] = None):
        self.github_token = github_token

    async def get_github_token(self) -> Optional[str]:
        return self.github_token or None


class JsonDeviceNotifier:
    """Marks devices in ``<data_dir>/devices.json`` for refresh."""

    def __init__(self, data_dir: Path):
        self.path = Path(data_dir) / "devices.json"
        self._lock = asyncio.Lock()

    async def notify(self, design_id: DesignId) -> int:
        async with self._lock:
            devices = await asyncio.to_thread(read_json, self.path)
            if not isinstance(devices, list):
                logger.debug("No device registry at %s", self.path)
                return 0

            affected = 0
            for device in devices:
                if isinstance(device, dict) and str(device.get("designId")) == str(design_id):
                    device["refreshPending"] = True
                    affected += 1

            if affected:
                await asyncio.to_thread(write_json_atomic, self.path, devices)

        logger.info("Flagged %d device(s) for refresh after change to screen design %s", affected, design_id)
        return affected
