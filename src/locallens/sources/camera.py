"""Frame sources: produce an encoded still on demand from a capture device."""

from __future__ import annotations

import asyncio
import io
import time
from pathlib import Path
from typing import Any

from PIL import Image

from locallens.common.logging import get_logger
from locallens.config import Config
from locallens.errors import SourceUnavailableError
from locallens.models import EncodedImage

IMAGE_SUFFIXES = {".jpg", ".jpeg", ".png", ".webp", ".bmp"}


def encode_jpeg(img: Image.Image, quality: int = 80) -> EncodedImage:
    """Encode a PIL image as a JPEG frame."""
    if img.mode != "RGB":
        img = img.convert("RGB")
    buffer = io.BytesIO()
    img.save(buffer, format="JPEG", quality=quality)
    return EncodedImage(
        data=buffer.getvalue(),
        mime_type="image/jpeg",
        width=img.width,
        height=img.height,
        captured_at=time.time(),
    )


class FrameSource:
    """Abstract frame source.

    ``capture_frame`` is synchronous and must not block: it returns ``None``
    while the device is not active or has not produced a frame yet.
    Acquire the device with ``async with source:``; leaving the block
    releases it.
    """

    async def setup(self) -> None:
        """Acquire the capture device."""
        pass

    async def teardown(self) -> None:
        """Release the capture device."""
        pass

    def capture_frame(self) -> EncodedImage | None:
        raise NotImplementedError

    def get_status(self) -> dict:
        raise NotImplementedError

    async def __aenter__(self) -> FrameSource:
        await self.setup()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.teardown()


class MockFrameSource(FrameSource):
    """Synthetic frames for development and tests."""

    def __init__(
        self,
        size: tuple[int, int] = (640, 480),
        quality: int = 80,
        available: bool = True,
    ) -> None:
        self.size = size
        self.quality = quality
        self.available = available
        self._active = False
        self._frame_count = 0

    async def setup(self) -> None:
        self._active = self.available

    async def teardown(self) -> None:
        self._active = False

    def capture_frame(self) -> EncodedImage | None:
        if not self._active:
            return None
        self._frame_count += 1
        shade = (self._frame_count * 17) % 64
        img = Image.new("RGB", self.size, color=(73 + shade, 109, 137))
        return encode_jpeg(img, self.quality)

    def get_status(self) -> dict:
        return {
            "source": "mock",
            "available": self.available,
            "active": self._active,
            "frames_captured": self._frame_count,
        }


class ImageFolderFrameSource(FrameSource):
    """Replays still images from a file or directory, one per capture."""

    def __init__(self, path: Path | str, quality: int = 80) -> None:
        self.path = Path(path)
        self.quality = quality
        self._files: list[Path] = []
        self._index = 0
        self._active = False
        self.logger = get_logger("image_folder_source", path=str(self.path))

    async def setup(self) -> None:
        if self.path.is_dir():
            self._files = sorted(
                p for p in self.path.iterdir() if p.suffix.lower() in IMAGE_SUFFIXES
            )
        elif self.path.is_file():
            self._files = [self.path]
        else:
            self._files = []

        if not self._files:
            self.logger.warning("no_images_found")
        self._index = 0
        self._active = True

    async def teardown(self) -> None:
        self._active = False

    def capture_frame(self) -> EncodedImage | None:
        if not self._active or not self._files:
            return None

        path = self._files[self._index % len(self._files)]
        self._index += 1
        try:
            with Image.open(path) as img:
                return encode_jpeg(img, self.quality)
        except OSError as e:
            self.logger.warning("image_unreadable", file=str(path), error=str(e))
            return None

    def get_status(self) -> dict:
        return {
            "source": "images",
            "available": bool(self._files),
            "active": self._active,
            "images": len(self._files),
        }


class PiCameraFrameSource(FrameSource):
    """Raspberry Pi camera using picamera2.

    A background task keeps the most recent frame encoded so that
    ``capture_frame`` only hands out what is already there.
    """

    def __init__(self, config: Config) -> None:
        self.config = config
        self._camera = None
        self._latest: EncodedImage | None = None
        self._task: asyncio.Task | None = None
        self._available = False
        self.logger = get_logger("pi_camera_source")

    async def setup(self) -> None:
        try:
            from picamera2 import Picamera2

            self._camera = Picamera2()
            camera_config = self._camera.create_still_configuration(
                main={"size": tuple(self.config.camera.resolution)}
            )
            self._camera.configure(camera_config)
            self._camera.start()

            self._available = True
            self._task = asyncio.create_task(self._capture_loop())
            self.logger.info("pi_camera_initialized")

        except ImportError:
            self.logger.warning("picamera2_not_available")
            self._available = False
        except Exception as e:
            self.logger.exception("pi_camera_setup_failed", error=str(e))
            self._available = False

    async def teardown(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        if self._camera:
            self._camera.stop()
            self._camera.close()
            self._camera = None

        self._latest = None
        self._available = False

    async def _capture_loop(self) -> None:
        interval = 1.0 / max(self.config.camera.fps, 1)
        loop = asyncio.get_running_loop()

        while self._camera is not None:
            try:
                array = await loop.run_in_executor(None, self._camera.capture_array)
                img = Image.fromarray(array)
                self._latest = await loop.run_in_executor(
                    None, encode_jpeg, img, self.config.camera.quality
                )
            except Exception as e:
                self.logger.warning("pi_camera_capture_failed", error=str(e))
            await asyncio.sleep(interval)

    def capture_frame(self) -> EncodedImage | None:
        return self._latest

    def get_status(self) -> dict:
        return {
            "source": "picamera",
            "available": self._available,
            "active": self._task is not None,
            "resolution": self.config.camera.resolution,
        }


def create_frame_source(config: Config, image_dir: str | None = None) -> FrameSource:
    """Build the frame source selected by configuration."""
    source = "images" if image_dir else config.camera.source
    if config.mock_mode and source == "picamera":
        source = "mock"

    if source == "images":
        path = image_dir or config.camera.image_dir
        if not path:
            raise SourceUnavailableError("camera.image_dir must be set for the images source")
        return ImageFolderFrameSource(path, quality=config.camera.quality)
    if source == "picamera":
        return PiCameraFrameSource(config)
    return MockFrameSource(quality=config.camera.quality)
