"""Capture and location sources."""

from locallens.sources.camera import (
    FrameSource,
    ImageFolderFrameSource,
    MockFrameSource,
    PiCameraFrameSource,
    create_frame_source,
)
from locallens.sources.location import (
    LocationSource,
    LocationTracker,
    MockLocationSource,
    StaticLocationSource,
    create_location_source,
)

__all__ = [
    "FrameSource",
    "ImageFolderFrameSource",
    "MockFrameSource",
    "PiCameraFrameSource",
    "create_frame_source",
    "LocationSource",
    "LocationTracker",
    "MockLocationSource",
    "StaticLocationSource",
    "create_location_source",
]
