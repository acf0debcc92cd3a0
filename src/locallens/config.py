"""Configuration management for LocalLens."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DeviceConfig(BaseModel):
    """Device configuration."""

    name: str = "locallens"
    mode: Literal["production", "development"] = "development"
    log_level: str = "INFO"


class CameraConfig(BaseModel):
    """Frame source configuration."""

    source: Literal["mock", "images", "picamera"] = "mock"
    image_dir: str | None = None
    resolution: list[int] = [1280, 720]
    fps: int = 5
    quality: int = 80


class LocationConfig(BaseModel):
    """Location source configuration."""

    source: Literal["mock", "static"] = "mock"
    latitude: float = 40.7527
    longitude: float = -73.9772
    interval_seconds: float = 1.0
    jitter_m: float = 5.0


class SchedulerConfig(BaseModel):
    """Recognition cadence configuration."""

    tick_interval_ms: int = 2000
    dwell_interval_ms: int = 6000
    attempt_timeout_seconds: float = 15.0


class BootConfig(BaseModel):
    """Boot ramp pacing."""

    step_percent: int = 5
    tick_ms: int = 40


class RemoteConfig(BaseModel):
    """Remote recognition service configuration."""

    provider: Literal["gemini", "openai", "mock"] = "gemini"
    api_key: str | None = None
    acceptance_threshold: float = 0.85
    # Unset models and voice fall back to the provider's defaults
    recognition_model: str | None = None
    narration_model: str | None = None
    inquiry_model: str | None = None
    voice: str | None = None
    openai_endpoint: str = "https://api.openai.com/v1"
    timeout_seconds: int = 30


class NarrationConfig(BaseModel):
    """Narration playback configuration."""

    player: Literal["sounddevice", "null"] = "sounddevice"
    sample_rate: int = 24000
    channels: int = 1


class InquiryConfig(BaseModel):
    """Landmark Q&A configuration."""

    fallback_message: str = (
        "The local sensor network is experiencing interference. Try again shortly."
    )
    empty_answer_message: str = "I'm sorry, I couldn't find specific details on that."


class RadarNode(BaseModel):
    """Catalog entry for the spatial radar."""

    name: str
    category: str
    distance_m: float | None = None
    bearing_deg: float | None = None
    latitude: float | None = None
    longitude: float | None = None


def _default_radar_nodes() -> list[RadarNode]:
    return [
        RadarNode(name="Grand Central", category="Transport", distance_m=120, bearing_deg=45),
        RadarNode(name="Chrysler Building", category="Landmark", distance_m=340, bearing_deg=120),
        RadarNode(name="Bryant Park", category="Park", distance_m=450, bearing_deg=210),
        RadarNode(name="Public Library", category="Culture", distance_m=520, bearing_deg=280),
    ]


class RadarConfig(BaseModel):
    """Spatial radar configuration."""

    discovery_delay_ms: int = 800
    nodes: list[RadarNode] = Field(default_factory=_default_radar_nodes)


class Config(BaseSettings):
    """Main configuration for LocalLens."""

    model_config = SettingsConfigDict(
        env_prefix="LOCALLENS_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    device: DeviceConfig = Field(default_factory=DeviceConfig)
    camera: CameraConfig = Field(default_factory=CameraConfig)
    location: LocationConfig = Field(default_factory=LocationConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    boot: BootConfig = Field(default_factory=BootConfig)
    remote: RemoteConfig = Field(default_factory=RemoteConfig)
    narration: NarrationConfig = Field(default_factory=NarrationConfig)
    inquiry: InquiryConfig = Field(default_factory=InquiryConfig)
    radar: RadarConfig = Field(default_factory=RadarConfig)

    # Mock mode for development
    mock_mode: bool = False

    @classmethod
    def from_yaml(cls, path: Path | str) -> Config:
        """Load configuration from YAML file."""
        path = Path(path)
        if not path.exists():
            return cls()

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)

    def to_yaml(self, path: Path | str) -> None:
        """Save configuration to YAML file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            yaml.dump(self.model_dump(), f, default_flow_style=False)


def load_config(
    config_path: Path | str | None = None,
    env_override: bool = True,
) -> Config:
    """Load configuration from file and environment.

    Args:
        config_path: Path to config file. If None, searches standard locations.
        env_override: Whether to allow environment variables to override config.

    Returns:
        Loaded configuration.
    """
    search_paths = [
        Path("/etc/locallens/config.yaml"),
        Path.home() / ".config" / "locallens" / "config.yaml",
        Path("config.yaml"),
        Path("configs/locallens.yaml"),
    ]

    if config_path:
        search_paths.insert(0, Path(config_path))

    config_file: Path | None = None
    for path in search_paths:
        if path.exists():
            config_file = path
            break

    if config_file:
        config = Config.from_yaml(config_file)
    else:
        config = Config()

    if env_override:
        # Remote service key, falling back to the provider's own variables
        api_key = (
            os.environ.get("LOCALLENS_API_KEY")
            or os.environ.get("GEMINI_API_KEY")
            or os.environ.get("GOOGLE_API_KEY")
        )
        if api_key:
            config.remote.api_key = api_key

        if os.environ.get("LOCALLENS_MOCK_MODE", "").lower() in ("1", "true", "yes"):
            config.mock_mode = True

    return config
