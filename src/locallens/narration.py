"""Narrated audio for a recognized place."""

from __future__ import annotations

import asyncio

import numpy as np

from locallens.common.events import EventBus
from locallens.common.logging import get_logger
from locallens.config import Config
from locallens.models import PlaceInfo
from locallens.remote.base import NarrationClient

SAMPLE_RATE = 24000


def decode_pcm16(data: bytes, channels: int = 1) -> np.ndarray:
    """Decode little-endian signed 16-bit PCM into float32 samples in [-1, 1).

    A trailing odd byte is dropped. Multi-channel input is returned with
    shape ``(frames, channels)``.
    """
    usable = len(data) - (len(data) % 2)
    samples = np.frombuffer(data[:usable], dtype="<i2").astype(np.float32) / 32768.0
    if channels > 1:
        frames = len(samples) // channels
        samples = samples[: frames * channels].reshape(frames, channels)
    return samples


class AudioPlayer:
    """Abstract playback sink."""

    async def play(self, samples: np.ndarray, sample_rate: int = SAMPLE_RATE) -> None:
        """Play samples once and return when playback has finished."""
        raise NotImplementedError

    async def stop(self) -> None:
        """Stop any playback in progress."""
        pass


class NullPlayer(AudioPlayer):
    """Discards audio. Keeps what it was given for inspection."""

    def __init__(self) -> None:
        self.played: list[tuple[np.ndarray, int]] = []

    async def play(self, samples: np.ndarray, sample_rate: int = SAMPLE_RATE) -> None:
        self.played.append((samples, sample_rate))


class SoundDevicePlayer(AudioPlayer):
    """Plays through the default output device with sounddevice."""

    def __init__(self) -> None:
        self.logger = get_logger("sounddevice_player")

    async def play(self, samples: np.ndarray, sample_rate: int = SAMPLE_RATE) -> None:
        try:
            import sounddevice as sd
        except ImportError as e:
            self.logger.error("sounddevice_not_available")
            raise RuntimeError("sounddevice is not installed (install the audio extra)") from e

        def _play() -> None:
            sd.play(samples, sample_rate)
            sd.wait()

        await asyncio.to_thread(_play)

    async def stop(self) -> None:
        try:
            import sounddevice as sd
        except ImportError:
            return
        sd.stop()


def create_player(config: Config) -> AudioPlayer:
    if config.mock_mode or config.narration.player == "null":
        return NullPlayer()
    return SoundDevicePlayer()


class NarrationController:
    """Requests speech for a place description and plays it once."""

    def __init__(
        self,
        client: NarrationClient,
        player: AudioPlayer,
        event_bus: EventBus | None = None,
        sample_rate: int = SAMPLE_RATE,
        channels: int = 1,
    ) -> None:
        self.client = client
        self.player = player
        self.event_bus = event_bus
        self.sample_rate = sample_rate
        self.channels = channels
        self._narrating = False
        self.logger = get_logger("narration")

    @property
    def is_narrating(self) -> bool:
        return self._narrating

    async def narrate(self, place: PlaceInfo) -> bool:
        """Narrate ``place.description``.

        Returns:
            True if audio was played, False if ignored or nothing was played.
        """
        if self._narrating:
            return False

        self._narrating = True
        self._emit("narration.started", place_id=place.id)
        try:
            audio = await self.client.synthesize(place.description)
            if not audio:
                self.logger.warning("narration_no_audio", place=place.name)
                return False

            samples = decode_pcm16(audio, self.channels)
            self.logger.info(
                "narration_playing",
                place=place.name,
                seconds=round(len(samples) / self.sample_rate, 2),
            )
            await self.player.play(samples, self.sample_rate)
            return True
        except Exception as e:
            self.logger.error("narration_failed", place=place.name, error=str(e))
            return False
        finally:
            self._narrating = False
            self._emit("narration.finished", place_id=place.id)

    async def stop(self) -> None:
        await self.player.stop()

    def _emit(self, topic: str, **data) -> None:
        if self.event_bus:
            self.event_bus.emit(topic, source="narration", **data)
