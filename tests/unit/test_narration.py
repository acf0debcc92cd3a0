"""Tests for narration decoding and playback control."""

import asyncio
import sys

import numpy as np
import pytest

from conftest import make_place
from locallens.common.events import EventBus
from locallens.config import Config
from locallens.narration import (
    NarrationController,
    NullPlayer,
    SoundDevicePlayer,
    create_player,
    decode_pcm16,
)
from locallens.remote.mock import MockService


class TestDecodePcm16:
    """Tests for PCM decoding."""

    def test_decode_little_endian(self):
        """Test known sample values map into [-1, 1)."""
        data = b"\x00\x00" + b"\xff\x7f" + b"\x00\x80" + b"\x00\x40"
        samples = decode_pcm16(data)

        assert samples.dtype == np.float32
        assert samples[0] == 0.0
        assert samples[1] == pytest.approx(32767 / 32768)
        assert samples[2] == -1.0
        assert samples[3] == 0.5
        assert samples.max() < 1.0

    def test_trailing_odd_byte_dropped(self):
        assert len(decode_pcm16(b"\x00\x40\x01")) == 1

    def test_empty(self):
        assert len(decode_pcm16(b"")) == 0

    def test_stereo_shape(self):
        samples = decode_pcm16(b"\x00\x40\x00\xc0" * 3, channels=2)
        assert samples.shape == (3, 2)
        assert samples[0, 0] == 0.5
        assert samples[0, 1] == -0.5


class BlockingPlayer(NullPlayer):
    """Player that holds playback open until released."""

    def __init__(self) -> None:
        super().__init__()
        self.release = asyncio.Event()

    async def play(self, samples, sample_rate=24000):
        await super().play(samples, sample_rate)
        await self.release.wait()


class SilentService(MockService):
    async def _request_speech(self, text):
        return None


class BrokenPlayer(NullPlayer):
    async def play(self, samples, sample_rate=24000):
        raise OSError("no output device")


class TestNarrationController:
    """Tests for NarrationController."""

    @pytest.mark.asyncio
    async def test_narrate_plays_description(self, mock_pcm_bytes):
        """Test that the description is synthesized and played once."""
        service = MockService()
        player = NullPlayer()
        controller = NarrationController(service, player)
        place = make_place()

        assert await controller.narrate(place) is True

        assert service.spoken == [place.description]
        assert len(player.played) == 1
        samples, rate = player.played[0]
        assert rate == 24000
        assert samples.dtype == np.float32
        assert controller.is_narrating is False

    @pytest.mark.asyncio
    async def test_narrating_flag_and_reentry_ignored(self):
        """Test that the flag spans playback and a second request is ignored."""
        player = BlockingPlayer()
        service = MockService()
        controller = NarrationController(service, player)

        first = asyncio.create_task(controller.narrate(make_place()))
        for _ in range(5):
            await asyncio.sleep(0)

        assert controller.is_narrating is True
        assert await controller.narrate(make_place()) is False
        assert len(service.spoken) == 1

        player.release.set()
        assert await first is True
        assert controller.is_narrating is False

    @pytest.mark.asyncio
    async def test_no_audio_clears_flag(self):
        controller = NarrationController(SilentService(), NullPlayer())
        assert await controller.narrate(make_place()) is False
        assert controller.is_narrating is False

    @pytest.mark.asyncio
    async def test_playback_failure_clears_flag(self):
        """Test that a playback error stops narration without raising."""
        controller = NarrationController(MockService(), BrokenPlayer())
        assert await controller.narrate(make_place()) is False
        assert controller.is_narrating is False

    @pytest.mark.asyncio
    async def test_events(self):
        bus = EventBus()
        controller = NarrationController(MockService(), NullPlayer(), event_bus=bus)

        await controller.narrate(make_place())
        await bus.drain()

        topics = [e.topic for e in reversed(bus.get_history("narration.*"))]
        assert topics == ["narration.started", "narration.finished"]

    @pytest.mark.asyncio
    async def test_missing_sounddevice_fails_playback(self, monkeypatch):
        """Test that a missing audio library is reported as a failed narration."""
        monkeypatch.setitem(sys.modules, "sounddevice", None)
        player = SoundDevicePlayer()

        with pytest.raises(RuntimeError):
            await player.play(decode_pcm16(b"\x00\x40"))

        controller = NarrationController(MockService(), player)
        assert await controller.narrate(make_place()) is False
        assert controller.is_narrating is False


class TestCreatePlayer:
    """Tests for player selection."""

    def test_mock_mode_uses_null_player(self):
        assert isinstance(create_player(Config(mock_mode=True)), NullPlayer)

    def test_sounddevice_player(self):
        config = Config()
        config.narration.player = "sounddevice"
        assert isinstance(create_player(config), SoundDevicePlayer)
