"""Local media capture and remote audio output.

Wraps aiortc's media helpers: ``MediaPlayer`` captures the local microphone
(or plays an audio file), ``MediaRecorder`` writes the remote audio to a file
and ``MediaBlackhole`` consumes it when no output is configured.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from aiortc.contrib.media import MediaBlackhole, MediaPlayer, MediaRecorder

from peer.config import MediaConfig

logger = logging.getLogger(__name__)


class MediaAcquisitionError(RuntimeError):
    """Raised when the local audio source cannot be opened."""


@dataclass
class LocalMedia:
    """Handle on acquired local media: the tracks to send and their source."""

    tracks: list[Any]
    source: Any = None
    _released: bool = field(default=False, repr=False)

    def release(self) -> None:
        """Stop all local tracks. Safe to call more than once."""
        if self._released:
            return
        self._released = True
        for track in self.tracks:
            try:
                track.stop()
            except Exception as e:
                logger.warning("Error stopping local track", extra={"error": str(e)})


class MediaSource(ABC):
    """Provider of local media handles."""

    @abstractmethod
    async def acquire(self) -> LocalMedia:
        """Open the local audio source.

        Raises:
            MediaAcquisitionError: If the device or file cannot be opened
        """
        pass


class AiortcMediaSource(MediaSource):
    """Audio capture through aiortc's ``MediaPlayer``."""

    def __init__(self, config: MediaConfig) -> None:
        self.config = config

    async def acquire(self) -> LocalMedia:
        try:
            player = MediaPlayer(
                self.config.audio_input,
                format=self.config.audio_format,
                options=self.config.audio_options or None,
            )
        except Exception as e:
            raise MediaAcquisitionError(
                f"Cannot open audio input '{self.config.audio_input}': {e}"
            ) from e

        if player.audio is None:
            raise MediaAcquisitionError(
                f"Audio input '{self.config.audio_input}' has no audio stream"
            )

        logger.info(
            "Local audio acquired",
            extra={"input": self.config.audio_input, "format": self.config.audio_format},
        )
        return LocalMedia(tracks=[player.audio], source=player)


class RemoteAudioOutput:
    """Sink for the remote peer's audio.

    Writes to ``record_to`` when set, otherwise consumes and discards frames.
    """

    def __init__(self, record_to: Path | None = None) -> None:
        self.record_to = record_to
        self._sink: MediaRecorder | MediaBlackhole | None = None

    @property
    def active(self) -> bool:
        return self._sink is not None

    async def attach(self, track: Any) -> None:
        """Start consuming a remote track."""
        if self._sink is not None:
            await self.clear()

        if self.record_to is not None:
            self._sink = MediaRecorder(str(self.record_to))
        else:
            self._sink = MediaBlackhole()

        self._sink.addTrack(track)
        await self._sink.start()
        logger.info(
            "Remote audio attached",
            extra={"output": str(self.record_to) if self.record_to else "discard"},
        )

    async def clear(self) -> None:
        """Stop the current sink, if any."""
        if self._sink is None:
            return

        sink, self._sink = self._sink, None
        try:
            await sink.stop()
        except Exception as e:
            logger.warning("Error stopping remote audio output", extra={"error": str(e)})
