import logging
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)

class PlaybackState(str, Enum):
    PAUSED = "paused"
    PLAYING = "playing"

class PlaybackController:
    """Play/pause toggle over a generated narration.

    ``player`` is whatever actually plays the audio; it needs ``play()``,
    ``pause()``, ``rewind()`` and an ``ended`` flag. The controller only reads
    ``audio_url`` and never frees it.
    """

    def __init__(self, player, audio_url: Optional[str] = None):
        self.player = player
        self.audio_url = audio_url
        self.state = PlaybackState.PAUSED

    @property
    def is_playing(self) -> bool:
        return self.state == PlaybackState.PLAYING

    def toggle(self) -> PlaybackState:
        if not self.audio_url:
            return self.state
        if self.state == PlaybackState.PLAYING:
            self.player.pause()
            self.state = PlaybackState.PAUSED
        else:
            # Start over if the last play ran to the end
            if self.player.ended:
                self.player.rewind()
            self.player.play()
            self.state = PlaybackState.PLAYING
        logger.debug(f"Playback {self.state.value} for {self.audio_url}")
        return self.state

    def on_ended(self) -> PlaybackState:
        self.state = PlaybackState.PAUSED
        return self.state
