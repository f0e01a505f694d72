"""Módulo de video: compositor de frames, scheduler de reproducción y salidas de audio."""

from .compositor import FrameCompositor, clean_title, load_font, truncate_caption, wrap_text
from .playback import AudioOutput, FfplayAudioOutput, NullAudioOutput
from .scheduler import PlaybackScheduler, PlaybackState

__all__ = [
    "FrameCompositor", "clean_title", "load_font", "truncate_caption", "wrap_text",
    "AudioOutput", "FfplayAudioOutput", "NullAudioOutput",
    "PlaybackScheduler", "PlaybackState",
]
