"""Audio capture, analysis and playback."""

from .analysis import AudioAnalyser
from .capture import Microphone
from .encoder import WavEncoder, encode_wav
from .monitor import AudioLevelMonitor
from .playback import AudioPlayer, PlaybackController, PlaybackResource

__all__ = [
    "AudioAnalyser",
    "Microphone",
    "WavEncoder",
    "encode_wav",
    "AudioLevelMonitor",
    "AudioPlayer",
    "PlaybackController",
    "PlaybackResource",
]
