"""Módulo de audio: decodificación de clips, pista maestra y WAV."""

from .engine import AudioDecodeError, MasterAudioBuffer, MasterAudioSynthesizer, decode_clip
from .wav import WavHeader, encode_wav, read_wav_header, write_wav

__all__ = [
    "AudioDecodeError", "MasterAudioBuffer", "MasterAudioSynthesizer", "decode_clip",
    "WavHeader", "encode_wav", "read_wav_header", "write_wav",
]
