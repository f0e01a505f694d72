"""
Motor de Audio
Decodifica los clips de narración y los compone en UNA pista maestra
alineada a la línea de tiempo (render offline, sin dispositivo de audio).
"""
import asyncio
import logging
import math
import threading
from dataclasses import dataclass
from io import BytesIO
from typing import Mapping, Optional, Union

import imageio_ffmpeg
import numpy as np
from pydub import AudioSegment
from pydub.exceptions import CouldntDecodeError

from ..domain.models import PCMClip, ResolvedAsset, AudioClip, is_silence
from ..domain.timeline import Timeline
from .wav import encode_wav

logger = logging.getLogger(__name__)

_converter_ready = False


class AudioDecodeError(Exception):
    """El audio recibido del TTS no se pudo decodificar."""


def _ensure_converter() -> None:
    """pydub usa el ffmpeg empaquetado por imageio-ffmpeg (no depende del PATH)."""
    global _converter_ready
    if not _converter_ready:
        AudioSegment.converter = imageio_ffmpeg.get_ffmpeg_exe()
        _converter_ready = True


def decode_clip(data: bytes, sample_rate: int) -> PCMClip:
    """
    Decodifica audio (mp3/wav) a PCM mono float32 a la tasa de la sesión.

    Raises:
        AudioDecodeError: si los bytes no son audio válido
    """
    if not data:
        raise AudioDecodeError("Audio vacío")

    fmt = "wav" if data[:4] == b"RIFF" else "mp3"
    # Con codec explícito pydub no invoca ffprobe (imageio-ffmpeg no lo incluye)
    codec = None if fmt == "wav" else "mp3"
    _ensure_converter()
    try:
        segment = AudioSegment.from_file(BytesIO(data), format=fmt, codec=codec)
    except (CouldntDecodeError, IndexError, OSError) as e:
        raise AudioDecodeError(f"No se pudo decodificar {fmt}: {e}") from e

    segment = segment.set_channels(1).set_frame_rate(sample_rate)
    scale = float(1 << (8 * segment.sample_width - 1))
    samples = np.array(segment.get_array_of_samples(), dtype=np.float32) / scale
    return PCMClip(samples=samples, sample_rate=sample_rate)


@dataclass(frozen=True)
class MasterAudioBuffer:
    """
    Pista maestra mono. Derivada y recomputable: sus muestras son de solo lectura.

    Largo = ceil((content_duration + tail_padding) * sample_rate).
    """
    samples: np.ndarray
    sample_rate: int
    content_duration: float
    tail_padding: float = 0.0

    def __post_init__(self):
        self.samples.setflags(write=False)

    def __len__(self) -> int:
        return len(self.samples)

    @property
    def duration(self) -> float:
        return len(self.samples) / self.sample_rate

    def start_sample(self, t: float) -> int:
        return math.floor(t * self.sample_rate)

    def to_wav(self) -> bytes:
        return encode_wav(self.samples, self.sample_rate)


ClipSource = Mapping[int, Union[AudioClip, ResolvedAsset, None]]


class MasterAudioSynthesizer:
    """Coloca cada clip en el offset de su escena dentro de un único buffer."""

    def __init__(self, sample_rate: int = 44100, tail_padding: float = 0.5):
        if sample_rate <= 0:
            raise ValueError("sample_rate debe ser positivo")
        self.sample_rate = sample_rate
        self.tail_padding = max(0.0, tail_padding)

    def _conform(self, clip: PCMClip) -> np.ndarray:
        """Lleva el clip a la tasa de la sesión (interpolación lineal)."""
        samples = np.asarray(clip.samples, dtype=np.float32)
        if clip.sample_rate == self.sample_rate or len(samples) == 0:
            return samples
        n = int(round(len(samples) * self.sample_rate / clip.sample_rate))
        positions = np.arange(n, dtype=np.float64) * clip.sample_rate / self.sample_rate
        return np.interp(positions, np.arange(len(samples)), samples).astype(np.float32)

    def render(
        self,
        timeline: Timeline,
        clips: ClipSource,
        cancel_event: Optional[threading.Event] = None,
    ) -> MasterAudioBuffer:
        """
        Compone la pista maestra.

        Un clip más largo que su escena invade la siguiente; lo que excede
        el final del buffer se trunca. Escenas sin clip quedan en cero.
        """
        sr = self.sample_rate
        length = math.ceil((timeline.total_duration + self.tail_padding) * sr)
        buffer = np.zeros(length, dtype=np.float32)

        placed = 0
        for index, scene in enumerate(timeline.scenes):
            if cancel_event is not None and cancel_event.is_set():
                raise asyncio.CancelledError("Síntesis de audio cancelada")

            clip = clips.get(scene.id)
            if isinstance(clip, ResolvedAsset):
                clip = clip.audio
            if is_silence(clip):
                continue

            samples = np.clip(self._conform(clip), -1.0, 1.0)
            offset = math.floor(timeline.start_time(index) * sr)
            end = min(length, offset + len(samples))
            if end <= offset:
                continue
            if offset + len(samples) > length:
                logger.debug(f"Clip de la escena {scene.id} truncado al final del buffer")
            buffer[offset:end] = samples[: end - offset]
            placed += 1

        logger.info(f"Pista maestra: {length / sr:.2f}s, {placed}/{len(timeline)} clips colocados")
        return MasterAudioBuffer(
            samples=buffer,
            sample_rate=sr,
            content_duration=timeline.total_duration,
            tail_padding=self.tail_padding,
        )

    async def render_async(
        self,
        timeline: Timeline,
        clips: ClipSource,
        cancel_event: Optional[threading.Event] = None,
    ) -> MasterAudioBuffer:
        """Igual que render() pero en un hilo, sin bloquear el event loop."""
        return await asyncio.to_thread(self.render, timeline, clips, cancel_event)
