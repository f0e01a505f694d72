"""
Contenedor WAV PCM 16-bit.
Es el artefacto de frontera entre el sintetizador y cualquier backend de encode.
"""
import struct
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Union

import numpy as np
from pydub import AudioSegment

PCM_FORMAT_TAG = 1
BITS_PER_SAMPLE = 16


@dataclass(frozen=True)
class WavHeader:
    format_tag: int
    channels: int
    sample_rate: int
    byte_rate: int
    block_align: int
    bits_per_sample: int
    data_length: int
    data_offset: int

    @property
    def frame_count(self) -> int:
        return self.data_length // self.block_align

    @property
    def duration(self) -> float:
        return self.frame_count / self.sample_rate


def to_pcm16(samples: np.ndarray) -> np.ndarray:
    """float [-1, 1] -> int16 little-endian (satura fuera de rango)."""
    clipped = np.clip(np.asarray(samples, dtype=np.float32), -1.0, 1.0)
    return (clipped * 32767.0).round().astype("<i2")


def encode_wav(samples: np.ndarray, sample_rate: int, channels: int = 1) -> bytes:
    """
    Serializa muestras float a WAV PCM 16-bit.

    Para channels > 1 las muestras deben venir intercaladas.
    """
    pcm = to_pcm16(samples)
    segment = AudioSegment(
        data=pcm.tobytes(),
        sample_width=BITS_PER_SAMPLE // 8,
        frame_rate=sample_rate,
        channels=channels,
    )
    out = BytesIO()
    segment.export(out, format="wav")
    return out.getvalue()


def write_wav(path: Union[str, Path], samples: np.ndarray, sample_rate: int, channels: int = 1) -> Path:
    path = Path(path)
    path.write_bytes(encode_wav(samples, sample_rate, channels))
    return path


def read_wav_header(data: bytes) -> WavHeader:
    """
    Lee los campos fijos de un WAV: formato, canales, tasa, bits y largo de `data`.

    Raises:
        ValueError: si no es un RIFF/WAVE con chunks fmt y data
    """
    if len(data) < 12 or data[:4] != b"RIFF" or data[8:12] != b"WAVE":
        raise ValueError("No es un archivo RIFF/WAVE")

    fmt = None
    offset = 12
    while offset + 8 <= len(data):
        chunk_id, chunk_size = struct.unpack_from("<4sI", data, offset)
        body = offset + 8
        if chunk_id == b"fmt ":
            fmt = struct.unpack_from("<HHIIHH", data, body)
        elif chunk_id == b"data":
            if fmt is None:
                raise ValueError("Chunk 'data' antes de 'fmt '")
            format_tag, channels, sample_rate, byte_rate, block_align, bits = fmt
            return WavHeader(
                format_tag=format_tag,
                channels=channels,
                sample_rate=sample_rate,
                byte_rate=byte_rate,
                block_align=block_align,
                bits_per_sample=bits,
                data_length=chunk_size,
                data_offset=body,
            )
        # Los chunks se alinean a 2 bytes
        offset = body + chunk_size + (chunk_size & 1)

    raise ValueError("WAV sin chunk 'data'")
