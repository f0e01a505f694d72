"""
Salidas de audio para el preview.
La pista maestra se reproduce desde UNA sola fuente; iniciar otra detiene la anterior.
"""
import logging
import subprocess
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Tuple

from ..audio.engine import MasterAudioBuffer
from ..audio.wav import write_wav

logger = logging.getLogger(__name__)


class AudioOutput(ABC):
    """Fuente única de reproducción de la pista maestra."""

    @abstractmethod
    def start(self, buffer: MasterAudioBuffer, offset: float = 0.0) -> None:
        """Reproduce `buffer` desde `offset` segundos, deteniendo cualquier fuente previa."""

    @abstractmethod
    def stop(self) -> None:
        """Detiene la fuente activa (idempotente)."""

    @property
    @abstractmethod
    def active(self) -> bool: ...

    def close(self) -> None:
        self.stop()


class NullAudioOutput(AudioOutput):
    """Salida sin dispositivo (headless, captura y tests). Registra las llamadas."""

    def __init__(self):
        self.starts: List[Tuple[MasterAudioBuffer, float]] = []
        self.stops = 0
        self._active = False

    def start(self, buffer: MasterAudioBuffer, offset: float = 0.0) -> None:
        self.stop()
        self.starts.append((buffer, offset))
        self._active = True

    def stop(self) -> None:
        if self._active:
            self.stops += 1
        self._active = False

    @property
    def active(self) -> bool:
        return self._active


class FfplayAudioOutput(AudioOutput):
    """Reproduce la pista con un proceso `ffplay` sin ventana."""

    def __init__(self, binary: str = "ffplay"):
        self.binary = binary
        self._process: Optional[subprocess.Popen] = None
        self._buffer: Optional[MasterAudioBuffer] = None
        self._tmpdir = tempfile.TemporaryDirectory(prefix="viralize_play_")
        self._wav_path = Path(self._tmpdir.name) / "master.wav"

    def start(self, buffer: MasterAudioBuffer, offset: float = 0.0) -> None:
        self.stop()
        if self._buffer is not buffer:
            write_wav(self._wav_path, buffer.samples, buffer.sample_rate)
            self._buffer = buffer

        cmd = [
            self.binary,
            "-nodisp",
            "-autoexit",
            "-loglevel", "quiet",
            "-ss", f"{max(0.0, offset):.3f}",
            str(self._wav_path),
        ]
        logger.debug(f"Iniciando audio: {' '.join(cmd)}")
        self._process = subprocess.Popen(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )

    def stop(self) -> None:
        process, self._process = self._process, None
        if process is None or process.poll() is not None:
            return
        process.terminate()
        try:
            process.wait(timeout=2)
        except subprocess.TimeoutExpired:
            logger.warning("ffplay no terminó a tiempo, forzando cierre")
            process.kill()
            process.wait()

    @property
    def active(self) -> bool:
        return self._process is not None and self._process.poll() is None

    def close(self) -> None:
        self.stop()
        self._tmpdir.cleanup()
