"""
Backend local: transcodifica con el FFmpeg empaquetado (imageio-ffmpeg)
dentro de un directorio temporal aislado.
"""
import asyncio
import logging
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Mapping, Optional

import imageio_ffmpeg

from ..audio.engine import MasterAudioBuffer
from ..audio.wav import write_wav
from ..config import Settings
from ..domain.errors import TranscoderError
from ..domain.models import ResolvedAsset
from ..domain.timeline import Timeline
from .base import EncodeBackend, RenderArtifact, check_preconditions, materialize_stills, validate_artifact
from .graph import FilterGraph, build_filter_graph, lower_to_ffmpeg

logger = logging.getLogger(__name__)

AUDIO_NAME = "audio.wav"
OUTPUT_NAME = "output.mp4"


class LocalTranscoder:
    """Ejecuta un FilterGraph con FFmpeg. Compartido por el backend local y el servidor remoto."""

    def __init__(self, ffmpeg_binary: Optional[str] = None):
        self.ffmpeg = ffmpeg_binary or imageio_ffmpeg.get_ffmpeg_exe()

    def run_in_sandbox(self, graph: FilterGraph, sandbox: Path, output_name: str = OUTPUT_NAME) -> Path:
        """
        Transcodifica frame_<i>.jpg + audio.wav ya presentes en `sandbox`.

        Raises:
            TranscoderError: con la salida de error de FFmpeg tal cual
        """
        cmd = lower_to_ffmpeg(graph, graph.still_names(), AUDIO_NAME, output_name, ffmpeg=self.ffmpeg)
        logger.debug(f"FFmpeg: {' '.join(cmd)}")
        try:
            subprocess.run(cmd, cwd=str(sandbox), capture_output=True, text=True, check=True)
        except subprocess.CalledProcessError as e:
            raise TranscoderError(
                f"FFmpeg terminó con código {e.returncode}",
                diagnostic=(e.stderr or "").strip(),
            ) from e
        except FileNotFoundError as e:
            raise TranscoderError(f"No se encontró FFmpeg en {self.ffmpeg}") from e
        return sandbox / output_name


class LocalBackend(EncodeBackend):
    """Stills por escena + WAV maestro -> mp4 en un sandbox temporal."""

    name = "local"

    def __init__(self, settings: Settings, transcoder: Optional[LocalTranscoder] = None):
        super().__init__(settings)
        self.transcoder = transcoder or LocalTranscoder(settings.ffmpeg_binary)

    async def render(
        self,
        timeline: Timeline,
        master_audio: MasterAudioBuffer,
        assets: Mapping[int, ResolvedAsset],
    ) -> RenderArtifact:
        s = self.settings
        graph = build_filter_graph(timeline, s.width, s.height, s.fps)
        final = self.output_path(timeline)

        with tempfile.TemporaryDirectory(prefix="viralize_local_") as tmp:
            sandbox = Path(tmp)
            stills = await asyncio.to_thread(
                materialize_stills, timeline, assets, self.export_compositor(), sandbox
            )
            audio = write_wav(sandbox / AUDIO_NAME, master_audio.samples, master_audio.sample_rate)
            check_preconditions(stills, len(graph.segments), audio)

            logger.info(f"🎬 Transcodificando {len(stills)} escenas ({graph.duration:.2f}s) con FFmpeg local")
            produced = await asyncio.to_thread(self.transcoder.run_in_sandbox, graph, sandbox)
            size, frames, seconds = validate_artifact(produced, s.min_artifact_bytes)
            shutil.move(str(produced), str(final))

        logger.info(f"✅ Video listo: {final} ({size / 1024:.0f} KB, {frames} frames)")
        return RenderArtifact(final, self.name, size, seconds, frames)
