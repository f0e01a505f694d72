"""
Backend de captura en tiempo real.
Reproduce el guión con el scheduler y graba lo que se ve (con el punto REC)
mientras escribe los frames al encoder de MoviePy.
"""
import logging
import math
import shutil
import tempfile
import time
from pathlib import Path
from typing import Callable, Mapping, Optional

import numpy as np
from moviepy.video.io.ffmpeg_writer import FFMPEG_VideoWriter

from ..audio.engine import MasterAudioBuffer
from ..audio.wav import write_wav
from ..config import Settings
from ..domain.errors import PipelineError, Stage
from ..domain.models import ResolvedAsset
from ..domain.timeline import Timeline
from ..video.compositor import FrameCompositor
from ..video.playback import AudioOutput, NullAudioOutput
from ..video.scheduler import PlaybackScheduler, PlaybackState
from .base import EncodeBackend, RenderArtifact, validate_artifact

logger = logging.getLogger(__name__)

KEEP_ALIVE_HZ = 440.0
KEEP_ALIVE_GAIN = 0.001


def with_keep_alive(samples: np.ndarray, sample_rate: int) -> np.ndarray:
    """Mezcla un tono casi inaudible para que la pista nunca se considere inactiva."""
    t = np.arange(len(samples), dtype=np.float64) / sample_rate
    tone = KEEP_ALIVE_GAIN * np.sin(2.0 * np.pi * KEEP_ALIVE_HZ * t)
    return np.clip(samples + tone, -1.0, 1.0).astype(np.float32)


class CaptureBackend(EncodeBackend):
    """Graba una reproducción completa a resolución de preview."""

    name = "capture"

    def __init__(
        self,
        settings: Settings,
        audio_output: Optional[AudioOutput] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(settings)
        self.audio_output = audio_output
        self.clock = clock

    async def render(
        self,
        timeline: Timeline,
        master_audio: MasterAudioBuffer,
        assets: Mapping[int, ResolvedAsset],
    ) -> RenderArtifact:
        s = self.settings
        width, height = s.preview_size
        compositor = FrameCompositor(width, height, zoom_rate=s.zoom_rate, caption_max_chars=s.caption_max_chars)
        scheduler = PlaybackScheduler(compositor, self.audio_output or NullAudioOutput(), fps=s.fps, clock=self.clock)
        scheduler.recording = True
        expected = max(1, round(timeline.total_duration * s.fps))
        final = self.output_path(timeline)

        with tempfile.TemporaryDirectory(prefix="viralize_capture_") as tmp:
            sandbox = Path(tmp)
            audio = write_wav(
                sandbox / "capture.wav",
                with_keep_alive(master_audio.samples, master_audio.sample_rate),
                master_audio.sample_rate,
            )
            part = sandbox / "capture.mp4"

            with FFMPEG_VideoWriter(
                str(part),
                (width, height),
                s.fps,
                codec="libx264",
                audiofile=str(audio),
                audio_codec="aac",
                preset="fast",
                ffmpeg_params=["-b:a", "192k", "-ac", "2", "-shortest", "-movflags", "+faststart"],
            ) as writer:
                written = 0
                last = None

                def on_frame(frame, position, elapsed):
                    nonlocal written, last
                    last = np.asarray(frame)
                    # Se duplican frames si el tick llegó tarde: frames escritos ~ elapsed * fps
                    target = min(expected, math.floor(elapsed * s.fps) + 1)
                    while written < target:
                        writer.write_frame(last)
                        written += 1

                scheduler.add_frame_listener(on_frame)
                scheduler.begin_loading()
                scheduler.load(timeline, assets, master_audio)
                logger.info(f"🔴 Capturando {timeline.total_duration:.2f}s en tiempo real ({width}x{height})")
                try:
                    scheduler.play()
                    state = await scheduler.wait_until_ended()
                finally:
                    scheduler.unload()

                if state is not PlaybackState.ENDED:
                    raise PipelineError(Stage.COMPOSITION, f"Captura interrumpida (estado {state.value})")

                if last is None:
                    position = timeline.scene_at(timeline.total_duration)
                    last = np.asarray(compositor.render_position(position, assets.get(position.scene.id), True))
                while written < expected:
                    writer.write_frame(last)
                    written += 1

            size, frames, seconds = validate_artifact(part, s.min_artifact_bytes)
            shutil.move(str(part), str(final))

        logger.info(f"✅ Captura lista: {final} ({frames} frames)")
        return RenderArtifact(final, self.name, size, seconds, frames)
