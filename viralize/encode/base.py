"""
Interfaz común de los backends de encode y utilidades compartidas:
stills por escena, precondiciones y validación del artefacto final.
"""
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import List, Mapping, Sequence, Tuple

import imageio_ffmpeg

from ..audio.engine import MasterAudioBuffer
from ..config import Settings
from ..domain.errors import ArtifactValidationError, PipelineError, PreconditionError, Stage
from ..domain.models import ResolvedAsset
from ..domain.timeline import Timeline
from ..video.compositor import FrameCompositor

logger = logging.getLogger(__name__)

JPEG_QUALITY = 92
WAV_HEADER_BYTES = 44


@dataclass(frozen=True)
class RenderArtifact:
    path: Path
    backend: str
    size_bytes: int
    duration: float
    frames: int


def output_filename(title: str) -> str:
    """Nombre de archivo seguro a partir del título del guión."""
    stem = re.sub(r"[^a-z0-9]", "_", title.lower())
    return f"{stem or 'video'}.mp4"


def materialize_stills(
    timeline: Timeline,
    assets: Mapping[int, ResolvedAsset],
    compositor: FrameCompositor,
    directory: Path,
) -> List[Path]:
    """
    Un frame HD por escena (progreso 0, sin animación) como frame_<i>.jpg.

    Raises:
        PipelineError: (composition) si un frame no se pudo guardar
    """
    directory.mkdir(parents=True, exist_ok=True)
    paths = []
    for index, scene in enumerate(timeline.scenes):
        asset = assets.get(scene.id)
        image = asset.image if asset is not None else None
        path = directory / f"frame_{index}.jpg"
        try:
            frame = compositor.render(scene, image, 0.0)
            frame.save(path, "JPEG", quality=JPEG_QUALITY)
        except (OSError, ValueError) as e:
            raise PipelineError(Stage.COMPOSITION, f"No se pudo generar el frame de la escena {scene.id}: {e}") from e
        paths.append(path)
    logger.info(f"{len(paths)} frames generados en {directory}")
    return paths


def check_preconditions(stills: Sequence[Path], expected: int, audio: Path) -> None:
    """
    Aborta ANTES de invocar al transcoder si falta algún still o el audio.

    Raises:
        PreconditionError: still ausente/vacío (composition) o audio ausente (synthesis)
    """
    if len(stills) != expected:
        raise PreconditionError(Stage.COMPOSITION, f"Se esperaban {expected} frames, hay {len(stills)}")
    for path in stills:
        if not Path(path).is_file() or Path(path).stat().st_size == 0:
            raise PreconditionError(Stage.COMPOSITION, f"Falta el frame {Path(path).name}")
    if not audio.is_file() or audio.stat().st_size <= WAV_HEADER_BYTES:
        raise PreconditionError(Stage.SYNTHESIS, f"Falta el audio maestro ({audio.name})")


def validate_artifact(path: Path, min_bytes: int) -> Tuple[int, int, float]:
    """
    Verifica tamaño mínimo y que el video sea legible.
    Si falla, borra el archivo: nunca se entrega un artefacto corrupto.

    Returns:
        (bytes, frames, segundos)
    """
    if not path.is_file():
        raise ArtifactValidationError(f"No se generó el archivo {path.name}")

    size = path.stat().st_size
    if size < min_bytes:
        path.unlink()
        raise ArtifactValidationError(f"Archivo demasiado pequeño ({size} bytes < {min_bytes})")

    try:
        frames, seconds = imageio_ffmpeg.count_frames_and_secs(str(path))
    except (RuntimeError, OSError) as e:
        path.unlink()
        raise ArtifactValidationError(f"Video ilegible: {e}") from e

    if frames <= 0:
        path.unlink()
        raise ArtifactValidationError("El video no contiene frames")
    return size, frames, seconds


class EncodeBackend(ABC):
    """render(timeline, pista maestra, assets) -> RenderArtifact."""

    name: str = ""

    def __init__(self, settings: Settings):
        self.settings = settings

    def output_path(self, timeline: Timeline) -> Path:
        directory = Path(self.settings.output_dir)
        directory.mkdir(parents=True, exist_ok=True)
        return directory / output_filename(timeline.script.title)

    def export_compositor(self) -> FrameCompositor:
        return FrameCompositor(
            self.settings.width,
            self.settings.height,
            zoom_rate=self.settings.zoom_rate,
            caption_max_chars=self.settings.caption_max_chars,
        )

    @abstractmethod
    async def render(
        self,
        timeline: Timeline,
        master_audio: MasterAudioBuffer,
        assets: Mapping[int, ResolvedAsset],
    ) -> RenderArtifact:
        """Produce el video final o lanza un PipelineError etiquetado por etapa."""
