"""Módulo de dominio: guión, línea de tiempo y errores."""

from .models import Scene, Script, PCMClip, Silence, SILENCE, AudioClip, ResolvedAsset, is_silence
from .timeline import Timeline, ScenePosition, local_progress
from .errors import (
    Stage,
    PipelineError,
    PreconditionError,
    TranscoderError,
    ArtifactValidationError,
    ImageDecodeError,
)

__all__ = [
    "Scene", "Script", "PCMClip", "Silence", "SILENCE", "AudioClip", "ResolvedAsset", "is_silence",
    "Timeline", "ScenePosition", "local_progress",
    "Stage", "PipelineError", "PreconditionError", "TranscoderError",
    "ArtifactValidationError", "ImageDecodeError",
]
