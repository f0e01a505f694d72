"""Pipeline de encode: un grafo compartido y tres backends intercambiables."""

from ..config import Settings
from .base import EncodeBackend, RenderArtifact, output_filename
from .capture import CaptureBackend
from .graph import FilterGraph, build_filter_graph, lower_to_ffmpeg
from .local import LocalBackend, LocalTranscoder
from .remote import RemoteBackend

BACKENDS = {
    LocalBackend.name: LocalBackend,
    RemoteBackend.name: RemoteBackend,
    CaptureBackend.name: CaptureBackend,
}


def create_backend(settings: Settings, name: str = None) -> EncodeBackend:
    """Selecciona el backend por configuración (settings.backend por defecto)."""
    name = name or settings.backend
    try:
        backend_cls = BACKENDS[name]
    except KeyError:
        raise ValueError(f"Backend desconocido: {name}. Opciones: {', '.join(BACKENDS)}")
    return backend_cls(settings)


__all__ = [
    "EncodeBackend", "RenderArtifact", "output_filename",
    "CaptureBackend", "LocalBackend", "LocalTranscoder", "RemoteBackend",
    "FilterGraph", "build_filter_graph", "lower_to_ffmpeg",
    "BACKENDS", "create_backend",
]
