"""
Errores del pipeline etiquetados por etapa.
Permiten distinguir 'no hay internet para imágenes' de 'el encoder falló'.
"""
from enum import Enum
from typing import Optional


class Stage(str, Enum):
    """Etapa del pipeline donde ocurrió el fallo."""
    ASSET_RESOLUTION = "asset_resolution"
    SYNTHESIS = "synthesis"
    COMPOSITION = "composition"
    MUX = "mux"


class PipelineError(Exception):
    """Error fatal del pipeline. Siempre se propaga al llamador."""

    def __init__(self, stage: Stage, message: str):
        self.stage = Stage(stage)
        self.message = message
        super().__init__(f"[{self.stage.value}] {message}")

    def to_dict(self) -> dict:
        return {"stage": self.stage.value, "error": self.message}


class PreconditionError(PipelineError):
    """Falta un asset obligatorio (still o audio) antes de invocar al transcoder."""


class TranscoderError(PipelineError):
    """El transcoder terminó con error. `diagnostic` contiene su salida tal cual."""

    def __init__(self, message: str, diagnostic: Optional[str] = None):
        super().__init__(Stage.MUX, message)
        self.diagnostic = diagnostic or ""

    def __str__(self) -> str:
        base = super().__str__()
        if self.diagnostic:
            return f"{base}\n{self.diagnostic}"
        return base


class ArtifactValidationError(PipelineError):
    """El archivo generado está vacío, es demasiado chico o no se puede leer."""

    def __init__(self, message: str):
        super().__init__(Stage.MUX, message)


class ImageDecodeError(Exception):
    """La imagen descargada no se pudo decodificar a pixeles exportables."""
