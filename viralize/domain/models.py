"""
Modelos de Dominio (Clean Architecture)
Definen la estructura de datos central del sistema: guión, escenas y assets resueltos.
"""
from dataclasses import dataclass, field
from typing import List, Optional, Union

import numpy as np
from PIL import Image
from pydantic import BaseModel, ConfigDict, Field, field_validator


class Scene(BaseModel):
    """
    Una unidad atómica de narrativa audiovisual.
    Inmutable una vez validada: su id es estable entre renders.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: int
    duration: float = Field(..., gt=0, description="Duración de la escena en segundos")
    narration: str = Field("", description="Texto que se narra en esta escena")
    overlay_text: str = Field("", alias="overlayText", description="Título quemado en pantalla")
    image_keyword: str = Field("", alias="imageKeyword", description="Consulta para buscar la imagen")
    is_cta: bool = Field(False, alias="isCta")
    seo_keyword_used: Optional[str] = Field(None, alias="seoKeywordUsed")


class Script(BaseModel):
    """El guión completo: secuencia ordenada y contigua de escenas."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    title: str
    scenes: List[Scene] = Field(..., min_length=1)
    tone: str = ""
    seo_keywords: List[str] = Field(default_factory=list, alias="seoKeywords")
    hashtags: List[str] = Field(default_factory=list)
    estimated_viral_score: Optional[float] = Field(None, alias="estimatedViralScore")

    @field_validator("scenes")
    @classmethod
    def _unique_ids(cls, scenes: List[Scene]) -> List[Scene]:
        seen = set()
        for scene in scenes:
            if scene.id in seen:
                raise ValueError(f"ID de escena duplicado: {scene.id}")
            seen.add(scene.id)
        return scenes

    @property
    def total_duration(self) -> float:
        return sum(s.duration for s in self.scenes)


class Silence:
    """Marca explícita de 'esta escena no tiene narración'."""

    _instance: Optional["Silence"] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SILENCE"

    def __bool__(self) -> bool:
        return False


SILENCE = Silence()


@dataclass(frozen=True)
class PCMClip:
    """Clip de voz decodificado: muestras mono float32 en [-1, 1]."""
    samples: np.ndarray
    sample_rate: int

    def __post_init__(self):
        if self.samples.ndim != 1:
            raise ValueError("PCMClip espera un arreglo mono (1 dimensión)")
        if self.sample_rate <= 0:
            raise ValueError("sample_rate debe ser positivo")

    @property
    def duration(self) -> float:
        return len(self.samples) / self.sample_rate


AudioClip = Union[PCMClip, Silence]


def is_silence(clip: Optional[AudioClip]) -> bool:
    return clip is None or isinstance(clip, Silence)


@dataclass(frozen=True)
class ResolvedAsset:
    """Imagen y audio resueltos para una escena. Solo el AssetResolver los crea."""
    scene_id: int
    image: Optional[Image.Image] = None
    audio: AudioClip = field(default=SILENCE)
    image_is_placeholder: bool = False
