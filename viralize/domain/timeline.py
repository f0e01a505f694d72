"""
Modelo de Línea de Tiempo.
Representa el guión como un eje temporal. Es la única fuente de verdad
para el preview y para el render final, así nunca divergen visualmente.
"""
import bisect
import math
from dataclasses import dataclass
from itertools import accumulate
from typing import List

from .models import Scene, Script

# Mayor float estrictamente menor que 1.0
_PROGRESS_CEILING = math.nextafter(1.0, 0.0)


@dataclass(frozen=True)
class ScenePosition:
    """Resultado de consultar la línea de tiempo en un instante t."""
    index: int
    scene: Scene
    local_elapsed: float
    progress: float


def local_progress(scene: Scene, local_elapsed: float) -> float:
    """Progreso local de la escena, acotado a [0, 1)."""
    progress = local_elapsed / scene.duration
    if progress <= 0.0:
        return 0.0
    return min(progress, _PROGRESS_CEILING)


def format_srt_time(seconds: float) -> str:
    """Formatea segundos como HH:MM:SS,mmm."""
    millis = int(round(seconds * 1000))
    hours, millis = divmod(millis, 3_600_000)
    minutes, millis = divmod(millis, 60_000)
    secs, millis = divmod(millis, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d},{millis:03d}"


class Timeline:
    """Eje temporal derivado de un Script inmutable."""

    def __init__(self, script: Script):
        self.script = script
        self.scenes: List[Scene] = list(script.scenes)
        durations = [s.duration for s in self.scenes]
        # starts[i] = suma de duraciones 0..i-1 (contiguas, sin huecos)
        self._starts: List[float] = [0.0] + list(accumulate(durations))[:-1]
        self.total_duration: float = math.fsum(durations)

    def __len__(self) -> int:
        return len(self.scenes)

    def start_time(self, index: int) -> float:
        return self._starts[index]

    def end_time(self, index: int) -> float:
        if index == len(self.scenes) - 1:
            return self.total_duration
        return self._starts[index + 1]

    def scene_at(self, t: float) -> ScenePosition:
        """
        Escena activa en el instante t.

        Nunca lanza: t negativo se acota a la primera escena y
        t >= total_duration devuelve la última escena.
        """
        if t <= 0.0:
            scene = self.scenes[0]
            return ScenePosition(0, scene, 0.0, 0.0)

        if t >= self.total_duration:
            index = len(self.scenes) - 1
        else:
            index = bisect.bisect_right(self._starts, t) - 1

        scene = self.scenes[index]
        elapsed = min(t - self._starts[index], scene.duration)
        return ScenePosition(index, scene, elapsed, local_progress(scene, elapsed))

    def frame_boundaries(self, fps: int) -> List[int]:
        """
        Cantidad de frames por escena.

        Se redondean los límites acumulados (no cada duración) para que la
        suma nunca se aleje más de un frame de total_duration. Cada escena
        recibe al menos un frame; ese frame se le quita a la escena vecina.
        Solo si hay más escenas que frames totales el video se alarga
        (un frame por escena).
        """
        last = max(round(self.total_duration * fps), len(self.scenes))
        edges = [round(start * fps) for start in self._starts] + [last]

        for i in range(1, len(edges)):
            edges[i] = max(edges[i], edges[i - 1] + 1)
        edges[-1] = last
        for i in range(len(edges) - 2, 0, -1):
            edges[i] = min(edges[i], edges[i + 1] - 1)

        return [b - a for a, b in zip(edges, edges[1:])]

    def to_srt(self) -> str:
        """Genera subtítulos SRT con una entrada por escena (texto del título)."""
        blocks = []
        for i, scene in enumerate(self.scenes):
            text = scene.overlay_text.replace("\n", " ").strip()
            blocks.append(
                f"{i + 1}\n"
                f"{format_srt_time(self.start_time(i))} --> {format_srt_time(self.end_time(i))}\n"
                f"{text}\n"
            )
        return "\n".join(blocks)
