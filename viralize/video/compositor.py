"""
Compositor de Frames
Función pura: (escena, progreso local, resolución) -> frame RGB.
La usan el preview en vivo y el render final, así ambos se ven idénticos.
"""
import logging
import re
from functools import lru_cache
from pathlib import Path
from typing import Iterator, List, Optional, Tuple, Union

from PIL import Image, ImageDraw, ImageFilter, ImageFont

from ..domain.models import ResolvedAsset, Scene
from ..domain.timeline import ScenePosition

logger = logging.getLogger(__name__)

Font = Union[ImageFont.FreeTypeFont, ImageFont.ImageFont]

# Layout de referencia (540x960); todo escala con la resolución destino
REFERENCE_WIDTH = 540
REFERENCE_HEIGHT = 960
TITLE_SIZE = 52
CAPTION_SIZE = 28
CAPTION_BOTTOM_OFFSET = 150
LINE_HEIGHT = 1.2
MAX_LINE_WIDTH = 0.9
DIM_ALPHA = 0.3
CAPTION_BOX = (0, 0, 0, 153)  # rgba(0,0,0,0.6)
CAPTION_COLOR = (251, 191, 36, 255)  # ámbar #fbbf24
TITLE_COLOR = (255, 255, 255, 255)
SHADOW_BLUR = 10
REC_CENTER = (40, 40)
REC_RADIUS = 15

BOLD_FONT_PATHS = [
    Path("/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf"),
    Path("/usr/share/fonts/truetype/liberation/LiberationSans-Bold.ttf"),
    Path("/usr/share/fonts/TTF/DejaVuSans-Bold.ttf"),
    Path("/System/Library/Fonts/Supplemental/Arial Bold.ttf"),
    Path("C:/Windows/Fonts/arialbd.ttf"),
]
REGULAR_FONT_PATHS = [
    Path("/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf"),
    Path("/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf"),
    Path("/usr/share/fonts/TTF/DejaVuSans.ttf"),
    Path("/System/Library/Fonts/Supplemental/Arial.ttf"),
    Path("C:/Windows/Fonts/arial.ttf"),
]


@lru_cache(maxsize=32)
def load_font(size: int, bold: bool = True) -> Font:
    """Carga una fuente del sistema; si no hay ninguna, la fuente por defecto de Pillow."""
    for font_path in BOLD_FONT_PATHS if bold else REGULAR_FONT_PATHS:
        if font_path.exists():
            try:
                return ImageFont.truetype(str(font_path), size=size)
            except OSError:
                continue
    logger.debug(f"Sin fuentes TrueType del sistema, usando la de Pillow ({size}px)")
    return ImageFont.load_default(size)


def clean_title(text: str) -> str:
    """Título en mayúsculas, guiones y guiones bajos como espacios."""
    return re.sub(r"\s+", " ", re.sub(r"[-_]+", " ", text)).strip().upper()


def truncate_caption(text: str, max_chars: int) -> str:
    text = " ".join(text.split())
    if len(text) <= max_chars:
        return text
    cut = text[:max_chars].rsplit(" ", 1)[0] or text[:max_chars]
    return cut.rstrip(" ,.;:") + "…"


def _split_oversized(word: str, font: Font, max_width: float) -> Iterator[str]:
    """Corta por caracteres una palabra más ancha que max_width."""
    if font.getlength(word) <= max_width:
        yield word
        return
    chunk = ""
    for char in word:
        if chunk and font.getlength(chunk + char) > max_width:
            yield chunk
            chunk = char
        else:
            chunk += char
    if chunk:
        yield chunk


def wrap_text(text: str, font: Font, max_width: float) -> List[str]:
    """
    Word-wrap greedy por ancho renderizado.

    Ninguna línea supera max_width; una palabra demasiado larga se parte
    por caracteres (solo un carácter aislado puede excederlo).
    """
    lines: List[str] = []
    line = ""
    for word in text.split():
        for piece in _split_oversized(word, font, max_width):
            candidate = f"{line} {piece}" if line else piece
            if font.getlength(candidate) <= max_width:
                line = candidate
            else:
                if line:
                    lines.append(line)
                line = piece
    if line:
        lines.append(line)
    return lines


class FrameCompositor:
    """Dibuja frames de una resolución fija. Sin estado entre llamadas."""

    def __init__(
        self,
        width: int = REFERENCE_WIDTH,
        height: int = REFERENCE_HEIGHT,
        zoom_rate: float = 0.10,
        caption_max_chars: int = 140,
    ):
        self.width = width
        self.height = height
        self.zoom_rate = zoom_rate
        self.caption_max_chars = caption_max_chars
        self.sx = width / REFERENCE_WIDTH
        self.sy = height / REFERENCE_HEIGHT
        self.max_line_width = width * MAX_LINE_WIDTH
        self._black = Image.new("RGB", (width, height), (0, 0, 0))

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    def _px(self, value: float) -> int:
        return max(1, round(value * self.sx))

    def _ken_burns(self, image: Image.Image, progress: float) -> Image.Image:
        """Cubre el lienzo y acerca `1 + progress * zoom_rate` desde el centro."""
        if image.mode != "RGB":
            image = image.convert("RGB")
        iw, ih = image.size
        scale = max(self.width / iw, self.height / ih) * (1.0 + progress * self.zoom_rate)
        box_w, box_h = self.width / scale, self.height / scale
        left, top = (iw - box_w) / 2, (ih - box_h) / 2
        return image.resize(
            self.size,
            Image.Resampling.BILINEAR,
            box=(left, top, left + box_w, top + box_h),
        )

    def _line_positions(self, lines: List[str], font: Font, center_y: float, size: int):
        """(x, y) de cada línea: centradas en x, bloque centrado alrededor de center_y."""
        _, top, _, bottom = font.getbbox("HgÁ")
        line_height = size * LINE_HEIGHT
        first = center_y - (len(lines) - 1) * line_height / 2
        for i, line in enumerate(lines):
            x = self.width / 2 - font.getlength(line) / 2
            y = first + i * line_height - (top + bottom) / 2
            yield line, x, y

    def _draw_title(self, frame: Image.Image, text: str) -> None:
        title = clean_title(text)
        if not title:
            return
        size = self._px(TITLE_SIZE)
        font = load_font(size, bold=True)
        placed = list(self._line_positions(wrap_text(title, font, self.max_line_width), font, self.height / 2, size))

        shadow = Image.new("RGBA", self.size, (0, 0, 0, 0))
        shadow_draw = ImageDraw.Draw(shadow)
        for line, x, y in placed:
            shadow_draw.text((x, y), line, font=font, fill=(0, 0, 0, 255))
        shadow = shadow.filter(ImageFilter.GaussianBlur(self._px(SHADOW_BLUR) / 2))
        frame.alpha_composite(shadow)

        draw = ImageDraw.Draw(frame)
        for line, x, y in placed:
            draw.text((x, y), line, font=font, fill=TITLE_COLOR)

    def _draw_caption(self, frame: Image.Image, text: str) -> None:
        caption = truncate_caption(text, self.caption_max_chars)
        if not caption:
            return
        size = self._px(CAPTION_SIZE)
        font = load_font(size, bold=True)
        center_y = self.height - CAPTION_BOTTOM_OFFSET * self.sy
        placed = list(self._line_positions(wrap_text(caption, font, self.max_line_width), font, center_y, size))

        pad = self._px(10)
        half = size * LINE_HEIGHT / 2
        boxes = Image.new("RGBA", self.size, (0, 0, 0, 0))
        box_draw = ImageDraw.Draw(boxes)
        for line, x, y in placed:
            _, top, _, bottom = font.getbbox("HgÁ")
            mid = y + (top + bottom) / 2
            box_draw.rounded_rectangle(
                (x - pad, mid - half, x + font.getlength(line) + pad, mid + half),
                radius=self._px(6),
                fill=CAPTION_BOX,
            )
        frame.alpha_composite(boxes)

        draw = ImageDraw.Draw(frame)
        for line, x, y in placed:
            draw.text((x, y), line, font=font, fill=CAPTION_COLOR)

    def _draw_recording_dot(self, frame: Image.Image) -> None:
        cx, cy = self._px(REC_CENTER[0]), self._px(REC_CENTER[1])
        r = self._px(REC_RADIUS)
        ImageDraw.Draw(frame).ellipse((cx - r, cy - r, cx + r, cy + r), fill=(255, 0, 0, 255))

    def render(
        self,
        scene: Scene,
        image: Optional[Image.Image],
        progress: float,
        recording: bool = False,
    ) -> Image.Image:
        """
        Compone un frame.

        Orden: fondo negro, imagen con zoom Ken Burns, oscurecido uniforme,
        título centrado, subtítulo con caja, indicador de grabación.
        """
        progress = min(max(progress, 0.0), 1.0)
        frame = self._black.copy()
        if image is not None:
            frame = self._ken_burns(image, progress)

        frame = Image.blend(frame, self._black, DIM_ALPHA).convert("RGBA")
        self._draw_title(frame, scene.overlay_text)
        self._draw_caption(frame, scene.narration)
        if recording:
            self._draw_recording_dot(frame)
        return frame.convert("RGB")

    def render_position(
        self,
        position: ScenePosition,
        asset: Optional[ResolvedAsset],
        recording: bool = False,
    ) -> Image.Image:
        image = asset.image if asset is not None else None
        return self.render(position.scene, image, position.progress, recording)
