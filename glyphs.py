"""Font loading, measuring and glyph rasterizing on top of Pillow."""
from __future__ import annotations

import io
import logging
import math
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Optional, Sequence, Tuple, Union

from PIL import ImageDraw, ImageFont

if TYPE_CHECKING:
    from cloud_core import Canvas

logger = logging.getLogger(__name__)

Color = Tuple[int, int, int, int]
Face = Union[ImageFont.FreeTypeFont, ImageFont.ImageFont]

SYSTEM_FONT_CANDIDATES: Sequence[str] = (
    "/usr/share/fonts/truetype/wqy/wqy-microhei.ttc",
    "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
    "/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf",
    "/usr/share/fonts/dejavu/DejaVuSans.ttf",
    "/Library/Fonts/Arial Unicode.ttf",
    "/System/Library/Fonts/Supplemental/Arial.ttf",
    "C:/Windows/Fonts/arial.ttf",
)


class GlyphDrawError(RuntimeError):
    """Raised when a single word cannot be drawn onto a canvas."""


class FontService:
    """Measures and draws text with one font loaded at startup.

    The raw font bytes are read once and shared read-only between jobs;
    faces are built lazily per size and cached.
    """

    def __init__(self, font_data: Optional[bytes] = None, *, name: str = "default") -> None:
        self._font_data = font_data
        self.name = name
        self._faces: Dict[float, Face] = {}
        self._faces_lock = threading.Lock()

    @classmethod
    def load(cls, font_path: Optional[str] = None) -> "FontService":
        candidates = [font_path] if font_path else []
        candidates.extend(SYSTEM_FONT_CANDIDATES)
        for candidate in candidates:
            path = Path(candidate)
            try:
                data = path.read_bytes()
                ImageFont.truetype(io.BytesIO(data), 12)
            except OSError:
                if candidate == font_path:
                    logger.warning("Could not load font %s", font_path)
                continue
            logger.info("Loaded font %s", path)
            return cls(data, name=path.name)

        logger.warning("No TrueType font found; using Pillow's default font")
        return cls()

    def face(self, size: float) -> Face:
        with self._faces_lock:
            face = self._faces.get(size)
            if face is None:
                if self._font_data is None:
                    face = ImageFont.load_default(size=size)
                else:
                    face = ImageFont.truetype(io.BytesIO(self._font_data), size)
                self._faces[size] = face
            return face

    def measure(self, size: float, text: str) -> int:
        if not math.isfinite(size) or size <= 0:
            raise GlyphDrawError(f"unusable font size {size!r}")
        try:
            return int(round(self.face(size).getlength(text)))
        except (OSError, ValueError) as exc:
            raise GlyphDrawError(str(exc)) from exc

    def draw_glyphs(
        self,
        canvas: "Canvas",
        size: float,
        color: Color,
        text: str,
        origin: Tuple[int, int],
    ) -> None:
        """Draw ``text`` with its left baseline anchored at ``origin``."""
        try:
            draw = ImageDraw.Draw(canvas.image)
            draw.text(origin, text, font=self.face(size), fill=color, anchor="ls")
        except (OSError, ValueError) as exc:
            raise GlyphDrawError(str(exc)) from exc
