"""Core layout utilities for rendering pixel word clouds."""
from __future__ import annotations

import io
import logging
import os
import random
import re
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Sequence, Tuple

import numpy as np
from PIL import Image

from glyphs import Color, FontService, GlyphDrawError

logger = logging.getLogger(__name__)

QUALITY_LOW = 20
QUALITY_NORMAL = 10
QUALITY_HIGH = 5

QUALITY_PRESETS = {
    "low": QUALITY_LOW,
    "normal": QUALITY_NORMAL,
    "high": QUALITY_HIGH,
}

# Fraction of the font size between the top of a word's box and its baseline.
BASELINE_RATIO = 3 / 4

HEX_COLOR_REGEX = re.compile(r"#[0-9a-fA-F]{6}")

OPAQUE_BLACK: Color = (0, 0, 0, 255)
OPAQUE_WHITE: Color = (255, 255, 255, 255)


class ValidationError(ValueError):
    """Raised when a render request cannot be drawn at all."""


def resolve_color(value: Optional[str]) -> Color:
    if not isinstance(value, str) or not HEX_COLOR_REGEX.fullmatch(value):
        logger.debug("Unreadable colour %r, using black", value)
        return OPAQUE_BLACK
    return (int(value[1:3], 16), int(value[3:5], 16), int(value[5:7], 16), 255)


def parse_quality(value: object, default: int = QUALITY_NORMAL) -> int:
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in QUALITY_PRESETS:
            return QUALITY_PRESETS[lowered]
    try:
        return max(QUALITY_HIGH, int(value))  # type: ignore[call-overload]
    except (TypeError, ValueError):
        return default


@dataclass
class CloudConfig:
    """Process-wide settings for the renderer."""

    font_path: Optional[str] = None
    quality: int = QUALITY_NORMAL
    default_width: int = 800
    default_height: int = 600
    default_background: str = "#ffffff"

    @classmethod
    def from_env(cls) -> "CloudConfig":
        return cls(
            font_path=os.environ.get("PIXELCLOUD_FONT") or None,
            quality=parse_quality(os.environ.get("PIXELCLOUD_QUALITY")),
        )


@dataclass
class WordSpec:
    text: str
    size: float
    color: str = ""

    @property
    def height(self) -> int:
        return int(self.size)


@dataclass
class Placement:
    word: WordSpec
    x: int
    y: int
    color: Color

    def as_dict(self) -> dict:
        return {
            "text": self.word.text,
            "x": self.x,
            "y": self.y,
            "size": self.word.size,
            "color": "#%02x%02x%02x" % self.color[:3],
        }


@dataclass
class LayoutResult:
    placements: List[Placement]
    requested: int

    @property
    def placed(self) -> int:
        return len(self.placements)

    @property
    def unplaced(self) -> int:
        return self.requested - self.placed


class Canvas:
    """RGBA pixel buffer filled with a fixed background colour."""

    def __init__(self, width: int, height: int, background: Color = OPAQUE_WHITE) -> None:
        if width <= 0 or height <= 0:
            raise ValidationError("width and height must be positive")
        self._width = width
        self._height = height
        self.background = background
        self.image = Image.new("RGBA", (width, height), background)

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    @property
    def background_signature(self) -> int:
        return color_signature(self.background)

    def get_pixel(self, x: int, y: int) -> Color:
        return self.image.getpixel((x, y))

    def set_pixel(self, x: int, y: int, color: Color) -> None:
        self.image.putpixel((x, y), color)

    def fill(self, color: Color) -> None:
        self.image.paste(color, (0, 0, self._width, self._height))

    def signatures(self) -> np.ndarray:
        return np.asarray(self.image, dtype=np.int64).sum(axis=2)

    def to_png(self) -> bytes:
        buffer = io.BytesIO()
        self.image.save(buffer, format="PNG")
        return buffer.getvalue()


def color_signature(color: Sequence[int]) -> int:
    return int(sum(color))


def blank_origins(
    canvas: Canvas,
    size_x: int,
    size_y: int,
    background_signature: int,
    quality: int = QUALITY_NORMAL,
) -> np.ndarray:
    """Return every blank ``(x, y)`` origin for a ``size_x`` x ``size_y`` box.

    Each origin is tested by sampling every ``quality``-th column and row of
    its box, walking from the bottom-right corner (inclusive) back to the
    origin. A sample counts as occupied when its channel sum differs from
    ``background_signature``. The far corner is sampled too, so origins stop
    one pixel short of ``width - size_x`` and ``height - size_y``.

    Rows of the result are ordered by x, then y.
    """
    quality = max(int(quality), QUALITY_HIGH)
    size_x = max(int(size_x), 0)
    size_y = max(int(size_y), 0)

    fold_x = canvas.width - size_x
    fold_y = canvas.height - size_y
    if fold_x <= 0 or fold_y <= 0:
        return np.empty((0, 2), dtype=np.intp)

    occupied = canvas.signatures() != background_signature
    # blocked[j, i] is True once any sample of the box anchored at (i, j) is occupied.
    blocked = np.zeros((fold_y, fold_x), dtype=bool)
    for dx in range(size_x, -1, -quality):
        for dy in range(size_y, -1, -quality):
            blocked |= occupied[dy:dy + fold_y, dx:dx + fold_x]

    return np.argwhere(~blocked.T)


def find_blank_region(
    canvas: Canvas,
    size_x: int,
    size_y: int,
    background_signature: int,
    quality: int = QUALITY_NORMAL,
    *,
    rng: Optional[random.Random] = None,
) -> Optional[Tuple[int, int]]:
    """Pick a top-left origin uniformly among all blank ones, or ``None``."""
    candidates = blank_origins(canvas, size_x, size_y, background_signature, quality)
    if len(candidates) == 0:
        return None

    goal = (rng or random).randrange(len(candidates))
    x, y = candidates[goal]
    return int(x), int(y)


def layout_words(
    canvas: Canvas,
    words: Sequence[WordSpec],
    font: FontService,
    quality: int = QUALITY_NORMAL,
    *,
    rng: Optional[random.Random] = None,
) -> LayoutResult:
    """Place ``words`` in order, stopping at the first one that does not fit."""
    background = canvas.background_signature
    placements: List[Placement] = []

    for index, word in enumerate(words):
        color = resolve_color(word.color)
        try:
            width = font.measure(word.size, word.text)
        except GlyphDrawError as exc:
            logger.warning("Skipping %r: %s", word.text, exc)
            continue
        origin = find_blank_region(canvas, width, word.height, background, quality, rng=rng)
        if origin is None:
            logger.info(
                "no room left at word %d, %d of %d words finished",
                index, len(placements), len(words),
            )
            break

        x, y = origin
        baseline = (x, y + int(word.size * BASELINE_RATIO))
        try:
            font.draw_glyphs(canvas, word.size, color, word.text, baseline)
        except GlyphDrawError as exc:
            logger.warning("Skipping %r: %s", word.text, exc)
            continue
        logger.debug("Placed %r at (%d, %d)", word.text, x, y)
        placements.append(Placement(word=word, x=x, y=y, color=color))

    return LayoutResult(placements=placements, requested=len(words))


class AdmissionGate:
    """Single-slot gate letting one render job run at a time."""

    def __init__(self) -> None:
        self._slot = threading.Lock()

    @property
    def busy(self) -> bool:
        return self._slot.locked()

    @contextmanager
    def admit(self) -> Iterator[None]:
        with self._slot:
            yield


@dataclass
class CloudRequest:
    words: List[WordSpec]
    width: int
    height: int
    background: Optional[str] = None
    quality: int = QUALITY_NORMAL

    def background_color(self) -> Color:
        if not self.background:
            return OPAQUE_WHITE
        return resolve_color(self.background)


@dataclass
class RenderResult:
    canvas: Canvas
    layout: LayoutResult


@dataclass
class RenderContext:
    """Shared state built once at startup: the font and the admission gate."""

    font: FontService
    config: CloudConfig = field(default_factory=CloudConfig)
    gate: AdmissionGate = field(default_factory=AdmissionGate)

    @classmethod
    def create(cls, config: Optional[CloudConfig] = None) -> "RenderContext":
        config = config or CloudConfig.from_env()
        return cls(font=FontService.load(config.font_path), config=config)


def render_cloud(
    context: RenderContext,
    request: CloudRequest,
    *,
    rng: Optional[random.Random] = None,
) -> RenderResult:
    if request.width <= 0 or request.height <= 0:
        raise ValidationError("width and height must be positive")

    with context.gate.admit():
        logger.info(
            "start: %d words on %dx%d canvas", len(request.words), request.width, request.height
        )
        canvas = Canvas(request.width, request.height, request.background_color())
        layout = layout_words(canvas, request.words, context.font, request.quality, rng=rng)
        logger.info("done: %d of %d words placed", layout.placed, layout.requested)
    return RenderResult(canvas=canvas, layout=layout)
