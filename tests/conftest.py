from __future__ import annotations

import random

import pytest

from cloud_core import CloudConfig, RenderContext
from glyphs import FontService
from tests.fonts import BoxFont


@pytest.fixture
def box_font() -> BoxFont:
    return BoxFont()


@pytest.fixture
def box_context(box_font: BoxFont) -> RenderContext:
    return RenderContext(font=box_font, config=CloudConfig())


@pytest.fixture(scope="session")
def pillow_font() -> FontService:
    return FontService.load()


@pytest.fixture
def pillow_context(pillow_font: FontService) -> RenderContext:
    return RenderContext(font=pillow_font, config=CloudConfig())


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)
