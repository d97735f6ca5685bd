"""
Pytest configuration shared by the resolver, pipeline and command tests.

Keeps the error log out of the working tree and provides in-memory
image fixtures so no test touches the network or the disk.
"""

import io
import os
import tempfile
from typing import Sequence, Tuple

import pytest
from PIL import Image

os.environ.setdefault("ERROR_LOG", os.path.join(tempfile.gettempdir(), "prism-test-errors.log"))


def make_png(size: Tuple[int, int] = (64, 48), color=(200, 30, 30, 255)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGBA", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def make_gif(colors: Sequence[Tuple[int, int, int]], size: Tuple[int, int] = (32, 32), duration: int = 120) -> bytes:
    frames = [Image.new("RGB", size, color) for color in colors]
    buffer = io.BytesIO()
    frames[0].save(
        buffer,
        format="GIF",
        save_all=True,
        append_images=frames[1:],
        duration=duration,
        loop=0,
    )
    return buffer.getvalue()


RAINBOW = [
    (255, 0, 0),
    (0, 255, 0),
    (0, 0, 255),
    (255, 255, 0),
    (0, 255, 255),
]


@pytest.fixture
def png_bytes():
    return make_png()


@pytest.fixture
def gif_bytes():
    """Five visibly different frames, so the encoder never merges them."""
    return make_gif(RAINBOW)
