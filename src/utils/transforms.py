# transforms.py
# The actual image functions for each individual command.
# Each takes a FrameSequence (+ command arguments) and returns a new one, no shared state.

# Standard Library Imports
import os
from typing import List, Optional, Tuple

# Third-Party Imports
import numpy as np
from PIL import Image, ImageDraw, ImageFont

# Local Imports
from extraconfig import HUEROTATE_STEP
from utils.imaging import FrameSequence, process_gif

FONT_PATH = os.path.join(os.getcwd(), "resources", "impact.ttf")


def invert_func(frames: FrameSequence) -> FrameSequence:
    """Negates the colour channels, alpha stays as is."""
    sequence = FrameSequence()
    for frame in frames:
        pixels = np.array(frame.image)
        pixels[..., :3] = 255 - pixels[..., :3]
        sequence.push(frame.with_image(Image.fromarray(pixels)))
    return sequence


def hue_rotate(image: Image.Image, degrees: int) -> Image.Image:
    # PIL's HSV hue channel is 0-255 for 0-360 degrees
    shift = int(round(degrees / 360 * 255)) % 256
    hue, saturation, value = image.convert("RGB").convert("HSV").split()
    rotated = ((np.array(hue, dtype=np.uint16) + shift) % 256).astype(np.uint8)

    out = Image.merge("HSV", (Image.fromarray(rotated), saturation, value)).convert("RGBA")
    out.putalpha(image.getchannel("A"))
    return out


def huerotate_func(frames: FrameSequence) -> FrameSequence:
    """Rotates the hue through 360 degrees, one output frame per step."""
    sequence = FrameSequence()
    for frame, degrees in process_gif(frames, range(0, 360, HUEROTATE_STEP)):
        sequence.push(frame.with_image(hue_rotate(frame.image, degrees)))
    return sequence


def _load_font(size: int) -> ImageFont.FreeTypeFont:
    if os.path.exists(FONT_PATH):
        return ImageFont.truetype(FONT_PATH, size)
    return ImageFont.load_default(size=size)


def wrap_text(text: str, font: ImageFont.FreeTypeFont, max_width: int) -> List[str]:
    words: List[str] = []
    for word in text.split():
        # break words that do not fit on a line by themselves
        while len(word) > 1 and font.getlength(word) > max_width:
            cut = next(i for i in range(1, len(word) + 1) if font.getlength(word[:i]) > max_width)
            cut = max(1, cut - 1)
            words.append(word[:cut])
            word = word[cut:]
        words.append(word)

    lines: List[str] = []
    current = ""
    for word in words:
        candidate = f"{current} {word}" if current else word
        if font.getlength(candidate) <= max_width:
            current = candidate
        else:
            if current:
                lines.append(current)
            current = word
    if current:
        lines.append(current)
    return lines


def _caption_layout(text: str, width: int, padding: int = 10) -> Tuple[ImageFont.FreeTypeFont, List[str], int, int]:
    """Font, wrapped lines, line height and box height for a caption over an image `width` wide."""
    font_size = max(12, width // 10)
    font = _load_font(font_size)
    lines = wrap_text(text, font, int(width * 0.9))
    line_height = font.getbbox("Ay")[3]
    box_height = len(lines) * line_height + 2 * padding
    return font, lines, line_height, box_height


def caption_func(frames: FrameSequence, text: str, padding: Optional[int] = 10) -> FrameSequence:
    """Adds a meme caption box above the image."""
    first = frames.first_frame()
    if first is None:
        return FrameSequence()

    font, lines, line_height, box_height = _caption_layout(text, first.width, padding)

    sequence = FrameSequence()
    for frame in frames:
        w, h = frame.image.size
        canvas = Image.new("RGBA", (w, h + box_height), (255, 255, 255, 255))
        draw = ImageDraw.Draw(canvas)
        for i, line in enumerate(lines):
            tx = (w - font.getlength(line)) / 2
            ty = padding + i * line_height
            draw.text((tx, ty), line, font=font, fill=(0, 0, 0, 255))
        canvas.paste(frame.image, (0, box_height), frame.image)
        sequence.push(frame.with_image(canvas))
    return sequence
