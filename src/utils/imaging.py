# imaging.py
# Frame pipeline: decode -> frame cap -> contain size -> transform -> loop -> encode.
# Everything in here is synchronous and CPU bound, ProcessingJob.run() moves it off the event loop.

# Standard Library Imports
import asyncio
import io
import itertools
import math
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Iterable, Iterator, List, Optional, Tuple, TypeVar

# Third-Party Imports
from PIL import Image, ImageSequence, UnidentifiedImageError

# Local Imports
from extraconfig import DEFAULT_FRAME_DELAY, DEFAULT_MAX_DIM, DEFAULT_MAX_FRAMES, DEFAULT_MAX_SIZE
from logger import get_logger
from utils.errors import ImageDecodeError, ImageEncodeError, TooManyFrames
from utils.helpers import humanize_bytes, humanize_elapsed

log = get_logger()

T = TypeVar("T")


class Disposal(Enum):
    NONE = "none"
    BACKGROUND = "background"
    PREVIOUS = "previous"

    @classmethod
    def from_gif(cls, value: Optional[int]) -> "Disposal":
        # 0 (unspecified) and 1 (do not dispose) both keep the frame
        return {2: cls.BACKGROUND, 3: cls.PREVIOUS}.get(value or 0, cls.NONE)

    @classmethod
    def from_apng(cls, value: Optional[int]) -> "Disposal":
        return {1: cls.BACKGROUND, 2: cls.PREVIOUS}.get(value or 0, cls.NONE)

    def to_gif(self) -> int:
        return {Disposal.NONE: 1, Disposal.BACKGROUND: 2, Disposal.PREVIOUS: 3}[self]


@dataclass(frozen=True)
class Frame:
    image: Image.Image  # always RGBA
    delay: int = DEFAULT_FRAME_DELAY  # ms
    disposal: Disposal = Disposal.NONE

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    def with_image(self, image: Image.Image) -> "Frame":
        """Same timing and disposal, new pixels."""
        return replace(self, image=image)


@dataclass
class FrameSequence:
    frames: List[Frame] = field(default_factory=list)
    loop: Optional[int] = None  # None plays once, 0 loops forever

    def __len__(self) -> int:
        return len(self.frames)

    def __iter__(self) -> Iterator[Frame]:
        return iter(self.frames)

    def __getitem__(self, index: int) -> Frame:
        return self.frames[index]

    def push(self, frame: Frame) -> None:
        self.frames.append(frame)

    def first_frame(self) -> Optional[Frame]:
        return self.frames[0] if self.frames else None

    @property
    def is_animated(self) -> bool:
        return len(self.frames) > 1

    def looped_infinitely(self) -> "FrameSequence":
        return replace(self, loop=0)

    def encode(self) -> Tuple[bytes, bool]:
        """Encode to GIF when animated, PNG otherwise. Returns (bytes, is_animated)."""
        if not self.frames:
            raise ImageEncodeError("the transform produced no frames")

        buffer = io.BytesIO()
        try:
            if self.is_animated:
                frames = self._merged_frames()
                durations = [frame.delay for frame in frames]
                disposals = [frame.disposal.to_gif() for frame in frames]
                params = {
                    "format": "GIF",
                    "save_all": True,
                    "append_images": [frame.image for frame in frames[1:]],
                    # Pillow rejects per-frame lists once it is down to a single frame
                    "duration": durations if len(set(durations)) > 1 else durations[0],
                    "disposal": disposals if len(set(disposals)) > 1 else disposals[0],
                }
                if self.loop is not None:
                    params["loop"] = self.loop
                frames[0].image.save(buffer, **params)
            else:
                self.frames[0].image.save(buffer, format="PNG")
        except (OSError, ValueError, TypeError, EOFError) as e:
            raise ImageEncodeError(str(e)) from e

        return buffer.getvalue(), self.is_animated

    def _merged_frames(self) -> List[Frame]:
        """Consecutive identical frames folded into the first one, delays summed."""
        merged: List[Frame] = []
        previous = None
        for frame in self.frames:
            pixels = (frame.image.size, frame.image.tobytes())
            if merged and pixels == previous:
                merged[-1] = replace(merged[-1], delay=merged[-1].delay + frame.delay)
                continue
            merged.append(frame)
            previous = pixels
        return merged


TransformFn = Callable[..., FrameSequence]


@dataclass(frozen=True)
class Caps:
    max_width: Optional[int] = None
    max_height: Optional[int] = DEFAULT_MAX_DIM
    max_frame_count: Optional[int] = DEFAULT_MAX_FRAMES
    max_byte_size: int = DEFAULT_MAX_SIZE

    @property
    def frame_limit(self) -> int:
        return self.max_frame_count if self.max_frame_count is not None else DEFAULT_MAX_FRAMES


def _read_disposal(image: Image.Image) -> Disposal:
    if image.format == "GIF":
        return Disposal.from_gif(getattr(image, "disposal_method", 0))
    if image.format == "PNG":
        return Disposal.from_apng(image.info.get("disposal", 0))
    return Disposal.NONE


def contain_target(size: Tuple[int, int], width: Optional[int], height: Optional[int]) -> Optional[Tuple[int, int]]:
    """
    The size an image of `size` is shrunk to, or None when it is kept as is.
    Only images at least as large as the bounds are resized. A missing bound follows
    the aspect ratio, when both are given both are used as-is.
    """
    if width is None and height is None:
        return None

    w, h = size
    resolved_width = width if width is not None else math.ceil(height / h * w)
    resolved_height = height if height is not None else math.ceil(width / w * h)

    if (resolved_width, resolved_height) == (w, h):
        return None
    if w >= resolved_width or h >= resolved_height:
        return resolved_width, resolved_height
    return None


def decode_frames(
    data: bytes,
    max_frames: Optional[int] = None,
    max_width: Optional[int] = None,
    max_height: Optional[int] = None,
) -> FrameSequence:
    """
    Decode still or animated image bytes into RGBA frames, sniffing the format from the content.
    The declared frame count is checked against `max_frames` before any frame is decoded,
    then every frame is shrunk to the bounds as soon as it is decoded so only one
    full size frame is ever held in memory.
    """
    try:
        image = Image.open(io.BytesIO(data))
        count = getattr(image, "n_frames", 1)
        if max_frames is not None and count > max_frames:
            raise TooManyFrames(count, max_frames)

        target = contain_target(image.size, max_width, max_height)
        if target is not None:
            log.trace("Resizing %dx%d -> %dx%d", *image.size, *target)

        sequence = FrameSequence()
        for frame in ImageSequence.Iterator(image):
            delay = frame.info.get("duration") or DEFAULT_FRAME_DELAY
            pixels = frame.convert("RGBA")
            if target is not None:
                pixels = pixels.resize(target, Image.LANCZOS)
            sequence.push(Frame(pixels, int(delay), _read_disposal(image)))
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError, EOFError) as e:
        raise ImageDecodeError(str(e)) from e

    if not sequence.frames:
        raise ImageDecodeError("the image has no frames")
    return sequence


def sniff_extension(data: bytes) -> str:
    """File extension for image bytes, by content. Unknown formats are sent as png."""
    try:
        with Image.open(io.BytesIO(data)) as image:
            image_format = (image.format or "").lower()
    except (UnidentifiedImageError, OSError, ValueError):
        return "png"
    return {"jpeg": "jpg", "": "png"}.get(image_format, image_format)


def process_gif(frames: FrameSequence, steps: Iterable[T]) -> Iterator[Tuple[Frame, T]]:
    """
    Zips a finite step generator with the input frames, cycling the frames,
    so a still image gets one frame per step and an animation keeps playing across them.
    """
    return zip(itertools.cycle(frames.frames), steps)


def run_pipeline(data: bytes, caps: Caps, transform: TransformFn, arguments: Tuple[Any, ...] = ()) -> Tuple[bytes, bool]:
    """Decode (bounded in frames and size), transform and encode. Returns (encoded bytes, is_animated)."""
    limit = caps.frame_limit
    sequence = decode_frames(data, limit, caps.max_width, caps.max_height)
    if len(sequence) > limit:
        raise TooManyFrames(len(sequence), limit)

    output = transform(sequence, *arguments).looped_infinitely()
    return output.encode()


@dataclass(frozen=True)
class JobResult:
    data: bytes
    is_animated: bool
    elapsed: float  # seconds, decode through encode

    @property
    def extension(self) -> str:
        return "gif" if self.is_animated else "png"

    @property
    def filename(self) -> str:
        return f"output.{self.extension}"

    @property
    def elapsed_ms(self) -> int:
        return int(self.elapsed * 1000)

    def describe(self) -> str:
        return f"**Process Time:** `{humanize_elapsed(self.elapsed)}` · {humanize_bytes(len(self.data))}"


@dataclass(frozen=True)
class ProcessingJob:
    """One immutable execution request, built by ImageExecutor."""
    source: bytes
    transform: TransformFn
    caps: Caps = Caps()
    arguments: Tuple[Any, ...] = ()

    def execute(self) -> JobResult:
        started = time.perf_counter()
        data, is_animated = run_pipeline(self.source, self.caps, self.transform, self.arguments)
        elapsed = time.perf_counter() - started
        log.successtrace(
            "%s finished in %s (%s, %s)",
            getattr(self.transform, "__name__", "transform"),
            humanize_elapsed(elapsed),
            "gif" if is_animated else "png",
            humanize_bytes(len(data)),
        )
        return JobResult(data, is_animated, elapsed)

    async def run(self) -> JobResult:
        """Run on a worker thread so decode/transform/encode never blocks the event loop."""
        return await asyncio.to_thread(self.execute)


class ImageExecutor:
    """
    Step-wise builder for a ProcessingJob.
    Ergo: ImageExecutor().function(invert_func).max_frames(100).build(source)
    """

    def __init__(self):
        self._function: Optional[TransformFn] = None
        self._arguments: Tuple[Any, ...] = ()
        self._max_width: Optional[int] = None
        self._max_height: Optional[int] = DEFAULT_MAX_DIM
        self._max_frames: Optional[int] = DEFAULT_MAX_FRAMES
        self._max_size: int = DEFAULT_MAX_SIZE

    def function(self, function: TransformFn) -> "ImageExecutor":
        """The image function to execute, must be called."""
        self._function = function
        return self

    def arguments(self, *arguments: Any) -> "ImageExecutor":
        self._arguments = arguments
        return self

    def max_width(self, max_width: int) -> "ImageExecutor":
        self._max_width = max_width
        return self

    def max_height(self, max_height: int) -> "ImageExecutor":
        self._max_height = max_height
        return self

    def max_frames(self, max_frames: int) -> "ImageExecutor":
        self._max_frames = max_frames
        return self

    def max_size(self, max_size: int) -> "ImageExecutor":
        self._max_size = max_size
        return self

    @property
    def caps(self) -> Caps:
        return Caps(
            max_width=self._max_width,
            max_height=self._max_height,
            max_frame_count=self._max_frames,
            max_byte_size=self._max_size,
        )

    def build(self, source: bytes) -> ProcessingJob:
        if self._function is None:
            raise ValueError("No function was specified, have you called `function(f)`?")
        return ProcessingJob(source, self._function, self.caps, self._arguments)
