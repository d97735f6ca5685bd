# errors.py
# Error taxonomy for image resolution and the frame pipeline.
# Every error renders a message that can be replied to the user as-is.

from typing import Optional

from discord.ext import commands

from utils.helpers import humanize_bytes


class ImageError(commands.CommandError):
    """Base class, subclassing CommandError lets the command framework route it to cog_command_error."""


# Resolution

class ResolverError(ImageError):
    """Raised while turning a command argument or message into image bytes."""


class ImageTooLarge(ResolverError):
    """Decisive: the user clearly meant this image, so the resolver stops here."""

    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(
            f"Provided image has a size of `{humanize_bytes(size)}` "
            f"which exceeds the limit of `{humanize_bytes(limit)}`"
        )


class InvalidContentType(ResolverError):
    def __init__(self, content_type: Optional[str] = None):
        self.content_type = content_type
        super().__init__("Only content types of `image/*` are supported")


class FetchUrlError(ResolverError):
    """Transport failure or a non-2xx status."""

    def __init__(self, url: Optional[str] = None, status: Optional[int] = None):
        self.url = url
        self.status = status
        super().__init__("Something went wrong during the HTTP request to the provided URL")


class EmojiParseError(ResolverError):
    def __init__(self, token: str):
        self.token = token
        super().__init__(f"An emoji could not be parsed from the provided argument: `{token}`")


class PlatformError(ResolverError):
    """Wraps discord.HTTPException raised by the platform collaborator."""

    def __init__(self, original: Exception):
        self.original = original
        super().__init__(str(original))


# Frame pipeline

class PipelineError(ImageError):
    """Raised by the frame pipeline before the transform runs, or while encoding."""


class TooManyFrames(PipelineError):
    def __init__(self, count: int, limit: int):
        self.count = count
        self.limit = limit
        super().__init__(f"Provided image has `{count}` frames which exceeds the limit of `{limit}`")


class ImageDecodeError(PipelineError):
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"The image could not be decoded: {reason}")


class ImageEncodeError(PipelineError):
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"The output could not be encoded: {reason}")
