# resolver.py
# Resolves a single source image from a command argument and the invoking message.
#
# In order it tries:
#   - a guild member from the provided argument
#   - a discord user from the provided argument
#   - a custom emoji (by lookup, then by parsing the token), then a unicode emoji
#   - the argument as a URL, unwrapping tenor/imgur pages
# if all of that fails or no argument was provided:
#   - attached files -> stickers -> embeds
#   - the same for a referenced message, then its first word as an argument
#   - falls back to the command author's avatar

# Standard Library Imports
import re
import urllib.parse
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, List, NamedTuple, Optional, Protocol, Tuple

# Local Imports
from extraconfig import DEFAULT_MAX_SIZE
from logger import get_logger
from utils.embeds import is_embed_page, unwrap_embed
from utils.errors import (
    EmojiParseError,
    ImageTooLarge,
    InvalidContentType,
    PlatformError,
    ResolverError,
)
from utils.fetch import ByteFetcher, validate_size
from utils.helpers import first_token

log = get_logger()

CDN_BASE = "https://cdn.discordapp.com"
EMOJI_REGEX = re.compile(r"^<(a?):([a-zA-Z0-9_]{1,32}):([0-9]{15,20})>$")
ID_REGEX = re.compile(r"^([0-9]{15,20})$")
NOT_UNICODE_EMOJI_REGEX = re.compile(r"[A-Za-z/:<>]")


class Provenance(Enum):
    ARGUMENT = "argument"
    ATTACHMENT = "attachment"
    STICKER = "sticker"
    EMBED = "embed"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class AttachmentRef:
    filename: str
    content_type: Optional[str]
    size: int
    read: Callable[[], Awaitable[bytes]]

    @property
    def is_image(self) -> bool:
        return (self.content_type or "unknown").lower().startswith("image/")


@dataclass(frozen=True)
class StickerRef:
    name: str
    url: Optional[str] = None  # lottie stickers have no image


@dataclass(frozen=True)
class EmbedRef:
    url: Optional[str] = None
    image_url: Optional[str] = None
    thumbnail_url: Optional[str] = None

    @property
    def source_urls(self) -> Tuple[str, ...]:
        """
        Candidate urls in order. Tenor/imgur embeds only carry a still thumbnail, so the
        page is unwrapped first and the still is kept for when unwrapping fails.
        """
        urls = []
        if is_embed_page(self.url):
            urls.append(self.url)
        still = self.image_url or self.thumbnail_url
        if still:
            urls.append(still)
        return tuple(urls)


@dataclass(frozen=True)
class MessageContext:
    author_id: int
    guild_id: Optional[int]
    channel_id: int
    content: str = ""
    attachments: Tuple[AttachmentRef, ...] = ()
    stickers: Tuple[StickerRef, ...] = ()
    embeds: Tuple[EmbedRef, ...] = ()
    referenced_message: Optional["MessageContext"] = None


@dataclass(frozen=True)
class ResolutionRequest:
    raw_argument: Optional[str]
    message: MessageContext


@dataclass(frozen=True)
class ResolvedImage:
    data: bytes
    provenance: Provenance


@dataclass(frozen=True)
class Identity:
    """A user or guild member, reduced to what is needed to build an avatar url."""
    user_id: int
    avatar_hash: Optional[str] = None
    guild_id: Optional[int] = None
    guild_avatar_hash: Optional[str] = None

    @property
    def is_animated(self) -> bool:
        return (self.guild_avatar_hash or self.avatar_hash or "").startswith("a_")

    @property
    def avatar_url(self) -> str:
        """Animated avatars as gif, everything else as png instead of webp."""
        ext = "gif" if self.is_animated else "png"
        if self.guild_id and self.guild_avatar_hash:
            return f"{CDN_BASE}/guilds/{self.guild_id}/users/{self.user_id}/avatars/{self.guild_avatar_hash}.{ext}?size=1024"
        if self.avatar_hash:
            return f"{CDN_BASE}/avatars/{self.user_id}/{self.avatar_hash}.{ext}?size=1024"
        return f"{CDN_BASE}/embed/avatars/{(self.user_id >> 22) % 6}.png"


class IdentityResolver(Protocol):
    """Platform lookups the resolver needs but does not implement itself."""

    async def member(self, token: str, guild_id: Optional[int], channel_id: int) -> Optional[Identity]: ...

    async def user(self, token: str, guild_id: Optional[int], channel_id: int) -> Optional[Identity]: ...

    async def emoji(self, token: str, guild_id: Optional[int], channel_id: int) -> Optional[str]: ...

    async def author(self, message: MessageContext) -> Identity: ...


def parse_emoji(token: str) -> Tuple[bool, str]:
    """
    Parse `<a:name:id>` / `<:name:id>` or a bare 15-20 digit id into (animated, id).
    Bare ids are never animated.
    """
    match = EMOJI_REGEX.match(token)
    if match:
        return bool(match.group(1)), match.group(3)
    match = ID_REGEX.match(token)
    if match:
        return False, match.group(1)
    raise EmojiParseError(token)


def emoji_url(token: str) -> str:
    animated, emoji_id = parse_emoji(token)
    return f"{CDN_BASE}/emojis/{emoji_id}.{'gif' if animated else 'png'}"


def unicode_emoji_url(token: str) -> Optional[str]:
    if token.isascii() or NOT_UNICODE_EMOJI_REGEX.search(token):
        return None
    return f"https://emojicdn.elk.sh/{urllib.parse.quote(token)}?style=twitter"


class StepStatus(Enum):
    FOUND = "found"
    SKIPPED = "skipped"  # not applicable or a candidate-local failure, try the next one
    ABORT = "abort"  # decisive failure, stop resolving


@dataclass(frozen=True)
class StepResult:
    status: StepStatus
    image: Optional[ResolvedImage] = None
    error: Optional[ResolverError] = None

    @classmethod
    def found(cls, image: ResolvedImage) -> "StepResult":
        return cls(StepStatus.FOUND, image=image)

    @classmethod
    def skipped(cls, error: Optional[ResolverError] = None) -> "StepResult":
        return cls(StepStatus.SKIPPED, error=error)

    @classmethod
    def abort(cls, error: ResolverError) -> "StepResult":
        return cls(StepStatus.ABORT, error=error)


class Step(NamedTuple):
    label: str
    run: Callable[[], Awaitable[StepResult]]


class SourceResolver:
    """Resolves a source image from command arguments or references."""

    def __init__(self, fetcher: ByteFetcher, identities: IdentityResolver, max_size: int = DEFAULT_MAX_SIZE):
        self.fetcher = fetcher
        self.identities = identities
        self.max_size = max_size

    # Candidate plumbing

    async def _attempt(
        self,
        provenance: Provenance,
        fetch: Callable[[], Awaitable[Optional[bytes]]],
    ) -> StepResult:
        """Run one candidate and classify the outcome. `fetch` returns None when it does not apply."""
        try:
            data = await fetch()
        except (ImageTooLarge, PlatformError) as e:
            return StepResult.abort(e)
        except ResolverError as e:
            return StepResult.skipped(e)
        if data is None:
            return StepResult.skipped()
        return StepResult.found(ResolvedImage(data, provenance))

    def _step(self, label: str, provenance: Provenance, fetch: Callable[[], Awaitable[Optional[bytes]]]) -> Step:
        return Step(label, lambda: self._attempt(provenance, fetch))

    async def _run_chain(self, steps: List[Step]) -> Optional[ResolvedImage]:
        for step in steps:
            result = await step.run()
            if result.status is StepStatus.FOUND:
                log.successtrace("Resolved image from %s (%d bytes)", step.label, len(result.image.data))
                return result.image
            if result.status is StepStatus.ABORT:
                log.warning("Resolution aborted at %s: %s", step.label, result.error)
                raise result.error
            if result.error is not None:
                log.warningtrace("Skipped %s: %s", step.label, result.error)
        return None

    async def resolve_url(self, url: str) -> bytes:
        """Fetch a user provided URL, unwrapping tenor/imgur pages when the URL is not an image."""
        url = url.strip().lstrip("<").rstrip(">").strip()
        try:
            return await self.fetcher.get_image(url, self.max_size)
        except InvalidContentType:
            if not is_embed_page(url):
                raise
        direct = await unwrap_embed(self.fetcher, url)
        return await self.fetcher.get_image(direct, self.max_size)

    # Argument candidates

    def _argument_steps(self, token: str, message: MessageContext, mentions: bool = True) -> List[Step]:
        guild_id, channel_id = message.guild_id, message.channel_id
        prov = Provenance.ARGUMENT

        async def member():
            identity = await self.identities.member(token, guild_id, channel_id)
            return None if identity is None else await self.fetcher.get_image(identity.avatar_url, self.max_size)

        async def user():
            identity = await self.identities.user(token, guild_id, channel_id)
            return None if identity is None else await self.fetcher.get_image(identity.avatar_url, self.max_size)

        async def custom_emoji():
            url = await self.identities.emoji(token, guild_id, channel_id)
            return None if url is None else await self.fetcher.get_image(url, self.max_size)

        async def parsed_emoji():
            return await self.fetcher.get_image(emoji_url(token), self.max_size)

        async def unicode_emoji():
            url = unicode_emoji_url(token)
            return None if url is None else await self.fetcher.get_image(url, self.max_size)

        async def url():
            target = token.strip("<>")
            if not target.startswith(("http://", "https://")):
                return None
            return await self.resolve_url(target)

        steps = []
        if mentions:
            steps.append(self._step(f"member `{token}`", prov, member))
            steps.append(self._step(f"user `{token}`", prov, user))
        steps.extend([
            self._step(f"emoji lookup `{token}`", prov, custom_emoji),
            self._step(f"emoji token `{token}`", prov, parsed_emoji),
            self._step(f"unicode emoji `{token}`", prov, unicode_emoji),
            self._step(f"url `{token}`", prov, url),
        ])
        return steps

    # Message candidates

    def _message_steps(self, message: MessageContext, label: str) -> List[Step]:
        steps = []

        for attachment in message.attachments:
            if not attachment.is_image:
                continue

            async def download(attachment=attachment):
                validate_size(attachment.size, self.max_size)
                data = await attachment.read()
                validate_size(len(data), self.max_size)
                return data

            steps.append(self._step(f"{label} attachment `{attachment.filename}`", Provenance.ATTACHMENT, download))

        for sticker in message.stickers:
            if sticker.url is None:
                continue

            async def sticker_image(url=sticker.url):
                return await self.fetcher.get_image(url, self.max_size)

            steps.append(self._step(f"{label} sticker `{sticker.name}`", Provenance.STICKER, sticker_image))

        for embed in message.embeds:
            for source_url in embed.source_urls:

                async def embed_image(url=source_url):
                    return await self.resolve_url(url)

                steps.append(self._step(f"{label} embed `{source_url}`", Provenance.EMBED, embed_image))

        return steps

    def candidate_steps(self, request: ResolutionRequest) -> List[Step]:
        """The full ordered chain, minus the avatar fallback."""
        message = request.message
        steps = []

        argument = request.raw_argument.strip() if request.raw_argument else None
        if argument:
            steps.extend(self._argument_steps(argument, message))

        steps.extend(self._message_steps(message, "message"))

        referenced = message.referenced_message
        if referenced is not None:
            steps.extend(self._message_steps(referenced, "reply"))
            token = first_token(referenced.content)
            if token:
                steps.extend(self._argument_steps(token, referenced, mentions=False))

        return steps

    async def resolve(self, request: ResolutionRequest) -> ResolvedImage:
        """The primary method, resolves an image or raises the error that stopped resolution."""
        image = await self._run_chain(self.candidate_steps(request))
        if image is not None:
            return image

        identity = await self.identities.author(request.message)
        log.trace("Falling back to the avatar of %s", identity.user_id)
        data = await self.fetcher.get_image(identity.avatar_url, self.max_size)
        return ResolvedImage(data, Provenance.FALLBACK)
