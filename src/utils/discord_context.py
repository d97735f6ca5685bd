# discord_context.py
# Glue between discord.py objects and the platform-neutral resolver types

# Standard Library Imports
from typing import Optional, Union

# Third-Party Imports
import discord
from discord.ext import commands

# Local Imports
from logger import get_logger
from utils.errors import PlatformError
from utils.resolver import (
    AttachmentRef,
    EmbedRef,
    Identity,
    MessageContext,
    StickerRef,
)

log = get_logger()


def attachment_ref(attachment: discord.Attachment) -> AttachmentRef:
    async def read() -> bytes:
        try:
            return await attachment.read()
        except discord.HTTPException as e:
            raise PlatformError(e) from e

    return AttachmentRef(attachment.filename, attachment.content_type, attachment.size, read)


def sticker_ref(sticker: discord.StickerItem) -> StickerRef:
    # lottie stickers are json animations, nothing we can decode
    url = None if sticker.format is discord.StickerFormatType.lottie else sticker.url
    return StickerRef(sticker.name, url)


def embed_ref(embed: discord.Embed) -> EmbedRef:
    return EmbedRef(
        url=embed.url,
        image_url=embed.image.url if embed.image else None,
        thumbnail_url=embed.thumbnail.url if embed.thumbnail else None,
    )


def message_context(message: discord.Message, follow_reply: bool = True) -> MessageContext:
    """Snapshot a message, following a resolved reply one level deep."""
    referenced = None
    if follow_reply and message.reference is not None:
        resolved = message.reference.resolved
        if isinstance(resolved, discord.Message):
            referenced = message_context(resolved, follow_reply=False)

    return MessageContext(
        author_id=message.author.id,
        guild_id=message.guild.id if message.guild else None,
        channel_id=message.channel.id,
        content=message.content or "",
        attachments=tuple(attachment_ref(a) for a in message.attachments),
        stickers=tuple(sticker_ref(s) for s in message.stickers),
        embeds=tuple(embed_ref(e) for e in message.embeds),
        referenced_message=referenced,
    )


def identity_of(target: Union[discord.User, discord.Member]) -> Identity:
    guild = getattr(target, "guild", None)
    guild_avatar = getattr(target, "guild_avatar", None)
    return Identity(
        user_id=target.id,
        avatar_hash=target.avatar.key if target.avatar else None,
        guild_id=guild.id if guild else None,
        guild_avatar_hash=guild_avatar.key if guild_avatar else None,
    )


class DiscordIdentityResolver:
    """Identity lookups through the discord.ext.commands converters of the invoking context."""

    def __init__(self, ctx: commands.Context):
        self.ctx = ctx

    async def member(self, token: str, guild_id: Optional[int], channel_id: int) -> Optional[Identity]:
        if guild_id is None or self.ctx.guild is None:
            return None
        try:
            member = await commands.MemberConverter().convert(self.ctx, token)
        except commands.BadArgument:
            return None
        except discord.HTTPException as e:
            raise PlatformError(e) from e
        return identity_of(member)

    async def user(self, token: str, guild_id: Optional[int], channel_id: int) -> Optional[Identity]:
        try:
            user = await commands.UserConverter().convert(self.ctx, token)
        except commands.BadArgument:
            return None
        except discord.HTTPException as e:
            raise PlatformError(e) from e
        return identity_of(user)

    async def emoji(self, token: str, guild_id: Optional[int], channel_id: int) -> Optional[str]:
        try:
            emoji = await commands.EmojiConverter().convert(self.ctx, token)
        except commands.BadArgument:
            return None
        return str(emoji.url)

    async def author(self, message: MessageContext) -> Identity:
        author = self.ctx.author
        if message.guild_id is not None and not isinstance(author, discord.Member) and self.ctx.guild:
            try:
                author = await self.ctx.guild.fetch_member(message.author_id)
            except discord.HTTPException as e:
                raise PlatformError(e) from e
        return identity_of(author)
