"""
Tests for turning discord.py objects into resolver inputs.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import discord
import pytest
from discord.ext import commands

from utils.discord_context import (
    DiscordIdentityResolver,
    attachment_ref,
    embed_ref,
    identity_of,
    message_context,
    sticker_ref,
)
from utils.errors import PlatformError
from utils.resolver import Identity, MessageContext


def http_exception(status=503):
    return discord.HTTPException(MagicMock(status=status, reason="Service Unavailable"), "upstream failed")


def fake_attachment(content_type="image/png", data=b"png"):
    attachment = MagicMock(spec=discord.Attachment)
    attachment.filename = "a.png"
    attachment.content_type = content_type
    attachment.size = len(data)
    attachment.read = AsyncMock(return_value=data)
    return attachment


def fake_message(content="", attachments=(), stickers=(), embeds=(), reference=None, guild_id=1):
    message = MagicMock(spec=discord.Message)
    message.author = SimpleNamespace(id=10)
    message.guild = SimpleNamespace(id=guild_id) if guild_id else None
    message.channel = SimpleNamespace(id=2)
    message.content = content
    message.attachments = list(attachments)
    message.stickers = list(stickers)
    message.embeds = list(embeds)
    message.reference = reference
    return message


@pytest.mark.asyncio
async def test_attachment_ref_reads_bytes():
    ref = attachment_ref(fake_attachment())
    assert ref.is_image
    assert await ref.read() == b"png"


@pytest.mark.asyncio
async def test_attachment_read_failure_is_platform_error():
    attachment = fake_attachment()
    attachment.read.side_effect = http_exception()
    with pytest.raises(PlatformError):
        await attachment_ref(attachment).read()


def test_attachment_without_content_type_is_not_an_image():
    assert not attachment_ref(fake_attachment(content_type=None)).is_image


def test_lottie_sticker_has_no_url():
    lottie = SimpleNamespace(name="dance", format=discord.StickerFormatType.lottie, url="https://x/1.json")
    png = SimpleNamespace(name="wave", format=discord.StickerFormatType.png, url="https://x/2.png")
    assert sticker_ref(lottie).url is None
    assert sticker_ref(png).url == "https://x/2.png"


def test_embed_ref():
    embed = discord.Embed(url="https://example.com")
    embed.set_thumbnail(url="https://example.com/thumb.png")
    ref = embed_ref(embed)
    assert ref.image_url is None
    assert ref.source_urls == ("https://example.com/thumb.png",)


def test_message_context_follows_reply_once():
    inner = fake_message(content="deepest")
    referenced = fake_message(content="https://example.com/a.png hi", reference=SimpleNamespace(resolved=inner))
    message = fake_message(
        attachments=[fake_attachment()],
        reference=SimpleNamespace(resolved=referenced),
    )

    context = message_context(message)

    assert isinstance(context, MessageContext)
    assert (context.author_id, context.guild_id, context.channel_id) == (10, 1, 2)
    assert len(context.attachments) == 1
    assert context.referenced_message.content == "https://example.com/a.png hi"
    assert context.referenced_message.referenced_message is None


def test_message_context_ignores_deleted_reply():
    message = fake_message(reference=SimpleNamespace(resolved=MagicMock(spec=discord.DeletedReferencedMessage)))
    assert message_context(message).referenced_message is None


def test_message_context_in_dms():
    assert message_context(fake_message(guild_id=None)).guild_id is None


def test_identity_of_member():
    member = SimpleNamespace(
        id=42,
        avatar=SimpleNamespace(key="abc"),
        guild=SimpleNamespace(id=9),
        guild_avatar=SimpleNamespace(key="a_def"),
    )
    assert identity_of(member) == Identity(42, "abc", 9, "a_def")


def test_identity_of_user_without_avatar():
    assert identity_of(SimpleNamespace(id=42, avatar=None)) == Identity(42)


def make_ctx(guild=True):
    ctx = MagicMock(spec=commands.Context)
    ctx.guild = MagicMock() if guild else None
    ctx.author = SimpleNamespace(id=10, avatar=None)
    return ctx


@pytest.mark.asyncio
async def test_member_not_found_is_none():
    with patch.object(commands.MemberConverter, "convert", AsyncMock(side_effect=commands.MemberNotFound("nobody"))):
        assert await DiscordIdentityResolver(make_ctx()).member("nobody", 1, 2) is None


@pytest.mark.asyncio
async def test_member_lookup_skipped_in_dms():
    converter = AsyncMock()
    with patch.object(commands.MemberConverter, "convert", converter):
        assert await DiscordIdentityResolver(make_ctx(guild=False)).member("<@1>", None, 2) is None
    converter.assert_not_called()


@pytest.mark.asyncio
async def test_user_http_failure_is_platform_error():
    with patch.object(commands.UserConverter, "convert", AsyncMock(side_effect=http_exception())):
        with pytest.raises(PlatformError):
            await DiscordIdentityResolver(make_ctx()).user("<@1>", 1, 2)


@pytest.mark.asyncio
async def test_user_found():
    user = SimpleNamespace(id=5, avatar=SimpleNamespace(key="hash"))
    with patch.object(commands.UserConverter, "convert", AsyncMock(return_value=user)):
        identity = await DiscordIdentityResolver(make_ctx()).user("<@5>", 1, 2)
    assert identity == Identity(5, "hash")


@pytest.mark.asyncio
async def test_emoji_lookup():
    emoji = SimpleNamespace(url="https://cdn.discordapp.com/emojis/1.png")
    with patch.object(commands.EmojiConverter, "convert", AsyncMock(return_value=emoji)):
        assert await DiscordIdentityResolver(make_ctx()).emoji("pepe", 1, 2) == "https://cdn.discordapp.com/emojis/1.png"


@pytest.mark.asyncio
async def test_author_identity_in_dms():
    ctx = make_ctx(guild=False)
    identity = await DiscordIdentityResolver(ctx).author(MessageContext(author_id=10, guild_id=None, channel_id=2))
    assert identity == Identity(10)
