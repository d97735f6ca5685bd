# Standard Library Imports
import io
from typing import Optional


# Third-Party Imports
import discord
from discord.ext import commands


# Local Imports
from config import MAX_IMAGE_SIZE, cooldown
from logger import get_logger
from utils.discord_context import DiscordIdentityResolver, message_context
from utils.errors import ImageError
from utils.fetch import ByteFetcher
from utils.imaging import ImageExecutor, JobResult, sniff_extension
from utils.resolver import ResolutionRequest, ResolvedImage, SourceResolver
from utils.transforms import caption_func, huerotate_func, invert_func


log = get_logger()

SOURCE_HELP = (
    "Image can either be a member, user, emoji, link or attachment, "
    "a sticker, embed or the message you are replying to. Defaults to your avatar."
)


async def send_output(ctx: commands.Context, result: JobResult) -> None:
    """Replies to the invoking message with the encoded output and its process time."""
    file = discord.File(io.BytesIO(result.data), filename=result.filename)
    await ctx.reply(
        content=result.describe(),
        file=file,
        mention_author=False,
        allowed_mentions=discord.AllowedMentions.none(),
    )


class Imaging(commands.Cog):
    """Commands that resolve an image and run it through the frame pipeline."""

    def __init__(self, bot: commands.Bot):
        self.bot = bot

    async def cog_command_error(self, ctx: commands.Context, error: Exception) -> None:
        error = getattr(error, "original", error)

        if isinstance(error, ImageError):
            log.warningtrace(f"{ctx.command} by {ctx.author.id} failed: {error}")
            await ctx.reply(f"❌ {error}", mention_author=False)
        elif isinstance(error, commands.UserInputError):
            await ctx.reply(f"❌ {error}", mention_author=False)
        else:
            log.error(f"Unhandled error in {ctx.command}", exc_info=error)
            await ctx.reply("❌ Something went wrong while running this command.", mention_author=False)

    async def _resolve(self, ctx: commands.Context, argument: Optional[str], max_size: int) -> ResolvedImage:
        resolver = SourceResolver(
            ByteFetcher(getattr(self.bot, "http_session", None)),
            DiscordIdentityResolver(ctx),
            max_size=min(max_size, MAX_IMAGE_SIZE),
        )
        request = ResolutionRequest(argument, message_context(ctx.message))
        return await resolver.resolve(request)

    async def _do_command(self, ctx: commands.Context, argument: Optional[str], executor: ImageExecutor) -> None:
        """Resolve, process on a worker thread, then reply. Nothing is sent when any step fails."""
        async with ctx.typing():
            source = await self._resolve(ctx, argument, executor.caps.max_byte_size)
            log.trace(f"{ctx.command} source from {source.provenance.value} ({len(source.data)} bytes)")
            result = await executor.build(source.data).run()
        await send_output(ctx, result)

    @commands.command(help=f"Negates the colours of an image.\n\n{SOURCE_HELP}")
    @cooldown(cl=5, tm=60.0, ft=3)
    async def invert(self, ctx: commands.Context, source: Optional[str] = None):
        log.info(f"Invert invoked by {ctx.author.id}")
        await self._do_command(ctx, source, ImageExecutor().function(invert_func))

    @commands.command(
        aliases=("hue", "rainbow"),
        help=f"Rotates the hue of an image through the colour wheel, as a gif.\n\n{SOURCE_HELP}",
    )
    @cooldown(cl=10, tm=60.0, ft=3)
    async def huerotate(self, ctx: commands.Context, source: Optional[str] = None):
        log.info(f"Huerotate invoked by {ctx.author.id}")
        executor = ImageExecutor().function(huerotate_func).max_height(256)
        await self._do_command(ctx, source, executor)

    @commands.command(help=f'Adds a meme caption above an image, quote captions with spaces: "text".\n\n{SOURCE_HELP}')
    @cooldown(cl=10, tm=60.0, ft=3)
    async def caption(self, ctx: commands.Context, text: str, source: Optional[str] = None):
        log.info(f"Caption invoked by {ctx.author.id}: {text}")
        executor = ImageExecutor().function(caption_func).arguments(text)
        await self._do_command(ctx, source, executor)

    @commands.command(name="source", aliases=("resolve",), help=f"Shows which image a command would use.\n\n{SOURCE_HELP}")
    @cooldown(cl=5, tm=30.0, ft=3)
    async def source_image(self, ctx: commands.Context, source: Optional[str] = None):
        async with ctx.typing():
            resolved = await self._resolve(ctx, source, MAX_IMAGE_SIZE)
        ext = sniff_extension(resolved.data)
        await ctx.reply(
            content=f"Resolved from **{resolved.provenance.value}**",
            file=discord.File(io.BytesIO(resolved.data), filename=f"source.{ext}"),
            mention_author=False,
            allowed_mentions=discord.AllowedMentions.none(),
        )


async def setup(bot):
    await bot.add_cog(Imaging(bot))
