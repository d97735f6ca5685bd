#    "Prism" - a Discord bot that finds the image you meant and does things to it
#    (mostly inverting it, rainbow-ing it and writing on it)

# Standard Library Imports
import asyncio
import contextlib
import os
import signal
import sys
import time
from typing import Optional

# Third-Party Imports
import aiohttp
import discord
from discord.ext import commands

# Local Application Imports
import config
from logger import get_logger

log = get_logger()

# Intents & Bot Setup
intents = discord.Intents.default()
intents.messages = True
intents.guilds = True
intents.message_content = True  # prefix commands and reply lookups need the content
intents.members = True  # member mentions and guild avatars


class Main(commands.Bot):
    def __init__(self, *args, **kwargs):
        super().__init__(command_prefix=config.BOT_PREFIX, intents=intents, max_messages=100, *args, **kwargs)
        self._ready_once = asyncio.Event()
        self.start_time = time.time()
        self.http_session: Optional[aiohttp.ClientSession] = None

    async def setup_hook(self):
        # One pooled session for every image fetch, shared read-only by all commands
        self.http_session = aiohttp.ClientSession()
        log.info("Initialized shared HTTP session")

        commands_dir = os.path.join(os.path.dirname(__file__), "commands")
        failed = []
        for filename in os.listdir(commands_dir):
            if not filename.endswith(".py") or filename.startswith("_"):
                continue
            cog_name = filename[:-3]
            try:
                await self.load_extension(f"commands.{cog_name}")
                log.success(f"Loaded cog: {cog_name}")
            except Exception as e:
                failed.append((cog_name, e))
                log.critical(f"Failed to load cog `{cog_name}`; continuing without it. Reason: {e}")

        if failed:
            log.error(f"{len(failed)} cog(s) failed to load: {[n for n, _ in failed]}")
        else:
            log.success("All cogs loaded successfully")


bot = Main()


@bot.event
async def on_ready():
    if not bot._ready_once.is_set():
        log.event(f"Bot is online as {bot.user} (ID: {bot.user.id})")
        log.event(f"Connected to {len(bot.guilds)} guilds, prefix `{config.BOT_PREFIX}`.")
        bot._ready_once.set()
    else:
        log.info(f"Resumed session after {time.time() - bot.start_time:.2f} seconds.")


@bot.event
async def on_command_error(ctx: commands.Context, error: commands.CommandError):
    # cogs with their own handler already replied
    if ctx.cog is not None and ctx.cog.has_error_handler():
        return
    if isinstance(error, commands.CommandNotFound):
        return

    original = getattr(error, "original", error)
    log.error(
        f"Command failed:\n"
        f" • Command: {ctx.command}\n"
        f" • User: {ctx.author} ({ctx.author.id})\n"
        f" • Guild: {getattr(ctx.guild, 'name', 'DM')} ({getattr(ctx.guild, 'id', 'N/A')})",
        exc_info=original,
    )


async def graceful_shutdown():
    log.info("Shutdown signal received, performing cleanup...")

    if bot.http_session and not bot.http_session.closed:
        await bot.http_session.close()
        log.info("Closed shared HTTP session")

    with contextlib.suppress(Exception):
        await bot.close()

    log.info("Shutdown complete.")


async def main():
    if not config.BOT_TOKEN:
        log.critical("No bot token configured, set BOT_TOKEN in .env/.env")
        sys.exit(1)

    async with bot:
        shutdown_signal = asyncio.get_running_loop().create_future()

        def _signal_handler():
            if not shutdown_signal.done():
                shutdown_signal.set_result(True)

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, _signal_handler)
            except NotImplementedError:
                # Windows: loop.add_signal_handler usually isn't implemented for SIGTERM
                log.warning(f"Cannot register signal handler for {sig!r} on this platform; falling back to default behaviour.")

        bot_task = asyncio.create_task(bot.start(config.BOT_TOKEN))
        # a crashed login should end the wait as well
        bot_task.add_done_callback(lambda _: _signal_handler())

        try:
            await shutdown_signal
        except asyncio.CancelledError:
            log.info("Shutdown future was cancelled; initiating cleanup.")
        finally:
            if not bot_task.done():
                bot_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await bot_task
            elif not bot_task.cancelled() and bot_task.exception() is not None:
                log.critical("Bot stopped unexpectedly", exc_info=bot_task.exception())
            await graceful_shutdown()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except Exception as e:
        log.exception(f"Fatal crash as {e}")
