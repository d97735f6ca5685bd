# config.py
# Secrets & general config, plus the cooldown decorator every command goes through

# Standard Library Imports
import asyncio
import logging
import os
import time
from functools import wraps

# Third-Party Imports
from discord import File
from discord.ext import commands
from dotenv import load_dotenv

# Local Imports
from extraconfig import ALPHA, BOT_OWNER, DEFAULT_MAX_SIZE, DEFAULT_PREFIX
from logger import get_logger
from utils.errors import ImageError

# .env lives in the project root's .env folder (project_root/.env/.env)
load_dotenv(dotenv_path=os.path.join(os.path.dirname(__file__), "..", ".env", ".env"))

IS_ALPHA = ALPHA

if IS_ALPHA:
    BOT_TOKEN = os.getenv("BOT_TOKEN_ALPHA")
else:
    BOT_TOKEN = os.getenv("BOT_TOKEN")

BOT_PREFIX = os.getenv("BOT_PREFIX", DEFAULT_PREFIX)
MAX_IMAGE_SIZE = int(os.getenv("MAX_IMAGE_SIZE", DEFAULT_MAX_SIZE))

# Do not commit your bot token anywhere, Discord resets leaked tokens.

log = get_logger()
log.trace("Config module initialized")

ERROR_LOG = os.getenv("ERROR_LOG", "errors.log")

# File handler for errors, only opened once something is written
fh = logging.FileHandler(ERROR_LOG, encoding="utf-8", delay=True)
fh.setLevel(logging.WARNING)
fh.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
logging.getLogger().addHandler(fh)

# {(user_id, command_name): timestamp}
_user_command_cooldowns = {}
_command_failures = {}


def cooldown(*, cl: int = 0, tm: float = None, ft: int = 3):
    """
    Adds cooldown, timeout, and failure tracking to a command.
    When a user repeatedly fails a command, the owner gets a DM with logs.
    Image errors are user mistakes, they go straight to the cog's error handler.
    Args:
    - cl: cooldown in seconds between uses per user (0 = no cooldown)
    - tm: timeout in seconds for command execution (None = no timeout)
    - ft: failure threshold before alerting owner/user (3 = default)
    """
    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            # bound cog methods get (self, ctx, ...)
            ctx = args[0] if isinstance(args[0], commands.Context) else args[1]

            user_id = ctx.author.id
            command_name = func.__name__
            key = (user_id, command_name)
            now = time.time()

            if cl > 0 and key in _user_command_cooldowns:
                elapsed = now - _user_command_cooldowns[key]
                if elapsed < cl:
                    await ctx.reply(
                        f"🕒 That command's on cooldown! Try again in {round(cl - elapsed, 1)}s.",
                        mention_author=False,
                    )
                    log.warningtrace(f"[Cooldown] {command_name} by {user_id} (wait {round(cl - elapsed, 1)}s)")
                    return

            _user_command_cooldowns[key] = now

            try:
                if tm:
                    result = await asyncio.wait_for(func(*args, **kwargs), timeout=tm)
                else:
                    result = await func(*args, **kwargs)

                _command_failures[key] = 0
                log.successtrace(f"[CommandSuccess] {command_name} executed by {user_id}")
                return result

            except ImageError:
                raise

            except asyncio.TimeoutError:
                msg = f"⏰ Command took too long ({tm}s limit reached)."
                log.warning(f"[Timeout] {command_name} by {user_id} exceeded {tm}s")
                await _handle_failure(ctx, key, msg, ft, None)

            except Exception as e:
                msg = f"💥 Something went wrong:\n```{e}```"
                log.exception(f"[CommandError] {command_name} failed for {user_id}: {e}")
                await _handle_failure(ctx, key, msg, ft, e)

        return wrapper
    return decorator


async def _handle_failure(ctx: commands.Context, key: tuple, message: str, ft: int, exc: Exception | None):
    """Increment failure count, notify user, and optionally DM owner."""
    _, command_name = key
    _command_failures[key] = _command_failures.get(key, 0) + 1
    count = _command_failures[key]

    if count >= ft:
        message += "\n\n⚠️ **Found a bug? Report it to the developer!**"
        _command_failures[key] = 0
        await _alert_owner(ctx, command_name, exc)

    try:
        await ctx.reply(message, mention_author=False)
    except Exception as send_err:
        log.error(f"[ErrorSendFail] Could not send failure message: {send_err}")


async def _alert_owner(ctx: commands.Context, command_name: str, exc: Exception | None):
    """Send a DM with recent log excerpt to the owner."""
    try:
        owner = await ctx.bot.fetch_user(BOT_OWNER)
    except Exception as e:
        log.error(f"[OwnerFetchError] {e}")
        return

    try:
        text = "⚠️ **Command failure threshold reached!**\n"
        text += f"Command: `{command_name}`\n"
        text += f"Guild: `{ctx.guild.name if ctx.guild else 'DM'}`\n"
        text += f"User: `{ctx.author} ({ctx.author.id})`\n"
        if exc:
            text += f"Latest exception: `{exc}`\n"

        # only the last 100 lines to avoid a huge file
        if os.path.exists(ERROR_LOG):
            with open(ERROR_LOG, "r", encoding="utf-8") as f:
                lines = f.readlines()
            with open("errors_excerpt.log", "w", encoding="utf-8") as f:
                f.write("".join(lines[-100:]))
            await owner.send(content=text, file=File("errors_excerpt.log"))
        else:
            await owner.send(content=text + "\n⚠️ No log file found to attach.")

    except Exception as e:
        log.error(f"[OwnerAlertFail] Could not DM owner: {e}")
