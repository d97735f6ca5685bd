# extraconfig.py
# Global configuration variables that are used across multiple modules

# Bot owner user ID, receives failure reports from the cooldown decorator
BOT_OWNER = 853154444850364417  # Replace with your own user ID

# Prefix for the imaging commands (overridable through BOT_PREFIX in .env)
DEFAULT_PREFIX = "r!"

# Image resolution limits
DEFAULT_MAX_SIZE = 16_000_000  # bytes, anything at or above this is refused
HUMANIZE_PRECISION = 2  # decimals used when printing byte sizes

# Frame pipeline limits
DEFAULT_MAX_DIM = 500  # default max height, width follows the aspect ratio
DEFAULT_MAX_FRAMES = 200  # increase at your own risk, every frame is decoded into RAM
DEFAULT_FRAME_DELAY = 80  # ms, used when the source carries no duration

# Hue rotation step generator, degrees
HUEROTATE_STEP = 10

# Alpha config
ALPHA = False
