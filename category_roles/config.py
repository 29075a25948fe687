import os

# =========================================================
# ENVIRONMENT
# =========================================================
DISCORD_BOT_TOKEN = os.getenv("DISCORD_BOT_TOKEN")

# IMPORTANT: point this at a mounted volume in hosted deployments
DATA_FILE = os.getenv("DATA_FILE", "role_controllers.json")

COMMAND_PREFIX = os.getenv("COMMAND_PREFIX", "+")

RATE_LIMIT_SECONDS = float(os.getenv("RATE_LIMIT_SECONDS", "600"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Feedback messages from admin commands clean themselves up after this long.
FEEDBACK_TTL = 10.0
