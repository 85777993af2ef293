from __future__ import annotations

import logging

LOGGER = logging.getLogger("authgate.auth")
APP_VERSION = "0.1.0"

REQUIRED_ENV = (
    "DISCORD_CLIENT_ID",
    "DISCORD_CLIENT_TOKEN",
    "DISCORD_REDIRECT",
    "GOOGLE_CLIENT_ID",
    "GOOGLE_CLIENT_SECRET",
    "GOOGLE_REDIRECT_URI",
)
