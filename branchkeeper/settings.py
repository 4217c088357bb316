"""Internal settings."""

import os

from gi.repository import GLib

from branchkeeper import __version__

PROJECT = "branchkeeper"
VERSION = __version__

# Paths
CONFIG_DIR = os.environ.get("BRANCHKEEPER_CONFIG_DIR") or os.path.join(GLib.get_user_config_dir(), PROJECT)
CONFIG_FILE = os.path.join(CONFIG_DIR, "config.json")
CACHE_DIR = os.environ.get("BRANCHKEEPER_CACHE_DIR") or os.path.join(GLib.get_user_cache_dir(), PROJECT)
LOG_FILENAME = os.path.join(CACHE_DIR, "branchkeeper.log")

# The managed game
STEAM_APP_ID = "3164500"
GAME_EXECUTABLE = "Schedule I.exe"
BRANCHES_DIRNAME = "branches"
MODS_DIRNAME = "Mods"

# Root level folders of the game install that belong to the user, not to Steam
EXCLUDED_DIRECTORIES = ("Mods", "Plugins")

# Transfer tuning
TRANSFER_PROGRESS_INTERVAL = 0.25  # seconds between two progress events
TRANSFER_RETRY_COUNT = 3
TRANSFER_RETRY_DELAY = 0.5  # seconds, doubled on each retry

STATUS_MAX_WORKERS = 4
