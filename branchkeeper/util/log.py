"""Utility module for creating an application wide logger."""
import logging
import logging.handlers
import os
import sys

from branchkeeper import settings

if not os.path.isdir(settings.CACHE_DIR):
    os.makedirs(settings.CACHE_DIR)

# Formatters
FILE_FORMATTER = logging.Formatter("[%(levelname)s:%(asctime)s:%(module)s]: %(message)s")

SIMPLE_FORMATTER = logging.Formatter("%(asctime)s: %(message)s")

DEBUG_FORMATTER = logging.Formatter("%(levelname)-8s %(asctime)s [%(module)s.%(funcName)s:%(lineno)s]:%(message)s")

# Log file setup
loghandler = logging.handlers.RotatingFileHandler(settings.LOG_FILENAME, maxBytes=20971520, backupCount=5)
loghandler.setFormatter(FILE_FORMATTER)

logger = logging.getLogger("branchkeeper")
logger.setLevel(logging.DEBUG)
logger.addHandler(loghandler)

console_handler = logging.StreamHandler(stream=sys.stdout)
console_handler.setFormatter(SIMPLE_FORMATTER)
logger.addHandler(console_handler)
logger.setLevel(logging.INFO)


def enable_debug():
    """Show debug messages on the console, with their origin"""
    logger.setLevel(logging.DEBUG)
    console_handler.setFormatter(DEBUG_FORMATTER)
