"""String utilities"""
import shlex
from typing import List

from branchkeeper.util.log import logger


def _split_arguments(args: str, closing_quot: str = "", quotations: str = None) -> List[str]:
    if quotations is None:
        quotations = ["'", '"']
    try:
        return shlex.split(args + closing_quot)
    except ValueError as ex:
        message = ex.args[0]
        if message == "No closing quotation" and quotations:
            return _split_arguments(args, quotations[0], quotations[1:])
        logger.error(message)
        return []


def split_arguments(args: str) -> List[str]:
    """Wrapper around shlex.split that is more tolerant of errors"""
    if not args:
        # shlex.split seems to hangs when passed the None value
        return []
    return _split_arguments(args)


def human_size(size: int) -> str:
    """Shows a size in bytes in a more readable way"""
    units = ("bytes", "kB", "MB", "GB", "TB", "PB")
    unit_index = 0
    while size > 1024 and unit_index < len(units) - 1:
        size = size / 1024
        unit_index += 1
    return "%0.1f %s" % (size, units[unit_index])
