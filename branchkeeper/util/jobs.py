import sys
import threading
import traceback
from typing import Callable

from gi.repository import GLib  # type: ignore

from branchkeeper.util.log import logger


class AsyncCall(threading.Thread):
    def __init__(self, func, callback, *args, **kwargs):
        """Execute `function` in a new thread then schedule `callback` for
        execution in the main loop.
        """
        super().__init__(target=self.target, args=args, kwargs=kwargs)
        self.function = func
        self.callback = callback if callback else lambda r, e: None
        self.daemon = kwargs.pop("daemon", True)
        self.start()

    def target(self, *a, **kw):
        result = None
        error = None

        try:
            result = self.function(*a, **kw)
        except Exception as ex:  # pylint: disable=broad-except
            logger.error("Error while completing task %s: %s %s", self.function, type(ex), ex)
            error = ex
            _ex_type, _ex_value, trace = sys.exc_info()
            traceback.print_tb(trace)

        schedule_at_idle(self.callback, result, error)


def schedule_at_idle(func: Callable[..., None], *args) -> int:
    """Run a function once, the next time the main loop is idle.
    Returns the GLib source id."""

    def wrapper(*a) -> bool:
        func(*a)
        return False

    return GLib.idle_add(wrapper, *args)
