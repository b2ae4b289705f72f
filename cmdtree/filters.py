"""
cmdtree filters (per-command gates run before a command executes).

A filter sees the command, the sender and the arguments, and rejects the
invocation by raising a CommandException. Filters run in ascending priority
order; equal priorities keep registration order.

A None sender is the trusted internal caller (path lookups, console), the
same convention Command.hasPermission() follows, so sender filters let it pass.
"""
import logging
from abc import ABC, abstractmethod

from .faults import SenderTypeError
from .utils import rename

logger = logging.getLogger(__name__)


class CommandFilter(ABC):
    priority = 0

    @abstractmethod
    def validate(self, command, sender, args, /):
        """Raise a CommandException to reject the invocation."""


class SenderTypeFilter(CommandFilter):
    """Accept only senders that are instances of one of types."""

    def __init__(self, *types, priority=0):
        if not types or not all(isinstance(kind, type) for kind in types):
            raise TypeError("SenderTypeFilter arguments must be types")
        self._types = types
        self.priority = priority

    @property
    def types(self):
        return self._types

    def validate(self, command, sender, args, /):
        if sender is None or isinstance(sender, self._types):
            return
        logger.info("%r rejected sender %r of type %s", command, sender, type(sender).__name__)
        raise SenderTypeError("you must be a %s to execute this command" % " or ".join(
            kind.__name__ for kind in self._types
        ))

    def __repr__(self):
        return "SenderTypeFilter(%s)" % ", ".join(kind.__name__ for kind in self._types)


class FunctionFilter(CommandFilter):
    """Adapter turning a plain callable(command, sender, args) into a filter."""

    def __init__(self, callback, /, priority=0):
        if not callable(callback):
            raise TypeError("FunctionFilter argument must be callable")
        self._callback = callback
        self.priority = priority

    def validate(self, command, sender, args, /):
        self._callback(command, sender, args)

    def __repr__(self):
        return "FunctionFilter(%s)" % getattr(self._callback, "__qualname__", self._callback)


def filter(priority=0, /):
    """
    Decorator form of FunctionFilter.

        @filter(10)
        def onlyDaytime(command, sender, args):
            if isNight():
                raise CommandException("come back in the morning")

        command.addFilter(onlyDaytime)
    """
    if callable(priority):
        return FunctionFilter(priority)

    @rename("filter")
    def wrapper(callback):
        return FunctionFilter(callback, priority)

    return wrapper


__all__ = (
    "CommandFilter",
    "SenderTypeFilter",
    "FunctionFilter",
    "filter",
)
