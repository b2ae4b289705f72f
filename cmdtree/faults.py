"""
cmdtree faults (errors) and rendering.

Scope
- FaultCode: canonical, stable numeric identifiers for every user-facing issue.
  Codes are grouped by domain so logs and searches stay predictable.
- CommandException: base type that carries message + options and knows how to
  render itself in a friendly, lowercased, and actionable way.
- ArgumentFault: the parse-time family. Each fault remembers the argument name,
  the command string parsed so far, the bare reason, and whether the failure is
  silenceable (may be replaced by a caller-supplied default).
- trigger(): central entry point to surface any fault (respecting shell/deferred/fancy/colorful).
- getdoc(): optional description lookup for a code from the host application.

Families
- user-friendly: ArgumentFault and its subclasses, InsufficientPermissionError,
  UnknownSubcommandError, SenderTypeError. Messages are meant for direct display.
- registration: ChildAlreadyExistsError, AliasAlreadyExistsError, InvalidNameError.
  Raised while building the tree, never while parsing input.
- programmer errors (wrong types, foreign managers) are plain TypeError/ValueError
  and are not part of this module.

Integration
- Parsing code raises faults directly; hosts catch CommandException and call
  trigger(fault, shell=True) to render it via rich.
"""
import copy
import sys
from collections import defaultdict
from enum import IntEnum
from types import MappingProxyType

from rich.console import Console, Group
from rich.panel import Panel
from rich.text import Text

from .utils import Unset, coalesce

console = Console(stderr=True)


class FaultCode(IntEnum):
    """
    canonical fault codes used across the tree (stable identifiers).

    grouping (by high-level domain)
    - routing (1110x)
      • UNKNOWN_SUBCOMMAND, INSUFFICIENT_PERMISSION, REJECTED_SENDER
    - arguments (1111x)
      • INVALID_ARGUMENT, ARGUMENT_MISSING, INVALID_FORMAT, UNMATCHED_QUOTE,
        TOO_MANY_ARGUMENTS
    - flags (1112x)
      • UNDEFINED_FLAG, FLAG_ARITY_MISMATCH
    - registration (1113x)
      • CHILD_ALREADY_EXISTS, ALIAS_ALREADY_EXISTS, INVALID_NAME

    rationale
    - spacing leaves room for future additions without reshuffling existing codes.
    - normalize() allows host remapping to custom labels while keeping code-stability.
    """
    # --- routing errors (1110x) ---
    COMMAND_FAILURE             = 11100
    UNKNOWN_SUBCOMMAND          = 11102
    INSUFFICIENT_PERMISSION     = 11103
    REJECTED_SENDER             = 11104

    # --- argument errors (1111x) ---
    INVALID_ARGUMENT            = 11110
    ARGUMENT_MISSING            = 11111
    INVALID_FORMAT              = 11112
    UNMATCHED_QUOTE             = 11113
    TOO_MANY_ARGUMENTS          = 11114

    # --- flag errors (1112x) ---
    UNDEFINED_FLAG              = 11121
    FLAG_ARITY_MISMATCH         = 11122

    # --- registration errors (1113x) ---
    CHILD_ALREADY_EXISTS        = 11131
    ALIAS_ALREADY_EXISTS        = 11132
    INVALID_NAME                = 11133

    def normalize(self):
        """
        return a host-normalized string for this code.

        the host application can provide a __codes__ mapping in __main__
        to override numeric ids with friendlier labels.
        """
        return str(getattr(__import__("__main__"), "__codes__", {}).get(self, self.value))


def _render(fault, title, colors):
    main = __import__("__main__")

    styles = defaultdict(str, colors | getattr(main, "__styles__", {}))
    colorful = fault.options.get("colorful", True)
    fancy = fault.options.get("fancy", False)

    def text(fragment, style=""):
        if not fragment:
            return Text("")
        if not colorful:
            return Text(str(fragment))
        if isinstance(fragment, Text):
            return fragment
        return Text(str(fragment), styles[style])

    prog = text(getattr(main, "__prog__", fault.options.get("tool", "cmdtree")), "prog-name")

    header = Text.assemble(
        "[ ",
        prog,
        " - ",
        text(fault.code.normalize(), "code"),
        " | ",
        text(title.title(), "error-title"),
        " ]"
    )
    message = text(fault.message, "error-message")
    body = [message]
    if hint := fault.options.get("hint", type(fault).__hint__):
        body.append(Text.assemble(text(" → ", "hint-arrow"), text(hint, "hint")))

    if fancy:
        width = console.width - 4
        try:
            width = int(width * fault.options["ratio"])
        except KeyError:
            width = None
        return Panel(Group(*body), title=header, title_align="left", width=width)

    return Group(header, *body)


class CommandException(Exception):
    """
    base of every fault raised by cmdtree.

    class attributes
    - __code__: default FaultCode, overridable through options["code"].
    - __title__: short lowercase title shown in the rendered header.
    - __hint__: optional one-line hint shown below the message.
    """
    __code__ = FaultCode.COMMAND_FAILURE
    __title__ = "command failure"
    __hint__ = None

    def __init__(self, message=Unset, /, **options):
        if not isinstance(message, str | Unset):
            raise TypeError("%s message must be a string" % type(self).__name__)
        super().__init__(coalesce(message, ""))
        self.message = coalesce(message, "")
        self.options = MappingProxyType(options)

    @property
    def code(self):
        return self.options.get("code", type(self).__code__)

    def __str__(self):
        return self.message

    def __rich__(self):
        return _render(self, self.options.get("title", type(self).__title__), {
            # header parts
            "prog-name": "bold #E6E6F0",  # near-white program name
            "code": "bold #00E5FF",  # neon cyan fault code
            "error-title": "bold #FF4DA6",  # friendly pinky title

            # body
            "error-message": "#C8C8D0",  # soft light gray message
            "hint-arrow": "#9CE19C dim",  # gentle green arrow
            "hint": "italic #9CE19C",  # gentle green hint text
        })

    def __trigger__(self):
        if not self.options.get("shell", False):
            raise self from None
        console.print(self)
        if self.options.get("deferred", False):
            return
        sys.exit(1)

    def __replace__(self, *unused, **overrides):
        assert not unused, "unused arguments are not allowed"
        return type(self)(self.message, **{**self.options, **overrides})


class ArgumentFault(CommandException):
    """
    a failure to parse one named argument.

    the message follows the shape "/<command so far> [<argument>] invalid: <reason>",
    so users see exactly which slot failed and what was accepted before it.

    silenceable faults (e.g. a missing argument) may be replaced by a default
    through CommandArguments.potentialDefault(); all others must propagate.
    """
    __code__ = FaultCode.INVALID_ARGUMENT
    __title__ = "invalid argument"
    __silenceable__ = False

    def __init__(self, command, argument, reason, silenceable=Unset, /, **options):
        self.command = command
        self.argument = argument
        self.reason = reason
        self.silenceable = coalesce(silenceable, type(self).__silenceable__)
        super().__init__("/%s [%s] invalid: %s" % (command, argument, reason), **options)

    def __replace__(self, *unused, **overrides):
        assert not unused, "unused arguments are not allowed"
        return type(self)(self.command, self.argument, self.reason, self.silenceable, **{**self.options, **overrides})


class ArgumentMissingError(ArgumentFault):
    __code__ = FaultCode.ARGUMENT_MISSING
    __title__ = "missing argument"
    __hint__ = "add the missing value to the end of the command"
    __silenceable__ = True


class InvalidFormatError(ArgumentFault):
    __code__ = FaultCode.INVALID_FORMAT
    __title__ = "invalid format"


class UnmatchedQuoteError(ArgumentFault):
    __code__ = FaultCode.UNMATCHED_QUOTE
    __title__ = "unmatched quote"
    __hint__ = "close the quoted text or escape the quote with a backslash"


class TooManyArgumentsError(ArgumentFault):
    __code__ = FaultCode.TOO_MANY_ARGUMENTS
    __title__ = "too many arguments"
    __hint__ = "remove the extra values at the end of the command"


class UndefinedFlagError(ArgumentFault):
    __code__ = FaultCode.UNDEFINED_FLAG
    __title__ = "undefined flag"


class FlagArityError(ArgumentFault):
    __code__ = FaultCode.FLAG_ARITY_MISMATCH
    __title__ = "flag arity mismatch"


class InsufficientPermissionError(CommandException):
    __code__ = FaultCode.INSUFFICIENT_PERMISSION
    __title__ = "insufficient permission"


class UnknownSubcommandError(CommandException):
    __code__ = FaultCode.UNKNOWN_SUBCOMMAND
    __title__ = "unknown subcommand"


class SenderTypeError(CommandException):
    __code__ = FaultCode.REJECTED_SENDER
    __title__ = "rejected sender"


class ChildAlreadyExistsError(CommandException):
    __code__ = FaultCode.CHILD_ALREADY_EXISTS
    __title__ = "child already exists"


class AliasAlreadyExistsError(CommandException):
    __code__ = FaultCode.ALIAS_ALREADY_EXISTS
    __title__ = "alias already exists"


class InvalidNameError(CommandException, ValueError):
    __code__ = FaultCode.INVALID_NAME
    __title__ = "invalid name"
    __hint__ = "full names look like 'provider:name'"


def trigger(fault, /, **options):
    """
    surface a fault with the given runtime options.

    contract
    - fault must provide __trigger__ and __replace__ methods (see CommandException).
    - options are merged into the fault via __replace__(**options) before triggering.
    - in shell mode, rendering happens via the rich console; otherwise the fault is raised.

    typical options
    - tool, shell, fancy, colorful, deferred, title, code, hint, ratio.
    """
    if (
        not hasattr(fault, "__trigger__") or
        not callable(fault.__trigger__) or
        not hasattr(fault, "__replace__") or
        not callable(fault.__replace__)
    ):
        raise TypeError("trigger() argument must have a __trigger__ and __replace__ methods")
    copy.replace(fault, **options).__trigger__()


def getdoc(code, /):
    """
    optional documentation fetch for a fault code.

    the host application may expose a __docs__ mapping in __main__ where keys
    are FaultCode instances and values are short documentation strings.
    """
    if not isinstance(code, FaultCode):
        raise TypeError("getdoc() argument must be a fault-code")
    try:
        return getattr(__import__("__main__"), "__docs__", {})[code]
    except KeyError:
        return None


__all__ = (
    "CommandException",
    "ArgumentFault",
    "ArgumentMissingError",
    "InvalidFormatError",
    "UnmatchedQuoteError",
    "TooManyArgumentsError",
    "UndefinedFlagError",
    "FlagArityError",
    "InsufficientPermissionError",
    "UnknownSubcommandError",
    "SenderTypeError",
    "ChildAlreadyExistsError",
    "AliasAlreadyExistsError",
    "InvalidNameError",
    "FaultCode",
    "trigger",
    "getdoc",
)
