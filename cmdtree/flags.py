"""
cmdtree flags (definitions, registries and flag grammars).

Scope
- Flag / MultiFlag: immutable definitions (long names, short names, arity,
  optional completer). Definitions hold no parse state and may be shared by
  any number of concurrent parses.
- CommandFlags: a grammar mapping names to flags for one argument position.
- ParsedFlags: the value returned by a parse; maps each present flag to the
  sub-arguments holding just its own values.
- FlagSyntax: strategy that reads a run of flags out of a CommandArguments.
  DefaultFlagSyntax handles -abc bundles, --long and --long=value;
  SpoutFlagSyntax handles the legacy -key=value style with optional
  argument overrides.

Argument names
- the n-th flag token of a run named "name" is recorded as "flags.name:n",
  and its i-th value as "flags.name:n:i", so faults point at the exact slot.

Numbers
- a token that reads as a number ("-5", "-1.5e3") is never taken as a flag,
  so negative values can follow a flag run as positional arguments.
"""
import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Mapping
from enum import Enum

from .faults import FlagArityError, InvalidFormatError, UndefinedFlagError
from .utils import Unset, coalesce, mirror, quantify

logger = logging.getLogger(__name__)

FLAG_ARGNAME = "flags."

NUMBER = re.compile(r"^[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?$")


class Flag:
    """
    Definition of one flag.

    Parameters
    - longNames: names used as --name.
    - shortNames: single characters used as -n (and bundled as -abc).
    - minArgs / maxArgs: how many following tokens the flag owns.
    - completer: optional callable used by completion, called as
      completer(command, sender, args, flags, flag, flagArgs, cursor, candidates)
      and returning a completion offset, -1 or -2.
    """
    longNames = mirror("longNames")
    shortNames = mirror("shortNames")
    minArgs = mirror("minArgs")
    maxArgs = mirror("maxArgs")
    completer = mirror("completer")

    def __init__(self, longNames=(), shortNames=(), minArgs=0, maxArgs=0, /, completer=None):
        if isinstance(longNames, str):
            longNames = (longNames,)
        if isinstance(shortNames, str):
            shortNames = tuple(shortNames)
        if not all(isinstance(name, str) and name for name in longNames):
            raise TypeError(f"{type(self).__name__} long names must be non-empty strings")
        if not all(isinstance(name, str) and len(name) == 1 for name in shortNames):
            raise TypeError(f"{type(self).__name__} short names must be single characters")
        if not longNames and not shortNames:
            raise ValueError(f"{type(self).__name__} must have at least one name")
        if minArgs < 0:
            raise ValueError(f"{type(self).__name__} minArgs must not be negative")
        if maxArgs < minArgs:
            raise ValueError(f"{type(self).__name__} maxArgs must not be lower than minArgs")
        if completer is not None and not callable(completer):
            raise TypeError(f"{type(self).__name__} completer must be callable")
        self._names = tuple(longNames) + tuple(shortNames)
        self._longNames = frozenset(longNames)
        self._shortNames = frozenset(shortNames)
        self._minArgs = minArgs
        self._maxArgs = maxArgs
        self._completer = completer

    @property
    def name(self):
        """Primary name: the first long name given, else the first short name."""
        return self._names[0]

    def complete(self, command, sender, args, flags, flagArgs, cursor, candidates, /):
        if self._completer is None:
            return -1
        return self._completer(command, sender, args, flags, self, flagArgs, cursor, candidates)

    def __repr__(self):
        return "%s(%s, min=%d, max=%d)" % (type(self).__name__, ", ".join(map(repr, self._names)), self._minArgs, self._maxArgs)

    def __rich_repr__(self):
        yield "longNames", sorted(self._longNames)
        yield "shortNames", sorted(self._shortNames)
        yield "minArgs", self._minArgs
        yield "maxArgs", self._maxArgs


class MultiFlag(Flag):
    """
    A flag that may be given several times; every occurrence is kept.
    """


class ParsedFlags(Mapping):
    """
    Result of parsing a flag run: present flag -> its sub-arguments.

    Lookups accept either a Flag or any of its names. Indexing returns the
    arguments of the last occurrence; getAllArgs() returns every occurrence
    of a MultiFlag in input order.
    """

    def __init__(self, flags, /):
        self._flags = flags
        self._occurrences = {}

    def _resolve(self, key):
        if isinstance(key, Flag):
            return key
        if isinstance(key, str):
            return self._flags.getFlag(key)
        raise TypeError("flag key must be a Flag or a string")

    def _record(self, flag, args):
        if isinstance(flag, MultiFlag):
            self._occurrences.setdefault(flag, []).append(args)
        else:
            self._occurrences[flag] = [args]

    def isPresent(self, key, /):
        return self._resolve(key) in self._occurrences

    def timesPresent(self, key, /):
        return len(self._occurrences.get(self._resolve(key), ()))

    def getArgs(self, key, /):
        try:
            return self._occurrences[self._resolve(key)][-1]
        except KeyError:
            return None

    def getAllArgs(self, key, /):
        return list(self._occurrences.get(self._resolve(key), ()))

    def __getitem__(self, key, /):
        if (flag := self._resolve(key)) not in self._occurrences:
            raise KeyError(key)
        return self._occurrences[flag][-1]

    def __contains__(self, key, /):
        try:
            return self.isPresent(key)
        except TypeError:
            return False

    def __iter__(self):
        return iter(self._occurrences)

    def __len__(self):
        return len(self._occurrences)

    def __repr__(self):
        return "ParsedFlags(%s)" % ", ".join(flag.name for flag in self._occurrences)


class CommandFlags:
    """
    Registry of flags accepted at one argument position.

    A CommandFlags is a grammar only; parse() returns a fresh ParsedFlags, so
    one registry can serve every invocation of a command.

    Syntax resolution
    - the registry's own syntax, when given;
    - otherwise the default flag syntax of the arguments' Syntax;
    - otherwise the fallback (DefaultFlagSyntax by default).
    """
    longFlags = mirror("longFlags")
    shortFlags = mirror("shortFlags")

    def __init__(self, syntax=None, /, fallback=Unset):
        fallback = coalesce(fallback, DefaultFlagSyntax())
        if fallback is None:
            raise TypeError("CommandFlags fallback syntax must not be None")
        self._syntax = syntax
        self._fallback = fallback
        self._longFlags = {}
        self._shortFlags = {}

    def add(self, *flags):
        for flag in flags:
            if not isinstance(flag, Flag):
                raise TypeError("CommandFlags.add() arguments must be flags")
            for name in flag.longNames:
                self._longFlags[name] = flag
            for name in flag.shortNames:
                self._shortFlags[name] = flag
        return self

    def addAll(self, other, /):
        return self.add(*other.flags)

    @property
    def flags(self):
        """Every distinct flag, in registration order."""
        return list(dict.fromkeys([*self._longFlags.values(), *self._shortFlags.values()]))

    @staticmethod
    def _partition(names):
        return [name for name in names if len(name) > 1], [name for name in names if len(name) == 1]

    def b(self, *names):
        """Add a boolean flag (no values). Single characters become short names."""
        return self.add(Flag(*self._partition(names), 0, 0))

    def v(self, *names):
        """Add a value flag (exactly one value)."""
        return self.add(Flag(*self._partition(names), 1, 1))

    def f(self, minArgs, maxArgs, *names):
        """Add a flag owning between minArgs and maxArgs values."""
        return self.add(Flag(*self._partition(names), minArgs, maxArgs))

    def hasFlag(self, name, /):
        return name in self._longFlags or name in self._shortFlags

    def getLongFlag(self, name, /):
        return self._longFlags.get(name)

    def getShortFlag(self, name, /):
        return self._shortFlags.get(name)

    def getFlag(self, name, /):
        if (flag := self._longFlags.get(name)) is None and len(name) == 1:
            flag = self._shortFlags.get(name)
        return flag

    def findSyntax(self, args, /):
        if self._syntax is not None:
            return self._syntax
        if (syntax := getattr(args.syntax, "flagSyntax", None)) is not None:
            return syntax
        return self._fallback

    def parse(self, args, name, /):
        """
        Parse a run of flags at the cursor and return the ParsedFlags.

        The result is recorded under name as a fallback value, so the cursor
        only moves by what the flag syntax consumed.
        """
        result = self.findSyntax(args).parse(self, args, name)
        return args.success(name, result, True)

    def complete(self, command, sender, args, name, cursor, candidates, /):
        """
        Return the offset completions splice at, -1 when nothing fits, or -2
        when the flag run is over and positional completion should continue.
        """
        return self.findSyntax(args).complete(command, sender, self, args, name, cursor, candidates)

    def __repr__(self):
        return "CommandFlags(%s)" % ", ".join(map(repr, self.flags))


class Strictness(Enum):
    """What DefaultFlagSyntax does with a flag nobody registered."""
    SKIP = "skip"  # consume the token and keep reading flags
    STOP = "stop"  # leave the token in place and end the flag run
    THROW = "throw"  # raise UndefinedFlagError


class FlagSyntax(ABC):
    @abstractmethod
    def parse(self, flags, args, name, /):
        """Read flags at the cursor of args; return a ParsedFlags."""

    @abstractmethod
    def complete(self, command, sender, flags, args, name, cursor, candidates, /):
        """Completion counterpart of parse(); see CommandFlags.complete()."""


class DefaultFlagSyntax(FlagSyntax):
    """
    The default flag grammar.

    Tokens
    - --name and --name=value: long flags; an inline value is the flag's
      first and only value.
    - -abc: the short flags a, b and c; only the last one may take values.
    - the terminator (default "--") is consumed and ends the run.
    - anything else, including numbers, ends the run without being consumed.

    Values
    - a flag consumes up to maxArgs following tokens, stopping early at the
      next flag-looking token or the terminator; fewer than minArgs values
      raise FlagArityError.

    Unknown flags follow the configured Strictness (STOP by default).
    """
    LONG = re.compile(r"^--(?P<key>\w[\w-]*)(?:=(?P<value>.*))?$", re.DOTALL)
    SHORT = re.compile(r"^-(?P<key>\w+)$")

    def __init__(self, strictness=Strictness.STOP, /, terminator="--"):
        if not isinstance(strictness, Strictness):
            raise TypeError("DefaultFlagSyntax strictness must be a Strictness member")
        self._strictness = strictness
        self._terminator = terminator

    @property
    def strictness(self):
        return self._strictness

    def looksLikeFlag(self, token, /):
        if NUMBER.match(token):
            return False
        return bool(self.LONG.match(token) or self.SHORT.match(token))

    def parse(self, flags, args, name, /):
        result = ParsedFlags(flags)
        count = 0
        while args.hasNext(label := "%s%s:%d" % (FLAG_ARGNAME, name, count)):
            count += 1
            if (found := self._parseFlag(flags, args, name, label, result)) is None:
                break
            key, flag, inline = found
            if flag is not None:
                self._parseFlagArgs(args, name, label, key, flag, inline, result)
        return result

    def _undefined(self, args, name, label, token, display):
        match self._strictness:
            case Strictness.SKIP:
                logger.debug("skipping undefined flag %s in %r", display, name)
                args.success(label, token)
                return display, None, None
            case Strictness.STOP:
                logger.debug("undefined flag %s ends the flag run of %r", display, name)
                return None
            case Strictness.THROW:
                raise args.failure(name, "undefined flag %s" % display, False, UndefinedFlagError)

    def _parseFlag(self, flags, args, name, label, result):
        token = args.currentArgument(label)
        if self._terminator is not None and token == self._terminator and not args.hasOverride(label):
            args.success(label, token)
            return None
        if NUMBER.match(token):
            return None
        if match := self.LONG.match(token):
            key = match["key"]
            if (flag := flags.getLongFlag(key)) is None:
                return self._undefined(args, name, label, token, "--" + key)
            args.success(label, token)
            return key, flag, match["value"]
        if match := self.SHORT.match(token):
            key = match["key"]
            bundle = []
            for char in key:
                if (flag := flags.getShortFlag(char)) is None:
                    return self._undefined(args, name, label, token, "-" + char)
                bundle.append(flag)
            for char, flag in zip(key[:-1], bundle):
                if flag.minArgs:
                    raise args.failure(name, "flag -%s requires %s, but none were present" % (
                        char, quantify(flag.minArgs, "argument")
                    ), False, FlagArityError)
            args.success(label, token)
            for flag in bundle[:-1]:
                result._record(flag, args.subArgs(args.index, args.index))
            return key[-1], bundle[-1], None
        return None

    def _parseFlagArgs(self, args, name, label, key, flag, inline, result, *, completing=False):
        display = ("-" if len(key) == 1 else "--") + key
        if inline is not None:
            if flag.maxArgs < 1:
                raise args.failure(name, "flag %s does not take a value" % display, False, FlagArityError)
            if not completing and flag.minArgs > 1:
                raise args.failure(name, "flag %s requires %s, but only 1 was present" % (
                    display, quantify(flag.minArgs, "argument")
                ), False, FlagArityError)
            # The value starts right after "--key=" inside the consumed token.
            result._record(flag, args.subToken(args.index - 1, len(key) + 3))
            return
        begin = args.index
        overrides = {}
        collected = 0
        while collected < flag.maxArgs:
            slot = "%s:%d" % (label, collected)
            # Completion still reads the empty token of a trailing separator.
            if not (args.hasNext(slot) or completing and args.hasMore()):
                break
            token = args.currentArgument(slot, completing)
            if token == self._terminator or self.looksLikeFlag(token):
                break
            if args.hasOverride(slot):
                overrides[collected] = args.getOverride(slot)
            collected += 1
            args.success(slot, token)
        if not completing and collected < flag.minArgs:
            raise args.failure(name, "flag %s requires %s, but only %d %s present" % (
                display, quantify(flag.minArgs, "argument"), collected, "was" if collected == 1 else "were"
            ), False, FlagArityError)
        flagArgs = args.subArgs(begin, args.index)
        for position, value in overrides.items():
            flagArgs.setArgOverride(position, value)
        result._record(flag, flagArgs)

    def complete(self, command, sender, flags, args, name, cursor, candidates, /):
        result = ParsedFlags(flags)
        count = 0
        while args.hasMore():
            label = "%s%s:%d" % (FLAG_ARGNAME, name, count)
            count += 1
            position = args.offsetToArgument(cursor)
            if position[0] <= 0 and not args.hasOverride(label):
                # The cursor is inside this token: complete a flag name.
                return self._completeFlag(command, sender, flags, args, name, label, position, candidates)
            if (found := self._parseFlag(flags, args, name, label, result)) is None:
                return -2
            key, flag, inline = found
            if flag is None:
                continue
            if inline is not None or position[0] > flag.maxArgs:
                self._parseFlagArgs(args, name, label, key, flag, inline, result)
                continue
            # The cursor may be within this flag's values.
            self._parseFlagArgs(args, name, label, key, flag, inline, result, completing=True)
            flagArgs = result.getArgs(flag)
            if flagArgs.remaining() >= position[0]:
                if (outcome := flag.complete(command, sender, args, flags, flagArgs, cursor, candidates)) > -2:
                    return outcome
                logger.debug("completer of %r returned -2 with the cursor inside its values", flag)
                return -1
        raise RuntimeError("completion request at %d is outside of the arguments of %r" % (cursor, name))

    def _completeFlag(self, command, sender, flags, args, name, label, position, candidates):
        token = args.currentArgument(label, True)
        if (match := self.LONG.match(token)) and match["value"] is not None:
            if (flag := flags.getLongFlag(match["key"])) is None:
                return -1
            flagArgs = args.subToken(args.index, len(match["key"]) + 3)
            return flag.complete(command, sender, args, flags, flagArgs, args.argumentToOffset(position), candidates)
        if match := self.SHORT.match(token):
            if NUMBER.match(token):
                return -2
            if (last := flags.getShortFlag(match["key"][-1])) is None:
                return -1
            potential = set()
            if last.minArgs <= 0:
                potential.update(flags.shortFlags)
            if last.maxArgs > 0:
                # Moving on to the flag's first value is a valid completion too.
                potential.add("")
            args.complete(label, position, potential, position[1], candidates)
            return args.argumentToOffset(position)
        potential = {"--" + flag for flag in flags.longFlags} | {"-" + flag for flag in flags.shortFlags}
        return args.complete(label, position, potential, 0, candidates)

    def __repr__(self):
        return f"DefaultFlagSyntax({self._strictness.name})"


class SpoutFlagSyntax(FlagSyntax):
    """
    Legacy grammar: -abc, --key and --key=value, at most one value per flag.

    With overrideArgs, every flag value is also injected as an argument
    override named after the flag's primary name, so later pops of that name
    read the flag value instead of a token. Values for unregistered names are
    accepted in that mode and only injected.
    """
    FLAG = re.compile(r"^-(?P<key>-?\w+)(?:=(?P<value>.*))?$", re.DOTALL)

    def __init__(self, overrideArgs=False, /):
        self._overrideArgs = overrideArgs

    def parse(self, flags, args, name, /):
        result = ParsedFlags(flags)
        count = 0
        while args.hasNext(label := "%s%s:%d" % (FLAG_ARGNAME, name, count)):
            count += 1
            token = args.currentArgument(label)
            if NUMBER.match(token) or not (match := self.FLAG.match(token)):
                break
            key = match["key"]
            args.success(label, token)
            if key.startswith("-"):
                self._handleFlag(flags, args, label, key[1:], match["value"], len(key) + 2, result)
            else:
                for char in key:
                    self._handleFlag(flags, args, label, char, None, 0, result)
        return result

    def _handleFlag(self, flags, args, label, name, value, start, result):
        flag = flags.getFlag(name)
        if flag is None and (value is None or not self._overrideArgs):
            raise args.failure(name, "undefined flag presented", False, UndefinedFlagError)
        elif flag is not None:
            name = flag.name
        if self._overrideArgs and args.has(name):
            raise args.failure(name, "this argument has already been provided and parsed", False, InvalidFormatError)
        if value is not None:
            if self._overrideArgs:
                args.setArgOverride(name, value)
                args.success(name, value, True)
            if flag is not None:
                result._record(flag, args.subToken(args.index - 1, start))
        elif flag.minArgs > 1:
            raise ValueError("SpoutFlagSyntax cannot parse the multi-value flag %r" % flag)
        elif flag.minArgs == 1:
            slot = label + ":1"
            if not args.hasNext(slot):
                raise args.failure(name, "no value for flag requiring value", False, FlagArityError)
            value = args.currentArgument(slot)
            if self._overrideArgs:
                args.setArgOverride(name, value)
                args.success(name, value, True)
            result._record(flag, args.subArgs(args.index, args.index + 1))
            args.success(slot, value)
        else:
            if self._overrideArgs:
                args.setArgOverride(name, "true")
                args.success(name, True, True)
            result._record(flag, args.subArgs(args.index, args.index))

    def complete(self, command, sender, flags, args, name, cursor, candidates, /):
        return -1

    def __repr__(self):
        return f"SpoutFlagSyntax(overrideArgs={self._overrideArgs})"


__all__ = (
    "FLAG_ARGNAME",
    "Flag",
    "MultiFlag",
    "ParsedFlags",
    "CommandFlags",
    "Strictness",
    "FlagSyntax",
    "DefaultFlagSyntax",
    "SpoutFlagSyntax",
)
