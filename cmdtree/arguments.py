"""
cmdtree arguments (the cursor every parser works on).

Scope
- CommandArguments: a mutable, single-threaded cursor over the tokens of one
  command line. It owns the parsed-value cache, argument overrides, the
  reconstruction of what was parsed so far (for messages), and the
  offset <-> argument mapping used by completion.
- Success / Failure: explicit result values returned by attempt(), for
  callers that prefer pattern matching over catching ArgumentFault.

Consumption rules
- success() is the only way a token is consumed; every pop goes through it.
- a named override (setArgOverride("name", ...)) stands in for a token and
  consumes nothing; first writer wins.
- a positional override (setArgOverride(0, ...)) stands in for the n-th
  value read from this cursor; flag syntaxes use it for sub-arguments.

Faults
- ArgumentMissingError is silenceable: pop(name, default=...) and
  potentialDefault() replace it with the default without moving the cursor.
- every other ArgumentFault (bad number, unmatched quote, ...) propagates.

Offsets
- padding is the count of extra separators in front of a token; every offset
  computation multiplies it by len(separator).
- views made by subArgs()/subToken() keep the coordinates of the original
  line, so completion offsets never need translating.
"""
import logging
from collections import namedtuple
from contextlib import contextmanager

from .converters import CONVERTERS, Vector3
from .faults import ArgumentFault, ArgumentMissingError, TooManyArgumentsError, UnmatchedQuoteError
from .syntax import DEFAULT_SYNTAX
from .utils import Unset, coalesce, mirror

logger = logging.getLogger(__name__)

SUBCOMMAND_ARGNAME = "subcommand:"


class Success(namedtuple("Success", ("value",))):
    """A pop that produced value."""
    __slots__ = ()


class Failure(namedtuple("Failure", ("fault",))):
    """A pop that failed with fault (an ArgumentFault)."""
    __slots__ = ()

    @property
    def silenceable(self):
        return self.fault.silenceable


class CommandArguments:
    """
    Cursor over the tokens of one command line.

    Construction
    - CommandArguments("a", "b"): tokens that are already plain text.
    - CommandArguments.parse('a "b c"', syntax): split a raw line; tokens keep
      their raw text and are unescaped when read.

    Not thread-safe: every invocation needs its own instance.
    """
    parsed = mirror("parsed")
    overrides = mirror("overrides")

    def __init__(self, *tokens, syntax=Unset, converters=Unset):
        if not all(isinstance(token, str) for token in tokens):
            raise TypeError("CommandArguments tokens must be strings")
        self._setup(tokens, (0,) * len(tokens), coalesce(syntax, DEFAULT_SYNTAX), None, raw=False, base=0, converters=converters)

    @classmethod
    def parse(cls, input, /, syntax=Unset, *, converters=Unset):
        """Split input with syntax (DEFAULT_SYNTAX by default) into a new cursor."""
        if not isinstance(input, str):
            raise TypeError("CommandArguments.parse() argument must be a string")
        syntax = coalesce(syntax, DEFAULT_SYNTAX)
        tokens, paddings, unclosed = syntax.splitNoEmpties(input)
        self = cls.__new__(cls)
        self._setup(tokens, paddings, syntax, unclosed, raw=True, base=0, converters=converters)
        return self

    def _setup(self, tokens, paddings, syntax, unclosed, *, raw, base, converters):
        self._tokens = tuple(tokens)
        self._paddings = tuple(paddings)
        self._syntax = syntax
        self._unclosed = unclosed
        self._raw = raw
        self._base = base
        self._converters = coalesce(converters, CONVERTERS)
        self._index = 0
        self._depth = 0
        self._parsed = {}
        self._overrides = {}
        self._positional = {}
        self._shift = 0
        self._history = []

    def _derive(self, tokens, paddings, unclosed, base, raw=Unset):
        view = type(self).__new__(type(self))
        view._setup(tokens, paddings, self._syntax, unclosed, raw=coalesce(raw, self._raw), base=base, converters=self._converters)
        return view

    # ---------- state

    @property
    def index(self):
        """Position of the next unconsumed token."""
        return self._index

    @property
    def depth(self):
        """Number of subcommands popped so far."""
        return self._depth

    @property
    def syntax(self):
        return self._syntax

    @property
    def separator(self):
        return self._syntax.separator

    @property
    def paddings(self):
        return self._paddings

    @property
    def unclosed(self):
        """None, or (quote, offset) of a quote left open at the end of the line."""
        return self._unclosed

    @property
    def commandString(self):
        """What was parsed so far, as shown in fault messages."""
        return " ".join(self._history)

    def get(self):
        """Remaining raw tokens."""
        return list(self._tokens[self._index:])

    def getAll(self):
        return list(self._tokens)

    def length(self):
        return len(self._tokens)

    def remaining(self):
        return len(self._tokens) - self._index

    def hasMore(self):
        return self._index < len(self._tokens)

    def hasNext(self, name, /):
        """True when currentArgument(name) would return something."""
        return self.hasOverride(name) or (self.hasMore() and not self._blank(self._index))

    def _blank(self, index):
        # The empty token a trailing separator leaves behind; only completion reads it.
        return self._raw and index == len(self._tokens) - 1 and not self._tokens[index]

    def reachedTrailingSeparator(self):
        """True when only the empty token after a trailing separator is left."""
        return self._blank(self._index)

    def advance(self):
        self._index += 1
        return self._index < len(self._tokens)

    # ---------- offsets

    def offsetToAbsoluteArgument(self, cursor, /):
        """Map a line offset to (token, column); column may be negative inside padding."""
        separator = len(self.separator)
        cursor -= self._base
        length = word = 0
        while word < len(self._tokens):
            length += separator * self._paddings[word]
            if cursor < length + len(self._tokens[word]) + separator:
                break
            length += len(self._tokens[word]) + separator
            word += 1
        return word, cursor - length

    def absoluteArgumentToOffset(self, position, /):
        word, column = position
        separator = len(self.separator)
        length = self._base
        for index in range(min(word, len(self._tokens))):
            length += len(self._tokens[index]) + separator * (self._paddings[index] + 1)
        if word < len(self._paddings):
            length += separator * self._paddings[word]
        return length + column

    def offsetToArgument(self, cursor, /):
        word, column = self.offsetToAbsoluteArgument(cursor)
        return word - self._index, column

    def argumentToOffset(self, position, /):
        word, column = position
        return self.absoluteArgumentToOffset((word + self._index, column))

    # ---------- views

    def subArgs(self, begin, end, /):
        """
        Independent cursor over tokens [begin, end).

        Paddings are kept and offsets stay in the coordinates of this line.
        The unclosed quote is inherited only when the view reaches the last token.
        """
        if not 0 <= begin <= end <= len(self._tokens):
            raise IndexError("subArgs() range %d:%d is outside of %d tokens" % (begin, end, len(self._tokens)))
        padding = self._paddings[begin] if begin < len(self._tokens) else 0
        base = self.absoluteArgumentToOffset((begin, 0)) - len(self.separator) * padding
        unclosed = self._unclosed if end == len(self._tokens) and end > begin else None
        return self._derive(self._tokens[begin:end], self._paddings[begin:end], unclosed, base)

    def subToken(self, position, start, /):
        """
        Cursor over the tail of one token (e.g. the value of --key=value).

        start is a column of the unescaped token, so quotes opened before it
        ('"--key=a b"') do not shift the value. When the text before start
        needs no unescaping, the view keeps the raw tail; otherwise it holds
        the unescaped tail as plain text. Either way its base offset is the
        raw column the tail starts at.
        """
        token = self._tokens[position]
        column, raw = start, self._raw
        if raw and self._syntax.unescape(token[:start]) != token[:start]:
            # Shortest raw prefix that unescapes to start characters.
            column = next(
                (size for size in range(len(token) + 1) if len(self._syntax.unescape(token[:size])) >= start),
                len(token),
            )
            token, raw = self._syntax.unescape(token), False
        base = self.absoluteArgumentToOffset((position, column))
        unclosed = self._unclosed
        if position != len(self._tokens) - 1 or (unclosed is not None and unclosed[1] < base):
            unclosed = None
        return self._derive((token[start:],), (0,), unclosed, base, raw)

    # ---------- overrides

    def setArgOverride(self, name, value, /):
        """
        Let value stand in for the argument name (or for the n-th read when
        name is an int). Returns False when an override is already set.
        """
        target = self._positional if isinstance(name, int) else self._overrides
        if name in target:
            return False
        target[name] = value
        return True

    def hasOverride(self, name, /):
        return name in self._overrides or (self._index + self._shift) in self._positional

    def getOverride(self, name, /):
        if name in self._overrides:
            return self._overrides[name]
        return self._positional.get(self._index + self._shift)

    # ---------- reading and consuming

    def failure(self, name, reason, silenceable, /, kind=ArgumentFault):
        """Build (not raise) a fault for name, carrying the command string so far."""
        return kind(self.commandString, name, reason, silenceable)

    def success(self, name, value, fallback=False, /):
        """
        Record value under name and consume the current token.

        Overridden arguments consume nothing. A fallback value (a default, or a
        result produced without reading this token) does not advance either.
        """
        if name is not None:
            self._parsed[name] = value
        if name in self._overrides:
            self._history.append(str(self._overrides[name]))
        elif (slot := self._index + self._shift) in self._positional:
            self._history.append(str(self._positional[slot]))
            self._shift += 1
        elif self._index >= len(self._tokens):
            self._history.append("[%s]" % name)
        elif not fallback:
            self._history.append(self._tokens[self._index])
            self._index += 1
        return value

    def store(self, name, value, /):
        """Record a parsed value without touching the cursor."""
        self._parsed[name] = value
        return value

    def potentialDefault(self, fault, default, /):
        """Substitute default for a silenceable fault, or re-raise it."""
        if not fault.silenceable:
            raise fault
        logger.debug("defaulting %r to %r: %s", fault.argument, default, fault.reason)
        return self.success(fault.argument, default, True)

    def attempt(self, pop, name, /, *args, **kwargs):
        """
        Run pop(name, *args, **kwargs) and return Success(value) or Failure(fault).

            match args.attempt(args.popInteger, "count"):
                case Success(value): ...
                case Failure(fault) if fault.silenceable: ...
        """
        try:
            return Success(pop(name, *args, **kwargs))
        except ArgumentFault as fault:
            return Failure(fault)

    def currentArgument(self, name, ignoreUnclosedQuote=False, unescape=True, /):
        """
        Return the current argument without consuming it.

        An override wins. Past the end raises ArgumentMissingError (silenceable),
        and so does the empty token of a trailing separator unless
        ignoreUnclosedQuote is set, as completion does. A last token with an
        open quote raises UnmatchedQuoteError unless ignored.
        """
        if self.hasOverride(name):
            return self.getOverride(name)
        if self._index >= len(self._tokens) or (not ignoreUnclosedQuote and self._blank(self._index)):
            raise self.failure(name, "argument not present", True, ArgumentMissingError)
        if not ignoreUnclosedQuote and self._index + 1 == len(self._tokens) and self._unclosed is not None:
            raise self.failure(name, "unmatched quoted string! quote char: %s" % self._unclosed[0], False, UnmatchedQuoteError)
        token = self._tokens[self._index]
        if self._raw and unescape:
            return self._syntax.unescape(token)
        return token

    def peek(self, name=None, /):
        """Current unescaped token, or None at the end; never raises."""
        if not self.hasNext(name):
            return None
        return self.currentArgument(name, True)

    def unescape(self, text, /):
        return self._syntax.unescape(text)

    def escape(self, text, /):
        return self._syntax.escape(text)

    def assertCompletelyParsed(self):
        if self._index < len(self._tokens):
            # A lone trailing separator leaves an empty token behind.
            if self._blank(self._index):
                return
            raise self.failure("...", "too many arguments are present", False, TooManyArgumentsError)

    @contextmanager
    def rewinding(self, name, /):
        """
        Undo any consumption made inside the block if it raises an ArgumentFault,
        then re-raise the fault under name.
        """
        index, depth, shift, history = self._index, self._depth, self._shift, len(self._history)
        parsed = dict(self._parsed)
        try:
            yield self
        except ArgumentFault as fault:
            self._index, self._depth, self._shift = index, depth, shift
            self._parsed = parsed
            del self._history[history:]
            raise self.failure(name, fault.reason, fault.silenceable, type(fault)) from fault

    # ---------- typed pops

    def _defaulted(self, call, default):
        if default is Unset:
            return call()
        try:
            return call()
        except ArgumentFault as fault:
            return self.potentialDefault(fault, default)

    def pop(self, name, type, /, default=Unset):
        """Pop name as type through the converter set."""
        return self._defaulted(lambda: self._converters.convert(self, name, type), default)

    def popString(self, name, /, default=Unset):
        return self.pop(name, str, default)

    def popInteger(self, name, /, default=Unset):
        return self.pop(name, int, default)

    def popFloat(self, name, /, default=Unset):
        return self.pop(name, float, default)

    def popBoolean(self, name, /, default=Unset):
        return self.pop(name, bool, default)

    def popEnumValue(self, name, type, /, default=Unset):
        return self.pop(name, type, default)

    def popVector3(self, name, /, default=Unset):
        """Pop "x,y,z" or three float tokens."""
        return self.pop(name, Vector3, default)

    def popSubCommand(self):
        """Pop the next path segment as "subcommand:<depth>"."""
        segment = self.popString(SUBCOMMAND_ARGNAME + str(self._depth))
        self._depth += 1
        return segment

    def popFlags(self, name, flags, /):
        return flags.parse(self, name)

    def _segments(self, count, *, unescape):
        parts = []
        for offset in range(count):
            index = self._index + offset
            token = self._tokens[index]
            if offset:
                parts.append(self.separator * (self._paddings[index] + 1))
            parts.append(self._syntax.unescape(token) if self._raw and unescape else token)
        return "".join(parts)

    def popRemainingStrings(self, name, /, default=Unset):
        """
        Pop every remaining token as one string, re-inserting the separators
        and paddings that stood between them.
        """

        def call():
            if self.hasOverride(name):
                return self.success(name, self.currentArgument(name))
            if not self.hasNext(name):
                raise self.failure(name, "no arguments present", True, ArgumentMissingError)
            count = self.remaining() - self._blank(len(self._tokens) - 1)
            value = self._segments(count, unescape=True)
            for _ in range(count - 1):
                self.success(None, None)
            return self.success(name, value)

        return self._defaulted(call, default)

    # ---------- parsed values

    def has(self, name, /):
        return name in self._parsed

    def getValue(self, name, /, default=None, type=Unset):
        """Parsed value of name, or default; with type, a mismatch raises TypeError."""
        if (value := self._parsed.get(name)) is None:
            return default
        if type is not Unset and not isinstance(value, type):
            raise TypeError("incorrect argument type %s for argument %r" % (type.__name__, name))
        return value

    # ---------- completion

    def reachedUnclosedQuote(self):
        """The open quote character when it lies at or before the cursor, else ""."""
        if self._unclosed is not None:
            quote, offset = self._unclosed
            if self.offsetToArgument(offset)[0] <= 0:
                return quote
        return ""

    def complete(self, name, position, potential, offset, candidates, /):
        """
        Complete the current argument from the sorted potential candidates.

        position is (argument, column) relative to the cursor, or a line offset.
        Only potential candidates starting with what is typed between column
        offset and the cursor are kept. Returns the splice offset or -1.
        """
        if isinstance(position, int):
            position = self.offsetToArgument(position)
        if self.hasOverride(name):
            raise RuntimeError("completion requested for the overridden argument %r" % name)
        if not 0 <= (word := position[0] + self._index) < len(self._tokens):
            raise ValueError("position %r (cursor %d) is outside of the arguments" % (
                position, self.argumentToOffset(position)
            ))
        rawStart = self._tokens[word][offset:max(offset, position[1])]
        return self.completeRaw(
            rawStart,
            self.absoluteArgumentToOffset((word, offset)),
            self.absoluteArgumentToOffset((word, position[1])),
            potential,
            False,
            candidates,
        )

    def completeRaw(self, rawStart, splice, cursor, potential, raw, candidates, /):
        """
        Append candidates continuing rawStart and return where they splice.

        Every candidate is rawStart + rest + closing quote + separator. When
        nothing matches but a quote is open, the closing quote alone is
        offered at cursor; otherwise -1.
        """
        start = self.unescape(rawStart) if self._raw else rawStart
        quote = self.reachedUnclosedQuote()
        found = False
        for match in sorted(potential):
            if not match.startswith(start):
                continue
            rest = match[len(start):]
            if self._raw and not raw:
                rest = self.escape(rest)
            candidates.append(rawStart + rest + quote + self.separator)
            found = True
        if found:
            return splice
        if not quote:
            return -1
        candidates.append(quote + self.separator)
        return cursor

    def mergeCompletions(self, name, first, firstCandidates, second, secondCandidates, output, /):
        """Merge two completion results into output, relative to the earlier offset."""
        if second < first:
            return self.mergeCompletions(name, second, secondCandidates, first, firstCandidates, output)
        if first < 0:
            output.extend(secondCandidates)
            return second
        output.extend(firstCandidates)
        if first == second:
            output.extend(secondCandidates)
            return first
        if secondCandidates == [self.reachedUnclosedQuote() + self.separator]:
            # Only the automatic closing quote; the earlier result knows better.
            return first
        column = self.offsetToArgument(first)[1]
        prefix = self.currentArgument(name, True, False)[column:column + second - first]
        output.extend(prefix + candidate for candidate in secondCandidates)
        return first

    def completeAndMerge(self, name, position, potential, second, secondCandidates, output, /):
        firstCandidates = []
        first = self.complete(name, position, potential, 0, firstCandidates)
        return self.mergeCompletions(name, first, firstCandidates, second, secondCandidates, output)

    def completeRemainingStrings(self, name, cursor, potential, candidates, /, offset=0):
        """
        Complete text that popRemainingStrings() would return; potential
        candidates are matched against everything typed from the current
        argument up to the cursor.
        """
        if self.hasOverride(name):
            return -1
        word, _ = self.offsetToArgument(cursor)
        if word >= self.remaining():
            raise ValueError("cursor %d is outside of the arguments" % cursor)
        start = self.argumentToOffset((0, 0))
        typed = self._segments(word + 1, unescape=False)
        rawStart = typed[offset:max(offset, cursor - start)]
        return self.completeRaw(rawStart, start + offset, cursor, potential, True, candidates)

    def completeFlags(self, command, sender, name, flags, cursor, candidates, /):
        return flags.complete(command, sender, self, name, cursor, candidates)

    # ---------- display

    def __repr__(self):
        head = " ".join(self._tokens[:self._index])
        tail = " ".join(self._tokens[self._index:])
        return "CommandArguments(%s)" % " ".join(filter(None, (head, "^", tail)))

    def __rich_repr__(self):
        yield "tokens", list(self._tokens)
        yield "index", self._index
        yield "parsed", dict(self._parsed), {}
        yield "overrides", dict(self._overrides), {}


__all__ = (
    "SUBCOMMAND_ARGNAME",
    "Success",
    "Failure",
    "CommandArguments",
)
