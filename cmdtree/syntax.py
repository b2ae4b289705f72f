"""
cmdtree syntaxes (tokenization, quoting and escaping rules).

Scope
- A Syntax turns one raw command line into raw tokens, and knows how to
  unescape a raw token into the text a command sees, and how to escape text
  back so it survives another round through split().
- Syntaxes are stateless; one instance may be shared by every thread.

Token model
- split() keeps raw text: quote characters and backslashes stay inside the
  tokens, so the original line can be rebuilt byte for byte.
- splitNoEmpties() folds runs of separators into paddings: "a  b" yields the
  tokens ("a", "b") with paddings (0, 1). A single trailing empty token is
  kept since completion needs to know the cursor sits after a separator.
- An unmatched quote never fails here; it is reported as (quote, offset) and
  CommandArguments decides whether that is an error.

Variants
- DefaultSyntax: quotes open anywhere, backslash escapes any character.
- RegexSyntax: every rule is a regular expression; SPOUT_SYNTAX is the
  preset where quotes only open at a token start and only close at a token end.
"""
import re
from abc import ABC, abstractmethod
from collections import namedtuple

from .flags import DefaultFlagSyntax, SpoutFlagSyntax
from .utils import Unset, coalesce

Split = namedtuple("Split", ("tokens", "paddings", "unclosed"))


class Syntax(ABC):
    """
    Base class for tokenization rules.

    Subclasses implement split(), unescape() and escape(); the padding logic
    and join() are shared.
    """

    def __init__(self, separator, /, flagSyntax=None):
        if not isinstance(separator, str) or not separator:
            raise TypeError(f"{type(self).__name__} separator must be a non-empty string")
        self._separator = separator
        self._flagSyntax = flagSyntax

    @property
    def separator(self):
        return self._separator

    @property
    def flagSyntax(self):
        """Default flag syntax for commands parsed with this syntax (may be None)."""
        return self._flagSyntax

    @abstractmethod
    def split(self, input, /):
        """
        Split a raw line on the separator, honoring quotes.

        Returns (tokens, unclosed) where unclosed is None or (quote, offset).
        Empty tokens are kept; see splitNoEmpties().
        """

    @abstractmethod
    def unescape(self, input, /):
        """Strip quotes and resolve escapes of a raw token."""

    @abstractmethod
    def escape(self, input, /):
        """Escape text so that split() and unescape() give it back unchanged."""

    def splitNoEmpties(self, input, /):
        """
        Split and fold consecutive separators into paddings.

        Behavior
        - paddings[i] is the number of extra separators in front of tokens[i]
          (the first token counts every leading separator).
        - a trailing empty token survives; every other empty token is folded.
        """
        tokens, unclosed = self.split(input)
        output, paddings = [], [0]
        for index, token in enumerate(tokens):
            if token or index == len(tokens) - 1:
                output.append(token)
                paddings.append(0)
            else:
                paddings[-1] += 1
        # The trailing slot only exists for the token that was never appended.
        return Split(tuple(output), tuple(paddings[:len(output)]), unclosed)

    def join(self, tokens, paddings, /):
        """
        Rebuild a raw line from tokens and paddings (inverse of splitNoEmpties).
        """
        if len(tokens) != len(paddings):
            raise ValueError("join() tokens and paddings must have the same length")
        return self._separator.join(self._separator * padding + token for token, padding in zip(tokens, paddings))

    def __repr__(self):
        return f"{type(self).__name__}(separator={self._separator!r})"


class DefaultSyntax(Syntax):
    """
    Space separated tokens, '"' and "'" quotes, backslash escapes anything.

    Quotes may open in the middle of a token (a"b c"d is one token) and a
    quote of the other kind inside a quoted run is plain text.
    """
    QUOTES = "\"'"

    def __init__(self, separator=" ", /, flagSyntax=Unset):
        super().__init__(separator, coalesce(flagSyntax, DefaultFlagSyntax()))

    def split(self, input, /):
        tokens, unclosed = self._scan(input, unescape=False, split=True)
        return tokens, unclosed

    def unescape(self, input, /):
        tokens, _ = self._scan(input, unescape=True, split=False)
        return tokens[0]

    def escape(self, input, /):
        special = set(self.QUOTES + "\\" + self._separator)
        return "".join("\\" + char if char in special else char for char in input)

    def _scan(self, input, /, *, unescape, split):
        tokens, current = [], []
        quote, start = None, -1
        index, length = 0, len(input)
        while index < length:
            char = input[index]
            if split and quote is None and input.startswith(self._separator, index):
                tokens.append("".join(current))
                current = []
                index += len(self._separator)
                continue
            if char == "\\":
                if not unescape:
                    current.append(char)
                if index + 1 < length:
                    current.append(input[index + 1])
                index += 2
                continue
            if quote is not None and char == quote:
                quote = None
            elif quote is None and char in self.QUOTES:
                quote, start = char, index
            else:
                current.append(char)
                index += 1
                continue
            # Quote characters are kept only in raw (split) mode.
            if not unescape:
                current.append(char)
            index += 1
        tokens.append("".join(current))
        return tokens, (quote, start) if quote is not None else None


class RegexSyntax(Syntax):
    """
    Syntax where every rule is a regular expression.

    Parameters
    - quoteStart: pattern whose group 1 is an opening quote.
    - quoteEnd: template with one "%s" replaced by the escaped quote; group 1
      is the closing quote.
    - separator / separatorPattern: literal separator and a pattern whose
      group 1 matches it.
    - unescape: pattern replaced by its group 1 after quotes are stripped.
    - escapeMatch / escapeReplace: re.sub() pair used by escape().
    """

    def __init__(
            self,
            quoteStart,
            quoteEnd,
            separator,
            separatorPattern,
            unescape,
            escapeMatch,
            escapeReplace,
            /,
            flagSyntax=None,
    ):
        super().__init__(separator, flagSyntax)
        self._quoteStart = re.compile(quoteStart)
        self._quoteEnd = quoteEnd
        self._separatorPattern = re.compile(separatorPattern)
        self._unescape = re.compile(unescape)
        self._escapeMatch = re.compile(escapeMatch)
        self._escapeReplace = escapeReplace
        self._quoteEnds = {}

    def _quoteEndPattern(self, quote):
        # Racing threads may both compile; either result is equivalent.
        if (pattern := self._quoteEnds.get(quote)) is None:
            pattern = self._quoteEnds[quote] = re.compile(self._quoteEnd.replace("%s", re.escape(quote), 1))
        return pattern

    def _splitPlain(self, input):
        result, index = [], 0
        while match := self._separatorPattern.search(input, index):
            result.append(input[index:match.start(1)])
            index = match.end(1)
        result.append(input[index:])
        return result

    def split(self, input, /):
        tokens, unclosed = [""], None
        index = 0
        while match := self._quoteStart.search(input, index):
            start, quote = match.start(1), match.group(1)
            head, *rest = self._splitPlain(input[index:start])
            tokens[-1] += head
            tokens.extend(rest)
            if end := self._quoteEndPattern(quote).search(input, start + 1):
                index = end.end(1)
            else:
                # Quoted all the way to the end of the line.
                index = len(input)
                unclosed = (quote, start)
            tokens[-1] += input[start:index]
        if index < len(input):
            head, *rest = self._splitPlain(input[index:])
            tokens[-1] += head
            tokens.extend(rest)
        return tokens, unclosed

    def unescape(self, input, /):
        output, index = [], 0
        while match := self._quoteStart.search(input, index):
            begin = match.end(1)
            # Keep everything before the opening quote, drop the quote itself.
            output.append(input[index:match.start(1)])
            if end := self._quoteEndPattern(match.group(1)).search(input, begin):
                output.append(input[begin:end.start(1)])
                index = end.end(1)
            else:
                output.append(input[begin:])
                index = len(input)
        output.append(input[index:])
        return self._unescape.sub(r"\1", "".join(output))

    def escape(self, input, /):
        return self._escapeMatch.sub(self._escapeReplace, input)


DEFAULT_SYNTAX = DefaultSyntax()

SPOUT_SYNTAX = RegexSyntax(
    r"(?:^| )(['\"])",  # quote start
    r"[^\\](%s)(?: |$)",  # quote end
    " ",  # separator
    r"( )",  # separator pattern
    r"\\([\"'])",  # unescape
    r"['\"]",  # escape match
    r"\\\g<0>",  # escape replace
    flagSyntax=SpoutFlagSyntax(),
)


__all__ = (
    "Split",
    "Syntax",
    "DefaultSyntax",
    "RegexSyntax",
    "DEFAULT_SYNTAX",
    "SPOUT_SYNTAX",
)
