"""
cmdtree converters (typed extraction on top of CommandArguments).

A converter reads the current argument, parses it, and consumes it through
CommandArguments.success(); malformed input raises InvalidFormatError, which
is never silenceable. A missing token surfaces as the ArgumentMissingError
raised by currentArgument(), which is.

ConverterSet resolves a converter by walking the requested type's MRO, so
one EnumConverter serves every enum.Enum subclass.
"""
import enum
from abc import ABC, abstractmethod
from collections import namedtuple

from .faults import InvalidFormatError

MAX_ENUM_LISTING = 5


class Vector3(namedtuple("Vector3", ("x", "y", "z"))):
    """
    Three float coordinates.

    parse("1,2,3") and format() are inverse text forms; the whitespace form
    ("1 2 3") is handled by CommandArguments.popVector3().
    """
    __slots__ = ()

    def __new__(cls, x=0.0, y=0.0, z=0.0):
        return super().__new__(cls, float(x), float(y), float(z))

    @classmethod
    def parse(cls, text, /):
        if len(parts := text.split(",")) != 3:
            raise ValueError("a vector needs exactly 3 comma separated coordinates")
        return cls(*map(float, parts))

    def format(self):
        return ",".join("%g" % value for value in self)

    def __add__(self, other):
        if not isinstance(other, Vector3):
            return NotImplemented
        return Vector3(self.x + other.x, self.y + other.y, self.z + other.z)


class Converter(ABC):
    @abstractmethod
    def convert(self, args, name, type, /):
        """Parse and consume the current argument as type; return the value."""


class StringConverter(Converter):
    def convert(self, args, name, type, /):
        return args.success(name, args.currentArgument(name))


class IntegerConverter(Converter):
    def convert(self, args, name, type, /):
        token = args.currentArgument(name)
        try:
            value = int(token)
        except ValueError:
            raise args.failure(name, "input %r is not an integer" % token, False, InvalidFormatError) from None
        return args.success(name, value)


class FloatConverter(Converter):
    def convert(self, args, name, type, /):
        token = args.currentArgument(name)
        try:
            value = float(token)
        except ValueError:
            raise args.failure(name, "input %r is not a number" % token, False, InvalidFormatError) from None
        return args.success(name, value)


class BooleanConverter(Converter):
    def convert(self, args, name, type, /):
        token = args.currentArgument(name)
        match token.lower():
            case "true":
                return args.success(name, True)
            case "false":
                return args.success(name, False)
            case _:
                raise args.failure(name, "value %r is not a boolean" % token, False, InvalidFormatError)


class EnumConverter(Converter):
    """
    Accepts a zero-based member index or a case-insensitive member name.
    """

    @staticmethod
    def describe(type, /):
        members = list(type)
        if len(members) > MAX_ENUM_LISTING:
            listing = "an element of %s" % type.__name__
        else:
            listing = ", ".join("'%s'" % member.name for member in members)
        return "invalid %s; must be 0-%d or %s" % (type.__name__, len(members) - 1, listing)

    def convert(self, args, name, type, /):
        token = args.currentArgument(name)
        members = list(type)
        try:
            index = int(token)
        except ValueError:
            names = {member.name.upper(): member for member in members}
            if (value := names.get(token.upper())) is None:
                raise args.failure(name, self.describe(type), False, InvalidFormatError) from None
            return args.success(name, value)
        if not 0 <= index < len(members):
            raise args.failure(name, self.describe(type), False, InvalidFormatError)
        return args.success(name, members[index])


class Vector3Converter(Converter):
    """
    Accepts "x,y,z" as one token, or three float tokens named name:x,
    name:y and name:z. On any failure the cursor is rewound to where it was,
    so a default can stand in for the whole vector.
    """

    def convert(self, args, name, type, /):
        token = args.currentArgument(name)
        if "," in token:
            parts = token.split(",")
            if len(parts) != 3:
                raise args.failure(name, "must provide 3 coordinates", False, InvalidFormatError)
            for part in parts:
                try:
                    float(part)
                except ValueError:
                    raise args.failure(name, "value %r is not a coordinate" % part, False, InvalidFormatError) from None
            return args.success(name, type(*map(float, parts)))
        with args.rewinding(name):
            x = args.popFloat(name + ":x")
            y = args.popFloat(name + ":y")
            z = args.popFloat(name + ":z")
        return args.store(name, type(x, y, z))


class ConverterSet:
    """
    Registry of converters keyed by type.

    Lookups walk the MRO of the requested type and cache the result, so
    registering a converter for a base class covers its subclasses.
    """

    def __init__(self, converters=None, /):
        self._converters = dict(converters or {})
        self._cache = {}

    def register(self, type, converter, /):
        if not isinstance(converter, Converter):
            raise TypeError("ConverterSet.register() second argument must be a converter")
        self._converters[type] = converter
        self._cache.clear()
        return converter

    def find(self, type, /):
        if (converter := self._cache.get(type)) is not None:
            return converter
        bases = getattr(type, "__mro__", ())
        if isinstance(type, enum.EnumType):
            # IntEnum lists int before Enum in its MRO; members must win.
            bases = (type, enum.Enum, *bases)
        for base in bases:
            if (converter := self._converters.get(base)) is not None:
                self._cache[type] = converter
                return converter
        raise TypeError("no converter registered for %r" % type)

    def convert(self, args, name, type, /):
        return self.find(type).convert(args, name, type)


def defaults():
    """Return a fresh ConverterSet with every builtin converter registered."""
    return ConverterSet({
        str: StringConverter(),
        int: IntegerConverter(),
        float: FloatConverter(),
        bool: BooleanConverter(),
        enum.Enum: EnumConverter(),
        Vector3: Vector3Converter(),
    })


CONVERTERS = defaults()


__all__ = (
    "Vector3",
    "Converter",
    "StringConverter",
    "IntegerConverter",
    "FloatConverter",
    "BooleanConverter",
    "EnumConverter",
    "Vector3Converter",
    "ConverterSet",
    "CONVERTERS",
    "defaults",
)
