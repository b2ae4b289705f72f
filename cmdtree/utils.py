"""
cmdtree utilities (internal helpers, carefully exposed)

Scope
- Small building blocks shared by the syntax, arguments, flags and commands
  layers. Stable enough for consumers, but designed for the package itself.

Overview
- UnsetType / Unset
  • Singleton sentinel for “value not provided”, distinct from None.
  • Pop methods use it so that None remains a legal default value.

- coalesce(value, default=None)
  • Replace Unset with a concrete default; every other value is preserved.

- rename(callable, name) / @rename("name")
  • Assign stable __name__/__qualname__ to generated wrappers.

- mirror("attr")
  • Read-only property exposing a private backing field (self._attr) as a
    fresh copy for containers, so tree maps cannot be mutated from outside.

- quantify(count, noun)
  • "1 argument", "2 arguments"; used by arity messages.

- RWLock
  • Reader/writer lock guarding command children and aliases. Readers share,
    writers are exclusive, waiting writers block new readers.

Stability and contract
- Names in __all__ are supported; anything else may change without notice.
"""
import builtins
import functools
import threading
from collections.abc import Sequence, Mapping, Set
from contextlib import contextmanager
from typing import final


@final
class UnsetType:
    """
    Sentinel type representing a value that was not provided.

    Characteristics
    - Boolean-false, printable as "Unset", non-subclassable.
    - Singleton per process: UnsetType() always yields the same instance.
    - Usable in isinstance() unions: isinstance(value, str | Unset).
    """

    def __or__(self, other, /):
        try:
            return other | type(self)
        except TypeError:
            return NotImplemented

    def __ror__(self, other, /):
        try:
            return other | type(self)
        except TypeError:
            return NotImplemented

    @functools.cache
    def __new__(cls):
        return super().__new__(cls)

    def __bool__(self):
        return False

    def __repr__(self):
        return "Unset"

    def __reduce__(self):
        return "Unset"

    def __init_subclass__(cls, **options):
        raise TypeError("type 'UnsetType' is not an acceptable base type")


def coalesce(object, default=None, /):
    """
    Resolve the Unset sentinel to a concrete default.

    Falsey values like None, 0 or "" are returned as-is; only Unset is replaced.

    Examples
    - coalesce("name", "fallback") -> "name"
    - coalesce(Unset, "fallback")  -> "fallback"
    - coalesce(None, "fallback")   -> None
    """
    return object if object is not Unset else default


def rename(*parameters):
    """
    Set a stable __name__/__qualname__ on a callable, or return a decorator
    that will do so later.

    Forms
    - rename(callable, name) -> callable
    - rename(name) -> decorator
    """
    match len(parameters):
        case 2:
            callable, name = parameters
            if not builtins.callable(callable):
                raise TypeError("rename() first argument must be callable")
            if not isinstance(name, str):
                raise TypeError("rename() second argument must be a string")
            try:
                callable.__qualname__ = name
                callable.__name__ = name
            except (AttributeError, TypeError):
                raise TypeError("rename() first argument must be a updatable callable") from None
            return callable
        case 1:
            name, = parameters
            if not isinstance(name, str):
                raise TypeError("@rename() argument must be a string")

            def wrapper(callable):
                if not builtins.callable(callable):
                    raise TypeError("@rename() must be applied to a callable")
                return rename(callable, name)

            return rename(wrapper, "rename")
        case _:
            raise TypeError("rename takes 1 to 2 arguments but %d were given" % len(parameters))


def _immortalize(object):
    """
    Copy container values one level at a time, recursing into nested items.

    Sequences (except str/tuple) become lists, mappings become dicts, sets
    become sets; any other value is returned unchanged.
    """
    if isinstance(object, Sequence) and not isinstance(object, str | tuple):
        return list(map(_immortalize, object))
    elif isinstance(object, Mapping):
        return dict(zip(object.keys(), map(_immortalize, object.values())))
    elif isinstance(object, Set):
        return set(map(_immortalize, object))
    else:
        return object


def mirror(name, /):
    """
    Define a read-only property that mirrors a private backing attribute.

    The property reads "_{name}" from the instance and returns a copy for
    container values, so callers never hold the live map of a command node.
    """
    if not isinstance(name, str):
        raise TypeError("mirror() argument must be a string")

    @rename(name)
    def getter(self):
        return _immortalize(getattr(self, "_" + name))

    return property(getter)


def quantify(count, noun, /):
    """
    Return "<count> <noun>" with a naive English plural for counts other than one.
    """
    if not isinstance(count, int):
        raise TypeError("quantify() first argument must be an integer")
    if count == 1:
        return f"{count} {noun}"
    if noun.endswith(("s", "sh", "ch", "x", "z")):
        return f"{count} {noun}es"
    return f"{count} {noun}s"


class RWLock:
    """
    Reader/writer lock with writer preference.

    Behavior
    - Any number of threads may hold the read side together.
    - The write side is exclusive against readers and other writers.
    - A thread already holding the read side may re-acquire it even while a
      writer waits; a thread holding the write side may acquire either side.
    - Use the reading()/writing() context managers; there is no raw acquire.
    """

    def __init__(self):
        self._condition = threading.Condition(threading.Lock())
        self._readers = {}
        self._writer = None
        self._writes = 0
        self._waiting = 0

    @contextmanager
    def reading(self):
        ident = threading.get_ident()
        with self._condition:
            if self._writer != ident:
                while self._writer is not None or (self._waiting and ident not in self._readers):
                    self._condition.wait()
            self._readers[ident] = self._readers.get(ident, 0) + 1
        try:
            yield self
        finally:
            with self._condition:
                if (holds := self._readers[ident] - 1) == 0:
                    del self._readers[ident]
                    self._condition.notify_all()
                else:
                    self._readers[ident] = holds

    @contextmanager
    def writing(self):
        ident = threading.get_ident()
        with self._condition:
            if self._writer != ident:
                if ident in self._readers:
                    raise RuntimeError("cannot upgrade a read lock to a write lock")
                self._waiting += 1
                try:
                    while self._writer is not None or self._readers:
                        self._condition.wait()
                finally:
                    self._waiting -= 1
                self._writer = ident
            self._writes += 1
        try:
            yield self
        finally:
            with self._condition:
                self._writes -= 1
                if not self._writes:
                    self._writer = None
                    self._condition.notify_all()


Unset = UnsetType()
"""
Sentinel for “not provided”.

Pop methods default to Unset so that None stays a legal fallback value;
materialize with coalesce(value, default).
"""


__all__ = (
    # Functions
    "coalesce",
    "rename",
    "mirror",
    "quantify",

    # Types
    "UnsetType",
    "RWLock",

    # Constants
    "Unset",
)
