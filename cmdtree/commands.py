"""
cmdtree command layer: a named, concurrently shared dispatch tree.

What this module provides
- Command: one node of the tree. It owns children and aliases (each map
  behind its own reader/writer lock), ordered filters, an optional
  permission and an optional executor.
- Alias: a path of child names relative to its parent; dispatch that reaches
  an alias continues at the command the path resolves to.
- CommandManager: creates commands (exactly one per full name, keys are
  case-insensitive), owns the root, and offers path helpers plus line-level
  execution and completion.
- Execute / Lookup: processing modes driving Command.process().
- Executor / CompletingExecutor / FunctionExecutor: what runs a command.

Dispatch
- process(sender, args, mode): permission check, filters in priority order,
  then mode.step(); when the step does not stop, processChild() pops the next
  token as "subcommand:<depth>" and recurses into the matching child, else
  into the matching alias.
- no token left ends dispatch quietly; a token that matches nothing is passed
  to mode.unmatched(): Execute raises UnknownSubcommandError, Lookup records
  nothing.
- a read lock is held only for one map lookup, never across the recursion,
  so a slow command never blocks registration on its parent.

Names
- full names look like "provider:name"; the simple name is the part after
  the colon, or its last "." segment ("core:admin.ban" -> "ban").
- children may be keyed by simple or full name; getChild() tries the key as
  given, then the simple name derived from it.
- when the manager is not case sensitive, child and alias keys are lowercased.

Quick start
    manager = CommandManager()
    move = manager.getCommand("demo", "move")
    move.executor = lambda command, sender, args: print(args.popVector3("pos"))
    manager.root.addChild(move)
    manager.executeCommand(None, "move 1,2,3")
"""
import logging
import operator
import threading
from abc import ABC, abstractmethod
from collections import defaultdict

from .arguments import SUBCOMMAND_ARGNAME, CommandArguments
from .faults import (
    AliasAlreadyExistsError,
    ArgumentMissingError,
    ChildAlreadyExistsError,
    InsufficientPermissionError,
    InvalidNameError,
    UnknownSubcommandError,
)
from .filters import CommandFilter
from .syntax import DEFAULT_SYNTAX
from .utils import RWLock, Unset, coalesce, mirror

logger = logging.getLogger(__name__)

ROOT_PROVIDER = "cmdtree"


class Executor(ABC):
    @abstractmethod
    def execute(self, command, sender, args, /):
        """Run command; return True when handled, so children are not dispatched."""


class CompletingExecutor(Executor):
    @abstractmethod
    def complete(self, command, sender, args, cursor, candidates, /):
        """
        Append completions for the line offset cursor to candidates.

        Returns the offset they splice at, -1 when there is nothing to offer,
        or -2 when the cursor lies past this command's own arguments and the
        children should be completed instead.
        """


class FunctionExecutor(Executor):
    """
    Adapter for a plain callable(command, sender, args).

    A callback returning None counts as handled; any other result is
    interpreted as the handled flag.
    """

    def __init__(self, callback, /):
        if not callable(callback):
            raise TypeError("FunctionExecutor argument must be callable")
        self._callback = callback

    @property
    def callback(self):
        return self._callback

    def execute(self, command, sender, args, /):
        if (handled := self._callback(command, sender, args)) is None:
            return True
        return bool(handled)

    def __repr__(self):
        return "FunctionExecutor(%s)" % getattr(self._callback, "__qualname__", self._callback)


class ProcessingMode(ABC):
    @abstractmethod
    def step(self, command, sender, args, /):
        """Visit command; return True when processing is done."""

    def unmatched(self, command, sender, args, name, /):
        """Called when name matches neither a child nor an alias of command."""


class Execute(ProcessingMode):
    def step(self, command, sender, args, /):
        if (executor := command.executor) is None:
            return False
        logger.debug("executing %r with %r", command, args)
        return executor.execute(command, sender, args)

    def unmatched(self, command, sender, args, name, /):
        logger.info("unknown subcommand %r of %r", name, command)
        raise UnknownSubcommandError("unknown subcommand %r for /%s" % (name, args.commandString))


class Lookup(ProcessingMode):
    """Records the command reached once no arguments remain."""

    def __init__(self):
        self.command = None

    def step(self, command, sender, args, /):
        if args.hasNext(SUBCOMMAND_ARGNAME + str(args.depth)):
            return False
        self.command = command
        return True


EXECUTE = Execute()


class Alias:
    """
    A path of child names, resolved from parent each time it is used.
    """
    path = mirror("path")
    parent = mirror("parent")

    def __init__(self, path, parent, /):
        if isinstance(path, str):
            path = (path,)
        if not path or not all(isinstance(segment, str) for segment in path):
            raise TypeError("Alias path must be a non-empty sequence of strings")
        if not isinstance(parent, Command):
            raise TypeError("Alias parent must be a command")
        self._path = list(path)
        self._parent = parent

    def resolve(self):
        """The command the path leads to, or None when a segment is missing."""
        command = self._parent
        for segment in self._path:
            if (command := command.getChild(segment)) is None:
                return None
        return command

    def process(self, sender, args, mode, /):
        if (target := self.resolve()) is None:
            logger.info("alias %r of %r leads nowhere", self._path, self._parent)
            return mode.unmatched(self._parent, sender, args, ".".join(self._path))
        logger.debug("alias %r of %r resolved to %r", self._path, self._parent, target)
        return target.process(sender, args, mode)

    def __eq__(self, other):
        if not isinstance(other, Alias):
            return NotImplemented
        return self._path == other._path and self._parent == other._parent

    def __hash__(self):
        return hash((tuple(self._path), self._parent))

    def __repr__(self):
        return "Alias{path=%s, parent=%s}" % (".".join(self._path), self._parent.name)


class Command:
    """
    A node of the command tree.

    Commands are created by CommandManager.getCommand() and compared by name
    only. Registration methods are safe to call from any thread while other
    threads dispatch.
    """
    name = mirror("name")
    simpleName = mirror("simpleName")
    manager = mirror("manager")

    def __init__(self, name, manager, /):
        self._simpleName = self.getSimpleName(name)
        self._name = name
        self._manager = manager
        self._childLock = RWLock()
        self._aliasLock = RWLock()
        self._filterLock = threading.Lock()
        self._children = {}
        self._aliases = {}
        self._filters = ()
        self._executor = None
        self.permission = None
        self.help = None
        self.usage = None
        self.description = None

    @staticmethod
    def getSimpleName(fullName, /):
        """
        "provider:name" -> "name", "provider:a.b.c" -> "c".

        Raises InvalidNameError unless fullName holds exactly one colon
        followed by a non-empty name.
        """
        provider, _, name = fullName.partition(":")
        if fullName.count(":") != 1 or not name:
            raise InvalidNameError("invalid command name %r; must be a full name" % fullName)
        return name.rpartition(".")[2]

    # ---------- dispatch

    def process(self, sender, args, mode, /):
        if not self.hasPermission(sender):
            logger.info("%r denied to %r", self, sender)
            raise InsufficientPermissionError("not enough permissions to execute /%s" % self._simpleName)
        for filter in self._filters:
            filter.validate(self, sender, args)
        if mode.step(self, sender, args):
            return
        self.processChild(sender, args, mode)

    def processChild(self, sender, args, mode, /):
        try:
            name = args.popSubCommand()
        except ArgumentMissingError:
            return
        if not name:
            # An empty segment names no child.
            return
        if (child := self.getChild(name)) is not None:
            return child.process(sender, args, mode)
        if (alias := self.getAlias(name)) is not None:
            return alias.process(sender, args, mode)
        return mode.unmatched(self, sender, args, name)

    def execute(self, sender, args, /):
        self.process(sender, args, EXECUTE)

    def getDescendant(self, path, /):
        """Command at path below this one (aliases included), or None."""
        lookup = Lookup()
        self.process(None, CommandArguments(*path), lookup)
        return lookup.command

    def complete(self, sender, args, cursor, candidates, /):
        """
        Complete the line offset cursor: first through a CompletingExecutor,
        then through child and alias names. Returns a splice offset or -1.
        """
        if not self.hasPermission(sender):
            return -1
        if isinstance(executor := self._executor, CompletingExecutor):
            if (outcome := executor.complete(self, sender, args, cursor, candidates)) != -2:
                return outcome
        label = SUBCOMMAND_ARGNAME + str(args.depth)
        position = args.offsetToArgument(cursor)
        if position[0] < 0 or not args.hasMore():
            return -1
        if position[0] == 0:
            return args.complete(label, position, {*self.children, *self.aliases}, 0, candidates)
        name = args.popSubCommand()
        if (child := self.getChild(name)) is None:
            if (alias := self.getAlias(name)) is None or (child := alias.resolve()) is None:
                return -1
        return child.complete(sender, args, cursor, candidates)

    # ---------- properties

    @property
    def executor(self):
        return self._executor

    @executor.setter
    def executor(self, executor):
        if executor is not None and not isinstance(executor, Executor):
            executor = FunctionExecutor(executor)
        self._executor = executor

    def hasPermission(self, sender, /):
        if (permission := self.permission) is None or sender is None:
            return True
        return sender.hasPermission(permission)

    @property
    def filters(self):
        return list(self._filters)

    def hasFilter(self, filter, /):
        return filter in self._filters

    def addFilter(self, filter, /):
        if not isinstance(filter, CommandFilter):
            raise TypeError("Command.addFilter() argument must be a command filter")
        with self._filterLock:
            if filter in self._filters:
                return False
            # sorted() is stable: equal priorities keep registration order.
            self._filters = tuple(sorted((*self._filters, filter), key=operator.attrgetter("priority")))
        return True

    def addFilters(self, *filters):
        return any([self.addFilter(filter) for filter in filters])

    def removeFilter(self, filter, /):
        with self._filterLock:
            if filter not in self._filters:
                return False
            self._filters = tuple(item for item in self._filters if item != filter)
        return True

    def clear(self):
        """Drop the executor and every filter; children and aliases stay."""
        self._executor = None
        with self._filterLock:
            self._filters = ()

    # ---------- children

    def _checkChild(self, command):
        if command is None:
            raise TypeError("child command must not be None")
        if not isinstance(command, Command):
            raise TypeError("child must be a command")
        if command._manager is not self._manager:
            raise ValueError("%r belongs to a different manager" % command)

    def _key(self, name):
        if not isinstance(name, str):
            raise TypeError("child and alias names must be strings")
        return self._manager.normalizeChildName(name)

    @property
    def children(self):
        with self._childLock.reading():
            return dict(self._children)

    def getChild(self, name, /):
        """
        Child mapped to name; when none is and name is a full name, the child
        mapped to its simple name.
        """
        name = self._key(name)
        with self._childLock.reading():
            if (child := self._children.get(name)) is not None:
                return child
            try:
                return self._children.get(self._key(self.getSimpleName(name)))
            except InvalidNameError:
                return None

    def hasChild(self, name, /):
        name = self._key(name)
        with self._childLock.reading():
            return name in self._children

    def insertChild(self, name, command, /):
        """Map command to name; a displaced child moves to its full name."""
        self._checkChild(command)
        name = self._key(name)
        with self._childLock.writing():
            old = self._children.get(name)
            self._children[name] = command
            self._manager.onCommandChildChange(self, name, old, command)
            if old is not None and old is not command:
                key = self._key(old.name)
                previous = self._children.get(key)
                self._children[key] = old
                self._manager.onCommandChildChange(self, key, previous, old)

    def addChildIfAbsent(self, name, command, /):
        """Map command to name unless taken; return the child already there (or None)."""
        self._checkChild(command)
        name = self._key(name)
        with self._childLock.writing():
            if (previous := self._children.get(name)) is None:
                self._children[name] = command
                self._manager.onCommandChildChange(self, name, None, command)
            return previous

    def addChild(self, *parameters):
        """
        Forms
        - addChild(command): map to the simple name, or to the full name when
          the simple name is taken.
        - addChild(name, command): map to name; ChildAlreadyExistsError if taken.
        """
        match parameters:
            case (command,):
                self._checkChild(command)
                simple = self._key(command.simpleName)
                with self._childLock.writing():
                    if self._children.get(simple) is None:
                        self._children[simple] = command
                        self._manager.onCommandChildChange(self, simple, None, command)
                    else:
                        key = self._key(command.name)
                        old = self._children.get(key)
                        self._children[key] = command
                        self._manager.onCommandChildChange(self, key, old, command)
            case (name, command):
                if name is None:
                    raise TypeError("child name must not be None")
                self._checkChild(command)
                name = self._key(name)
                with self._childLock.writing():
                    if self._children.get(name) is not None:
                        raise ChildAlreadyExistsError("child already exists for name %r of command %s" % (name, self._name))
                    self._children[name] = command
                    self._manager.onCommandChildChange(self, name, None, command)
            case _:
                raise TypeError("addChild takes 1 to 2 arguments but %d were given" % len(parameters))

    def removeChild(self, name, /):
        name = self._key(name)
        with self._childLock.writing():
            old = self._children.pop(name, None)
            self._manager.onCommandChildChange(self, name, old, None)
            return old

    # ---------- aliases

    @property
    def aliases(self):
        with self._aliasLock.reading():
            return dict(self._aliases)

    def getAlias(self, name, /):
        name = self._key(name)
        with self._aliasLock.reading():
            return self._aliases.get(name)

    def hasAlias(self, name, /):
        name = self._key(name)
        with self._aliasLock.reading():
            return name in self._aliases

    def overwriteAlias(self, name, alias, /):
        name = self._key(name)
        with self._aliasLock.writing():
            previous = self._aliases.get(name)
            self._aliases[name] = alias
            self._manager.onAliasChange(self, name, previous, alias)

    def addAlias(self, name, alias, /):
        """Map alias to name; AliasAlreadyExistsError when a different alias is there."""
        name = self._key(name)
        with self._aliasLock.writing():
            previous = self._aliases.get(name)
            if previous is not None and previous != alias:
                raise AliasAlreadyExistsError("alias already exists for name %r of command %s" % (name, self._name))
            self._aliases[name] = alias
            self._manager.onAliasChange(self, name, previous, alias)

    def addAliasIfAbsent(self, name, alias, /):
        name = self._key(name)
        with self._aliasLock.writing():
            if (previous := self._aliases.get(name)) is None:
                self._aliases[name] = alias
                self._manager.onAliasChange(self, name, None, alias)
            return previous

    def removeAlias(self, name, /):
        name = self._key(name)
        with self._aliasLock.writing():
            if (removed := self._aliases.pop(name, None)) is not None:
                self._manager.onAliasChange(self, name, removed, None)
            return removed

    # ---------- object protocol

    def __eq__(self, other):
        if self is other:
            return True
        if not isinstance(other, Command):
            return NotImplemented
        return self._name == other._name

    def __hash__(self):
        return hash(self._name)

    def __repr__(self):
        return "Command{name=%s}" % self._name

    def __rich_repr__(self):
        yield "name", self._name
        yield "children", sorted(self.children), []
        yield "aliases", sorted(self.aliases), []
        yield "permission", self.permission, None


class CommandManager:
    """
    Owner of every command of one tree.

    Parameters
    - createRoot: create the root command "cmdtree:root" right away.
    - caseSensitive: when False, child and alias keys are lowercased.
    - syntax: how executeCommand()/completeCommand() split raw lines.

    Subclasses may override newCommand() to build custom Command types, and
    the onCommandChildChange()/onAliasChange() hooks to mirror the tree.
    """

    def __init__(self, createRoot=True, /, caseSensitive=True, syntax=Unset):
        self._lock = threading.Lock()
        self._commands = {}
        self._providers = defaultdict(dict)
        self._caseSensitive = caseSensitive
        self._syntax = coalesce(syntax, DEFAULT_SYNTAX)
        self._root = self.getCommand(ROOT_PROVIDER, "root") if createRoot else None

    @property
    def caseSensitive(self):
        return self._caseSensitive

    @property
    def syntax(self):
        return self._syntax

    @property
    def root(self):
        return self._root

    @root.setter
    def root(self, command):
        if command is not None and not isinstance(command, Command):
            raise TypeError("CommandManager.root must be a command")
        self._root = command

    def newCommand(self, name, /):
        return Command(name, self)

    def getCommand(self, provider, name=Unset, /):
        """
        Return the command named "provider:name", creating it on first use.

        Concurrent callers asking for the same name (in any letter case) all
        receive the same instance. The one-argument form takes a full name.
        provider may also be any object with a string "name" attribute.
        """
        provider = getattr(provider, "name", provider)
        if name is Unset:
            provider, _, name = provider.partition(":")
        fullName = "%s:%s" % (provider, name)
        key = fullName.lower()
        # Validate before taking the lock; InvalidNameError must leave no trace.
        Command.getSimpleName(fullName)
        with self._lock:
            if (command := self._commands.get(key)) is not None:
                return command
            command = self._commands[key] = self.newCommand(fullName)
            self._providers[provider.lower()][name.lower()] = command
        logger.debug("created %r", command)
        return command

    def getStoredCommand(self, fullName, /):
        return self._commands.get(fullName.lower())

    def normalizeChildName(self, name, /):
        if self._caseSensitive:
            return name
        return name.lower()

    def onCommandChildChange(self, parent, name, before, after, /):
        logger.debug("%r child %r: %r -> %r", parent, name, before, after)

    def onAliasChange(self, parent, name, before, after, /):
        logger.debug("%r alias %r: %r -> %r", parent, name, before, after)

    # ---------- paths

    def getCommandByPath(self, *path):
        return self._root.getDescendant(path)

    def _parentOf(self, path):
        if not path:
            raise ValueError("path must not be empty")
        if (parent := self.getCommandByPath(*path[:-1])) is None:
            raise UnknownSubcommandError("no command at path %r" % " ".join(path[:-1]))
        return parent

    def setPath(self, command, *path):
        """Insert command at path; the parent path must exist."""
        self._parentOf(path).insertChild(path[-1], command)

    def clearPath(self, *path):
        return self._parentOf(path).removeChild(path[-1])

    def clearCommands(self, provider, /):
        """Clear (see Command.clear) every command of provider; False if it has none."""
        provider = getattr(provider, "name", provider)
        with self._lock:
            commands = list(self._providers.get(provider.lower(), {}).values())
        if not commands:
            return False
        for command in commands:
            command.clear()
        return True

    def addAlias(self, path, destination, /):
        """Alias the last segment of path, below its parent, to destination."""
        parent = self._parentOf(tuple(path))
        parent.addAlias(path[-1], Alias(destination, parent))

    # ---------- lines

    def _arguments(self, line):
        if isinstance(line, CommandArguments):
            return line
        return CommandArguments.parse(line, self._syntax)

    def executeCommand(self, sender, line, /):
        """Dispatch a raw line (or prepared CommandArguments) from the root."""
        self._root.execute(sender, self._arguments(line))

    def completeCommand(self, sender, line, cursor=None, /):
        """
        Complete line at cursor (end of line by default).

        Returns (offset, candidates): candidates replace the text between
        offset and cursor; offset is -1 when there is nothing to offer.
        """
        cursor = len(line) if cursor is None else cursor
        candidates = []
        offset = self._root.complete(sender, self._arguments(line), cursor, candidates)
        return offset, candidates

    def __repr__(self):
        return "CommandManager(%d commands)" % len(self._commands)


__all__ = (
    "ROOT_PROVIDER",
    "Executor",
    "CompletingExecutor",
    "FunctionExecutor",
    "ProcessingMode",
    "Execute",
    "Lookup",
    "EXECUTE",
    "Alias",
    "Command",
    "CommandManager",
)
