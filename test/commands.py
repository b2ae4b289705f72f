"""
Commands module behavioral tests (registration, dispatch, aliases, filters).

Scope
- Validate CommandManager identity guarantees and name handling.
- Validate child and alias registration semantics and change hooks.
- Validate dispatch through executors, children and aliases (scenarios
  "move", "say", "ban", "tp" and alias re-entry).
- Validate permissions, filters, unknown subcommands and path helpers.
- Validate completion of command names.
- Smoke-test concurrent registration and dispatch.

Conventions
- Test method names follow CamelCase per project convention.
- Executors are plain callables unless the executor protocol is the point.
"""

from __future__ import annotations

import threading
import unittest
from concurrent.futures import ThreadPoolExecutor
from unittest import TestCase

from cmdtree import (
    Alias,
    Command,
    CommandArguments,
    CommandFlags,
    CommandManager,
    CompletingExecutor,
    Lookup,
    SenderTypeFilter,
    Vector3,
    filter,
    AliasAlreadyExistsError,
    ArgumentMissingError,
    ChildAlreadyExistsError,
    CommandException,
    InsufficientPermissionError,
    InvalidNameError,
    SenderTypeError,
    UnknownSubcommandError,
)


class Player:
    def __init__(self, *permissions):
        self.permissions = set(permissions)

    def hasPermission(self, permission):
        return permission in self.permissions


class Console:
    def hasPermission(self, permission):
        return True


class RecordingManager(CommandManager):
    def __init__(self, *args, **kwargs):
        self.childChanges = []
        self.aliasChanges = []
        super().__init__(*args, **kwargs)

    def onCommandChildChange(self, parent, name, before, after, /):
        self.childChanges.append((parent, name, before, after))

    def onAliasChange(self, parent, name, before, after, /):
        self.aliasChanges.append((parent, name, before, after))


class TestNames(TestCase):
    """Behavioral tests for full and simple names."""

    def testSimpleName(self):
        self.assertEqual(Command.getSimpleName("core:ban"), "ban")
        self.assertEqual(Command.getSimpleName("core:admin.tools.ban"), "ban")

    def testSimpleNameRequiresOneColon(self):
        for name in ("ban", "a:b:c", "core:"):
            with self.assertRaises(InvalidNameError):
                Command.getSimpleName(name)
        self.assertTrue(issubclass(InvalidNameError, ValueError))

    def testGetCommandIsCaseInsensitiveIdentity(self):
        manager = CommandManager()
        first = manager.getCommand("Demo", "Move")
        self.assertIs(manager.getCommand("demo", "move"), first)
        self.assertIs(manager.getCommand("DEMO:MOVE"), first)
        self.assertIs(manager.getStoredCommand("demo:move"), first)
        self.assertEqual(first.name, "Demo:Move")

    def testGetCommandRejectsBadNames(self):
        with self.assertRaises(InvalidNameError):
            CommandManager().getCommand("demo", "a:b")

    def testConcurrentGetCommandYieldsOneInstance(self):
        manager = CommandManager()
        barrier = threading.Barrier(8)

        def create(_):
            barrier.wait()
            return manager.getCommand("demo", "race")

        with ThreadPoolExecutor(8) as pool:
            commands = list(pool.map(create, range(8)))
        self.assertEqual(len({id(command) for command in commands}), 1)

    def testRootCommand(self):
        manager = CommandManager()
        self.assertEqual(manager.root.name, "cmdtree:root")
        self.assertIsNone(CommandManager(False).root)

    def testEqualityIsByName(self):
        first = CommandManager().getCommand("demo", "x")
        second = CommandManager().getCommand("demo", "x")
        self.assertEqual(first, second)
        self.assertEqual(hash(first), hash(second))
        self.assertEqual(repr(first), "Command{name=demo:x}")


class TestChildren(TestCase):
    """Behavioral tests for child registration."""

    def setUp(self):
        self.manager = RecordingManager()
        self.root = self.manager.root
        self.first = self.manager.getCommand("p1", "x")
        self.second = self.manager.getCommand("p2", "x")

    def testAddChildFallsBackToFullName(self):
        self.root.addChild(self.first)
        self.root.addChild(self.second)
        self.assertIs(self.root.getChild("x"), self.first)
        self.assertIs(self.root.getChild("p2:x"), self.second)
        # An unknown full name falls back to its simple name.
        self.assertIs(self.root.getChild("p3:x"), self.first)
        self.assertIsNone(self.root.getChild("y"))

    def testAddNamedChildTwiceRaises(self):
        self.root.addChild("x", self.first)
        with self.assertRaises(ChildAlreadyExistsError):
            self.root.addChild("x", self.second)

    def testInsertChildMovesDisplacedChild(self):
        self.root.addChild("x", self.first)
        self.root.insertChild("x", self.second)
        self.assertIs(self.root.getChild("x"), self.second)
        self.assertIs(self.root.children["p1:x"], self.first)
        self.assertIn((self.root, "p1:x", None, self.first), self.manager.childChanges)

    def testAddChildIfAbsentReturnsPrevious(self):
        self.assertIsNone(self.root.addChildIfAbsent("x", self.first))
        self.assertIs(self.root.addChildIfAbsent("x", self.second), self.first)
        self.assertIs(self.root.getChild("x"), self.first)

    def testRemoveChild(self):
        self.root.addChild(self.first)
        self.assertIs(self.root.removeChild("x"), self.first)
        self.assertFalse(self.root.hasChild("x"))
        self.assertEqual(self.manager.childChanges[-1], (self.root, "x", self.first, None))

    def testForeignManagerRejected(self):
        stranger = CommandManager().getCommand("p1", "x")
        with self.assertRaises(ValueError):
            self.root.addChild(stranger)
        with self.assertRaises(TypeError):
            self.root.addChild("x", None)

    def testChildrenIsACopy(self):
        self.root.addChild(self.first)
        self.root.children.clear()
        self.assertTrue(self.root.hasChild("x"))


class TestAliases(TestCase):
    """Behavioral tests for alias registration."""

    def setUp(self):
        self.manager = RecordingManager()
        self.root = self.manager.root
        self.target = self.manager.getCommand("demo", "target")
        self.root.addChild(self.target)

    def testAddAliasRejectsDifferentAlias(self):
        self.root.addAlias("t", Alias(["target"], self.root))
        # An equal alias is accepted again.
        self.root.addAlias("t", Alias(["target"], self.root))
        with self.assertRaises(AliasAlreadyExistsError):
            self.root.addAlias("t", Alias(["other"], self.root))

    def testOverwriteAndIfAbsent(self):
        first, second = Alias(["target"], self.root), Alias(["other"], self.root)
        self.assertIsNone(self.root.addAliasIfAbsent("t", first))
        self.assertIs(self.root.addAliasIfAbsent("t", second), first)
        self.root.overwriteAlias("t", second)
        self.assertIs(self.root.getAlias("t"), second)

    def testRemoveAliasHookOnlyWhenRemoved(self):
        self.root.addAlias("t", Alias(["target"], self.root))
        count = len(self.manager.aliasChanges)
        self.assertIsNone(self.root.removeAlias("missing"))
        self.assertEqual(len(self.manager.aliasChanges), count)
        self.assertIsNotNone(self.root.removeAlias("t"))
        self.assertEqual(len(self.manager.aliasChanges), count + 1)
        self.assertFalse(self.root.hasAlias("t"))

    def testAliasResolve(self):
        self.assertIs(Alias("target", self.root).resolve(), self.target)
        self.assertIsNone(Alias(["target", "deeper"], self.root).resolve())


class TestDispatch(TestCase):
    """Behavioral tests for executing lines through the tree."""

    def setUp(self):
        self.manager = CommandManager()
        self.root = self.manager.root
        self.calls = []

    def register(self, name, executor, parent=None):
        command = self.manager.getCommand("demo", name)
        command.executor = executor
        (parent or self.root).addChild(command)
        return command

    def testScenarioMove(self):
        def move(command, sender, args):
            self.calls.append(args.popVector3("pos"))
            self.calls.append(args.remaining())

        self.register("move", move)
        self.manager.executeCommand(None, "move 1,2,3")
        self.assertEqual(self.calls, [Vector3(1, 2, 3), 0])

    def testScenarioSay(self):
        self.register("say", lambda command, sender, args: self.calls.append(args.popRemainingStrings("message")))
        self.manager.executeCommand(None, 'say "hello world"')
        self.assertEqual(self.calls, ["hello world"])

    def testScenarioBan(self):
        flags = CommandFlags().v("reason")

        def ban(command, sender, args):
            player = args.popString("player")
            result = args.popFlags("flags", flags)
            self.calls.append((player, result["reason"].popString("reason"), args.remaining()))

        self.register("ban", ban)
        self.manager.executeCommand(None, "ban Steve --reason=spam")
        self.assertEqual(self.calls, [("Steve", "spam", 0)])

    def testScenarioTeleportMissingComponent(self):
        def tp(command, sender, args):
            args.popString("player")
            self.calls.append(args.popVector3("pos"))

        self.register("tp", tp)
        with self.assertRaises(ArgumentMissingError) as context:
            self.manager.executeCommand(None, "tp Steve 1 2")
        self.assertEqual(context.exception.__cause__.argument, "pos:z")
        self.assertEqual(self.calls, [])

    def testScenarioAliasReentersDispatch(self):
        parent = self.register("parent", None)
        real = self.register("realchild", None, parent)
        self.register("grandchild", lambda command, sender, args: self.calls.append(command.simpleName), real)
        self.manager.addAlias(["parent", "child"], ["realchild"])
        self.manager.executeCommand(None, "parent child grandchild")
        self.assertEqual(self.calls, ["grandchild"])
        self.assertIs(self.manager.getCommandByPath("parent", "child", "grandchild"), real.getChild("grandchild"))

    def testUnhandledExecutorFallsThroughToChildren(self):
        parent = self.register("parent", lambda command, sender, args: False)
        self.register("child", lambda command, sender, args: self.calls.append("child"), parent)
        self.manager.executeCommand(None, "parent child")
        self.assertEqual(self.calls, ["child"])

    def testHandledExecutorStopsDispatch(self):
        parent = self.register("parent", lambda command, sender, args: True)
        self.register("child", lambda command, sender, args: self.calls.append("child"), parent)
        self.manager.executeCommand(None, "parent child")
        self.assertEqual(self.calls, [])

    def testUnknownSubcommandRaises(self):
        with self.assertRaises(UnknownSubcommandError):
            self.manager.executeCommand(None, "nothing")
        self.assertIsNone(self.manager.getCommandByPath("nothing"))

    def testTrailingSeparatorKeepsDefaults(self):
        def give(command, sender, args):
            self.calls.append((args.popString("player"), args.popInteger("amount", 1)))

        self.register("give", give)
        self.manager.executeCommand(None, "give Steve ")
        self.assertEqual(self.calls, [("Steve", 1)])

    def testLookupIgnoresTrailingSeparator(self):
        parent = self.register("parent", None)
        lookup = Lookup()
        self.root.process(None, CommandArguments.parse("parent "), lookup)
        self.assertIs(lookup.command, parent)

    def testEmptyLineEndsQuietly(self):
        self.manager.executeCommand(None, "")
        self.manager.executeCommand(None, "   ")

    def testPermissionDenied(self):
        command = self.register("op", lambda command, sender, args: self.calls.append("op"))
        command.permission = "demo.op"
        with self.assertRaises(InsufficientPermissionError):
            self.manager.executeCommand(Player(), "op")
        self.manager.executeCommand(Player("demo.op"), "op")
        self.manager.executeCommand(None, "op")
        self.assertEqual(self.calls, ["op", "op"])

    def testSenderTypeFilter(self):
        command = self.register("home", lambda command, sender, args: self.calls.append("home"))
        command.addFilter(SenderTypeFilter(Player))
        with self.assertRaises(SenderTypeError) as context:
            self.manager.executeCommand(Console(), "home")
        self.assertEqual(context.exception.message, "you must be a Player to execute this command")
        self.manager.executeCommand(Player(), "home")
        self.assertEqual(self.calls, ["home"])

    def testFiltersRunByPriority(self):
        command = self.register("x", lambda command, sender, args: None)

        @filter(5)
        def late(command, sender, args):
            self.calls.append("late")

        @filter(1)
        def early(command, sender, args):
            self.calls.append("early")

        self.assertTrue(command.addFilters(late, early))
        self.assertFalse(command.addFilter(late))
        self.manager.executeCommand(None, "x")
        self.assertEqual(self.calls, ["early", "late"])

    def testFilterCanReject(self):
        command = self.register("x", lambda command, sender, args: self.calls.append("x"))

        @filter
        def closed(command, sender, args):
            raise CommandException("closed for maintenance")

        command.addFilter(closed)
        with self.assertRaises(CommandException):
            self.manager.executeCommand(None, "x")
        self.assertTrue(command.removeFilter(closed))
        self.manager.executeCommand(None, "x")
        self.assertEqual(self.calls, ["x"])

    def testClearKeepsChildren(self):
        parent = self.register("parent", lambda command, sender, args: True)
        parent.addFilter(SenderTypeFilter(Player))
        child = self.register("child", None, parent)
        parent.clear()
        self.assertIsNone(parent.executor)
        self.assertEqual(parent.filters, [])
        self.assertIs(parent.getChild("child"), child)

    def testClearCommandsByProvider(self):
        command = self.register("x", lambda command, sender, args: None)
        self.assertTrue(self.manager.clearCommands("demo"))
        self.assertIsNone(command.executor)
        self.assertFalse(self.manager.clearCommands("nobody"))

    def testSetAndClearPath(self):
        parent = self.register("parent", None)
        command = self.manager.getCommand("demo", "fresh")
        self.manager.setPath(command, "parent", "new")
        self.assertIs(parent.getChild("new"), command)
        self.assertIs(self.manager.clearPath("parent", "new"), command)
        with self.assertRaises(UnknownSubcommandError):
            self.manager.setPath(command, "missing", "new")

    def testCaseInsensitiveChildren(self):
        manager = CommandManager(caseSensitive=False)
        command = manager.getCommand("demo", "move")
        command.executor = lambda command, sender, args: self.calls.append("move")
        manager.root.addChild(command)
        manager.executeCommand(None, "MOVE")
        self.assertEqual(self.calls, ["move"])

    def testGetDescendantWithLookupMode(self):
        parent = self.register("parent", None)
        child = self.register("child", None, parent)
        self.assertIs(self.root.getDescendant(["parent", "child"]), child)
        lookup = Lookup()
        self.root.process(None, CommandArguments("parent"), lookup)
        self.assertIs(lookup.command, parent)


class TestCompletion(TestCase):
    """Behavioral tests for line completion."""

    def setUp(self):
        self.manager = CommandManager()
        for name in ("move", "mount", "say"):
            self.manager.root.addChild(self.manager.getCommand("demo", name))

    def testCompleteCommandName(self):
        self.assertEqual(self.manager.completeCommand(None, "mo"), (0, ["mount ", "move "]))

    def testCompleteNothing(self):
        self.assertEqual(self.manager.completeCommand(None, "zz"), (-1, []))

    def testCompletingExecutor(self):
        class Players(CompletingExecutor):
            def execute(self, command, sender, args, /):
                return True

            def complete(self, command, sender, args, cursor, candidates, /):
                return args.complete("player", cursor, {"Steve", "Alex"}, 0, candidates)

        self.manager.getCommand("demo", "say").executor = Players()
        self.assertEqual(self.manager.completeCommand(None, "say St"), (4, ["Steve "]))


class TestConcurrency(TestCase):
    """Smoke tests for registration racing with dispatch."""

    def testRegistrationWhileDispatching(self):
        manager = CommandManager()
        counter = manager.getCommand("demo", "count")
        hits = []
        counter.executor = lambda command, sender, args: hits.append(1)
        manager.root.addChild(counter)

        def register(index):
            manager.root.addChild(manager.getCommand("demo", "extra%d" % index))

        def dispatch(_):
            manager.executeCommand(None, "count")

        with ThreadPoolExecutor(8) as pool:
            list(pool.map(register, range(50)))
            list(pool.map(dispatch, range(50)))
        self.assertEqual(len(hits), 50)
        self.assertEqual(len(manager.root.children), 51)


if __name__ == "__main__":
    unittest.main()
