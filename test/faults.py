"""
Faults module behavioral tests (codes, messages, replacement, triggering).

Scope
- Validate fault codes and the ArgumentFault message shape.
- Validate copy.replace() support and option overrides.
- Validate trigger() in library mode (raise) and shell mode (render via rich).
- Validate __main__ hooks: __prog__, __codes__ and __docs__.

Conventions
- Test method names follow CamelCase per project convention.
- Shell rendering goes to an in-memory rich Console.
"""

from __future__ import annotations

import copy
import io
import sys
import unittest
from unittest import TestCase, mock

from rich.console import Console

import cmdtree.faults as faults
from cmdtree import (
    ArgumentFault,
    ArgumentMissingError,
    CommandException,
    InvalidNameError,
    UnknownSubcommandError,
    trigger,
    getdoc,
)
from cmdtree.faults import FaultCode


class TestFaultShape(TestCase):
    """Behavioral tests for fault attributes."""

    def testArgumentFaultMessage(self):
        fault = ArgumentMissingError("give Steve", "amount", "argument not present")
        self.assertEqual(fault.message, "/give Steve [amount] invalid: argument not present")
        self.assertEqual(str(fault), fault.message)
        self.assertEqual((fault.command, fault.argument, fault.reason), ("give Steve", "amount", "argument not present"))
        self.assertTrue(fault.silenceable)
        self.assertFalse(ArgumentFault("x", "y", "z").silenceable)

    def testCodes(self):
        self.assertIs(ArgumentMissingError("a", "b", "c").code, FaultCode.ARGUMENT_MISSING)
        self.assertIs(UnknownSubcommandError("x").code, FaultCode.UNKNOWN_SUBCOMMAND)
        self.assertEqual(CommandException("x", code=FaultCode.INVALID_NAME).code, FaultCode.INVALID_NAME)

    def testMessageMustBeAString(self):
        with self.assertRaises(TypeError):
            CommandException(42)
        self.assertEqual(CommandException().message, "")

    def testInvalidNameIsAValueError(self):
        with self.assertRaises(ValueError):
            raise InvalidNameError("bad")

    def testReplaceKeepsFields(self):
        fault = ArgumentMissingError("tp", "pos", "argument not present")
        replaced = copy.replace(fault, hint="try /tp 0 0 0")
        self.assertIsInstance(replaced, ArgumentMissingError)
        self.assertEqual(replaced.message, fault.message)
        self.assertEqual(replaced.options["hint"], "try /tp 0 0 0")
        self.assertNotIn("hint", fault.options)


class TestTrigger(TestCase):
    """Behavioral tests for trigger() and rendering."""

    def setUp(self):
        self.output = io.StringIO()
        patcher = mock.patch.object(faults, "console", Console(file=self.output, width=200))
        patcher.start()
        self.addCleanup(patcher.stop)

    def testLibraryModeRaises(self):
        with self.assertRaises(UnknownSubcommandError):
            trigger(UnknownSubcommandError("unknown subcommand 'x' for /x"))
        self.assertEqual(self.output.getvalue(), "")

    def testShellModeRenders(self):
        fault = ArgumentMissingError("give Steve", "amount", "argument not present")
        trigger(fault, shell=True, deferred=True, colorful=False)
        rendered = self.output.getvalue()
        self.assertIn("Missing Argument", rendered)
        self.assertIn("11111", rendered)
        self.assertIn("/give Steve [amount] invalid", rendered)
        self.assertIn("add the missing value", rendered)

    def testShellModeExits(self):
        with self.assertRaises(SystemExit):
            trigger(CommandException("boom"), shell=True)

    def testFancyPanel(self):
        trigger(CommandException("boom"), shell=True, deferred=True, fancy=True, title="custom title")
        self.assertIn("Custom Title", self.output.getvalue())

    def testMainHooks(self):
        main = sys.modules["__main__"]
        with (
            mock.patch.object(main, "__prog__", "mytool", create=True),
            mock.patch.object(main, "__codes__", {FaultCode.COMMAND_FAILURE: "E-BOOM"}, create=True),
        ):
            trigger(CommandException("boom"), shell=True, deferred=True)
        rendered = self.output.getvalue()
        self.assertIn("mytool", rendered)
        self.assertIn("E-BOOM", rendered)

    def testTriggerRejectsPlainExceptions(self):
        with self.assertRaises(TypeError):
            trigger(ValueError("x"))


class TestGetdoc(TestCase):
    """Behavioral tests for getdoc()."""

    def testRequiresFaultCode(self):
        with self.assertRaises(TypeError):
            getdoc(11111)

    def testLooksUpMainDocs(self):
        main = sys.modules["__main__"]
        with mock.patch.object(main, "__docs__", {FaultCode.ARGUMENT_MISSING: "a value is missing"}, create=True):
            self.assertEqual(getdoc(FaultCode.ARGUMENT_MISSING), "a value is missing")
            self.assertIsNone(getdoc(FaultCode.INVALID_NAME))


if __name__ == "__main__":
    unittest.main()
