"""
Utils module behavioral tests (sentinel, helpers, reader/writer lock).

Scope
- Validate the Unset sentinel and coalesce().
- Validate mirror() copies and quantify() wording.
- Validate RWLock sharing, exclusion and re-entrancy.

Conventions
- Test method names follow CamelCase per project convention.
"""

from __future__ import annotations

import copy
import pickle
import threading
import unittest
from unittest import TestCase

from cmdtree.utils import RWLock, Unset, UnsetType, coalesce, mirror, quantify


class Holder:
    items = mirror("items")

    def __init__(self):
        self._items = {"a": [1, 2]}


class TestHelpers(TestCase):
    """Behavioral tests for the small helpers."""

    def testUnsetIsASingleton(self):
        self.assertIs(UnsetType(), Unset)
        self.assertIs(copy.deepcopy(Unset), Unset)
        self.assertIs(pickle.loads(pickle.dumps(Unset)), Unset)
        self.assertFalse(Unset)
        self.assertEqual(repr(Unset), "Unset")

    def testUnsetInUnions(self):
        self.assertIsInstance(Unset, str | Unset)
        self.assertIsInstance("x", str | Unset)
        self.assertNotIsInstance(1, str | Unset)

    def testUnsetCannotBeSubclassed(self):
        with self.assertRaises(TypeError):
            type("Sub", (UnsetType,), {})

    def testCoalesce(self):
        self.assertEqual(coalesce(Unset, 1), 1)
        self.assertIsNone(coalesce(None, 1))
        self.assertEqual(coalesce(0, 1), 0)

    def testMirrorReturnsCopies(self):
        holder = Holder()
        holder.items["a"].append(3)
        holder.items["b"] = []
        self.assertEqual(holder.items, {"a": [1, 2]})
        with self.assertRaises(AttributeError):
            holder.items = {}

    def testQuantify(self):
        self.assertEqual(quantify(1, "argument"), "1 argument")
        self.assertEqual(quantify(0, "argument"), "0 arguments")
        self.assertEqual(quantify(2, "match"), "2 matches")


class TestRWLock(TestCase):
    """Behavioral tests for RWLock."""

    def testReadersShare(self):
        lock = RWLock()
        inside = threading.Barrier(3, timeout=5)

        def read():
            with lock.reading():
                inside.wait()

        threads = [threading.Thread(target=read) for _ in range(2)]
        for thread in threads:
            thread.start()
        inside.wait()
        for thread in threads:
            thread.join()

    def testWriterExcludesReaders(self):
        lock = RWLock()
        events = []
        entered = threading.Event()

        def read():
            entered.set()
            with lock.reading():
                events.append("read")

        with lock.writing():
            reader = threading.Thread(target=read)
            reader.start()
            entered.wait(5)
            reader.join(0.1)
            events.append("write")
        reader.join(5)
        self.assertEqual(events, ["write", "read"])

    def testReentrancy(self):
        lock = RWLock()
        with lock.writing():
            with lock.writing():
                with lock.reading():
                    pass
        with lock.reading():
            with lock.reading():
                pass

    def testUpgradeIsRejected(self):
        lock = RWLock()
        with lock.reading():
            with self.assertRaises(RuntimeError):
                with lock.writing():
                    pass


if __name__ == "__main__":
    unittest.main()
