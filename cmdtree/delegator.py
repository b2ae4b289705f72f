"""
cmdtree delegator: run executors on a thread of your choosing.

CommandDelegator wraps an executor. Dispatch threads call execute(), which
only queues the invocation and reports it handled; the owning thread (a
game tick, a worker loop) drains the queue with processOne() or
processAll(). Invocations run in FIFO order; a fault raised while running
one propagates to whoever drains the queue, and the invocation is not retried.
"""
import logging
import queue
from collections import namedtuple

from .commands import EXECUTE, Executor, FunctionExecutor
from .utils import mirror

logger = logging.getLogger(__name__)

Invocation = namedtuple("Invocation", ("command", "sender", "args"))


class CommandDelegator(Executor):
    executor = mirror("executor")

    def __init__(self, executor=None, /):
        if executor is not None and not isinstance(executor, Executor):
            executor = FunctionExecutor(executor)
        self._executor = executor
        self._queue = queue.SimpleQueue()

    @classmethod
    def delegate(cls, command, /):
        """Replace the executor of command with a delegator wrapping it."""
        delegator = cls(command.executor)
        command.executor = delegator
        return delegator

    def execute(self, command, sender, args, /):
        self._queue.put(Invocation(command, sender, args))
        logger.debug("queued %r for %r", command, sender)
        return True

    def pending(self):
        """Approximate number of queued invocations."""
        return self._queue.qsize()

    def processOne(self):
        """
        Run the oldest queued invocation; False when the queue was empty.

        When the wrapped executor is missing or does not handle the
        invocation, dispatch continues into the command's children.
        """
        try:
            command, sender, args = self._queue.get_nowait()
        except queue.Empty:
            return False
        if self._executor is None or not self._executor.execute(command, sender, args):
            command.processChild(sender, args, EXECUTE)
        return True

    def processAll(self):
        """Drain the queue; return how many invocations ran."""
        count = 0
        while self.processOne():
            count += 1
        return count

    def __repr__(self):
        return "CommandDelegator(%r)" % (self._executor,)


__all__ = (
    "Invocation",
    "CommandDelegator",
)
