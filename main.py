import logging

from rich.logging import RichHandler
from rich.pretty import pprint
from rich.prompt import Prompt

from cmdtree import *

__prog__ = "cmdtree"

logging.basicConfig(level=logging.INFO, format="%(message)s", handlers=[RichHandler(show_path=False)])

manager = CommandManager(caseSensitive=False)
BAN_FLAGS = CommandFlags().v("reason", "r").b("silent", "s")


def move(command, sender, args):
    pprint(args.popVector3("pos"))
    args.assertCompletelyParsed()


def say(command, sender, args):
    print(args.popRemainingStrings("message"))


def ban(command, sender, args):
    player = args.popString("player")
    flags = args.popFlags("flags", BAN_FLAGS)
    reason = flags["reason"].popString("reason") if "reason" in flags else "no reason given"
    if not flags.isPresent("silent"):
        print("banned %s: %s" % (player, reason))


def tp(command, sender, args):
    player = args.popString("player")
    pprint((player, args.popVector3("pos", Vector3())))


for name, callback in (("move", move), ("say", say), ("ban", ban), ("tp", tp)):
    manager.getCommand("demo", name).executor = callback
    manager.root.addChild(manager.getCommand("demo", name))
manager.addAlias(["teleport"], ["tp"])


if __name__ == '__main__':
    pprint(manager.root)
    while (line := Prompt.ask("[bold]/[/bold]", default="", show_default=False)) not in ("exit", "quit"):
        try:
            manager.executeCommand(None, line)
        except CommandException as fault:
            trigger(fault, shell=True, deferred=True)
