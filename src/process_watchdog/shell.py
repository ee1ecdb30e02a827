"""Interactive menu shell for Process Watchdog."""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import click

from .monitor import MonitorEntry
from .watchdog import ProcessWatchdog

LIST_COLORS = ("cyan", "magenta", "blue", "yellow", "green")


class Mode(Enum):
    MAIN = "main"
    ADD = "add"
    ENTRY = "entry"
    STOP = "stop"
    EXIT = "exit"


@dataclass
class ShellState:
    """Everything the shell needs between menu iterations."""

    watchdog: ProcessWatchdog
    mode: Mode = Mode.MAIN
    selected: Optional[MonitorEntry] = None
    force: bool = False
    # (text, background color) printed after the next menu header
    messages: list[tuple[str, Optional[str]]] = field(default_factory=list)

    def say(self, text: str, color: Optional[str] = None):
        self.messages.append((text, color))


def format_duration(seconds: float) -> str:
    """Format seconds as d.hh:mm:ss."""
    seconds = max(int(seconds), 0)
    days, rem = divmod(seconds, 86400)
    hours, rem = divmod(rem, 3600)
    minutes, secs = divmod(rem, 60)
    return f"{days}.{hours:02d}:{minutes:02d}:{secs:02d}"


def _read() -> str:
    try:
        value = click.prompt("", default="", show_default=False, prompt_suffix="> ")
    except click.Abort:
        return "exit"
    return value.strip()


def _ask_number(message: str) -> Optional[float]:
    """Prompt until a number is entered. Returns None on 'exit' or a non-positive value."""
    while True:
        click.echo(message)
        value = _read().lower()
        if value == "exit":
            return None
        try:
            result = float(value)
        except ValueError:
            click.echo("Can't parse param")
            continue
        if result <= 0:
            click.echo("Value must be greater than zero")
            return None
        return result


def _header(title: str, color: str, state: ShellState, subtitle: Optional[str] = None):
    click.clear()
    click.secho("Process monitor program.", bg=color)
    if subtitle:
        click.secho(subtitle, bg="blue")
    click.echo(title)
    for text, bg in state.messages:
        click.secho(text, bg=bg)
    state.messages.clear()


def main_menu(state: ShellState):
    _header("Type h and enter for help", "green", state, subtitle="Main menu")
    command = _read().lower()
    registry = state.watchdog.registry

    if command == "exit":
        state.mode = Mode.STOP
    elif command == "h":
        state.say("This is main menu of process monitor program.")
        state.say("Type a and enter to add new process.")
        state.say("Type l and enter to show all added processes.")
        state.say("Enter process name (regex) or id to configure a process.")
        state.say("Type exit to stop monitoring and quit.")
    elif command == "a":
        state.mode = Mode.ADD
    elif command == "l":
        if not len(registry):
            state.say("No processes added yet.")
        for entry, color in zip(registry, itertools.cycle(LIST_COLORS)):
            status = entry.status()
            if status.bound:
                state.say(f"Process {status.name}, id {status.pid}", color)
            else:
                state.say(f"Process search name {status.pattern}", color)
            state.say(f"Check frequency {status.frequency:g} p.m.", color)
            state.say(f"Max live time {status.max_lifetime:g} sec.", color)
    elif command:
        entry = registry.select(command)
        if entry is None:
            state.say(f"No single monitored process matches '{command}'", "yellow")
        else:
            state.selected = entry
            state.mode = Mode.ENTRY


def add_menu(state: ShellState):
    _header("Type -h and enter for help, type exit to go to the main menu", "magenta", state,
            subtitle="Add process menu")
    query = _read()
    table = state.watchdog.table

    if not query:
        state.say("Please, type valid name.", "yellow")
        return
    if query == "-h":
        state.say("Type -l and enter to get processes list.")
        state.say("Type -f and enter to set or reset force flag.")
        state.say("Type process id / name (or regex) to select process.")
        state.say("Type exit to go back to the main menu.")
        return
    if query == "-f":
        state.force = not state.force
        state.say(f"Force flag is {state.force}")
        return
    if query == "-l":
        state.say("Process list", "magenta")
        state.say("id       name")
        for process in sorted(table.snapshot(), key=lambda p: p.pid):
            state.say(f"{process.pid:<8} {process.name}")
        return
    if query.lower() == "exit":
        state.mode = Mode.MAIN
        return

    if query.isdigit():
        process = table.find_pid(int(query))
        if process is None:
            state.say(f"Process with id {query} not found", "yellow")
            return
        name = process.name
    else:
        try:
            matches = table.search(query)
        except ValueError as e:
            state.say(str(e), "red")
            return
        state.say("Search by name")
        state.say("id       name")
        for process in matches:
            state.say(f"{process.pid:<8} {process.name}")
        if len(matches) != 1 and not state.force:
            state.say("Process not selected. Narrow the search or set the force flag with -f.",
                      "yellow")
            return
        name = matches[0].name if len(matches) == 1 else query

    frequency = _ask_number(f'Please enter check frequency (p.m) for {name} process, or "exit" to cancel')
    if frequency is None:
        state.messages.clear()
        return
    max_lifetime = _ask_number(f'Please enter live time (sec) for {name} process, or "exit" to cancel')
    if max_lifetime is None:
        state.messages.clear()
        return

    entry, message = state.watchdog.register(query, frequency, max_lifetime, force=state.force)
    if entry is None:
        state.say(message, "red")
        return
    state.say(message)
    state.mode = Mode.MAIN


def entry_menu(state: ShellState):
    entry = state.selected
    if entry is None:
        state.mode = Mode.MAIN
        return

    status = entry.status()
    _header("Type h and enter for help, type exit to go to the main menu", "green", state,
            subtitle=f"Process {status.display_name} menu")
    command = _read().lower()

    if command == "h":
        state.say("Type f and enter to set process check frequency.")
        state.say("Type t and enter to set process live time.")
        state.say("Type s and enter to show status of process monitor.")
        state.say("Type d and enter to delete process from list.")
        state.say("Type exit to go back to the main menu.")
    elif command == "f":
        value = _ask_number("Please, enter check frequency for this process")
        if value is not None:
            entry.frequency = value
            state.say(f"Frequency set as {value:g}")
    elif command == "t":
        value = _ask_number("Please, enter max live time (sec)")
        if value is not None:
            entry.max_lifetime = value
            state.say(f"Max live time set as {value:g}")
    elif command == "d":
        if state.watchdog.registry.remove(entry):
            state.say(f"Process {status.display_name} deleted from list")
            state.selected = None
            state.mode = Mode.MAIN
        else:
            state.say("Can't remove process.", "red")
    elif command == "s":
        state.say(f"Name for process search = {status.pattern}")
        state.say(f"Check frequency = {status.frequency:g}")
        state.say(f"Max live time = {format_duration(status.max_lifetime)} (d.h.m.s)")
        if status.bound:
            state.say(f"Time after start = {format_duration(status.uptime_seconds)} (d.h.m.s)")
            state.say(f"Process name = {status.name}, id {status.pid}")
        else:
            state.say("Waiting for a single matching process")
    elif command == "exit":
        state.selected = None
        state.mode = Mode.MAIN
    else:
        state.say("Can't respond, type h and enter for help", "yellow")


MENUS = {
    Mode.MAIN: main_menu,
    Mode.ADD: add_menu,
    Mode.ENTRY: entry_menu,
}


def run_shell(state: ShellState):
    """Run menus until the operator exits, then stop every monitor."""
    while state.mode != Mode.EXIT:
        if state.mode == Mode.STOP:
            state.watchdog.shutdown()
            state.mode = Mode.EXIT
            continue
        MENUS[state.mode](state)
