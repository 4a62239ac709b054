"""User decision providers.

Workflows never talk to the terminal directly; they ask a DecisionProvider.
The non-interactive provider answers with defaults so every workflow can run
unattended (and under test).
"""

from collections.abc import Sequence
from typing import Protocol

import structlog
from rich.console import Console
from rich.prompt import Confirm, Prompt

logger = structlog.get_logger()


class DecisionProvider(Protocol):
    """Answers the questions a workflow asks at risk points."""

    def confirm(self, question: str, default: bool = False) -> bool: ...

    def choose(self, question: str, options: Sequence[str], default: str | None = None) -> str: ...

    def ask(self, question: str, default: str = "") -> str: ...


def _default_option(options: Sequence[str], default: str | None) -> str:
    if not options:
        raise ValueError("choose() needs at least one option")
    if default is not None and default in options:
        return default
    return options[0]


class NonInteractiveDecisions:
    """Returns defaults deterministically; ``assume_yes`` confirms everything."""

    def __init__(self, assume_yes: bool = False):
        self.assume_yes = assume_yes
        self.logger = logger.bind(component="decisions")

    def confirm(self, question: str, default: bool = False) -> bool:
        answer = True if self.assume_yes else default
        self.logger.debug("Auto-answered confirmation", question=question, answer=answer)
        return answer

    def choose(self, question: str, options: Sequence[str], default: str | None = None) -> str:
        return _default_option(options, default)

    def ask(self, question: str, default: str = "") -> str:
        return default


class TerminalDecisions:
    """Prompts on the terminal through rich."""

    def __init__(self, assume_yes: bool = False, console: Console | None = None):
        self.assume_yes = assume_yes
        self.console = console or Console(stderr=True)

    def confirm(self, question: str, default: bool = False) -> bool:
        if self.assume_yes:
            return True
        return Confirm.ask(question, default=default, console=self.console)

    def choose(self, question: str, options: Sequence[str], default: str | None = None) -> str:
        fallback = _default_option(options, default)
        for index, option in enumerate(options, start=1):
            marker = ">" if option == fallback else " "
            self.console.print(f"  {marker} {index}. {option}")

        response = Prompt.ask(
            f"{question} (1-{len(options)})",
            default=str(options.index(fallback) + 1),
            console=self.console,
        )
        return _select_option(options, response, fallback)

    def ask(self, question: str, default: str = "") -> str:
        response = Prompt.ask(question, default=default, console=self.console)
        return response or default


def _select_option(options: Sequence[str], response: str, fallback: str) -> str:
    """Accept a 1-based index or an option name; anything else selects the fallback."""
    value = (response or "").strip()
    if value in options:
        return value
    try:
        index = int(value) - 1
    except ValueError:
        return fallback
    if 0 <= index < len(options):
        return options[index]
    return fallback


def build_decisions(interactive: bool, assume_yes: bool) -> DecisionProvider:
    """Pick the provider for the CLI flags."""
    if interactive:
        return TerminalDecisions(assume_yes=assume_yes)
    return NonInteractiveDecisions(assume_yes=assume_yes)
