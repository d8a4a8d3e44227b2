#!/usr/bin/env python3
"""
Confirmation prompts for dotstrap.

Force mode answers yes to everything. Without a terminal, required questions
abort the run and optional ones are answered no.
"""

import sys
from typing import Optional

from rich.console import Console
from rich.prompt import Confirm

from ..errors import NonInteractiveError


def is_interactive() -> bool:
    """Both stdin and stdout are attached to a terminal."""
    return sys.stdin.isatty() and sys.stdout.isatty()


class Prompter:
    """Asks yes/no questions, honoring force and non-interactive sessions."""

    def __init__(
        self,
        force: bool = False,
        interactive: Optional[bool] = None,
        console: Optional[Console] = None
    ):
        self.force = force
        self.interactive = is_interactive() if interactive is None else interactive
        self.console = console or Console(stderr=True)

    def ask(self, question: str, default: bool = False, required: bool = True) -> bool:
        if self.force:
            return True

        if not self.interactive:
            if required:
                raise NonInteractiveError(question)
            return False

        return Confirm.ask(question, default=default, console=self.console)

    def confirm(self, question: str, default: bool = False) -> bool:
        """Ask a question the run cannot continue without."""
        return self.ask(question, default=default, required=True)

    def confirm_optional(self, question: str, default: bool = False) -> bool:
        """Ask about a step that can simply be skipped."""
        return self.ask(question, default=default, required=False)
