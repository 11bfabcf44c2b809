################################################################################
# VOL-DOCKA
#
# @file:        volume_selector.py
# @module:      vol_docka.cores.volume_selector
# @description: Exclusion filter and interactive numbered volume picker.
# @author:      Vol-Docka Contributors
# @repository:  https://github.com/vol-docka/vol-docka
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# Copyright (c) 2025 Vol-Docka Contributors
# MIT-Lizenz: siehe LICENSE oder https://opensource.org/licenses/MIT
################################################################################

"""
Choosing which volumes a run backs up.
"""

from __future__ import annotations

from typing import Callable, Iterable, List, Optional, Sequence

from ..helpers.logging import get_logger
from ..helpers.ui_utils import confirm_action, console, print_error, print_warning
from .consent_gate import UserCancelled

logger = get_logger(__name__)


class SelectionError(ValueError):
    """Picker input that cannot be turned into a volume list."""


class VolumeSelector:
    """
    Args:
        excluded: Volume names excluded by configuration
        ask: Reads one line of picker input
        confirm: Yes/no callable (question, default) -> bool
    """

    def __init__(
        self,
        excluded: Iterable[str] = (),
        ask: Optional[Callable[[str], str]] = None,
        confirm: Optional[Callable[[str, bool], bool]] = None,
    ):
        self.excluded = set(excluded)
        self.ask = ask or (lambda prompt: console.input(f"[cyan]{prompt}[/cyan] "))
        self.confirm = confirm or (lambda q, d: confirm_action(q, default_no=not d))

    def is_excluded(self, volume: str) -> bool:
        return volume in self.excluded

    def filter(self, volumes: Sequence[str]) -> List[str]:
        kept = []
        for volume in volumes:
            if self.is_excluded(volume):
                logger.info("Skipping excluded volume", extra={"volume": volume})
            else:
                kept.append(volume)
        return kept

    def explicit(self, available: Sequence[str], requested: Sequence[str]) -> List[str]:
        """
        Volumes named on the command line, in the order given.

        Raises:
            SelectionError: If a requested volume does not exist remotely
        """
        missing = [v for v in requested if v not in available]
        if missing:
            raise SelectionError(f"Volume(s) not found on remote host: {', '.join(missing)}")
        return self.filter(list(dict.fromkeys(requested)))

    def parse(self, selection: str, volumes: Sequence[str]) -> List[str]:
        """
        Turn picker input into volumes.

        "all" picks every non-excluded volume, "q" cancels, otherwise
        whitespace separated 1-based numbers.

        Raises:
            UserCancelled: On "q"
            SelectionError: On invalid input or an empty result
        """
        selection = selection.strip().lower()
        if selection == "q":
            raise UserCancelled("Volume selection cancelled")
        if selection == "all":
            chosen = self.filter(volumes)
            if not chosen:
                raise SelectionError("No volumes available (all are excluded)")
            return chosen

        chosen: List[str] = []
        for token in selection.split():
            if not token.isdigit() or not 1 <= int(token) <= len(volumes):
                raise SelectionError(f"Invalid selection: {token}")
            volume = volumes[int(token) - 1]
            if self.is_excluded(volume):
                print_warning(f"Volume {volume} is excluded by configuration, skipping")
                continue
            if volume not in chosen:
                chosen.append(volume)
        if not chosen:
            raise SelectionError("No valid volumes selected.")
        return sorted(chosen)

    def pick(self, volumes: Sequence[str]) -> List[str]:
        """
        Interactive selection loop followed by a final confirmation.

        Raises:
            UserCancelled: On "q", end of input, or when the final prompt is declined
        """
        if not volumes:
            raise SelectionError("No volumes available for selection")

        console.print("\n[bold cyan]Available Docker volumes:[/bold cyan]\n")
        for i, volume in enumerate(volumes, 1):
            note = " [yellow](excluded by config)[/yellow]" if self.is_excluded(volume) else ""
            console.print(f"{i:2d}) {volume}{note}")
        console.print("\nSelection options:")
        console.print("  • Enter volume numbers separated by spaces (e.g., 1 3 5)")
        console.print("  • Enter 'all' to select all non-excluded volumes")
        console.print("  • Enter 'q' to quit\n")

        while True:
            try:
                chosen = self.parse(self._read("Your selection:"), volumes)
                break
            except SelectionError as e:
                print_error(str(e))
                console.print("Please try again.\n")

        console.print("\n[cyan]Selected volumes for backup:[/cyan]")
        for volume in chosen:
            console.print(f"  • {volume}")

        try:
            proceed = self.confirm("Proceed with backup?", False)
        except EOFError:
            raise UserCancelled("Input closed before volume selection was confirmed")
        if not proceed:
            logger.info("Backup cancelled.")
            raise UserCancelled("Volume selection not confirmed")
        return chosen

    def _read(self, prompt: str) -> str:
        try:
            return self.ask(prompt)
        except EOFError:
            console.print()
            raise UserCancelled("Input closed during volume selection")
