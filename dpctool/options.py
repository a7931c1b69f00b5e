"""Options shared by the archive commands and the overwrite prompt."""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Sequence

OVERWRITE_CHOICES = ("Exit", "Skip this file", "Overwrite this file")

AskFunction = Callable[[str, Sequence[str]], int]


class OverwriteAborted(Exception):
    """Raised when the user chooses to stop instead of overwriting output."""


@dataclass(frozen=True)
class Options:
    """Global switches that control how archives are processed."""

    quiet: bool = False
    force: bool = False
    unsafe: bool = False
    lz: bool = False
    optimization: bool = False
    recursive: bool = False

    @classmethod
    def from_namespace(cls, namespace: argparse.Namespace) -> "Options":
        """Build options from parsed command line arguments."""
        return cls(
            quiet=bool(getattr(namespace, "quiet", False)),
            force=bool(getattr(namespace, "force", False)),
            unsafe=bool(getattr(namespace, "unsafe", False)),
            lz=bool(getattr(namespace, "lz", False)),
            optimization=bool(getattr(namespace, "optimization", False)),
            recursive=bool(getattr(namespace, "recursive", False)),
        )


def _console_ask(prompt: str, choices: Sequence[str]) -> int:
    print(prompt)
    for number, choice in enumerate(choices):
        print(f"  {number}) {choice}")
    answer = input("Selection [0]: ").strip()
    if not answer:
        return 0
    try:
        return int(answer)
    except ValueError:
        return -1


def confirm_overwrite(
    path,
    description: str,
    force: bool,
    ask: Optional[AskFunction] = None,
) -> bool:
    """Decide whether output at ``path`` may be written.

    Returns True to go ahead, False to skip this file.  Raises
    OverwriteAborted when the user chooses to exit.
    """
    target = Path(path)
    if not target.exists() or force:
        return True

    prompt = (
        f"Output {description} already exists. You can avoid this interaction by "
        f"choosing a new output {description} path or run the program with the -f "
        f"flag to overwrite the existing {description} and avoid this prompt for all "
        f"files. What would you like to do for {target}"
    )
    selection = (ask or _console_ask)(prompt, OVERWRITE_CHOICES)
    if selection == 0:
        raise OverwriteAborted("Aborting")
    if selection == 1:
        return False
    if selection == 2:
        return True
    raise ValueError("Invalid choice")