"""
Terminal output for the starstack command line.

Colored status lines, a per-frame alignment table, the job summary box and
a tqdm bar that doubles as the pipeline's progress sink.

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

from __future__ import annotations

import os
import sys

from colorama import Fore, Style, init as colorama_init
from tqdm import tqdm

colorama_init(autoreset=True)


class Colors:
    """Color constants for consistent styling."""

    HEADER = Fore.CYAN + Style.BRIGHT
    STAGE = Fore.BLUE + Style.BRIGHT
    OK = Fore.GREEN + Style.BRIGHT
    WARN = Fore.YELLOW
    FAIL = Fore.RED + Style.BRIGHT
    TEXT = Fore.WHITE
    LABEL = Fore.MAGENTA
    VALUE = Fore.YELLOW + Style.BRIGHT
    PATH = Fore.CYAN
    RESET = Style.RESET_ALL


class Symbols:
    """Status glyphs; use_ascii() swaps in plain fallbacks."""

    OK = "\u2714"
    FAIL = "\u2718"
    DOT = "\u2022"
    STAR = "\u2605"
    RULE = "\u2550"

    @classmethod
    def use_ascii(cls) -> None:
        cls.OK, cls.FAIL, cls.DOT, cls.STAR, cls.RULE = (
            "[OK]", "[X]", "*", "*", "="
        )


def setup_terminal() -> None:
    """Fall back to ASCII symbols on terminals without Unicode."""
    encoding = (sys.stdout.encoding or "").lower()
    if os.environ.get("TERM") == "dumb" or "utf" not in encoding:
        Symbols.use_ascii()


def print_banner(version: str) -> None:
    print(f"\n{Colors.HEADER}{Symbols.STAR} starstack {version} | frame alignment and stacking{Colors.RESET}")


def print_header(text: str, width: int = 60) -> None:
    rule = Symbols.RULE * width
    print(f"\n{Colors.HEADER}{rule}\n  {text}\n{rule}{Colors.RESET}")


def print_stage(stage_num: int, text: str) -> None:
    print(f"\n{Colors.STAGE}[Stage {stage_num}] {text}{Colors.RESET}")


def print_success(text: str) -> None:
    print(f"{Colors.OK}{Symbols.OK} {text}{Colors.RESET}")


def print_warning(text: str) -> None:
    print(f"{Colors.WARN}! {text}{Colors.RESET}")


def print_error(text: str) -> None:
    print(f"{Colors.FAIL}{Symbols.FAIL} {text}{Colors.RESET}", file=sys.stderr)


def print_info(text: str) -> None:
    print(f"{Colors.TEXT}{Symbols.DOT} {text}{Colors.RESET}")


def print_metric(name: str, value, unit: str = "") -> None:
    suffix = f" {unit}" if unit else ""
    print(f"  {Colors.LABEL}{name}: {Colors.VALUE}{value}{Colors.RESET}{suffix}")


def print_path(label: str, path: str) -> None:
    print(f"  {Colors.TEXT}{label}: {Colors.PATH}{path}{Colors.RESET}")


def print_alignment_table(alignments, names: dict[int, str]) -> None:
    """
    One line per frame: status, strategy confidence and message.

    Parameters
    ----------
    alignments : list[AlignmentResult]
        Results in frame order, reference first.
    names : dict[int, str]
        Frame index to display name.
    """
    for a in alignments:
        name = names.get(a.index, f"frame-{a.index}")
        if a.success:
            mark = f"{Colors.OK}{Symbols.OK}"
        else:
            mark = f"{Colors.FAIL}{Symbols.FAIL}"
        print(
            f"  {mark}{Colors.RESET} {name:<24} "
            f"{Colors.VALUE}{a.confidence:8.3f}{Colors.RESET}  {a.message}"
        )


def print_summary_box(lines: list[str], title: str = "Summary") -> None:
    """Boxed block of summary lines."""
    width = max([len(line) for line in lines] + [len(title)]) + 4
    print(f"\n{Colors.OK}╔" + "═" * width + "╗")
    print(f"║ {title:^{width - 2}} ║")
    print("╟" + "─" * width + "╢")
    for line in lines:
        print(f"║  {line:<{width - 3}}║")
    print("╚" + "═" * width + f"╝{Colors.RESET}")


class StackProgressBar:
    """
    tqdm bar in percent, callable as a pipeline progress sink.

    Fractions in [0, 1] advance the bar; smaller values than the current
    position are ignored.
    """

    def __init__(self, desc: str = "Stacking", disable: bool = False):
        self.bar = tqdm(
            total=100,
            desc=f"{Colors.STAGE}{desc}{Colors.RESET}",
            unit="%",
            bar_format="{l_bar}{bar}| {n_fmt}/{total_fmt}% [{elapsed}<{remaining}]",
            ncols=80,
            colour="green",
            disable=disable,
        )
        self._position = 0

    def __call__(self, fraction: float) -> None:
        target = int(round(fraction * 100))
        if target > self._position:
            self.bar.update(target - self._position)
            self._position = target

    def close(self) -> None:
        self.bar.close()

    def __enter__(self) -> StackProgressBar:
        return self

    def __exit__(self, *exc) -> None:
        self.close()
