"""
Colored console output for vanish.

Stage banners for the six pipeline stages, per-pass progress bars, the
run summary, and the bucket histogram dump of ``vanish inspect``.

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

from __future__ import annotations

import os
import sys
import time
from dataclasses import dataclass

from colorama import Fore, Style, init as colorama_init
from tqdm import tqdm

from .utils import format_duration

colorama_init(autoreset=True)


class Colors:
    """Color constants for consistent styling."""

    HEADER = Fore.CYAN + Style.BRIGHT
    STAGE = Fore.BLUE + Style.BRIGHT

    SUCCESS = Fore.GREEN + Style.BRIGHT
    WARNING = Fore.YELLOW
    ERROR = Fore.RED + Style.BRIGHT
    INFO = Fore.WHITE

    VALUE = Fore.YELLOW + Style.BRIGHT
    METRIC = Fore.MAGENTA
    PATH = Fore.CYAN

    # Histogram dump: primary (A) and offset (B) rows, winning bucket
    PRIMARY = Fore.GREEN
    OFFSET = Fore.BLUE
    MODE = Fore.RED + Style.BRIGHT

    DIM = Style.DIM
    RESET = Style.RESET_ALL


class Symbols:
    """Status symbols, with ASCII fallbacks for limited terminals."""

    CHECK = "✔"
    CROSS = "✘"
    BULLET = "•"
    STAGE = "▶"
    SPARKLE = "✨"
    FOLDER = "\U0001F4C1"
    CHART = "\U0001F4CA"
    PALETTE = "\U0001F3A8"
    RULE = "═"

    @classmethod
    def use_ascii(cls) -> None:
        cls.CHECK = "[OK]"
        cls.CROSS = "[X]"
        cls.BULLET = "*"
        cls.STAGE = ">"
        cls.SPARKLE = "*"
        cls.FOLDER = "[D]"
        cls.CHART = "[C]"
        cls.PALETTE = "[P]"
        cls.RULE = "="


# Stage number -> (title, Symbols attribute)
STAGES = {
    1: ("Frame Discovery", "FOLDER"),
    2: ("Counting Buckets", "CHART"),
    3: ("Selecting Modes", "STAGE"),
    4: ("Strict Match Pass", "STAGE"),
    5: ("Strongest Channel Pass", "STAGE"),
    6: ("Writing Outputs", "PALETTE"),
}


def print_banner(version: str) -> None:
    """Print the vanish startup banner."""
    rule = Symbols.RULE * 60
    print(f"\n{Colors.HEADER}{rule}")
    print(f"  vanish {version}  {Colors.DIM}transient object removal{Colors.RESET}")
    print(f"{Colors.HEADER}{rule}{Colors.RESET}")


def print_header(text: str, width: int = 60) -> None:
    """Print a styled section header."""
    print(f"\n{Colors.HEADER}{text}")
    print(f"{Symbols.RULE * min(width, max(len(text), 1))}{Colors.RESET}")


def print_success(text: str) -> None:
    print(f"{Colors.SUCCESS}{Symbols.CHECK} {text}{Colors.RESET}")


def print_warning(text: str) -> None:
    print(f"{Colors.WARNING}! {text}{Colors.RESET}")


def print_error(text: str) -> None:
    print(f"{Colors.ERROR}{Symbols.CROSS} {text}{Colors.RESET}", file=sys.stderr)


def print_info(text: str) -> None:
    print(f"{Colors.INFO}{Symbols.BULLET} {text}{Colors.RESET}")


def print_metric(name: str, value: str | int | float, unit: str = "") -> None:
    """Print a ``name: value [unit]`` line."""
    suffix = f" {unit}" if unit else ""
    print(f"  {Colors.METRIC}{name}: {Colors.VALUE}{value}{Colors.RESET}{suffix}")


def print_path(label: str, path: str) -> None:
    print(f"  {Colors.INFO}{label}: {Colors.PATH}{path}{Colors.RESET}")


def _percent(part: int, whole: int) -> str:
    return f"{100.0 * part / whole:.1f}%" if whole else "n/a"


def print_run_summary(
    n_frames: int,
    n_pixels: int,
    first_pass_failed: int,
    second_pass_failed: int,
    elapsed: float,
) -> None:
    """
    Print the end-of-run summary.

    Reports how many pixels each pass left unresolved, as counts and as
    a share of the image.
    """
    rows = [
        ("Frames", str(n_frames)),
        ("Pixels", str(n_pixels)),
        ("1st pass failed pixels", f"{first_pass_failed} ({_percent(first_pass_failed, n_pixels)})"),
        ("2nd pass failed pixels", f"{second_pass_failed} ({_percent(second_pass_failed, n_pixels)})"),
        ("Processing time", format_duration(elapsed)),
    ]
    label_width = max(len(label) for label, _ in rows)

    print(f"\n{Colors.SUCCESS}{Symbols.SPARKLE} Complete {Symbols.SPARKLE}{Colors.RESET}")
    for label, value in rows:
        print(f"  {Colors.METRIC}{label:<{label_width}}  {Colors.VALUE}{value}{Colors.RESET}")


def format_counts(counts: list[int], highlight: int | None = None, color: str = "") -> str:
    """
    Render one bucket histogram as space-separated counts.

    Parameters
    ----------
    counts : list[int]
        Count per bucket.
    highlight : int, optional
        Bucket index to emphasise (the selected mode).
    color : str, default ""
        Color prefix for the other counts.
    """
    width = max(len(str(c)) for c in counts) if counts else 1
    cells = []
    for idx, c in enumerate(counts):
        text = f"{c:>{width}}"
        if idx == highlight:
            cells.append(f"{Colors.MODE}{text}{Colors.RESET}")
        elif c == 0:
            cells.append(f"{Colors.DIM}{text}{Colors.RESET}")
        else:
            cells.append(f"{color}{text}{Colors.RESET}")
    return " ".join(cells)


@dataclass
class ProgressConfig:
    """Configuration for progress bars."""

    bar_format: str = "{l_bar}{bar}| {n_fmt}/{total_fmt} [{elapsed}<{remaining}]"
    ncols: int = 80
    colour: str = "green"
    leave: bool = False


def create_progress_bar(
    total: int,
    desc: str,
    unit: str = "frame",
    config: ProgressConfig | None = None,
    disable: bool = False,
) -> tqdm:
    """
    Create a progress bar for one pass over the frames.

    Parameters
    ----------
    total : int
        Number of frames in the pass.
    desc : str
        Pass label ("Reading", "1st pass", "2nd pass").
    unit : str, default "frame"
        Unit name.
    config : ProgressConfig, optional
        Bar styling.
    disable : bool, default False
        Disable the bar (quiet runs, tests).

    Returns
    -------
    tqdm
        Progress bar, usable as a context manager.
    """
    if config is None:
        config = ProgressConfig()

    return tqdm(
        total=total,
        desc=f"   {desc}",
        unit=unit,
        bar_format=config.bar_format,
        ncols=config.ncols,
        colour=config.colour,
        leave=config.leave,
        disable=disable,
    )


class PipelineProgress:
    """
    Stage banners for a reconstruction run.

    Stage titles and symbols come from ``STAGES``; a custom title can
    still be passed.

    Example
    -------
    >>> progress = PipelineProgress()
    >>> progress.start_stage(2)
    >>> progress.update_detail("Confidence threshold: 12 frames")
    >>> progress.complete_stage("120 frames counted")
    """

    def __init__(self, total_stages: int = len(STAGES), quiet: bool = False):
        self.total_stages = total_stages
        self.current_stage = 0
        self.quiet = quiet
        self._stage_start_time: float | None = None

    def start_stage(self, stage_num: int, name: str | None = None) -> None:
        self.current_stage = stage_num
        self._stage_start_time = time.time()
        if self.quiet:
            return

        title, symbol = STAGES.get(stage_num, (f"Stage {stage_num}", "STAGE"))
        print(
            f"\n{Colors.STAGE}{getattr(Symbols, symbol)}  "
            f"[{stage_num}/{self.total_stages}] {name or title}{Colors.RESET}"
        )

    def update_detail(self, text: str) -> None:
        if not self.quiet:
            print(f"   {Colors.INFO}{text}{Colors.RESET}")

    def complete_stage(self, message: str = "") -> None:
        if self.quiet:
            return
        elapsed = ""
        if self._stage_start_time is not None:
            elapsed = f" ({format_duration(time.time() - self._stage_start_time)})"
        print(f"   {Colors.SUCCESS}{Symbols.CHECK} {message or 'Done'}{elapsed}{Colors.RESET}")

    def fail_stage(self, message: str) -> None:
        if not self.quiet:
            print(f"   {Colors.ERROR}{Symbols.CROSS} {message}{Colors.RESET}")


def setup_terminal() -> bool:
    """
    Pick unicode or ASCII symbols for the current terminal.

    Returns
    -------
    bool
        True if unicode symbols are kept.
    """
    encoding = (getattr(sys.stdout, "encoding", None) or "").lower()
    unicode_ok = (
        os.environ.get("TERM") != "dumb"
        and ("utf" in encoding or "utf" in os.environ.get("LANG", "").lower())
    )
    if not unicode_ok:
        Symbols.use_ascii()
    return unicode_ok
