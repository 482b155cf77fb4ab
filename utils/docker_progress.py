import platform
import re
import time

from rich.live import Live
from rich.spinner import Spinner

from cli.ui import console

# Platform detection for compatible symbols
IS_WINDOWS = platform.system().lower() == 'windows'

if IS_WINDOWS:
    SYMBOL_SUCCESS = "[OK]"
    SYMBOL_FAILED = "[X]"
    SPINNER_STYLE = "line"
else:
    SYMBOL_SUCCESS = "✅"
    SYMBOL_FAILED = "❌"
    SPINNER_STYLE = "dots"

# Lines that are progress chatter from docker pull/build, composer and npm
NOISE_PATTERNS = [
    re.compile(p) for p in (
        r'Pulling|Pull complete|Download|Extracting|Waiting|Verifying',
        r'Already exists|Digest:|Status:|Image is up to date|Downloaded newer image',
        r'^#\d+ ',                                  # buildkit step output
        r'^\s*- (Downloading|Installing|Upgrading|Removing) ',  # composer
        r'^npm (WARN|notice)',
        r'^(added|removed|changed) \d+ packages?',
    )
]


class ProgressMonitor:
    """Spinner shown while a long external command (build, composer, npm) runs."""

    def __init__(self, message: str = "Operation in progress"):
        self.message = message
        self.spinner = Spinner(SPINNER_STYLE, text=f"│     {message}")
        self.live = None
        self.result = None
        self.started = None

    @property
    def success(self):
        return self.result is not None and self.result.ok

    def __enter__(self):
        self.started = time.monotonic()
        # No live display when output is piped (CI, logs)
        if console.is_terminal:
            self.live = Live(self.spinner, console=console, refresh_per_second=10)
            self.live.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.live:
            self.live.stop()

        elapsed = _format_elapsed(time.monotonic() - self.started)
        if self.success:
            console.print(f"  │     {SYMBOL_SUCCESS} {self.message} ({elapsed})", style="bold green")
        elif exc_type is not None:
            console.print(f"  │     {SYMBOL_FAILED} {self.message} - interrupted", style="bold red")
        elif self.result is not None:
            console.print(
                f"  │     {SYMBOL_FAILED} {self.message} - exit code {self.result.returncode} ({elapsed})",
                style="bold red"
            )

    def set_result(self, result):
        self.result = result


def _format_elapsed(seconds):
    minutes, seconds = divmod(int(seconds), 60)
    return f"{minutes}m{seconds:02d}s" if minutes else f"{seconds}s"


def filter_docker_errors(output: str, limit: int = None) -> str:
    """Drop progress chatter, keep what is likely an error. limit keeps the last N lines."""
    if not output:
        return ""

    error_lines = [
        line for line in output.splitlines()
        if line.strip() and not any(p.search(line) for p in NOISE_PATTERNS)
    ]
    if limit:
        error_lines = error_lines[-limit:]
    return '\n'.join(error_lines)
