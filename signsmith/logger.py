import os
from rich.console import Console
from functools import lru_cache


@lru_cache(maxsize=1)
def get_console() -> Console:
    """Get or create the shared Console instance"""
    return Console()


def set_verbose(enabled: bool = True) -> None:
    if enabled:
        os.environ["SIGNSMITH_VERBOSE"] = "1"
    else:
        os.environ.pop("SIGNSMITH_VERBOSE", None)


def is_verbose() -> bool:
    return os.getenv("SIGNSMITH_VERBOSE", "").lower() in ("1", "true", "yes")


def debug(message: str) -> None:
    """Log a diagnostic line, only shown in verbose mode"""
    if is_verbose():
        get_console().log(f"[dim]{message}[/]")
