import traceback

from rich.console import Console
from rich.markup import escape
from rich.traceback import Traceback
from tqdm import tqdm


class Logger:
    """
    Console logging for the whole pipeline.

    Lines are written in tqdm's external write mode so they land above the
    active resolution/download bars instead of through them. Titles scraped
    from pages may contain ``[...]``, so every message is markup-escaped.
    """

    show_warnings = True
    debug_mode = False
    console = Console(highlight=False)

    @classmethod
    def error(cls, text, exception=None):
        """Log an error; in debug mode an attached exception gets a full traceback."""
        cls.print(text, "ERROR:", "red")

        if cls.debug_mode and exception is not None:
            cls.debug_exception(exception)

    @classmethod
    def warning(cls, text):
        if cls.show_warnings:
            cls.print(text, "WARNING:", "yellow")

    @classmethod
    def info(cls, text):
        cls.print(text, "INFO:", "green")

    @classmethod
    def debug(cls, text):
        if cls.debug_mode:
            cls.print(text, "DEBUG:", "blue")

    @classmethod
    def print(cls, text, head, color="green"):
        with tqdm.external_write_mode():
            cls.console.print(f"[{color}]{escape(head)} {escape(str(text))}[/{color}]")

    @classmethod
    def debug_exception(cls, exception):
        if not cls.debug_mode:
            return

        with tqdm.external_write_mode():
            cls.console.print(
                f"[yellow]{type(exception).__name__}:[/yellow] [red]{escape(str(exception))}[/red]"
            )
            if exception.__traceback__ is None:
                return
            try:
                cls.console.print(
                    Traceback.from_exception(
                        type(exception), exception, exception.__traceback__, show_locals=True
                    )
                )
            except Exception:
                traceback.print_exception(type(exception), exception, exception.__traceback__)

    @classmethod
    def set_debug_mode(cls, enabled: bool):
        cls.debug_mode = enabled
        if enabled:
            cls.info("Debug mode enabled, strategy misses and tracebacks will be shown")
