"""CLI utility functions for toolmirror.

This module provides common utilities used across CLI commands including:
- Logging setup
- Error handling and formatting
- Plan display
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from toolmirror.sync.reconciler import DiffPlan

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(verbose: bool = False, quiet: bool = False, log_file: Optional[Path] = None) -> None:
    """Configure the root logger for CLI runs.

    Args:
        verbose: Log DEBUG messages
        quiet: Only log warnings and errors to the console
        log_file: Optional rotating log file (always at DEBUG when verbose, else INFO)
    """
    level = logging.DEBUG if verbose else logging.INFO

    logger = logging.getLogger()
    logger.setLevel(level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.WARNING if quiet else level)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(console_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            str(log_file),
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=3,
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(file_handler)

    # urllib3 logs every retry at WARNING; keep it to our own messages
    logging.getLogger("urllib3").setLevel(logging.ERROR)


class ErrorFormatter:
    """Formats and displays error messages with ANSI color codes."""

    # ANSI color codes
    RED = "\033[1;31m"
    GREEN = "\033[1;32m"
    YELLOW = "\033[1;33m"
    RESET = "\033[0m"

    @staticmethod
    def print_error(title: str, message: str) -> None:
        """Print formatted error message.

        Args:
            title: Error title (e.g., "Sync failed")
            message: Error message details
        """
        print()
        print(f"{ErrorFormatter.RED}✗ {title}{ErrorFormatter.RESET}")
        print()
        print(message)
        print()

    @staticmethod
    def print_success(message: str) -> None:
        print()
        print(f"{ErrorFormatter.GREEN}✓ {message}{ErrorFormatter.RESET}")

    @staticmethod
    def print_warning(message: str) -> None:
        print()
        print(f"{ErrorFormatter.YELLOW}✗ {message}{ErrorFormatter.RESET}")

    @staticmethod
    def handle_file_not_found(error: FileNotFoundError) -> None:
        """Handle FileNotFoundError with standard formatting."""
        ErrorFormatter.print_error("Error: File not found", str(error))
        sys.exit(1)

    @staticmethod
    def handle_config_error(error: Exception) -> None:
        """Handle configuration errors with standard formatting."""
        ErrorFormatter.print_error("Error: Invalid configuration", str(error))
        sys.exit(2)

    @staticmethod
    def handle_manifest_error(error: Exception) -> None:
        """Handle manifest read/write failures; nothing was committed."""
        ErrorFormatter.print_error("Error: Manifest unavailable, run aborted", str(error))
        sys.exit(1)

    @staticmethod
    def handle_keyboard_interrupt() -> None:
        """Handle KeyboardInterrupt with standard formatting."""
        ErrorFormatter.print_warning("Sync interrupted")
        sys.exit(130)  # Standard exit code for SIGINT

    @staticmethod
    def handle_unexpected_error(error: Exception, verbose: bool = False) -> None:
        """Handle unexpected errors with standard formatting.

        Args:
            error: The exception to handle
            verbose: Whether to print traceback
        """
        message = f"{type(error).__name__}: {error}"
        ErrorFormatter.print_error("Unexpected error", message)

        if verbose:
            import traceback

            print("Traceback:")
            print(traceback.format_exc())

        sys.exit(1)


class PlanPrinter:
    """Prints add/delete plans."""

    @staticmethod
    def format_plan(plan: DiffPlan) -> str:
        lines = []
        if plan.to_add:
            lines.append(f"To Add ({len(plan.to_add)}):")
            lines.extend(f"  + {item}" for item in plan.to_add)
        if plan.to_delete:
            lines.append(f"To Delete ({len(plan.to_delete)}):")
            lines.extend(f"  - {item}" for item in plan.to_delete)
        return "\n".join(lines)

    @staticmethod
    def print_plan(plan: DiffPlan) -> None:
        if plan.is_empty:
            ErrorFormatter.print_success("Everything is up to date!")
            return
        print(PlanPrinter.format_plan(plan))
