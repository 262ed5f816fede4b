"""
Safe prompt utilities for CLI input.

Provides input functions that handle keyboard interrupts gracefully.
"""

from __future__ import annotations

from .util import CANCELLED_EXIT, _print_cancelled


def prompt(label: str, *, allow_empty: bool = False) -> str:
    """
    Safe input prompt that handles Ctrl-C gracefully.

    Args:
        label: Prompt message to display
        allow_empty: Whether to allow empty input

    Returns:
        User input as string

    Exits:
        With code 130 if user cancels with Ctrl-C
    """
    try:
        value = input(label).strip()
        if not value and not allow_empty:
            return prompt(label, allow_empty=allow_empty)  # Re-prompt for empty input
        return value
    except (KeyboardInterrupt, EOFError):
        _print_cancelled()
        raise SystemExit(CANCELLED_EXIT) from None


def confirm_prompt(message: str, default: bool = False) -> bool:
    """
    Confirmation prompt for tool calls.

    Ctrl-C or end of input counts as "no" so a pending tool is declined
    rather than the whole session ending.

    Args:
        message: Confirmation message to display
        default: Default value if user just presses Enter (False = "No", True = "Yes")

    Returns:
        True if user confirms, False otherwise
    """
    suffix = " (Y/n): " if default else " (y/N): "

    while True:
        try:
            response = input(message + suffix).strip().lower()
        except (KeyboardInterrupt, EOFError):
            print()
            return False

        if not response:
            return default
        if response in ["y", "yes"]:
            return True
        if response in ["n", "no"]:
            return False
        print("Please answer 'y' or 'n'")
