"""Terminal colouring shared by the API launcher and the CLI client."""

from enum import Enum
from typing import (
    Any,
    Dict,
)

_RESET = "\033[0m"


class AnsiColors(Enum):
    """ANSI color codes, one per kind of message the shell prints."""

    RED = "\033[91m"  # failures, rejected plans
    GREEN = "\033[92m"  # successful tool calls, banners
    YELLOW = "\033[33m"  # final replies
    BLUE = "\033[94m"  # prompts, links


def colorize(text: str, color: AnsiColors) -> str:
    return f"{color.value}{text}{_RESET}"


def result_color(result: Dict[str, Any]) -> AnsiColors:
    """Red for an ``is_error`` tool result, green otherwise."""
    return AnsiColors.RED if result.get("is_error") else AnsiColors.GREEN


def colored_print(text: str, color: AnsiColors, *args: Any, **kwargs: Any) -> None:
    """
    Print text in color.

    Args:
        text: The text to print
        color: The color to use
        args, kwargs: Passed through to :func:`print`
    """
    print(colorize(text, color), *args, **kwargs)
