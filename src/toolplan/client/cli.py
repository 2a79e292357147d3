"""CLI client for the toolplan API."""

from __future__ import annotations

import logging
import time
from typing import (
    Any,
    Dict,
    Tuple,
    cast,
)

import httpx

from toolplan.common import (
    AnsiColors,
    colored_print,
    result_color,
)
from toolplan.config import settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# CLI Client
# ---------------------------------------------------------------------------
def get_user_message() -> Tuple[str, bool]:
    """
    Get a message from the user via standard input.

    Returns:
        Tuple of (user_input, success_flag)
        The success_flag is False if input couldn't be read (e.g., Ctrl+C)
    """
    import signal  # pylint: disable=import-outside-toplevel

    # Ensure SIGINT breaks out of slow system calls such as read()
    signal.siginterrupt(signal.SIGINT, True)

    try:
        user_input = input().strip()
        return user_input, True
    except (EOFError, KeyboardInterrupt):
        return "", False


def call_api(endpoint: str, data: Dict[str, Any], max_retries: int = 5) -> Dict[str, Any]:
    """POST *data* to the API, retrying while the server is still starting."""
    api_url = f"http://localhost:{settings.API_PORT}{endpoint}"

    for attempt in range(max_retries):
        try:
            with httpx.Client(timeout=120.0) as client:
                response = client.post(api_url, json=data)
                response.raise_for_status()
                return cast(Dict[str, Any], response.json())
        except httpx.ConnectError as e:
            if attempt < max_retries - 1:
                retry_delay = 0.5 * (2**attempt)  # exponential backoff: 0.5s, 1s, 2s, 4s...
                logger.info(
                    "API not ready yet, retrying in %.1f seconds (attempt %d/%d)...",
                    retry_delay,
                    attempt + 1,
                    max_retries,
                )
                time.sleep(retry_delay)
                continue
            error_msg = f"Error connecting to API: {e}"
            colored_print(error_msg, AnsiColors.RED)
            return {"reply": error_msg}
        except httpx.HTTPStatusError as e:
            logger.error("API request error: %s", str(e))
            try:
                detail = e.response.json().get("detail", str(e))
            except ValueError:
                detail = str(e)
            error_msg = f"API error: {detail}"
            colored_print(error_msg, AnsiColors.RED)
            return {"reply": error_msg}
        except httpx.HTTPError as e:
            logger.error("API request error: %s", str(e))
            error_msg = f"Error connecting to API: {e}"
            colored_print(error_msg, AnsiColors.RED)
            return {"reply": error_msg}

    # If we've exhausted all retries without returning or raising an exception
    error_msg = f"Failed to connect to API after {max_retries} attempts"
    colored_print(error_msg, AnsiColors.RED)
    return {"reply": error_msg}


def render_response(response: Dict[str, Any]) -> None:
    """Print tool results, validation problems and the final reply."""
    if response.get("validation_error"):
        colored_print(f"⚠️ Plan rejected: {response['validation_error']}", AnsiColors.RED)

    outcome = response.get("outcome") or {}
    for result in outcome.get("results", []):
        colored_print(
            f"[{result['tool_index']}] {result['tool_name']} ({result.get('duration_ms', 0)} ms)",
            result_color(result),
        )
    if outcome.get("halted_at") is not None:
        colored_print(f"⚠️ Execution halted at step {outcome['halted_at']}", AnsiColors.RED)

    colored_print(response.get("reply", "No response from API"), AnsiColors.YELLOW)


def run_cli() -> None:
    """Run the CLI client that communicates with the API."""
    colored_print(
        "\n🔮 toolplan shell - type 'exit' or 'quit' (or Ctrl+C) to exit", AnsiColors.GREEN
    )
    while True:
        colored_print("\n🧑 You: ", AnsiColors.BLUE, end="")
        user_msg, ok = get_user_message()
        if not ok:
            break  # Exit if user input couldn't be retrieved (e.g., Ctrl+C)
        if user_msg.lower() in {"exit", "quit"}:
            break

        render_response(call_api("/agent", {"message": user_msg}))


if __name__ == "__main__":
    run_cli()
