"""Interactive prompting functions."""
from __future__ import annotations

import getpass
from typing import Callable, Optional, Sequence


def prompt_required(
    prompt: str,
    default: Optional[str] = None,
    validator: Optional[Callable[[str], Optional[str]]] = None,
) -> str:
    """
    Prompt for a required value.

    ``validator`` returns an error message for a rejected value, which is
    printed before asking again.
    """
    while True:
        if default:
            value = input(f"{prompt} [{default}]: ").strip()
            if not value:
                value = default
        else:
            value = input(f"{prompt}: ").strip()

        if not value:
            print("This field is required. Please provide a value.")
            continue

        error = validator(value) if validator else None
        if error is None:
            return value
        print(error)


def prompt_optional(
    prompt: str,
    default: Optional[str] = None,
    validator: Optional[Callable[[str], Optional[str]]] = None,
) -> str:
    """Prompt for a value that may be left empty."""
    while True:
        if default:
            value = input(f"{prompt} [{default}]: ").strip() or default
        else:
            value = input(f"{prompt} (optional): ").strip()

        error = validator(value) if validator else None
        if error is None:
            return value
        print(error)


def prompt_secret(prompt: str) -> str:
    """Prompt for a required value without echoing it."""
    while True:
        value = getpass.getpass(f"{prompt}: ")
        if value:
            return value
        print("This field is required. Please provide a value.")


def prompt_yes_no(prompt: str, default: bool = False) -> bool:
    """Prompt for a yes/no answer."""
    default_str = "Y/n" if default else "y/N"
    while True:
        answer = input(f"{prompt} [{default_str}]: ").strip().lower()
        if not answer:
            return default
        if answer in ("y", "yes"):
            return True
        elif answer in ("n", "no"):
            return False
        else:
            print("Please answer 'y' or 'n'")


def prompt_confirm(prompt: str) -> bool:
    """Ask a ``(y/n) [y]`` question; only ``y`` or an empty answer confirms."""
    answer = input(f"{prompt} (y/n) [y]: ").strip().lower()
    return answer in ("", "y")


def prompt_choice(title: str, options: Sequence[str], default: int = 1) -> int:
    """
    Show a numbered menu and return the zero-based index of the choice.

    An empty answer selects ``default`` (one-based).
    """
    print(title)
    for i, option in enumerate(options, 1):
        print(f"  {i}. {option}")

    while True:
        choice = input(f"\nSelect option [1-{len(options)}] [{default}]: ").strip()
        if not choice:
            return default - 1
        try:
            choice_num = int(choice)
        except ValueError:
            choice_num = 0
        if 1 <= choice_num <= len(options):
            return choice_num - 1
        print(f"Please enter a number between 1 and {len(options)}")
