#!/usr/bin/env python
import sys

from rich.console import Console

from ask_steps.cli import run_app

console = Console(stderr=True)


def main() -> None:
    try:
        status = run_app()
    except Exception as e:
        console.print(f"[bold red]An unexpected error occurred in the application:[/bold red] {e}")
        sys.exit(1)
    sys.exit(status)


if __name__ == "__main__":
    main()
