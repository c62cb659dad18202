"""Shared helpers for CLI commands"""

import functools

import click

from hetzkube.errors import Cancelled, HetzkubeError
from hetzkube.log import console


def handle_errors(func):
    """Print HetzkubeError with its hints and exit non-zero"""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except Cancelled as e:
            console.print(e.message)
            raise click.exceptions.Exit(e.exit_code)
        except HetzkubeError as e:
            console.print(f"[red]Error:[/red] {e.message}", highlight=False)
            for hint in e.hints:
                console.print(f"  {hint}", markup=False)
            raise click.exceptions.Exit(1)

    return wrapper


def confirmer(ctx: click.Context):
    """y/N prompt, skipped when --yes was given"""

    def confirm(question: str) -> bool:
        if ctx.obj.get("assume_yes"):
            return True
        return click.confirm(question, default=False)

    return confirm


def typed_confirmer(ctx: click.Context, word: str = "yes"):
    """Prompt that only accepts the literal ``word``"""

    def confirm() -> bool:
        if ctx.obj.get("assume_yes"):
            return True
        answer = click.prompt(f"Are you SURE? Type '{word}' to confirm", default="", show_default=False)
        return answer.strip() == word

    return confirm
