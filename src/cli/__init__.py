"""Main CLI application module.

This module provides the main entry point for the kube-rollout CLI.
"""

import sys
from typing import Annotated

import typer
from loguru import logger

from .commands import deploy, validate

# Create the main CLI application
app = typer.Typer(
    help="Kubernetes rollouts with stability checks and rollback",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


@app.callback()
def configure_logging(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show debug logs on stderr"),
    ] = False,
) -> None:
    """Route loguru to stderr, keeping rollout output on stdout readable."""
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "WARNING")


app.command()(deploy)
app.command()(validate)


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
