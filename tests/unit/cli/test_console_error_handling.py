import pytest
import typer
from rich.console import Console

from src.cli.shared.console import CLIConsole, with_error_handling
from src.infra.k8s.errors import ClusterError
from src.rollout.errors import UserError


def test_with_error_handling_handles_user_error():
    @with_error_handling
    def _command() -> None:
        raise UserError("Boom", details="extra")

    with pytest.raises(typer.Exit) as excinfo:
        _command()

    assert excinfo.value.exit_code == 1


def test_with_error_handling_handles_cluster_error():
    @with_error_handling
    def _command() -> None:
        raise ClusterError("Connection refused")

    with pytest.raises(typer.Exit) as excinfo:
        _command()

    assert excinfo.value.exit_code == 1


def test_with_error_handling_handles_keyboard_interrupt():
    @with_error_handling
    def _command() -> None:
        raise KeyboardInterrupt

    with pytest.raises(typer.Exit) as excinfo:
        _command()

    assert excinfo.value.exit_code == 130


def test_with_error_handling_lets_other_errors_through():
    @with_error_handling
    def _command() -> None:
        raise RuntimeError("bug")

    with pytest.raises(RuntimeError):
        _command()


def test_print_does_not_interpret_markup():
    rich_console = Console(record=True, width=120)
    cli_console = CLIConsole(rich_console)

    cli_console.print("[bold]panic[/bold] in [red]")

    assert "[bold]panic[/bold] in [red]" in rich_console.export_text()
