"""Rollout commands.

This module provides commands for validating and executing rollouts
described by a plan file.
"""

import signal
from pathlib import Path
from typing import Annotated

import typer

from src.rollout import (
    CancellationToken,
    ClusterRegistry,
    DeployExecutor,
    RolloutSettings,
)
from src.rollout.collaborators import ReleaseRepository
from src.rollout.plan import (
    DirectoryRoleConfigSource,
    FileReleaseRepository,
    InMemoryReleaseRepository,
    PlanDeployGroupRoleRepository,
    RolloutPlan,
    StaticBuildFinder,
    load_plan,
)

from ..shared.console import CLIConsole, console, with_error_handling

PlanArgument = Annotated[
    Path,
    typer.Argument(help="Rollout plan (YAML)", show_default=False),
]
EnvFileOption = Annotated[
    Path | None,
    typer.Option(
        "--env-file",
        help="Load rollout settings from this .env file",
    ),
]


# ---------------------------------------------------------------------------
# Executor Factory
# ---------------------------------------------------------------------------


def build_executor(
    plan: RolloutPlan,
    *,
    output: CLIConsole,
    settings: RolloutSettings,
    registry: ClusterRegistry | None = None,
    cancellation: CancellationToken | None = None,
) -> DeployExecutor:
    """Wire a DeployExecutor from a loaded plan.

    Args:
        plan: Validated rollout plan
        output: Console the rollout reports to
        settings: Timing and diagnostic limits
        registry: Cluster controllers (default: kr8s per cluster)
        cancellation: Token set on SIGINT

    Returns:
        Executor ready to run
    """
    registry = registry or ClusterRegistry()
    roles = plan.role_records()
    releases: ReleaseRepository
    if plan.state_file is not None:
        releases = FileReleaseRepository(
            plan.state_file,
            deploy_groups=plan.deploy_group_records(),
            roles=roles,
            registry=registry,
        )
    else:
        releases = InMemoryReleaseRepository()

    return DeployExecutor(
        output,
        job=plan.to_job(),
        reference=plan.reference,
        build_finder=StaticBuildFinder(plan.build_records(), output),
        deploy_group_roles=PlanDeployGroupRoleRepository(plan.deploy_group_role_records()),
        role_configs=DirectoryRoleConfigSource(plan.config_dir, roles.values()),
        releases=releases,
        settings=settings,
        registry=registry,
        cancellation=cancellation,
    )


def _load(plan_path: Path, env_file: Path | None) -> tuple[RolloutPlan, RolloutSettings]:
    settings = RolloutSettings.from_env(
        dotenv_path=env_file.resolve() if env_file else None
    )
    return load_plan(plan_path.resolve()), settings


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@with_error_handling
def validate(plan_path: PlanArgument, env_file: EnvFileOption = None) -> None:
    """Validate role configs of a plan without touching any cluster."""
    plan, settings = _load(plan_path, env_file)
    executor = build_executor(plan, output=console, settings=settings)
    with console.status(f"Validating role configs of {plan.project}..."):
        executor.verify_templates()
        selectors = executor.build_selectors()
    console.ok(
        f"Role configs of {plan.project} at {plan.commit} are valid "
        f"({len(executor.temp_release_docs())} release docs, {len(selectors)} images)"
    )


@with_error_handling
def deploy(plan_path: PlanArgument, env_file: EnvFileOption = None) -> None:
    """Deploy a plan and wait until it is stable.

    Ctrl+C cancels the rollout at the next poll tick; nothing is rolled back.
    """
    plan, settings = _load(plan_path, env_file)
    cancellation = CancellationToken()
    executor = build_executor(
        plan, output=console, settings=settings, cancellation=cancellation
    )

    console.print_header(f"Deploying {plan.project} {plan.reference} ({plan.commit})")
    previous_handler = signal.signal(
        signal.SIGINT, lambda signum, _frame: executor.cancel(signum)
    )
    try:
        succeeded = executor.execute()
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    if cancellation.cancelled:
        console.warn("Rollout cancelled")
        raise typer.Exit(130)
    if not succeeded:
        console.error("Rollout failed")
        raise typer.Exit(1)
    console.ok(f"Rollout of {plan.project} succeeded")
