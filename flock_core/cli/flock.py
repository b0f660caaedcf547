"""
Flock Core CLI: shared batched inference from the command line.

Usage:
    flock-core status        Show configuration
    flock-core info          Show available inference backends
    flock-core validate      Validate configuration and imports
    flock-core simulate      Run agents through decision steps on a random model
"""

import json
from typing import List, Tuple

import numpy as np
import typer
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..backends import TORCH_AVAILABLE
from ..config import get_config
from ..errors import FlockError
from ..model import ModelAsset
from ..policy import LearnedPolicy
from ..scheduler.registry import SchedulerRegistry
from ..types import ActionSpec, AgentObservation, InferenceDevice, ObservationSpec

console = Console()
cli = typer.Typer(
    name="flock-core",
    help="Shared batched inference for many simultaneously acting agents.",
    no_args_is_help=True,
)


@cli.command()
def status():
    """Show backend, inference and logging configuration."""
    config = get_config()

    console.print(_settings_panel("Backend Configuration", "green", [
        ("GPU devices", _bool_badge(config.backend.enable_gpu)),
        ("Torch threads", str(config.backend.torch_num_threads)),
        ("Legacy backends", _bool_badge(config.backend.allow_legacy_backends)),
    ]))
    console.print(_settings_panel("Inference Configuration", "blue", [
        ("Default device", config.inference.device.name),
        ("Deterministic", _bool_badge(config.inference.deterministic_inference)),
        ("Random seed", str(config.inference.random_seed)),
        ("Raise on shape mismatch", _bool_badge(config.inference.raise_on_shape_mismatch)),
        ("Metrics", _bool_badge(config.inference.enable_metrics)),
    ]))
    console.print(_settings_panel("Logging Configuration", "cyan", [
        ("Log level", config.logging.log_level),
        ("Log format", config.logging.log_format),
        ("Log to file", _bool_badge(config.logging.log_to_file)),
    ]))


@cli.command()
def info():
    """Show the inference devices and which backends can serve them."""
    config = get_config()

    console.print(Panel(
        "flock-core v0.1.0\nShared batched inference for multi-agent simulations",
        title="Flock Core",
        border_style="magenta",
    ))

    table = Table(title="Inference Devices", box=box.ROUNDED)
    table.add_column("Device", style="bold")
    table.add_column("Backend")
    table.add_column("Status")

    table.add_row("DEFAULT", "numpy", "[green]available[/green]")
    table.add_row("BURST", "numpy", "[green]available[/green]")

    if not TORCH_AVAILABLE:
        gpu_status = "[yellow]torch not installed[/yellow]"
    else:
        import torch

        if not config.backend.enable_gpu:
            gpu_status = "[yellow]disabled (ENABLE_GPU=false)[/yellow]"
        elif torch.cuda.is_available():
            gpu_status = f"[green]available[/green] ({torch.cuda.get_device_name(0)})"
        else:
            gpu_status = "[yellow]CUDA not available[/yellow]"

    table.add_row("COMPUTE_SHADER", "torch", gpu_status)
    if config.backend.allow_legacy_backends:
        table.add_row("PIXEL_SHADER", "torch (legacy)", gpu_status)
    else:
        table.add_row("PIXEL_SHADER", "torch (legacy)", "[red]disabled[/red]")

    console.print(table)


@cli.command()
def validate():
    """Validate configuration and imports."""
    config = get_config()

    console.print("[bold]Running validation checks...[/bold]\n")
    errors = []

    config_errors = config.validate()
    if config_errors:
        for err in config_errors:
            errors.append(f"Config: {err}")
            console.print(f"  [red]FAIL[/red] {err}")
    else:
        console.print("  [green]PASS[/green] Configuration is valid")

    import_checks = [
        ("flock_core.types", "Core types"),
        ("flock_core.scheduler", "Scheduler"),
        ("flock_core.backends.numpy_backend", "Numpy backend"),
        ("flock_core.policy", "Learned policy"),
    ]

    for module_path, label in import_checks:
        try:
            __import__(module_path)
            console.print(f"  [green]PASS[/green] {label} imports OK")
        except ImportError as e:
            errors.append(f"Import {module_path}: {e}")
            console.print(f"  [red]FAIL[/red] {label}: {e}")

    console.print()
    if errors:
        console.print(f"[red]Validation failed with {len(errors)} error(s).[/red]")
        raise typer.Exit(code=1)
    else:
        console.print("[green]All validation checks passed.[/green]")


@cli.command()
def simulate(
    agents: int = typer.Option(8, "--agents", "-a", help="Number of agents"),
    steps: int = typer.Option(5, "--steps", "-s", help="Number of decision steps"),
    behaviors: int = typer.Option(2, "--behaviors", "-b", help="Behaviors sharing the model"),
    observation_size: int = typer.Option(6, "--obs-size", help="Observation vector length"),
    continuous: int = typer.Option(2, "--continuous", "-c", help="Continuous action count"),
    branches: str = typer.Option("3", "--branches", help="Discrete branch sizes, e.g. '3,2'"),
    episode_length: int = typer.Option(0, "--episode-length", help="End episodes every N steps (0 = never)"),
    device: str = typer.Option("burst", "--device", "-d", help="Inference device"),
    deterministic: bool = typer.Option(True, "--deterministic/--stochastic", help="Action selection mode"),
    seed: int = typer.Option(0, "--seed", help="Seed for model weights and observations"),
    output_json: bool = typer.Option(False, "--json", help="Output statistics as JSON"),
):
    """Run agents through decision steps with policies sharing one random model."""
    try:
        branch_sizes = _parse_branches(branches)
        action_spec = ActionSpec(num_continuous_actions=continuous, discrete_branch_sizes=branch_sizes)
        observation_spec = ObservationSpec.vector(observation_size)
        model = ModelAsset.random("simulated", observation_size, action_spec, seed=seed)
        inference_device = InferenceDevice.parse(device)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    rng = np.random.default_rng(seed)
    last_actions = {}

    try:
        with SchedulerRegistry() as registry:
            policies = [
                LearnedPolicy(
                    action_spec,
                    observation_spec,
                    model=model,
                    registry=registry,
                    device=inference_device,
                    behavior_name=f"behavior-{b}",
                    deterministic=deterministic,
                )
                for b in range(max(1, behaviors))
            ]

            for step in range(steps):
                ending = episode_length > 0 and (step + 1) % episode_length == 0
                for agent_id in range(agents):
                    policy = policies[agent_id % len(policies)]
                    obs = AgentObservation(
                        agent_id=agent_id,
                        observations=(rng.normal(size=observation_size),),
                        done=ending,
                    )
                    policy.submit_observation(agent_id, obs)

                for agent_id in range(agents):
                    policy = policies[agent_id % len(policies)]
                    last_actions[agent_id] = policy.decide_action(agent_id)

            stats = [runner.get_stats() for runner in registry.runners()]
    except FlockError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    if output_json:
        console.print(json.dumps({
            "runners": stats,
            "last_actions": {str(a): r.to_dict() for a, r in last_actions.items()},
        }, indent=2))
        return

    table = Table(title="Model Runners", box=box.ROUNDED)
    table.add_column("Model", style="bold")
    table.add_column("Device")
    table.add_column("Batches")
    table.add_column("Observations")
    table.add_column("Avg batch size")
    table.add_column("Skipped triggers")

    for s in stats:
        table.add_row(
            s["model_id"],
            s["device"],
            str(s["total_batches"]),
            str(s["total_observations"]),
            f"{s['avg_batch_size']:.1f}",
            str(s["skipped_triggers"]),
        )

    console.print(table)

    actions_table = Table(title="Last Decisions", box=box.SIMPLE)
    actions_table.add_column("Agent", style="dim")
    actions_table.add_column("Continuous")
    actions_table.add_column("Discrete")

    for agent_id, result in sorted(last_actions.items()):
        if result.is_empty:
            actions_table.add_row(str(agent_id), "-", "-")
        else:
            actions_table.add_row(
                str(agent_id),
                ", ".join(f"{v:+.3f}" for v in result.continuous_actions),
                ", ".join(str(v) for v in result.discrete_actions),
            )

    console.print(actions_table)


def _settings_panel(title: str, border_style: str, rows: List[Tuple[str, str]]) -> Panel:
    table = Table(show_header=False, box=box.SIMPLE)
    table.add_column("Setting", style="bold")
    table.add_column("Value")
    for setting, value in rows:
        table.add_row(setting, value)
    return Panel(table, title=title, border_style=border_style)


def _parse_branches(value: str) -> List[int]:
    value = value.strip()
    if not value:
        return []
    return [int(part) for part in value.split(",")]


def _bool_badge(value: bool) -> str:
    """Return a colored badge for a boolean value."""
    if value:
        return "[green]enabled[/green]"
    return "[red]disabled[/red]"


if __name__ == "__main__":
    cli()
