"""CLI entry point: nodepack.

Subcommands:
    nodepack create-work -o work.json    # Generate work order template
    nodepack run work.json               # Package external modules per artifact
    nodepack resolve work.json           # Print resolved dependencies only
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any

import click
import structlog

from nodepack.config import Configuration
from nodepack.core.logging import setup_logging
from nodepack.exceptions import NodepackError, PackagingRunError
from nodepack.models.artifact import Artifact
from nodepack.orchestrator import PackagingOrchestrator

log = structlog.get_logger(__name__)

# Work order template
_WORK_ORDER_TEMPLATE: dict[str, Any] = {
    "service": "my-service",
    "projectDir": ".",
    "workDir": ".webpack",
    "skipCompile": False,
    "outOfBandDependencies": False,
    "config": {
        "includeModules": {
            "forceInclude": [],
            "forceExclude": ["aws-sdk"],
            "packagePath": "./package.json",
        },
        "packager": "npm",
        "packagerOptions": {"scripts": []},
        "concurrency": 2,
    },
    "artifacts": [
        {
            "name": "handler",
            "outputPath": ".webpack/handler",
            "externalModules": ["lodash", {"name": "uuid/v4", "origin": None}],
        },
    ],
}


def _load_work_order(work_file: str) -> dict[str, Any]:
    try:
        work = json.loads(Path(work_file).read_text())
    except json.JSONDecodeError as e:
        click.echo(f"Error: Invalid JSON in {work_file}: {e}", err=True)
        sys.exit(1)
    if not isinstance(work, dict):
        click.echo("Error: work order must be a JSON object", err=True)
        sys.exit(1)
    if not isinstance(work.get("artifacts"), list):
        click.echo("Error: Missing required list 'artifacts' in work order", err=True)
        sys.exit(1)
    return work


def _build(work: dict[str, Any], work_file: str, concurrency: int | None) -> tuple[
    PackagingOrchestrator, list[Artifact]
]:
    base = Path(work_file).resolve().parent
    config_data = dict(work.get("config") or {})
    if concurrency is not None:
        config_data["concurrency"] = concurrency
    config = Configuration.from_mapping(config_data)

    project_dir = base / work.get("projectDir", ".")
    artifacts = []
    for entry in work["artifacts"]:
        artifact = Artifact.from_dict(entry)
        if not artifact.output_path.is_absolute():
            artifact.output_path = base / artifact.output_path
        artifacts.append(artifact)

    work_dir = work.get("workDir")
    orchestrator = PackagingOrchestrator(
        config,
        project_dir,
        work_dir=base / work_dir if work_dir else None,
        service_name=work.get("service"),
    )
    return orchestrator, artifacts


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging")
def main(verbose: bool) -> None:
    """nodepack: package external Node.js modules for bundled artifacts."""
    setup_logging("DEBUG" if verbose else None)


@main.command("create-work")
@click.option("-o", "--output", default="work.json", help="Output file path")
def create_work(output: str) -> None:
    """Generate a work order template JSON file."""
    Path(output).write_text(json.dumps(_WORK_ORDER_TEMPLATE, indent=2) + "\n")
    click.echo(f"Work order template written to {output}")
    click.echo("Edit the file, then run: nodepack run " + output)


@main.command("run")
@click.argument("work_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--concurrency", type=int, default=None, help="Artifacts packaged in parallel")
@click.option("--skip-compile", is_flag=True, help="Compilation was skipped; do nothing")
def run(work_file: str, concurrency: int | None, skip_compile: bool) -> None:
    """Package external modules for every artifact of a work order."""
    work = _load_work_order(work_file)
    try:
        orchestrator, artifacts = _build(work, work_file, concurrency)
        results = asyncio.run(
            orchestrator.run(
                artifacts,
                skip_compile=skip_compile or bool(work.get("skipCompile")),
                out_of_band_dependencies=bool(work.get("outOfBandDependencies")),
            )
        )
    except PackagingRunError as e:
        click.echo(json.dumps({"artifacts": [r.to_dict() for r in e.results]}, indent=2))
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except NodepackError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(json.dumps({"artifacts": [r.to_dict() for r in results]}, indent=2))


@main.command("resolve")
@click.argument("work_file", type=click.Path(exists=True, dir_okay=False))
def resolve(work_file: str) -> None:
    """Print the resolved dependency set of every artifact."""
    work = _load_work_order(work_file)
    try:
        orchestrator, artifacts = _build(work, work_file, None)
        resolved = asyncio.run(orchestrator.resolve(artifacts))
    except NodepackError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    click.echo(json.dumps({name: deps.to_dict() for name, deps in resolved.items()}, indent=2))


if __name__ == "__main__":
    main()
