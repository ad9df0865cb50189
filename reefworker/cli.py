"""
CLI interface for reefworker.

Provides commands to initialize configuration, inspect registered job
types, run a single job locally and clean up stale workspaces.
"""

import json
import uuid
from pathlib import Path

import click

from reefworker import __version__
from reefworker.utils import print_error, print_success, print_warning, setup_logging


def _require_config(ctx):
    if "config" not in ctx.obj:
        click.echo(f"✗ Config not loaded: {ctx.obj.get('config_error', 'Unknown error')}", err=True)
        click.echo("Run 'reefworker init' to create a configuration file.", err=True)
        raise SystemExit(1)
    return ctx.obj["config"]


def _build_registry(config):
    from reefworker.engine import build_engine
    from reefworker.registry import JobTypeRegistry

    engine = build_engine(config.engine_factory)
    return JobTypeRegistry.create_default(engine=engine, artifact_workers=config.artifact_workers)


@click.group()
@click.version_option(version=__version__, prog_name="reefworker")
@click.pass_context
def main(ctx):
    """
    reefworker - Job worker for reef scenario model runs.
    """
    from reefworker.config import load_config

    ctx.ensure_object(dict)
    try:
        config = load_config()
    except Exception as e:
        # init runs without a config; other commands check ctx.obj
        ctx.obj["config_error"] = str(e)
        return

    ctx.obj["config"] = config
    setup_logging(
        log_file=Path(config.log_file).expanduser() if config.log_file else None,
        log_level=config.log_level,
        log_format=config.log_format,
    )


@main.command("init")
@click.option("--force", is_flag=True, help="Overwrite existing configuration")
def init(force: bool):
    """Initialize reefworker configuration."""
    from reefworker.config import DEFAULT_OUTPUT_ENV_VAR, DEFAULT_SCRATCH_DIR, get_worker_home
    import yaml

    home = get_worker_home()
    if not home.exists():
        home.mkdir(parents=True)

    cfg_path = home / "config.yaml"
    if cfg_path.exists() and not force:
        click.echo(f"Config already exists at {cfg_path}. Use --force to overwrite.", err=True)
        raise SystemExit(1)

    default_cfg = {
        "scratch_dir": DEFAULT_SCRATCH_DIR,
        "data_packages": {"moore": "~/data/Moore_2023-11-17"},
        "default_data_package": "moore",
        "output_env_var": DEFAULT_OUTPUT_ENV_VAR,
        "aws_region": "ap-southeast-2",
        "s3_endpoint": None,
        "gcp_project": None,
        "engine_factory": None,
        "artifact_workers": 1,
        "log_level": "INFO",
        "log_format": "pretty",
        "env_file": str(home / ".env"),
    }
    cfg_path.write_text(yaml.safe_dump(default_cfg, sort_keys=False))

    env_path = home / ".env"
    if not env_path.exists():
        env_path.write_text("# AWS_REGION=...\n# S3_ENDPOINT=...\n# GOOGLE_APPLICATION_CREDENTIALS=...\n")

    click.echo(f"Initialized reefworker config at {cfg_path}")
    click.echo("Set engine_factory before running model jobs.")


@main.command("types")
@click.pass_context
def list_types(ctx):
    """List registered job types."""
    config = _require_config(ctx)
    try:
        registry = _build_registry(config)
    except Exception as e:
        print_error(f"Cannot build job registry: {e}")
        raise SystemExit(1)

    for job_type in registry.list_types():
        binding = registry.binding(job_type)
        click.echo(
            f"  {job_type}: {type(binding.handler).__name__} "
            f"({binding.input_type.__name__} -> {binding.output_type.__name__})"
        )


@main.command("run")
@click.argument("job_type")
@click.option("--payload", "payload_file", required=True, type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="JSON file with the raw job payload")
@click.option("--storage-uri", required=True, help="Destination URI (s3://... or gs://...)")
@click.option("--job-id", default=None, help="Job ID (generated if omitted)")
@click.pass_context
def run(ctx, job_type: str, payload_file: Path, storage_uri: str, job_id: str | None):
    """
    Run a single job locally.

    JOB_TYPE is a registered job type tag.

    Examples:

        reefworker run ADRIA_MODEL_RUN --payload run.json --storage-uri s3://bucket/jobs/1
    """
    from reefworker.dispatch import JobDispatcher
    from reefworker.handlers.base import JobContext
    from reefworker.schemas import Job, JobAssignment
    from reefworker.storage import create_storage_client

    config = _require_config(ctx)

    try:
        raw_payload = json.loads(payload_file.read_text())
    except json.JSONDecodeError as e:
        print_error(f"Invalid JSON in {payload_file}: {e}")
        raise SystemExit(1)

    job_id = job_id or uuid.uuid4().hex[:12]

    context = None
    try:
        dispatcher = JobDispatcher(_build_registry(config))
        job = Job(id=job_id, type=job_type, payload=raw_payload)
        assignment = JobAssignment(id=f"local-{job_id}", job_id=job_id, storage_uri=storage_uri)
        context = JobContext(
            config=config,
            job=job,
            assignment=assignment,
            storage_client=create_storage_client(storage_uri, config),
        )
        output = dispatcher.dispatch_job(job, context)
    except Exception as e:
        print_error(f"{job_id} failed: {e}")
        stages = context.engine_metadata.get("stages") if context is not None else None
        if stages is not None:
            click.echo(json.dumps(stages.to_dict(), indent=2), err=True)
        raise SystemExit(1)

    click.echo(json.dumps(output.to_dict(), indent=2))
    print_success(f"{job_id} completed")


@main.command("cleanup")
@click.argument("path", type=click.Path(path_type=Path))
def cleanup(path: Path):
    """Remove a workspace directory (system paths are refused)."""
    from reefworker.workspace import is_protected_path, teardown_workspace

    if is_protected_path(path):
        print_error(f"Refusing to delete system directory: {path}")
        raise SystemExit(1)

    if teardown_workspace(path):
        print_success(f"Removed {path}")
    else:
        print_warning(f"Nothing removed at {path}")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
