# cli.py
import sys
import logging
from pathlib import Path

import click
from pydantic import ValidationError

from site_deploy.builder import ImageSpec
from site_deploy.env_helper import EnvironmentHelper, STAGE_REQUIRED_VARS
from site_deploy.exceptions import DeployError
from site_deploy.models import ImageReference
from site_deploy.pipeline import PipelineRunner, export_report
from site_deploy.scanner import VulnerabilityScanner
from site_deploy.sequencer import DeploymentSequencer
from site_deploy.settings import get_settings, get_settings_with_env_helper
from site_deploy.targets import TargetTable

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging for CLI runs."""
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=log_level, format=LOG_FORMAT)
    logging.getLogger().setLevel(log_level)


def _load_settings(env_file=None):
    try:
        if env_file:
            return get_settings_with_env_helper(env_file)
        return get_settings()
    except FileNotFoundError as e:
        click.echo(f"❌ {e}")
        sys.exit(2)
    except (ValidationError, ValueError) as e:
        click.echo(f"❌ Invalid configuration: {e}")
        sys.exit(2)


@click.group()
@click.option("--env-file", default=None, help="Load environment variables from this .env file first")
@click.pass_context
def cli(ctx, env_file):
    """Build, scan, push and deploy the static site image"""
    ctx.ensure_object(dict)
    ctx.obj["env_file"] = env_file
    settings = _load_settings(env_file)
    ctx.obj["settings"] = settings
    configure_logging(settings.log_level)


@cli.command()
@click.argument("branch")
@click.argument("build_id", type=click.IntRange(min=0))
@click.option("--context", "context_dir", default=".", type=click.Path(file_okay=False),
              help="Docker build context")
@click.option("--skip-build", is_flag=True, help="Reuse an image that is already built")
@click.option("--skip-scan", is_flag=True, help="Do not run the vulnerability scan")
@click.option("--skip-push", is_flag=True, help="Skip registry login and push")
@click.option("--report-file", default=None, type=click.Path(dir_okay=False),
              help="Write the run report as JSON")
@click.pass_context
def run(ctx, branch, build_id, context_dir, skip_build, skip_scan, skip_push, report_file):
    """Run the full pipeline for BRANCH with build number BUILD_ID"""
    settings = ctx.obj["settings"]

    if not ctx.obj["env_file"]:
        branch_env = EnvironmentHelper.detect_env_file_from_branch(branch)
        if branch_env:
            click.echo(f"Using environment file {branch_env}")
            settings = _load_settings(branch_env)

    try:
        runner = PipelineRunner(settings)
    except ValueError as e:
        click.echo(f"❌ Invalid configuration: {e}")
        sys.exit(2)

    report = runner.run(
        branch,
        build_id,
        context=context_dir,
        skip_build=skip_build,
        skip_scan=skip_scan,
        skip_push=skip_push,
    )

    if report_file:
        export_report(report, report_file)

    for warning in report.warnings:
        click.echo(f"⚠️ {warning}")

    if report.succeeded:
        click.echo(f"✅ Deployed {report.image} to {report.host}")
    else:
        stage = report.failed_stage.value if report.failed_stage else "setup"
        click.echo(f"❌ Pipeline failed at {stage}: {report.error}")
        sys.exit(1)


@cli.command()
@click.argument("branch")
@click.argument("tag")
@click.option("--image-ref", default=None,
              help="Full image reference (registry/name:tag); overrides TAG and the configured registry")
@click.pass_context
def deploy(ctx, branch, tag, image_ref):
    """Deploy an already pushed image TAG to the host for BRANCH"""
    settings = ctx.obj["settings"]

    try:
        if image_ref:
            image = ImageReference.parse(image_ref)
        else:
            image = ImageReference(registry=settings.registry_host, name=settings.image_name, tag=tag)
        sequencer = DeploymentSequencer.from_settings(settings)
        result = sequencer.deploy(branch, image)
    except (DeployError, ValueError) as e:
        click.echo(f"❌ Deployment failed: {e}")
        sys.exit(1)

    for step in result.steps:
        marker = "✅" if step.ok else "⚠️"
        click.echo(f"  {marker} {' '.join(step.command)} (exit {step.exit_code})")
    click.echo(f"✅ {image} running on {result.target.host_address}")


@cli.command()
@click.pass_context
def targets(ctx):
    """List the configured branch -> host targets"""
    try:
        table = TargetTable.from_settings(ctx.obj["settings"])
    except ValueError as e:
        click.echo(f"❌ Invalid target table: {e}")
        sys.exit(2)

    if not len(table):
        click.echo("No deploy targets configured (set DEPLOY_TARGETS)")
        return

    click.echo("Deploy targets:")
    for target in sorted(table, key=lambda t: t.branch_name):
        click.echo(f"  {target.branch_name}: {target.host_address}")


@cli.command()
@click.pass_context
def show_config(ctx):
    """Show current configuration"""
    settings = ctx.obj["settings"]

    click.echo("Current Configuration:")
    for key, value in settings.masked_dict().items():
        click.echo(f"  {key}: {value}")


@cli.command()
@click.option("--output", "-o", default="Dockerfile", type=click.Path(dir_okay=False),
              help="Where to write the Dockerfile ('-' for stdout)")
@click.pass_context
def render_dockerfile(ctx, output):
    """Render the Dockerfile for the configured image spec"""
    spec = ImageSpec.from_settings(ctx.obj["settings"])
    if output == "-":
        click.echo(spec.render(), nl=False)
        return
    spec.write(Path(output))
    click.echo(f"✅ Dockerfile written to {output}")


@cli.command()
@click.argument("image_ref")
@click.pass_context
def scan(ctx, image_ref):
    """Run the vulnerability scan gate against IMAGE_REF"""
    scanner = VulnerabilityScanner.from_settings(ctx.obj["settings"])
    result = scanner.scan(ImageReference.parse(image_ref))

    if result.output:
        click.echo(result.output)
    if result.passed:
        click.echo(f"✅ No {scanner.severity} vulnerabilities in {result.image}")
    else:
        click.echo(f"❌ Scan failed for {result.image} (exit code {result.exit_code})")
        sys.exit(1)


@cli.command()
@click.argument("stage", type=click.Choice(sorted(STAGE_REQUIRED_VARS)))
@click.pass_context
def check_env(ctx, stage):
    """Check that the environment variables STAGE needs are set"""
    helper = EnvironmentHelper(ctx.obj["env_file"])
    missing = helper.missing_vars(STAGE_REQUIRED_VARS[stage])
    if missing:
        click.echo(f"❌ Missing required environment variables: {', '.join(missing)}")
        sys.exit(1)
    click.echo("✅ All required environment variables are set")


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
