"""Command-line interface for publish runs."""

import click
import os
import sys
from pathlib import Path
from . import __version__
from .config import PublishConfig, load_config, load_default_config, ConfigError
from .credentials import CredentialExchanger, redact
from .errors import PublishError
from .identity import OIDCIdentity, RunContext
from .report import load_report
from .sequencer import PublishSequencer
from .steps import default_steps, upload_steps

CONFIG_EXIT_CODE = 2


def _load_publish_config(config_path, **overrides) -> PublishConfig:
    """Load config file (or defaults), apply env then CLI overrides."""
    try:
        if config_path:
            publish_config = load_config(config_path)
            click.echo(f"Loaded config: {config_path}")
        else:
            publish_config = load_default_config()
            if publish_config:
                click.echo("Loaded default config: .publishing/config.yaml")
            else:
                publish_config = PublishConfig({})

        publish_config = publish_config.apply_environment_overrides()
        return publish_config.merge_with_cli_args(**overrides)
    except (FileNotFoundError, ConfigError) as e:
        click.echo(f"❌ Config error: {e}", err=True)
        sys.exit(CONFIG_EXIT_CODE)


def _require_identifiers(publish_config: PublishConfig) -> None:
    try:
        publish_config.require_registry_identifiers()
    except ConfigError as e:
        click.echo(f"❌ Config error: {e}", err=True)
        sys.exit(CONFIG_EXIT_CODE)


def _exchange(publish_config: PublishConfig, context: RunContext):
    """Acquire identity token and exchange it. Exits on failure."""
    registry = publish_config.registry
    try:
        click.echo("Acquiring OIDC token from GitHub Actions...")
        identity = OIDCIdentity.from_github_actions(
            audience=publish_config.oidc["audience"], timeout=registry["timeout"]
        )
        click.echo(f"✅ Identity: {identity.subject}")

        trust = publish_config.get_trust_policy().evaluate(identity.claims)
        if not trust.trusted:
            click.echo("❌ Trust policy violated: " + "; ".join(trust.violations), err=True)
            sys.exit(14)

        exchanger = CredentialExchanger(api_url=registry["api_url"], timeout=registry["timeout"])
        credential = exchanger.exchange(
            identity, namespace=context.namespace, service_slug=context.service_slug
        )
        click.echo(f"✅ Credential issued for service {context.service_slug}")
        return exchanger, credential
    except PublishError as e:
        click.echo(f"❌ {e.step or 'exchange'} failed: {redact(str(e))}", err=True)
        sys.exit(13 if e.step == "identity" else 14)


def _run_sequence(publish_config, steps, dry_run, force, report_path):
    context = RunContext.from_environment(publish_config.registry)
    sequencer = PublishSequencer(publish_config, steps)
    report = sequencer.run(context, dry_run=dry_run, ignore_trigger=force)

    click.echo("")
    for line in report.summary_lines():
        click.echo(line)

    if report_path:
        click.echo(f"Run report: {report.save(report_path)}")

    if not report.succeeded:
        click.echo(
            f"\n❌ Publish failed at step '{report.failed_step}': {report.failure['message']}",
            err=True,
        )
        sys.exit(report.exit_code)

    if report.status == "skipped":
        click.echo(f"\nNothing to do: {report.reason}")
    elif report.status == "dry-run":
        click.echo("\n✅ Dry run complete, would publish:")
        for artifact in report.artifacts:
            click.echo(f"  {artifact.filename} ({artifact.sha256[:16]})")
    else:
        click.echo("\n✅ Publish complete!")


def _registry_options(func):
    """Options shared by commands that talk to the registry."""
    options = [
        click.option("--config", type=click.Path(exists=True),
                     help="Configuration file (YAML). Defaults to .publishing/config.yaml if present."),
        click.option("--namespace", help="Registry organization slug (overrides config)"),
        click.option("--repository", help="Registry repository slug (overrides config)"),
        click.option("--service-slug", help="Registry service account slug (overrides config)"),
        click.option("--oidc-audience", help="OIDC token audience (overrides config)"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@click.group()
@click.version_option(version=__version__)
def main():
    """Publish Python packages to Cloudsmith with OIDC federation."""
    pass


@main.command()
@_registry_options
@click.option("--republish/--no-republish", default=None,
              help="Overwrite an existing package version (default from config: on)")
@click.option("--dry-run", is_flag=True,
              help="Checkout, set up and build only; do not contact the registry")
@click.option("--force", is_flag=True, help="Run even if the trigger policy does not match")
@click.option("--report", "report_path", type=click.Path(), help="Write a JSON run report")
def run(config, namespace, repository, service_slug, oidc_audience, republish, dry_run, force, report_path):
    """Run the full publish sequence for the current CI run."""
    try:
        publish_config = _load_publish_config(
            config,
            registry_namespace=namespace,
            registry_repository=repository,
            registry_service_slug=service_slug,
            registry_republish=republish,
            oidc_audience=oidc_audience,
        )
        if not dry_run:
            _require_identifiers(publish_config)

        _run_sequence(publish_config, default_steps(), dry_run, force, report_path)

    except SystemExit:
        raise
    except Exception as e:
        click.echo(f"❌ Publish failed: {redact(str(e))}", err=True)
        sys.exit(1)


@main.command()
@_registry_options
@click.option("--republish/--no-republish", default=None,
              help="Overwrite an existing package version (default from config: on)")
@click.option("--dist", "output_dir", help="Directory holding built artifacts (overrides config)")
@click.option("--pattern", "artifact_pattern", help="Artifact filename glob (overrides config)")
@click.option("--force", is_flag=True, help="Run even if the trigger policy does not match")
@click.option("--report", "report_path", type=click.Path(), help="Write a JSON run report")
def upload(config, namespace, repository, service_slug, oidc_audience, republish,
           output_dir, artifact_pattern, force, report_path):
    """Publish artifacts that were already built."""
    try:
        publish_config = _load_publish_config(
            config,
            registry_namespace=namespace,
            registry_repository=repository,
            registry_service_slug=service_slug,
            registry_republish=republish,
            oidc_audience=oidc_audience,
            build_output_dir=output_dir,
            build_artifact_pattern=artifact_pattern,
        )
        _require_identifiers(publish_config)

        _run_sequence(publish_config, upload_steps(), False, force, report_path)

    except SystemExit:
        raise
    except Exception as e:
        click.echo(f"❌ Upload failed: {redact(str(e))}", err=True)
        sys.exit(1)


@main.command()
@_registry_options
@click.option("--export-env", is_flag=True,
              help="Append the credential to $GITHUB_ENV for later workflow steps")
@click.option("--env-name", default="CLOUDSMITH_API_KEY", show_default=True,
              help="Variable name used with --export-env")
def exchange(config, namespace, repository, service_slug, oidc_audience, export_env, env_name):
    """Exchange the run's OIDC token for a registry credential."""
    publish_config = _load_publish_config(
        config,
        registry_namespace=namespace,
        registry_repository=repository,
        registry_service_slug=service_slug,
        oidc_audience=oidc_audience,
    )
    context = RunContext.from_environment(publish_config.registry)
    _, credential = _exchange(publish_config, context)

    if not export_env:
        click.echo(f"Credential: {credential!r}")
        return

    env_file = os.getenv("GITHUB_ENV")
    if not env_file:
        click.echo("❌ GITHUB_ENV is not set; --export-env only works inside GitHub Actions", err=True)
        sys.exit(1)

    click.echo(
        f"⚠️  Exporting {env_name} to the job environment: every later step of this "
        "job can read it until the job ends.",
        err=True,
    )
    with open(env_file, "a") as f:
        f.write(f"{env_name}={credential.api_key}\n")
    click.echo(f"✅ {env_name} exported")


@main.command()
@_registry_options
def whoami(config, namespace, repository, service_slug, oidc_audience):
    """Exchange the OIDC token and show which registry identity it maps to."""
    publish_config = _load_publish_config(
        config,
        registry_namespace=namespace,
        registry_repository=repository,
        registry_service_slug=service_slug,
        oidc_audience=oidc_audience,
    )
    context = RunContext.from_environment(publish_config.registry)
    exchanger, credential = _exchange(publish_config, context)

    try:
        data = exchanger.whoami(credential)
    except PublishError as e:
        click.echo(f"❌ Verification failed: {redact(str(e))}", err=True)
        sys.exit(15)

    click.echo(f"Authenticated: {data.get('authenticated')}")
    click.echo(f"Slug: {data.get('slug', '')}")
    click.echo(f"Name: {data.get('name', '')}")


@main.command()
@click.argument("report_path", type=click.Path(exists=True))
def info(report_path):
    """Display a saved run report."""
    try:
        data = load_report(report_path)

        click.echo(f"Report: {Path(report_path).name}")
        click.echo(f"Status: {data.get('status')}")
        click.echo(f"Timestamp: {data.get('timestamp')}")
        click.echo(f"Exit code: {data.get('exit_code')}")

        run_data = data.get("run", {})
        click.echo("\nRun:")
        click.echo(f"  Repository: {run_data.get('repository')}")
        click.echo(f"  Ref: {run_data.get('ref')}")
        click.echo(f"  Commit: {run_data.get('sha')}")
        click.echo(f"  Target: {run_data.get('namespace')}/{run_data.get('registry_repository')}")

        click.echo("\nSteps:")
        for step in data.get("steps", []):
            line = f"  - {step['name']}: {step['status']}"
            if step.get("message"):
                line += f" ({step['message']})"
            click.echo(line)

        artifacts = data.get("artifacts", [])
        click.echo(f"\nArtifacts ({len(artifacts)}):")
        for artifact in artifacts:
            click.echo(f"  - {artifact['filename']}")
            click.echo(f"    SHA256: {artifact['sha256']}")
            if "package_slug" in artifact:
                click.echo(f"    Package: {artifact['package_slug']}")

        if data.get("failure"):
            failure = data["failure"]
            click.echo(f"\nFailure: {failure['step']} ({failure['category']}): {failure['message']}")

        click.echo(f"\nWorkflow: {data.get('workflow_run')}")

    except Exception as e:
        click.echo(f"❌ Failed to read run report: {e}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
