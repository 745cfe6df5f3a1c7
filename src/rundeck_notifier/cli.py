# cli.py
from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from .build import BuildContext, BuildResult
from .config import ConfigFile, ConfigurationError, SiteRegistry, StepConfig, load_config
from .notifier import notify as run_notifier
from .settings import CONFIG_PATH
from .ui.console import Console, get_console, set_console
from .validation import check_connection, check_job_identifier, check_regex, check_url


def _load(ctx) -> tuple[ConfigFile, SiteRegistry]:
    """Load the config file named on the command line, or exit with a readable error."""
    console = get_console()
    path = ctx.obj["config_path"]
    try:
        config = load_config(path)
        return config, SiteRegistry(config.sites)
    except ConfigurationError as e:
        console.print_error(
            "Invalid configuration",
            str(e),
            suggestion=f"Create {path} with a \"sites\" list, or point --config at another file.",
        )
        sys.exit(1)


def _site(ctx, registry: SiteRegistry, name: str | None):
    console = get_console()
    try:
        return registry.get(name)
    except ConfigurationError as e:
        console.print_error("Unknown Rundeck site", str(e))
        sys.exit(1)


def _key_values(pairs: tuple[str, ...]) -> str:
    """Turn repeated K=V flags into properties text."""
    return "\n".join(pairs)


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.option(
    "--config",
    "config_path",
    default=CONFIG_PATH,
    show_default=True,
    envvar="RUNDECK_NOTIFIER_CONFIG",
    help="JSON file with Rundeck sites and notifier steps",
)
@click.pass_context
def cli(ctx, debug, config_path):
    """rundeck-notifier: run Rundeck jobs from CI builds."""
    console = Console(debug=debug)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = config_path


@cli.command()
@click.pass_context
def sites(ctx):
    """List configured Rundeck sites."""
    console = get_console()
    _config, registry = _load(ctx)
    console.print_sites([(s.name or "(unnamed)", s.normalized_url, s.auth_kind) for s in registry])


@cli.command("test-connection")
@click.option("--site", "site_name", default=None, help="Site name (defaults to the first configured site)")
@click.pass_context
def test_connection(ctx, site_name):
    """Check that a Rundeck site is alive and accepts its credentials."""
    console = get_console()
    _config, registry = _load(ctx)
    site = _site(ctx, registry, site_name)

    result = check_connection(site)
    console.print_validation(result.ok, result.message)
    if not result.ok:
        sys.exit(1)


@cli.command("check-job")
@click.argument("identifier")
@click.option("--site", "site_name", default=None, help="Site name (defaults to the first configured site)")
@click.pass_context
def check_job(ctx, identifier, site_name):
    """Check that IDENTIFIER (job ID or project:group/name) is a Rundeck job."""
    console = get_console()
    _config, registry = _load(ctx)
    site = _site(ctx, registry, site_name)

    result = check_job_identifier(identifier, site)
    console.print_validation(result.ok, result.message)
    if result.url:
        console.print_info(f"Job page: {result.url}")
    if not result.ok:
        sys.exit(1)


@cli.command("check-url")
@click.argument("url", required=False, default="")
def check_url_command(url):
    """Check a Rundeck site URL before adding it to the config file."""
    console = get_console()
    result = check_url(url)
    console.print_validation(result.ok, result.message or f"{url} is a valid URL.")
    if not result.ok:
        sys.exit(1)


@cli.command("check-regex")
@click.argument("pattern", required=False, default="")
def check_regex_command(pattern):
    """Check that PATTERN compiles (e.g. for $ARTIFACT_NAME{...} options)."""
    console = get_console()
    result = check_regex(pattern)
    console.print_validation(result.ok, result.message or "Valid pattern.")
    if not result.ok:
        sys.exit(1)


@cli.command()
@click.option("--step", "step_name", default=None, help="Named step from the config file")
@click.option("--job", "job_identifier", default=None, help="Job ID or project:group/name (overrides the step)")
@click.option("--site", "site_name", default=None, help="Site name (overrides the step)")
@click.option("--option", "option_pairs", multiple=True, help="Job option as KEY=VALUE (repeatable)")
@click.option(
    "--options-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="File with job options, one KEY=VALUE per line",
)
@click.option("--node-filter", "node_filter_pairs", multiple=True, help="Node filter as KEY=VALUE (repeatable)")
@click.option("--tag", default=None, help="Only notify if this tag appears in the changelog")
@click.option("--wait/--no-wait", default=None, help="Wait for the Rundeck execution to finish")
@click.option(
    "--fail-build/--no-fail-build",
    default=None,
    help="Fail the build when the Rundeck execution fails",
)
@click.option(
    "--build-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="JSON description of the build (result, changes, upstream, env, artifacts)",
)
@click.option("--artifacts-dir", default=None, help="Directory holding the build artifacts")
@click.option("--changes-since", default=None, help="Git ref of the previous build, for the changelog")
@click.option("--badge-file", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="Write the Rundeck execution links to this JSON file")
@click.pass_context
def notify(
    ctx,
    step_name,
    job_identifier,
    site_name,
    option_pairs,
    options_file,
    node_filter_pairs,
    tag,
    wait,
    fail_build,
    build_file,
    artifacts_dir,
    changes_since,
    badge_file,
):
    """Run a Rundeck job for this build, optionally waiting for its result."""
    console = get_console()
    config, registry = _load(ctx)

    # ---- step ----
    if step_name:
        if step_name not in config.steps:
            console.print_error(
                "Unknown step",
                f"No step named {step_name!r} in {ctx.obj['config_path']}",
                details=[f"Known steps: {', '.join(config.steps) or '(none)'}"],
            )
            sys.exit(1)
        step = config.steps[step_name].model_copy()
    elif job_identifier:
        step = StepConfig(job_identifier=job_identifier)
    else:
        console.print_error(
            "No job to run",
            "Give either --step NAME or --job IDENTIFIER.",
            suggestion="rundeck-notifier notify --job my-project:deploy/app --wait",
        )
        sys.exit(1)

    if job_identifier:
        step.job_identifier = job_identifier
    if site_name is not None:
        step.site = site_name
    extra_options = [step.options, _key_values(option_pairs)]
    if options_file:
        extra_options.append(options_file.read_text(encoding="utf-8"))
    step.options = "\n".join(part for part in extra_options if part)
    if node_filter_pairs:
        step.node_filters = "\n".join(part for part in [step.node_filters, _key_values(node_filter_pairs)] if part)
    if tag is not None:
        step.tag = tag
    if wait is not None:
        step.wait_for_completion = wait
    if fail_build is not None:
        step.fail_build_on_failure = fail_build

    site = _site(ctx, registry, step.site)

    try:
        # ---- build ----
        if build_file:
            build = BuildContext.load(build_file)
        else:
            build = BuildContext.from_workspace(artifacts_dir=artifacts_dir, changes_since=changes_since)
        console.print_header(f"Rundeck: {step.job_identifier} on {site.normalized_url}")
        console.print_debug(f"Build {build.display_name}: {build.result.value}, {len(build.artifacts)} artifact(s)")

        outcome = run_notifier(step, site, build, console=console)
        final = outcome.apply_to(build)

        if badge_file:
            badge_file.write_text(
                json.dumps([b.to_dict() for b in build.badges], indent=2) + "\n",
                encoding="utf-8",
            )

        if not outcome.ok and outcome.deferred:
            console.print_warning(
                f"Rundeck step failed ({outcome.message}); build result stays {final.value}"
            )
        console.print_debug(json.dumps(outcome.to_dict()))

        if final is BuildResult.FAILURE and not outcome.ok:
            sys.exit(1)

    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)


if __name__ == "__main__":
    cli()
