"""CLI command for a one-off compilation pass."""

import dataclasses
import json
import sys

import click

from assetpipe.config import PipelineConfig, WalkErrorPolicy
from assetpipe.pipeline import DiscoveryError, Pipeline, RefreshError
from assetpipe.utils import configure_logging


@click.command('refresh')
@click.option('--base-path', type=click.Path(file_okay=False), help='Application base directory (default: cwd)')
@click.option('--assets-path', type=str, help='Asset root relative to the base path (default: assets)')
@click.option('--coffee', type=str, help='CoffeeScript compiler executable (default: coffee)')
@click.option('--less', type=str, help='LESS compiler executable (default: lessc)')
@click.option('--max-workers', type=click.IntRange(min=1), help='Maximum parallel compilations (default: no cap)')
@click.option('--timeout', type=click.FloatRange(min=0, min_open=True), help='Per-file timeout in seconds')
@click.option('--fail-on-error', is_flag=True, help='Exit with status 1 if any file failed')
@click.option(
    '--walk-errors',
    type=click.Choice([p.value for p in WalkErrorPolicy]),
    help='Handling of unreadable directories (default: warn)',
)
@click.option('--json', 'output_json', is_flag=True, help='Output results as JSON')
@click.option('--no-color', is_flag=True, help='Disable colored output')
@click.option('--log-level', type=str, help='Logging level (default: ASSETPIPE_LOG_LEVEL or INFO)')
def refresh_command(
    base_path: str | None,
    assets_path: str | None,
    coffee: str | None,
    less: str | None,
    max_workers: int | None,
    timeout: float | None,
    fail_on_error: bool,
    walk_errors: str | None,
    output_json: bool,
    no_color: bool,
    log_level: str | None,
):
    """Compile every CoffeeScript and LESS file under the asset root.

    Outputs mirror the source tree with `assets` replaced by `public`:
    assets/js/app.coffee -> public/js/app.js, assets/css/main.less ->
    public/css/main.css. Partials (`_*.less`) are only compiled through
    the files that import them.

    \b
    Examples:
        assetpipe refresh
        assetpipe refresh --base-path /srv/app --less node_modules/.bin/lessc
        assetpipe refresh --max-workers 4 --timeout 30 --fail-on-error
        assetpipe refresh --json
    """
    configure_logging(log_level)

    config = PipelineConfig.from_env(base_path=base_path, assets_path=assets_path, coffee=coffee, less=less)
    if walk_errors:
        config = dataclasses.replace(config, walk_errors=WalkErrorPolicy(walk_errors))
    if fail_on_error:
        config = dataclasses.replace(config, fail_on_error=True)

    pipeline = Pipeline(config)
    try:
        report = pipeline.refresh(max_workers=max_workers, timeout=timeout)
    except DiscoveryError as e:
        click.echo(f'Error: {e}', err=True)
        sys.exit(1)
    except RefreshError as e:
        _output(e.report, output_json, no_color)
        click.echo(f'Error: {e}', err=True)
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo('Interrupted, running compilers were terminated', err=True)
        sys.exit(130)

    _output(report, output_json, no_color)


def _output(report, output_json: bool, no_color: bool):
    if output_json:
        click.echo(json.dumps(report.to_response().model_dump(), indent=2))
    else:
        click.echo(report.to_cli(colorize=not no_color and sys.stdout.isatty()))
