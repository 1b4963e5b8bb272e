"""CLI command for running the web app."""

import click

from assetpipe.utils import configure_logging, setup_shutdown_filter


@click.command('serve')
@click.option('--host', default='127.0.0.1', show_default=True, help='Bind address')
@click.option('--port', default=8000, show_default=True, type=int, help='Bind port')
@click.option('--base-path', type=click.Path(exists=True, file_okay=False), help='Application base directory')
@click.option('--no-startup-refresh', is_flag=True, help='Do not compile assets on startup')
def serve_command(host: str, port: int, base_path: str | None, no_startup_refresh: bool):
    """Start the web app. Assets are compiled on startup and on POST /v1/refresh."""
    import os

    import uvicorn

    if base_path:
        os.environ['ASSETPIPE_BASE_PATH'] = os.path.abspath(base_path)
    if no_startup_refresh:
        os.environ['ASSETPIPE_REFRESH_ON_STARTUP'] = 'false'

    configure_logging()
    setup_shutdown_filter()
    uvicorn.run('assetpipe.web:app', host=host, port=port)
