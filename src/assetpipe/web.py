"""FastAPI host application.

Compiles the asset tree on startup (before serving) and on demand through
POST /v1/refresh, the refresh signal. Serving the compiled files themselves is
left to the hosting application.
"""

import asyncio
import logging
import os
import platform
import threading
from contextlib import asynccontextmanager
from functools import partial

import anyio
import psutil
import sh
from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from assetpipe import prometheus as prom
from assetpipe.__version__ import __version__
from assetpipe.config import PipelineConfig
from assetpipe.models import ASSET_TYPES, CompilerStatus, HealthResponse, RefreshResponse
from assetpipe.pipeline import DiscoveryError, Pipeline, RefreshError
from assetpipe.utils import configure_logging, get_bool_env, get_log_level_name


configure_logging()

logger = logging.getLogger(__name__)


def check_compilers(pipeline: Pipeline) -> list[CompilerStatus]:
    """Resolve each configured compiler on PATH (or at its configured path)."""
    statuses = []
    for asset_type in ASSET_TYPES:
        processor = pipeline.config.processor_for(asset_type.name)
        try:
            resolved = sh.Command(processor.cmd)._path
            available = True
        except sh.CommandNotFound:
            resolved = None
            available = False
        statuses.append(
            CompilerStatus(
                asset_type=asset_type.name,
                cmd=processor.cmd,
                args=list(processor.args),
                available=available,
                resolved_path=str(resolved) if resolved else None,
            )
        )
    return statuses


async def run_refresh(app: FastAPI, **options) -> RefreshResponse:
    """Run one refresh off the event loop; refreshes never overlap."""
    async with app.state.refresh_lock:
        try:
            report = await anyio.to_thread.run_sync(
                partial(app.state.pipeline.refresh, cancel_event=app.state.cancel_event, **options)
            )
        except RefreshError as e:
            app.state.last_refresh = e.report.to_response()
            raise
        app.state.last_refresh = report.to_response()
        return app.state.last_refresh


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: build the pipeline from ASSETPIPE_* environment
    config = PipelineConfig.from_env()
    app.state.pipeline = Pipeline(config)
    app.state.refresh_lock = asyncio.Lock()
    app.state.cancel_event = threading.Event()
    app.state.last_refresh = None
    logger.info(f'Asset root: {config.asset_root}')

    for status in check_compilers(app.state.pipeline):
        if status.available:
            logger.info(f'{status.asset_type} compiler found at: {status.resolved_path}')
        else:
            logger.warning(f'{status.asset_type} compiler not found: {status.cmd}')

    # Startup: compile before serving
    if get_bool_env('ASSETPIPE_REFRESH_ON_STARTUP', True):
        try:
            await run_refresh(app, fail_on_error=False)
        except DiscoveryError as e:
            logger.error(f'Startup refresh failed: {e}')

    yield

    # Shutdown: terminate compilers of a refresh still in flight
    app.state.cancel_event.set()
    logger.info('Shutting down assetpipe')


app = FastAPI(
    title='assetpipe',
    version=__version__,
    description="""
    Concurrent CoffeeScript and LESS compilation for the assets tree.

    ## Endpoints

    * `/v1/refresh` - Recompile every asset under the asset root
    * `/health` - Service status and compiler availability
    * `/metrics` - Prometheus metrics
    """,
    license_info={'name': 'MIT'},
    lifespan=lifespan,
    docs_url='/docs',
    redoc_url='/redoc',
)


def get_system_resources() -> dict:
    mem = psutil.virtual_memory()
    return {
        'cpu_cores': psutil.cpu_count(logical=True),
        'cpu_cores_physical': psutil.cpu_count(logical=False),
        'ram_total_gb': round(mem.total / (1024**3), 2),
        'ram_available_gb': round(mem.available / (1024**3), 2),
    }


def get_app_env_variables() -> dict:
    return {key: value for key, value in os.environ.items() if key.startswith('ASSETPIPE_')}


@app.get('/health', tags=['General'], response_model=HealthResponse)
async def health():
    """
    Health check and system introspection endpoint.

    Returns:
    - Service status
    - Asset root and compiler availability
    - Outcome of the most recent refresh
    - System resources and ASSETPIPE_* environment
    """
    pipeline: Pipeline = app.state.pipeline
    compilers = await anyio.to_thread.run_sync(check_compilers, pipeline)
    prom.record_http_response('GET', '/health', 200)

    return HealthResponse(
        status='ok',
        app_version=__version__,
        python_version=platform.python_version(),
        asset_root=pipeline.asset_root,
        compilers=compilers,
        last_refresh=app.state.last_refresh,
        system_resources=get_system_resources(),
        environment={'ASSETPIPE_LOG_LEVEL': get_log_level_name(), **get_app_env_variables()},
    )


@app.get('/metrics', tags=['Monitoring'])
async def metrics():
    """
    Prometheus metrics endpoint.

    Exposes refresh counts and durations, per-file compile outcomes by
    asset type, in-flight compilations and error counts.
    """
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.post(
    '/v1/refresh',
    tags=['Assets'],
    summary='Recompile all assets',
    response_model=RefreshResponse,
    responses={
        200: {'description': 'Refresh completed (individual files may have failed)'},
        500: {'description': 'Discovery failed, or a file failed with fail_on_error=true'},
    },
)
async def refresh(
    max_workers: int | None = Query(None, description='Concurrency cap (default: one worker per file)', ge=1),
    timeout: float | None = Query(None, description='Per-file compiler timeout in seconds', gt=0),
    fail_on_error: bool | None = Query(
        None, description='Respond 500 if any file failed (default: ASSETPIPE_FAIL_ON_ERROR)'
    ),
):
    """
    Run one full compilation pass over the asset root.

    Every `.coffee` and non-partial `.less` file is compiled concurrently.
    A failed file keeps its previous output, if any.

    **Returns:**
    - **results**: One entry per discovered file, with its error if it failed
    - **walk_errors**: Directories that could not be traversed
    - **succeeded** / **failed** / **total** counts
    """
    try:
        response = await run_refresh(app, max_workers=max_workers, timeout=timeout, fail_on_error=fail_on_error)
    except RefreshError as e:
        prom.record_http_response('POST', '/v1/refresh', 500)
        return JSONResponse(status_code=500, content=e.report.to_response().model_dump())
    except DiscoveryError as e:
        prom.record_http_response('POST', '/v1/refresh', 500)
        raise HTTPException(status_code=500, detail=str(e))

    prom.record_http_response('POST', '/v1/refresh', 200)
    return response
