"""Prometheus metrics for assetpipe"""

from prometheus_client import Counter, Gauge, Histogram

# ============================================================================
# Refresh Metrics
# ============================================================================

refresh_runs_total = Counter(
    'assetpipe_refresh_runs_total',
    'Total number of pipeline refreshes',
    ['status'],  # success, failed, discovery_error
)

refresh_duration_seconds = Histogram(
    'assetpipe_refresh_duration_seconds',
    'Wall time of a full pipeline refresh',
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0],
)

files_discovered = Histogram(
    'assetpipe_files_discovered',
    'Number of compilable files found per refresh',
    buckets=[0, 1, 5, 10, 25, 50, 100, 250, 500, 1000],
)

walk_errors_total = Counter('assetpipe_walk_errors_total', 'Directories that could not be traversed')


# ============================================================================
# Per-file Compile Metrics
# ============================================================================

files_compiled_total = Counter(
    'assetpipe_files_compiled_total',
    'Files compiled by asset type and outcome',
    ['asset_type', 'status'],  # status: success, error
)

compile_duration_seconds = Histogram(
    'assetpipe_compile_duration_seconds',
    'Time spent compiling a single file (compiler run plus I/O)',
    ['asset_type'],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
)

active_compilations = Gauge('assetpipe_active_compilations', 'Compilations currently in flight')


# ============================================================================
# Error / HTTP Metrics
# ============================================================================

errors_total = Counter(
    'assetpipe_errors_total',
    'Total errors by type',
    ['error_type'],  # ProcessorDiagnosticsError, ProcessorLaunchError, ..., discovery_error, internal_error
)

http_responses_total = Counter(
    'assetpipe_http_responses_total', 'HTTP responses by status code', ['method', 'endpoint', 'status_code']
)


# ============================================================================
# Helper Functions
# ============================================================================


def record_compile(asset_type: str, success: bool, duration: float):
    """
    Record metrics for one compiled file.

    Args:
        asset_type: Asset type name (coffee, less)
        success: Whether the file compiled
        duration: Seconds spent on the file
    """
    files_compiled_total.labels(asset_type=asset_type, status='success' if success else 'error').inc()
    compile_duration_seconds.labels(asset_type=asset_type).observe(duration)


def record_refresh(status: str, duration: float, num_files: int, num_walk_errors: int = 0):
    """
    Record metrics for a refresh.

    Args:
        status: success, failed or discovery_error
        duration: Refresh wall time in seconds
        num_files: Files discovered
        num_walk_errors: Traversal errors recorded
    """
    refresh_runs_total.labels(status=status).inc()
    refresh_duration_seconds.observe(duration)
    files_discovered.observe(num_files)
    if num_walk_errors:
        walk_errors_total.inc(num_walk_errors)


def record_error(error_type: str):
    errors_total.labels(error_type=error_type).inc()


def record_http_response(method: str, endpoint: str, status_code: int):
    http_responses_total.labels(method=method, endpoint=endpoint, status_code=str(status_code)).inc()
