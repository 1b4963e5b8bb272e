"""Asset discovery and concurrent compilation.

The Pipeline walks the asset root once per refresh, groups compilable files
by asset type, compiles every file in its own worker thread and collects
exactly one CompileResult per file from a shared queue.

Key behaviors:
- Stylesheet partials (`_name.less`) are never compiled directly
- One failing file never blocks or aborts its siblings
- By default every file gets its own thread; max_workers caps that
"""

import logging
import os
import queue
import threading
from concurrent.futures import ThreadPoolExecutor
from time import time

from assetpipe import prometheus as prom
from assetpipe.compiler import CompileTask, compile_asset
from assetpipe.config import PipelineConfig, WalkErrorPolicy
from assetpipe.models import ASSET_TYPES, RefreshReport, WalkError, WorkerGroup, asset_type_for


logger = logging.getLogger(__name__)


class DiscoveryError(RuntimeError):
    """The asset tree could not be walked and the policy is 'raise'."""

    def __init__(self, walk_errors: list[WalkError]) -> None:
        detail = '; '.join(f'{e.path}: {e.error}' for e in walk_errors)
        super().__init__(f'Asset discovery failed: {detail}')
        self.walk_errors = walk_errors


class RefreshError(RuntimeError):
    """At least one file failed and fail_on_error was requested."""

    def __init__(self, report: RefreshReport) -> None:
        super().__init__(f'{len(report.failed)} of {report.total} assets failed to compile')
        self.report = report


class Pipeline:
    """Compiles CoffeeScript and LESS sources into the public tree.

    A Pipeline holds only static configuration; every refresh is an
    independent pass.
    """

    def __init__(self, config: PipelineConfig):
        self.config = config

    @property
    def asset_root(self) -> str:
        return self.config.asset_root

    def discover(self) -> tuple[list[WorkerGroup], list[WalkError]]:
        """Walk the asset root and group compilable files by asset type.

        Returns:
            (worker groups in ASSET_TYPES order, traversal errors)
        """
        groups = {
            t.name: WorkerGroup(asset_type=t, processor=self.config.processor_for(t.name)) for t in ASSET_TYPES
        }
        walk_errors: list[WalkError] = []

        def on_error(error: OSError):
            walk_errors.append(WalkError(path=error.filename, error=str(error)))

        for root, dirs, files in os.walk(self.asset_root, onerror=on_error):
            dirs.sort()
            for name in sorted(files):
                filepath = os.path.join(root, name)
                asset_type = asset_type_for(filepath)
                if asset_type is not None:
                    groups[asset_type.name].files.append(filepath)

        return list(groups.values()), walk_errors

    def refresh(
        self,
        max_workers: int | None = None,
        timeout: float | None = None,
        fail_on_error: bool | None = None,
        cancel_event: threading.Event | None = None,
    ) -> RefreshReport:
        """Compile every asset under the asset root.

        Blocks until one result per discovered file has been collected.
        Options left as None fall back to the pipeline config.

        Args:
            max_workers: Concurrency cap (None or 0: one thread per file)
            timeout: Per-file compiler timeout in seconds (0 disables)
            fail_on_error: Raise RefreshError if any file failed
            cancel_event: Set it to abort in-flight and pending compilations;
                the refresh sets it itself when interrupted

        Returns:
            RefreshReport with one result per discovered file

        Raises:
            DiscoveryError: Walk errors occurred under the 'raise' policy
            RefreshError: A file failed and fail_on_error is true
        """
        config = self.config
        if max_workers is None:
            max_workers = config.max_workers
        if timeout is None:
            timeout = config.timeout
        if fail_on_error is None:
            fail_on_error = config.fail_on_error

        start_time = time()
        groups, walk_errors = self.discover()
        total = sum(len(g) for g in groups)

        if walk_errors:
            if config.walk_errors == WalkErrorPolicy.RAISE:
                prom.record_refresh('discovery_error', time() - start_time, total, len(walk_errors))
                prom.record_error('discovery_error')
                raise DiscoveryError(walk_errors)
            if config.walk_errors == WalkErrorPolicy.WARN:
                for walk_error in walk_errors:
                    logger.warning(f'Unable to walk ({walk_error.path}) : Error({walk_error.error})')
            else:
                walk_errors = []

        report = RefreshReport(asset_root=self.asset_root, walk_errors=walk_errors)
        if total == 0:
            report.total_time = time() - start_time
            prom.record_refresh('success', report.total_time, 0, len(walk_errors))
            logger.debug(f'[REFRESH] No assets found under {self.asset_root}')
            return report

        workers = min(max_workers, total) if max_workers else total
        logger.debug(
            f'[REFRESH] Compiling {total} files '
            f'({", ".join(f"{len(g)} {g.asset_type.name}" for g in groups)}) with {workers} workers'
        )

        if cancel_event is None:
            cancel_event = threading.Event()
        results: queue.Queue = queue.Queue(maxsize=total)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix='assetpipe') as executor:
            for group in groups:
                for filepath in group.files:
                    executor.submit(
                        compile_asset,
                        CompileTask(filepath=filepath, results=results),
                        group.processor,
                        source_segment=config.source_segment,
                        output_segment=config.output_segment,
                        timeout=timeout or None,
                        cancel_event=cancel_event,
                        asset_root=self.asset_root,
                    )

            # block until every file has reported
            try:
                for completed in range(1, total + 1):
                    result = results.get()
                    report.results.append(result)
                    if not result.ok:
                        prom.record_error(result.error_type or 'unknown')
                        logger.warning(
                            f'Unable to compile ({result.filepath}) : Error({result.error}) : Command({result.cmd})'
                        )
                    logger.debug(f'[REFRESH] [{completed}/{total}] {result.filepath}')
            except BaseException:
                # Interrupted (Ctrl-C): stop running compilers before the executor joins its workers
                logger.warning(f'[REFRESH] Interrupted, cancelling {total - len(report.results)} pending compilations')
                cancel_event.set()
                raise

        report.total_time = time() - start_time
        prom.record_refresh('success' if report.ok else 'failed', report.total_time, total, len(walk_errors))
        logger.info(
            f'Compiled {len(report.succeeded)}/{total} assets from {self.asset_root} '
            f'in {report.total_time:.2f}s ({len(report.failed)} failed)'
        )

        if fail_on_error and not report.ok:
            raise RefreshError(report)
        return report
