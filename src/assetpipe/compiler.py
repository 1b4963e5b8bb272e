"""Compile one asset: map its output path, run the compiler, write the result."""

import io
import logging
import os
import queue
import threading
from dataclasses import dataclass
from pathlib import PurePath
from time import time

from assetpipe import prometheus as prom
from assetpipe.config import OUTPUT_SEGMENT, SOURCE_SEGMENT
from assetpipe.models import CompileResult, Processor, asset_type_for
from assetpipe.processor import ProcessorCancelledError, ProcessorError, process


logger = logging.getLogger(__name__)


def output_path_for(
    filepath: str,
    source_segment: str = SOURCE_SEGMENT,
    output_segment: str = OUTPUT_SEGMENT,
    asset_root: str | None = None,
) -> str:
    """Map a source path to its compiled output path.

    The first path segment equal to source_segment is replaced by
    output_segment and the source extension is swapped for the output one:

        assets/css/a.less   -> public/css/a.css
        assets/js/b.coffee  -> public/js/b.js

    A path without source_segment keeps its directory. When asset_root is
    given, directories above it are never rewritten, so a base path that
    itself contains source_segment is left alone.

    Args:
        filepath: Source file path
        source_segment: Segment to replace (default 'assets')
        output_segment: Replacement segment (default 'public')
        asset_root: Directory the file was discovered under

    Returns:
        Output file path

    Raises:
        ValueError: The file is not a compilable asset
    """
    asset_type = asset_type_for(filepath)
    if asset_type is None:
        raise ValueError(f'Not a compilable asset: {filepath}')

    path = PurePath(filepath)
    parts = list(path.parent.parts)
    start = 0
    if asset_root is not None:
        root_parts = PurePath(asset_root).parts
        if tuple(parts[: len(root_parts)]) == root_parts:
            start = max(len(root_parts) - 1, 0)
    for i in range(start, len(parts)):
        if parts[i] == source_segment:
            parts[i] = output_segment
            break

    stem = path.name[: -len(asset_type.source_ext)]
    return str(PurePath(*parts, stem + asset_type.output_ext))


@dataclass
class CompileTask:
    """One source file waiting to be compiled, and where to report it."""

    filepath: str
    results: queue.Queue


def compile_asset(
    task: CompileTask,
    processor: Processor,
    source_segment: str = SOURCE_SEGMENT,
    output_segment: str = OUTPUT_SEGMENT,
    timeout: float | None = None,
    cancel_event: threading.Event | None = None,
    asset_root: str | None = None,
) -> CompileResult:
    """Compile task.filepath and put exactly one CompileResult on task.results.

    Steps run strictly in order and the first failure ends the task:
    create output directory, open source, run compiler, write output.
    Nothing is raised; every failure becomes the result's error.

    Args:
        task: File to compile and the shared result queue
        processor: Compiler to run
        source_segment: Segment replaced when mapping the output path
        output_segment: Replacement segment
        timeout: Per-file compiler timeout in seconds
        cancel_event: Refresh-wide cancellation signal
        asset_root: Directory the file was discovered under

    Returns:
        The CompileResult that was put on the queue
    """
    start_time = time()
    asset_type = asset_type_for(task.filepath)
    asset_type_name = asset_type.name if asset_type else 'unknown'
    output_path = None
    error: BaseException | None = None

    prom.active_compilations.inc()
    try:
        output_path = output_path_for(task.filepath, source_segment, output_segment, asset_root)

        if cancel_event is not None and cancel_event.is_set():
            raise ProcessorCancelledError('refresh cancelled', cmd=processor.cmd)

        os.makedirs(os.path.dirname(output_path) or '.', exist_ok=True)

        buf = io.BytesIO()
        with open(task.filepath, 'rb') as origin:
            process(origin, buf, processor, timeout=timeout, cancel_event=cancel_event)

        with open(output_path, 'wb') as target:
            target.write(buf.getvalue())

    except (OSError, ValueError, ProcessorError) as e:
        error = e
    except Exception as e:
        logger.exception(f'[COMPILE] Unexpected failure compiling {task.filepath}')
        error = e
    finally:
        prom.active_compilations.dec()

    result = CompileResult(
        filepath=task.filepath,
        cmd=processor.cmd,
        asset_type=asset_type_name,
        output_path=output_path,
        error=str(error) if error is not None else None,
        error_type=type(error).__name__ if error is not None else None,
        duration=time() - start_time,
    )
    prom.record_compile(asset_type_name, result.ok, result.duration)

    if result.ok:
        logger.debug(f'[COMPILE] {task.filepath} -> {output_path} in {result.duration:.3f}s')
    else:
        logger.debug(f'[COMPILE] {task.filepath} failed ({result.error_type}) in {result.duration:.3f}s')

    task.results.put(result)
    return result
