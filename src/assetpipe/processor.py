"""External compiler invocation over stdin/stdout/stderr pipes.

A compiler is treated as an opaque filter: it receives the whole source on
stdin, writes the compiled result to stdout and may write diagnostics to
stderr. Any stderr output counts as a failure, even when the process exits
with status 0 and produced usable output.
"""

import logging
import os
import signal
import subprocess
import threading
from time import monotonic
from typing import BinaryIO

from assetpipe.models import Processor


logger = logging.getLogger(__name__)

# Granularity of cancel-event checks while a compiler runs
POLL_INTERVAL = 0.1
# Grace period between SIGTERM and SIGKILL of the compiler process group
TERMINATE_GRACE_SECONDS = 2.0


class ProcessorError(RuntimeError):
    """Compiler invocation failed. Never retried."""

    def __init__(self, message: str, *, cmd: str) -> None:
        super().__init__(message)
        self.cmd = cmd


class ProcessorLaunchError(ProcessorError):
    """Compiler executable missing or not runnable."""


class ProcessorDiagnosticsError(ProcessorError):
    """Compiler wrote to stderr. The message is the stderr text verbatim."""


class ProcessorExitError(ProcessorError):
    """Compiler exited with a non-zero status and no diagnostics."""

    def __init__(self, message: str, *, cmd: str, returncode: int) -> None:
        super().__init__(message, cmd=cmd)
        self.returncode = returncode


class ProcessorTimeoutError(ProcessorError):
    """Compiler did not finish within the per-file timeout and was killed."""


class ProcessorCancelledError(ProcessorError):
    """Refresh was cancelled while (or before) the compiler ran."""


def process(
    source: BinaryIO,
    sink: BinaryIO,
    processor: Processor,
    timeout: float | None = None,
    cancel_event: threading.Event | None = None,
) -> None:
    """Pipe source through the external compiler and write its output to sink.

    Args:
        source: Readable binary stream with the source file contents
        sink: Writable binary stream receiving compiled output on success
        processor: Compiler command and arguments
        timeout: Seconds before the compiler is killed (None or 0 disables)
        cancel_event: When set, the running compiler is terminated

    Raises:
        ProcessorError: One of its subclasses, describing the failure
        OSError: Reading source or writing sink failed
    """
    data = source.read()

    try:
        proc = subprocess.Popen(  # noqa: S603
            [processor.cmd, *processor.args],
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            start_new_session=True,
        )
    except FileNotFoundError as e:
        raise ProcessorLaunchError(f'compiler not found: {processor.cmd}', cmd=processor.cmd) from e
    except OSError as e:
        raise ProcessorLaunchError(f'compiler failed to start: {e}', cmd=processor.cmd) from e

    logger.debug(f'[PROCESS] Started {processor.command_line} (pid={proc.pid}, {len(data)} bytes in)')
    compiled, diagnostics = _communicate(proc, data, processor, timeout, cancel_event)

    if diagnostics:
        raise ProcessorDiagnosticsError(diagnostics.decode('utf-8', errors='replace'), cmd=processor.cmd)

    if proc.returncode != 0:
        raise ProcessorExitError(
            f'exit status {proc.returncode}',
            cmd=processor.cmd,
            returncode=proc.returncode,
        )

    sink.write(compiled)


def _communicate(
    proc: subprocess.Popen,
    data: bytes,
    processor: Processor,
    timeout: float | None,
    cancel_event: threading.Event | None,
) -> tuple[bytes, bytes]:
    # stdin is fed and both output pipes are drained from helper threads while
    # this thread polls for exit, timeout and cancellation. A wrapper compiler
    # may exit while its children still hold the pipes, so completion also
    # waits for EOF on both outputs.
    compiled: list[bytes] = []
    diagnostics: list[bytes] = []
    threads = [
        threading.Thread(target=_feed, args=(proc.stdin, data), daemon=True),
        threading.Thread(target=_drain, args=(proc.stdout, compiled), daemon=True),
        threading.Thread(target=_drain, args=(proc.stderr, diagnostics), daemon=True),
    ]
    for thread in threads:
        thread.start()

    deadline = monotonic() + timeout if timeout else None
    while proc.poll() is None or any(t.is_alive() for t in threads):
        if cancel_event is not None and cancel_event.is_set():
            _terminate(proc, threads)
            raise ProcessorCancelledError('refresh cancelled', cmd=processor.cmd)
        if deadline is not None and monotonic() >= deadline:
            _terminate(proc, threads)
            raise ProcessorTimeoutError(f'timed out after {timeout}s', cmd=processor.cmd)
        _wait_slice(proc, threads)

    return b''.join(compiled), b''.join(diagnostics)


def _wait_slice(proc: subprocess.Popen, threads: list[threading.Thread]) -> None:
    if proc.poll() is None:
        try:
            proc.wait(timeout=POLL_INTERVAL)
        except subprocess.TimeoutExpired:
            pass
        return
    for thread in threads:
        if thread.is_alive():
            thread.join(POLL_INTERVAL)
            return


def _feed(stream: BinaryIO, data: bytes) -> None:
    # The compiler may exit without reading all of its input
    try:
        stream.write(data)
    except OSError:
        pass
    try:
        stream.close()
    except OSError:
        pass


def _drain(stream: BinaryIO, chunks: list[bytes]) -> None:
    try:
        chunks.append(stream.read())
    finally:
        stream.close()


def _signal_group(proc: subprocess.Popen, sig: int) -> None:
    # The compiler leads its own session, so its pid is the process group id
    try:
        os.killpg(proc.pid, sig)
    except OSError:
        pass


def _terminate(proc: subprocess.Popen, threads: list[threading.Thread]) -> None:
    """SIGTERM the compiler's process group, SIGKILL it after the grace period."""
    _signal_group(proc, signal.SIGTERM)
    deadline = monotonic() + TERMINATE_GRACE_SECONDS
    try:
        proc.wait(timeout=TERMINATE_GRACE_SECONDS)
    except subprocess.TimeoutExpired:
        pass
    for thread in threads:
        thread.join(max(0.0, deadline - monotonic()))

    if proc.poll() is None or any(t.is_alive() for t in threads):
        logger.warning(f'[PROCESS] pid={proc.pid} process group still running after SIGTERM, killing')
        _signal_group(proc, signal.SIGKILL)
        try:
            proc.wait(timeout=TERMINATE_GRACE_SECONDS)
        except subprocess.TimeoutExpired:
            logger.error(f'[PROCESS] pid={proc.pid} did not exit after SIGKILL')
        for thread in threads:
            thread.join(TERMINATE_GRACE_SECONDS)
