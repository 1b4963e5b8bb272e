"""Pytest configuration and shared fixtures for assetpipe tests.

Real CoffeeScript/LESS compilers are usually not installed where the tests
run, so most tests use tiny executable Python scripts that honour the same
stdin/stdout/stderr contract.
"""

import os
import stat
import sys
import textwrap
from pathlib import Path

import pytest

from assetpipe.config import PipelineConfig
from assetpipe.models import Processor


# Shebangs longer than this are truncated by some kernels
MAX_SHEBANG = 120

COMPILER_SCRIPTS = {
    # Prefixes a banner and uppercases the source
    'upper': """
        import sys
        data = sys.stdin.buffer.read()
        sys.stdout.buffer.write(b'/* compiled */\\n' + data.upper())
    """,
    # Produces output but also a warning on stderr, exits 0
    'warn': """
        import sys
        data = sys.stdin.buffer.read()
        sys.stdout.buffer.write(data)
        sys.stderr.write('warning: something is deprecated\\n')
    """,
    # Exits non-zero without diagnostics
    'exit3': """
        import sys
        sys.stdin.buffer.read()
        sys.exit(3)
    """,
    # Never finishes
    'hang': """
        import time
        time.sleep(60)
    """,
    # Fails on sources containing the word 'broken'
    'picky': """
        import sys
        data = sys.stdin.buffer.read()
        if b'broken' in data:
            sys.stderr.write('SyntaxError: unexpected broken\\n')
            sys.exit(1)
        sys.stdout.buffer.write(data)
    """,
    # Echoes its input after half a second
    'slow': """
        import sys
        import time
        data = sys.stdin.buffer.read()
        time.sleep(0.5)
        sys.stdout.buffer.write(data)
    """,
    # Shell wrapper; its sleep child inherits and holds the output pipes
    'wrapper': """
        #!/bin/sh
        sleep 20
        true
    """,
    # Shell wrapper that ignores SIGTERM, as does its child
    'stubborn': """
        #!/bin/sh
        trap '' TERM
        sleep 20
        true
    """,
    # Minimal LESS stand-in: inlines @import "name"; from --include-path
    'lessish': """
        import os
        import re
        import sys

        include = '.'
        for arg in sys.argv[1:]:
            if arg.startswith('--include-path='):
                include = arg.split('=', 1)[1]

        def inline(match):
            name = match.group(1)
            if not name.endswith('.less'):
                name += '.less'
            path = os.path.join(include, name)
            if not os.path.exists(path):
                sys.stderr.write(f"FileError: '{name}' wasn't found\\n")
                sys.exit(1)
            with open(path) as f:
                return f.read()

        source = sys.stdin.read()
        sys.stdout.write(re.sub(r'@import\\s+"([^"]+)";\\n?', inline, source))
    """,
}


@pytest.fixture(autouse=True)
def isolate_environment(monkeypatch):
    """Auto-use fixture that removes ASSETPIPE_* variables for each test.

    Tests that exercise environment configuration set what they need
    explicitly with monkeypatch.
    """
    for key in list(os.environ):
        if key.startswith('ASSETPIPE_'):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv('ASSETPIPE_REFRESH_ON_STARTUP', 'false')


@pytest.fixture
def compiler_dir(tmp_path):
    path = tmp_path / 'bin'
    path.mkdir()
    return path


@pytest.fixture
def make_compiler(compiler_dir):
    """Factory writing an executable stand-in compiler and returning its path.

    Usage: make_compiler('upper') -> '/tmp/.../bin/upper'
    """

    def _make(name: str) -> str:
        script = compiler_dir / name
        if not script.exists():
            interpreter = sys.executable if len(sys.executable) < MAX_SHEBANG else '/usr/bin/env python3'
            body = textwrap.dedent(COMPILER_SCRIPTS[name]).lstrip()
            if not body.startswith('#!'):
                body = f'#!{interpreter}\n' + body
            script.write_text(body)
            script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(script)

    return _make


@pytest.fixture
def make_processor(make_compiler):
    """Factory for a Processor running a stand-in compiler."""

    def _make(name: str, *args: str) -> Processor:
        return Processor(cmd=make_compiler(name), args=args)

    return _make


@pytest.fixture
def base_dir(tmp_path):
    """Application base directory containing an empty assets/ tree."""
    base = tmp_path / 'app'
    (base / 'assets').mkdir(parents=True)
    return base


@pytest.fixture
def write_asset(base_dir):
    """Factory creating base_dir/relpath (parents included) with content."""

    def _write(relpath: str, content: str = '') -> Path:
        path = base_dir / relpath
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
        return path

    return _write


@pytest.fixture
def make_config(base_dir, make_compiler):
    """Factory for a PipelineConfig over base_dir using stand-in compilers."""

    def _make(coffee: str = 'upper', less: str = 'lessish', **options) -> PipelineConfig:
        return PipelineConfig.build(
            base_dir,
            coffee=make_compiler(coffee),
            less=make_compiler(less),
            **options,
        )

    return _make
