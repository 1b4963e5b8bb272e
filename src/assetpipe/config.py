"""Pipeline configuration.

Settings are passed explicitly into the Pipeline; `from_env` reads the
ASSETPIPE_* environment variables for the CLI and the web app.
"""

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from assetpipe.models import COFFEE, LESS, Processor
from assetpipe.utils import get_bool_env, get_float_env, get_int_env, get_str_env


logger = logging.getLogger(__name__)

DEFAULT_ASSETS_PATH = 'assets'
DEFAULT_COFFEE_COMPILER = 'coffee'
DEFAULT_LESS_COMPILER = 'lessc'
DEFAULT_TIMEOUT_SECONDS = 60

# Leading path segment rewritten when mapping sources to outputs
SOURCE_SEGMENT = 'assets'
OUTPUT_SEGMENT = 'public'

COFFEE_ARGS = ('-s', '-p')


class WalkErrorPolicy(str, Enum):
    """What discovery does with directories it cannot traverse."""

    IGNORE = 'ignore'
    WARN = 'warn'
    RAISE = 'raise'


def resolve_command(cmd: str, base_path: str) -> str:
    """Resolve a configured compiler path against the base path.

    Relative paths containing a separator are joined to the base path;
    bare names are left for PATH lookup, absolute paths are kept.
    """
    if '/' in cmd and not os.path.isabs(cmd):
        return os.path.join(base_path, cmd)
    return cmd


def default_processors(asset_root: str, coffee_cmd: str, less_cmd: str) -> dict[str, Processor]:
    """Build the processor for every asset type, keyed by asset type name."""
    return {
        COFFEE.name: Processor(cmd=coffee_cmd, args=COFFEE_ARGS),
        LESS.name: Processor(
            cmd=less_cmd,
            args=('-', f'--include-path={os.path.join(asset_root, "css")}'),
        ),
    }


@dataclass
class PipelineConfig:
    """Static configuration shared by every refresh of a Pipeline.

    Attributes:
        asset_root: Directory scanned for sources
        processors: Processor per asset type name
        source_segment: Path segment replaced in output paths
        output_segment: Replacement segment for output paths
        max_workers: Concurrency cap, None runs every file at once
        timeout: Per-file compiler timeout in seconds, None disables
        fail_on_error: Raise RefreshError when any file fails
        walk_errors: Handling of traversal errors during discovery
    """

    asset_root: str
    processors: dict[str, Processor] = field(default_factory=dict)
    source_segment: str = SOURCE_SEGMENT
    output_segment: str = OUTPUT_SEGMENT
    max_workers: int | None = None
    timeout: float | None = DEFAULT_TIMEOUT_SECONDS
    fail_on_error: bool = False
    walk_errors: WalkErrorPolicy = WalkErrorPolicy.WARN

    @classmethod
    def build(
        cls,
        base_path: str | Path,
        assets_path: str = DEFAULT_ASSETS_PATH,
        coffee: str = DEFAULT_COFFEE_COMPILER,
        less: str = DEFAULT_LESS_COMPILER,
        **options,
    ) -> 'PipelineConfig':
        """Build a config with the default processors for a base path.

        Args:
            base_path: Application base directory
            assets_path: Asset root relative to base_path
            coffee: CoffeeScript compiler executable
            less: LESS compiler executable
            **options: Remaining PipelineConfig fields

        Returns:
            PipelineConfig
        """
        base = str(base_path)
        asset_root = os.path.join(base, assets_path)
        processors = default_processors(
            asset_root,
            resolve_command(coffee, base),
            resolve_command(less, base),
        )
        return cls(asset_root=asset_root, processors=processors, **options)

    @classmethod
    def from_env(
        cls,
        base_path: str | Path | None = None,
        assets_path: str | None = None,
        coffee: str | None = None,
        less: str | None = None,
    ) -> 'PipelineConfig':
        """Load configuration from ASSETPIPE_* environment variables.

        Explicit arguments take precedence over the environment.
        """
        base = base_path or get_str_env('ASSETPIPE_BASE_PATH', os.getcwd())
        max_workers = get_int_env('ASSETPIPE_MAX_WORKERS', 0)
        timeout = get_float_env('ASSETPIPE_TIMEOUT', DEFAULT_TIMEOUT_SECONDS)

        walk_errors_name = get_str_env('ASSETPIPE_WALK_ERRORS', WalkErrorPolicy.WARN.value).lower()
        try:
            walk_errors = WalkErrorPolicy(walk_errors_name)
        except ValueError:
            logger.warning(f'Unknown ASSETPIPE_WALK_ERRORS value {walk_errors_name!r}, using "warn"')
            walk_errors = WalkErrorPolicy.WARN

        return cls.build(
            base_path=base,
            assets_path=assets_path or get_str_env('ASSETPIPE_ASSETS_PATH', DEFAULT_ASSETS_PATH),
            coffee=coffee or get_str_env('ASSETPIPE_COFFEE', DEFAULT_COFFEE_COMPILER),
            less=less or get_str_env('ASSETPIPE_LESS', DEFAULT_LESS_COMPILER),
            max_workers=max_workers if max_workers > 0 else None,
            timeout=timeout if timeout > 0 else None,
            fail_on_error=get_bool_env('ASSETPIPE_FAIL_ON_ERROR', False),
            walk_errors=walk_errors,
        )

    def processor_for(self, asset_type_name: str) -> Processor:
        return self.processors[asset_type_name]
