"""Pydantic models for processors, compile results and refresh reports"""

from dataclasses import dataclass, field

from pydantic import BaseModel, ConfigDict, Field


@dataclass(frozen=True)
class AssetType:
    """A compilable source type and the extension its output gets.

    Attributes:
        name: Short name used for grouping, metrics and config keys
        source_ext: Source file extension (with leading dot)
        output_ext: Extension of the compiled output
        skip_partials: Skip files whose name starts with PARTIAL_MARKER
    """

    name: str
    source_ext: str
    output_ext: str
    skip_partials: bool = False


PARTIAL_MARKER = '_'

COFFEE = AssetType(name='coffee', source_ext='.coffee', output_ext='.js')
LESS = AssetType(name='less', source_ext='.less', output_ext='.css', skip_partials=True)

ASSET_TYPES: tuple[AssetType, ...] = (COFFEE, LESS)

# source extension -> output extension
COMPILE_MAP: dict[str, str] = {t.source_ext: t.output_ext for t in ASSET_TYPES}


def asset_type_for(filepath: str) -> AssetType | None:
    """Return the asset type handling this file, or None when it is not compiled.

    Partial stylesheets (name starting with '_') return None.
    """
    name = filepath.replace('\\', '/').rsplit('/', 1)[-1]
    for asset_type in ASSET_TYPES:
        if not name.endswith(asset_type.source_ext):
            continue
        if asset_type.skip_partials and name.startswith(PARTIAL_MARKER):
            return None
        return asset_type
    return None


class Processor(BaseModel):
    """External compiler invocation: executable plus fixed argument list.

    Consumes source bytes on stdin and produces compiled bytes on stdout.
    """

    model_config = ConfigDict(frozen=True)

    cmd: str = Field(..., examples=['lessc'], description='Executable path or name')
    args: tuple[str, ...] = Field(default=(), examples=[('-', '--include-path=assets/css')])

    @property
    def command_line(self) -> str:
        return ' '.join([self.cmd, *self.args])


@dataclass
class WorkerGroup:
    """A batch of same-type source files paired with their processor."""

    asset_type: AssetType
    processor: Processor
    files: list[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.files)


class CompileResult(BaseModel):
    """Outcome of compiling one source file. No error means success.

    Attributes:
        filepath: Source file path as discovered
        cmd: Compiler command used
        asset_type: Asset type name (coffee, less)
        output_path: Where the output went (or would have gone)
        error: Error message of the first failure, None on success
        error_type: Exception class name of the first failure
        duration: Seconds spent on this file
    """

    model_config = ConfigDict(frozen=True)

    filepath: str = Field(..., examples=['assets/css/main.less'])
    cmd: str = Field(..., examples=['lessc'])
    asset_type: str = Field(..., examples=['less'])
    output_path: str | None = Field(None, examples=['public/css/main.css'])
    error: str | None = Field(None, examples=['ParseError: Unrecognised input in main.less on line 3'])
    error_type: str | None = Field(None, examples=['ProcessorDiagnosticsError'])
    duration: float = Field(0.0, examples=[0.231])

    @property
    def ok(self) -> bool:
        return self.error is None


class WalkError(BaseModel):
    """A directory that could not be traversed during discovery."""

    path: str | None = Field(None, examples=['assets/private'])
    error: str = Field(..., examples=["[Errno 13] Permission denied: 'assets/private'"])


class RefreshReport(BaseModel):
    """Aggregate outcome of one pipeline refresh

    Attributes:
        asset_root: Directory that was scanned
        results: One CompileResult per discovered file, in completion order
        walk_errors: Traversal failures recorded during discovery
        total_time: Wall time of the refresh in seconds
    """

    asset_root: str = Field(..., examples=['/srv/app/assets'])
    results: list[CompileResult] = Field(default_factory=list)
    walk_errors: list[WalkError] = Field(default_factory=list)
    total_time: float = Field(0.0, examples=[1.42])

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> list[CompileResult]:
        return [r for r in self.results if r.ok]

    @property
    def failed(self) -> list[CompileResult]:
        return [r for r in self.results if not r.ok]

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_response(self) -> 'RefreshResponse':
        return RefreshResponse(
            asset_root=self.asset_root,
            total=self.total,
            succeeded=len(self.succeeded),
            failed=len(self.failed),
            results=self.results,
            walk_errors=self.walk_errors,
            total_time=self.total_time,
        )

    def to_cli(self, colorize: bool = False) -> str:
        """Format report for CLI output"""
        red = '\033[91m' if colorize else ''
        green = '\033[92m' if colorize else ''
        yellow = '\033[93m' if colorize else ''
        reset = '\033[0m' if colorize else ''

        lines = [
            f'Compiled {len(self.succeeded)}/{self.total} files from {self.asset_root} in {self.total_time:.2f}s'
        ]
        for result in sorted(self.results, key=lambda r: r.filepath):
            if result.ok:
                lines.append(f'  {green}ok{reset}    {result.filepath} -> {result.output_path}')
            else:
                lines.append(f'  {red}error{reset} {result.filepath} ({result.cmd}): {result.error}')
        for walk_error in self.walk_errors:
            lines.append(f'  {yellow}walk{reset}  {walk_error.path}: {walk_error.error}')
        return '\n'.join(lines)


class RefreshResponse(BaseModel):
    """Response from the refresh endpoint and `assetpipe refresh --json`"""

    asset_root: str = Field(..., examples=['/srv/app/assets'])
    total: int = Field(..., examples=[3])
    succeeded: int = Field(..., examples=[2])
    failed: int = Field(..., examples=[1])
    results: list[CompileResult] = Field(default=[])
    walk_errors: list[WalkError] = Field(default=[])
    total_time: float = Field(..., examples=[1.42])


class CompilerStatus(BaseModel):
    """Availability of one configured compiler"""

    asset_type: str = Field(..., examples=['less'])
    cmd: str = Field(..., examples=['lessc'])
    args: list[str] = Field(default=[], examples=[['-', '--include-path=assets/css']])
    available: bool = Field(..., examples=[True])
    resolved_path: str | None = Field(None, examples=['/usr/local/bin/lessc'])


class HealthResponse(BaseModel):
    """Health check response with system introspection data"""

    status: str = Field(..., examples=['ok'])
    app_version: str = Field(..., examples=['0.3.0'], description='Application version')
    python_version: str = Field(..., examples=['3.12.4'])
    asset_root: str = Field(..., examples=['/srv/app/assets'])
    compilers: list[CompilerStatus] = Field(default=[])
    last_refresh: RefreshResponse | None = Field(None, description='Outcome of the most recent refresh')
    system_resources: dict[str, float | int | None] = Field(
        default_factory=dict,
        examples=[{'cpu_cores': 8, 'ram_total_gb': 16.0, 'ram_available_gb': 8.5}],
    )
    environment: dict[str, str] = Field(default_factory=dict, examples=[{'ASSETPIPE_LOG_LEVEL': 'INFO'}])
