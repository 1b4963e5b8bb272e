"""assetpipe - concurrent CoffeeScript/LESS asset compilation pipeline"""

from assetpipe.__version__ import __version__
from assetpipe.config import PipelineConfig, WalkErrorPolicy
from assetpipe.models import CompileResult, Processor, RefreshReport
from assetpipe.pipeline import DiscoveryError, Pipeline, RefreshError


__all__ = [
    '__version__',
    'CompileResult',
    'DiscoveryError',
    'Pipeline',
    'PipelineConfig',
    'Processor',
    'RefreshError',
    'RefreshReport',
    'WalkErrorPolicy',
]
