"""
snapflow package
"""
__all__ = [
    "AcceleratedCodec",
    "ReferenceCodec",
    "RunConfig",
    "make_config",
    "FlowOrchestrator",
    "Validator",
    "artifact_paths",
    "__version__",
]

__version__ = "0.1.0"

from .core import AcceleratedCodec, ReferenceCodec, RunConfig, make_config
from .naming import artifact_paths
from .validate import Validator
from .flows import FlowOrchestrator
