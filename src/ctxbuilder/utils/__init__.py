"""
Context Builder Utils Module

- logger: Logging setup and configuration
- typing_compat: Type compatibility utilities
- merge: Deep merging of configuration dictionaries

Usage:
    from ctxbuilder.utils import setup_logger, override
"""

from .logger import setup_logger, parse_module_levels
from .typing_compat import override
from .merge import deep_merge

__all__ = [
    'setup_logger',
    'parse_module_levels',
    'override',
    'deep_merge',
]
