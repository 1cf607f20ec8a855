"""Typing helpers, ctxbuilder targets Python 3.12+ so `typing` has them all."""
from typing import override

__all__ = ['override']
