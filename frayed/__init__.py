# frayed/__init__.py
"""
Lazy splitting of frayed iterators into per-group iterators.

A frayed iterator ends each group by raising StopIteration and is exhausted
after two StopIterations in a row.
"""
from typing import Any, Iterable

from .base import EXHAUSTED, Frayed, FrayedIter, FromGroups, frayed, from_groups
from .splitter import Defray, DefrayMap, Group, Groups
from .prefixed import Prefix
from .models import DefrayStats, FrayedSettings, get_settings, reset_settings
from .utils import (
    ContractViolationError,
    FrayedError,
    InvariantError,
    ReentrancyError,
    setup_logging,
)

__version__ = "0.1.0"


def defray(iterable: Iterable[Any], **kwargs) -> Defray:
    """Split a frayed iterator into one iterator per group."""
    return Defray(iterable, **kwargs)


def prefix(prefix: Iterable[Any], postfixes: Iterable[Any], prefix_empty: bool = False) -> Prefix:
    """Use `prefix` as the start of every group of the frayed `postfixes`."""
    return Prefix(prefix, postfixes, prefix_empty=prefix_empty)


# Define what gets imported with 'from frayed import *'
__all__ = [
    'defray',
    'prefix',
    'frayed',
    'from_groups',
    'EXHAUSTED',
    'Frayed',
    'FrayedIter',
    'FromGroups',
    'Defray',
    'DefrayMap',
    'Group',
    'Groups',
    'Prefix',
    'DefrayStats',
    'FrayedSettings',
    'get_settings',
    'reset_settings',
    'FrayedError',
    'ContractViolationError',
    'ReentrancyError',
    'InvariantError',
    'setup_logging',
    '__version__',
]
