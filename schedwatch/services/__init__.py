"""
Service layer for schedwatch.
Contains the tree model, reconciliation, subscriptions, persistence and notification logic.
"""

from .tree import Node, Folder, File, Range, User, build_index, hash_path
from .differ import ChangeReport, reconcile
from .subscriptions import SubscriptionRegistry
from .range_differ import RangeUpdate, compare_workbooks
from .checker import AppState, Tracker

__all__ = [
    'Node',
    'Folder',
    'File',
    'Range',
    'User',
    'build_index',
    'hash_path',
    'ChangeReport',
    'reconcile',
    'SubscriptionRegistry',
    'RangeUpdate',
    'compare_workbooks',
    'AppState',
    'Tracker'
]
