"""
Subcontainers: immediate subdirectories published as their own repositories
and referenced from the parent as gitlinks.
"""

from .naming import assign_repository_names, sanitize_repo_name
from .planner import (
    ReconciliationPlan, SubcontainerMapping, SubcontainerPlanner,
    enumerate_subdirectories, plan_subcontainers
)
from .reconciler import SubcontainerReconciler
from .state import read_mapping_table, write_mapping_table
from .submodules import enforce_subcontainer_gitlinks
from .tombstone import clear_subcontainer_repository

__all__ = [
    'assign_repository_names',
    'sanitize_repo_name',
    'ReconciliationPlan',
    'SubcontainerMapping',
    'SubcontainerPlanner',
    'enumerate_subdirectories',
    'plan_subcontainers',
    'SubcontainerReconciler',
    'read_mapping_table',
    'write_mapping_table',
    'enforce_subcontainer_gitlinks',
    'clear_subcontainer_repository',
]
