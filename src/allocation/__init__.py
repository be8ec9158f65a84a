# ABOUTME: Exposes the multi-goal time allocator.
# ABOUTME: Groups share projection, Pareto filtering, and policy selection.

from .allocator import (
    AllocationConfig,
    AllocationPlan,
    AllocationPolicy,
    GoalAllocation,
    allocate_time,
    project_shares,
    record_session_progress,
    shared_object_benefit,
    transfer_matrix,
)

__all__ = [
    "AllocationConfig",
    "AllocationPlan",
    "AllocationPolicy",
    "GoalAllocation",
    "allocate_time",
    "project_shares",
    "record_session_progress",
    "shared_object_benefit",
    "transfer_matrix",
]
