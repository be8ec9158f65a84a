# ABOUTME: Exposes the per-request session planning pipeline.
# ABOUTME: Groups the learner snapshot with the plan it produces.

from .planner import LearnerSnapshot, SessionPlan, plan_session

__all__ = ["LearnerSnapshot", "SessionPlan", "plan_session"]
