"""Matching engine public surface."""

from sessionpool.domain.matching.engine import calculate_group_sizes, run_matching
from sessionpool.domain.matching.models import Group, GroupType, MatchResult, Participant

__all__ = ["Group", "GroupType", "MatchResult", "Participant", "calculate_group_sizes", "run_matching"]
