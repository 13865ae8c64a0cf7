"""Partition waiting participants into small same-purpose groups.

Flow for one run:

1. bucket participants by session type, keeping first-seen bucket order
2. stable-sort each bucket by streak, highest first
3. split each bucket into groups of 2 or 3 (four people become 2+2, never 3+1)
4. a lone bucket member goes to the universal pool
5. the universal pool is sorted and split the same way
6. a lone universal-pool member is returned as the lobby user

Everything here is pure: no I/O, no clock, no randomness.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sessionpool.domain.matching.models import (
    UNIVERSAL_SESSION_TYPE,
    Group,
    GroupType,
    MatchResult,
    Participant,
)


def calculate_group_sizes(n: int) -> List[int]:
    """Return the group sizes used to split ``n`` people.

    >>> calculate_group_sizes(7)
    [3, 2, 2]
    """
    if n < 2:
        return []
    sizes: List[int] = []
    remaining = n
    while remaining > 4:
        sizes.append(3)
        remaining -= 3
    if remaining == 4:
        sizes.extend((2, 2))
    else:
        sizes.append(remaining)
    return sizes


def calculate_avg_streak(members: Sequence[Participant]) -> int:
    """Mean member streak rounded half-up to an integer."""
    if not members:
        return 0
    total = Decimal(sum(member.streak for member in members))
    mean = total / Decimal(len(members))
    return int(mean.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def sort_by_streak(participants: Iterable[Participant]) -> List[Participant]:
    # sorted() is stable, so equal streaks keep their input order
    return sorted(participants, key=lambda participant: participant.streak, reverse=True)


def group_by_session_type(participants: Iterable[Participant]) -> Dict[str, List[Participant]]:
    buckets: Dict[str, List[Participant]] = {}
    for participant in participants:
        buckets.setdefault(participant.session_type, []).append(participant)
    return buckets


def distribute_to_groups(
    sorted_users: Sequence[Participant],
    session_type: str,
    group_type: GroupType,
) -> Tuple[List[Group], Optional[Participant]]:
    """Slice an already-sorted list into groups; return ``(groups, leftover)``."""
    if len(sorted_users) == 1:
        return [], sorted_users[0]
    groups: List[Group] = []
    start = 0
    for size in calculate_group_sizes(len(sorted_users)):
        members = tuple(sorted_users[start : start + size])
        start += size
        groups.append(
            Group(
                members=members,
                type=group_type,
                session_type=session_type,
                avg_streak=calculate_avg_streak(members),
            )
        )
    return groups, None


def run_matching(participants: Sequence[Participant]) -> MatchResult:
    groups: List[Group] = []
    universal_pool: List[Participant] = []

    for session_type, bucket in group_by_session_type(participants).items():
        bucket_groups, leftover = distribute_to_groups(
            sort_by_streak(bucket), session_type, GroupType.MATCHED
        )
        groups.extend(bucket_groups)
        if leftover is not None:
            universal_pool.append(leftover)

    lobby_users: List[Participant] = []
    if universal_pool:
        pool_groups, leftover = distribute_to_groups(
            sort_by_streak(universal_pool), UNIVERSAL_SESSION_TYPE, GroupType.UNIVERSAL
        )
        groups.extend(pool_groups)
        if leftover is not None:
            lobby_users.append(leftover)

    return MatchResult(groups=tuple(groups), lobby_users=tuple(lobby_users))
