from sessionpool.domain.streaks.ledger import InMemoryProfileRepository, ProfileRepository, StreakLedger
from sessionpool.domain.streaks.models import CreditReport, Profile, StreakOutcome, StreakUpdate

__all__ = [
    "CreditReport",
    "InMemoryProfileRepository",
    "Profile",
    "ProfileRepository",
    "StreakLedger",
    "StreakOutcome",
    "StreakUpdate",
]
