"""
Role resolver.

Maps a free-text role requirement to a roster member through the static
ROLE_MAP. Unknown roles fall back to a uniformly random member; pass an
explicit random.Random to make that fallback reproducible.
"""

import random
import logging
from typing import Optional, Sequence, Mapping
from pulseboard.allocation.config import ROLE_MAP, load_team_roster
from pulseboard.allocation.models import TeamMember

logger = logging.getLogger(__name__)

_default_rng = random.Random()


class RosterConfigError(RuntimeError):
    """The roster or role map is inconsistent or empty."""


def normalize_role(role_required: Optional[str]) -> str:
    return (role_required or "").strip().lower()


def resolve_assignee(
    role_required: Optional[str],
    roster: Optional[Sequence[TeamMember]] = None,
    rng: Optional[random.Random] = None,
    role_map: Mapping[str, str] = ROLE_MAP
) -> TeamMember:
    """
    Resolve a role requirement to exactly one roster member.

    Args:
        role_required: Free-text role, may be empty or None
        roster: Team roster (defaults to the configured roster)
        rng: Random source for the fallback pick
        role_map: Normalized role -> member name

    Returns:
        The configured member for a known role, a random member otherwise.

    Raises:
        RosterConfigError: roster is empty, or the role map names someone
        who is not on the roster.
    """
    if roster is None:
        roster = load_team_roster()
    if not roster:
        raise RosterConfigError("Team roster is empty; cannot assign work items")

    normalized = normalize_role(role_required)
    member_name = role_map.get(normalized)

    if member_name:
        for member in roster:
            if member.name == member_name:
                return member
        raise RosterConfigError(
            f"Role '{normalized}' maps to '{member_name}', who is not on the roster"
        )

    member = (rng or _default_rng).choice(list(roster))
    logger.debug(f"No role mapping for '{normalized}', picked {member.name}")
    return member
