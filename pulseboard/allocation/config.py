"""
Configuration for the team roster and role mapping.

The roster can be replaced at runtime by pointing TEAM_ROSTER_JSON at a file
holding a list of {"name", "account_id", "role"} objects.
"""

import os
import json
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Tuple
from pulseboard.allocation.models import TeamMember

logger = logging.getLogger(__name__)


TEAM_CONFIG = [
    {
        "name": "Aryan",
        "account_id": "712020:f4133ad3-9b22-491e-8260-37d3ce9dcf04",  # Jira accountId
        "role": "AWS Solutions Architect",
    },
    {
        "name": "Ritwik",
        "account_id": "712020:88eb9ecb-d9f0-40ee-a5d0-9cbe35c6ac8f",
        "role": "AWS Backend Developer",
    },
    {
        "name": "Mohak",
        "account_id": "712020:27f806c7-3623-4153-bb5b-0f60bb121dec",
        "role": "AWS DevOps Engineer",
    },
    {
        "name": "Manu",
        "account_id": "712020:a0876b3e-cc7b-403e-8aac-a8929a1c080e",
        "role": "AWS Cloud Engineer",
    },
]

TEAM: Tuple[TeamMember, ...] = tuple(TeamMember(**member) for member in TEAM_CONFIG)

# Normalized role requirement -> roster name
ROLE_MAP = MappingProxyType({
    # Architecture
    "aws solutions architect": "Aryan",
    "aws architect": "Aryan",
    "solutions architect": "Aryan",
    "cloud architect": "Aryan",
    "aws": "Aryan",
    # Frontend
    "frontend": "Aryan",
    "frontend developer": "Aryan",
    "senior frontend developer": "Aryan",
    # Backend
    "aws backend developer": "Ritwik",
    "aws developer": "Ritwik",
    "backend": "Ritwik",
    "backend developer": "Ritwik",
    "backend engineer": "Ritwik",
    # DevOps
    "aws devops engineer": "Mohak",
    "devops engineer": "Mohak",
    "devops": "Mohak",
    "cloud devops": "Mohak",
    # Cloud / QA
    "aws cloud engineer": "Manu",
    "cloud engineer": "Manu",
    "infrastructure engineer": "Manu",
    "sre": "Manu",
    "qa": "Manu",
    "qa engineer": "Manu",
    "tester": "Manu",
})


def load_team_roster() -> Tuple[TeamMember, ...]:
    """Load the roster from TEAM_ROSTER_JSON if set, else the built-in TEAM."""
    path = os.getenv("TEAM_ROSTER_JSON")
    if not path:
        return TEAM

    roster_file = Path(path)
    members = json.loads(roster_file.read_text(encoding="utf-8"))
    roster = tuple(TeamMember(**member) for member in members)
    logger.info(f"Loaded {len(roster)} team members from {roster_file}")
    return roster
