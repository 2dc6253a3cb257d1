"""Statutory family-event and civil-duty leave entitlements."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from leave_engine.common.constants import LeaveCategory

# Entitlement is the actual length of the qualifying event, proven by document
ACTUAL_DURATION = "actual_duration"

LegalDays = Union[int, str]


@dataclass(frozen=True)
class LegalEntitlement:
    category: LeaveCategory
    sub_type: str
    days: LegalDays
    description: str
    requires_document: bool = True

    @property
    def is_actual_duration(self) -> bool:
        return self.days == ACTUAL_DURATION


_FAMILY = LeaveCategory.family_event
_CIVIL = LeaveCategory.civil_duty

LEGAL_ENTITLEMENTS: tuple[LegalEntitlement, ...] = (
    # Family events
    LegalEntitlement(_FAMILY, "own_wedding", 5, "Own wedding"),
    LegalEntitlement(_FAMILY, "child_wedding", 1, "Wedding of a child"),
    LegalEntitlement(_FAMILY, "spouse_childbirth", 10, "Spouse giving birth (paid)"),
    LegalEntitlement(_FAMILY, "parent_death", 5, "Death of a parent or parent-in-law"),
    LegalEntitlement(_FAMILY, "spouse_death", 5, "Death of a spouse"),
    LegalEntitlement(_FAMILY, "child_death", 5, "Death of a child"),
    LegalEntitlement(_FAMILY, "grandparent_death", 3, "Death of a grandparent"),
    LegalEntitlement(_FAMILY, "sibling_death", 3, "Death of a sibling"),
    # Civil duty
    LegalEntitlement(_CIVIL, "reserve_forces_training", ACTUAL_DURATION, "Reserve forces training"),
    LegalEntitlement(_CIVIL, "civil_defense_training", ACTUAL_DURATION, "Civil defense training"),
    LegalEntitlement(_CIVIL, "court_appearance", ACTUAL_DURATION, "Court appearance, e.g. as a witness"),
    LegalEntitlement(_CIVIL, "election_voting", 1, "Voting in a public election", requires_document=False),
    LegalEntitlement(_CIVIL, "health_checkup", 1, "Statutory health checkup"),
)

_INDEX: dict[tuple[LeaveCategory, str], LegalEntitlement] = {
    (e.category, e.sub_type): e for e in LEGAL_ENTITLEMENTS
}


def get_legal_entitlement(
    category: LeaveCategory, sub_type: Optional[str],
) -> Optional[LegalEntitlement]:
    """Look up a statutory entitlement.

    None means there is no statutory entitlement for the pair; the caller should
    fall back to a normal leave category, not treat it as zero days.
    """
    if sub_type is None:
        return None
    return _INDEX.get((category, sub_type))


def get_legal_days(category: LeaveCategory, sub_type: Optional[str]) -> Optional[LegalDays]:
    entitlement = get_legal_entitlement(category, sub_type)
    return entitlement.days if entitlement else None


def list_sub_types(category: LeaveCategory) -> list[str]:
    return [e.sub_type for e in LEGAL_ENTITLEMENTS if e.category == category]
