"""
Choose the authoritative worksheet snapshot among several copies.

Sources:
    primary  — legacy document from the project store (authoritative)
    derived  — reconstruction from the atomic tables
    local    — client-side cached copy

Rules:
    - Candidates are ranked by completeness score, ties broken
      primary > derived > local.
    - ``local`` is only considered when the primary store was unreachable or
      failed (not when it responded with nothing).
    - A present primary document always wins, whatever its score: derived and
      local copies are recovery fallbacks and must never replace a real save
      with a stale copy.
"""

import logging
from dataclasses import dataclass

from fmea_smart.services.snapshot_scoring import score

logger = logging.getLogger(__name__)

PRIMARY = "primary"
DERIVED = "derived"
LOCAL = "local"

SOURCE_PRIORITY = {PRIMARY: 0, DERIVED: 1, LOCAL: 2}


@dataclass(frozen=True)
class Candidate:
    label: str
    snapshot: dict | None
    score: int


@dataclass(frozen=True)
class PickResult:
    """Ordered candidates, the winner and the raw scores of all three sources."""
    candidates: list[Candidate]
    best: Candidate
    scores: dict[str, int]

    def to_dict(self) -> dict:
        return {
            "best": self.best.label,
            "candidates": [c.label for c in self.candidates],
            "scores": dict(self.scores),
        }


def pick(primary, derived, local, primary_responded: bool) -> PickResult:
    """
    Select the best snapshot.

    Args:
        primary: legacy document from the project store, or None.
        derived: atomic reconstruction in legacy shape, or None.
        local: cached copy, or None.
        primary_responded: True when the primary store answered, with a
            document or with nothing (404, ``null``). False when it was
            unreachable or failed (transport error, 5xx).

    Absent (None) candidates are left out of ``candidates`` even when their
    slot was eligible, so a present copy beats an absent one on a score tie:
    ``pick(None, None, {}, False)`` returns ``local``, not the empty primary.

    Returns:
        PickResult. When every eligible source is absent, ``best`` is the
        empty primary slot with score 0.
    """
    scores = {PRIMARY: score(primary), DERIVED: score(derived), LOCAL: score(local)}

    primary_slot = Candidate(PRIMARY, primary, scores[PRIMARY])
    pool = [primary_slot, Candidate(DERIVED, derived, scores[DERIVED])]
    if not primary_responded:
        pool.append(Candidate(LOCAL, local, scores[LOCAL]))

    ordered = sorted(pool, key=lambda c: (-c.score, SOURCE_PRIORITY[c.label]))

    if primary is not None:
        ordered = [primary_slot]
    else:
        ordered = [c for c in ordered if c.snapshot is not None] or [primary_slot]

    result = PickResult(candidates=ordered, best=ordered[0], scores=scores)
    logger.debug(
        "Snapshot pick: best=%s scores=%s primary_responded=%s",
        result.best.label, scores, primary_responded,
    )
    return result
