"""Consensus rules for multi-reviewer upstream votes.

Pure functions only, no DB access.  The transactional application of these
rules (ballot write, upstream claim, promotion) lives in
``stemhub.services.upstream_reviews``.

Decision table
--------------
=============  ==========  ===========  =========
all approved   any pending any rejected aggregate
=============  ==========  ===========  =========
yes            no          no           approved
no             no          yes          rejected
no             yes         either       pending
=============  ==========  ===========  =========

An early rejection does not end the vote: the upstream stays ``pending`` until
every ballot is cast.  An empty ballot set is ``pending``; there is no
vacuous approval when a stage has no reviewers.
"""
from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from stemhub.db.review_models import ReviewStatus

TERMINAL_STATUSES: frozenset[str] = frozenset(
    {ReviewStatus.APPROVED.value, ReviewStatus.REJECTED.value}
)


@dataclass(frozen=True)
class ConsensusTally:
    """Ballot counts for one upstream.

    Attributes:
        approved: Ballots holding ``approved``.
        rejected: Ballots holding ``rejected``.
        pending:  Ballots not yet cast.
    """

    approved: int = 0
    rejected: int = 0
    pending: int = 0

    @property
    def total(self) -> int:
        return self.approved + self.rejected + self.pending

    @property
    def aggregate(self) -> ReviewStatus:
        if self.total == 0 or self.pending > 0:
            return ReviewStatus.PENDING
        if self.rejected > 0:
            return ReviewStatus.REJECTED
        return ReviewStatus.APPROVED


def tally_decisions(decisions: Iterable[str]) -> ConsensusTally:
    """Count ballot decisions.  Raises ``ValueError`` on an unknown value."""
    approved = rejected = pending = 0
    for decision in decisions:
        value = ReviewStatus(decision)
        if value is ReviewStatus.APPROVED:
            approved += 1
        elif value is ReviewStatus.REJECTED:
            rejected += 1
        else:
            pending += 1
    return ConsensusTally(approved=approved, rejected=rejected, pending=pending)


def aggregate_decisions(decisions: Iterable[str]) -> ReviewStatus:
    """Return the group verdict for a set of ballot decisions."""
    return tally_decisions(decisions).aggregate


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES
