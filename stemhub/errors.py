"""Exception types for the StemHub review and promotion engine.

Hierarchy::

    ReviewEngineError
    ├── NotFoundError            → HTTP 404
    │   ├── UpstreamNotFoundError
    │   ├── StageNotFoundError
    │   ├── TrackNotFoundError
    │   ├── StemsNotFoundError
    │   ├── ReviewsNotFoundError
    │   └── VersionStemsNotFoundError
    ├── ConflictError            → HTTP 409
    │   ├── BallotAlreadyDecidedError
    │   ├── ReviewSetExistsError
    │   └── StageNotActiveError
    ├── InvariantViolationError  → HTTP 500
    └── PromotionFailedError     → HTTP 500 ("finalization failed")

A reviewer with no standing on a stage or upstream is not an error; the
ballot gate returns a ``NoStanding`` result instead.
"""
from __future__ import annotations


class ReviewEngineError(Exception):
    """Base exception for review engine errors."""


class NotFoundError(ReviewEngineError):
    """A required record does not exist."""


class UpstreamNotFoundError(NotFoundError):
    def __init__(self, upstream_id: str) -> None:
        super().__init__(f"Upstream {upstream_id} not found")
        self.upstream_id = upstream_id


class StageNotFoundError(NotFoundError):
    def __init__(self, stage_id: str) -> None:
        super().__init__(f"Stage {stage_id} not found")
        self.stage_id = stage_id


class TrackNotFoundError(NotFoundError):
    def __init__(self, track_id: str) -> None:
        super().__init__(f"Track {track_id} not found")
        self.track_id = track_id


class StemsNotFoundError(NotFoundError):
    """Raised when a promotion finds no stems to snapshot on the track."""

    def __init__(self, track_id: str) -> None:
        super().__init__(f"No stems to finalize on track {track_id}")
        self.track_id = track_id


class ReviewsNotFoundError(NotFoundError):
    """Raised by the query surface when a lookup yields no ballots.

    An unknown upstream and an upstream without ballots are indistinguishable
    here; callers that care must check existence separately.
    """

    def __init__(self, scope: str, scope_id: str) -> None:
        super().__init__(f"No upstream reviews found for {scope} {scope_id}")
        self.scope = scope
        self.scope_id = scope_id


class VersionStemsNotFoundError(NotFoundError):
    def __init__(self, message: str) -> None:
        super().__init__(message)


class ConflictError(ReviewEngineError):
    """The request is valid but conflicts with the current record state."""


class BallotAlreadyDecidedError(ConflictError):
    """Raised when a reviewer tries to change a ballot that is already terminal.

    Attributes:
        review_id: The ballot that was already decided.
        status:    The terminal decision it holds.
    """

    def __init__(self, review_id: str, status: str) -> None:
        super().__init__(f"Ballot {review_id} is already {status}")
        self.review_id = review_id
        self.status = status


class ReviewSetExistsError(ConflictError):
    """Raised when ballots were already fanned out for an upstream."""

    def __init__(self, upstream_id: str) -> None:
        super().__init__(f"Review set for upstream {upstream_id} already exists")
        self.upstream_id = upstream_id


class StageNotActiveError(ConflictError):
    def __init__(self, stage_id: str, status: str) -> None:
        super().__init__(f"Stage {stage_id} is {status}; upstreams can only target active stages")
        self.stage_id = stage_id
        self.status = status


class InvariantViolationError(ReviewEngineError):
    """An upstream's stored status disagrees with the aggregate of its ballots."""

    def __init__(self, upstream_id: str, stored: str, derived: str) -> None:
        super().__init__(
            f"Upstream {upstream_id} is stored as {stored!r} but its ballots aggregate to {derived!r}"
        )
        self.upstream_id = upstream_id
        self.stored = stored
        self.derived = derived


class PromotionFailedError(ReviewEngineError):
    """Raised after a failed promotion has been rolled back in full.

    The underlying failure is chained as ``__cause__``.
    """

    def __init__(self, upstream_id: str) -> None:
        super().__init__("finalization failed")
        self.upstream_id = upstream_id
