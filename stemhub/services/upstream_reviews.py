"""Upstream review persistence and consensus — single point of DB access for ballots.

This module is the ONLY place that touches the ``stemhub_upstream_reviews``
table and the ONLY writer of ``stemhub_upstreams.status``.
Route handlers delegate here; no business logic lives in routes.

Boundary rules:
- Must NOT import FastAPI or HTTP types.
- May import ORM models from stemhub.db.review_models.
- May import Pydantic response models from stemhub.models.reviews.

Transaction contract
--------------------
``create_review_set`` and the query helpers flush only; the caller commits.

``submit_decision`` and ``evaluate_upstream`` are transaction boundaries: they
commit on success and roll the session back on any failure, so a decision is
either applied in full (ballot write, upstream status, promotion) or not at
all.  Call them on a session with no other pending work.

At-most-once promotion
----------------------
Two reviewers may cast the final votes at nearly the same instant.  Three
guards keep promotion single-shot, all enforced by the database rather than
in-process locks:

1. the upstream row is read ``FOR UPDATE`` (PostgreSQL serialises deciders;
   SQLite's single-writer lock has the same effect),
2. the ballot write is a compare-and-set on ``status = 'pending'``,
3. the upstream's terminal status is claimed with a compare-and-set on
   ``status = 'pending'``; only the transaction whose claim matched a row runs
   the promotion engine.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from stemhub.db import review_models as db
from stemhub.db.review_models import ReviewStatus
from stemhub.errors import (
    BallotAlreadyDecidedError,
    InvariantViolationError,
    PromotionFailedError,
    ReviewEngineError,
    ReviewSetExistsError,
    ReviewsNotFoundError,
    UpstreamNotFoundError,
)
from stemhub.models.reviews import (
    StageReviewsResponse,
    UpstreamResponse,
    UpstreamReviewResponse,
    UpstreamWithReviewsResponse,
)
from stemhub.services import promotion, stage_catalog
from stemhub.services.consensus import ConsensusTally, is_terminal, tally_decisions
from stemhub.services.promotion import PromotionSummary

logger = logging.getLogger(__name__)

DECISIONS: frozenset[str] = frozenset({ReviewStatus.APPROVED.value, ReviewStatus.REJECTED.value})


def _utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BallotGranted:
    """The acting user holds a ballot on the upstream.

    Attributes:
        review_id:         The user's ballot.
        stage_reviewer_id: The reviewer assignment the ballot is bound to.
    """

    review_id: str
    stage_reviewer_id: str


@dataclass(frozen=True)
class NoStanding:
    """The acting user may not vote on this upstream.

    Attributes:
        reason:  ``"not_a_reviewer"`` (no assignment on the stage) or
                 ``"no_ballot"`` (assigned, but no ballot on this upstream).
        message: Human-readable explanation for the caller.
    """

    stage_id: str
    upstream_id: str
    user_id: str
    reason: str
    message: str


@dataclass(frozen=True)
class DecisionAccepted:
    """Outcome of a recorded ballot decision.

    Attributes:
        aggregate: Upstream status after this decision was applied.
        tally:     Ballot counts the aggregate was computed from.
        finalized: True when this decision moved the upstream out of ``pending``.
        recorded:  False when the ballot already held this decision and nothing
                   was written (an idempotent re-send).
        promotion: Present only when this decision triggered promotion.
    """

    upstream_id: str
    review_id: str
    decision: str
    aggregate: str
    tally: ConsensusTally
    finalized: bool = False
    promotion: PromotionSummary | None = None
    recorded: bool = True


@dataclass(frozen=True)
class ConsensusOutcome:
    """Result of applying the consensus rules to an upstream.

    ``finalized`` is True only for the call that moved the upstream out of
    ``pending``.
    """

    upstream_id: str
    aggregate: str
    tally: ConsensusTally
    finalized: bool = False
    promotion: PromotionSummary | None = None


# ---------------------------------------------------------------------------
# Wire conversion
# ---------------------------------------------------------------------------


def to_upstream_response(row: db.StemhubUpstream) -> UpstreamResponse:
    return UpstreamResponse(
        upstream_id=row.upstream_id,
        stage_id=row.stage_id,
        user_id=row.user_id,
        title=row.title,
        description=row.description,
        status=row.status,
        guide_path=row.guide_path,
        created_at=row.created_at,
    )


def _to_review_response(
    row: db.StemhubUpstreamReview, reviewer_user_id: str
) -> UpstreamReviewResponse:
    return UpstreamReviewResponse(
        review_id=row.review_id,
        upstream_id=row.upstream_id,
        stage_reviewer_id=row.stage_reviewer_id,
        reviewer_user_id=reviewer_user_id,
        status=row.status,
        decided_at=row.decided_at,
        created_at=row.created_at,
    )


# ---------------------------------------------------------------------------
# Review fan-out
# ---------------------------------------------------------------------------


async def create_review_set(
    session: AsyncSession,
    *,
    stage_id: str,
    upstream_id: str,
) -> list[UpstreamReviewResponse]:
    """Create one ``pending`` ballot per reviewer currently assigned to the stage.

    An upstream is fanned out at most once.  The fan-out is recorded on the
    upstream itself (``reviews_fanned_out_at``), so an upstream whose stage
    had no reviewers at the time keeps its empty ballot set: reviewers
    assigned afterwards never gain a ballot on it.  Such an upstream stays
    ``pending`` (see ``stemhub.services.consensus``).

    The marker is claimed with a compare-and-set under the upstream row lock,
    so of two concurrent fan-outs exactly one proceeds.

    Raises:
        UpstreamNotFoundError: The upstream does not exist on ``stage_id``.
        ReviewSetExistsError:  The upstream was already fanned out.
    """
    upstream = await stage_catalog.get_upstream(session, upstream_id, for_update=True)
    if upstream.stage_id != stage_id:
        raise UpstreamNotFoundError(upstream_id)

    claimed = await session.execute(
        update(db.StemhubUpstream)
        .where(
            db.StemhubUpstream.upstream_id == upstream_id,
            db.StemhubUpstream.reviews_fanned_out_at.is_(None),
        )
        .values(reviews_fanned_out_at=_utc_now())
    )
    if claimed.rowcount != 1:
        raise ReviewSetExistsError(upstream_id)

    assignments = await stage_catalog.find_reviewer_assignments(session, stage_id)
    pairs: list[tuple[db.StemhubUpstreamReview, str]] = []
    for assignment in assignments:
        review = db.StemhubUpstreamReview(
            upstream_id=upstream_id,
            stage_reviewer_id=assignment.stage_reviewer_id,
            status=ReviewStatus.PENDING.value,
        )
        session.add(review)
        pairs.append((review, assignment.user_id))
    await session.flush()

    if not pairs:
        logger.warning(
            "⚠️ Stage %s has no reviewers; upstream %s will stay pending", stage_id, upstream_id
        )
    logger.info(
        "✅ Fanned out upstream %s to %d reviewer(s) on stage %s",
        upstream_id,
        len(pairs),
        stage_id,
    )
    return [_to_review_response(review, user_id) for review, user_id in pairs]


# ---------------------------------------------------------------------------
# Ballot authorization gate
# ---------------------------------------------------------------------------


async def resolve_ballot(
    session: AsyncSession,
    *,
    stage_id: str,
    upstream_id: str,
    user_id: str,
) -> BallotGranted | NoStanding:
    """Map (stage, acting user) to the user's own ballot on ``upstream_id``.

    Never raises for a caller without standing and never writes; the miss is
    returned as ``NoStanding`` so callers can tell "no standing" apart from a
    system error.
    """
    assignment = await stage_catalog.find_assignment(session, stage_id, user_id)
    if assignment is None:
        logger.info("User %s has no reviewer assignment on stage %s", user_id, stage_id)
        return NoStanding(
            stage_id=stage_id,
            upstream_id=upstream_id,
            user_id=user_id,
            reason="not_a_reviewer",
            message="You have no standing on this stage",
        )

    stmt = select(db.StemhubUpstreamReview.review_id).where(
        db.StemhubUpstreamReview.upstream_id == upstream_id,
        db.StemhubUpstreamReview.stage_reviewer_id == assignment.stage_reviewer_id,
    )
    review_id = (await session.execute(stmt)).scalar_one_or_none()
    if review_id is None:
        logger.info("Reviewer %s holds no ballot on upstream %s", user_id, upstream_id)
        return NoStanding(
            stage_id=stage_id,
            upstream_id=upstream_id,
            user_id=user_id,
            reason="no_ballot",
            message="You have no standing on this upstream",
        )
    return BallotGranted(review_id=review_id, stage_reviewer_id=assignment.stage_reviewer_id)


# ---------------------------------------------------------------------------
# Consensus evaluation
# ---------------------------------------------------------------------------


async def _load_tally(session: AsyncSession, upstream_id: str) -> ConsensusTally:
    stmt = select(db.StemhubUpstreamReview.status).where(
        db.StemhubUpstreamReview.upstream_id == upstream_id
    )
    return tally_decisions((await session.execute(stmt)).scalars().all())


async def _claim_terminal_status(
    session: AsyncSession, upstream_id: str, status: ReviewStatus
) -> bool:
    """Move the upstream from ``pending`` to ``status``.

    Returns False when no pending row matched: another transaction already
    finalized the upstream and this caller must not promote.
    """
    result = await session.execute(
        update(db.StemhubUpstream)
        .where(
            db.StemhubUpstream.upstream_id == upstream_id,
            db.StemhubUpstream.status == ReviewStatus.PENDING.value,
        )
        .values(status=status.value)
    )
    return result.rowcount == 1


async def _apply_consensus(session: AsyncSession, upstream_id: str) -> ConsensusOutcome:
    """Recompute the aggregate and, on a terminal verdict, claim and finalize."""
    tally = await _load_tally(session, upstream_id)
    aggregate = tally.aggregate
    if aggregate is ReviewStatus.PENDING:
        return ConsensusOutcome(upstream_id=upstream_id, aggregate=aggregate.value, tally=tally)

    if not await _claim_terminal_status(session, upstream_id, aggregate):
        logger.info("Upstream %s was finalized by a concurrent decision", upstream_id)
        return ConsensusOutcome(upstream_id=upstream_id, aggregate=aggregate.value, tally=tally)

    summary: PromotionSummary | None = None
    if aggregate is ReviewStatus.APPROVED:
        try:
            summary = await promotion.promote_upstream(session, upstream_id)
        except Exception as exc:
            logger.error("❌ Promotion of upstream %s failed: %s", upstream_id, exc)
            raise PromotionFailedError(upstream_id) from exc
    else:
        logger.info("Upstream %s rejected (%d of %d ballots rejected)", upstream_id, tally.rejected, tally.total)

    return ConsensusOutcome(
        upstream_id=upstream_id,
        aggregate=aggregate.value,
        tally=tally,
        finalized=True,
        promotion=summary,
    )


async def submit_decision(
    session: AsyncSession,
    *,
    stage_id: str,
    upstream_id: str,
    user_id: str,
    decision: str,
) -> DecisionAccepted | NoStanding:
    """Record a reviewer's decision and re-evaluate the upstream's consensus.

    Runs as one transaction: authorise, lock the upstream, write the ballot,
    recompute the aggregate and, if it just became ``approved``, promote.
    Commits on success; on any error rolls back every write of the attempt and
    re-raises.

    Returns ``NoStanding`` (without writing) when ``user_id`` has no ballot on
    the upstream.

    Ballots are immutable once cast.  Re-submitting the decision a ballot
    already holds is a harmless retry: nothing is written, no promotion runs,
    and the current aggregate is reported.

    Raises:
        ValueError:                ``decision`` is not approved/rejected.
        UpstreamNotFoundError:     The upstream does not exist.
        BallotAlreadyDecidedError: The user's ballot already holds the other decision.
        InvariantViolationError:   A pending ballot was found on a finalized upstream.
        PromotionFailedError:      Promotion failed and was rolled back.
    """
    if decision not in DECISIONS:
        raise ValueError(f"decision must be one of {sorted(DECISIONS)}, got {decision!r}")

    gate = await resolve_ballot(
        session, stage_id=stage_id, upstream_id=upstream_id, user_id=user_id
    )
    if isinstance(gate, NoStanding):
        return gate

    try:
        upstream = await stage_catalog.get_upstream(session, upstream_id, for_update=True)

        written = await session.execute(
            update(db.StemhubUpstreamReview)
            .where(
                db.StemhubUpstreamReview.review_id == gate.review_id,
                db.StemhubUpstreamReview.status == ReviewStatus.PENDING.value,
            )
            .values(status=decision, decided_at=_utc_now())
        )
        if written.rowcount != 1:
            current = (
                await session.execute(
                    select(db.StemhubUpstreamReview.status).where(
                        db.StemhubUpstreamReview.review_id == gate.review_id
                    )
                )
            ).scalar_one()
            if current != decision:
                raise BallotAlreadyDecidedError(gate.review_id, current)
            tally = await _load_tally(session, upstream_id)
            await session.rollback()
            logger.info("Reviewer %s re-sent %s on upstream %s; no change", user_id, decision, upstream_id)
            return DecisionAccepted(
                upstream_id=upstream_id,
                review_id=gate.review_id,
                decision=decision,
                aggregate=tally.aggregate.value,
                tally=tally,
                recorded=False,
            )

        if is_terminal(upstream.status):
            raise InvariantViolationError(upstream_id, upstream.status, ReviewStatus.PENDING.value)

        outcome = await _apply_consensus(session, upstream_id)
        await session.commit()
    except ReviewEngineError:
        await session.rollback()
        raise
    except Exception:
        await session.rollback()
        logger.exception("❌ Decision on upstream %s by %s failed", upstream_id, user_id)
        raise

    logger.info(
        "✅ Reviewer %s %s upstream %s; aggregate %s (%d/%d cast)",
        user_id,
        decision,
        upstream_id,
        outcome.aggregate,
        outcome.tally.total - outcome.tally.pending,
        outcome.tally.total,
    )
    return DecisionAccepted(
        upstream_id=upstream_id,
        review_id=gate.review_id,
        decision=decision,
        aggregate=outcome.aggregate,
        tally=outcome.tally,
        finalized=outcome.finalized,
        promotion=outcome.promotion,
    )


async def evaluate_upstream(session: AsyncSession, upstream_id: str) -> ConsensusOutcome:
    """Re-run the consensus rules for an upstream without casting a vote.

    On an upstream that is already terminal this is a no-op: it verifies the
    stored status against the ballots and never promotes a second time.  On a
    pending upstream whose ballots now agree, it finalizes (and promotes) exactly
    as the deciding vote would have.  Commits on success, rolls back on error.

    Raises:
        UpstreamNotFoundError:   The upstream does not exist.
        InvariantViolationError: The stored terminal status disagrees with the ballots.
        PromotionFailedError:    Promotion failed and was rolled back.
    """
    try:
        upstream = await stage_catalog.get_upstream(session, upstream_id, for_update=True)
        if is_terminal(upstream.status):
            tally = await _load_tally(session, upstream_id)
            if tally.aggregate.value != upstream.status:
                raise InvariantViolationError(upstream_id, upstream.status, tally.aggregate.value)
            await session.rollback()
            return ConsensusOutcome(upstream_id=upstream_id, aggregate=upstream.status, tally=tally)

        outcome = await _apply_consensus(session, upstream_id)
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    return outcome


async def assert_upstream_consistent(session: AsyncSession, upstream_id: str) -> ConsensusTally:
    """Check that the upstream's stored status equals the aggregate of its ballots.

    Raises:
        UpstreamNotFoundError:   The upstream does not exist.
        InvariantViolationError: Stored and derived status differ.
    """
    upstream = await stage_catalog.get_upstream(session, upstream_id)
    tally = await _load_tally(session, upstream_id)
    if tally.aggregate.value != upstream.status:
        raise InvariantViolationError(upstream_id, upstream.status, tally.aggregate.value)
    return tally


# ---------------------------------------------------------------------------
# Query surface
# ---------------------------------------------------------------------------


async def _reviews_with_reviewers(
    session: AsyncSession, upstream_ids: list[str]
) -> dict[str, list[UpstreamReviewResponse]]:
    stmt = (
        select(db.StemhubUpstreamReview, db.StemhubStageReviewer.user_id)
        .join(
            db.StemhubStageReviewer,
            db.StemhubStageReviewer.stage_reviewer_id == db.StemhubUpstreamReview.stage_reviewer_id,
        )
        .where(db.StemhubUpstreamReview.upstream_id.in_(upstream_ids))
        .order_by(db.StemhubUpstreamReview.created_at, db.StemhubUpstreamReview.review_id)
    )
    grouped: dict[str, list[UpstreamReviewResponse]] = {uid: [] for uid in upstream_ids}
    for review, reviewer_user_id in (await session.execute(stmt)).all():
        grouped[review.upstream_id].append(_to_review_response(review, reviewer_user_id))
    return grouped


async def get_ballots_for_upstream(
    session: AsyncSession, upstream_id: str
) -> UpstreamWithReviewsResponse:
    """Return an upstream with all of its ballots, in creation order.

    Raises ``ReviewsNotFoundError`` when there are no ballots, including when
    the upstream itself does not exist.
    """
    upstream = (
        await session.execute(
            select(db.StemhubUpstream).where(db.StemhubUpstream.upstream_id == upstream_id)
        )
    ).scalar_one_or_none()
    if upstream is None:
        raise ReviewsNotFoundError("upstream", upstream_id)

    reviews = (await _reviews_with_reviewers(session, [upstream_id]))[upstream_id]
    if not reviews:
        raise ReviewsNotFoundError("upstream", upstream_id)
    return UpstreamWithReviewsResponse(upstream=to_upstream_response(upstream), reviews=reviews)


async def list_reviews_for_stage(session: AsyncSession, stage_id: str) -> StageReviewsResponse:
    """Return every upstream on a stage that has ballots, newest upstream first.

    Raises ``ReviewsNotFoundError`` when the stage has no ballots at all.
    """
    stmt = (
        select(db.StemhubUpstream)
        .where(db.StemhubUpstream.stage_id == stage_id)
        .order_by(db.StemhubUpstream.created_at.desc(), db.StemhubUpstream.upstream_id)
    )
    upstreams = (await session.execute(stmt)).scalars().all()
    grouped = await _reviews_with_reviewers(session, [u.upstream_id for u in upstreams])

    items = [
        UpstreamWithReviewsResponse(
            upstream=to_upstream_response(u), reviews=grouped[u.upstream_id]
        )
        for u in upstreams
        if grouped[u.upstream_id]
    ]
    if not items:
        raise ReviewsNotFoundError("stage", stage_id)
    return StageReviewsResponse(stage_id=stage_id, upstreams=items)
