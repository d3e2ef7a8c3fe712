"""Tests for the StemHub review HTTP endpoints.

Covers:
- every /stemhub endpoint requires X-User-ID (401 without it)
- reviewer assignment and listing
- opening an upstream fans out ballots and emits upstream_created
- approve/reject act on the caller's own ballot; 403 NoStanding body otherwise
- re-sending a decision emits no second upstream_reviewed event
- 404 for unknown upstreams, 409 for changed decisions and inactive stages
- the final approval returns the promotion summary and emits upstream_finalized
"""
from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from httpx import AsyncClient

from stemhub.services.review_events import RecordingEventSink

if TYPE_CHECKING:
    from tests.conftest import SeededStage, StageSeeder

BASE = "/api/v1/stemhub"


def _as(user_id: str) -> dict[str, str]:
    return {"X-User-ID": user_id}


async def _open_upstream(
    client: AsyncClient, seeded: SeededStage, *, guide_path: str | None = None
) -> str:
    response = await client.post(
        f"{BASE}/stages/{seeded.stage_id}/upstreams",
        json={"title": "Brighter snare", "description": "EQ pass", "guidePath": guide_path},
        headers=_as("contributor"),
    )
    assert response.status_code == 201, response.text
    return str(response.json()["upstream"]["upstreamId"])


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


@pytest.mark.anyio
async def test_missing_user_header_is_401(client: AsyncClient, stage_seeder: StageSeeder) -> None:
    seeded = await stage_seeder()
    response = await client.get(f"{BASE}/stages/{seeded.stage_id}/reviewers")
    assert response.status_code == 401


@pytest.mark.anyio
async def test_oversized_user_header_is_400(client: AsyncClient, stage_seeder: StageSeeder) -> None:
    seeded = await stage_seeder()
    response = await client.get(
        f"{BASE}/stages/{seeded.stage_id}/reviewers", headers=_as("x" * 37)
    )
    assert response.status_code == 400


@pytest.mark.anyio
async def test_health_needs_no_identity(client: AsyncClient) -> None:
    response = await client.get("/api/v1/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


# ---------------------------------------------------------------------------
# Reviewers and upstreams
# ---------------------------------------------------------------------------


@pytest.mark.anyio
async def test_assign_and_list_reviewers(client: AsyncClient, stage_seeder: StageSeeder) -> None:
    seeded = await stage_seeder(reviewers=["alice"])

    response = await client.post(
        f"{BASE}/stages/{seeded.stage_id}/reviewers",
        json={"userId": "dana"},
        headers=_as("track-owner"),
    )
    assert response.status_code == 201
    assert response.json()["userId"] == "dana"

    listing = await client.get(f"{BASE}/stages/{seeded.stage_id}/reviewers", headers=_as("alice"))
    assert listing.status_code == 200
    assert sorted(r["userId"] for r in listing.json()["reviewers"]) == ["alice", "dana"]


@pytest.mark.anyio
async def test_assign_reviewer_unknown_stage_is_404(client: AsyncClient) -> None:
    response = await client.post(
        f"{BASE}/stages/nope/reviewers", json={"userId": "dana"}, headers=_as("track-owner")
    )
    assert response.status_code == 404


@pytest.mark.anyio
async def test_open_upstream_fans_out_and_emits(
    client: AsyncClient, stage_seeder: StageSeeder, event_sink: RecordingEventSink
) -> None:
    seeded = await stage_seeder(reviewers=["alice", "bob"])

    response = await client.post(
        f"{BASE}/stages/{seeded.stage_id}/upstreams",
        json={"title": "Brighter snare"},
        headers=_as("contributor"),
    )

    assert response.status_code == 201
    body = response.json()
    assert body["upstream"]["status"] == "pending"
    assert body["upstream"]["userId"] == "contributor"
    assert sorted(r["reviewerUserId"] for r in body["reviews"]) == ["alice", "bob"]
    created = event_sink.of_type("upstream_created")
    assert len(created) == 1
    assert created[0]["upstreamId"] == body["upstream"]["upstreamId"]


@pytest.mark.anyio
async def test_open_upstream_on_approved_stage_is_409(
    client: AsyncClient, stage_seeder: StageSeeder
) -> None:
    seeded = await stage_seeder(status="approve")
    response = await client.post(
        f"{BASE}/stages/{seeded.stage_id}/upstreams",
        json={"title": "Late"},
        headers=_as("contributor"),
    )
    assert response.status_code == 409


@pytest.mark.anyio
async def test_create_review_set_twice_is_409(client: AsyncClient, stage_seeder: StageSeeder) -> None:
    seeded = await stage_seeder()
    upstream_id = await _open_upstream(client, seeded)

    response = await client.post(
        f"{BASE}/upstream-reviews",
        json={"upstreamId": upstream_id, "stageId": seeded.stage_id},
        headers=_as("track-owner"),
    )
    assert response.status_code == 409


@pytest.mark.anyio
async def test_empty_review_set_is_not_refanned_after_assignment(
    client: AsyncClient, stage_seeder: StageSeeder
) -> None:
    seeded = await stage_seeder(reviewers=[])
    upstream_id = await _open_upstream(client, seeded)

    assigned = await client.post(
        f"{BASE}/stages/{seeded.stage_id}/reviewers",
        json={"userId": "late"},
        headers=_as("track-owner"),
    )
    assert assigned.status_code == 201

    response = await client.post(
        f"{BASE}/upstream-reviews",
        json={"upstreamId": upstream_id, "stageId": seeded.stage_id},
        headers=_as("track-owner"),
    )
    assert response.status_code == 409

    vote = await client.put(
        f"{BASE}/upstream-reviews/{seeded.stage_id}/{upstream_id}/approve", headers=_as("late")
    )
    assert vote.status_code == 403
    assert vote.json()["reason"] == "no_ballot"


# ---------------------------------------------------------------------------
# Decisions
# ---------------------------------------------------------------------------


@pytest.mark.anyio
async def test_non_reviewer_gets_403_no_standing(
    client: AsyncClient, stage_seeder: StageSeeder
) -> None:
    seeded = await stage_seeder(reviewers=["alice"])
    upstream_id = await _open_upstream(client, seeded)

    response = await client.put(
        f"{BASE}/upstream-reviews/{seeded.stage_id}/{upstream_id}/approve",
        headers=_as("mallory"),
    )

    assert response.status_code == 403
    assert response.json() == {
        "success": False,
        "message": "You have no standing on this stage",
        "reason": "not_a_reviewer",
    }
    ballots = await client.get(f"{BASE}/upstream-reviews/{upstream_id}", headers=_as("alice"))
    assert [r["status"] for r in ballots.json()["reviews"]] == ["pending"]


@pytest.mark.anyio
async def test_approval_flow_promotes_and_emits(
    client: AsyncClient, stage_seeder: StageSeeder, event_sink: RecordingEventSink
) -> None:
    seeded = await stage_seeder(reviewers=["alice", "bob"], stems=2, version=3)
    upstream_id = await _open_upstream(client, seeded, guide_path="guides/v3.wav")

    first = await client.put(
        f"{BASE}/upstream-reviews/{seeded.stage_id}/{upstream_id}/approve", headers=_as("alice")
    )
    assert first.status_code == 200
    assert first.json()["aggregate"] == "pending"
    assert first.json()["promotion"] is None

    second = await client.put(
        f"{BASE}/upstream-reviews/{seeded.stage_id}/{upstream_id}/approve", headers=_as("bob")
    )
    assert second.status_code == 200
    body = second.json()
    assert body["success"] is True
    assert body["aggregate"] == "approved"
    assert body["promotion"] == {
        "upstreamId": upstream_id,
        "stageId": seeded.stage_id,
        "version": 3,
        "versionStemCount": 2,
    }

    assert len(event_sink.of_type("upstream_reviewed")) == 2
    finalized = event_sink.of_type("upstream_finalized")
    assert len(finalized) == 1
    assert finalized[0]["status"] == "approved"

    history = await client.get(
        f"{BASE}/stages/{seeded.stage_id}/version-stems", headers=_as("alice")
    )
    assert history.status_code == 200
    assert len(history.json()["versionStems"]) == 2


@pytest.mark.anyio
async def test_reject_then_change_is_409(client: AsyncClient, stage_seeder: StageSeeder) -> None:
    seeded = await stage_seeder(reviewers=["alice", "bob"])
    upstream_id = await _open_upstream(client, seeded)

    rejected = await client.put(
        f"{BASE}/upstream-reviews/{seeded.stage_id}/{upstream_id}/reject", headers=_as("alice")
    )
    assert rejected.status_code == 200
    assert rejected.json()["aggregate"] == "pending"

    changed = await client.put(
        f"{BASE}/upstream-reviews/{seeded.stage_id}/{upstream_id}/approve", headers=_as("alice")
    )
    assert changed.status_code == 409


@pytest.mark.anyio
async def test_resent_decision_emits_one_reviewed_event(
    client: AsyncClient, stage_seeder: StageSeeder, event_sink: RecordingEventSink
) -> None:
    seeded = await stage_seeder(reviewers=["alice", "bob"])
    upstream_id = await _open_upstream(client, seeded)
    url = f"{BASE}/upstream-reviews/{seeded.stage_id}/{upstream_id}/approve"

    first = await client.put(url, headers=_as("alice"))
    again = await client.put(url, headers=_as("alice"))

    assert first.status_code == 200
    assert again.status_code == 200
    assert again.json()["aggregate"] == "pending"
    assert len(event_sink.of_type("upstream_reviewed")) == 1


@pytest.mark.anyio
async def test_rejection_finalizes_without_history(
    client: AsyncClient, stage_seeder: StageSeeder, event_sink: RecordingEventSink
) -> None:
    seeded = await stage_seeder(reviewers=["alice"])
    upstream_id = await _open_upstream(client, seeded)

    response = await client.put(
        f"{BASE}/upstream-reviews/{seeded.stage_id}/{upstream_id}/reject", headers=_as("alice")
    )

    assert response.status_code == 200
    assert response.json()["aggregate"] == "rejected"
    assert event_sink.of_type("upstream_finalized")[0]["status"] == "rejected"
    history = await client.get(
        f"{BASE}/stages/{seeded.stage_id}/version-stems", headers=_as("alice")
    )
    assert history.status_code == 404


@pytest.mark.anyio
async def test_failed_promotion_is_500_finalization_failed(
    client: AsyncClient, stage_seeder: StageSeeder, event_sink: RecordingEventSink
) -> None:
    seeded = await stage_seeder(reviewers=["alice"], stems=0)
    upstream_id = await _open_upstream(client, seeded)

    response = await client.put(
        f"{BASE}/upstream-reviews/{seeded.stage_id}/{upstream_id}/approve", headers=_as("alice")
    )

    assert response.status_code == 500
    assert response.json()["detail"] == "finalization failed"
    assert event_sink.of_type("upstream_reviewed") == []
    ballots = await client.get(f"{BASE}/upstream-reviews/{upstream_id}", headers=_as("alice"))
    assert ballots.json()["upstream"]["status"] == "pending"


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


@pytest.mark.anyio
async def test_unknown_upstream_reviews_is_404(client: AsyncClient) -> None:
    response = await client.get(f"{BASE}/upstream-reviews/missing", headers=_as("alice"))
    assert response.status_code == 404


@pytest.mark.anyio
async def test_stage_upstream_reviews(client: AsyncClient, stage_seeder: StageSeeder) -> None:
    seeded = await stage_seeder(reviewers=["alice"])
    upstream_id = await _open_upstream(client, seeded)

    response = await client.get(
        f"{BASE}/stages/{seeded.stage_id}/upstream-reviews", headers=_as("alice")
    )

    assert response.status_code == 200
    body = response.json()
    assert body["stageId"] == seeded.stage_id
    assert [u["upstream"]["upstreamId"] for u in body["upstreams"]] == [upstream_id]
