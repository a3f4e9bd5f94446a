"""Integration tests for subscription freeze API endpoints."""
import uuid
from datetime import date

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from academy.domains.programs.models import Player, Program
from academy.domains.subscriptions.models import Subscription, SubscriptionStatus
from academy.domains.users.models import User

from tests.helpers import auth_headers

API = "/api/v1/subscription-freezes"


@pytest.fixture
async def subscription(db_session: AsyncSession, player: Player, program: Program) -> Subscription:
    subscription = Subscription(
        player_id=player.id,
        program_id=program.id,
        start_date=date(2030, 1, 1),
        end_date=date(2030, 6, 30),
        status=SubscriptionStatus.ACTIVE,
    )
    db_session.add(subscription)
    await db_session.commit()
    await db_session.refresh(subscription)
    return subscription


def freeze_payload(program: Program, **overrides) -> dict:
    payload = {
        "title": "Eid Holiday",
        "title_ar": "إجازة العيد",
        "start_date": "2030-03-10",
        "end_date": "2030-03-19",
        "scope": "program",
        "program_id": str(program.id),
    }
    payload.update(overrides)
    return payload


class TestFreezeEndpoints:
    """Tests for freeze create/list/cancel."""

    async def test_create_extends_subscriptions(
        self, client: AsyncClient, subscription: Subscription, program: Program, owner: User
    ):
        response = await client.post(API, json=freeze_payload(program), headers=auth_headers(owner))

        assert response.status_code == 201
        body = response.json()
        assert body["message"] == "Freeze created. 1 subscription(s) extended by 10 days."
        assert body["freeze"]["status"] == "scheduled"
        assert body["freeze"]["branch_id"] == str(program.branch_id)
        assert body["notifications_sent"] == 1

    async def test_missing_fields_are_rejected(
        self, client: AsyncClient, program: Program, owner: User
    ):
        response = await client.post(
            API, json=freeze_payload(program, title=None), headers=auth_headers(owner)
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Title, start date, and end date are required"

    async def test_overlap_is_rejected(
        self, client: AsyncClient, subscription: Subscription, program: Program, owner: User
    ):
        headers = auth_headers(owner)
        await client.post(API, json=freeze_payload(program), headers=headers)

        response = await client.post(
            API,
            json=freeze_payload(program, start_date="2030-03-15", end_date="2030-03-25"),
            headers=headers,
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "An overlapping freeze already exists for this scope"

    async def test_cancel_reverts(
        self, client: AsyncClient, subscription: Subscription, program: Program, owner: User
    ):
        headers = auth_headers(owner)
        created = await client.post(API, json=freeze_payload(program), headers=headers)
        freeze_id = created.json()["freeze"]["id"]

        response = await client.patch(f"{API}/{freeze_id}", json={"status": "cancelled"}, headers=headers)
        again = await client.patch(f"{API}/{freeze_id}", json={"status": "cancelled"}, headers=headers)

        assert response.status_code == 200
        assert response.json()["message"] == "Freeze cancelled. 1 subscription(s) reverted."
        assert response.json()["freeze"]["status"] == "cancelled"
        assert again.status_code == 400

    async def test_only_cancellation_is_supported(
        self, client: AsyncClient, program: Program, owner: User
    ):
        headers = auth_headers(owner)
        created = await client.post(API, json=freeze_payload(program), headers=headers)

        response = await client.patch(
            f"{API}/{created.json()['freeze']['id']}", json={"status": "active"}, headers=headers
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Only cancellation is supported"

    async def test_unknown_freeze_is_404(self, client: AsyncClient, owner: User):
        response = await client.patch(
            f"{API}/{uuid.uuid4()}", json={"status": "cancelled"}, headers=auth_headers(owner)
        )

        assert response.status_code == 404

    async def test_list_and_active(self, client: AsyncClient, program: Program, owner: User):
        headers = auth_headers(owner)
        created = await client.post(API, json=freeze_payload(program), headers=headers)
        freeze_id = created.json()["freeze"]["id"]

        listing = await client.get(API, params={"status": "scheduled"}, headers=headers)
        active = await client.get(f"{API}/active", headers=headers)

        assert listing.status_code == 200
        assert listing.json()["total"] == 1
        assert listing.json()["page"] == 1
        assert [f["id"] for f in listing.json()["items"]] == [freeze_id]
        assert [f["id"] for f in active.json()] == [freeze_id]

    async def test_refresh_statuses(self, client: AsyncClient, owner: User):
        response = await client.post(f"{API}/refresh-statuses", headers=auth_headers(owner))

        assert response.status_code == 200
        assert response.json() == {"updated": []}

    async def test_parents_cannot_manage_freezes(
        self, client: AsyncClient, program: Program, parent: User
    ):
        response = await client.post(API, json=freeze_payload(program), headers=auth_headers(parent))

        assert response.status_code == 403
