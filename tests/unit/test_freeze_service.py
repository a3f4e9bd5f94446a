"""Tests for FreezeService - applying, reverting and tracking subscription freezes."""

import uuid
from datetime import date, timedelta

import pytest
from sqlalchemy import select

from academy.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from academy.domains.notifications.models import Notification, NotificationType
from academy.domains.programs.models import Player, Program
from academy.domains.subscriptions.models import (
    FreezeAdjustment,
    FreezeScope,
    FreezeStatus,
    Subscription,
    SubscriptionStatus,
)
from academy.domains.subscriptions.schemas import FreezeCreate, FreezeScopeInput
from academy.domains.subscriptions.service import (
    FreezeService,
    calc_freeze_days,
    compute_freeze_status,
    transition,
)
from academy.domains.users.models import UserRole

from tests.helpers import make_user

TODAY = date(2030, 3, 1)
FREEZE_START = date(2030, 3, 10)
FREEZE_END = date(2030, 3, 19)
SUB_END = date(2030, 6, 30)


def freeze_request(**overrides) -> FreezeCreate:
    fields = {
        "title": "Eid Holiday",
        "title_ar": "إجازة العيد",
        "start_date": FREEZE_START,
        "end_date": FREEZE_END,
        "scope": FreezeScopeInput.PROGRAM,
    }
    fields.update(overrides)
    return FreezeCreate(**fields)


async def subscribe(
    db,
    player: Player,
    program: Program,
    end_date: date = SUB_END,
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
) -> Subscription:
    subscription = Subscription(
        player_id=player.id,
        program_id=program.id,
        start_date=date(2030, 1, 1),
        end_date=end_date,
        status=status,
    )
    db.add(subscription)
    await db.commit()
    await db.refresh(subscription)
    return subscription


@pytest.fixture
async def other_program(db_session, other_branch) -> Program:
    program = Program(branch_id=other_branch.id, name="Swimming", capacity=10)
    db_session.add(program)
    await db_session.commit()
    await db_session.refresh(program)
    return program


@pytest.fixture
async def sibling(db_session, program, parent) -> Player:
    player = Player(
        first_name="Layla",
        last_name="Ahmed",
        parent_id=parent.id,
        branch_id=program.branch_id,
        program_id=program.id,
    )
    db_session.add(player)
    await db_session.commit()
    await db_session.refresh(player)
    return player


class TestFreezeHelpers:
    def test_freeze_days_count_both_ends(self):
        assert calc_freeze_days(FREEZE_START, FREEZE_END) == 10
        assert calc_freeze_days(FREEZE_START, FREEZE_START) == 1

    @pytest.mark.parametrize(
        "today, expected",
        [
            (FREEZE_START - timedelta(days=1), FreezeStatus.SCHEDULED),
            (FREEZE_START, FreezeStatus.ACTIVE),
            (FREEZE_END, FreezeStatus.ACTIVE),
            (FREEZE_END + timedelta(days=1), FreezeStatus.COMPLETED),
        ],
    )
    def test_status_from_today(self, today, expected):
        assert compute_freeze_status(FREEZE_START, FREEZE_END, today) == expected

    def test_completed_is_final(self):
        from academy.domains.subscriptions.models import SubscriptionFreeze

        freeze = SubscriptionFreeze(status=FreezeStatus.COMPLETED)
        with pytest.raises(ValidationError, match="Cannot change freeze status"):
            transition(freeze, FreezeStatus.ACTIVE)


class TestCreateFreeze:
    """Tests for FreezeService.create_freeze."""

    async def test_program_freeze_extends_matching_subscriptions(
        self, db_session, program, player, owner
    ):
        subscription = await subscribe(db_session, player, program)

        result = await FreezeService(db_session).create_freeze(
            freeze_request(program_id=program.id), owner, today=TODAY
        )

        freeze = result.freeze
        assert freeze.freeze_days == 10
        assert freeze.scope == FreezeScope.PROGRAM
        assert freeze.branch_id == program.branch_id
        assert freeze.status == FreezeStatus.SCHEDULED
        assert freeze.applied is True
        assert freeze.subscriptions_affected == 1

        await db_session.refresh(subscription)
        assert subscription.end_date == SUB_END + timedelta(days=10)
        assert "[Freeze] Extended 10 days - Eid Holiday (2030-03-10 to 2030-03-19)" in (
            subscription.notes
        )
        adjustments = (await db_session.execute(select(FreezeAdjustment))).scalars().all()
        assert [(a.subscription_id, a.days) for a in adjustments] == [(subscription.id, 10)]

    async def test_ignores_ended_and_inactive_subscriptions(
        self, db_session, program, player, sibling, owner
    ):
        ended = await subscribe(db_session, player, program, end_date=FREEZE_START - timedelta(days=1))
        cancelled = await subscribe(db_session, sibling, program, status=SubscriptionStatus.CANCELLED)
        pending = await subscribe(db_session, sibling, program, status=SubscriptionStatus.PENDING)
        touching = await subscribe(db_session, player, program, end_date=FREEZE_START)

        result = await FreezeService(db_session).create_freeze(
            freeze_request(program_id=program.id), owner, today=TODAY
        )

        assert result.freeze.subscriptions_affected == 2
        for subscription in (ended, cancelled, pending, touching):
            await db_session.refresh(subscription)
        assert ended.end_date == FREEZE_START - timedelta(days=1)
        assert cancelled.end_date == SUB_END
        assert pending.end_date == SUB_END + timedelta(days=10)
        assert touching.end_date == FREEZE_START + timedelta(days=10)

    async def test_branch_freeze_only_reaches_that_branch(
        self, db_session, program, other_program, player, sibling, owner
    ):
        inside = await subscribe(db_session, player, program)
        outside = await subscribe(db_session, sibling, other_program)

        result = await FreezeService(db_session).create_freeze(
            freeze_request(scope=FreezeScopeInput.BRANCH, branch_id=program.branch_id),
            owner,
            today=TODAY,
        )

        assert result.freeze.subscriptions_affected == 1
        await db_session.refresh(inside)
        await db_session.refresh(outside)
        assert inside.end_date == SUB_END + timedelta(days=10)
        assert outside.end_date == SUB_END

    async def test_global_freeze_reaches_everyone(
        self, db_session, program, other_program, player, sibling, owner
    ):
        await subscribe(db_session, player, program)
        await subscribe(db_session, sibling, other_program)

        result = await FreezeService(db_session).create_freeze(
            freeze_request(scope=FreezeScopeInput.GLOBAL), owner, today=TODAY
        )

        assert result.freeze.scope == FreezeScope.GLOBAL
        assert result.freeze.branch_id is None
        assert result.freeze.subscriptions_affected == 2

    async def test_program_player_targets_one_player(
        self, db_session, program, player, sibling, owner
    ):
        target = await subscribe(db_session, player, program)
        untouched = await subscribe(db_session, sibling, program)

        result = await FreezeService(db_session).create_freeze(
            freeze_request(
                scope=FreezeScopeInput.PROGRAM_PLAYER,
                program_id=program.id,
                player_id=player.id,
            ),
            owner,
            today=TODAY,
        )

        assert result.freeze.scope == FreezeScope.PROGRAM
        assert result.freeze.player_id == player.id
        await db_session.refresh(target)
        await db_session.refresh(untouched)
        assert target.end_date == SUB_END + timedelta(days=10)
        assert untouched.end_date == SUB_END

    async def test_status_is_active_when_freeze_already_started(
        self, db_session, program, owner
    ):
        result = await FreezeService(db_session).create_freeze(
            freeze_request(program_id=program.id), owner, today=FREEZE_START + timedelta(days=2)
        )

        assert result.freeze.status == FreezeStatus.ACTIVE

    async def test_one_notification_per_parent(
        self, db_session, program, player, sibling, parent, owner
    ):
        await subscribe(db_session, player, program)
        await subscribe(db_session, sibling, program)

        result = await FreezeService(db_session).create_freeze(
            freeze_request(program_id=program.id), owner, today=TODAY
        )

        assert result.notifications.notifications_sent == 1
        notification = (
            await db_session.execute(select(Notification).where(Notification.user_id == parent.id))
        ).scalars().one()
        assert notification.notification_type == NotificationType.FREEZE_CREATED
        assert notification.data == {"freeze_id": str(result.freeze.id)}
        assert "extended by 10 days" in notification.message

    @pytest.mark.parametrize(
        "overrides, message",
        [
            ({"title": None}, "Title, start date, and end date are required"),
            ({"end_date": None}, "Title, start date, and end date are required"),
            ({"end_date": FREEZE_START - timedelta(days=1)}, "End date must be after start date"),
            ({"scope": FreezeScopeInput.BRANCH}, "Branch is required for branch scope"),
            ({"scope": FreezeScopeInput.PROGRAM}, "Program is required for program scope"),
            (
                {"scope": FreezeScopeInput.GLOBAL, "player_id": uuid.uuid4()},
                "Player targeting is only supported for program scope",
            ),
        ],
    )
    async def test_invalid_requests(self, db_session, owner, overrides, message):
        with pytest.raises(ValidationError, match=message):
            await FreezeService(db_session).create_freeze(
                freeze_request(**overrides), owner, today=TODAY
            )

    async def test_unknown_program_or_branch(self, db_session, owner):
        service = FreezeService(db_session)
        with pytest.raises(NotFoundError, match="Program not found"):
            await service.create_freeze(freeze_request(program_id=uuid.uuid4()), owner, today=TODAY)
        with pytest.raises(NotFoundError, match="Branch not found"):
            await service.create_freeze(
                freeze_request(scope=FreezeScopeInput.BRANCH, branch_id=uuid.uuid4()),
                owner,
                today=TODAY,
            )

    async def test_player_must_belong_to_program(
        self, db_session, program, other_program, owner, parent
    ):
        stranger = Player(
            first_name="Sami",
            last_name="Nasser",
            parent_id=parent.id,
            branch_id=program.branch_id,
            program_id=None,
        )
        db_session.add(stranger)
        await db_session.commit()

        with pytest.raises(ValidationError, match="Player does not belong to selected program"):
            await FreezeService(db_session).create_freeze(
                freeze_request(program_id=program.id, player_id=stranger.id), owner, today=TODAY
            )

    async def test_program_must_belong_to_branch(self, db_session, other_program, branch, owner):
        with pytest.raises(ValidationError, match="Program does not belong to selected branch"):
            await FreezeService(db_session).create_freeze(
                freeze_request(program_id=other_program.id, branch_id=branch.id),
                owner,
                today=TODAY,
            )

    async def test_overlapping_freeze_is_rejected(self, db_session, program, owner):
        service = FreezeService(db_session)
        await service.create_freeze(freeze_request(program_id=program.id), owner, today=TODAY)

        with pytest.raises(ValidationError, match="overlapping freeze"):
            await service.create_freeze(
                freeze_request(
                    program_id=program.id,
                    start_date=FREEZE_END,
                    end_date=FREEZE_END + timedelta(days=3),
                ),
                owner,
                today=TODAY,
            )

    async def test_adjacent_or_other_selector_is_allowed(
        self, db_session, program, other_program, owner
    ):
        service = FreezeService(db_session)
        await service.create_freeze(freeze_request(program_id=program.id), owner, today=TODAY)

        after = await service.create_freeze(
            freeze_request(
                program_id=program.id,
                start_date=FREEZE_END + timedelta(days=1),
                end_date=FREEZE_END + timedelta(days=5),
            ),
            owner,
            today=TODAY,
        )
        elsewhere = await service.create_freeze(
            freeze_request(program_id=other_program.id), owner, today=TODAY
        )

        assert after.freeze.id != elsewhere.freeze.id

    async def test_branch_admin_is_pinned_to_own_branch(
        self, db_session, program, player, branch_admin, branch
    ):
        await subscribe(db_session, player, program)

        result = await FreezeService(db_session).create_freeze(
            freeze_request(scope=FreezeScopeInput.GLOBAL), branch_admin, today=TODAY
        )

        assert result.freeze.scope == FreezeScope.BRANCH
        assert result.freeze.branch_id == branch.id
        assert result.freeze.subscriptions_affected == 1

    async def test_branch_admin_without_branch_is_forbidden(self, db_session):
        admin = await make_user(db_session, UserRole.BRANCH_ADMIN)

        with pytest.raises(ForbiddenError):
            await FreezeService(db_session).create_freeze(
                freeze_request(scope=FreezeScopeInput.BRANCH), admin, today=TODAY
            )


class TestCancelFreeze:
    """Tests for FreezeService.cancel_freeze."""

    async def test_cancel_reverts_extended_subscriptions(
        self, db_session, program, player, parent, owner
    ):
        subscription = await subscribe(db_session, player, program)
        service = FreezeService(db_session)
        created = await service.create_freeze(
            freeze_request(program_id=program.id), owner, today=TODAY
        )

        result = await service.cancel_freeze(created.freeze.id, owner)

        assert result.freeze.status == FreezeStatus.CANCELLED
        assert result.freeze.subscriptions_affected == 1
        await db_session.refresh(subscription)
        assert subscription.end_date == SUB_END
        assert subscription.notes.endswith("[Freeze Cancelled] Reverted 10 days - Eid Holiday")

        adjustment = (await db_session.execute(select(FreezeAdjustment))).scalars().one()
        assert adjustment.reverted_at is not None

        latest = (
            await db_session.execute(
                select(Notification)
                .where(Notification.user_id == parent.id)
                .order_by(Notification.created_at.desc())
            )
        ).scalars().first()
        assert latest.notification_type == NotificationType.FREEZE_CANCELLED

    async def test_only_snapshotted_subscriptions_are_reverted(
        self, db_session, program, player, sibling, owner
    ):
        service = FreezeService(db_session)
        created = await service.create_freeze(
            freeze_request(program_id=program.id), owner, today=TODAY
        )
        # Joined after the freeze was applied
        late = await subscribe(db_session, sibling, program)

        result = await service.cancel_freeze(created.freeze.id, owner)

        assert result.freeze.subscriptions_affected == 0
        await db_session.refresh(late)
        assert late.end_date == SUB_END

    async def test_cannot_cancel_twice(self, db_session, program, owner):
        service = FreezeService(db_session)
        created = await service.create_freeze(
            freeze_request(program_id=program.id), owner, today=TODAY
        )
        await service.cancel_freeze(created.freeze.id, owner)

        with pytest.raises(ValidationError, match="already cancelled"):
            await service.cancel_freeze(created.freeze.id, owner)

    async def test_cannot_cancel_completed(self, db_session, program, owner):
        service = FreezeService(db_session)
        created = await service.create_freeze(
            freeze_request(program_id=program.id), owner, today=FREEZE_END + timedelta(days=1)
        )

        with pytest.raises(ValidationError, match="completed"):
            await service.cancel_freeze(created.freeze.id, owner)

    async def test_ended_freeze_not_yet_swept_cannot_be_cancelled(
        self, db_session, program, player, owner
    ):
        subscription = await subscribe(db_session, player, program)
        service = FreezeService(db_session)
        created = await service.create_freeze(
            freeze_request(program_id=program.id), owner, today=TODAY
        )
        assert created.freeze.status == FreezeStatus.SCHEDULED

        with pytest.raises(ValidationError, match="completed"):
            await service.cancel_freeze(
                created.freeze.id, owner, today=FREEZE_END + timedelta(days=1)
            )

        await db_session.refresh(created.freeze)
        assert created.freeze.status == FreezeStatus.COMPLETED
        await db_session.refresh(subscription)
        assert subscription.end_date == SUB_END + timedelta(days=10)

    async def test_branch_admin_cannot_touch_other_branch(
        self, db_session, other_program, owner, branch_admin
    ):
        service = FreezeService(db_session)
        created = await service.create_freeze(
            freeze_request(program_id=other_program.id), owner, today=TODAY
        )

        with pytest.raises(ForbiddenError):
            await service.cancel_freeze(created.freeze.id, branch_admin)

    async def test_missing_freeze(self, db_session, owner):
        with pytest.raises(NotFoundError):
            await FreezeService(db_session).cancel_freeze(uuid.uuid4(), owner)


class TestFreezeStatusesAndQueries:
    async def test_refresh_moves_freezes_forward_once(self, db_session, program, owner):
        service = FreezeService(db_session)
        created = await service.create_freeze(
            freeze_request(program_id=program.id), owner, today=TODAY
        )

        started = await service.refresh_freeze_statuses(today=FREEZE_START)
        again = await service.refresh_freeze_statuses(today=FREEZE_START)
        finished = await service.refresh_freeze_statuses(today=FREEZE_END + timedelta(days=1))

        assert [f.id for f in started] == [created.freeze.id]
        assert again == []
        assert [f.status for f in finished] == [FreezeStatus.COMPLETED]

    async def test_cancelled_freezes_are_not_refreshed(self, db_session, program, owner):
        service = FreezeService(db_session)
        created = await service.create_freeze(
            freeze_request(program_id=program.id), owner, today=TODAY
        )
        await service.cancel_freeze(created.freeze.id, owner)

        changed = await service.refresh_freeze_statuses(today=FREEZE_START)

        assert changed == []

    async def test_active_freezes_exclude_ended_and_cancelled(
        self, db_session, program, other_program, owner
    ):
        service = FreezeService(db_session)
        kept = await service.create_freeze(
            freeze_request(program_id=program.id), owner, today=TODAY
        )
        dropped = await service.create_freeze(
            freeze_request(program_id=other_program.id), owner, today=TODAY
        )
        await service.cancel_freeze(dropped.freeze.id, owner)

        active = await service.get_active_freezes(today=TODAY)

        assert [f.id for f in active] == [kept.freeze.id]
        assert await service.get_active_freezes(today=FREEZE_END + timedelta(days=1)) == []

    async def test_list_is_paginated_and_scoped_for_branch_admins(
        self, db_session, program, other_program, owner, branch_admin
    ):
        service = FreezeService(db_session)
        await service.create_freeze(freeze_request(program_id=program.id), owner, today=TODAY)
        await service.create_freeze(freeze_request(program_id=other_program.id), owner, today=TODAY)

        items, total = await service.list_freezes(owner, page=1, limit=1)
        assert total == 2
        assert len(items) == 1

        items, total = await service.list_freezes(branch_admin)
        assert total == 1
        assert items[0].program_id == program.id
