"""Subscription freeze engine.

A freeze pushes the end date of every matching subscription forward by the
length of the freeze. Cancelling it pulls back exactly the subscriptions
that were extended.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from academy.core.clock import utc_today, utcnow
from academy.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from academy.domains.branches.models import Branch
from academy.domains.notifications.fanout import FanoutReport, Recipient
from academy.domains.notifications.messages import freeze_message, preferred_language
from academy.domains.notifications.models import NotificationType
from academy.domains.notifications.service import NotificationService
from academy.domains.programs.models import Player, Program
from academy.domains.users.models import User, UserRole

from .models import (
    FreezeAdjustment,
    FreezeScope,
    FreezeStatus,
    Subscription,
    SubscriptionFreeze,
    SubscriptionStatus,
)
from .schemas import FreezeCreate, FreezeScopeInput, FreezeUpdate

logger = logging.getLogger(__name__)

FREEZE_TRANSITIONS: dict[FreezeStatus, set[FreezeStatus]] = {
    FreezeStatus.SCHEDULED: {FreezeStatus.ACTIVE, FreezeStatus.COMPLETED, FreezeStatus.CANCELLED},
    FreezeStatus.ACTIVE: {FreezeStatus.COMPLETED, FreezeStatus.CANCELLED},
    FreezeStatus.COMPLETED: set(),
    FreezeStatus.CANCELLED: set(),
}

# Subscriptions a freeze can extend
EXTENDABLE_STATUSES = (SubscriptionStatus.ACTIVE, SubscriptionStatus.PENDING)
OPEN_FREEZE_STATUSES = (FreezeStatus.SCHEDULED, FreezeStatus.ACTIVE)


@dataclass
class FreezeResult:
    freeze: SubscriptionFreeze
    notifications: FanoutReport = field(default_factory=FanoutReport)


def calc_freeze_days(start_date: date, end_date: date) -> int:
    """Length of a freeze, counting both ends."""
    return (end_date - start_date).days + 1


def compute_freeze_status(start_date: date, end_date: date, today: date) -> FreezeStatus:
    if start_date <= today <= end_date:
        return FreezeStatus.ACTIVE
    if end_date < today:
        return FreezeStatus.COMPLETED
    return FreezeStatus.SCHEDULED


def transition(freeze: SubscriptionFreeze, target: FreezeStatus) -> None:
    """Move a freeze to ``target`` if its lifecycle allows it."""
    if target not in FREEZE_TRANSITIONS[freeze.status]:
        raise ValidationError(
            f"Cannot change freeze status from {freeze.status.value} to {target.value}"
        )
    freeze.status = target


class FreezeService:
    """Service for subscription freezes."""

    def __init__(self, db: AsyncSession, notifier: NotificationService | None = None):
        self.db = db
        self.notifier = notifier or NotificationService(db)

    async def get_freeze(self, freeze_id: uuid.UUID) -> SubscriptionFreeze:
        freeze = await self.db.get(SubscriptionFreeze, freeze_id)
        if not freeze:
            raise NotFoundError("Subscription freeze not found")
        return freeze

    async def affected_subscriptions(self, freeze: SubscriptionFreeze) -> list[Subscription]:
        """Active or pending subscriptions in the freeze's scope still running at its start."""
        query = select(Subscription).where(
            Subscription.status.in_(EXTENDABLE_STATUSES),
            Subscription.end_date >= freeze.start_date,
        )
        if freeze.scope == FreezeScope.PROGRAM:
            query = query.where(Subscription.program_id == freeze.program_id)
        elif freeze.scope == FreezeScope.BRANCH:
            query = query.join(Program, Subscription.program_id == Program.id).where(
                Program.branch_id == freeze.branch_id
            )
        if freeze.player_id:
            query = query.where(Subscription.player_id == freeze.player_id)

        result = await self.db.execute(query.order_by(Subscription.end_date))
        return list(result.scalars().all())

    # ==================== Create ====================

    async def create_freeze(
        self,
        data: FreezeCreate,
        actor: User,
        today: date | None = None,
    ) -> FreezeResult:
        """Validate, persist and immediately apply a freeze, then tell parents.

        The extension runs whatever the initial status, so a freeze entered
        after the fact still credits the lost days.

        Raises:
            ValidationError: for missing fields, bad dates, scope mismatches
                or an overlapping freeze.
            NotFoundError: if the referenced branch, program or player is missing.
            ForbiddenError: if a branch admin has no branch.
        """
        scope = data.scope
        branch_id = data.branch_id
        program_id = data.program_id
        player_id = data.player_id

        if scope == FreezeScopeInput.PROGRAM_PLAYER:
            scope = FreezeScopeInput.PROGRAM

        if actor.role == UserRole.BRANCH_ADMIN:
            if not actor.branch_id:
                raise ForbiddenError("Branch admin is not assigned to a branch")
            scope = FreezeScopeInput.PROGRAM if scope == FreezeScopeInput.PROGRAM else FreezeScopeInput.BRANCH
            branch_id = actor.branch_id
            if scope != FreezeScopeInput.PROGRAM:
                program_id = None
                player_id = None

        if not data.title or not data.start_date or not data.end_date:
            raise ValidationError("Title, start date, and end date are required")
        if data.end_date < data.start_date:
            raise ValidationError("End date must be after start date")

        if scope == FreezeScopeInput.BRANCH and not branch_id:
            raise ValidationError("Branch is required for branch scope")
        if scope == FreezeScopeInput.PROGRAM and not program_id:
            raise ValidationError("Program is required for program scope")
        if player_id and scope != FreezeScopeInput.PROGRAM:
            raise ValidationError("Player targeting is only supported for program scope")

        if scope == FreezeScopeInput.BRANCH:
            if not await self.db.get(Branch, branch_id):
                raise NotFoundError("Branch not found")

        if scope == FreezeScopeInput.PROGRAM:
            program = await self.db.get(Program, program_id)
            if not program:
                raise NotFoundError("Program not found")
            if branch_id and program.branch_id != branch_id:
                raise ValidationError("Program does not belong to selected branch")
            branch_id = program.branch_id

        if player_id:
            player = await self.db.get(Player, player_id)
            if not player:
                raise NotFoundError("Player not found")
            if branch_id and player.branch_id != branch_id:
                raise ValidationError("Player does not belong to selected branch")
            if program_id and player.program_id != program_id:
                raise ValidationError("Player does not belong to selected program")

        stored_scope = FreezeScope(scope.value)
        if scope == FreezeScopeInput.GLOBAL:
            branch_id = program_id = player_id = None
        elif scope == FreezeScopeInput.BRANCH:
            program_id = player_id = None

        await self._check_overlap(
            stored_scope, branch_id, program_id, player_id, data.start_date, data.end_date
        )

        today = today or utc_today()
        freeze = SubscriptionFreeze(
            title=data.title,
            title_ar=data.title_ar or None,
            start_date=data.start_date,
            end_date=data.end_date,
            freeze_days=calc_freeze_days(data.start_date, data.end_date),
            scope=stored_scope,
            branch_id=branch_id,
            program_id=program_id,
            player_id=player_id,
            status=compute_freeze_status(data.start_date, data.end_date, today),
            created_by=actor.id,
            applied=False,
            subscriptions_affected=0,
        )
        self.db.add(freeze)
        await self.db.flush()

        extended = await self._extend_subscriptions(freeze)
        freeze.applied = True
        freeze.subscriptions_affected = len(extended)
        await self.db.commit()

        logger.info(
            "Freeze %s created: %d subscriptions extended by %d days",
            freeze.id,
            len(extended),
            freeze.freeze_days,
        )

        report = await self._notify_parents(freeze, extended, cancelled=False)
        await self.db.refresh(freeze)
        return FreezeResult(freeze=freeze, notifications=report)

    async def _check_overlap(
        self,
        scope: FreezeScope,
        branch_id: uuid.UUID | None,
        program_id: uuid.UUID | None,
        player_id: uuid.UUID | None,
        start_date: date,
        end_date: date,
    ) -> None:
        query = select(SubscriptionFreeze.id).where(
            SubscriptionFreeze.status.in_(OPEN_FREEZE_STATUSES),
            SubscriptionFreeze.scope == scope,
            SubscriptionFreeze.start_date <= end_date,
            SubscriptionFreeze.end_date >= start_date,
        )
        if scope == FreezeScope.BRANCH:
            query = query.where(SubscriptionFreeze.branch_id == branch_id)
        elif scope == FreezeScope.PROGRAM:
            query = query.where(SubscriptionFreeze.program_id == program_id)
            if player_id:
                query = query.where(SubscriptionFreeze.player_id == player_id)
            else:
                query = query.where(SubscriptionFreeze.player_id.is_(None))

        result = await self.db.execute(query.limit(1))
        if result.scalar_one_or_none() is not None:
            raise ValidationError("An overlapping freeze already exists for this scope")

    async def _extend_subscriptions(self, freeze: SubscriptionFreeze) -> list[Subscription]:
        subscriptions = await self.affected_subscriptions(freeze)
        line = (
            f"[Freeze] Extended {freeze.freeze_days} days - {freeze.title} "
            f"({freeze.start_date.isoformat()} to {freeze.end_date.isoformat()})"
        )
        for subscription in subscriptions:
            subscription.end_date = subscription.end_date + timedelta(days=freeze.freeze_days)
            subscription.notes = (subscription.notes or "") + "\n" + line
            self.db.add(
                FreezeAdjustment(
                    freeze_id=freeze.id,
                    subscription_id=subscription.id,
                    days=freeze.freeze_days,
                )
            )
        return subscriptions

    # ==================== Cancel ====================

    async def update_freeze(
        self,
        freeze_id: uuid.UUID,
        data: FreezeUpdate,
        actor: User,
        today: date | None = None,
    ) -> FreezeResult:
        if data.status != FreezeStatus.CANCELLED:
            raise ValidationError("Only cancellation is supported")
        return await self.cancel_freeze(freeze_id, actor, today=today)

    async def cancel_freeze(
        self,
        freeze_id: uuid.UUID,
        actor: User,
        today: date | None = None,
    ) -> FreezeResult:
        """Cancel a scheduled or active freeze and revert what it extended.

        A stored status the daily sweep has not advanced yet is first
        brought up to date for ``today``.

        Raises:
            NotFoundError: if the freeze is missing.
            ForbiddenError: if a branch admin targets another branch's freeze.
            ValidationError: if the freeze is already cancelled or completed.
        """
        freeze = await self.get_freeze(freeze_id)

        if actor.role == UserRole.BRANCH_ADMIN:
            if not actor.branch_id or freeze.branch_id != actor.branch_id:
                raise ForbiddenError("Not authorized to modify this freeze")

        if freeze.status == FreezeStatus.CANCELLED:
            raise ValidationError("Freeze is already cancelled")

        current = compute_freeze_status(freeze.start_date, freeze.end_date, today or utc_today())
        if freeze.status in OPEN_FREEZE_STATUSES and current == FreezeStatus.COMPLETED:
            transition(freeze, FreezeStatus.COMPLETED)
            await self.db.commit()
        if freeze.status == FreezeStatus.COMPLETED:
            raise ValidationError("Cannot cancel a completed freeze")

        reverted: list[Subscription] = []
        if freeze.applied:
            reverted = await self._revert_subscriptions(freeze)
            freeze.subscriptions_affected = len(reverted)
        transition(freeze, FreezeStatus.CANCELLED)
        await self.db.commit()

        logger.info("Freeze %s cancelled by %s: %d subscriptions reverted", freeze.id, actor.id, len(reverted))

        report = FanoutReport()
        if freeze.applied:
            report = await self._notify_parents(freeze, reverted, cancelled=True)
        await self.db.refresh(freeze)
        return FreezeResult(freeze=freeze, notifications=report)

    async def _revert_subscriptions(self, freeze: SubscriptionFreeze) -> list[Subscription]:
        """Pull back the subscriptions recorded when the freeze was applied."""
        result = await self.db.execute(
            select(FreezeAdjustment).where(
                FreezeAdjustment.freeze_id == freeze.id,
                FreezeAdjustment.reverted_at.is_(None),
            )
        )
        line = f"[Freeze Cancelled] Reverted {freeze.freeze_days} days - {freeze.title}"
        now = utcnow()

        reverted = []
        for adjustment in result.scalars().all():
            subscription = await self.db.get(Subscription, adjustment.subscription_id)
            if subscription is None:
                continue
            subscription.end_date = subscription.end_date - timedelta(days=adjustment.days)
            subscription.notes = (subscription.notes or "") + "\n" + line
            adjustment.reverted_at = now
            reverted.append(subscription)
        return reverted

    # ==================== Notifications ====================

    async def _notify_parents(
        self,
        freeze: SubscriptionFreeze,
        subscriptions: list[Subscription],
        cancelled: bool,
    ) -> FanoutReport:
        """One in-app notification per distinct parent of the affected players."""
        report = FanoutReport()
        player_ids = list(dict.fromkeys(s.player_id for s in subscriptions))
        if not player_ids:
            return report

        content = freeze_message(
            freeze.title,
            freeze.title_ar,
            freeze.start_date,
            freeze.end_date,
            freeze.freeze_days,
            cancelled=cancelled,
        )
        notification_type = (
            NotificationType.FREEZE_CANCELLED if cancelled else NotificationType.FREEZE_CREATED
        )
        data = {"freeze_id": str(freeze.id)}

        result = await self.db.execute(select(Player).where(Player.id.in_(player_ids)))
        recipients: dict[uuid.UUID, Recipient] = {}
        for player in result.scalars().all():
            parent = player.parent
            if parent and parent.id not in recipients:
                recipients[parent.id] = Recipient(
                    user_id=parent.id,
                    phone=parent.phone,
                    language=preferred_language(parent),
                )

        for recipient in recipients.values():
            await self.notifier.notify(report, recipient, notification_type, content, data)

        logger.info("Freeze %s notifications: %s", data["freeze_id"], report.summary())
        return report

    # ==================== Status sweep & queries ====================

    async def refresh_freeze_statuses(self, today: date | None = None) -> list[SubscriptionFreeze]:
        """Advance scheduled/active freezes to the status today implies.

        Safe to re-run: a freeze already in its current status is untouched.
        """
        today = today or utc_today()
        result = await self.db.execute(
            select(SubscriptionFreeze).where(SubscriptionFreeze.status.in_(OPEN_FREEZE_STATUSES))
        )
        changed = []
        for freeze in result.scalars().all():
            target = compute_freeze_status(freeze.start_date, freeze.end_date, today)
            if target != freeze.status:
                transition(freeze, target)
                changed.append(freeze)
        await self.db.commit()

        if changed:
            logger.info("Freeze status refresh: %d freezes updated", len(changed))
        return changed

    async def list_freezes(
        self,
        actor: User,
        status: FreezeStatus | None = None,
        scope: FreezeScope | None = None,
        branch_id: uuid.UUID | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[SubscriptionFreeze], int]:
        """Newest first. Branch admins only see their own branch."""
        conditions = []
        if status:
            conditions.append(SubscriptionFreeze.status == status)
        if scope:
            conditions.append(SubscriptionFreeze.scope == scope)
        if branch_id:
            conditions.append(SubscriptionFreeze.branch_id == branch_id)
        if actor.role == UserRole.BRANCH_ADMIN:
            if not actor.branch_id:
                raise ForbiddenError("Branch admin is not assigned to a branch")
            conditions.append(SubscriptionFreeze.branch_id == actor.branch_id)

        total = (
            await self.db.execute(select(func.count(SubscriptionFreeze.id)).where(*conditions))
        ).scalar() or 0

        result = await self.db.execute(
            select(SubscriptionFreeze)
            .where(*conditions)
            .order_by(SubscriptionFreeze.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def get_active_freezes(self, today: date | None = None) -> list[SubscriptionFreeze]:
        """Scheduled or active freezes that have not ended yet."""
        today = today or utc_today()
        result = await self.db.execute(
            select(SubscriptionFreeze)
            .where(
                SubscriptionFreeze.status.in_(OPEN_FREEZE_STATUSES),
                SubscriptionFreeze.end_date >= today,
            )
            .order_by(SubscriptionFreeze.start_date)
        )
        return list(result.scalars().all())
