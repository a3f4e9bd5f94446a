"""Program waitlists: FIFO promotion when spots open, queue management and offer expiry."""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from academy.config.settings import settings
from academy.core.clock import utcnow
from academy.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from academy.domains.auth.dependencies import MANAGER_ROLES, ensure_branch_access
from academy.domains.notifications.fanout import FanoutReport, Recipient
from academy.domains.notifications.messages import preferred_language, waitlist_spot_message
from academy.domains.notifications.models import NotificationType
from academy.domains.notifications.service import NotificationService
from academy.domains.programs.models import Player, Program
from academy.domains.users.models import User

from .models import WaitlistEntry, WaitlistStatus

logger = logging.getLogger(__name__)

# Entries in these states hold a place in the queue
OPEN_STATUSES = (WaitlistStatus.WAITING, WaitlistStatus.NOTIFIED)

WAITLIST_TRANSITIONS: dict[WaitlistStatus, set[WaitlistStatus]] = {
    WaitlistStatus.WAITING: {
        WaitlistStatus.NOTIFIED,
        WaitlistStatus.ENROLLED,
        WaitlistStatus.EXPIRED,
        WaitlistStatus.CANCELLED,
    },
    WaitlistStatus.NOTIFIED: {
        WaitlistStatus.ENROLLED,
        WaitlistStatus.EXPIRED,
        WaitlistStatus.CANCELLED,
    },
    WaitlistStatus.ENROLLED: set(),
    WaitlistStatus.EXPIRED: set(),
    WaitlistStatus.CANCELLED: set(),
}


@dataclass
class PromotionResult:
    """Entries offered a spot by one promotion run, with delivery outcomes."""

    promoted: list[WaitlistEntry] = field(default_factory=list)
    notifications: FanoutReport = field(default_factory=FanoutReport)


@dataclass
class ExpiryResult:
    expired: list[WaitlistEntry] = field(default_factory=list)
    promotions: PromotionResult = field(default_factory=PromotionResult)


class WaitlistService:
    """Service for program waitlists."""

    def __init__(self, db: AsyncSession, notifier: NotificationService | None = None):
        self.db = db
        self.notifier = notifier or NotificationService(db)

    async def get_entry(self, entry_id: uuid.UUID) -> WaitlistEntry:
        entry = await self.db.get(WaitlistEntry, entry_id)
        if not entry:
            raise NotFoundError("Waitlist entry not found")
        return entry

    async def list_entries(
        self,
        program_id: uuid.UUID,
        status: WaitlistStatus | None = None,
    ) -> list[WaitlistEntry]:
        query = select(WaitlistEntry).where(WaitlistEntry.program_id == program_id)
        if status:
            query = query.where(WaitlistEntry.status == status)
        result = await self.db.execute(query.order_by(WaitlistEntry.position))
        return list(result.scalars().all())

    async def _outstanding_offers(self, program_id: uuid.UUID) -> int:
        result = await self.db.execute(
            select(func.count(WaitlistEntry.id)).where(
                WaitlistEntry.program_id == program_id,
                WaitlistEntry.status == WaitlistStatus.NOTIFIED,
            )
        )
        return result.scalar() or 0

    async def process_waitlist(
        self,
        program_id: uuid.UUID,
        now: datetime | None = None,
    ) -> PromotionResult:
        """Offer open spots to the earliest waiting entries.

        Spots are ``capacity - current_enrollment`` less offers still awaiting
        an answer. Each promoted entry gets a response deadline and its parent
        is notified in-app and, with a phone on file, by SMS. A missing or
        full program is a no-op.
        """
        result = PromotionResult()
        program = (
            await self.db.execute(
                select(Program).where(Program.id == program_id).with_for_update()
            )
        ).scalar_one_or_none()
        if not program:
            return result

        available = program.available_spots - await self._outstanding_offers(program_id)
        if available <= 0:
            await self.db.commit()
            return result

        program_name = program.name
        program_name_ar = program.name_ar

        waiting = await self.db.execute(
            select(WaitlistEntry)
            .where(
                WaitlistEntry.program_id == program_id,
                WaitlistEntry.status == WaitlistStatus.WAITING,
            )
            .order_by(WaitlistEntry.position)
            .limit(available)
        )
        entries = list(waiting.scalars().all())

        now = now or utcnow()
        expires_at = now + timedelta(hours=settings.WAITLIST_RESPONSE_HOURS)
        content = waitlist_spot_message(
            program_name, program_name_ar, settings.WAITLIST_RESPONSE_HOURS
        )

        offers = []
        for entry in entries:
            entry.status = WaitlistStatus.NOTIFIED
            entry.notified_at = now
            entry.expires_at = expires_at
            offers.append((entry.id, entry.player_id, self._recipient(entry)))
        await self.db.commit()
        result.promoted.extend(entries)

        for entry_id, player_id, recipient in offers:
            if recipient is None:
                continue
            await self.notifier.notify(
                result.notifications,
                recipient,
                NotificationType.WAITLIST_SPOT_AVAILABLE,
                content,
                {
                    "program_id": str(program_id),
                    "player_id": str(player_id),
                    "waitlist_id": str(entry_id),
                    "expires_at": expires_at.isoformat(),
                },
            )
            await self.notifier.text(result.notifications, recipient, content)

        if result.notifications.has_failures:
            # A failed dispatch rolls back and expires loaded rows
            for entry in result.promoted:
                await self.db.refresh(entry)

        logger.info(
            "Waitlist for program %s: %d offered, %s",
            program_id,
            len(offers),
            result.notifications.summary(),
        )
        return result

    @staticmethod
    def _recipient(entry: WaitlistEntry) -> Recipient | None:
        parent = entry.player.parent if entry.player and entry.player.parent else entry.parent
        if not parent:
            return None
        return Recipient(
            user_id=parent.id,
            phone=parent.phone,
            language=preferred_language(parent),
            player_id=entry.player_id,
        )

    async def add_to_waitlist(
        self,
        program_id: uuid.UUID,
        player_id: uuid.UUID,
        parent_id: uuid.UUID | None = None,
        notes: str | None = None,
        actor: User | None = None,
    ) -> WaitlistEntry:
        """Queue a player behind everyone already waiting for a full program.

        With an ``actor``, managers may queue any player of their branch and
        anyone else only their own child, for themselves.

        Raises:
            NotFoundError: if the program or player is missing.
            ForbiddenError: if the actor may not queue this player.
            ValidationError: if the program has open spots or the player is
                already queued.
        """
        program = (
            await self.db.execute(
                select(Program).where(Program.id == program_id).with_for_update()
            )
        ).scalar_one_or_none()
        if not program:
            raise NotFoundError("Program not found")

        if program.current_enrollment < program.capacity:
            raise ValidationError("Program still has available spots. No need for waitlist.")

        player = await self.db.get(Player, player_id)
        if not player:
            raise NotFoundError("Player not found")
        if actor is not None:
            self._authorize_join(actor, program, player, parent_id)

        existing = (
            await self.db.execute(
                select(WaitlistEntry).where(
                    WaitlistEntry.player_id == player_id,
                    WaitlistEntry.program_id == program_id,
                )
            )
        ).scalar_one_or_none()
        if existing and existing.status in OPEN_STATUSES:
            raise ValidationError("Player is already on the waitlist for this program")

        max_position = (
            await self.db.execute(
                select(func.max(WaitlistEntry.position)).where(
                    WaitlistEntry.program_id == program_id
                )
            )
        ).scalar()
        position = (max_position or 0) + 1

        # One row per player and program: a closed entry rejoins at the back
        entry = existing or WaitlistEntry(player_id=player_id, program_id=program_id)
        entry.branch_id = program.branch_id
        entry.parent_id = parent_id or player.parent_id
        entry.position = position
        entry.status = WaitlistStatus.WAITING
        entry.notified_at = None
        entry.expires_at = None
        entry.enrolled_at = None
        entry.notes = notes
        if existing is None:
            self.db.add(entry)

        await self.db.commit()
        await self.db.refresh(entry)
        logger.info("Player %s joined waitlist for program %s at %d", player_id, program_id, position)
        return entry

    @staticmethod
    def _authorize_join(
        actor: User,
        program: Program,
        player: Player,
        parent_id: uuid.UUID | None,
    ) -> None:
        if actor.role in MANAGER_ROLES:
            ensure_branch_access(actor, program.branch_id)
            return
        if player.parent_id != actor.id or parent_id not in (None, actor.id):
            raise ForbiddenError("Not authorized to add this player to the waitlist")

    async def remove_from_waitlist(self, entry_id: uuid.UUID) -> None:
        """Delete an entry and close the gap it leaves in the queue."""
        entry = await self.get_entry(entry_id)
        program_id = entry.program_id
        position = entry.position

        await self.db.delete(entry)
        await self.db.execute(
            update(WaitlistEntry)
            .where(
                WaitlistEntry.program_id == program_id,
                WaitlistEntry.position > position,
            )
            .values(position=WaitlistEntry.position - 1)
        )
        await self.db.commit()

    async def update_waitlist_status(
        self,
        entry_id: uuid.UUID,
        status: WaitlistStatus,
        notes: str | None = None,
    ) -> tuple[WaitlistEntry, PromotionResult | None]:
        """Move an entry through its lifecycle.

        Enrolling takes a program spot. Cancelling or expiring frees the
        entry's place, so the queue is re-processed.

        Raises:
            ValidationError: for a transition the lifecycle does not allow.
        """
        entry = await self.get_entry(entry_id)
        if status not in WAITLIST_TRANSITIONS[entry.status]:
            raise ValidationError(
                f"Cannot change waitlist status from {entry.status.value} to {status.value}"
            )

        entry.status = status
        if notes is not None:
            entry.notes = notes
        if status == WaitlistStatus.ENROLLED:
            entry.enrolled_at = utcnow()
            await self.db.execute(
                update(Program)
                .where(Program.id == entry.program_id)
                .values(current_enrollment=Program.current_enrollment + 1)
            )
        await self.db.commit()

        promotion = None
        if status in (WaitlistStatus.CANCELLED, WaitlistStatus.EXPIRED):
            promotion = await self.process_waitlist(entry.program_id)

        await self.db.refresh(entry)
        return entry, promotion

    async def expire_stale_offers(self, now: datetime | None = None) -> ExpiryResult:
        """Expire offers past their deadline and offer the spots to the next in line.

        Safe to re-run: only ``notified`` entries past ``expires_at`` change.
        """
        now = now or utcnow()
        result = ExpiryResult()

        stale = await self.db.execute(
            select(WaitlistEntry).where(
                WaitlistEntry.status == WaitlistStatus.NOTIFIED,
                WaitlistEntry.expires_at <= now,
            )
        )
        program_ids: list[uuid.UUID] = []
        for entry in stale.scalars().all():
            entry.status = WaitlistStatus.EXPIRED
            result.expired.append(entry)
            if entry.program_id not in program_ids:
                program_ids.append(entry.program_id)
        await self.db.commit()

        for program_id in program_ids:
            promotion = await self.process_waitlist(program_id, now=now)
            result.promotions.promoted.extend(promotion.promoted)
            result.promotions.notifications.merge(promotion.notifications)

        if result.expired:
            logger.info(
                "Expired %d waitlist offers across %d programs",
                len(result.expired),
                len(program_ids),
            )
        return result
