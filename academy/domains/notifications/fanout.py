"""Per-recipient outcome tracking for notification fan-out.

Fan-out never raises: each dispatch is recorded here so the caller can
report partial delivery without rolling back the triggering change.
"""
import uuid
from dataclasses import dataclass, field
from typing import Literal

Channel = Literal["in_app", "sms"]


@dataclass(frozen=True)
class Recipient:
    """Plain snapshot of a parent to contact about one player.

    Built before any dispatch so a failed commit (which expires ORM state)
    cannot break the remaining sends.
    """

    user_id: uuid.UUID
    phone: str | None
    language: str
    player_id: uuid.UUID | None = None
    player_name: str = ""
    player_name_ar: str = ""


@dataclass(frozen=True)
class DispatchOutcome:
    channel: Channel
    user_id: uuid.UUID | None
    success: bool
    recipient: str | None = None
    error: str | None = None


@dataclass
class FanoutReport:
    """Outcomes of every notification and SMS attempted for one operation."""

    outcomes: list[DispatchOutcome] = field(default_factory=list)

    def record(
        self,
        channel: Channel,
        user_id: uuid.UUID | None,
        success: bool,
        recipient: str | None = None,
        error: str | None = None,
    ) -> None:
        self.outcomes.append(
            DispatchOutcome(
                channel=channel,
                user_id=user_id,
                success=success,
                recipient=recipient,
                error=error,
            )
        )

    def merge(self, other: "FanoutReport") -> None:
        self.outcomes.extend(other.outcomes)

    def _count(self, channel: Channel, success: bool) -> int:
        return sum(1 for o in self.outcomes if o.channel == channel and o.success is success)

    @property
    def notifications_sent(self) -> int:
        return self._count("in_app", True)

    @property
    def notifications_failed(self) -> int:
        return self._count("in_app", False)

    @property
    def sms_sent(self) -> int:
        return self._count("sms", True)

    @property
    def sms_failed(self) -> int:
        return self._count("sms", False)

    @property
    def has_failures(self) -> bool:
        return any(not o.success for o in self.outcomes)

    def summary(self) -> dict[str, int]:
        return {
            "notifications_sent": self.notifications_sent,
            "notifications_failed": self.notifications_failed,
            "sms_sent": self.sms_sent,
            "sms_failed": self.sms_failed,
        }
