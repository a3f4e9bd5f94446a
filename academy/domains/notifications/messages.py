"""Bilingual (English / Arabic) message templates for parent-facing notifications."""
from dataclasses import dataclass
from datetime import date, time
from typing import Any

from academy.config.settings import settings


@dataclass(frozen=True)
class BilingualMessage:
    """Title and body in both supported languages."""

    title: str
    title_ar: str
    message: str
    message_ar: str

    def for_language(self, language: str) -> str:
        """Body text in the requested language."""
        return self.message_ar if language == "ar" else self.message


def preferred_language(user: Any) -> str:
    """Return the user's preferred language, falling back to the academy default."""
    preferences = getattr(user, "preferences", None) or {}
    return preferences.get("language") or settings.DEFAULT_LANGUAGE


def format_time(value: time | str | None) -> str:
    if value is None:
        return ""
    if isinstance(value, time):
        return value.strftime("%H:%M")
    return str(value)[:5]


def format_date(value: date | str | None) -> str:
    if value is None:
        return ""
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


# ==================== Sessions ====================


def session_change_message(
    change_type: str,
    program_name: str,
    program_name_ar: str | None,
    session_date: date,
    start_time: time,
    reason: str | None = None,
    new_date: date | None = None,
    new_time: time | None = None,
) -> BilingualMessage:
    """Build the message parents receive when a session is created, moved or cancelled."""
    name_ar = program_name_ar or program_name
    day = format_date(session_date)
    at = format_time(start_time)

    if change_type == "cancelled":
        message = f"The {program_name} session on {day} at {at} has been cancelled."
        message_ar = f"تم إلغاء حصة {name_ar} بتاريخ {day} في تمام الساعة {at}."
        if reason:
            message += f" Reason: {reason}"
            message_ar += f" السبب: {reason}"
        return BilingualMessage(
            title="Session Cancelled",
            title_ar="تم إلغاء الحصة",
            message=message,
            message_ar=message_ar,
        )

    if change_type == "rescheduled":
        moved_day = format_date(new_date or session_date)
        moved_at = format_time(new_time or start_time)
        return BilingualMessage(
            title="Session Rescheduled",
            title_ar="تم إعادة جدولة الحصة",
            message=(
                f"The {program_name} session has been rescheduled. "
                f"New time: {moved_day} at {moved_at}"
            ),
            message_ar=(
                f"تم إعادة جدولة حصة {name_ar}. "
                f"الوقت الجديد: {moved_day} في تمام الساعة {moved_at}"
            ),
        )

    if change_type == "created":
        return BilingualMessage(
            title="New Session Scheduled",
            title_ar="حصة جديدة مجدولة",
            message=f"A new {program_name} session has been scheduled for {day} at {at}",
            message_ar=f"تم جدولة حصة جديدة لـ {name_ar} بتاريخ {day} في تمام الساعة {at}",
        )

    return BilingualMessage(
        title="Schedule Update",
        title_ar="تحديث الجدول",
        message=f"The {program_name} session schedule has been updated.",
        message_ar=f"تم تحديث جدول حصة {name_ar}.",
    )


def session_reminder_message(
    hours_ahead: int,
    player_name: str,
    player_name_ar: str,
    program_name: str,
    program_name_ar: str | None,
    session_date: date,
    start_time: time,
    coach_name: str,
    coach_name_ar: str | None,
) -> BilingualMessage:
    when = f"{format_date(session_date)} at {format_time(start_time)}"
    return BilingualMessage(
        title="Session Reminder",
        title_ar="تذكير بالحصة",
        message=(
            f"Reminder: {player_name} has a {program_name} session in {hours_ahead} hours "
            f"({when}). Coach: {coach_name}"
        ),
        message_ar=(
            f"تذكير: لدى {player_name_ar} حصة {program_name_ar or program_name} "
            f"بعد {hours_ahead} ساعة ({when}). المدرب: {coach_name_ar or coach_name}"
        ),
    )


# ==================== Waitlist ====================


def waitlist_spot_message(
    program_name: str,
    program_name_ar: str | None,
    response_hours: int,
) -> BilingualMessage:
    return BilingualMessage(
        title="Spot Available!",
        title_ar="مقعد متاح!",
        message=(
            f"A spot has opened up in {program_name}! "
            f"Please confirm enrollment within {response_hours} hours."
        ),
        message_ar=(
            f"أصبح هناك مقعد متاح في {program_name_ar or program_name}! "
            f"يرجى تأكيد التسجيل خلال {response_hours} ساعة."
        ),
    )


# ==================== Subscription freezes ====================


def freeze_message(
    title: str,
    title_ar: str | None,
    start_date: date,
    end_date: date,
    freeze_days: int,
    cancelled: bool = False,
) -> BilingualMessage:
    name_ar = title_ar or title
    period = f"{format_date(start_date)} to {format_date(end_date)}"
    period_ar = f"{format_date(start_date)} إلى {format_date(end_date)}"

    if cancelled:
        return BilingualMessage(
            title=f"Subscription Freeze Cancelled: {title}",
            title_ar=f"تم إلغاء تجميد الاشتراك: {name_ar}",
            message=(
                f'The subscription freeze "{title}" ({period}) has been cancelled. '
                f"{freeze_days} days have been subtracted back from your subscription."
            ),
            message_ar=(
                f'تم إلغاء تجميد الاشتراك "{name_ar}" ({period_ar}). '
                f"تم خصم {freeze_days} أيام من اشتراكك."
            ),
        )

    return BilingualMessage(
        title=f"Subscription Frozen: {title}",
        title_ar=f"تجميد الاشتراك: {name_ar}",
        message=(
            f'Your subscription has been extended by {freeze_days} days due to "{title}" '
            f"({period}). No action needed."
        ),
        message_ar=(
            f'تم تمديد اشتراكك {freeze_days} أيام بسبب "{name_ar}" ({period_ar}). '
            "لا حاجة لأي إجراء."
        ),
    )
