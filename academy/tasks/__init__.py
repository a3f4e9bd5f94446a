"""Background tasks for the academy platform.

This package contains Celery tasks for:
- Session reminders (day before and hour before)
- Waitlist offer expiry and re-promotion
- Subscription freeze status refresh
"""
