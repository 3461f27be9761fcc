"""
TEMPFOCUS Alert Services
User-visible success and error notifications
"""

from .notifier import LogNotifier, Notification, NotificationLevel, Notifier

__all__ = ["LogNotifier", "Notification", "NotificationLevel", "Notifier"]
