"""
Feature hooks built on the resilience core.
"""

from features.email_actions import EmailActions, ConvertToTaskOptions
from features.task_actions import TaskActions, TaskInput
from features.summaries import SummaryService
from features.plan import PlanService
from features.notifications import NotificationWatcher, Notification
from features.subscription import SubscriptionMonitor

__all__ = [
    'EmailActions',
    'ConvertToTaskOptions',
    'TaskActions',
    'TaskInput',
    'SummaryService',
    'PlanService',
    'NotificationWatcher',
    'Notification',
    'SubscriptionMonitor',
]
