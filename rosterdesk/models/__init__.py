"""
SQLAlchemy models for RosterDesk.
All models are imported here for easy access.
"""
from rosterdesk.models.user import User, AccessLevel, ACCESS_HIERARCHY
from rosterdesk.models.schedule import (
    ScheduleEntry,
    ShiftType,
    ActivityType,
    AvailabilityStatus,
    ActivityRule,
    ACTIVITY_RULES,
    DEFAULT_SHIFT_TIMES,
)
from rosterdesk.models.team import (
    Team,
    TeamMember,
    CapacityRequirement,
    PlanningPartnership,
    PartnershipShiftRequirement,
)
from rosterdesk.models.swap import SwapRequest, SwapStatus
from rosterdesk.models.rotation import (
    RotationTeamConfig,
    EligibleMember,
    RotationPlan,
    RotationDraftAssignment,
    PlanState,
    DraftStatus,
    TieBreak,
)
from rosterdesk.models.holiday import Holiday
from rosterdesk.models.notification import Notification, NotificationType, NotificationCategory

__all__ = [
    'User', 'AccessLevel', 'ACCESS_HIERARCHY',
    'ScheduleEntry', 'ShiftType', 'ActivityType', 'AvailabilityStatus',
    'ActivityRule', 'ACTIVITY_RULES', 'DEFAULT_SHIFT_TIMES',
    'Team', 'TeamMember', 'CapacityRequirement',
    'PlanningPartnership', 'PartnershipShiftRequirement',
    'SwapRequest', 'SwapStatus',
    'RotationTeamConfig', 'EligibleMember', 'RotationPlan', 'RotationDraftAssignment',
    'PlanState', 'DraftStatus', 'TieBreak',
    'Holiday',
    'Notification', 'NotificationType', 'NotificationCategory',
]
