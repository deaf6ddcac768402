"""
Services package for RosterDesk.
Contains scheduling decisions separated from routes and storage.
"""

from rosterdesk.services.coverage_service import CoverageService
from rosterdesk.services.bulk_service import BulkScheduleService
from rosterdesk.services.swap_service import SwapService
from rosterdesk.services.impact_service import ImpactService
from rosterdesk.services.rotation_service import RotationService

__all__ = [
    'CoverageService',
    'BulkScheduleService',
    'SwapService',
    'ImpactService',
    'RotationService',
]
