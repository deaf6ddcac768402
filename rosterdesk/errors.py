"""
Domain errors for RosterDesk.

Every service raises one of these instead of returning bare booleans, so
callers (API routes, CLI commands) can tell a violated precondition from a
failed fetch or a lost optimistic-concurrency race.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


class SchedulingError(Exception):
    """Base class for all scheduling errors."""

    code = 'scheduling_error'

    def __init__(self, message: str, code: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        body = {'code': self.code, 'message': self.message}
        if self.details:
            body['details'] = self.details
        return body


class ValidationFailure(SchedulingError):
    """A named precondition was violated (e.g. teams not partnered)."""

    code = 'validation_failed'


class CollaboratorUnavailable(SchedulingError):
    """A store or directory fetch failed. Never to be read as 'zero rows'."""

    code = 'collaborator_unavailable'


class ConflictDetected(SchedulingError):
    """An optimistic-concurrency guard failed at write time."""

    code = 'conflict'


class AnalysisAborted(SchedulingError):
    """A long-running analysis was cancelled by its caller."""

    code = 'analysis_aborted'


@dataclass
class ConfigurationGap:
    """A missing configuration value that was logged and defaulted."""
    kind: str
    team_id: Optional[int]
    message: str
    defaulted_to: Any = None
    context: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind,
            'team_id': self.team_id,
            'message': self.message,
            'defaulted_to': self.defaulted_to,
        }
