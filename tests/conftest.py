# =============================================================================
# RosterDesk - Pytest Fixtures Configuration
# =============================================================================

import pytest
from datetime import time

from rosterdesk import create_app
from rosterdesk.extensions import db
from rosterdesk.models.user import User, AccessLevel
from rosterdesk.models.team import Team, TeamMember, CapacityRequirement
from rosterdesk.models.schedule import (
    ScheduleEntry, ShiftType, ActivityType, AvailabilityStatus, default_time_blocks
)
from rosterdesk.models.rotation import RotationTeamConfig, EligibleMember


# =============================================================================
# Application Fixtures
# =============================================================================

@pytest.fixture(scope='function')
def app():
    """Create and configure test application with SQLite in-memory database."""
    application = create_app('testing')

    with application.app_context():
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Test client for HTTP requests."""
    return app.test_client()


@pytest.fixture(scope='function')
def runner(app):
    """CLI test runner."""
    return app.test_cli_runner()


@pytest.fixture(scope='function')
def session(app):
    """Database session for tests."""
    yield db.session


# =============================================================================
# User Fixtures
# =============================================================================

def _create_user(email, first_name, last_name, access_level=AccessLevel.TEAMMEMBER, **kwargs):
    user = User(
        email=email,
        first_name=first_name,
        last_name=last_name,
        access_level=access_level,
        is_active=True,
        **kwargs
    )
    db.session.add(user)
    db.session.commit()
    user_id = user.id
    db.session.expire_all()
    return db.session.get(User, user_id)


@pytest.fixture
def planner_user(app):
    """A planner allowed to review swaps and run rotations."""
    return _create_user('planner@test.com', 'Pia', 'Planner', AccessLevel.PLANNER)


@pytest.fixture
def user_a(app):
    return _create_user('user_a@test.com', 'User', 'Alpha', country_code='DE')


@pytest.fixture
def user_b(app):
    return _create_user('user_b@test.com', 'User', 'Beta', country_code='DE')


@pytest.fixture
def user_c(app):
    return _create_user('user_c@test.com', 'User', 'Gamma', country_code='FR')


@pytest.fixture
def user_d(app):
    """Member of the second team only."""
    return _create_user('user_d@test.com', 'User', 'Delta', country_code='FR')


# =============================================================================
# Team Fixtures
# =============================================================================

@pytest.fixture
def team_a(app, planner_user, user_a, user_b, user_c):
    """Team with three members and the planner as manager."""
    team = Team(name='Support Berlin')
    db.session.add(team)
    db.session.flush()
    db.session.add(TeamMember(team_id=team.id, user_id=planner_user.id, is_manager=True))
    for user in (user_a, user_b, user_c):
        db.session.add(TeamMember(team_id=team.id, user_id=user.id))
    db.session.add(CapacityRequirement(team_id=team.id, min_staff_required=2))
    db.session.commit()
    team_id = team.id
    db.session.expire_all()
    return db.session.get(Team, team_id)


@pytest.fixture
def team_b(app, user_d):
    """Second team, not partnered with team_a."""
    team = Team(name='Support Lyon')
    db.session.add(team)
    db.session.flush()
    db.session.add(TeamMember(team_id=team.id, user_id=user_d.id))
    db.session.commit()
    team_id = team.id
    db.session.expire_all()
    return db.session.get(Team, team_id)


@pytest.fixture
def rotation_team(app, team_a, user_a, user_b, user_c):
    """team_a with a one-person hotline rotation over all three members."""
    db.session.add(RotationTeamConfig(
        team_id=team_a.id,
        min_staff_required=1,
        weekday_start_time=time(8, 0),
        weekday_end_time=time(15, 0),
        friday_start_time=time(8, 0),
        friday_end_time=time(13, 0),
    ))
    for user in (user_a, user_b, user_c):
        db.session.add(EligibleMember(team_id=team_a.id, user_id=user.id))
    db.session.commit()
    db.session.expire_all()
    return db.session.get(Team, team_a.id)


# =============================================================================
# Schedule Fixtures
# =============================================================================

@pytest.fixture
def make_entry(app):
    """Factory: add a committed schedule entry and return it."""
    def _make_entry(user, team, day, activity_type=ActivityType.WORK, shift_type=ShiftType.NORMAL,
                    availability_status=AvailabilityStatus.AVAILABLE, notes=None):
        entry = ScheduleEntry(
            user_id=user.id,
            team_id=team.id,
            date=day,
            shift_type=shift_type,
            activity_type=activity_type,
            availability_status=availability_status,
            notes=notes,
            time_blocks=default_time_blocks(shift_type, activity_type),
        )
        db.session.add(entry)
        db.session.commit()
        entry_id = entry.id
        db.session.expire_all()
        return db.session.get(ScheduleEntry, entry_id)
    return _make_entry


# =============================================================================
# API Fixtures
# =============================================================================

@pytest.fixture
def auth_header(app):
    """Factory: bearer header for a user."""
    from rosterdesk.blueprints.api.decorators import create_access_token

    def _auth_header(user):
        return {'Authorization': f'Bearer {create_access_token(user.id)}'}
    return _auth_header
