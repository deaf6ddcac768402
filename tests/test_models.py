# =============================================================================
# RosterDesk - Model Tests
# =============================================================================

import pytest
from datetime import date, time

from rosterdesk.extensions import db
from rosterdesk.models.user import AccessLevel
from rosterdesk.models.team import PlanningPartnership, PartnershipShiftRequirement
from rosterdesk.models.schedule import (
    ScheduleEntry, ActivityType, ShiftType, AvailabilityStatus,
    ACTIVITY_RULES, activities_where, default_time_blocks,
)
from rosterdesk.models.rotation import RotationTeamConfig, RotationDraftAssignment
from rosterdesk.models.holiday import Holiday

MONDAY = date(2024, 1, 1)


class TestActivityRules:
    """The classification table drives every decision point."""

    def test_every_activity_is_classified(self):
        assert set(ACTIVITY_RULES) == set(ActivityType)

    def test_only_work_counts_toward_coverage(self):
        assert activities_where(lambda r: r.counts_toward_coverage) == [ActivityType.WORK]

    def test_absences_are_not_swappable(self):
        for activity in (ActivityType.VACATION, ActivityType.SICK, ActivityType.OUT_OF_OFFICE):
            assert ACTIVITY_RULES[activity].swappable is False
            assert ACTIVITY_RULES[activity].blocks_rotation is True

    def test_hotline_and_home_office_count_for_impact(self):
        impact = activities_where(lambda r: r.counts_for_impact)
        assert ActivityType.HOTLINE_SUPPORT in impact
        assert ActivityType.WORKING_FROM_HOME in impact
        assert ActivityType.TRAINING not in impact

    def test_default_time_blocks_follow_shift(self):
        blocks = default_time_blocks(ShiftType.LATE, ActivityType.WORK)
        assert blocks == [{'activity_type': 'work', 'start_time': '13:00', 'end_time': '21:30'}]


class TestUserAccess:

    def test_hierarchy(self, app, planner_user, user_a):
        assert planner_user.has_access(AccessLevel.PLANNER)
        assert planner_user.can_review
        assert not planner_user.has_access(AccessLevel.MANAGER)
        assert not user_a.can_review

    def test_full_name(self, app, user_a):
        assert user_a.full_name == 'User Alpha'


class TestScheduleEntry:

    def test_defaults_and_version(self, app, user_a, team_a):
        entry = ScheduleEntry(user_id=user_a.id, team_id=team_a.id, date=MONDAY)
        db.session.add(entry)
        db.session.commit()
        assert entry.version == 1
        assert entry.activity_type == ActivityType.WORK
        assert entry.availability_status == AvailabilityStatus.AVAILABLE
        assert entry.time_blocks == []

    def test_swappable_needs_availability(self, app, make_entry, user_a, team_a):
        entry = make_entry(user_a, team_a, MONDAY, availability_status=AvailabilityStatus.UNAVAILABLE)
        assert entry.rule.swappable
        assert not entry.is_swappable

    def test_to_dict(self, app, make_entry, user_a, team_a):
        entry = make_entry(user_a, team_a, MONDAY, activity_type=ActivityType.TRAINING)
        data = entry.to_dict()
        assert data['date'] == '2024-01-01'
        assert data['activity_type'] == 'training'
        assert data['time_blocks'][0]['activity_type'] == 'training'


class TestPlanningPartnership:

    def test_requires_teams(self, app):
        with pytest.raises(ValueError):
            PlanningPartnership(name='Empty', team_ids=[])

    def test_includes_and_requirements(self, app, team_a, team_b):
        partnership = PlanningPartnership(name='DACH+FR', team_ids=[team_a.id, team_b.id])
        partnership.shift_requirements.append(
            PartnershipShiftRequirement(shift_type=ShiftType.LATE, staff_required=3)
        )
        db.session.add(partnership)
        db.session.commit()

        assert partnership.includes(team_a.id, team_b.id)
        assert not partnership.includes(team_a.id, 999)
        assert partnership.requirement_for(ShiftType.LATE).staff_required == 3
        assert partnership.requirement_for(ShiftType.EARLY) is None


class TestRotationModels:

    def test_friday_hours_are_shorter(self, app):
        config = RotationTeamConfig(
            team_id=1,
            weekday_start_time=time(8, 0), weekday_end_time=time(15, 0),
            friday_start_time=time(8, 0), friday_end_time=time(13, 0),
        )
        assert config.hours_for(date(2024, 1, 5)) == (time(8, 0), time(13, 0))
        assert config.hours_for(MONDAY) == (time(8, 0), time(15, 0))

    def test_substitute_must_name_original(self, app):
        with pytest.raises(ValueError):
            RotationDraftAssignment(
                plan_id=1, team_id=1, user_id=2, date=MONDAY,
                start_time=time(8, 0), end_time=time(15, 0),
                is_substitute=True, original_user_id=None,
            )


class TestHoliday:

    def test_national_and_regional(self, app):
        national = Holiday(date=MONDAY, name='Neujahr', country_code='DE')
        regional = Holiday(date=MONDAY, name='Heilige Drei Koenige', country_code='DE', region_code='BY')
        worldwide = Holiday(date=MONDAY, name='Company day', country_code=None)

        assert national.applies_to('DE')
        assert not national.applies_to('FR')
        assert regional.applies_to('DE', 'BY')
        assert not regional.applies_to('DE', 'BE')
        assert worldwide.applies_to('FR')
