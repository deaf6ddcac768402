# =============================================================================
# RosterDesk - Hotline Rotation Tests
# =============================================================================

import pytest
import random
from datetime import date, time, timedelta
from types import SimpleNamespace
from unittest.mock import patch

from rosterdesk.errors import ValidationFailure, ConflictDetected
from rosterdesk.extensions import db
from rosterdesk.models.holiday import Holiday
from rosterdesk.models.notification import Notification, NotificationCategory
from rosterdesk.models.rotation import (
    RotationPlan, RotationDraftAssignment, RotationTeamConfig, EligibleMember,
    PlanState, DraftStatus, TieBreak,
)
from rosterdesk.models.schedule import ScheduleEntry, ActivityType, AvailabilityStatus
from rosterdesk.models.team import Team
from rosterdesk.services.ledger import HolidayRecord, ScheduleLedger
from rosterdesk.services.rotation_service import (
    build_rotation_drafts, rotation_conflicts, fairness_stats, RotationService,
)

MONDAY = date(2024, 1, 1)
FRIDAY = date(2024, 1, 5)
WEEK = [MONDAY + timedelta(days=i) for i in range(7)]


def _config(min_staff=1):
    return SimpleNamespace(
        min_staff_required=min_staff,
        hours_for=lambda day: (time(8, 0), time(13, 0) if day.weekday() == 4 else time(15, 0)),
    )


def _picked(build):
    return [d.user_id for d in build.drafts]


# =============================================================================
# build_rotation_drafts
# =============================================================================

class TestBuildRotationDrafts:
    """Tests for the pure draft engine."""

    def test_round_robin_without_history(self):
        build = build_rotation_drafts(1, WEEK, _config(), [1, 2, 3], {}, {})

        assert _picked(build) == [1, 2, 3, 1, 2]
        assert [d.date for d in build.drafts] == WEEK[:5]
        assert build.uncovered == []

    def test_least_recent_first(self):
        """Never-assigned members go before anyone with history."""
        build = build_rotation_drafts(1, WEEK, _config(), [1, 2, 3], {1: date(2023, 12, 29)}, {})
        assert _picked(build) == [2, 3, 1, 2, 3]

    def test_older_history_ranks_first(self):
        last = {1: date(2023, 12, 28), 2: date(2023, 12, 20), 3: date(2023, 12, 27)}
        build = build_rotation_drafts(1, WEEK[:3], _config(), [1, 2, 3], last, {})
        assert _picked(build) == [2, 3, 1]

    def test_friday_hours(self):
        build = build_rotation_drafts(1, [FRIDAY], _config(), [1], {}, {})
        assert build.drafts[0].end_time == time(13, 0)

    def test_substitute_replaces_conflicted_primary(self):
        build = build_rotation_drafts(1, WEEK[:2], _config(), [1, 2, 3], {}, {(1, MONDAY): 'vacation'})

        first = build.drafts[0]
        assert first.user_id == 2
        assert first.is_substitute is True
        assert first.original_user_id == 1
        # the skipped primary is still first in line the next day
        assert build.drafts[1].user_id == 1
        assert build.drafts[1].is_substitute is False

    def test_uncovered_when_nobody_free(self):
        build = build_rotation_drafts(1, [MONDAY], _config(), [1], {}, {(1, MONDAY): 'sick'})

        assert build.drafts == []
        assert build.uncovered == [{
            'team_id': 1, 'date': '2024-01-01', 'slot': 0, 'original_user_id': 1, 'reason': 'sick',
        }]

    def test_pool_exhausted(self):
        build = build_rotation_drafts(1, [MONDAY], _config(min_staff=3), [1, 2], {}, {})

        assert sorted(_picked(build)) == [1, 2]
        assert build.uncovered == [{'team_id': 1, 'date': '2024-01-01', 'slot': 2, 'reason': 'pool_exhausted'}]

    def test_never_same_user_twice_a_day(self):
        build = build_rotation_drafts(1, WEEK, _config(min_staff=2), [1, 2, 3], {}, {})
        per_day = {}
        for d in build.drafts:
            per_day.setdefault(d.date, []).append(d.user_id)
        assert all(len(set(users)) == 2 for users in per_day.values())

    def test_random_tie_break_is_reproducible(self):
        first = build_rotation_drafts(1, WEEK, _config(), [1, 2, 3, 4], {}, {},
                                      tie_break=TieBreak.RANDOM, rng=random.Random(42))
        second = build_rotation_drafts(1, WEEK, _config(), [1, 2, 3, 4], {}, {},
                                       tie_break=TieBreak.RANDOM, rng=random.Random(42))
        assert _picked(first) == _picked(second)
        assert sorted(_picked(first)[:4]) == [1, 2, 3, 4]


class TestRotationConflicts:

    def _entry(self, user_id, team_id, activity_type, availability=AvailabilityStatus.AVAILABLE):
        return ScheduleEntry(user_id=user_id, team_id=team_id, date=MONDAY,
                             activity_type=activity_type, availability_status=availability)

    def test_reasons(self, app):
        entries = [
            self._entry(1, 1, ActivityType.VACATION),
            self._entry(2, 1, ActivityType.WORK, AvailabilityStatus.UNAVAILABLE),
            self._entry(3, 2, ActivityType.HOTLINE_SUPPORT),
            self._entry(4, 1, ActivityType.HOTLINE_SUPPORT),
            self._entry(5, 1, ActivityType.WORK),
        ]
        conflicts = rotation_conflicts(1, {}, entries, [])

        assert conflicts == {
            (1, MONDAY): 'vacation',
            (2, MONDAY): 'unavailable',
            (3, MONDAY): 'hotline_elsewhere',
        }

    def test_public_holiday_by_country(self, app):
        users = {
            1: SimpleNamespace(country_code='DE', region_code=None),
            2: SimpleNamespace(country_code='FR', region_code=None),
            3: SimpleNamespace(country_code=None, region_code=None),
        }
        holidays = [HolidayRecord(MONDAY, 'Neujahr', 'DE', None)]

        assert rotation_conflicts(1, users, [], holidays) == {(1, MONDAY): 'public_holiday'}


class TestFairnessStats:

    def test_counts_include_idle_members(self):
        drafts = [SimpleNamespace(user_id=1, is_substitute=False),
                  SimpleNamespace(user_id=1, is_substitute=True),
                  SimpleNamespace(user_id=2, is_substitute=False)]
        stats = fairness_stats(drafts, [1, 2, 3])

        assert stats['assignments'] == {1: 2, 2: 1, 3: 0}
        assert stats['average'] == 1.0
        assert stats['substitutes'] == 1


# =============================================================================
# RotationService
# =============================================================================

class TestGenerate:

    def test_generate_week(self, app, rotation_team, user_a, user_b, user_c, planner_user):
        result = RotationService.generate([rotation_team.id], MONDAY, WEEK[-1], created_by=planner_user.id)

        plan = result.plan
        assert plan.state == PlanState.DRAFT_GENERATED
        assert [d.user_id for d in plan.drafts] == [user_a.id, user_b.id, user_c.id, user_a.id, user_b.id]
        assert all(d.status == DraftStatus.DRAFT for d in plan.drafts)
        assert result.uncovered == []
        # drafts are not ledger entries
        assert ScheduleEntry.query.count() == 0

    def test_history_from_ledger(self, app, rotation_team, user_a, user_b, user_c, make_entry):
        make_entry(user_a, rotation_team, date(2023, 12, 29), activity_type=ActivityType.HOTLINE_SUPPORT)
        result = RotationService.generate([rotation_team.id], MONDAY, MONDAY)
        assert result.plan.drafts[0].user_id == user_b.id

    def test_vacation_gets_substitute(self, app, rotation_team, user_a, user_b, make_entry):
        make_entry(user_a, rotation_team, MONDAY, activity_type=ActivityType.VACATION)
        result = RotationService.generate([rotation_team.id], MONDAY, MONDAY)

        draft = result.plan.drafts[0]
        assert draft.user_id == user_b.id
        assert draft.is_substitute
        assert draft.original_user_id == user_a.id

    def test_public_holiday_conflict(self, app, rotation_team, user_a, user_b):
        db.session.add(Holiday(date=MONDAY, name='Neujahr', country_code='DE'))
        db.session.commit()

        result = RotationService.generate([rotation_team.id], MONDAY, MONDAY)
        assert result.plan.drafts[0].original_user_id == user_a.id
        assert result.plan.drafts[0].user_id not in (user_a.id, user_b.id)

    def test_missing_configuration(self, app, team_b):
        result = RotationService.generate([team_b.id], MONDAY, FRIDAY)

        assert result.plan.drafts == []
        assert [g.kind for g in result.configuration_gaps] == ['missing_rotation_config']

    def test_no_eligible_members(self, app, team_b):
        db.session.add(RotationTeamConfig(team_id=team_b.id, min_staff_required=1))
        db.session.commit()

        result = RotationService.generate([team_b.id], MONDAY, FRIDAY)
        assert [g.kind for g in result.configuration_gaps] == ['no_eligible_members']

    def test_no_double_booking_across_teams(self, app, rotation_team, user_a, user_b):
        other = Team(name='Second line')
        db.session.add(other)
        db.session.flush()
        db.session.add(RotationTeamConfig(team_id=other.id, min_staff_required=1))
        db.session.add(EligibleMember(team_id=other.id, user_id=user_a.id))
        db.session.add(EligibleMember(team_id=other.id, user_id=user_b.id))
        db.session.commit()

        result = RotationService.generate([rotation_team.id, other.id], MONDAY, FRIDAY)

        slots = [(d.user_id, d.date) for d in result.plan.drafts]
        assert len(slots) == len(set(slots))

    def test_validation(self, app):
        with pytest.raises(ValidationFailure) as exc:
            RotationService.generate([], MONDAY, FRIDAY)
        assert exc.value.code == 'no_teams'
        with pytest.raises(ValidationFailure) as exc:
            RotationService.generate([1], FRIDAY, MONDAY)
        assert exc.value.code == 'invalid_date_range'

    def test_random_seed_recorded(self, app, rotation_team):
        first = RotationService.generate([rotation_team.id], MONDAY, FRIDAY, tie_break=TieBreak.RANDOM)
        assert first.plan.seed is not None

        again = RotationService.generate([rotation_team.id], MONDAY, FRIDAY,
                                         tie_break=TieBreak.RANDOM, seed=first.plan.seed)
        assert [d.user_id for d in again.plan.drafts] == [d.user_id for d in first.plan.drafts]


class TestReviewAndFinalize:

    @pytest.fixture
    def plan(self, app, rotation_team, planner_user):
        return RotationService.generate([rotation_team.id], MONDAY, FRIDAY, created_by=planner_user.id).plan

    def test_review(self, app, plan, rotation_team, planner_user, user_c):
        review = RotationService.review(plan.id, planner_user.id)

        assert review['state'] == 'reviewed'
        stats = review['teams'][rotation_team.id]
        assert stats['assignments'][user_c.id] == 1
        assert stats['uncovered'] == []
        assert len(review['table']) == 5
        assert db.session.get(RotationPlan, plan.id).reviewed_by_id == planner_user.id

    def test_finalize_requires_review(self, app, plan, planner_user):
        with pytest.raises(ValidationFailure) as exc:
            RotationService.finalize(plan.id, planner_user.id)
        assert exc.value.code == 'plan_not_reviewed'

    def test_finalize_writes_hotline_entries(self, app, plan, planner_user):
        RotationService.review(plan.id, planner_user.id)
        result = RotationService.finalize(plan.id, planner_user.id)

        assert len(result.created) == 5
        entries = ScheduleEntry.query.order_by(ScheduleEntry.date).all()
        assert all(e.activity_type == ActivityType.HOTLINE_SUPPORT for e in entries)
        assert entries[0].time_blocks == [
            {'activity_type': 'hotline_support', 'start_time': '08:00', 'end_time': '15:00'}
        ]
        assert entries[-1].time_blocks[0]['end_time'] == '13:00'
        assert entries[0].notes == f'Rotation plan {plan.id}'

        db.session.expire_all()
        finalized = db.session.get(RotationPlan, plan.id)
        assert finalized.state == PlanState.FINALIZED
        assert all(d.status == DraftStatus.FINALIZED for d in finalized.drafts)

        notified = Notification.query.filter_by(category=NotificationCategory.ROTATION).count()
        assert notified == 3

    def test_finalize_twice(self, app, plan, planner_user):
        RotationService.review(plan.id, planner_user.id)
        RotationService.finalize(plan.id, planner_user.id)

        with pytest.raises(ConflictDetected) as exc:
            RotationService.finalize(plan.id, planner_user.id)
        assert exc.value.code == 'plan_closed'
        assert ScheduleEntry.query.count() == 5

    def test_skip_policy_drops_conflicting_drafts(self, app, plan, planner_user, user_a, rotation_team,
                                                  make_entry):
        RotationService.review(plan.id, planner_user.id)
        make_entry(user_a, rotation_team, MONDAY, activity_type=ActivityType.SICK)

        result = RotationService.finalize(plan.id, planner_user.id, policy='skip')

        assert len(result.created) == 4
        assert [s['reason'] for s in result.skipped] == ['slot_taken']
        assert RotationDraftAssignment.query.filter_by(plan_id=plan.id).count() == 4
        monday = ScheduleEntry.query.filter_by(user_id=user_a.id, date=MONDAY).all()
        assert [e.activity_type for e in monday] == [ActivityType.SICK]

    def test_fail_policy_writes_nothing(self, app, plan, planner_user, user_a, rotation_team, make_entry):
        RotationService.review(plan.id, planner_user.id)
        make_entry(user_a, rotation_team, MONDAY, activity_type=ActivityType.SICK)

        with pytest.raises(ValidationFailure) as exc:
            RotationService.finalize(plan.id, planner_user.id, policy='fail')

        assert exc.value.code == 'finalize_conflicts'
        assert exc.value.details['conflicts'][0]['reason'] == 'slot_taken'
        assert ScheduleEntry.query.count() == 1
        assert db.session.get(RotationPlan, plan.id).state == PlanState.REVIEWED

    def test_hotline_elsewhere_is_double_booking(self, app, plan, planner_user, user_a, team_b, make_entry):
        RotationService.review(plan.id, planner_user.id)
        make_entry(user_a, team_b, MONDAY, activity_type=ActivityType.HOTLINE_SUPPORT)

        result = RotationService.finalize(plan.id, planner_user.id, policy='skip')
        assert [s['reason'] for s in result.skipped] == ['double_booking']

    def test_finalize_over_work_schedule(self, app, plan, planner_user, rotation_team, user_a, user_b, user_c,
                                         make_entry):
        """Compatible entries already in the slot become the on-call entries."""
        for user in (user_a, user_b, user_c):
            for offset in range(5):
                make_entry(user, rotation_team, MONDAY + timedelta(days=offset))
        RotationService.review(plan.id, planner_user.id)

        result = RotationService.finalize(plan.id, planner_user.id, policy='skip')

        assert len(result.created) == 5
        assert result.skipped == []
        assert all('converted_entry_id' in c for c in result.created)
        assert ScheduleEntry.query.count() == 15
        db.session.expire_all()
        hotline = ScheduleEntry.query.filter_by(activity_type=ActivityType.HOTLINE_SUPPORT).all()
        assert len(hotline) == 5
        assert all(e.version == 2 for e in hotline)
        assert hotline[0].time_blocks[0]['activity_type'] == 'hotline_support'

    def test_absence_in_other_team_is_a_conflict(self, app, plan, planner_user, user_a, team_b, make_entry):
        RotationService.review(plan.id, planner_user.id)
        make_entry(user_a, team_b, MONDAY, activity_type=ActivityType.VACATION)

        result = RotationService.finalize(plan.id, planner_user.id, policy='skip')

        assert [s['reason'] for s in result.skipped] == ['schedule_conflict']
        assert len(result.created) == 4

    def test_converted_entry_changed_concurrently(self, app, plan, planner_user, user_a, rotation_team,
                                                  make_entry):
        RotationService.review(plan.id, planner_user.id)
        make_entry(user_a, rotation_team, MONDAY)

        with patch.object(ScheduleLedger, 'conditional_update', return_value=False):
            with pytest.raises(ConflictDetected):
                RotationService.finalize(plan.id, planner_user.id)

        assert ScheduleEntry.query.count() == 1
        assert db.session.get(RotationPlan, plan.id).state == PlanState.REVIEWED

    def test_existing_hotline_reported_as_committed(self, app, plan, planner_user, user_a, rotation_team,
                                                    make_entry):
        RotationService.review(plan.id, planner_user.id)
        make_entry(user_a, rotation_team, MONDAY, activity_type=ActivityType.HOTLINE_SUPPORT)

        result = RotationService.finalize(plan.id, planner_user.id)

        assert len(result.already_committed) == 1
        assert len(result.created) == 4
        assert ScheduleEntry.query.filter_by(user_id=user_a.id, date=MONDAY).count() == 1

    def test_unknown_policy(self, app, plan, planner_user):
        with pytest.raises(ValidationFailure) as exc:
            RotationService.finalize(plan.id, planner_user.id, policy='merge')
        assert exc.value.code == 'invalid_finalize_policy'


class TestRegenerateAndDiscard:

    @pytest.fixture
    def plan(self, app, rotation_team):
        return RotationService.generate([rotation_team.id], MONDAY, FRIDAY).plan

    def test_regenerate_resets_review(self, app, plan, planner_user, user_a, rotation_team, make_entry):
        RotationService.review(plan.id, planner_user.id)
        make_entry(user_a, rotation_team, MONDAY, activity_type=ActivityType.VACATION)

        result = RotationService.regenerate(plan.id)

        assert result.plan.state == PlanState.DRAFT_GENERATED
        assert result.plan.reviewed_by_id is None
        assert result.plan.drafts[0].is_substitute
        assert RotationDraftAssignment.query.filter_by(plan_id=plan.id).count() == 5

    def test_discard(self, app, plan):
        discarded = RotationService.discard(plan.id)

        assert discarded.state == PlanState.DISCARDED
        assert RotationDraftAssignment.query.count() == 0
        with pytest.raises(ConflictDetected):
            RotationService.discard(plan.id)

    def test_unknown_plan(self, app):
        with pytest.raises(ValidationFailure) as exc:
            RotationService.review(999, 1)
        assert exc.value.code == 'plan_not_found'
