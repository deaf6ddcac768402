# =============================================================================
# RosterDesk - Bulk Scheduling Tests
# =============================================================================

import pytest
from datetime import date
from unittest.mock import patch

from rosterdesk.errors import ValidationFailure, ConflictDetected
from rosterdesk.extensions import db
from rosterdesk.models.holiday import Holiday
from rosterdesk.models.notification import Notification, NotificationCategory
from rosterdesk.models.schedule import ScheduleEntry, ShiftType, ActivityType
from rosterdesk.services.bulk_service import (
    BulkMode, BulkScheduleConfig, ScheduleEntryDraft, BulkScheduleService,
    generate_bulk_drafts, BULK_NOTE, ROTATION_NOTE,
)
from rosterdesk.services.ledger import ScheduleLedger

MONDAY = date(2024, 1, 1)
FRIDAY = date(2024, 1, 5)
SUNDAY = date(2024, 1, 7)


def _config(mode, **kwargs):
    kwargs.setdefault('team_id', 1)
    kwargs.setdefault('start_date', MONDAY)
    kwargs.setdefault('end_date', SUNDAY)
    return BulkScheduleConfig(mode=mode, **kwargs)


# =============================================================================
# generate_bulk_drafts
# =============================================================================

class TestGenerateBulkDrafts:
    """Tests for the pure draft generator."""

    def test_rotation_cycles_users_over_weekdays(self):
        """Three users over five weekdays: A, B, C, A, B."""
        drafts = generate_bulk_drafts(_config(BulkMode.ROTATION, user_ids=[7, 8, 9]), members=[])

        assert [d.user_id for d in drafts] == [7, 8, 9, 7, 8]
        assert [d.date for d in drafts] == [date(2024, 1, d) for d in range(1, 6)]
        assert all(d.notes == ROTATION_NOTE for d in drafts)

    def test_rotation_falls_back_to_members(self):
        drafts = generate_bulk_drafts(_config(BulkMode.ROTATION), members=[3, 4])
        assert [d.user_id for d in drafts] == [3, 4, 3, 4, 3]

    def test_whole_team_is_full_product(self):
        drafts = generate_bulk_drafts(_config(BulkMode.WHOLE_TEAM), members=[3, 4])

        assert len(drafts) == 10
        assert {(d.user_id, d.date) for d in drafts} == {
            (u, date(2024, 1, d)) for u in (3, 4) for d in range(1, 6)
        }
        assert all(d.notes == BULK_NOTE for d in drafts)

    def test_explicit_users_ignore_members(self):
        drafts = generate_bulk_drafts(_config(BulkMode.EXPLICIT_USERS, user_ids=[5], end_date=MONDAY),
                                      members=[3, 4])
        assert [d.user_id for d in drafts] == [5]

    def test_weekends_kept_when_requested(self):
        drafts = generate_bulk_drafts(_config(BulkMode.EXPLICIT_USERS, user_ids=[5], skip_weekends=False),
                                      members=[])
        assert len(drafts) == 7

    def test_no_users_no_drafts(self):
        assert generate_bulk_drafts(_config(BulkMode.WHOLE_TEAM), members=[]) == []
        assert generate_bulk_drafts(_config(BulkMode.EXPLICIT_USERS), members=[1]) == []

    def test_holidays_skipped(self):
        config = _config(BulkMode.EXPLICIT_USERS, user_ids=[5], skip_holidays=True)
        drafts = generate_bulk_drafts(config, members=[], holidays=[MONDAY])
        assert MONDAY not in [d.date for d in drafts]
        assert len(drafts) == 4

    def test_holidays_ignored_without_flag(self):
        drafts = generate_bulk_drafts(_config(BulkMode.EXPLICIT_USERS, user_ids=[5]), members=[],
                                      holidays=[MONDAY])
        assert len(drafts) == 5

    def test_shift_defaults_become_time_blocks(self):
        config = _config(BulkMode.EXPLICIT_USERS, user_ids=[5], end_date=MONDAY, shift_type=ShiftType.LATE)
        draft = generate_bulk_drafts(config, members=[])[0]
        assert draft.time_blocks == [{'activity_type': 'work', 'start_time': '13:00', 'end_time': '21:30'}]

    def test_reversed_range(self):
        with pytest.raises(ValidationFailure) as exc:
            generate_bulk_drafts(_config(BulkMode.WHOLE_TEAM, start_date=SUNDAY, end_date=MONDAY), members=[1])
        assert exc.value.code == 'invalid_date_range'


# =============================================================================
# BulkScheduleService
# =============================================================================

def _draft(user, team, day):
    return ScheduleEntryDraft(user_id=user.id, team_id=team.id, date=day, shift_type=ShiftType.NORMAL)


class TestBulkPreview:

    def test_whole_team_preview_lists_conflicts(self, app, team_a, user_a, make_entry):
        existing = make_entry(user_a, team_a, MONDAY, activity_type=ActivityType.VACATION)
        config = _config(BulkMode.WHOLE_TEAM, team_id=team_a.id, end_date=FRIDAY)

        preview = BulkScheduleService.preview(config)

        # planner + three members, five weekdays
        assert len(preview.drafts) == 20
        assert preview.conflicts == [{
            'user_id': user_a.id,
            'team_id': team_a.id,
            'date': '2024-01-01',
            'existing_entry_id': existing.id,
            'existing_activity_type': 'vacation',
        }]
        assert ScheduleEntry.query.count() == 1

    def test_preview_skips_public_holidays(self, app, team_a, user_a):
        db.session.add(Holiday(date=MONDAY, name='Neujahr', country_code='DE'))
        db.session.commit()
        config = _config(BulkMode.EXPLICIT_USERS, team_id=team_a.id, user_ids=[user_a.id], skip_holidays=True)

        preview = BulkScheduleService.preview(config)
        assert [d.date for d in preview.drafts] == [date(2024, 1, d) for d in range(2, 6)]


class TestBulkCommit:
    """Commit under each conflict policy."""

    @pytest.fixture
    def batch(self, app, team_a, user_a, user_b, make_entry):
        existing = make_entry(user_a, team_a, MONDAY, activity_type=ActivityType.TRAINING)
        drafts = [
            _draft(user_a, team_a, MONDAY),
            _draft(user_b, team_a, MONDAY),
            _draft(user_a, team_a, date(2024, 1, 2)),
            _draft(user_b, team_a, date(2024, 1, 2)),
        ]
        return existing, drafts

    def test_skip(self, app, batch):
        existing, drafts = batch
        result = BulkScheduleService.commit(drafts, 'skip')

        assert len(result.created) == 3
        assert len(result.skipped) == 1
        assert result.skipped[0]['reason'] == 'slot_taken'
        assert result.skipped[0]['entry_id'] == existing.id
        assert ScheduleEntry.query.count() == 4
        assert db.session.get(ScheduleEntry, existing.id).activity_type == ActivityType.TRAINING

    def test_overwrite(self, app, batch):
        existing, drafts = batch
        result = BulkScheduleService.commit(drafts, 'overwrite')

        assert len(result.created) == 3
        assert result.updated[0]['entry_id'] == existing.id
        db.session.expire_all()
        entry = db.session.get(ScheduleEntry, existing.id)
        assert entry.activity_type == ActivityType.WORK
        assert entry.notes == BULK_NOTE
        assert entry.version == 2

    def test_prompt_with_conflicts_writes_nothing(self, app, batch):
        _, drafts = batch
        result = BulkScheduleService.commit(drafts, 'prompt')

        assert len(result.conflicts) == 1
        assert result.written == 0
        assert ScheduleEntry.query.count() == 1

    def test_prompt_without_conflicts_commits(self, app, team_a, user_b):
        result = BulkScheduleService.commit([_draft(user_b, team_a, MONDAY)], 'prompt')
        assert len(result.created) == 1
        assert ScheduleEntry.query.count() == 1

    def test_default_policy_from_config(self, app, batch):
        _, drafts = batch
        app.config['BULK_CONFLICT_POLICY'] = 'prompt'
        result = BulkScheduleService.commit(drafts)
        assert result.written == 0

    def test_unknown_policy(self, app, batch):
        _, drafts = batch
        with pytest.raises(ValidationFailure) as exc:
            BulkScheduleService.commit(drafts, 'merge')
        assert exc.value.code == 'invalid_conflict_policy'

    def test_duplicates_in_batch(self, app, team_a, user_b):
        drafts = [_draft(user_b, team_a, MONDAY), _draft(user_b, team_a, MONDAY)]
        result = BulkScheduleService.commit(drafts, 'skip')

        assert len(result.created) == 1
        assert result.skipped[0]['reason'] == 'duplicate_in_batch'

    def test_overwrite_race_rolls_back_everything(self, app, batch):
        """If the overwritten entry changed meanwhile, nothing from the batch is written."""
        existing, drafts = batch
        with patch.object(ScheduleLedger, 'conditional_update', return_value=False):
            with pytest.raises(ConflictDetected):
                BulkScheduleService.commit(drafts, 'overwrite')

        assert ScheduleEntry.query.count() == 1
        assert db.session.get(ScheduleEntry, existing.id).version == 1

    def test_empty_time_blocks_get_defaults(self, app, team_a, user_b):
        draft = _draft(user_b, team_a, MONDAY)
        draft.time_blocks = []
        BulkScheduleService.commit([draft], 'skip')

        entry = ScheduleEntry.query.filter_by(user_id=user_b.id).one()
        assert entry.time_blocks == [{'activity_type': 'work', 'start_time': '08:00', 'end_time': '16:30'}]
        assert entry.created_by_id is None

    def test_affected_users_notified(self, app, batch, user_a, user_b):
        _, drafts = batch
        BulkScheduleService.commit(drafts, 'skip')

        notified = {n.user_id for n in Notification.query.filter_by(category=NotificationCategory.SCHEDULE)}
        assert notified == {user_a.id, user_b.id}
