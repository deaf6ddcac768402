# =============================================================================
# RosterDesk - Legacy Time Block Parsing Tests
# =============================================================================

from rosterdesk.models.schedule import ActivityType, ShiftType
from rosterdesk.utils.time_blocks import parse_legacy_notes, normalize_block, is_valid_time


class TestParseLegacyNotes:
    """Tests for parse_legacy_notes()."""

    def test_empty_notes_use_shift_defaults(self):
        blocks, notes = parse_legacy_notes(None, ActivityType.WORK, ShiftType.EARLY)
        assert blocks == [{'activity_type': 'work', 'start_time': '06:00', 'end_time': '14:30'}]
        assert notes == ''

    def test_times_json(self):
        raw = ('Covering for Jo. Times: [{"activity_type": "work", "start_time": "08:00", "end_time": "12:00"}, '
               '{"activity_type": "hotline_support", "start_time": "12:00", "end_time": "16:00"}]')
        blocks, notes = parse_legacy_notes(raw, ActivityType.WORK)

        assert blocks == [
            {'activity_type': 'work', 'start_time': '08:00', 'end_time': '12:00'},
            {'activity_type': 'hotline_support', 'start_time': '12:00', 'end_time': '16:00'},
        ]
        assert notes == 'Covering for Jo.'

    def test_time_range_fragment(self):
        blocks, notes = parse_legacy_notes('Dentist after (09:30-13:00)', ActivityType.WORK)
        assert blocks == [{'activity_type': 'work', 'start_time': '09:30', 'end_time': '13:00'}]

    def test_impossible_time_range_ignored(self):
        blocks, _ = parse_legacy_notes('Late night (25:99-30:00)', ActivityType.WORK, ShiftType.LATE)
        assert blocks == [{'activity_type': 'work', 'start_time': '13:00', 'end_time': '21:30'}]

    def test_unparseable_json_falls_back(self):
        blocks, notes = parse_legacy_notes('Times: [{broken', ActivityType.TRAINING, ShiftType.NORMAL)
        assert blocks == [{'activity_type': 'training', 'start_time': '08:00', 'end_time': '16:30'}]

    def test_generated_fragments_removed(self):
        raw = 'Shift: early\nAuto-generated (bulk) bring laptop'
        _, notes = parse_legacy_notes(raw, ActivityType.WORK)
        assert notes == 'bring laptop'

    def test_invalid_blocks_dropped(self):
        raw = 'Times: [{"start_time": "25:00", "end_time": "26:00"}, {"start_time": "10:00", "end_time": "11:00"}]'
        blocks, _ = parse_legacy_notes(raw, ActivityType.WORK)
        assert blocks == [{'activity_type': 'work', 'start_time': '10:00', 'end_time': '11:00'}]


class TestNormalizeBlock:

    def test_unknown_activity_uses_fallback(self):
        block = normalize_block({'activity_type': 'lunch', 'start_time': '12:00', 'end_time': '12:30'},
                                ActivityType.WORK)
        assert block['activity_type'] == 'work'

    def test_missing_times(self):
        assert normalize_block({'activity_type': 'work'}, ActivityType.WORK) is None

    def test_is_valid_time(self):
        assert is_valid_time('00:00')
        assert is_valid_time('23:59')
        assert not is_valid_time('24:00')
        assert not is_valid_time('8:00')
        assert not is_valid_time(None)
