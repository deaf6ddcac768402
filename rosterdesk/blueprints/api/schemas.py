"""
Marshmallow schemas for API request loading and response serialization.
"""
from marshmallow import Schema, fields, validate, post_load

from rosterdesk.models.rotation import TieBreak
from rosterdesk.models.schedule import ShiftType, ActivityType, AvailabilityStatus
from rosterdesk.services.bulk_service import (
    BulkMode, BulkScheduleConfig, ScheduleEntryDraft, CONFLICT_POLICIES, BULK_NOTE
)
from rosterdesk.services.rotation_service import FINALIZE_POLICIES


# ── Shared helpers ──────────────────────────────────────────

class BaseSchema(Schema):
    """Base schema with common config."""
    class Meta:
        ordered = True


def _team_ids():
    return fields.List(fields.Int(validate=validate.Range(min=1)), required=True,
                       validate=validate.Length(min=1))


class TimeBlockSchema(BaseSchema):
    activity_type = fields.Str(required=True, validate=validate.OneOf([a.value for a in ActivityType]))
    start_time = fields.Str(required=True, validate=validate.Regexp(r'^([01]\d|2[0-3]):[0-5]\d$'))
    end_time = fields.Str(required=True, validate=validate.Regexp(r'^([01]\d|2[0-3]):[0-5]\d$'))


# ── Coverage ────────────────────────────────────────────────

class CoverageAnalysisRequestSchema(BaseSchema):
    team_ids = _team_ids()
    start_date = fields.Date(required=True)
    end_date = fields.Date(required=True)
    threshold = fields.Int(validate=validate.Range(min=0, max=100), load_default=None)


class ImpactRequestSchema(BaseSchema):
    """Defaults to the acting user when user_id is omitted."""
    user_id = fields.Int(load_default=None)
    team_id = fields.Int(required=True)
    dates = fields.List(fields.Date(), required=True, validate=validate.Length(min=1))
    shift_type = fields.Enum(ShiftType, by_value=True, load_default=None)


# ── Bulk scheduling ─────────────────────────────────────────

class BulkConfigSchema(BaseSchema):
    mode = fields.Enum(BulkMode, by_value=True, required=True)
    team_id = fields.Int(required=True)
    start_date = fields.Date(required=True)
    end_date = fields.Date(required=True)
    shift_type = fields.Enum(ShiftType, by_value=True, load_default=ShiftType.NORMAL)
    skip_weekends = fields.Bool(load_default=True)
    skip_holidays = fields.Bool(load_default=False)
    user_ids = fields.List(fields.Int(), load_default=list)

    @post_load
    def make_config(self, data, **kwargs):
        return BulkScheduleConfig(**data)


class DraftSchema(BaseSchema):
    user_id = fields.Int(required=True)
    team_id = fields.Int(required=True)
    date = fields.Date(required=True)
    shift_type = fields.Enum(ShiftType, by_value=True, load_default=ShiftType.NORMAL)
    activity_type = fields.Enum(ActivityType, by_value=True, load_default=ActivityType.WORK)
    availability_status = fields.Enum(AvailabilityStatus, by_value=True,
                                      load_default=AvailabilityStatus.AVAILABLE)
    notes = fields.Str(load_default=BULK_NOTE)
    time_blocks = fields.List(fields.Nested(TimeBlockSchema), load_default=list)

    @post_load
    def make_draft(self, data, **kwargs):
        return ScheduleEntryDraft(**data)


class BulkCommitRequestSchema(BaseSchema):
    drafts = fields.List(fields.Nested(DraftSchema), required=True)
    conflict_policy = fields.Str(validate=validate.OneOf(CONFLICT_POLICIES), load_default=None)


# ── Swaps ───────────────────────────────────────────────────

class SwapCreateSchema(BaseSchema):
    requesting_entry_id = fields.Int(required=True)
    target_user_id = fields.Int(required=True)
    target_entry_id = fields.Int(required=True)
    swap_date = fields.Date(required=True)
    team_id = fields.Int(required=True)
    reason = fields.Str(load_default=None, validate=validate.Length(max=1000))


class OpenOfferCreateSchema(BaseSchema):
    requesting_entry_id = fields.Int(required=True)
    swap_date = fields.Date(required=True)
    team_id = fields.Int(required=True)
    reason = fields.Str(load_default=None, validate=validate.Length(max=1000))


class ClaimOfferSchema(BaseSchema):
    target_entry_id = fields.Int(load_default=None, allow_none=True)


class ReviewSchema(BaseSchema):
    notes = fields.Str(load_default=None, validate=validate.Length(max=1000))


class BulkApproveSchema(BaseSchema):
    request_ids = fields.List(fields.Int(), required=True, validate=validate.Length(min=1))
    notes = fields.Str(load_default=None)


class SwapRequestSchema(BaseSchema):
    """Swap request representation."""
    id = fields.Int(dump_only=True)
    requesting_user_id = fields.Int()
    requesting_entry_id = fields.Int()
    target_user_id = fields.Int(allow_none=True)
    target_entry_id = fields.Int(allow_none=True)
    swap_date = fields.Date()
    team_id = fields.Int()
    status = fields.Method('get_status')
    is_open_offer = fields.Bool()
    reason = fields.Str(allow_none=True)
    reviewed_by_id = fields.Int(allow_none=True)
    reviewed_at = fields.DateTime(format='iso', allow_none=True)
    review_notes = fields.Str(allow_none=True)
    created_at = fields.DateTime(format='iso')

    def get_status(self, obj):
        return obj.status.value if obj.status else None


# ── Rotations ───────────────────────────────────────────────

class RotationCreateSchema(BaseSchema):
    team_ids = _team_ids()
    start_date = fields.Date(required=True)
    end_date = fields.Date(required=True)
    tie_break = fields.Enum(TieBreak, by_value=True, load_default=None)
    seed = fields.Int(load_default=None)


class FinalizeSchema(BaseSchema):
    policy = fields.Str(validate=validate.OneOf(FINALIZE_POLICIES), load_default=None)


class RotationPlanSchema(BaseSchema):
    """Rotation plan summary."""
    id = fields.Int(dump_only=True)
    team_ids = fields.List(fields.Int())
    start_date = fields.Date()
    end_date = fields.Date()
    state = fields.Method('get_state')
    tie_break = fields.Method('get_tie_break')
    seed = fields.Int(allow_none=True)
    reviewed_by_id = fields.Int(allow_none=True)
    finalized_at = fields.DateTime(format='iso', allow_none=True)

    def get_state(self, obj):
        return obj.state.value

    def get_tie_break(self, obj):
        return obj.tie_break.value
