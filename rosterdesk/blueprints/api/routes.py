"""
API v1 Routes: coverage, impact, bulk scheduling, swaps and rotations.

Domain errors raised by the services are rendered by the app-level
SchedulingError handler.
"""
from flask import request

from rosterdesk.blueprints.api import api_bp
from rosterdesk.blueprints.api.decorators import jwt_required, requires_api_access
from rosterdesk.blueprints.api.helpers import api_success, load_body
from rosterdesk.blueprints.api.schemas import (
    CoverageAnalysisRequestSchema, ImpactRequestSchema,
    BulkConfigSchema, BulkCommitRequestSchema,
    SwapCreateSchema, OpenOfferCreateSchema, ClaimOfferSchema, ReviewSchema,
    BulkApproveSchema, SwapRequestSchema,
    RotationCreateSchema, FinalizeSchema, RotationPlanSchema,
)
from rosterdesk.extensions import limiter
from rosterdesk.models.user import AccessLevel
from rosterdesk.services.bulk_service import BulkScheduleService
from rosterdesk.services.coverage_service import CoverageService
from rosterdesk.services.impact_service import ImpactService
from rosterdesk.services.rotation_service import RotationService
from rosterdesk.services.swap_service import SwapService


# ── Coverage ────────────────────────────────────────────────

@api_bp.route('/coverage/analysis', methods=['POST'])
@limiter.limit('30 per minute')
@jwt_required
def api_coverage_analysis():
    """Coverage percentage and gaps for teams over a date range."""
    data = load_body(CoverageAnalysisRequestSchema())
    analysis = CoverageService.analyze(
        data['team_ids'], data['start_date'], data['end_date'], threshold=data['threshold'],
    )
    return api_success(analysis.to_dict())


@api_bp.route('/coverage/impact', methods=['POST'])
@jwt_required
def api_coverage_impact():
    """Predicted staffing once a user is taken off their shifts."""
    data = load_body(ImpactRequestSchema())
    user_id = data['user_id'] or request.api_user.id
    result = ImpactService.analyze(user_id, data['team_id'], data['dates'], data['shift_type'])
    return api_success(result.to_dict())


# ── Bulk scheduling ─────────────────────────────────────────

@api_bp.route('/schedule/bulk/preview', methods=['POST'])
@requires_api_access(AccessLevel.PLANNER)
def api_bulk_preview():
    """Generate drafts without writing them."""
    config = load_body(BulkConfigSchema())
    config.created_by = request.api_user.id
    return api_success(BulkScheduleService.preview(config).to_dict())


@api_bp.route('/schedule/bulk/commit', methods=['POST'])
@requires_api_access(AccessLevel.PLANNER)
def api_bulk_commit():
    """Write previewed drafts under a conflict policy."""
    data = load_body(BulkCommitRequestSchema())
    for draft in data['drafts']:
        draft.created_by = request.api_user.id
    result = BulkScheduleService.commit(data['drafts'], data['conflict_policy'])
    status = 200 if result.written == 0 else 201
    return api_success(result.to_dict(), status)


# ── Swaps ───────────────────────────────────────────────────

@api_bp.route('/swaps', methods=['POST'])
@limiter.limit('20 per minute')
@jwt_required
def api_create_swap():
    """Request a swap with a specific colleague."""
    data = load_body(SwapCreateSchema())
    swap = SwapService.create(
        requesting_user_id=request.api_user.id,
        requesting_entry_id=data['requesting_entry_id'],
        target_user_id=data['target_user_id'],
        target_entry_id=data['target_entry_id'],
        swap_date=data['swap_date'],
        team_id=data['team_id'],
        reason=data['reason'],
    )
    return api_success(SwapRequestSchema().dump(swap), 201)


@api_bp.route('/swaps/offers', methods=['POST'])
@limiter.limit('20 per minute')
@jwt_required
def api_create_offer():
    """Offer one of your shifts to any eligible colleague."""
    data = load_body(OpenOfferCreateSchema())
    swap = SwapService.create_open_offer(
        requesting_user_id=request.api_user.id,
        requesting_entry_id=data['requesting_entry_id'],
        swap_date=data['swap_date'],
        team_id=data['team_id'],
        reason=data['reason'],
    )
    return api_success(SwapRequestSchema().dump(swap), 201)


@api_bp.route('/swaps/offers', methods=['GET'])
@jwt_required
def api_list_offers():
    """Open offers the current user could claim.

    Query params:
        team_id (int, repeatable): Restrict to these of the user's teams
    """
    team_ids = request.args.getlist('team_id', type=int) or None
    offers = SwapService.list_open_offers(request.api_user.id, team_ids)
    return api_success(SwapRequestSchema().dump(offers, many=True))


@api_bp.route('/swaps/<int:request_id>/claim', methods=['POST'])
@jwt_required
def api_claim_offer(request_id):
    data = load_body(ClaimOfferSchema())
    swap = SwapService.claim_offer(request_id, request.api_user.id, data['target_entry_id'])
    return api_success(SwapRequestSchema().dump(swap))


@api_bp.route('/swaps/<int:request_id>/approve', methods=['POST'])
@requires_api_access(AccessLevel.PLANNER)
def api_approve_swap(request_id):
    data = load_body(ReviewSchema())
    swap = SwapService.approve(request_id, request.api_user.id, data['notes'])
    return api_success(SwapRequestSchema().dump(swap))


@api_bp.route('/swaps/<int:request_id>/reject', methods=['POST'])
@requires_api_access(AccessLevel.PLANNER)
def api_reject_swap(request_id):
    data = load_body(ReviewSchema())
    swap = SwapService.reject(request_id, request.api_user.id, data['notes'])
    return api_success(SwapRequestSchema().dump(swap))


@api_bp.route('/swaps/<int:request_id>/cancel', methods=['POST'])
@jwt_required
def api_cancel_swap(request_id):
    swap = SwapService.cancel(request_id, request.api_user.id)
    return api_success(SwapRequestSchema().dump(swap))


@api_bp.route('/swaps/bulk-approve', methods=['POST'])
@requires_api_access(AccessLevel.PLANNER)
def api_bulk_approve_swaps():
    """Approve several requests; each succeeds or fails on its own."""
    data = load_body(BulkApproveSchema())
    result = SwapService.bulk_approve(data['request_ids'], request.api_user.id, data['notes'])
    return api_success(result.to_dict())


# ── Rotations ───────────────────────────────────────────────

@api_bp.route('/rotations', methods=['POST'])
@requires_api_access(AccessLevel.PLANNER)
def api_generate_rotation():
    """Create a rotation plan with drafts for the selected teams."""
    data = load_body(RotationCreateSchema())
    result = RotationService.generate(
        data['team_ids'], data['start_date'], data['end_date'],
        created_by=request.api_user.id,
        tie_break=data['tie_break'],
        seed=data['seed'],
    )
    return api_success(result.to_dict(), 201)


@api_bp.route('/rotations/<int:plan_id>/regenerate', methods=['POST'])
@requires_api_access(AccessLevel.PLANNER)
def api_regenerate_rotation(plan_id):
    return api_success(RotationService.regenerate(plan_id).to_dict())


@api_bp.route('/rotations/<int:plan_id>/review', methods=['GET'])
@requires_api_access(AccessLevel.PLANNER)
def api_review_rotation(plan_id):
    """Fairness statistics and per-date table; marks the plan reviewed."""
    return api_success(RotationService.review(plan_id, request.api_user.id))


@api_bp.route('/rotations/<int:plan_id>/finalize', methods=['POST'])
@requires_api_access(AccessLevel.PLANNER)
def api_finalize_rotation(plan_id):
    data = load_body(FinalizeSchema())
    result = RotationService.finalize(plan_id, request.api_user.id, data['policy'])
    return api_success(result.to_dict())


@api_bp.route('/rotations/<int:plan_id>', methods=['DELETE'])
@requires_api_access(AccessLevel.PLANNER)
def api_discard_rotation(plan_id):
    plan = RotationService.discard(plan_id)
    return api_success(RotationPlanSchema().dump(plan))
