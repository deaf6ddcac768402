"""
Shift swap requests: creation checks, open offers, and guarded approval.

Checks are re-run at approval time because entries may have changed since
the request was created. Every state transition is a conditional write on
(status, version); losing that race raises ConflictDetected and nothing is
applied.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from rosterdesk.errors import (
    SchedulingError, ValidationFailure, ConflictDetected, CollaboratorUnavailable
)
from rosterdesk.extensions import db
from rosterdesk.models.swap import SwapRequest, SwapStatus
from rosterdesk.services.ledger import ScheduleLedger, Directory, collaborator
from rosterdesk.utils.notifications import notify_swap_event, notify_team_managers

logger = logging.getLogger(__name__)


def _fail(code, message, **details):
    raise ValidationFailure(message, code=code, details=details or None)


def check_entry_swappable(entry, side):
    """Raise unless `entry` may take part in a swap right now."""
    if not entry.rule.swappable:
        _fail('entry_not_swappable',
              f"{side.capitalize()} shift is not available for swapping",
              entry_id=entry.id, activity_type=entry.activity_type.value)
    if not entry.is_available:
        _fail('entry_unavailable', "Both shifts must be available", entry_id=entry.id)


def check_claimer_free(claimer_entries, team_id: int) -> None:
    """Raise unless a claimer taking a shift without giving one back is free that day."""
    for entry in claimer_entries:
        check_entry_swappable(entry, 'your')
        if entry.team_id == team_id:
            _fail('slot_taken', "You already have a shift in this team on that date", entry_id=entry.id)


def validate_swap_request(requesting_user_id: int, target_user_id: int,
                          requesting_entry, target_entry, swap_date: date, team_id: int,
                          are_partnered: Callable[[int, int], bool],
                          has_pending: Callable[[List[int], date], bool],
                          today: date) -> None:
    """
    Creation checks for a two-party swap.

    Raises:
        ValidationFailure: with one of same_user, date_in_past, entry_not_found,
            date_mismatch, teams_not_partnered, team_mismatch, entry_not_owned,
            entry_not_swappable, entry_unavailable, duplicate_pending
    """
    if requesting_user_id == target_user_id:
        _fail('same_user', "Cannot swap with yourself")
    if swap_date < today:
        _fail('date_in_past', "Cannot swap shifts in the past", swap_date=swap_date.isoformat())
    if requesting_entry is None or target_entry is None:
        _fail('entry_not_found', "Schedule entries not found")
    if requesting_entry.date != swap_date or target_entry.date != swap_date:
        _fail('date_mismatch', "Shifts must be on the same date as the swap")
    if not are_partnered(requesting_entry.team_id, target_entry.team_id):
        _fail('teams_not_partnered',
              "Users must be in the same team or teams must be partnered",
              teams=[requesting_entry.team_id, target_entry.team_id])
    if requesting_entry.team_id != team_id:
        _fail('team_mismatch', "Invalid team for requesting user", team_id=team_id)
    if requesting_entry.user_id != requesting_user_id or target_entry.user_id != target_user_id:
        _fail('entry_not_owned', "Each shift must belong to its user")
    check_entry_swappable(requesting_entry, 'your')
    check_entry_swappable(target_entry, 'target')
    if has_pending([requesting_user_id, target_user_id], swap_date):
        _fail('duplicate_pending', "A pending swap request already exists for this date")


def validate_open_offer(requesting_user_id: int, requesting_entry, swap_date: date, team_id: int,
                        has_pending: Callable[[List[int], date], bool], today: date) -> None:
    """Requester-side creation checks for an open offer."""
    if swap_date < today:
        _fail('date_in_past', "Cannot swap shifts in the past", swap_date=swap_date.isoformat())
    if requesting_entry is None:
        _fail('entry_not_found', "Schedule entry not found")
    if requesting_entry.date != swap_date:
        _fail('date_mismatch', "Shift must be on the same date as the swap")
    if requesting_entry.team_id != team_id:
        _fail('team_mismatch', "Invalid team for requesting user", team_id=team_id)
    if requesting_entry.user_id != requesting_user_id:
        _fail('entry_not_owned', "The shift must belong to the requesting user")
    check_entry_swappable(requesting_entry, 'your')
    if has_pending([requesting_user_id], swap_date):
        _fail('duplicate_pending', "A pending swap request already exists for this date")


def validate_swap_approval(swap, requesting_entry, target_entry, claimer_entries=()) -> None:
    """
    Approval-time checks; state may have drifted since creation.

    `claimer_entries` are the target user's entries on the swap date, checked
    when a claimed offer transfers the shift without a return entry.

    Raises:
        ConflictDetected: request is no longer pending
        ValidationFailure: any other check failed (request stays pending)
    """
    if swap is None:
        _fail('request_not_found', "Swap request not found")
    if not swap.is_pending:
        raise ConflictDetected(
            "Swap request has already been processed",
            code='already_processed',
            details={'status': swap.status.value},
        )
    if not swap.is_claimed:
        _fail('offer_not_claimed', "Open offer has not been claimed yet")
    if requesting_entry is None or (swap.target_entry_id is not None and target_entry is None):
        _fail('entry_not_found', "One or both schedule entries no longer exist")
    if requesting_entry.user_id != swap.requesting_user_id or (
            target_entry is not None and target_entry.user_id != swap.target_user_id):
        _fail('entry_not_owned', "One or both shifts changed owner")
    check_entry_swappable(requesting_entry, 'requesting')
    if target_entry is not None:
        check_entry_swappable(target_entry, 'target')
    else:
        check_claimer_free(claimer_entries, requesting_entry.team_id)


@dataclass
class BulkApprovalResult:
    approved: List[int]
    failed: List[dict]

    def to_dict(self):
        return {'approved': self.approved, 'failed': self.failed}


class SwapService:
    """Create, claim and review shift swap requests."""

    @staticmethod
    @collaborator('Swap store')
    def get(request_id: int) -> Optional[SwapRequest]:
        return db.session.get(SwapRequest, request_id)

    @staticmethod
    @collaborator('Swap store')
    def has_pending(user_ids: List[int], swap_date: date, exclude_id: Optional[int] = None) -> bool:
        """True when a pending request involves any of the users on that date."""
        query = SwapRequest.query.filter(
            SwapRequest.swap_date == swap_date,
            SwapRequest.status == SwapStatus.PENDING,
            or_(
                SwapRequest.requesting_user_id.in_(user_ids),
                SwapRequest.target_user_id.in_(user_ids),
            ),
        )
        if exclude_id is not None:
            query = query.filter(SwapRequest.id != exclude_id)
        return db.session.query(query.exists()).scalar()

    @staticmethod
    def _persist(swap):
        try:
            db.session.add(swap)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error("Could not store swap request: %s", e, exc_info=True)
            raise CollaboratorUnavailable("Swap store unavailable") from e
        return swap

    @staticmethod
    def create(requesting_user_id: int, requesting_entry_id: int, target_user_id: int,
               target_entry_id: int, swap_date: date, team_id: int,
               reason: Optional[str] = None, today: Optional[date] = None) -> SwapRequest:
        """Create a two-party swap request after running every creation check."""
        entries = ScheduleLedger.get_entries([requesting_entry_id, target_entry_id])
        validate_swap_request(
            requesting_user_id, target_user_id,
            entries.get(requesting_entry_id), entries.get(target_entry_id),
            swap_date, team_id,
            are_partnered=Directory.are_partnered,
            has_pending=SwapService.has_pending,
            today=today or date.today(),
        )
        swap = SwapService._persist(SwapRequest(
            requesting_user_id=requesting_user_id,
            requesting_entry_id=requesting_entry_id,
            target_user_id=target_user_id,
            target_entry_id=target_entry_id,
            swap_date=swap_date,
            team_id=team_id,
            reason=reason,
        ))
        logger.info("Swap request %s created by user %s", swap.id, requesting_user_id)
        notify_swap_event(swap, 'request_created', actor_id=requesting_user_id)
        return swap

    @staticmethod
    def create_open_offer(requesting_user_id: int, requesting_entry_id: int, swap_date: date,
                          team_id: int, reason: Optional[str] = None,
                          today: Optional[date] = None) -> SwapRequest:
        """Offer a shift to anyone eligible in a partnered team."""
        entry = ScheduleLedger.get_entries([requesting_entry_id]).get(requesting_entry_id)
        validate_open_offer(
            requesting_user_id, entry, swap_date, team_id,
            has_pending=SwapService.has_pending,
            today=today or date.today(),
        )
        swap = SwapService._persist(SwapRequest(
            requesting_user_id=requesting_user_id,
            requesting_entry_id=requesting_entry_id,
            swap_date=swap_date,
            team_id=team_id,
            is_open_offer=True,
            reason=reason,
        ))
        logger.info("Open offer %s created by user %s", swap.id, requesting_user_id)
        notify_team_managers(
            team_id, 'New open shift offer',
            message=f"A shift on {swap_date.isoformat()} is up for grabs",
            exclude_user_id=requesting_user_id,
        )
        return swap

    @staticmethod
    @collaborator('Swap store')
    def list_open_offers(user_id: int, team_ids: Optional[List[int]] = None,
                         today: Optional[date] = None) -> List[SwapRequest]:
        """Pending, unclaimed, upcoming offers the user could claim."""
        own_teams = Directory.team_ids_for_user(user_id)
        if team_ids is None:
            team_ids = own_teams
        else:
            team_ids = [t for t in team_ids if t in own_teams]
        visible = set()
        for team_id in team_ids:
            visible |= Directory.partnered_team_ids(team_id)
        if not visible:
            return []
        return SwapRequest.query.filter(
            SwapRequest.status == SwapStatus.PENDING,
            SwapRequest.is_open_offer.is_(True),
            SwapRequest.target_user_id.is_(None),
            SwapRequest.swap_date >= (today or date.today()),
            SwapRequest.team_id.in_(sorted(visible)),
            SwapRequest.requesting_user_id != user_id,
        ).order_by(SwapRequest.swap_date, SwapRequest.id).all()

    @staticmethod
    def claim_offer(request_id: int, user_id: int, target_entry_id: Optional[int] = None,
                    today: Optional[date] = None) -> SwapRequest:
        """
        Claim an open offer, turning it into a regular request awaiting review.

        Args:
            request_id: Open offer to claim
            user_id: Claiming user
            target_entry_id: One of the claimer's own entries on that date to
                give in return (optional)

        Raises:
            ValidationFailure: claimer not eligible
            ConflictDetected: offer already claimed or no longer pending
        """
        swap = SwapService.get(request_id)
        if swap is None:
            _fail('request_not_found', "Swap request not found")
        if not swap.is_pending or not swap.is_open_offer:
            raise ConflictDetected("Offer is no longer open", code='offer_unavailable')
        if swap.requesting_user_id == user_id:
            _fail('same_user', "Cannot claim your own offer")
        if swap.swap_date < (today or date.today()):
            _fail('date_in_past', "Cannot swap shifts in the past")

        if not any(Directory.are_partnered(t, swap.team_id) for t in Directory.team_ids_for_user(user_id)):
            _fail('teams_not_partnered',
                  "Users must be in the same team or teams must be partnered")

        if target_entry_id is not None:
            entry = ScheduleLedger.get_entries([target_entry_id]).get(target_entry_id)
            if entry is None:
                _fail('entry_not_found', "Schedule entry not found")
            if entry.user_id != user_id:
                _fail('entry_not_owned', "The shift must belong to the claiming user")
            if entry.date != swap.swap_date:
                _fail('date_mismatch', "Shifts must be on the same date as the swap")
            if not Directory.are_partnered(entry.team_id, swap.team_id):
                _fail('teams_not_partnered',
                      "Users must be in the same team or teams must be partnered")
            check_entry_swappable(entry, 'your')
        else:
            check_claimer_free(ScheduleLedger.user_entries_on(user_id, swap.swap_date), swap.team_id)

        if SwapService.has_pending([user_id], swap.swap_date, exclude_id=swap.id):
            _fail('duplicate_pending', "A pending swap request already exists for this date")

        try:
            claimed = SwapRequest.query.filter(
                SwapRequest.id == swap.id,
                SwapRequest.status == SwapStatus.PENDING,
                SwapRequest.is_open_offer.is_(True),
                SwapRequest.version == swap.version,
            ).update({
                'target_user_id': user_id,
                'target_entry_id': target_entry_id,
                'is_open_offer': False,
                'version': swap.version + 1,
                'updated_at': datetime.utcnow(),
            }, synchronize_session=False)
            if claimed != 1:
                db.session.rollback()
                raise ConflictDetected("Offer was claimed by someone else", code='offer_unavailable')
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error("Could not claim offer %s: %s", request_id, e, exc_info=True)
            raise CollaboratorUnavailable("Swap store unavailable") from e

        db.session.refresh(swap)
        logger.info("Open offer %s claimed by user %s", swap.id, user_id)
        notify_swap_event(swap, 'offer_claimed', actor_id=user_id)
        return swap

    @staticmethod
    def approve(request_id: int, reviewer_id: int, notes: Optional[str] = None) -> SwapRequest:
        """
        Re-validate and apply a swap: the two entries exchange owners.

        Raises:
            ValidationFailure: a check failed; the request stays pending
            ConflictDetected: already processed, or a guard lost a race
        """
        swap = SwapService.get(request_id)
        entries = {}
        if swap is not None:
            entries = ScheduleLedger.get_entries([swap.requesting_entry_id, swap.target_entry_id])
            requesting_entry = entries.get(swap.requesting_entry_id)
            target_entry = entries.get(swap.target_entry_id)
        else:
            requesting_entry = target_entry = None
        claimer_entries = []
        if swap is not None and swap.target_entry_id is None and swap.target_user_id is not None:
            claimer_entries = ScheduleLedger.user_entries_on(swap.target_user_id, swap.swap_date)
        validate_swap_approval(swap, requesting_entry, target_entry, claimer_entries)

        expected_versions = {
            'swap': swap.version,
            'requesting': requesting_entry.version,
            'target': target_entry.version if target_entry is not None else None,
        }
        SwapService._commit_approval(swap, expected_versions, reviewer_id, notes)
        logger.info("Swap request %s approved by user %s", swap.id, reviewer_id)
        notify_swap_event(swap, 'request_approved', actor_id=reviewer_id)
        return swap

    @staticmethod
    def _commit_approval(swap: SwapRequest, expected_versions: Dict[str, Optional[int]],
                         reviewer_id: int, notes: Optional[str]) -> None:
        """Apply the status transition and the entry exchange in one transaction."""
        try:
            moved = SwapRequest.query.filter(
                SwapRequest.id == swap.id,
                SwapRequest.status == SwapStatus.PENDING,
                SwapRequest.version == expected_versions['swap'],
            ).update({
                'status': SwapStatus.APPROVED,
                'reviewed_by_id': reviewer_id,
                'reviewed_at': datetime.utcnow(),
                'review_notes': notes,
                'version': expected_versions['swap'] + 1,
                'updated_at': datetime.utcnow(),
            }, synchronize_session=False)
            if moved != 1:
                raise ConflictDetected("Swap request changed during approval", details={'swap_id': swap.id})

            if not ScheduleLedger.conditional_update(
                    swap.requesting_entry_id, expected_versions['requesting'],
                    user_id=swap.target_user_id):
                raise ConflictDetected("Schedule entry changed during approval",
                                       details={'entry_id': swap.requesting_entry_id})

            if swap.target_entry_id is not None:
                if not ScheduleLedger.conditional_update(
                        swap.target_entry_id, expected_versions['target'],
                        user_id=swap.requesting_user_id):
                    raise ConflictDetected("Schedule entry changed during approval",
                                           details={'entry_id': swap.target_entry_id})
            db.session.commit()
        except ConflictDetected:
            db.session.rollback()
            logger.warning("Swap request %s approval rolled back after a concurrent change", swap.id)
            raise
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error("Swap request %s approval failed: %s", swap.id, e, exc_info=True)
            raise CollaboratorUnavailable("Schedule ledger unavailable") from e
        db.session.refresh(swap)

    @staticmethod
    def _close(swap: SwapRequest, status: SwapStatus, actor_id: int, notes: Optional[str]) -> None:
        try:
            values = {
                'status': status,
                'version': swap.version + 1,
                'updated_at': datetime.utcnow(),
            }
            if status == SwapStatus.REJECTED:
                values.update(reviewed_by_id=actor_id, reviewed_at=datetime.utcnow(), review_notes=notes)
            closed = SwapRequest.query.filter(
                SwapRequest.id == swap.id,
                SwapRequest.status == SwapStatus.PENDING,
                SwapRequest.version == swap.version,
            ).update(values, synchronize_session=False)
            if closed != 1:
                db.session.rollback()
                raise ConflictDetected("Swap request has already been processed", code='already_processed')
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error("Swap request %s update failed: %s", swap.id, e, exc_info=True)
            raise CollaboratorUnavailable("Swap store unavailable") from e
        db.session.refresh(swap)

    @staticmethod
    def reject(request_id: int, reviewer_id: int, notes: Optional[str] = None) -> SwapRequest:
        swap = SwapService.get(request_id)
        if swap is None:
            _fail('request_not_found', "Swap request not found")
        if not swap.is_pending:
            raise ConflictDetected("Swap request has already been processed", code='already_processed')
        SwapService._close(swap, SwapStatus.REJECTED, reviewer_id, notes)
        logger.info("Swap request %s rejected by user %s", swap.id, reviewer_id)
        notify_swap_event(swap, 'request_rejected', actor_id=reviewer_id)
        return swap

    @staticmethod
    def cancel(request_id: int, user_id: int) -> SwapRequest:
        """Withdraw a pending request; only the requester may do so."""
        swap = SwapService.get(request_id)
        if swap is None:
            _fail('request_not_found', "Swap request not found")
        if swap.requesting_user_id != user_id:
            _fail('not_requester', "Only the requester can cancel a swap request")
        if not swap.is_pending:
            raise ConflictDetected("Swap request has already been processed", code='already_processed')
        SwapService._close(swap, SwapStatus.CANCELLED, user_id, None)
        logger.info("Swap request %s cancelled by user %s", swap.id, user_id)
        notify_swap_event(swap, 'request_cancelled', actor_id=user_id)
        return swap

    @staticmethod
    def bulk_approve(request_ids: List[int], reviewer_id: int,
                     notes: Optional[str] = None) -> BulkApprovalResult:
        """Approve each request independently; failures do not stop the batch."""
        result = BulkApprovalResult(approved=[], failed=[])
        for request_id in request_ids:
            try:
                SwapService.approve(request_id, reviewer_id, notes)
            except SchedulingError as e:
                result.failed.append({'id': request_id, **e.to_dict()})
            else:
                result.approved.append(request_id)
        return result
