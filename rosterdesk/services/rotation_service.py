"""
On-call (hotline) rotation: draft generation, review and finalization.

A plan moves draft_generated -> reviewed -> finalized, or to discarded.
Drafts live in their own table until finalization writes them to the
schedule ledger as hotline_support entries.
"""
import logging
import random
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Tuple

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from rosterdesk.errors import (
    ValidationFailure, ConflictDetected, CollaboratorUnavailable, ConfigurationGap
)
from rosterdesk.extensions import db
from rosterdesk.models.notification import NotificationCategory
from rosterdesk.models.rotation import (
    RotationPlan, RotationDraftAssignment, PlanState, DraftStatus, TieBreak
)
from rosterdesk.models.schedule import ScheduleEntry, ActivityType, ShiftType
from rosterdesk.services.ledger import ScheduleLedger, Directory, HolidayCalendar, collaborator
from rosterdesk.utils.dates import days_between, is_weekend
from rosterdesk.utils.notifications import dispatch

logger = logging.getLogger(__name__)

FINALIZE_POLICIES = ('skip', 'fail')


@dataclass
class RotationDraft:
    team_id: int
    user_id: int
    date: date
    start_time: object
    end_time: object
    is_substitute: bool = False
    original_user_id: Optional[int] = None


@dataclass
class RotationBuild:
    drafts: List[RotationDraft] = field(default_factory=list)
    uncovered: List[dict] = field(default_factory=list)


def rotation_conflicts(team_id: int, users: Dict[int, object], entries: Iterable[object],
                       holidays: Iterable[object]) -> Dict[Tuple[int, date], str]:
    """
    Map (user_id, date) to the reason the user cannot take on-call duty.

    Args:
        team_id: Team being drafted
        users: user_id -> user with country_code / region_code
        entries: Ledger entries of those users across every team
        holidays: Holiday records with applies_to(country, region)
    """
    conflicts = {}
    for entry in entries:
        key = (entry.user_id, entry.date)
        if entry.rule.blocks_rotation:
            conflicts.setdefault(key, entry.activity_type.value)
        elif not entry.is_available:
            conflicts.setdefault(key, 'unavailable')
        elif entry.activity_type == ActivityType.HOTLINE_SUPPORT and entry.team_id != team_id:
            conflicts.setdefault(key, 'hotline_elsewhere')

    for holiday in holidays:
        for user_id, user in users.items():
            if user.country_code and holiday.applies_to(user.country_code, user.region_code):
                conflicts.setdefault((user_id, holiday.date), 'public_holiday')
    return conflicts


def build_rotation_drafts(team_id: int, dates: Iterable[date], config, members: List[int],
                          last_assigned: Dict[int, date], conflicts: Dict[Tuple[int, date], str],
                          tie_break: TieBreak = TieBreak.SEQUENTIAL,
                          rng: Optional[random.Random] = None) -> RotationBuild:
    """
    Draft on-call assignments for one team.

    Members are ranked least-recent assignment first (never assigned ranks
    first), then fewest assignments in this draft, then the tie-break. A
    conflicted primary is replaced by the best-ranked free member, marked as
    a substitute; when nobody is free the slot is reported as uncovered.

    Args:
        team_id: Team being drafted
        dates: Candidate dates; weekends are dropped
        config: Object with min_staff_required and hours_for(date)
        members: Eligible user ids in pool order
        last_assigned: user_id -> date of the last committed assignment
        conflicts: (user_id, date) -> reason, see rotation_conflicts
        tie_break: Ordering among equally ranked members
        rng: Random source for TieBreak.RANDOM

    Returns:
        RotationBuild with drafts and uncovered slots
    """
    members = list(dict.fromkeys(members))
    tie_rank = {user_id: i for i, user_id in enumerate(members)}
    if tie_break == TieBreak.RANDOM:
        shuffled = list(members)
        (rng or random.Random()).shuffle(shuffled)
        tie_rank = {user_id: i for i, user_id in enumerate(shuffled)}

    last = dict(last_assigned)
    counts = {user_id: 0 for user_id in members}

    def rank(user_id):
        return (last.get(user_id) or date.min, counts[user_id], tie_rank[user_id])

    result = RotationBuild()
    for day in dates:
        if is_weekend(day):
            continue
        start_time, end_time = config.hours_for(day)
        taken = set()

        for slot in range(config.min_staff_required):
            ordered = sorted((m for m in members if m not in taken), key=rank)
            if not ordered:
                result.uncovered.append({
                    'team_id': team_id, 'date': day.isoformat(), 'slot': slot,
                    'reason': 'pool_exhausted',
                })
                continue

            primary = ordered[0]
            chosen = primary
            original = None
            if (primary, day) in conflicts:
                taken.add(primary)
                chosen = next((m for m in ordered[1:] if (m, day) not in conflicts), None)
                original = primary
                if chosen is None:
                    result.uncovered.append({
                        'team_id': team_id, 'date': day.isoformat(), 'slot': slot,
                        'original_user_id': primary,
                        'reason': conflicts[(primary, day)],
                    })
                    continue

            taken.add(chosen)
            counts[chosen] += 1
            last[chosen] = day
            result.drafts.append(RotationDraft(
                team_id=team_id,
                user_id=chosen,
                date=day,
                start_time=start_time,
                end_time=end_time,
                is_substitute=original is not None,
                original_user_id=original,
            ))
    return result


def fairness_stats(drafts: Iterable[object], eligible: Iterable[int]) -> dict:
    """Per-user assignment counts, average and substitute count."""
    counts = {user_id: 0 for user_id in eligible}
    substitutes = 0
    for d in drafts:
        counts[d.user_id] = counts.get(d.user_id, 0) + 1
        if d.is_substitute:
            substitutes += 1
    average = round(sum(counts.values()) / len(counts), 2) if counts else 0
    return {'assignments': counts, 'average': average, 'substitutes': substitutes}


@dataclass
class GenerationResult:
    plan: RotationPlan
    uncovered: List[dict] = field(default_factory=list)
    configuration_gaps: List[ConfigurationGap] = field(default_factory=list)

    def to_dict(self):
        return {
            'plan_id': self.plan.id,
            'state': self.plan.state.value,
            'drafts': [d.to_dict() for d in self.plan.drafts],
            'uncovered': self.uncovered,
            'configuration_gaps': [g.to_dict() for g in self.configuration_gaps],
        }


@dataclass
class FinalizeResult:
    plan_id: int
    created: List[dict] = field(default_factory=list)
    already_committed: List[dict] = field(default_factory=list)
    skipped: List[dict] = field(default_factory=list)

    def to_dict(self):
        return {
            'plan_id': self.plan_id,
            'created': self.created,
            'already_committed': self.already_committed,
            'skipped': self.skipped,
        }


class RotationService:
    """Generate, review, finalize and discard rotation plans."""

    @staticmethod
    @collaborator('Rotation store')
    def get_plan(plan_id: int) -> RotationPlan:
        plan = db.session.get(RotationPlan, plan_id)
        if plan is None:
            raise ValidationFailure("Rotation plan not found", code='plan_not_found',
                                    details={'plan_id': plan_id})
        return plan

    @staticmethod
    def _transition(plan: RotationPlan, allowed: Tuple[PlanState, ...], **values) -> None:
        """Guarded state write; the caller commits."""
        values['version'] = plan.version + 1
        moved = RotationPlan.query.filter(
            RotationPlan.id == plan.id,
            RotationPlan.state.in_(allowed),
            RotationPlan.version == plan.version,
        ).update(values, synchronize_session=False)
        if moved != 1:
            raise ConflictDetected("Rotation plan changed concurrently", details={'plan_id': plan.id})

    @staticmethod
    def _build(plan: RotationPlan) -> Tuple[List[dict], List[ConfigurationGap]]:
        """Create draft rows for every team of the plan."""
        rng = random.Random(plan.seed)
        dates = days_between(plan.start_date, plan.end_date, skip_weekends=True)
        holidays = HolidayCalendar.holidays_between(plan.start_date, plan.end_date)
        in_run: Dict[Tuple[int, date], str] = {}
        uncovered, gaps = [], []

        for team_id in plan.team_ids:
            config = Directory.rotation_config(team_id)
            if config is None:
                gap = ConfigurationGap('missing_rotation_config', team_id,
                                       f"No rotation configuration for team {team_id}")
                logger.warning(gap.message)
                gaps.append(gap)
                continue
            members = [m.user_id for m in Directory.eligible_members(team_id)]
            if not members:
                gap = ConfigurationGap('no_eligible_members', team_id,
                                       f"No eligible rotation members for team {team_id}")
                logger.warning(gap.message)
                gaps.append(gap)
                continue

            users = Directory.users(members)
            entries = ScheduleLedger.entries_for_users(members, plan.start_date, plan.end_date)
            conflicts = rotation_conflicts(team_id, users, entries, holidays)
            for key, reason in in_run.items():
                conflicts.setdefault(key, reason)

            build = build_rotation_drafts(
                team_id, dates, config, members,
                last_assigned=ScheduleLedger.last_assignment_dates(team_id, plan.start_date),
                conflicts=conflicts,
                tie_break=plan.tie_break,
                rng=rng,
            )
            for d in build.drafts:
                in_run[(d.user_id, d.date)] = 'hotline_in_run'
                db.session.add(RotationDraftAssignment(
                    plan_id=plan.id,
                    team_id=d.team_id,
                    user_id=d.user_id,
                    date=d.date,
                    start_time=d.start_time,
                    end_time=d.end_time,
                    is_substitute=d.is_substitute,
                    original_user_id=d.original_user_id,
                ))
            uncovered.extend(build.uncovered)
        return uncovered, gaps

    @staticmethod
    def generate(team_ids: List[int], start_date: date, end_date: date, created_by: Optional[int] = None,
                 tie_break: Optional[TieBreak] = None, seed: Optional[int] = None) -> GenerationResult:
        """
        Create a plan in draft_generated with drafts for every team.

        Raises:
            ValidationFailure: empty team list or reversed range
            CollaboratorUnavailable: a fetch or the write failed
        """
        if not team_ids:
            raise ValidationFailure("Select at least one team", code='no_teams')
        if end_date < start_date:
            raise ValidationFailure("End date must not be before start date", code='invalid_date_range')
        if tie_break is None:
            tie_break = TieBreak(current_app.config.get('ROTATION_TIE_BREAK', 'sequential'))
        if tie_break == TieBreak.RANDOM and seed is None:
            seed = random.SystemRandom().randrange(2 ** 31)

        plan = RotationPlan(
            team_ids=list(dict.fromkeys(team_ids)),
            start_date=start_date,
            end_date=end_date,
            tie_break=tie_break,
            seed=seed,
            created_by_id=created_by,
        )
        try:
            db.session.add(plan)
            db.session.flush()
            uncovered, gaps = RotationService._build(plan)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error("Rotation generation failed: %s", e, exc_info=True)
            raise CollaboratorUnavailable("Rotation store unavailable") from e

        logger.info("Rotation plan %s generated: %d drafts, %d uncovered",
                    plan.id, len(plan.drafts), len(uncovered))
        return GenerationResult(plan=plan, uncovered=uncovered, configuration_gaps=gaps)

    @staticmethod
    def regenerate(plan_id: int) -> GenerationResult:
        """Replace a plan's drafts; a reviewed plan goes back to draft_generated."""
        plan = RotationService.get_plan(plan_id)
        if plan.is_terminal:
            raise ConflictDetected("Rotation plan is closed", code='plan_closed',
                                   details={'state': plan.state.value})
        try:
            RotationService._transition(
                plan, (PlanState.DRAFT_GENERATED, PlanState.REVIEWED),
                state=PlanState.DRAFT_GENERATED, reviewed_by_id=None, reviewed_at=None,
            )
            RotationDraftAssignment.query.filter_by(plan_id=plan.id).delete(synchronize_session=False)
            uncovered, gaps = RotationService._build(plan)
            db.session.commit()
        except ConflictDetected:
            db.session.rollback()
            raise
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error("Rotation regeneration failed for plan %s: %s", plan_id, e, exc_info=True)
            raise CollaboratorUnavailable("Rotation store unavailable") from e

        db.session.refresh(plan)
        logger.info("Rotation plan %s regenerated", plan.id)
        return GenerationResult(plan=plan, uncovered=uncovered, configuration_gaps=gaps)

    @staticmethod
    def review(plan_id: int, reviewer_id: int) -> dict:
        """Fairness statistics and the per-date table; marks the plan reviewed."""
        plan = RotationService.get_plan(plan_id)
        if plan.is_terminal:
            raise ConflictDetected("Rotation plan is closed", code='plan_closed',
                                   details={'state': plan.state.value})

        weekdays = days_between(plan.start_date, plan.end_date, skip_weekends=True)
        teams = {}
        for team_id in plan.team_ids:
            team_drafts = [d for d in plan.drafts if d.team_id == team_id]
            eligible = [m.user_id for m in Directory.eligible_members(team_id)]
            stats = fairness_stats(team_drafts, eligible)

            config = Directory.rotation_config(team_id)
            required = config.min_staff_required if config is not None else 0
            per_day = {}
            for d in team_drafts:
                per_day[d.date] = per_day.get(d.date, 0) + 1
            stats['uncovered'] = [
                {'date': day.isoformat(), 'missing': required - per_day.get(day, 0)}
                for day in weekdays if per_day.get(day, 0) < required
            ]
            teams[team_id] = stats

        try:
            RotationService._transition(
                plan, (PlanState.DRAFT_GENERATED, PlanState.REVIEWED),
                state=PlanState.REVIEWED, reviewed_by_id=reviewer_id, reviewed_at=datetime.utcnow(),
            )
            db.session.commit()
        except ConflictDetected:
            db.session.rollback()
            raise
        except SQLAlchemyError as e:
            db.session.rollback()
            raise CollaboratorUnavailable("Rotation store unavailable") from e

        db.session.refresh(plan)
        logger.info("Rotation plan %s reviewed by user %s", plan.id, reviewer_id)
        return {
            'plan_id': plan.id,
            'state': plan.state.value,
            'teams': teams,
            'table': [d.to_dict() for d in plan.drafts],
        }

    @staticmethod
    def finalize(plan_id: int, user_id: int, policy: Optional[str] = None) -> FinalizeResult:
        """
        Commit a reviewed plan's drafts to the ledger as hotline_support entries.

        A compatible entry already in the slot (work, training, ...) is
        turned into the on-call entry under its version guard.

        Args:
            plan_id: Plan to finalize
            user_id: Acting user
            policy: skip (report and drop conflicting drafts) or fail
                (default: ROTATION_FINALIZE_POLICY)

        Raises:
            ValidationFailure: plan not reviewed, unknown policy, or
                conflicts under the fail policy (nothing written)
            ConflictDetected: plan or a draft changed concurrently
        """
        policy = policy or current_app.config.get('ROTATION_FINALIZE_POLICY', 'skip')
        if policy not in FINALIZE_POLICIES:
            raise ValidationFailure(f"Unknown finalize policy: {policy}", code='invalid_finalize_policy',
                                    details={'allowed': list(FINALIZE_POLICIES)})

        plan = RotationService.get_plan(plan_id)
        if plan.is_terminal:
            raise ConflictDetected("Rotation plan is closed", code='plan_closed',
                                   details={'state': plan.state.value})
        if plan.state != PlanState.REVIEWED:
            raise ValidationFailure("Rotation plan must be reviewed before finalizing",
                                    code='plan_not_reviewed')

        result = FinalizeResult(plan_id=plan.id)
        try:
            RotationService._transition(
                plan, (PlanState.REVIEWED,),
                state=PlanState.FINALIZED, finalized_at=datetime.utcnow(),
            )

            booked = set()
            conflicts = []
            to_create = []
            to_drop = []
            for draft in plan.drafts:
                if draft.status != DraftStatus.DRAFT:
                    continue
                existing = ScheduleLedger.user_entries_on(draft.user_id, draft.date)
                same_slot = [e for e in existing if e.team_id == draft.team_id]
                if any(e.activity_type == ActivityType.HOTLINE_SUPPORT for e in same_slot):
                    result.already_committed.append(draft.to_dict())
                    to_create.append((draft, 'committed', None))
                    booked.add((draft.user_id, draft.date))
                    continue

                blocking = [e for e in existing if e.rule.blocks_rotation or not e.is_available]
                reason = None
                if any(e.team_id == draft.team_id for e in blocking):
                    reason = 'slot_taken'
                elif blocking:
                    reason = 'schedule_conflict'
                elif (draft.user_id, draft.date) in booked or any(
                        e.activity_type == ActivityType.HOTLINE_SUPPORT for e in existing):
                    reason = 'double_booking'
                if reason:
                    conflicts.append({**draft.to_dict(), 'reason': reason})
                    to_drop.append(draft)
                    continue

                booked.add((draft.user_id, draft.date))
                # a compatible entry in the slot becomes the on-call entry
                if same_slot:
                    to_create.append((draft, 'convert', same_slot[0]))
                else:
                    to_create.append((draft, 'create', None))

            if conflicts and policy == 'fail':
                raise ValidationFailure(
                    "Rotation plan conflicts with the schedule",
                    code='finalize_conflicts',
                    details={'conflicts': conflicts},
                )

            for draft in to_drop:
                db.session.delete(draft)
            result.skipped = conflicts

            for draft, action, slot_entry in to_create:
                if action != 'committed':
                    notes = f"Rotation plan {plan.id}"
                    if draft.is_substitute:
                        notes = f"{notes} (substitute)"
                    time_blocks = [{
                        'activity_type': ActivityType.HOTLINE_SUPPORT.value,
                        'start_time': draft.start_time.strftime('%H:%M'),
                        'end_time': draft.end_time.strftime('%H:%M'),
                    }]
                    if action == 'create':
                        db.session.add(ScheduleEntry(
                            user_id=draft.user_id,
                            team_id=draft.team_id,
                            date=draft.date,
                            shift_type=ShiftType.NORMAL,
                            activity_type=ActivityType.HOTLINE_SUPPORT,
                            notes=notes,
                            time_blocks=time_blocks,
                            created_by_id=user_id,
                        ))
                        result.created.append(draft.to_dict())
                    else:
                        converted = ScheduleLedger.conditional_update(
                            slot_entry.id, slot_entry.version,
                            activity_type=ActivityType.HOTLINE_SUPPORT,
                            notes=notes,
                            time_blocks=time_blocks,
                        )
                        if not converted:
                            raise ConflictDetected("Schedule entry changed concurrently",
                                                   details={'entry_id': slot_entry.id})
                        result.created.append({**draft.to_dict(), 'converted_entry_id': slot_entry.id})
                marked = RotationDraftAssignment.query.filter(
                    RotationDraftAssignment.id == draft.id,
                    RotationDraftAssignment.status == DraftStatus.DRAFT,
                ).update({'status': DraftStatus.FINALIZED}, synchronize_session=False)
                if marked != 1:
                    raise ConflictDetected("Rotation draft changed concurrently",
                                           details={'draft_id': draft.id})
            db.session.commit()
        except (ValidationFailure, ConflictDetected):
            db.session.rollback()
            raise
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error("Finalizing rotation plan %s failed: %s", plan_id, e, exc_info=True)
            raise CollaboratorUnavailable("Schedule ledger unavailable") from e

        logger.info("Rotation plan %s finalized: %d created, %d already committed, %d skipped",
                    plan.id, len(result.created), len(result.already_committed), len(result.skipped))
        dispatch(
            [d['user_id'] for d in result.created],
            'New on-call duty assigned',
            message=f"Hotline rotation {plan.start_date.isoformat()} to {plan.end_date.isoformat()}",
            category=NotificationCategory.ROTATION,
        )
        return result

    @staticmethod
    def discard(plan_id: int) -> RotationPlan:
        """Delete a plan's drafts and close it."""
        plan = RotationService.get_plan(plan_id)
        if plan.is_terminal:
            raise ConflictDetected("Rotation plan is closed", code='plan_closed',
                                   details={'state': plan.state.value})
        try:
            RotationService._transition(
                plan, (PlanState.DRAFT_GENERATED, PlanState.REVIEWED),
                state=PlanState.DISCARDED,
            )
            RotationDraftAssignment.query.filter_by(plan_id=plan.id).delete(synchronize_session=False)
            db.session.commit()
        except ConflictDetected:
            db.session.rollback()
            raise
        except SQLAlchemyError as e:
            db.session.rollback()
            raise CollaboratorUnavailable("Rotation store unavailable") from e

        db.session.refresh(plan)
        logger.info("Rotation plan %s discarded", plan.id)
        return plan
