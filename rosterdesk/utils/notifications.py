"""
Helper functions for creating in-app notifications.

Notifications are fire-and-forget: they are written after the state change
they describe has been committed, and a failure here is logged but never
reverts that change.
"""
import logging

from sqlalchemy.exc import SQLAlchemyError

from rosterdesk.extensions import db
from rosterdesk.models.notification import Notification, NotificationType, NotificationCategory
from rosterdesk.models.team import TeamMember

logger = logging.getLogger(__name__)


SWAP_EVENT_TITLES = {
    'request_created': 'New shift swap request',
    'offer_claimed': 'Your open shift offer was claimed',
    'request_approved': 'Shift swap approved',
    'request_rejected': 'Shift swap rejected',
    'request_cancelled': 'Shift swap cancelled',
}


def create_notification(user_id, title, message=None, type=NotificationType.INFO,
                        category=NotificationCategory.SYSTEM, link=None):
    """
    Create a notification for one user.

    Args:
        user_id: Recipient user ID
        title: Notification title
        message: Detailed message (optional)
        type: Severity (info, success, warning, error)
        category: Category (swap, schedule, rotation, system)
        link: Redirect URL (optional)

    Returns:
        Created Notification
    """
    notification = Notification(
        user_id=user_id,
        title=title,
        message=message,
        type=type,
        category=category,
        link=link
    )
    db.session.add(notification)
    db.session.commit()
    return notification


def create_notification_batch(notifications_data):
    """
    Create several notifications in a single transaction.

    Args:
        notifications_data: List of dicts with notification fields
            [{'user_id': 1, 'title': '...', ...}, ...]

    Returns:
        List of created notifications
    """
    notifications = []
    for data in notifications_data:
        notification = Notification(
            user_id=data['user_id'],
            title=data['title'],
            message=data.get('message'),
            type=data.get('type', NotificationType.INFO),
            category=data.get('category', NotificationCategory.SYSTEM),
            link=data.get('link')
        )
        db.session.add(notification)
        notifications.append(notification)

    db.session.commit()
    return notifications


def dispatch(recipient_ids, title, message=None, type=NotificationType.INFO,
             category=NotificationCategory.SYSTEM, link=None):
    """
    Best-effort delivery to several users.

    Returns:
        Number of notifications written (0 when delivery failed)
    """
    recipients = sorted({r for r in recipient_ids if r is not None})
    if not recipients:
        return 0
    try:
        created = create_notification_batch([
            {'user_id': r, 'title': title, 'message': message, 'type': type,
             'category': category, 'link': link}
            for r in recipients
        ])
    except SQLAlchemyError:
        db.session.rollback()
        logger.warning("Notification delivery failed for %s: %s", recipients, title, exc_info=True)
        return 0
    return len(created)


def notify_swap_event(swap, event, actor_id=None):
    """
    Notify the parties of a swap request about a transition.

    Args:
        swap: SwapRequest that changed state
        event: One of SWAP_EVENT_TITLES
        actor_id: User who triggered the change (not notified)
    """
    title = SWAP_EVENT_TITLES[event]
    message = f"Swap for {swap.swap_date.isoformat()}"
    if swap.review_notes:
        message = f"{message}: {swap.review_notes}"

    if event == 'request_rejected':
        severity = NotificationType.WARNING
    elif event == 'request_approved':
        severity = NotificationType.SUCCESS
    else:
        severity = NotificationType.INFO

    recipients = swap.involved_user_ids - {actor_id}
    return dispatch(recipients, title, message=message, type=severity,
                    category=NotificationCategory.SWAP)


def notify_team_managers(team_id, title, message=None, type=NotificationType.INFO,
                         category=NotificationCategory.SCHEDULE, exclude_user_id=None):
    """Notify every manager of a team."""
    try:
        manager_ids = [
            m.user_id for m in TeamMember.query.filter_by(team_id=team_id, is_manager=True).all()
            if m.user_id != exclude_user_id
        ]
    except SQLAlchemyError:
        db.session.rollback()
        logger.warning("Could not resolve managers of team %s", team_id, exc_info=True)
        return 0
    return dispatch(manager_ids, title, message=message, type=type, category=category)
