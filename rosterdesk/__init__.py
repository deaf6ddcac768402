"""
RosterDesk Application Factory.
Creates and configures the Flask application instance.
"""
import os
import json
import logging
import uuid
from datetime import datetime, timezone

import click
from flask import Flask, request, g, jsonify
from marshmallow import ValidationError

from rosterdesk.config import config
from rosterdesk.errors import (
    SchedulingError, ValidationFailure, ConflictDetected,
    CollaboratorUnavailable, AnalysisAborted,
)
from rosterdesk.extensions import init_extensions, db


# Most specific first
ERROR_STATUS = (
    (ValidationFailure, 422),
    (ConflictDetected, 409),
    (CollaboratorUnavailable, 503),
    (AnalysisAborted, 503),
)


def _init_sentry(app):
    """Initialize Sentry error tracking for production."""
    dsn = app.config.get('SENTRY_DSN') or os.environ.get('SENTRY_DSN')
    if not dsn:
        app.logger.info('SENTRY_DSN not set, error tracking disabled.')
        return

    try:
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration
        from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

        sentry_sdk.init(
            dsn=dsn,
            integrations=[FlaskIntegration(), SqlalchemyIntegration()],
            traces_sample_rate=float(os.environ.get('SENTRY_TRACES_RATE', '0.1')),
            environment=os.environ.get('FLASK_ENV', 'production'),
            send_default_pii=False,
        )
        app.logger.info('Sentry error tracking initialized.')
    except ImportError:
        app.logger.warning('sentry-sdk not installed, error tracking disabled.')


def create_app(config_name=None):
    """
    Application factory for creating Flask app instances.

    Args:
        config_name: Configuration to use (development, testing, production)

    Returns:
        Configured Flask application instance
    """
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'development')

    app = Flask(__name__)

    # Load configuration
    config_class = config[config_name]
    app.config.from_object(config_class)

    # Initialize Sentry (production only)
    if config_name == 'production':
        _init_sentry(app)

    # Call init_app if available (production validation happens here)
    if hasattr(config_class, 'init_app'):
        config_class.init_app(app)

    # Initialize extensions
    init_extensions(app)

    # Enable response compression (gzip)
    from flask_compress import Compress
    Compress(app)

    register_blueprints(app)
    register_error_handlers(app)
    register_cli_commands(app)
    configure_logging(app)

    # Create database tables (development only)
    if config_name == 'development':
        with app.app_context():
            db.create_all()

    return app


def register_blueprints(app):
    """Register all application blueprints."""
    from rosterdesk.blueprints.api import api_bp

    # REST API v1 (JWT auth)
    app.register_blueprint(api_bp, url_prefix='/api/v1')


def error_status(error):
    for error_class, status in ERROR_STATUS:
        if isinstance(error, error_class):
            return status
    return 400


def register_error_handlers(app):
    """Register JSON error handlers."""

    @app.errorhandler(SchedulingError)
    def scheduling_error(error):
        status = error_status(error)
        if status >= 500:
            app.logger.error('%s: %s', type(error).__name__, error.message)
        return jsonify({'error': error.to_dict()}), status

    @app.errorhandler(ValidationError)
    def payload_error(error):
        return jsonify({'error': {
            'code': 'invalid_payload',
            'message': 'Request body failed validation.',
            'details': error.messages,
        }}), 422

    @app.errorhandler(403)
    def forbidden(error):
        return jsonify({'error': {'code': 'forbidden', 'message': 'Access denied.'}}), 403

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({'error': {'code': 'not_found', 'message': 'Resource not found.'}}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'error': {'code': 'method_not_allowed', 'message': 'Method not allowed.'}}), 405

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        request_id = g.get('request_id', '-')
        app.logger.error('500 Internal Server Error: %s (request_id=%s)', type(error).__name__, request_id, exc_info=True)
        return jsonify({'error': {'code': 'internal_error', 'message': 'Internal server error.', 'request_id': request_id}}), 500

    @app.errorhandler(429)
    def ratelimit_error(error):
        return jsonify({'error': {'code': 'rate_limit_exceeded', 'message': 'Too many requests. Try again later.'}}), 429


def register_cli_commands(app):
    """Register custom CLI commands."""

    @app.cli.command('init-db')
    def init_db():
        """Create all database tables."""
        db.create_all()
        click.echo("Database tables created.")

    @app.cli.command('coverage-report')
    @click.argument('team_ids')
    @click.argument('start')
    @click.argument('end')
    @click.option('--threshold', type=int, default=None, help='Override COVERAGE_THRESHOLD')
    def coverage_report(team_ids, start, end, threshold):
        """Print coverage gaps for comma-separated TEAM_IDS between START and END."""
        from rosterdesk.services.coverage_service import CoverageService
        from rosterdesk.utils.dates import parse_iso_date

        try:
            ids = [int(t) for t in team_ids.split(',') if t.strip()]
            analysis = CoverageService.analyze(ids, parse_iso_date(start), parse_iso_date(end), threshold)
        except ValueError as e:
            raise click.BadParameter(str(e))
        except SchedulingError as e:
            raise click.ClickException(f"{e.code}: {e.message}")

        click.echo(f"Coverage: {analysis.coverage_percentage}% "
                   f"({analysis.covered_days}/{analysis.total_days} team-days, threshold {analysis.threshold}%)")
        for gap in analysis.configuration_gaps:
            click.echo(f"  ! {gap.message} (using {gap.defaulted_to})")
        for gap in analysis.gaps:
            flags = []
            if gap.is_weekend:
                flags.append('weekend')
            if gap.is_holiday:
                flags.append('holiday')
            suffix = f" [{', '.join(flags)}]" if flags else ''
            click.echo(f"  {gap.date.isoformat()} {gap.team_name}: "
                       f"{gap.actual}/{gap.required} (-{gap.deficit}){suffix}")
        if analysis.below_threshold:
            click.echo("Below threshold.")

    @app.cli.command('import-schedule')
    @click.argument('path', type=click.Path(exists=True, dir_okay=False))
    @click.option('--dry-run', is_flag=True, help='Parse only, do not write')
    def import_schedule(path, dry_run):
        """Import legacy schedule entries from a JSON export."""
        from rosterdesk.models.schedule import ScheduleEntry, ShiftType, ActivityType, AvailabilityStatus
        from rosterdesk.utils.dates import parse_iso_date
        from rosterdesk.utils.time_blocks import parse_legacy_notes

        with open(path, encoding='utf-8') as f:
            rows = json.load(f)

        created = skipped = 0
        for i, row in enumerate(rows):
            try:
                shift_type = ShiftType(row.get('shift_type') or 'normal')
                activity_type = ActivityType(row.get('activity_type') or 'work')
                availability = AvailabilityStatus(row.get('availability_status') or 'available')
                day = parse_iso_date(row['date'])
                user_id = int(row['user_id'])
                team_id = int(row['team_id'])
            except (KeyError, ValueError, TypeError) as e:
                click.echo(f"Row {i}: skipped ({e})")
                skipped += 1
                continue

            existing = ScheduleEntry.query.filter_by(user_id=user_id, team_id=team_id, date=day).first()
            if existing is not None:
                skipped += 1
                continue

            blocks, notes = parse_legacy_notes(row.get('notes'), activity_type, shift_type)
            db.session.add(ScheduleEntry(
                user_id=user_id,
                team_id=team_id,
                date=day,
                shift_type=shift_type,
                activity_type=activity_type,
                availability_status=availability,
                notes=notes or None,
                time_blocks=blocks,
            ))
            created += 1

        if dry_run:
            db.session.rollback()
            click.echo(f"Dry run: {created} entries would be imported, {skipped} skipped.")
            return
        db.session.commit()
        click.echo(f"Imported {created} entries, {skipped} skipped.")

    @app.cli.command('issue-token')
    @click.argument('user_id', type=int)
    @click.option('--minutes', type=int, default=60)
    def issue_token(user_id, minutes):
        """Print an API access token for USER_ID (local testing)."""
        from rosterdesk.blueprints.api.decorators import create_access_token
        from rosterdesk.models.user import User

        if db.session.get(User, user_id) is None:
            raise click.ClickException(f"User {user_id} not found")
        click.echo(create_access_token(user_id, expires_minutes=minutes))


class JSONFormatter(logging.Formatter):
    """JSON log formatter for production (cloud log aggregation)."""

    def format(self, record):
        log_entry = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'message': record.getMessage(),
            'module': record.module,
            'line': record.lineno,
        }
        # Add request_id if available
        try:
            log_entry['request_id'] = g.get('request_id', '-')
        except RuntimeError:
            pass  # Outside request context
        if record.exc_info and record.exc_info[0]:
            log_entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(log_entry, ensure_ascii=False)


def configure_logging(app):
    """Configure application logging.

    Production: JSON to stdout.
    Development: plain text.
    """
    if app.testing:
        return

    @app.before_request
    def assign_request_id():
        g.request_id = request.headers.get('X-Request-ID', str(uuid.uuid4())[:8])

    @app.after_request
    def log_request(response):
        app.logger.info('%s %s %s', request.method, request.path, response.status_code)
        response.headers['X-Request-ID'] = g.get('request_id', '-')
        return response

    # app.logger is the "rosterdesk" logger; service module loggers propagate to it
    if not app.debug:
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(JSONFormatter())
        stream_handler.setLevel(logging.INFO)

        # Clear existing handlers to avoid duplicates
        app.logger.handlers.clear()
        app.logger.addHandler(stream_handler)
        app.logger.setLevel(logging.INFO)
        app.logger.info('RosterDesk startup (JSON logging)')
    else:
        app.logger.setLevel(logging.DEBUG)
        app.logger.info('RosterDesk startup (development)')
