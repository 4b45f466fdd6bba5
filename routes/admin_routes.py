"""
Staff routes

Staff-only JSON endpoints (bearer token + admins membership)
- /admin/classes: class catalogue (category resolved from package types)
- /admin/schedules: manual schedule rows
- /admin/rules: weekly scheduling rules
- /admin/generate-schedule: expand rules into schedule rows
- /admin/packages: credit packages and their lines
- /admin/bookings: booking dashboard
- /admin/admins: staff management (super admin only)
"""

from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation

from flask import Blueprint, current_app, g, request
from mysql.connector.errors import IntegrityError

from models import PackageItem
from routes.member_routes import package_to_dict, schedule_to_dict
from services.credit_resolver import backfill_categories, resolve_category
from services.errors import BookingError, ConflictError, ForbiddenError, NotFoundError, ValidationError
from services.schedule_generator import ScheduleGenerator
from services.store import get_store
from utils.auth import admin_required, is_super_admin
from utils.date_utils import parse_date, parse_datetime, parse_day_name, parse_time_of_day
from utils.logging_setup import log_admin_action
from utils.responses import error, error_from, listing, message
from utils.validators import (
    parse_id,
    parse_package_items,
    parse_positive_int,
    require_text,
    validate_capacity_change,
)

bp = Blueprint('admin', __name__)


@bp.errorhandler(BookingError)
def handle_booking_error(e):
    current_app.logger.warning(f"Admin request rejected: {request.path} | {e.code}: {e.message}")
    return error_from(e)


@bp.errorhandler(ValueError)
def handle_value_error(e):
    # date/time parsing in utils.date_utils
    current_app.logger.warning(f"Admin request rejected: {request.path} | {str(e)}")
    return error(str(e), 400, 'INVALID_FIELD')


@bp.errorhandler(IntegrityError)
def handle_integrity_error(e):
    current_app.logger.warning(f"Integrity error: {request.path} | {str(e)}")
    return error_from(ConflictError(
        "The change conflicts with an existing record.", code='CONFLICT'
    ))


def _body():
    return request.get_json(silent=True) or {}


def _optional_text(value):
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _class_fields(data, partial=False):
    """
    Class columns from a payload

    Args:
        data (dict): request body
        partial (bool): only validate the keys present (update)
    """
    fields = {}
    if not partial or 'name' in data:
        fields['name'] = require_text(data.get('name'), 'name')
    if not partial or 'type' in data:
        fields['type'] = require_text(data.get('type'), 'type')
    if not partial or 'capacity' in data:
        fields['capacity'] = parse_positive_int(data.get('capacity'), 'capacity')
    if not partial or 'duration' in data:
        fields['duration'] = parse_positive_int(
            data.get('duration'), 'duration',
            default=None if partial else current_app.config['DEFAULT_CLASS_DURATION'],
        )
    for key in ('category', 'instructor', 'icon', 'background_color'):
        if key in data:
            fields[key] = _optional_text(data[key])
    return fields


def _class_to_dict(row):
    return {
        'id': row['id'],
        'name': row['name'],
        'type': row['type'],
        'category': row.get('category'),
        'instructor': row.get('instructor'),
        'duration': row.get('duration'),
        'capacity': row['capacity'],
        'icon': row.get('icon'),
        'background_color': row.get('background_color'),
    }


def _package_fields(data, partial=False):
    fields = {}
    if not partial or 'name' in data:
        fields['name'] = require_text(data.get('name'), 'name')
    if 'description' in data:
        fields['description'] = _optional_text(data['description'])
    if not partial or 'price' in data:
        try:
            price = Decimal(str(data.get('price', '0')))
        except InvalidOperation:
            raise ValidationError("price must be a number", code='INVALID_FIELD')
        if not price.is_finite() or price < 0:
            raise ValidationError("price must not be negative", code='INVALID_FIELD')
        fields['price'] = price
    if not partial or 'is_active' in data:
        is_active = data.get('is_active', True)
        if not isinstance(is_active, bool):
            raise ValidationError("is_active must be true or false", code='INVALID_FIELD')
        fields['is_active'] = is_active
    return fields


# ── Classes ─────────────────────────────────────────

@bp.route('/admin/classes', methods=['GET'])
@admin_required
def list_classes():
    with get_store().transaction() as tx:
        classes = tx.list_classes()
    return listing('classes', [_class_to_dict(row) for row in classes])


@bp.route('/admin/classes', methods=['POST'])
@admin_required
def create_class():
    """
    Create a class

    Body:
    - name, type, capacity (required)
    - duration (minutes, default DEFAULT_CLASS_DURATION)
    - instructor, icon, background_color (optional)
    - category (optional; resolved from package class types when omitted)
    """
    fields = _class_fields(_body())

    with get_store().transaction() as tx:
        if not fields.get('category'):
            fields['category'] = resolve_category(fields['type'], tx.list_package_item_types())
        class_id = tx.insert_class(fields)

    log_admin_action(current_app, 'CREATE_CLASS', g.user_id,
                     {'class_id': class_id, 'type': fields['type'], 'category': fields['category']})
    return message("Class created successfully", 201, class_id=class_id, category=fields['category'])


@bp.route('/admin/classes/<int:class_id>', methods=['PUT'])
@admin_required
def update_class(class_id):
    """
    Update a class (partial)

    Capacity may not drop below the highest booked count among the class's
    upcoming instances. Changing the type re-resolves the category unless
    one is given.
    """
    data = _body()
    fields = _class_fields(data, partial=True)
    if not fields:
        raise ValidationError("Nothing to update.", code='MISSING_FIELD')

    with get_store().transaction() as tx:
        current = tx.get_class(class_id)
        if not current:
            raise NotFoundError("Class not found.", code='CLASS_NOT_FOUND')

        if 'capacity' in fields:
            booked = tx.max_upcoming_booked(class_id, datetime.now())
            is_valid, error_msg = validate_capacity_change(booked, fields['capacity'])
            if not is_valid:
                raise ValidationError(error_msg, code='CAPACITY_BELOW_BOOKED')

        if 'type' in fields and 'category' not in data:
            fields['category'] = resolve_category(fields['type'], tx.list_package_item_types())

        tx.update_class(class_id, fields)

    log_admin_action(current_app, 'UPDATE_CLASS', g.user_id, {'class_id': class_id, **fields})
    return message("Class updated successfully", 200, class_id=class_id)


@bp.route('/admin/classes/<int:class_id>', methods=['DELETE'])
@admin_required
def delete_class(class_id):
    """Delete a class with its rules, schedules and their bookings (cascade)"""
    with get_store().transaction() as tx:
        deleted = tx.delete_class(class_id)

    if not deleted:
        return error_from(NotFoundError("Class not found.", code='CLASS_NOT_FOUND'))

    log_admin_action(current_app, 'DELETE_CLASS', g.user_id, {'class_id': class_id})
    return message("Class deleted successfully", 200, class_id=class_id)


@bp.route('/admin/classes/backfill-categories', methods=['POST'])
@admin_required
def backfill_class_categories():
    """
    Resolve categories of existing classes

    Body:
    - overwrite: true to re-resolve classes that already have one
    """
    overwrite = bool(_body().get('overwrite', False))

    with get_store().transaction() as tx:
        updated = backfill_categories(tx, overwrite=overwrite)

    log_admin_action(current_app, 'BACKFILL_CATEGORIES', g.user_id, {'updated': len(updated)})
    return message(
        f"{len(updated)} classes updated", 200,
        updated=[{'class_id': class_id, 'category': category} for class_id, category in updated],
    )


# ── Schedules ───────────────────────────────────────

@bp.route('/admin/schedules', methods=['POST'])
@admin_required
def create_schedule():
    """
    Schedule one instance manually

    Body:
    - class_id (required)
    - start_time: "2025-11-27T18:30" (required)

    The end time follows from the class duration.
    """
    data = _body()
    class_id = parse_id(data.get('class_id'), 'class_id')
    start = parse_datetime(data.get('start_time'))

    try:
        with get_store().transaction() as tx:
            class_row = tx.get_class(class_id)
            if not class_row:
                raise NotFoundError("Class not found.", code='CLASS_NOT_FOUND')

            duration = class_row.get('duration') or current_app.config['DEFAULT_CLASS_DURATION']
            end = start + timedelta(minutes=duration)
            schedule_id = tx.insert_schedule(class_id, start, end)
    except IntegrityError:
        return error_from(ConflictError(
            "This class is already scheduled at that time.", code='SCHEDULE_EXISTS'
        ))

    log_admin_action(current_app, 'CREATE_SCHEDULE', g.user_id,
                     {'schedule_id': schedule_id, 'class_id': class_id, 'start_time': start.isoformat()})
    return message("Schedule created successfully", 201,
                   schedule_id=schedule_id, start_time=start.isoformat(), end_time=end.isoformat())


@bp.route('/admin/schedules/<int:schedule_id>', methods=['DELETE'])
@admin_required
def delete_schedule(schedule_id):
    """Delete a schedule and its bookings (cascade)"""
    with get_store().transaction() as tx:
        deleted = tx.delete_schedule(schedule_id)

    if not deleted:
        return error_from(NotFoundError("Scheduled class not found.", code='SCHEDULE_NOT_FOUND'))

    log_admin_action(current_app, 'DELETE_SCHEDULE', g.user_id, {'schedule_id': schedule_id})
    return message("Schedule deleted successfully", 200, schedule_id=schedule_id)


# ── Scheduling rules ────────────────────────────────

@bp.route('/admin/rules', methods=['GET'])
@admin_required
def list_rules():
    with get_store().transaction() as tx:
        rules = tx.list_rules()

    return listing('rules', [
        {
            'id': row['id'],
            'day_of_week': row['day_of_week'],
            'start_time': parse_time_of_day(row['start_time']).strftime('%H:%M'),
            'class_id': row['class_id'],
            'class_name': row['class_name'],
        }
        for row in rules
    ])


@bp.route('/admin/rules', methods=['POST'])
@admin_required
def create_rules():
    """
    Create weekly rules

    Body:
    - class_id (required)
    - days: ["Monday", "Wed", ...] or day_of_week: "Monday" (required)
    - start_time: "18:30" (required)
    """
    data = _body()
    class_id = parse_id(data.get('class_id'), 'class_id')
    days = data.get('days') or ([data['day_of_week']] if data.get('day_of_week') else [])
    if not isinstance(days, list) or not days:
        raise ValidationError("Select at least one day of the week.", code='MISSING_FIELD')
    day_names = list(dict.fromkeys(parse_day_name(day) for day in days))
    start_time = parse_time_of_day(data.get('start_time') or '')

    try:
        with get_store().transaction() as tx:
            if not tx.get_class(class_id):
                raise NotFoundError("Class not found.", code='CLASS_NOT_FOUND')
            rule_ids = [tx.insert_rule(day, start_time, class_id) for day in day_names]
    except IntegrityError:
        return error_from(ConflictError(
            "A rule for this class, day and time already exists.", code='RULE_EXISTS'
        ))

    log_admin_action(current_app, 'CREATE_RULES', g.user_id,
                     {'class_id': class_id, 'days': day_names, 'start_time': start_time.strftime('%H:%M')})
    return message(f"{len(rule_ids)} rules created", 201, rule_ids=rule_ids)


@bp.route('/admin/rules/<int:rule_id>', methods=['DELETE'])
@admin_required
def delete_rule(rule_id):
    with get_store().transaction() as tx:
        deleted = tx.delete_rule(rule_id)

    if not deleted:
        return error_from(NotFoundError("Rule not found.", code='RULE_NOT_FOUND'))

    log_admin_action(current_app, 'DELETE_RULE', g.user_id, {'rule_id': rule_id})
    return message("Rule deleted successfully", 200, rule_id=rule_id)


@bp.route('/admin/generate-schedule', methods=['POST'])
@admin_required
def generate_schedule():
    """
    Expand the weekly rules into schedule rows

    Body:
    - start_date, end_date: "YYYY-MM-DD", inclusive (required)

    Already existing (class, start time) pairs are skipped.
    """
    data = _body()
    start_date = parse_date(data.get('start_date'))
    end_date = parse_date(data.get('end_date'))

    generator = ScheduleGenerator(
        get_store(),
        default_duration=current_app.config['DEFAULT_CLASS_DURATION'],
        max_days=current_app.config['GENERATOR_MAX_DAYS'],
    )
    created = generator.generate(start_date, end_date)

    log_admin_action(current_app, 'GENERATE_SCHEDULE', g.user_id,
                     {'start_date': str(start_date), 'end_date': str(end_date), 'created': len(created)})
    return message(
        f"Schedule generated successfully. {len(created)} new classes created.", 201,
        created=len(created),
        schedules=[instance.to_dict() for instance in created],
    )


# ── Packages ────────────────────────────────────────

@bp.route('/admin/packages', methods=['GET'])
@admin_required
def list_packages():
    with get_store().transaction() as tx:
        packages = tx.list_packages()
    return listing('packages', [package_to_dict(p) for p in packages])


@bp.route('/admin/packages', methods=['POST'])
@admin_required
def create_package():
    """
    Create a package

    Body:
    - name (required), description, price, is_active (default true)
    - items: [{"class_type": "Yoga", "credits": 4}, ...] (at least one)
    """
    data = _body()
    fields = _package_fields(data)
    items = parse_package_items(data.get('items'))

    with get_store().transaction() as tx:
        package_id = tx.insert_package(fields, items)

    log_admin_action(current_app, 'CREATE_PACKAGE', g.user_id,
                     {'package_id': package_id, 'items': [item.to_dict() for item in items]})
    return message("Package created successfully", 201, package_id=package_id)


@bp.route('/admin/packages/<int:package_id>', methods=['PUT'])
@admin_required
def update_package(package_id):
    """Update a package (partial); `items`, when given, replaces every line"""
    data = _body()
    fields = _package_fields(data, partial=True)
    items = parse_package_items(data['items']) if 'items' in data else None

    with get_store().transaction() as tx:
        current = tx.get_package(package_id)
        if not current:
            raise NotFoundError("Package not found.", code='PACKAGE_NOT_FOUND')
        if items is None:
            items = [PackageItem(row['class_type'], row['credits']) for row in current['items']]
        tx.update_package(package_id, fields, items)

    log_admin_action(current_app, 'UPDATE_PACKAGE', g.user_id,
                     {'package_id': package_id, 'items': [item.to_dict() for item in items]})
    return message("Package updated successfully", 200, package_id=package_id)


@bp.route('/admin/packages/<int:package_id>', methods=['DELETE'])
@admin_required
def delete_package(package_id):
    with get_store().transaction() as tx:
        deleted = tx.delete_package(package_id)

    if not deleted:
        return error_from(NotFoundError("Package not found.", code='PACKAGE_NOT_FOUND'))

    log_admin_action(current_app, 'DELETE_PACKAGE', g.user_id, {'package_id': package_id})
    return message("Package deleted successfully", 200, package_id=package_id)


# ── Dashboard ───────────────────────────────────────

@bp.route('/admin/bookings', methods=['GET'])
@admin_required
def booking_dashboard():
    """
    Upcoming schedules with their bookings

    Query:
    - days: window from now (default DASHBOARD_DAYS)
    """
    days = parse_positive_int(request.args.get('days'), 'days',
                              default=current_app.config['DASHBOARD_DAYS'])
    start = datetime.now()
    end = start + timedelta(days=days)

    with get_store().transaction() as tx:
        rows = tx.booking_dashboard(start, end)

    schedules = []
    for row in rows:
        item = schedule_to_dict(row)
        item['booked_user_ids'] = row['booked_user_ids']
        item['booked_spots'] = len(row['booked_user_ids'])
        item['available_spots'] = max(row['capacity'] - item['booked_spots'], 0)
        schedules.append(item)

    return listing('schedules', schedules, start=start.isoformat(), end=end.isoformat())


# ── Staff management ────────────────────────────────

@bp.route('/admin/admins', methods=['POST'])
@admin_required
def add_admin():
    """
    Add a staff member (super admin only)

    Body:
    - user_id: identity provider user ID (required)
    """
    if not is_super_admin(g.user_id):
        current_app.logger.warning(f"Not a super admin: {g.user_id}")
        return error_from(ForbiddenError("Super admin permission required.", code='FORBIDDEN'))

    new_admin_id = require_text(_body().get('user_id'), 'user_id')

    try:
        with get_store().transaction() as tx:
            tx.add_admin(new_admin_id, g.user_id)
    except IntegrityError:
        return error_from(ConflictError(f"{new_admin_id} is already an admin.", code='ADMIN_EXISTS'))

    log_admin_action(current_app, 'ADD_ADMIN', g.user_id, {'user_id': new_admin_id})
    return message("Admin added successfully", 201, user_id=new_admin_id)


@bp.route('/admin/admins/<user_id>', methods=['DELETE'])
@admin_required
def remove_admin(user_id):
    """Remove a staff member (super admin only, never yourself)"""
    if not is_super_admin(g.user_id):
        current_app.logger.warning(f"Not a super admin: {g.user_id}")
        return error_from(ForbiddenError("Super admin permission required.", code='FORBIDDEN'))

    if user_id == g.user_id:
        current_app.logger.warning(f"Self removal attempt: {g.user_id}")
        return error("You cannot remove yourself.", 400, 'CANNOT_REMOVE_SELF')

    with get_store().transaction() as tx:
        removed = tx.remove_admin(user_id)

    if not removed:
        return error_from(NotFoundError(f"{user_id} is not an admin.", code='ADMIN_NOT_FOUND'))

    log_admin_action(current_app, 'REMOVE_ADMIN', g.user_id, {'user_id': user_id})
    return message("Admin removed successfully", 200, user_id=user_id)
