"""
Member routes

JSON endpoints used by gym members (bearer token required)
- /book-class: book a seat on a scheduled class
- /cancel-booking: cancel one of my bookings
- /schedules: upcoming classes with free seats
- /my-bookings: my bookings
- /credits: remaining package credits (this month and next)
- /packages: packages on offer
- /packages/acquire: buy a package for next month
"""

from datetime import date, datetime, time, timedelta

from flask import Blueprint, current_app, g, request
from mysql.connector.errors import IntegrityError

from services import admission, errors
from services.admission import AdmissionController
from services.cancellation import CancellationHandler
from services.credit_resolver import CreditResolver
from services.errors import BookingError, ConflictError, ForbiddenError, NotFoundError, ValidationError
from services.store import get_store
from utils.auth import login_required
from utils.date_utils import format_datetime_short, next_month_window, parse_date
from utils.logging_setup import log_api_call
from utils.responses import error, error_from, listing, message
from utils.validators import parse_id, parse_positive_int

bp = Blueprint('member', __name__)

# Failed admission outcome -> (error class, message)
OUTCOME_ERRORS = {
    admission.ALREADY_BOOKED: (ConflictError, "You are already booked for this class."),
    admission.CLASS_FULL: (ConflictError, "The class is full."),
    admission.SCHEDULE_NOT_FOUND: (NotFoundError, "Scheduled class not found."),
    admission.NO_CREDITS: (ForbiddenError, "You have no credits left for this class."),
    admission.ERROR_INSERT_FAILED: (BookingError, "Could not register the booking in the database."),
}

# Cancellation error kind -> (error class, message)
CANCEL_ERRORS = {
    errors.NOT_FOUND: (NotFoundError, "Booking not found."),
    errors.FORBIDDEN: (ForbiddenError, "You can only cancel your own bookings."),
    errors.UNEXPECTED: (BookingError, "Failed to cancel booking."),
}

MAX_LISTING_DAYS = 62


def _iso(value):
    return value.isoformat() if value is not None else None


def schedule_to_dict(row):
    """Public shape of a schedule row (with class details)"""
    item = {
        'id': row['id'],
        'class_id': row['class_id'],
        'name': row['class_name'],
        'type': row['class_type'],
        'instructor': row.get('instructor'),
        'start_time': _iso(row['start_time']),
        'end_time': _iso(row['end_time']),
        'display_time': format_datetime_short(row['start_time']),
        'duration': row.get('duration'),
        'capacity': row['capacity'],
        'icon': row.get('icon'),
        'background_color': row.get('background_color'),
    }
    if 'booked_spots' in row:
        booked = int(row['booked_spots'] or 0)
        item['booked_spots'] = booked
        item['available_spots'] = max(row['capacity'] - booked, 0)
        item['is_full'] = booked >= row['capacity']
    if 'is_booked_by_user' in row:
        item['is_booked_by_user'] = bool(row['is_booked_by_user'])
    return item


def package_to_dict(row):
    return {
        'id': row['id'],
        'name': row['name'],
        'description': row.get('description'),
        'price': str(row['price']) if row.get('price') is not None else None,
        'is_active': bool(row.get('is_active')),
        'items': [{'class_type': item['class_type'], 'credits': item['credits']}
                  for item in row.get('items', [])],
    }


@bp.route('/book-class', methods=['POST'])
@login_required
def book_class():
    """
    Book a seat

    Body:
    - schedule_id: scheduled instance (required)

    Flow:
    1. advisory credit pre-check (403 when the package does not cover it)
    2. atomic admission (capacity + duplicate + credits + insert)
    """
    user_id = g.user_id
    data = request.get_json(silent=True) or {}

    log_api_call(current_app, '/book-class', user_id, {'schedule_id': data.get('schedule_id')})

    try:
        schedule_id = parse_id(data.get('schedule_id'), 'schedule_id')
        store = get_store()

        if current_app.config.get('CREDIT_PRECHECK_ENABLED', True):
            with store.transaction() as tx:
                schedule = tx.get_schedule(schedule_id)
                already_booked = bool(schedule) and tx.find_booking(user_id, schedule_id) is not None

            # Unknown schedules and retries of a booking go straight to admission
            if schedule and not already_booked:
                check = CreditResolver(store).check(user_id, schedule)
                if not check.allowed:
                    current_app.logger.info(
                        f"Credit pre-check rejected: User={user_id}, Schedule={schedule_id}, "
                        f"Verdict={check.verdict}"
                    )
                    return error_from(ForbiddenError(check.message(), code=check.verdict))

        controller = AdmissionController(
            store,
            enforce_credits=current_app.config.get('ENFORCE_CREDITS_IN_TRANSACTION', True),
        )
        result = controller.admit(user_id, schedule_id)

        if result.ok:
            return message("Booking successful", 201,
                           booking_id=result.booking_id, schedule_id=schedule_id)

        error_class, text = OUTCOME_ERRORS[result.outcome]
        if result.outcome == admission.NO_CREDITS and result.credit_check is not None:
            text = result.credit_check.message()
        return error_from(error_class(text, code=result.outcome))

    except ValidationError as e:
        current_app.logger.warning(f"Invalid booking request: {e.message}")
        return error_from(e)

    except Exception as e:
        current_app.logger.error(f"Booking failed: {str(e)}", exc_info=True)
        return error_from(BookingError(
            "An unexpected error occurred while making the booking.", code='UNEXPECTED'
        ))


@bp.route('/cancel-booking', methods=['POST'])
@login_required
def cancel_booking():
    """
    Cancel my booking

    Body:
    - booking_id: booking to cancel (required)
    """
    user_id = g.user_id
    data = request.get_json(silent=True) or {}

    log_api_call(current_app, '/cancel-booking', user_id, {'booking_id': data.get('booking_id')})

    try:
        booking_id = parse_id(data.get('booking_id'), 'booking_id')
    except ValidationError as e:
        return error_from(e)

    result = CancellationHandler(get_store()).cancel(user_id, booking_id)
    if result.ok:
        return message("Booking cancelled successfully", 200, booking_id=booking_id)

    error_class, text = CANCEL_ERRORS.get(result.kind, CANCEL_ERRORS[errors.UNEXPECTED])
    return error_from(error_class(text, code='CANCEL_FAILED'))


@bp.route('/schedules', methods=['GET'])
@login_required
def list_schedules():
    """
    Upcoming classes

    Query:
    - from: first day (YYYY-MM-DD, default today)
    - days: number of days (default 7)
    - only_with_credits: 1 to keep classes my package still covers
    """
    user_id = g.user_id
    log_api_call(current_app, '/schedules', user_id, dict(request.args))

    try:
        first_day = parse_date(request.args['from']) if request.args.get('from') else date.today()
        days = parse_positive_int(request.args.get('days'), 'days', default=7)
        if days > MAX_LISTING_DAYS:
            raise ValidationError(f"days is limited to {MAX_LISTING_DAYS}", code='INVALID_FIELD')
    except (ValueError, ValidationError) as e:
        return error(getattr(e, 'message', str(e)), 400, 'INVALID_FIELD')

    only_with_credits = request.args.get('only_with_credits', '').lower() in ('1', 'true', 'yes')
    start = datetime.combine(first_day, time.min)
    end = start + timedelta(days=days)

    store = get_store()
    resolver = CreditResolver(store)
    with store.transaction() as tx:
        rows = tx.list_upcoming_schedules(start, end, user_id)

        if only_with_credits:
            summaries = {}
            kept = []
            for row in rows:
                month = (row['start_time'].year, row['start_time'].month)
                if month not in summaries:
                    summaries[month] = resolver.resolve_in(tx, user_id, row['start_time'])
                if summaries[month].check(row['class_type'], row.get('class_category')).allowed:
                    kept.append(row)
            rows = kept

    return listing('schedules', [schedule_to_dict(row) for row in rows],
                   start=start.isoformat(), end=end.isoformat())


@bp.route('/my-bookings', methods=['GET'])
@login_required
def my_bookings():
    """
    My bookings ordered by class start

    Query:
    - upcoming: 1 to hide classes that already started
    """
    user_id = g.user_id
    log_api_call(current_app, '/my-bookings', user_id)

    since = None
    if request.args.get('upcoming', '').lower() in ('1', 'true', 'yes'):
        since = datetime.now()

    with get_store().transaction() as tx:
        rows = tx.list_user_bookings(user_id, since=since)

    bookings = []
    for row in rows:
        item = {
            'id': row['booking_id'],
            'booking_date': _iso(row['booking_date']),
            'created_at': _iso(row.get('created_at')),
            'schedule': schedule_to_dict(row),
        }
        bookings.append(item)

    return listing('bookings', bookings)


@bp.route('/credits', methods=['GET'])
@login_required
def credits():
    """Credit summary for the current and the next calendar month"""
    user_id = g.user_id
    log_api_call(current_app, '/credits', user_id)

    today = date.today()
    resolver = CreditResolver(get_store())
    current = resolver.resolve(user_id, today)
    upcoming = resolver.resolve(user_id, next_month_window(today)[0])

    return {'current_month': current.to_dict(), 'next_month': upcoming.to_dict()}, 200


@bp.route('/packages', methods=['GET'])
@login_required
def list_packages():
    """Active packages with their credit lines"""
    log_api_call(current_app, '/packages', g.user_id)

    with get_store().transaction() as tx:
        packages = tx.list_packages(active_only=True)

    return listing('packages', [package_to_dict(p) for p in packages])


@bp.route('/packages/acquire', methods=['POST'])
@login_required
def acquire_package():
    """
    Acquire a package for next month

    Body:
    - package_id: active package (required)

    One package per user and month (UNIQUE user_id, valid_from, valid_until).
    """
    user_id = g.user_id
    data = request.get_json(silent=True) or {}

    log_api_call(current_app, '/packages/acquire', user_id, {'package_id': data.get('package_id')})

    try:
        package_id = parse_id(data.get('package_id'), 'package_id')
        valid_from, valid_until = next_month_window(date.today())

        with get_store().transaction() as tx:
            package = tx.get_package(package_id)
            if not package or not package['is_active']:
                raise NotFoundError("Package not found.", code='PACKAGE_NOT_FOUND')
            user_package_id = tx.insert_user_package(user_id, package_id, valid_from, valid_until)

        current_app.logger.info(
            f"Package acquired: User={user_id}, Package={package_id}, Month={valid_from:%Y-%m}"
        )
        return message(
            "Package acquired for next month!", 201,
            user_package_id=user_package_id,
            valid_from=valid_from.isoformat(),
            valid_until=valid_until.isoformat(),
        )

    except IntegrityError:
        return error_from(ConflictError(
            "You already have a package for next month.", code='PACKAGE_EXISTS'
        ))

    except (ValidationError, NotFoundError) as e:
        return error_from(e)

    except Exception as e:
        current_app.logger.error(f"Package acquisition failed: {str(e)}", exc_info=True)
        return error_from(BookingError("Could not acquire package.", code='UNEXPECTED'))
