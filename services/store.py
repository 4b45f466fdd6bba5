"""
Booking store (MySQL)

All SQL used by the service lives here. Callers open a transaction with
`BookingStore.transaction()` and call the query methods on the yielded
`StoreTransaction`; the context manager commits on success, rolls back on
any exception and always returns the connection to the pool.

Row locking:
    lock_schedule()            SELECT ... FOR UPDATE on the schedule row
    find_user_package(lock=True)  SELECT ... FOR UPDATE on the user package
Admissions always take the schedule lock first, then the user package lock.
"""

import logging
from contextlib import contextmanager

from flask import current_app

from utils.db import get_db_connection

logger = logging.getLogger(__name__)

_SCHEDULE_COLUMNS = """
    s.id, s.class_id, s.start_time, s.end_time,
    c.name AS class_name, c.type AS class_type, c.category AS class_category,
    c.instructor, c.duration, c.capacity, c.icon, c.background_color
"""

_CLASS_FIELDS = ('name', 'type', 'category', 'instructor', 'duration',
                 'capacity', 'icon', 'background_color')

_PACKAGE_FIELDS = ('name', 'description', 'price', 'is_active')


class StoreTransaction:
    """Query primitives bound to one connection and one transaction"""

    def __init__(self, conn, cursor):
        self.conn = conn
        self.cursor = cursor

    def _one(self, sql, params=()):
        self.cursor.execute(sql, params)
        return self.cursor.fetchone()

    def _all(self, sql, params=()):
        self.cursor.execute(sql, params)
        return self.cursor.fetchall()

    # ── Schedules ───────────────────────────────────────

    def lock_schedule(self, schedule_id):
        """Schedule joined to its class, row-locked until the transaction ends"""
        return self._one(f"""
            SELECT {_SCHEDULE_COLUMNS}
            FROM schedules s
            JOIN classes c ON c.id = s.class_id
            WHERE s.id = %s
            FOR UPDATE
        """, (schedule_id,))

    def get_schedule(self, schedule_id):
        return self._one(f"""
            SELECT {_SCHEDULE_COLUMNS}
            FROM schedules s
            JOIN classes c ON c.id = s.class_id
            WHERE s.id = %s
        """, (schedule_id,))

    def list_upcoming_schedules(self, start, end, user_id):
        """Instances in [start, end) with booked seat counts and the caller's flag"""
        return self._all(f"""
            SELECT {_SCHEDULE_COLUMNS},
                   COUNT(b.id) AS booked_spots,
                   MAX(b.user_id = %s) AS is_booked_by_user
            FROM schedules s
            JOIN classes c ON c.id = s.class_id
            LEFT JOIN bookings b ON b.schedule_id = s.id
            WHERE s.start_time >= %s AND s.start_time < %s
            GROUP BY s.id
            ORDER BY s.start_time, s.id
        """, (user_id, start, end))

    def list_schedule_keys(self, start, end):
        """(class_id, start_time) pairs already scheduled in [start, end]"""
        rows = self._all("""
            SELECT class_id, start_time FROM schedules
            WHERE start_time >= %s AND start_time <= %s
        """, (start, end))
        return {(row['class_id'], row['start_time']) for row in rows}

    def insert_schedule(self, class_id, start_time, end_time):
        self.cursor.execute("""
            INSERT INTO schedules (class_id, start_time, end_time)
            VALUES (%s, %s, %s)
        """, (class_id, start_time, end_time))
        return self.cursor.lastrowid

    def insert_schedules(self, rows):
        """Batch insert of (class_id, start_time, end_time) tuples"""
        if not rows:
            return 0
        self.cursor.executemany("""
            INSERT INTO schedules (class_id, start_time, end_time)
            VALUES (%s, %s, %s)
        """, rows)
        return len(rows)

    def delete_schedule(self, schedule_id):
        self.cursor.execute("DELETE FROM schedules WHERE id = %s", (schedule_id,))
        return self.cursor.rowcount

    def booking_dashboard(self, start, end):
        """Instances in [start, end) with capacity and the ids of booked users"""
        rows = self._all(f"""
            SELECT {_SCHEDULE_COLUMNS}, b.user_id AS booked_user_id
            FROM schedules s
            JOIN classes c ON c.id = s.class_id
            LEFT JOIN bookings b ON b.schedule_id = s.id
            WHERE s.start_time >= %s AND s.start_time < %s
            ORDER BY s.start_time, s.id, b.created_at
        """, (start, end))

        schedules = {}
        for row in rows:
            entry = schedules.get(row['id'])
            if entry is None:
                entry = {k: v for k, v in row.items() if k != 'booked_user_id'}
                entry['booked_user_ids'] = []
                schedules[row['id']] = entry
            if row['booked_user_id'] is not None:
                entry['booked_user_ids'].append(row['booked_user_id'])
        return list(schedules.values())

    # ── Bookings ────────────────────────────────────────

    def find_booking(self, user_id, schedule_id):
        return self._one("""
            SELECT id, user_id, schedule_id, booking_date, created_at
            FROM bookings
            WHERE user_id = %s AND schedule_id = %s
        """, (user_id, schedule_id))

    def get_booking(self, booking_id):
        return self._one("""
            SELECT id, user_id, schedule_id, booking_date, created_at
            FROM bookings WHERE id = %s
        """, (booking_id,))

    def count_bookings(self, schedule_id):
        row = self._one(
            "SELECT COUNT(*) AS booked FROM bookings WHERE schedule_id = %s",
            (schedule_id,)
        )
        return int(row['booked'])

    def insert_booking(self, user_id, schedule_id, booking_date):
        self.cursor.execute("""
            INSERT INTO bookings (user_id, schedule_id, booking_date)
            VALUES (%s, %s, %s)
        """, (user_id, schedule_id, booking_date))
        return self.cursor.lastrowid

    def delete_booking(self, booking_id, user_id):
        """Delete a booking only if it belongs to `user_id`; returns affected rows"""
        self.cursor.execute(
            "DELETE FROM bookings WHERE id = %s AND user_id = %s",
            (booking_id, user_id)
        )
        return self.cursor.rowcount

    def list_user_bookings(self, user_id, since=None):
        sql = f"""
            SELECT b.id AS booking_id, b.booking_date, b.created_at,
                   {_SCHEDULE_COLUMNS}
            FROM bookings b
            JOIN schedules s ON s.id = b.schedule_id
            JOIN classes c ON c.id = s.class_id
            WHERE b.user_id = %s
        """
        params = [user_id]
        if since is not None:
            sql += " AND s.start_time >= %s"
            params.append(since)
        sql += " ORDER BY s.start_time, b.id"
        return self._all(sql, tuple(params))

    def list_month_bookings(self, user_id, first_day, last_day):
        """The user's bookings whose booking_date lies in the month window"""
        return self._all("""
            SELECT b.id AS booking_id, b.schedule_id, b.booking_date,
                   c.type AS class_type, c.category AS class_category
            FROM bookings b
            JOIN schedules s ON s.id = b.schedule_id
            JOIN classes c ON c.id = s.class_id
            WHERE b.user_id = %s
              AND b.booking_date >= %s AND b.booking_date <= %s
            ORDER BY b.booking_date, b.id
        """, (user_id, first_day, last_day))

    # ── Packages ────────────────────────────────────────

    def find_user_package(self, user_id, valid_from, valid_until, lock=False):
        """The user package that exactly covers the month window (or None)"""
        sql = """
            SELECT up.id, up.user_id, up.package_id, up.valid_from, up.valid_until,
                   p.name AS package_name
            FROM user_packages up
            JOIN packages p ON p.id = up.package_id
            WHERE up.user_id = %s AND up.valid_from = %s AND up.valid_until = %s
        """
        if lock:
            sql += " FOR UPDATE"
        return self._one(sql, (user_id, valid_from, valid_until))

    def insert_user_package(self, user_id, package_id, valid_from, valid_until):
        self.cursor.execute("""
            INSERT INTO user_packages (user_id, package_id, valid_from, valid_until)
            VALUES (%s, %s, %s, %s)
        """, (user_id, package_id, valid_from, valid_until))
        return self.cursor.lastrowid

    def list_package_items(self, package_id):
        """Package lines in declaration order"""
        return self._all("""
            SELECT id, package_id, class_type, credits
            FROM package_items
            WHERE package_id = %s
            ORDER BY position, id
        """, (package_id,))

    def list_package_item_types(self):
        rows = self._all("""
            SELECT class_type, MIN(id) AS first_id
            FROM package_items
            GROUP BY class_type
            ORDER BY first_id
        """)
        return [row['class_type'] for row in rows]

    def get_package(self, package_id):
        package = self._one("""
            SELECT id, name, description, price, is_active
            FROM packages WHERE id = %s
        """, (package_id,))
        if package:
            package['items'] = self.list_package_items(package_id)
        return package

    def list_packages(self, active_only=False):
        sql = "SELECT id, name, description, price, is_active FROM packages"
        if active_only:
            sql += " WHERE is_active = 1"
        sql += " ORDER BY name, id"
        packages = self._all(sql)
        for package in packages:
            package['items'] = self.list_package_items(package['id'])
        return packages

    def insert_package(self, fields, items):
        columns = [f for f in _PACKAGE_FIELDS if f in fields]
        self.cursor.execute(
            f"INSERT INTO packages ({', '.join(columns)}) "
            f"VALUES ({', '.join(['%s'] * len(columns))})",
            tuple(fields[c] for c in columns)
        )
        package_id = self.cursor.lastrowid
        self._insert_package_items(package_id, items)
        return package_id

    def update_package(self, package_id, fields, items):
        columns = [f for f in _PACKAGE_FIELDS if f in fields]
        if columns:
            self.cursor.execute(
                f"UPDATE packages SET {', '.join(f'{c} = %s' for c in columns)} WHERE id = %s",
                tuple(fields[c] for c in columns) + (package_id,)
            )
        self.cursor.execute("DELETE FROM package_items WHERE package_id = %s", (package_id,))
        self._insert_package_items(package_id, items)

    def _insert_package_items(self, package_id, items):
        self.cursor.executemany("""
            INSERT INTO package_items (package_id, class_type, credits, position)
            VALUES (%s, %s, %s, %s)
        """, [(package_id, item.class_type, item.credits, position)
              for position, item in enumerate(items)])

    def delete_package(self, package_id):
        self.cursor.execute("DELETE FROM packages WHERE id = %s", (package_id,))
        return self.cursor.rowcount

    # ── Classes ─────────────────────────────────────────

    def list_classes(self):
        return self._all("""
            SELECT id, name, type, category, instructor, duration, capacity,
                   icon, background_color
            FROM classes ORDER BY name, id
        """)

    def get_class(self, class_id):
        return self._one("""
            SELECT id, name, type, category, instructor, duration, capacity,
                   icon, background_color
            FROM classes WHERE id = %s
        """, (class_id,))

    def insert_class(self, fields):
        columns = [f for f in _CLASS_FIELDS if f in fields]
        self.cursor.execute(
            f"INSERT INTO classes ({', '.join(columns)}) "
            f"VALUES ({', '.join(['%s'] * len(columns))})",
            tuple(fields[c] for c in columns)
        )
        return self.cursor.lastrowid

    def update_class(self, class_id, fields):
        columns = [f for f in _CLASS_FIELDS if f in fields]
        if not columns:
            return 0
        self.cursor.execute(
            f"UPDATE classes SET {', '.join(f'{c} = %s' for c in columns)} WHERE id = %s",
            tuple(fields[c] for c in columns) + (class_id,)
        )
        return self.cursor.rowcount

    def delete_class(self, class_id):
        self.cursor.execute("DELETE FROM classes WHERE id = %s", (class_id,))
        return self.cursor.rowcount

    def max_upcoming_booked(self, class_id, since):
        """Highest booking count among the class's schedules starting at or after `since`"""
        row = self._one("""
            SELECT COALESCE(MAX(booked), 0) AS max_booked FROM (
                SELECT COUNT(b.id) AS booked
                FROM schedules s
                LEFT JOIN bookings b ON b.schedule_id = s.id
                WHERE s.class_id = %s AND s.start_time >= %s
                GROUP BY s.id
            ) counts
        """, (class_id, since))
        return int(row['max_booked'])

    # ── Scheduling rules ────────────────────────────────

    def list_rules(self):
        return self._all("""
            SELECT r.id, r.day_of_week, r.start_time, r.class_id,
                   c.name AS class_name, c.duration
            FROM scheduling_rules r
            JOIN classes c ON c.id = r.class_id
            ORDER BY FIELD(r.day_of_week, 'Monday', 'Tuesday', 'Wednesday',
                           'Thursday', 'Friday', 'Saturday', 'Sunday'),
                     r.start_time, r.id
        """)

    def insert_rule(self, day_of_week, start_time, class_id):
        self.cursor.execute("""
            INSERT INTO scheduling_rules (day_of_week, start_time, class_id)
            VALUES (%s, %s, %s)
        """, (day_of_week, start_time, class_id))
        return self.cursor.lastrowid

    def delete_rule(self, rule_id):
        self.cursor.execute("DELETE FROM scheduling_rules WHERE id = %s", (rule_id,))
        return self.cursor.rowcount

    # ── Admins ──────────────────────────────────────────

    def get_admin(self, user_id):
        return self._one(
            "SELECT user_id, added_at, added_by FROM admins WHERE user_id = %s",
            (user_id,)
        )

    def add_admin(self, user_id, added_by):
        self.cursor.execute(
            "INSERT INTO admins (user_id, added_by) VALUES (%s, %s)",
            (user_id, added_by)
        )

    def remove_admin(self, user_id):
        self.cursor.execute("DELETE FROM admins WHERE user_id = %s", (user_id,))
        return self.cursor.rowcount


class BookingStore:
    """
    Transactional access to the MySQL database

    Args:
        connection_factory (callable): returns a DB-API connection
            (default: utils.db.get_db_connection)
        isolation_level (str): isolation for every transaction; READ COMMITTED
            makes the count taken after a row lock see rows committed by the
            previous lock holder
    """

    def __init__(self, connection_factory=None, isolation_level='READ COMMITTED'):
        self.connection_factory = connection_factory or get_db_connection
        self.isolation_level = isolation_level

    @contextmanager
    def transaction(self):
        """
        Open a transaction

        Example:
            >>> with store.transaction() as tx:
            ...     schedule = tx.lock_schedule(42)
        """
        conn = self.connection_factory()
        cursor = None
        try:
            conn.start_transaction(isolation_level=self.isolation_level)
            cursor = conn.cursor(dictionary=True)
            yield StoreTransaction(conn, cursor)
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            if cursor:
                cursor.close()
            conn.close()


def get_store():
    """Store registered on the current Flask app by create_app()"""
    return current_app.extensions['booking_store']
