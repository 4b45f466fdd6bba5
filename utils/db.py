"""
MySQL Connection Pool management

Creates the mysql-connector-python pool the booking store draws from.
When every connection is checked out (admissions waiting on a schedule
row lock hold theirs), callers wait briefly and retry before failing.
"""

import time
import logging
import mysql.connector
from mysql.connector import pooling
from mysql.connector.errors import PoolError

logger = logging.getLogger(__name__)


def create_connection_pool(settings):
    """
    Create the MySQL Connection Pool

    Args:
        settings (Mapping): app.config (DB_HOST, DB_PORT, DB_USER,
            DB_PASSWORD, DB_NAME, DB_POOL_SIZE)

    Returns:
        MySQLConnectionPool: pool named "booking_pool"

    Raises:
        mysql.connector.Error: when the database is unreachable

    Note:
        autocommit is off; BookingStore opens every transaction explicitly
        with its isolation level. Size the pool above the expected burst
        of simultaneous bookings for one class.
    """
    size = int(settings.get('DB_POOL_SIZE', 10))
    try:
        pool = pooling.MySQLConnectionPool(
            pool_name="booking_pool",
            pool_size=size,
            pool_reset_session=True,
            host=settings.get('DB_HOST', 'localhost'),
            port=int(settings.get('DB_PORT', 3306)),
            user=settings.get('DB_USER', 'root'),
            password=settings.get('DB_PASSWORD', ''),
            database=settings.get('DB_NAME', 'gymdb'),
            autocommit=False,
            get_warnings=True,
            charset='utf8mb4',
            collation='utf8mb4_unicode_ci'
        )
    except mysql.connector.Error as err:
        logger.error(f"Booking pool creation failed: Host={settings.get('DB_HOST')}, Error={err}")
        raise

    logger.info(f"Booking pool ready: Size={size}, Database={settings.get('DB_NAME', 'gymdb')}")
    return pool


# Set by create_app()
connection_pool = None


def get_db_connection(max_retries=3, retry_delay=0.1):
    """
    Check a connection out of the pool

    Args:
        max_retries (int): attempts while the pool is exhausted
        retry_delay (float): seconds between attempts

    Returns:
        PooledMySQLConnection: close() hands it back to the pool

    Raises:
        RuntimeError: pool not created yet
        PoolError: still exhausted after the last attempt
    """
    if connection_pool is None:
        raise RuntimeError("Connection pool not initialized. Call create_connection_pool() first.")

    for attempt in range(1, max_retries + 1):
        try:
            return connection_pool.get_connection()
        except PoolError as e:
            if attempt == max_retries:
                logger.error(f"Pool exhausted: Attempts={max_retries}, Error={e}")
                raise PoolError(f"No free database connection after {max_retries} attempts: {e}")
            logger.warning(f"Pool exhausted, retrying: Attempt={attempt}/{max_retries}")
            time.sleep(retry_delay)
