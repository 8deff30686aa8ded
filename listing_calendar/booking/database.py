import psycopg2
from psycopg2 import sql
from psycopg2.extras import DictCursor
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
import logging
import os
from typing import List

from .calendar import Booking, ListingSettings
from .error_utils import StoreError
from .period import DateRange, Period, PeriodKind

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
logger = logging.getLogger(__name__)

DEFAULT_DB_NAME = 'listing_calendar'


class DatabasePersistence:
    """
    Period store backed by Postgres.

    Rate periods live in the rates table, open periods in open_dates. Both tables share the same columns,
    rates additionally holds the nightly rate.
    """
    def __init__(self, dsn=None):
        self._dsn = dsn
        self._setup_schema()

    @contextmanager
    def _database_connect(self):
        """
        Internal function to manage the Postgres database connections.
        Must include environment variable for database url path when deploying to production.
        """
        if self._dsn:
            connection = psycopg2.connect(self._dsn)
        elif os.environ.get('FLASK_ENV') == 'production':
            connection = psycopg2.connect(os.environ['DATABASE_URL'])
        else:
            connection = psycopg2.connect(dbname=os.environ.get('CALENDAR_DB_NAME', DEFAULT_DB_NAME))
        try:
            with connection:
                yield connection
        finally:
            connection.close()

    def _fetch_all(self, query, params):
        logger.info("Executing query: %s", query)
        try:
            with self._database_connect() as conn:
                with conn.cursor(cursor_factory=DictCursor) as cursor:
                    cursor.execute(query, params)
                    return cursor.fetchall()
        except psycopg2.DatabaseError as e:
            logger.error(f"Query failed: {e.args}")
            raise StoreError(f"Query failed: {e}") from e

    def query_periods(self, listing_id: str, kind: PeriodKind, overlapping: DateRange,
                      tolerance_days: int = 0) -> List[Period]:
        """
        Gets the periods of a listing that overlap the given range, or come within tolerance_days of it.

        Returns list of Period ordered by start date.
        """
        slack = timedelta(days=tolerance_days)
        query = sql.SQL("""SELECT * FROM {table}
                           WHERE listing_id = %s AND end_date >= %s AND start_date <= %s
                           ORDER BY start_date""").format(table=sql.Identifier(kind.value))
        rows = self._fetch_all(query, (listing_id, overlapping.start - slack, overlapping.end + slack))
        return [self._row_to_period(row, kind) for row in rows]

    def retrieve_periods(self, listing_id: str, kind: PeriodKind) -> List[Period]:
        query = sql.SQL("SELECT * FROM {table} WHERE listing_id = %s ORDER BY start_date").format(
            table=sql.Identifier(kind.value))
        rows = self._fetch_all(query, (listing_id,))
        return [self._row_to_period(row, kind) for row in rows]

    def insert_period(self, period: Period) -> int:
        """
        Inserts a new period into the table for its kind.

        Returns the id of the new row. Raises StoreError if the insert fails.
        """
        created_at = period.created_at or datetime.now(timezone.utc)
        if period.kind is PeriodKind.RATE:
            query = sql.SQL("""INSERT INTO rates (listing_id, start_date, end_date, rate, created_at)
                               VALUES (%s, %s, %s, %s, %s) RETURNING id""")
            params = (period.listing_id, period.start_date, period.end_date, period.rate, created_at)
        else:
            query = sql.SQL("""INSERT INTO open_dates (listing_id, start_date, end_date, created_at)
                               VALUES (%s, %s, %s, %s) RETURNING id""")
            params = (period.listing_id, period.start_date, period.end_date, created_at)
        logger.info("Executing query: %s", query)
        try:
            with self._database_connect() as conn:
                with conn.cursor() as cursor:
                    cursor.execute(query, params)
                    period_id = cursor.fetchone()[0]
        except psycopg2.DatabaseError as e:
            logger.error(f"Period insertion failed: {e.args}")
            raise StoreError(f"Period insertion failed: {e}") from e
        return period_id

    def delete_period(self, period_id: int, kind: PeriodKind) -> bool:
        """
        Deletes a period by id.

        Returns True. Raises StoreError if the delete fails or no row had that id, for example because
        another session already removed it.
        """
        query = sql.SQL("DELETE FROM {table} WHERE id = %s").format(table=sql.Identifier(kind.value))
        logger.info("Executing query: %s", query)
        try:
            with self._database_connect() as conn:
                with conn.cursor() as cursor:
                    cursor.execute(query, (period_id,))
                    deleted = cursor.rowcount
        except psycopg2.DatabaseError as e:
            logger.error(f"Period deletion failed: {e.args}")
            raise StoreError(f"Period deletion failed: {e}") from e
        if deleted == 0:
            logger.error(f"Period deletion failed: no {kind.value} row with id {period_id}")
            raise StoreError(f"Period {period_id} not found")
        return True

    def retrieve_bookings(self, listing_id: str) -> List[Booking]:
        query = "SELECT * FROM bookings WHERE listing_id = %s ORDER BY check_in"
        rows = self._fetch_all(query, (listing_id,))
        return [Booking(row['id'], row['listing_id'], row['check_in'], row['check_out'], row['guest_name'])
                for row in rows]

    def retrieve_listing_settings(self, listing_id: str) -> ListingSettings:
        """Settings are read only here. A listing without a settings row gets no base rate and no gap days."""
        query = "SELECT base_rate, gap_days FROM listing_settings WHERE listing_id = %s"
        rows = self._fetch_all(query, (listing_id,))
        if not rows:
            return ListingSettings()
        return ListingSettings(base_rate=rows[0]['base_rate'], gap_days=rows[0]['gap_days'] or 0)

    @staticmethod
    def _row_to_period(row, kind: PeriodKind) -> Period:
        rate = row['rate'] if kind is PeriodKind.RATE else None
        return Period(row['id'], row['listing_id'], row['start_date'], row['end_date'],
                      rate=rate, created_at=row['created_at'])

    def _setup_schema(self):
        """
        Internal function to set-up the database schema if the tables do not exist. Primarily used when being deployed in production.
        """
        with self._database_connect() as conn:
            with conn.cursor() as cursor:
                logger.info("Setting up the schema.")
                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS rates (
                        id serial PRIMARY KEY NOT NULL,
                        listing_id text NOT NULL,
                        start_date date NOT NULL,
                        end_date date NOT NULL,
                        rate smallint NOT NULL CHECK (rate BETWEEN 1 AND 32767),
                        created_at timestamp with time zone DEFAULT CURRENT_TIMESTAMP NOT NULL,
                        CHECK (start_date <= end_date)
                        );""")
                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS open_dates (
                        id serial PRIMARY KEY NOT NULL,
                        listing_id text NOT NULL,
                        start_date date NOT NULL,
                        end_date date NOT NULL,
                        created_at timestamp with time zone DEFAULT CURRENT_TIMESTAMP NOT NULL,
                        CHECK (start_date <= end_date)
                        );""")
                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS bookings (
                        id serial PRIMARY KEY NOT NULL,
                        listing_id text NOT NULL,
                        check_in date NOT NULL,
                        check_out date NOT NULL,
                        guest_name text
                        );""")
                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS listing_settings (
                        listing_id text PRIMARY KEY NOT NULL,
                        base_rate integer,
                        gap_days integer DEFAULT 0 NOT NULL
                        );""")
                cursor.execute("CREATE INDEX IF NOT EXISTS rates_listing_dates ON rates (listing_id, start_date, end_date);")
                cursor.execute("CREATE INDEX IF NOT EXISTS open_dates_listing_dates ON open_dates (listing_id, start_date, end_date);")
