"""
Management command to apply ad-hoc schema patches to a live MySQL database.

Statements that fail because the change is already in place (duplicate
column, duplicate index, or dropping something that is already gone) are
skipped so the command can be re-run safely. Every other error aborts.
"""
import logging

from django.core.management.base import BaseCommand, CommandError
from django.db import connection, DatabaseError

logger = logging.getLogger(__name__)

# MySQL server error codes
ER_DUP_FIELDNAME = 1060
ER_DUP_KEYNAME = 1061
ER_CANT_DROP_FIELD_OR_KEY = 1091

IGNORABLE_ERROR_CODES = {
    ER_DUP_FIELDNAME: 'column already exists',
    ER_DUP_KEYNAME: 'index already exists',
    ER_CANT_DROP_FIELD_OR_KEY: 'column or key already dropped',
}

DEFAULT_STATEMENTS = [
    "ALTER TABLE messages ADD COLUMN email VARCHAR(255) NULL "
    "COMMENT 'Email address for guest users (NULL for registered users)'",
    "CREATE INDEX idx_messages_email ON messages(email)",
]


def get_error_code(exc):
    """Return the numeric driver error code carried by a database exception"""
    for candidate in (exc, exc.__cause__):
        args = getattr(candidate, 'args', ())
        if args and isinstance(args[0], int):
            return args[0]
    return None


def split_statements(sql):
    return [stmt.strip() for stmt in sql.split(';') if stmt.strip()]


def run_statements(statements, cursor, stdout=None):
    """
    Execute statements in order.
    Returns (applied, skipped) counts; non-ignorable errors propagate.
    """
    applied = 0
    skipped = 0
    for statement in statements:
        try:
            cursor.execute(statement)
            applied += 1
            logger.info(f"Applied schema statement: {statement}")
        except DatabaseError as e:
            code = get_error_code(e)
            if code not in IGNORABLE_ERROR_CODES:
                logger.error(f"Schema statement failed ({code}): {statement}")
                raise
            skipped += 1
            logger.info(f"Skipped schema statement ({IGNORABLE_ERROR_CODES[code]}): {statement}")
            if stdout:
                stdout.write(f'  Skipped ({IGNORABLE_ERROR_CODES[code]}): {statement}')
    return applied, skipped


class Command(BaseCommand):
    help = "Apply schema patch statements, ignoring changes that are already in place"

    def add_arguments(self, parser):
        parser.add_argument(
            '--sql-file',
            type=str,
            help='Read ;-separated statements from this file instead of the built-in patch',
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Print the statements without executing them',
        )

    def handle(self, *args, **options):
        if options['sql_file']:
            try:
                with open(options['sql_file'], encoding='utf-8') as fh:
                    statements = split_statements(fh.read())
            except OSError as e:
                raise CommandError(f"Cannot read {options['sql_file']}: {e}")
        else:
            statements = DEFAULT_STATEMENTS

        if options['dry_run']:
            self.stdout.write(self.style.WARNING('DRY RUN - no statements executed'))
            for statement in statements:
                self.stdout.write(f'  {statement}')
            return

        with connection.cursor() as cursor:
            applied, skipped = run_statements(statements, cursor, stdout=self.stdout)

        self.stdout.write(self.style.SUCCESS(
            f'Schema patch complete: {applied} applied, {skipped} already in place'
        ))
