# Overview: Service-layer operations for registration numbering; encapsulates business logic and database work.

"""
Registration Numbering Service

================================================================================
PURPOSE: Hand out gap-free, collision-free sequence numbers per register scope
================================================================================

SCOPE:
    resets_annually=True   -> one counter per (configuration, year)
    resets_annually=False  -> one counter per configuration (scope_year = 0)

ALGORITHM (per call, inside the caller's transaction):
    1. UPDATE register_counters SET current_value = current_value + 1
       WHERE configuration_id = :c AND scope_year = :y
    2. If a row was updated, read it back: that value is the number.
    3. Otherwise this is the first number of the scope: INSERT the counter
       with current_value = starting_number. The unique constraint on
       (configuration_id, scope_year) makes concurrent first inserts collide;
       the loser gets NumberingConflict and replays its whole unit of work.

The UPDATE holds the counter row lock until the surrounding transaction
commits, so a registration that fails after reserving a number rolls the
increment back with it: no gaps, no duplicates.
================================================================================
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..constants import UNSCOPED_COUNTER_YEAR
from ..errors import NumberingConflict
from ..extensions import db
from ..models import RegisterConfiguration, RegisterCounter
from ..validation import require_int
from .concurrency import run_with_retry
from .register_config_service import get_configuration


MIN_YEAR = 1900
MAX_YEAR = 9999


def validate_year(year) -> int:
    return require_int(year, "year", minimum=MIN_YEAR, maximum=MAX_YEAR)


def counter_scope_year(config: RegisterConfiguration, year: int) -> int:
    return year if config.resets_annually else UNSCOPED_COUNTER_YEAR


def format_number(number: int, year: int) -> str:
    """Human-readable registration number, e.g. "17/2025"."""
    return f"{number}/{year}"


def reserve_number(configuration_id: int, year: int) -> int:
    """
    Allocate the next number inside the current transaction.

    The caller owns the transaction: commit makes the number permanent,
    rollback returns it. Raises ConfigurationNotFound for an unknown or
    deleted configuration and NumberingConflict when a concurrent request
    created the counter scope first.
    """
    year = validate_year(year)
    config = get_configuration(configuration_id)
    scope_year = counter_scope_year(config, year)

    stmt = (
        update(RegisterCounter)
        .where(
            RegisterCounter.configuration_id == config.id,
            RegisterCounter.scope_year == scope_year,
        )
        .values(current_value=RegisterCounter.current_value + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        return (
            db.session.query(RegisterCounter.current_value)
            .filter_by(configuration_id=config.id, scope_year=scope_year)
            .scalar()
        )

    counter = RegisterCounter(
        configuration_id=config.id,
        scope_year=scope_year,
        current_value=config.starting_number,
    )
    db.session.add(counter)
    try:
        db.session.flush()
    except IntegrityError as exc:
        raise NumberingConflict(
            f"Counter for register {config.id} (scope {scope_year}) was created concurrently"
        ) from exc

    return config.starting_number


def next_number(configuration_id: int, year: int) -> int:
    """
    Allocate and commit the next number for (configuration, year).

    Standalone atomic unit: NumberingConflict is retried a bounded number of
    times (NUMBERING_RETRY_ATTEMPTS) before surfacing to the caller.
    """
    def _op() -> int:
        number = reserve_number(configuration_id, year)
        db.session.commit()
        return number

    number = run_with_retry(_op)
    current_app.logger.info(
        "Allocated number %s for register %s, year %s", number, configuration_id, year
    )
    return number


def peek_next_number(configuration_id: int, year: int) -> int:
    """Number the next registration would receive. Allocates nothing."""
    year = validate_year(year)
    config = get_configuration(configuration_id)
    current = (
        db.session.query(RegisterCounter.current_value)
        .filter_by(configuration_id=config.id, scope_year=counter_scope_year(config, year))
        .scalar()
    )
    if current is None:
        return config.starting_number
    return current + 1
