# ledger/store.py
from contextlib import contextmanager
from decimal import Decimal, ROUND_DOWN, InvalidOperation, localcontext
import logging

from sqlalchemy import func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from extensions import db
from models import AMOUNT_QUANT, ZERO
from ledger.exceptions import ConflictError, TransientStoreError

logger = logging.getLogger(__name__)


def quantize_amount(value) -> Decimal:
    """Quantize to the ledger's fixed point scale, rounding down."""
    with localcontext() as ctx:
        ctx.prec = 60
        return Decimal(value).quantize(AMOUNT_QUANT, rounding=ROUND_DOWN)


def to_decimal(value) -> Decimal:
    """Aggregates come back as Decimal, float or int depending on the backend."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise TransientStoreError(f"Store returned a non-numeric aggregate: {value!r}") from e


def amounts_stored_as_text() -> bool:
    """SQLite keeps money as text (see models.FixedPoint); SQL arithmetic on it would go through floats."""
    return db.session.get_bind().dialect.name == "sqlite"


def sum_of(column, *criteria) -> Decimal:
    if amounts_stored_as_text():
        with localcontext() as ctx:
            ctx.prec = 60
            return sum((to_decimal(value) for (value,) in db.session.query(column).filter(*criteria)), ZERO)
    total = db.session.query(func.coalesce(func.sum(column), 0)).filter(*criteria).scalar()
    return to_decimal(total)


def insert_for(model):
    """INSERT construct with ON CONFLICT support for the bound backend."""
    dialect = db.session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model)
    if dialect == "sqlite":
        return sqlite.insert(model)
    raise TransientStoreError(f"Upserts are not supported on the '{dialect}' backend")


@contextmanager
def transactional(description="ledger write"):
    """
    Commit on success; on failure roll back and map store errors to the ledger taxonomy.
    Nothing from the block is left half-applied.
    """
    try:
        yield db.session
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        logger.warning(f"{description}: unique key conflict: {e.orig}")
        raise ConflictError(f"{description} conflicts with an existing record") from e
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"{description}: store failure: {e}", exc_info=True)
        raise TransientStoreError(f"{description} failed, please retry") from e
    except Exception:
        db.session.rollback()
        raise
