# Overview: Domain operations against the Local Store (offline/desktop backend).

"""
Local Operations.

Implements the DataStore contract on top of the Flask-SQLAlchemy models.
Nested values (sale items, wholesaler product lists, audit details) are
encoded by the JSONText column type, so every method here works with plain
lists/dicts.

Stock mutation goes through one conditional UPDATE:

    UPDATE products SET stock = stock + :delta
    WHERE id = :id AND stock + :delta >= 0

so the sufficiency check and the write are a single statement. Two
concurrent sales can no longer both pass the check and oversell.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import delete, func, literal, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..extensions import db
from ..models import AuditEntry, Product, Sale, StockAdjustment, User, Wholesaler
from ..time_utils import local_day_bounds_utc, parse_iso_datetime, utcnow
from ..validation import (
    DEFAULT_LOW_STOCK_THRESHOLD,
    ConstraintViolationError,
    ValidationError,
    normalize_adjustment,
    normalize_audit_entry,
    normalize_discount,
    normalize_product,
    normalize_sale_items,
    normalize_wholesaler,
)
from .concurrency import run_with_retry
from .data_store import DataStore, degrade_on_failure
from .keys import new_id
from .local_store import LocalStore
from .pricing import compute_sale_totals

logger = logging.getLogger(__name__)

_NEVER_SYNCED = datetime(1970, 1, 1)


def _commit(apply):
    """
    Run apply() and commit as one unit, retrying on lock contention.

    IntegrityError (CHECK / UNIQUE / FK) surfaces as ConstraintViolationError.
    """
    def _op():
        result = apply()
        db.session.commit()
        return result

    try:
        return run_with_retry(_op)
    except IntegrityError as exc:
        db.session.rollback()
        raise ConstraintViolationError(str(exc.orig)) from exc


class LocalProfileRepository:
    """Local mirror of hosted user profiles, used by the Identity Bridge."""

    def get(self, user_id: str) -> dict | None:
        user = db.session.get(User, user_id)
        return user.to_dict() if user else None

    def upsert(self, profile: dict) -> dict:
        """
        Write the hosted profile over the local row.

        A username that moved to this user remotely is released from any
        other local row first; that row gets a placeholder until its own
        next sync.
        """
        def apply():
            now = utcnow()
            released = db.session.execute(
                update(User)
                .where(User.username == profile["username"], User.id != profile["id"])
                .values(username=literal("released:").concat(User.id), updated_at=_NEVER_SYNCED)
            )
            if released.rowcount:
                logger.info("Released username %r from %d stale local profile(s)", profile["username"], released.rowcount)

            user = db.session.get(User, profile["id"])
            if user is None:
                user = User(
                    id=profile["id"],
                    created_at=parse_iso_datetime(profile.get("created_at")) or now,
                )
                db.session.add(user)
            user.username = profile["username"]
            user.name = profile["name"]
            user.role = profile["role"]
            user.updated_at = now
            return user

        return _commit(apply).to_dict()


class LocalOperations(DataStore):
    backend_name = "local"

    def __init__(self, store: LocalStore, identity, *, default_threshold: int = DEFAULT_LOW_STOCK_THRESHOLD, audit_limit: int = 1000):
        self.store = store
        self.identity = identity
        self.default_threshold = default_threshold
        self.audit_limit = audit_limit

    def after_read_failure(self) -> None:
        db.session.rollback()

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    def get_current_user(self) -> dict | None:
        return self.identity.get_current_user_profile()

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    @degrade_on_failure(SQLAlchemyError)
    def get_products(self) -> list[dict]:
        rows = db.session.query(Product).order_by(Product.created_at.desc()).all()
        return [p.to_dict() for p in rows]

    @degrade_on_failure(SQLAlchemyError, empty=None)
    def get_product_by_id(self, product_id: str) -> dict | None:
        product = db.session.get(Product, product_id)
        return product.to_dict() if product else None

    def create_product(self, data: dict) -> dict:
        actor = self.require_actor()
        fields = normalize_product(data, partial=False, default_threshold=self.default_threshold)

        def apply():
            product = Product(id=new_id(), created_by=actor["id"], **fields)
            db.session.add(product)
            return product

        return _commit(apply).to_dict()

    def update_product(self, product_id: str, changes: dict) -> dict | None:
        patch = normalize_product(changes, partial=True)

        def apply():
            product = db.session.get(Product, product_id)
            if product is None:
                return None
            for key, value in patch.items():
                setattr(product, key, value)
            product.updated_at = utcnow()
            return product

        product = _commit(apply)
        return product.to_dict() if product else None

    def delete_product(self, product_id: str) -> bool:
        def apply():
            result = db.session.execute(delete(Product).where(Product.id == product_id))
            return result.rowcount == 1

        return _commit(apply)

    # ------------------------------------------------------------------
    # Wholesalers
    # ------------------------------------------------------------------

    @degrade_on_failure(SQLAlchemyError)
    def get_wholesalers(self) -> list[dict]:
        rows = db.session.query(Wholesaler).order_by(Wholesaler.created_at.desc()).all()
        return [w.to_dict() for w in rows]

    def create_wholesaler(self, data: dict) -> dict:
        actor = self.require_actor()
        fields = normalize_wholesaler(data, partial=False)

        def apply():
            wholesaler = Wholesaler(id=new_id(), created_by=actor["id"], **fields)
            db.session.add(wholesaler)
            return wholesaler

        return _commit(apply).to_dict()

    def update_wholesaler(self, wholesaler_id: str, changes: dict) -> dict | None:
        patch = normalize_wholesaler(changes, partial=True)

        def apply():
            wholesaler = db.session.get(Wholesaler, wholesaler_id)
            if wholesaler is None:
                return None
            for key, value in patch.items():
                setattr(wholesaler, key, value)
            wholesaler.updated_at = utcnow()
            return wholesaler

        wholesaler = _commit(apply)
        return wholesaler.to_dict() if wholesaler else None

    def delete_wholesaler(self, wholesaler_id: str) -> bool:
        def apply():
            result = db.session.execute(delete(Wholesaler).where(Wholesaler.id == wholesaler_id))
            return result.rowcount == 1

        return _commit(apply)

    # ------------------------------------------------------------------
    # Sales
    # ------------------------------------------------------------------

    @degrade_on_failure(SQLAlchemyError)
    def get_sales(self) -> list[dict]:
        rows = db.session.query(Sale).order_by(Sale.created_at.desc()).all()
        return [s.to_dict() for s in rows]

    def create_sale(self, data: dict) -> dict:
        """
        Record a sale. Money fields are derived from the items here and
        never recomputed. Does not touch stock; see sales_service.complete_sale.
        """
        actor = self.require_actor()
        if not isinstance(data, dict):
            raise ValidationError("Invalid payload")
        items = normalize_sale_items(data.get("items"))
        totals = compute_sale_totals(items, normalize_discount(data.get("discount")))
        cashier = str(data.get("user_name") or data.get("userName") or "").strip()
        user_name = cashier or actor.get("name") or "Unknown"

        def apply():
            sale = Sale(id=new_id(), items=items, user_id=actor["id"], user_name=user_name, **totals)
            db.session.add(sale)
            return sale

        return _commit(apply).to_dict()

    # ------------------------------------------------------------------
    # Stock
    # ------------------------------------------------------------------

    @degrade_on_failure(SQLAlchemyError)
    def get_stock_adjustments(self) -> list[dict]:
        rows = db.session.query(StockAdjustment).order_by(StockAdjustment.created_at.desc()).all()
        return [a.to_dict() for a in rows]

    def create_stock_adjustment(self, data: dict) -> dict:
        """Append a ledger entry. Product.stock is not changed here."""
        actor = self.require_actor()
        fields = normalize_adjustment(data)

        def apply():
            adjustment = StockAdjustment(id=new_id(), created_by=actor["id"], **fields)
            db.session.add(adjustment)
            return adjustment

        return _commit(apply).to_dict()

    def update_product_stock(self, product_id: str, delta: int) -> bool:
        """
        Apply a signed stock delta atomically.

        Returns False, with nothing written, when the product is missing or
        the result would be negative.
        """
        try:
            delta = int(delta)
        except (TypeError, ValueError):
            raise ValidationError("delta must be an integer")

        def _op():
            result = db.session.execute(
                update(Product)
                .where(Product.id == product_id, Product.stock + delta >= 0)
                .values(stock=Product.stock + delta, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            db.session.commit()
            return result.rowcount == 1

        applied = run_with_retry(_op)
        if not applied:
            logger.info("Rejected stock change %+d for product %s", delta, product_id)
        return applied

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    @degrade_on_failure(SQLAlchemyError, empty=float)
    def get_todays_revenue(self) -> float:
        start, end = local_day_bounds_utc()
        total = (
            db.session.query(func.coalesce(func.sum(Sale.total), 0.0))
            .filter(Sale.created_at >= start, Sale.created_at <= end)
            .scalar()
        )
        return float(total or 0)

    # ------------------------------------------------------------------
    # Audit trail
    # ------------------------------------------------------------------

    def create_audit_entry(self, entry: dict) -> dict:
        fields = normalize_audit_entry(entry)

        def apply():
            audit = AuditEntry(id=new_id(), **fields)
            db.session.add(audit)
            return audit

        return _commit(apply).to_dict()

    @degrade_on_failure(SQLAlchemyError)
    def get_audit_trail(self, limit: int | None = None) -> list[dict]:
        cap = self.audit_limit if limit is None else max(0, min(int(limit), self.audit_limit))
        rows = (
            db.session.query(AuditEntry)
            .order_by(AuditEntry.timestamp.desc())
            .limit(cap)
            .all()
        )
        return [a.to_dict() for a in rows]


def build_local_operations(app, *, auth_provider, remote_profiles) -> LocalOperations:
    """
    Open the Local Store for `app` and wire Local Operations to it.

    Raises EngineUnavailableError when the embedded engine cannot be opened.
    """
    from .identity_bridge import IdentityBridge
    from .local_store import get_local_store

    store = get_local_store(app)
    store.open()
    identity = IdentityBridge(
        auth_provider,
        remote_profiles,
        LocalProfileRepository(),
        max_age_seconds=app.config.get("PROFILE_SYNC_MAX_AGE_SECONDS", 86400),
        name="local",
    )
    return LocalOperations(
        store,
        identity,
        default_threshold=app.config.get("DEFAULT_LOW_STOCK_THRESHOLD", DEFAULT_LOW_STOCK_THRESHOLD),
        audit_limit=app.config.get("AUDIT_TRAIL_LIMIT", 1000),
    )
