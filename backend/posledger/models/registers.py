from __future__ import annotations

from ..extensions import db
from posledger.time_utils import to_utc_z


REGISTER_STATUSES = ("closed", "open", "suspended", "maintenance")
REGISTER_TYPES = ("main", "express", "self_checkout", "mobile")


class Register(db.Model):
    """
    Physical or logical POS register (till).

    WHY: Cash accountability is per register. Balances here are only
    written by session/shift open and close, never by individual sales.

    DESIGN: Registers are persistent (not deleted when inactive).
    Each register has many sessions and shifts over time.
    """
    __tablename__ = "pos_registers"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "code", name="uq_pos_registers_tenant_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), nullable=False, index=True)

    # Human-readable identifier (e.g., "REG-01", "FRONT", "DRIVE-THRU")
    code = db.Column(db.String(32), nullable=False)
    name = db.Column(db.String(128), nullable=False)
    register_type = db.Column(db.String(32), nullable=False, default="main")

    status = db.Column(db.String(16), nullable=False, default="closed", index=True)  # closed, open, suspended, maintenance

    # Cash tracking (all amounts in cents)
    opening_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    current_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    expected_balance_cents = db.Column(db.Integer, nullable=False, default=0)

    opened_at = db.Column(db.DateTime(timezone=True), nullable=True)
    opened_by = db.Column(db.Integer, nullable=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    closed_by = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "code": self.code,
            "name": self.name,
            "register_type": self.register_type,
            "status": self.status,
            "opening_balance_cents": self.opening_balance_cents,
            "current_balance_cents": self.current_balance_cents,
            "expected_balance_cents": self.expected_balance_cents,
            "opened_at": to_utc_z(self.opened_at),
            "opened_by": self.opened_by,
            "closed_at": to_utc_z(self.closed_at),
            "closed_by": self.closed_by,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class CashDrawer(db.Model):
    """
    Cash drawer opened alongside a session that starts with a float.

    LIFECYCLE:
    - open: created with the session when opening_amount_cents > 0
    - closed: closed with the session, closing count recorded
    """
    __tablename__ = "pos_cash_drawers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), nullable=False, index=True)
    register_id = db.Column(db.Integer, db.ForeignKey("pos_registers.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default="open", index=True)  # open, closed
    opening_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    closing_amount_cents = db.Column(db.Integer, nullable=True)

    opened_by = db.Column(db.Integer, nullable=True)
    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    closed_by = db.Column(db.Integer, nullable=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    register = db.relationship("Register", backref=db.backref("cash_drawers", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "register_id": self.register_id,
            "status": self.status,
            "opening_amount_cents": self.opening_amount_cents,
            "closing_amount_cents": self.closing_amount_cents,
            "opened_by": self.opened_by,
            "opened_at": to_utc_z(self.opened_at),
            "closed_by": self.closed_by,
            "closed_at": to_utc_z(self.closed_at),
        }


class PosSession(db.Model):
    """
    One cashier's working period on a register.

    LIFECYCLE:
    - active: cashier is ringing sales on the register
    - closed: session ended; immutable afterwards

    At most one active session per register. Enforced twice: a pre-check
    inside a serialized unit, and the partial unique index below.
    """
    __tablename__ = "pos_sessions"
    __table_args__ = (
        db.Index(
            "uq_pos_sessions_register_active",
            "register_id",
            unique=True,
            sqlite_where=db.text("status = 'active'"),
            postgresql_where=db.text("status = 'active'"),
        ),
        db.UniqueConstraint("tenant_id", "session_number", name="uq_pos_sessions_tenant_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), nullable=False, index=True)
    register_id = db.Column(db.Integer, db.ForeignKey("pos_registers.id"), nullable=False, index=True)
    cash_drawer_id = db.Column(db.Integer, db.ForeignKey("pos_cash_drawers.id"), nullable=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("pos_shifts.id"), nullable=True, index=True)
    user_id = db.Column(db.Integer, nullable=True, index=True)

    session_number = db.Column(db.String(64), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="active", index=True)  # active, closed

    session_start = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    session_end = db.Column(db.DateTime(timezone=True), nullable=True)

    opening_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    closing_amount_cents = db.Column(db.Integer, nullable=True)

    # Running aggregates, updated by the commit pipeline
    total_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    total_refunds_cents = db.Column(db.Integer, nullable=False, default=0)
    total_transactions = db.Column(db.Integer, nullable=False, default=0)

    notes = db.Column(db.Text, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    register = db.relationship("Register", backref=db.backref("sessions", lazy=True))
    cash_drawer = db.relationship("CashDrawer")
    shift = db.relationship("Shift", backref=db.backref("sessions", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "register_id": self.register_id,
            "cash_drawer_id": self.cash_drawer_id,
            "shift_id": self.shift_id,
            "user_id": self.user_id,
            "session_number": self.session_number,
            "status": self.status,
            "session_start": to_utc_z(self.session_start),
            "session_end": to_utc_z(self.session_end),
            "opening_amount_cents": self.opening_amount_cents,
            "closing_amount_cents": self.closing_amount_cents,
            "total_sales_cents": self.total_sales_cents,
            "total_refunds_cents": self.total_refunds_cents,
            "total_transactions": self.total_transactions,
            "notes": self.notes,
            "version_id": self.version_id,
        }


class Shift(db.Model):
    """
    Cash-accountability period of a cashier on a register.

    LIFECYCLE:
    - open: accumulating sales from attached sessions
    - closed: counted; expected = opening + total_sales, variance = closing - expected
    - reconciled: reviewed by a manager

    Variance is informational. A shift closes with any variance.
    """
    __tablename__ = "pos_shifts"
    __table_args__ = (
        db.Index(
            "uq_pos_shifts_register_open",
            "register_id",
            unique=True,
            sqlite_where=db.text("status = 'open'"),
            postgresql_where=db.text("status = 'open'"),
        ),
        db.UniqueConstraint("tenant_id", "shift_number", name="uq_pos_shifts_tenant_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), nullable=False, index=True)
    register_id = db.Column(db.Integer, db.ForeignKey("pos_registers.id"), nullable=False, index=True)
    shift_number = db.Column(db.String(64), nullable=False)
    cashier_id = db.Column(db.Integer, nullable=True, index=True)

    opening_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    closing_balance_cents = db.Column(db.Integer, nullable=True)
    expected_balance_cents = db.Column(db.Integer, nullable=True)
    variance_cents = db.Column(db.Integer, nullable=True)

    total_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cash_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    total_card_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    total_returns_cents = db.Column(db.Integer, nullable=False, default=0)
    transaction_count = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default="open", index=True)  # open, closed, reconciled
    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    reconciled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    reconciled_by = db.Column(db.Integer, nullable=True)

    notes = db.Column(db.Text, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    register = db.relationship("Register", backref=db.backref("shifts", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "register_id": self.register_id,
            "shift_number": self.shift_number,
            "cashier_id": self.cashier_id,
            "opening_balance_cents": self.opening_balance_cents,
            "closing_balance_cents": self.closing_balance_cents,
            "expected_balance_cents": self.expected_balance_cents,
            "variance_cents": self.variance_cents,
            "total_sales_cents": self.total_sales_cents,
            "total_cash_sales_cents": self.total_cash_sales_cents,
            "total_card_sales_cents": self.total_card_sales_cents,
            "total_returns_cents": self.total_returns_cents,
            "transaction_count": self.transaction_count,
            "status": self.status,
            "opened_at": to_utc_z(self.opened_at),
            "closed_at": to_utc_z(self.closed_at),
            "reconciled_at": to_utc_z(self.reconciled_at),
            "reconciled_by": self.reconciled_by,
            "notes": self.notes,
            "version_id": self.version_id,
        }
