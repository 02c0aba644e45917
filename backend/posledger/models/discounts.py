from __future__ import annotations

from ..extensions import db
from posledger.time_utils import to_utc_z


DISCOUNT_TYPES = ("percentage", "fixed_amount", "buy_x_get_y", "buy_x_get_discount", "bundle")
APPLIES_TO = ("all_products", "category", "specific_products", "order_total")


class DiscountRule(db.Model):
    """
    Automatic or coupon-backed discount rule.

    VALUES:
    - percentage, buy_x_get_discount: discount_value in basis points (1000 = 10%)
    - fixed_amount, bundle: discount_value in cents
    - buy_x_get_y: discount_value in basis points for the free units (0 = 100% off)

    Product and category targets live in discount_rule_targets.
    usage_count is only ever moved by a conditional UPDATE against usage_limit.
    """
    __tablename__ = "discount_rules"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "rule_code", name="uq_discount_rules_tenant_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), nullable=False, index=True)

    rule_code = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    discount_type = db.Column(db.String(32), nullable=False)
    applies_to = db.Column(db.String(32), nullable=False, default="all_products")
    discount_value = db.Column(db.Integer, nullable=False, default=0)

    min_purchase_cents = db.Column(db.Integer, nullable=True)
    max_discount_cents = db.Column(db.Integer, nullable=True)
    buy_quantity = db.Column(db.Integer, nullable=True)
    get_quantity = db.Column(db.Integer, nullable=True)

    valid_from = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    valid_to = db.Column(db.DateTime(timezone=True), nullable=True)
    days_of_week = db.Column(db.String(32), nullable=True)  # "0,6" (Sunday=0)
    time_from = db.Column(db.Time, nullable=True)
    time_to = db.Column(db.Time, nullable=True)

    usage_limit = db.Column(db.Integer, nullable=True)
    usage_count = db.Column(db.Integer, nullable=False, default=0)

    requires_approval = db.Column(db.Boolean, nullable=False, default=False)
    is_combinable = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    priority = db.Column(db.Integer, nullable=False, default=0)

    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    targets = db.relationship("DiscountRuleTarget", back_populates="rule", lazy="selectin")

    @property
    def product_ids(self) -> list[int]:
        return [t.target_id for t in self.targets if t.target_type == "product"]

    @property
    def category_ids(self) -> list[int]:
        return [t.target_id for t in self.targets if t.target_type == "category"]

    @property
    def weekdays(self) -> list[int]:
        if not self.days_of_week:
            return []
        return [int(d) for d in self.days_of_week.split(",") if d.strip()]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "rule_code": self.rule_code,
            "name": self.name,
            "description": self.description,
            "discount_type": self.discount_type,
            "applies_to": self.applies_to,
            "discount_value": self.discount_value,
            "min_purchase_cents": self.min_purchase_cents,
            "max_discount_cents": self.max_discount_cents,
            "buy_quantity": self.buy_quantity,
            "get_quantity": self.get_quantity,
            "valid_from": to_utc_z(self.valid_from),
            "valid_to": to_utc_z(self.valid_to),
            "days_of_week": self.weekdays,
            "time_from": self.time_from.isoformat() if self.time_from else None,
            "time_to": self.time_to.isoformat() if self.time_to else None,
            "usage_limit": self.usage_limit,
            "usage_count": self.usage_count,
            "requires_approval": self.requires_approval,
            "is_combinable": self.is_combinable,
            "is_active": self.is_active,
            "priority": self.priority,
            "product_ids": self.product_ids,
            "category_ids": self.category_ids,
            "created_at": to_utc_z(self.created_at),
        }


class DiscountRuleTarget(db.Model):
    """Product or category a rule is scoped to."""
    __tablename__ = "discount_rule_targets"
    __table_args__ = (
        db.UniqueConstraint("rule_id", "target_type", "target_id", name="uq_discount_rule_targets"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    rule_id = db.Column(db.Integer, db.ForeignKey("discount_rules.id"), nullable=False, index=True)
    target_type = db.Column(db.String(16), nullable=False)  # product, category
    target_id = db.Column(db.Integer, nullable=False)

    rule = db.relationship("DiscountRule", back_populates="targets")


class CouponCode(db.Model):
    """
    Redeemable code, optionally backed by a discount rule.

    current_uses is only ever moved by a conditional UPDATE against max_uses.
    """
    __tablename__ = "coupon_codes"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "coupon_code", name="uq_coupon_codes_tenant_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), nullable=False, index=True)
    coupon_code = db.Column(db.String(64), nullable=False)
    discount_rule_id = db.Column(db.Integer, db.ForeignKey("discount_rules.id"), nullable=True, index=True)

    max_uses = db.Column(db.Integer, nullable=True)
    max_uses_per_customer = db.Column(db.Integer, nullable=True)
    current_uses = db.Column(db.Integer, nullable=False, default=0)

    valid_from = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    valid_to = db.Column(db.DateTime(timezone=True), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    discount_rule = db.relationship("DiscountRule", backref=db.backref("coupons", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "coupon_code": self.coupon_code,
            "discount_rule_id": self.discount_rule_id,
            "max_uses": self.max_uses,
            "max_uses_per_customer": self.max_uses_per_customer,
            "current_uses": self.current_uses,
            "valid_from": to_utc_z(self.valid_from),
            "valid_to": to_utc_z(self.valid_to),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class CouponUsage(db.Model):
    """
    One row per coupon redemption.

    IMMUTABLE: Never updated or deleted, refunds included.
    """
    __tablename__ = "coupon_usage"
    __table_args__ = (
        db.Index("ix_coupon_usage_coupon_customer", "coupon_id", "customer_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), nullable=False, index=True)
    coupon_id = db.Column(db.Integer, db.ForeignKey("coupon_codes.id"), nullable=False, index=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("pos_transactions.id"), nullable=True, index=True)
    customer_id = db.Column(db.Integer, nullable=True)
    discount_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    used_by = db.Column(db.Integer, nullable=True)
    used_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    coupon = db.relationship("CouponCode", backref=db.backref("usages", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "coupon_id": self.coupon_id,
            "transaction_id": self.transaction_id,
            "customer_id": self.customer_id,
            "discount_amount_cents": self.discount_amount_cents,
            "used_by": self.used_by,
            "used_at": to_utc_z(self.used_at),
        }
