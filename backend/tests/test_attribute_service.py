# Overview: Pytest coverage for typed entity attributes.

import pytest

from posledger.errors import ValidationError
from posledger.models import EntityAttribute
from posledger.extensions import db
from posledger.services import attribute_service


class TestValidateAttributes:

    def test_empty_is_noop(self):
        assert attribute_service.validate_attributes("register", None) == {}
        assert attribute_service.validate_attributes("register", {}) == {}

    def test_coercion(self):
        values = attribute_service.validate_attributes("transaction", {
            "order_channel": "phone",
            "training_mode": "off",
            "external_reference": "PO-7",
        })
        assert values == {"order_channel": "phone", "training_mode": False, "external_reference": "PO-7"}

    @pytest.mark.parametrize("entity_type, attributes", [
        ("register", {"unknown_key": 1}),
        ("transaction", {"lane_number": 3}),          # wrong entity
        ("register", {"lane_number": "three"}),
        ("register", {"lane_number": True}),
        ("shift", {"float_target_cents": -1}),
        ("transaction", {"order_channel": "drone"}),
        ("session", {"training_mode": "maybe"}),
        ("register", {"terminal_serial": "X" * 65}),
        ("customer", {"lane_number": 1}),
    ])
    def test_rejected(self, entity_type, attributes):
        with pytest.raises(ValidationError):
            attribute_service.validate_attributes(entity_type, attributes)


class TestStoredAttributes:

    def test_set_and_get(self, ctx, app):
        attribute_service.set_attributes(ctx, "shift", 1, {"float_target_cents": "15000", "drawer_label": "A"})
        db.session.commit()
        assert attribute_service.get_attributes(ctx, "shift", 1) == {"drawer_label": "A", "float_target_cents": 15000}

    def test_upsert_keeps_one_row(self, ctx, app):
        attribute_service.set_attributes(ctx, "session", 4, {"training_mode": True})
        attribute_service.set_attributes(ctx, "session", 4, {"training_mode": False})
        db.session.commit()

        assert db.session.query(EntityAttribute).count() == 1
        assert attribute_service.get_attributes(ctx, "session", 4) == {"training_mode": False}

    def test_tenant_scoped(self, ctx, other_ctx, app):
        attribute_service.set_attributes(ctx, "register", 1, {"lane_number": 1})
        db.session.commit()
        assert attribute_service.get_attributes(other_ctx, "register", 1) == {}
