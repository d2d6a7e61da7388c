"""
Categorization batch tests: rule matching is pure, the batch pass runs on SQLite.
"""
import uuid
from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy import select

from possync.models.rule import CategorizationRule, Category
from possync.models.sales import UnifiedSale
from possync.services.categorization import apply_rules_to_sales, match_rule

DAY = date(2026, 3, 1)


def _rule(**kw):
    defaults = dict(
        id=uuid.uuid4(), item_name_pattern=None, match_type="contains",
        pos_category=None, amount_min=None, amount_max=None,
    )
    defaults.update(kw)
    return SimpleNamespace(**defaults)


def _sale(name="Cheeseburger", category="Food", total="12.00"):
    return SimpleNamespace(item_name=name, pos_category=category, total_price=Decimal(total))


# ── match_rule ───────────────────────────────────────────────────────────────

class TestMatchRule:
    @pytest.mark.parametrize("match_type,pattern,expected", [
        ("exact", "cheeseburger", True),
        ("exact", "burger", False),
        ("contains", "BURGER", True),
        ("starts_with", "cheese", True),
        ("starts_with", "burger", False),
        ("ends_with", "burger", True),
        ("regex", r"^chee.*ger$", True),
        ("regex", r"^fries", False),
        ("fuzzy", "burger", False),
    ])
    def test_name_match_types(self, match_type, pattern, expected):
        rule = _rule(item_name_pattern=pattern, match_type=match_type)
        assert match_rule(rule, _sale()) is expected

    def test_invalid_regex_never_matches(self):
        assert not match_rule(_rule(item_name_pattern="([", match_type="regex"), _sale())

    def test_pos_category_case_insensitive(self):
        assert match_rule(_rule(pos_category="food"), _sale())
        assert not match_rule(_rule(pos_category="Drinks"), _sale())

    def test_amount_range_uses_absolute_value(self):
        rule = _rule(amount_min=Decimal("1.00"), amount_max=Decimal("5.00"))
        assert match_rule(rule, _sale(total="-3.00"))
        assert not match_rule(rule, _sale(total="7.00"))
        assert not match_rule(rule, _sale(total="0.50"))

    def test_all_conditions_must_hold(self):
        rule = _rule(item_name_pattern="burger", pos_category="Drinks")
        assert not match_rule(rule, _sale())

    def test_rule_without_conditions_matches_everything(self):
        assert match_rule(_rule(), _sale(name="Anything", category=None))


# ── apply_rules_to_sales ─────────────────────────────────────────────────────

def _add_sale(db, tenant_id, item_id, name, total="10.00", adjustment_type="revenue", **kw):
    sale = UnifiedSale(
        id=uuid.uuid4(), tenant_id=tenant_id, pos_system="toast",
        external_order_id="o1", external_item_id=item_id, sale_date=DAY,
        item_name=name, quantity=Decimal("1"), unit_price=Decimal(total),
        total_price=Decimal(total), pos_category="Food", adjustment_type=adjustment_type,
        is_categorized=kw.pop("is_categorized", False), is_split=kw.pop("is_split", False), **kw,
    )
    db.add(sale)
    return sale


def _add_rule(db, tenant_id, category, pattern, priority=0, auto_apply=False, **kw):
    rule = CategorizationRule(
        tenant_id=tenant_id, category_id=category.id, name=f"rule {pattern}",
        item_name_pattern=pattern, match_type="contains", priority=priority,
        auto_apply=auto_apply, **kw,
    )
    db.add(rule)
    return rule


@pytest.fixture
def categories(db, connection):
    food = Category(id=uuid.uuid4(), tenant_id=connection.tenant_id, name="Food Sales")
    drinks = Category(id=uuid.uuid4(), tenant_id=connection.tenant_id, name="Beverage Sales")
    db.add_all([food, drinks])
    db.commit()
    return SimpleNamespace(food=food, drinks=drinks)


class TestApplyRules:
    def test_suggests_without_auto_apply(self, db, connection, categories):
        sale = _add_sale(db, connection.tenant_id, "i1", "Burger")
        _add_rule(db, connection.tenant_id, categories.food, "burger")
        db.commit()

        assert apply_rules_to_sales(db, connection.tenant_id, [sale.id]) == 1
        db.refresh(sale)
        assert sale.suggested_category_id == categories.food.id
        assert sale.category_id is None
        assert sale.is_categorized is False

    def test_auto_apply_categorizes(self, db, connection, categories):
        sale = _add_sale(db, connection.tenant_id, "i1", "Burger")
        rule = _add_rule(db, connection.tenant_id, categories.food, "burger", auto_apply=True)
        db.commit()

        apply_rules_to_sales(db, connection.tenant_id, [sale.id])
        db.refresh(sale)
        db.refresh(rule)
        assert sale.category_id == categories.food.id
        assert sale.is_categorized is True
        assert rule.apply_count == 1
        assert rule.last_applied_at is not None

    def test_highest_priority_wins(self, db, connection, categories):
        sale = _add_sale(db, connection.tenant_id, "i1", "Burger and Beer")
        _add_rule(db, connection.tenant_id, categories.food, "burger", priority=1)
        _add_rule(db, connection.tenant_id, categories.drinks, "beer", priority=5)
        db.commit()

        apply_rules_to_sales(db, connection.tenant_id, [sale.id])
        db.refresh(sale)
        assert sale.suggested_category_id == categories.drinks.id

    def test_only_given_ids_are_touched(self, db, connection, categories):
        picked = _add_sale(db, connection.tenant_id, "i1", "Burger")
        other = _add_sale(db, connection.tenant_id, "i2", "Burger")
        _add_rule(db, connection.tenant_id, categories.food, "burger")
        db.commit()

        apply_rules_to_sales(db, connection.tenant_id, [picked.id])
        db.refresh(other)
        assert other.suggested_category_id is None

    def test_categorized_and_split_rows_left_alone(self, db, connection, categories):
        done = _add_sale(db, connection.tenant_id, "i1", "Burger", is_categorized=True,
                         category_id=categories.drinks.id)
        split = _add_sale(db, connection.tenant_id, "i2", "Burger", is_split=True)
        _add_rule(db, connection.tenant_id, categories.food, "burger", auto_apply=True)
        db.commit()

        assert apply_rules_to_sales(db, connection.tenant_id, [done.id, split.id]) == 0
        db.refresh(done)
        db.refresh(split)
        assert done.category_id == categories.drinks.id
        assert split.suggested_category_id is None

    def test_rerun_is_noop(self, db, connection, categories):
        sale = _add_sale(db, connection.tenant_id, "i1", "Burger")
        rule = _add_rule(db, connection.tenant_id, categories.food, "burger")
        db.commit()

        apply_rules_to_sales(db, connection.tenant_id, [sale.id])
        assert apply_rules_to_sales(db, connection.tenant_id, [sale.id]) == 0
        db.refresh(rule)
        assert rule.apply_count == 1

    def test_inactive_and_bank_only_rules_ignored(self, db, connection, categories):
        sale = _add_sale(db, connection.tenant_id, "i1", "Burger")
        _add_rule(db, connection.tenant_id, categories.food, "burger", is_active=False)
        _add_rule(db, connection.tenant_id, categories.drinks, "burger", applies_to="bank")
        db.commit()

        assert apply_rules_to_sales(db, connection.tenant_id, [sale.id]) == 0

    def test_other_tenant_rules_ignored(self, db, connection, categories):
        from conftest import add_connection
        other = add_connection(db, name="Diner")
        sale = _add_sale(db, connection.tenant_id, "i1", "Burger")
        _add_rule(db, other.tenant_id, categories.food, "burger")
        db.commit()

        assert apply_rules_to_sales(db, connection.tenant_id, [sale.id]) == 0

    def test_chunked_processing(self, db, connection, categories, monkeypatch):
        from possync.core.config import settings
        monkeypatch.setattr(settings, "categorization_batch_size", 2)
        sales = [_add_sale(db, connection.tenant_id, f"i{n}", "Burger") for n in range(5)]
        _add_rule(db, connection.tenant_id, categories.food, "burger", auto_apply=True)
        db.commit()

        assert apply_rules_to_sales(db, connection.tenant_id, [s.id for s in sales]) == 5
        categorized = db.execute(
            select(UnifiedSale).where(UnifiedSale.is_categorized == True)  # noqa: E712
        ).scalars().all()
        assert len(categorized) == 5

    def test_empty_ids(self, db, connection):
        assert apply_rules_to_sales(db, connection.tenant_id, []) == 0
