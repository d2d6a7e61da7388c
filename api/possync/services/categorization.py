"""Batch categorization of freshly synced ledger rows.

The executor inserts rows without running any per-row logic; this module then
makes one deterministic pass over the new ids. The first matching rule (by
priority desc, then creation order) suggests its category, and approves it
too when the rule is set to auto-apply.
"""
import logging
import re
import uuid
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from possync.core.config import settings
from possync.models.rule import CategorizationRule
from possync.models.sales import UnifiedSale

logger = logging.getLogger(__name__)

POS_RULE_SCOPES = ("pos_sales", "both")


def _name_matches(rule: CategorizationRule, item_name: str) -> bool:
    pattern = rule.item_name_pattern.lower()
    name = (item_name or "").lower()
    mtype = rule.match_type

    if mtype == "exact":
        return name == pattern
    elif mtype == "contains":
        return pattern in name
    elif mtype == "starts_with":
        return name.startswith(pattern)
    elif mtype == "ends_with":
        return name.endswith(pattern)
    elif mtype == "regex":
        try:
            return re.search(rule.item_name_pattern, item_name or "", re.IGNORECASE) is not None
        except re.error:
            logger.warning("Rule %s has an invalid regex %r", rule.id, rule.item_name_pattern)
            return False
    return False


def match_rule(rule: CategorizationRule, sale: UnifiedSale) -> bool:
    """Return True if every condition set on the rule holds for this sale."""
    if rule.item_name_pattern and not _name_matches(rule, sale.item_name):
        return False

    if rule.pos_category and (sale.pos_category or "").lower() != rule.pos_category.lower():
        return False

    amount = abs(sale.total_price or 0)
    if rule.amount_min is not None and amount < rule.amount_min:
        return False
    if rule.amount_max is not None and amount > rule.amount_max:
        return False

    return True


def load_rules(db: Session, tenant_id: uuid.UUID) -> list[CategorizationRule]:
    return list(db.execute(
        select(CategorizationRule)
        .where(
            CategorizationRule.tenant_id == tenant_id,
            CategorizationRule.is_active == True,  # noqa: E712
            CategorizationRule.applies_to.in_(POS_RULE_SCOPES),
        )
        .order_by(
            CategorizationRule.priority.desc(),
            CategorizationRule.created_at,
            CategorizationRule.id,
        )
    ).scalars().all())


def categorize_sale(sale: UnifiedSale, rules: list[CategorizationRule]) -> CategorizationRule | None:
    """Apply the first matching rule. Returns the rule if the sale changed."""
    for rule in rules:
        if not match_rule(rule, sale):
            continue
        changed = sale.suggested_category_id != rule.category_id
        sale.suggested_category_id = rule.category_id
        if rule.auto_apply:
            changed = changed or sale.category_id != rule.category_id or not sale.is_categorized
            sale.category_id = rule.category_id
            sale.is_categorized = True
        return rule if changed else None
    return None


def apply_rules_to_sales(db: Session, tenant_id: uuid.UUID, sale_ids: list[uuid.UUID]) -> int:
    """Categorize the given ledger rows in one pass. Returns the number of rows changed.

    Already-categorized and split rows are left alone, so re-running over the
    same ids is a no-op.
    """
    if not sale_ids:
        return 0

    rules = load_rules(db, tenant_id)
    if not rules:
        return 0

    applied = 0
    now = datetime.now(timezone.utc)
    batch_size = settings.categorization_batch_size

    for i in range(0, len(sale_ids), batch_size):
        chunk = sale_ids[i:i + batch_size]
        sales = db.execute(
            select(UnifiedSale).where(
                UnifiedSale.tenant_id == tenant_id,
                UnifiedSale.id.in_(chunk),
                UnifiedSale.is_categorized == False,  # noqa: E712
                UnifiedSale.is_split == False,  # noqa: E712
            )
        ).scalars().all()

        for sale in sales:
            rule = categorize_sale(sale, rules)
            if rule is not None:
                rule.apply_count = (rule.apply_count or 0) + 1
                rule.last_applied_at = now
                applied += 1

        db.commit()

    logger.info("Tenant %s: categorized %d of %d synced rows", tenant_id, applied, len(sale_ids))
    return applied
