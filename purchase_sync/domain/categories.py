"""Product categorization driven by a closed table of tag rules"""

from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, List, Tuple
from purchase_sync.domain.models import CategoryMembership, Product

# Tags the storefront team puts on products
INCLUDE_AUTOMATION_TAG = "includeAutomation"
DOG_EXTRA_TAG = "dogExtra1"

AUTOMATION_CATEGORY = "automation"
DOG_EXTRA_CATEGORY = "dogExtra"


@dataclass(frozen=True)
class CategoryRule:
    """A category: every required tag present, no excluded tag present (case-insensitive)"""

    name: str
    required_tags: FrozenSet[str]
    excluded_tags: FrozenSet[str] = frozenset()

    def matches(self, tags: Iterable[str]) -> bool:
        present = {tag.lower() for tag in tags}
        required = {tag.lower() for tag in self.required_tags}
        excluded = {tag.lower() for tag in self.excluded_tags}
        return required <= present and not (excluded & present)


DEFAULT_CATEGORY_RULES: Tuple[CategoryRule, ...] = (
    CategoryRule(
        name=AUTOMATION_CATEGORY,
        required_tags=frozenset({INCLUDE_AUTOMATION_TAG}),
        excluded_tags=frozenset({DOG_EXTRA_TAG}),
    ),
    CategoryRule(
        name=DOG_EXTRA_CATEGORY,
        required_tags=frozenset({DOG_EXTRA_TAG}),
    ),
)


def category_names(rules: Iterable[CategoryRule] = DEFAULT_CATEGORY_RULES) -> List[str]:
    """Category names in rule-table order"""
    return [rule.name for rule in rules]


def categorize(
    products: Iterable[Product],
    rules: Iterable[CategoryRule] = DEFAULT_CATEGORY_RULES,
) -> CategoryMembership:
    """
    Map every categorized product id to the set of categories it belongs to.

    A product may satisfy several rules at once; products matching no rule are
    left out of the mapping entirely. The input is not modified and a fresh
    mapping is returned on every call.
    """
    rules = tuple(rules)
    return {
        product.id: names
        for product, names in (
            (product, frozenset(rule.name for rule in rules if rule.matches(product.tags)))
            for product in products
        )
        if names
    }


def product_ids_by_category(
    membership: CategoryMembership,
    rules: Iterable[CategoryRule] = DEFAULT_CATEGORY_RULES,
) -> Dict[str, FrozenSet[int]]:
    """Invert a membership map: category -> product ids (every rule gets a key)"""
    return {
        name: frozenset(pid for pid, names in membership.items() if name in names)
        for name in category_names(rules)
    }


def build_product_tag_lookup(
    products: Iterable[Product],
    membership: CategoryMembership,
) -> Dict[int, Tuple[str, ...]]:
    """
    Tag list per categorized product, attached to line items at storage time.

    A product listed under several categories contributes the union of its tags
    (first-seen order kept), so a product is never shadowed by a later category.
    """
    lookup: Dict[int, Tuple[str, ...]] = {}
    for product in products:
        if product.id not in membership:
            continue
        merged = lookup.get(product.id, ()) + product.tags
        lookup[product.id] = tuple(dict.fromkeys(merged))
    return lookup
