"""Unit tests for product categorization"""

from purchase_sync.domain.categories import (
    AUTOMATION_CATEGORY,
    DOG_EXTRA_CATEGORY,
    CategoryRule,
    build_product_tag_lookup,
    categorize,
    category_names,
    product_ids_by_category,
)
from factories import make_product


def test_automation_requires_tag_and_excludes_dog_extra():
    """includeAutomation alone is automation; adding dogExtra1 moves it to dogExtra only"""
    products = [
        make_product(1, ["includeAutomation", "food"]),
        make_product(2, ["includeAutomation", "dogExtra1"]),
        make_product(3, ["dogExtra1"]),
        make_product(4, []),
    ]

    membership = categorize(products)

    assert membership[1] == frozenset({AUTOMATION_CATEGORY})
    assert membership[2] == frozenset({DOG_EXTRA_CATEGORY})
    assert membership[3] == frozenset({DOG_EXTRA_CATEGORY})
    assert 4 not in membership


def test_tag_matching_is_case_insensitive():
    """Tag comparison ignores case"""
    membership = categorize([make_product(1, ["INCLUDEAUTOMATION"]), make_product(2, ["DogExtra1"])])

    assert membership == {1: frozenset({AUTOMATION_CATEGORY}), 2: frozenset({DOG_EXTRA_CATEGORY})}


def test_product_can_belong_to_several_categories():
    """Custom rule tables allow overlapping membership"""
    rules = (
        CategoryRule(name="food", required_tags=frozenset({"food"})),
        CategoryRule(name="treats", required_tags=frozenset({"treat"})),
    )

    membership = categorize([make_product(7, ["food", "treat"])], rules)

    assert membership[7] == frozenset({"food", "treats"})


def test_categorize_empty_input():
    """No products yields an empty mapping"""
    assert categorize([]) == {}


def test_product_ids_by_category_has_key_for_every_rule():
    """Categories with no products still get an empty entry"""
    membership = categorize([make_product(1, ["includeAutomation"])])

    by_category = product_ids_by_category(membership)

    assert by_category == {AUTOMATION_CATEGORY: frozenset({1}), DOG_EXTRA_CATEGORY: frozenset()}
    assert category_names() == [AUTOMATION_CATEGORY, DOG_EXTRA_CATEGORY]


def test_tag_lookup_merges_duplicate_listings():
    """A product listed twice contributes the union of its tags in first-seen order"""
    products = [
        make_product(1, ["includeAutomation", "food"]),
        make_product(1, ["food", "dry"]),
        make_product(9, ["unrelated"]),
    ]
    membership = categorize(products)

    lookup = build_product_tag_lookup(products, membership)

    assert lookup == {1: ("includeAutomation", "food", "dry")}


def test_categorize_is_idempotent():
    """Same input twice yields equal, independent mappings"""
    products = [make_product(1, ["includeAutomation"]), make_product(2, ["dogExtra1"])]

    first = categorize(products)
    second = categorize(products)

    assert first == second
    assert first is not second
