import pytest

import catalog


def test_query_always_scopes_to_active_products():
    assert catalog.build_product_query() == {"isActive": True}


def test_query_combines_equality_and_price_range():
    query = catalog.build_product_query(category="hoodies", character="thor", min_price=10, max_price=40)
    assert query == {
        "isActive": True,
        "category": "hoodies",
        "character": "thor",
        "price": {"$gte": 10.0, "$lte": 40.0},
    }


def test_zero_min_price_still_filters():
    assert catalog.build_product_query(min_price=0)["price"] == {"$gte": 0.0}


def test_featured_false_is_an_explicit_filter():
    assert catalog.build_product_query(featured=False)["featured"] is False


def test_search_is_a_full_text_match():
    query = catalog.build_product_query(category="shirts", search="  iron man ")
    assert query == {"isActive": True, "category": "shirts", "$text": {"$search": "iron man"}}


def test_blank_search_adds_no_text_clause():
    assert "$text" not in catalog.build_product_query(search="   ")


@pytest.mark.parametrize("keyword,expected", [
    ("price-low", [("price", 1), ("_id", 1)]),
    ("price-high", [("price", -1), ("_id", 1)]),
    ("rating", [("rating", -1), ("_id", 1)]),
    ("newest", [("createdAt", -1), ("_id", 1)]),
    ("bogus", [("createdAt", -1), ("_id", 1)]),
    (None, [("createdAt", -1), ("_id", 1)]),
])
def test_resolve_sort_breaks_ties_on_id(keyword, expected):
    assert catalog.resolve_sort(keyword) == expected


def test_resolve_sort_does_not_mutate_the_keyword_map():
    catalog.resolve_sort("price-low")
    catalog.resolve_sort("price-low")
    assert catalog.SORT_OPTIONS["price-low"] == [("price", 1)]


@pytest.mark.parametrize("total,limit,pages", [(0, 12, 0), (1, 12, 1), (12, 12, 1), (13, 12, 2), (5, 2, 3), (7, 1, 7)])
def test_page_count_is_ceiling(total, limit, pages):
    assert catalog.page_count(total, limit) == pages


def test_page_count_rejects_non_positive_limit():
    with pytest.raises(ValueError):
        catalog.page_count(3, 0)


def test_skip_for():
    assert catalog.skip_for(1, 12) == 0
    assert catalog.skip_for(3, 5) == 10


@pytest.mark.parametrize("price,original,expected", [
    (75, 100, 25),
    (19.99, 29.99, 33),
    (20, None, 0),
    (20, 0, 0),
    (30, 20, 0),
])
def test_discount_percentage(price, original, expected):
    assert catalog.discount_percentage(price, original) == expected


def test_merge_keeps_stored_values_for_falsy_text_and_price():
    existing = {"name": "Thor Hoodie", "description": "Mjolnir print", "price": 45.0, "category": "hoodies"}
    merged = catalog.merge_product_update(existing, {"name": "", "description": None, "price": 0, "category": "caps"})
    assert merged["name"] == "Thor Hoodie"
    assert merged["description"] == "Mjolnir print"
    assert merged["price"] == 45.0
    assert merged["category"] == "caps"


def test_merge_writes_explicit_zero_and_false():
    existing = {"stock": 8, "featured": True, "isActive": True}
    merged = catalog.merge_product_update(existing, {"stock": 0, "featured": False, "isActive": False})
    assert merged == {"stock": 0, "featured": False, "isActive": False}


def test_merge_replaces_sizes_and_colors_only_when_given():
    existing = {"sizes": ["M"], "colors": [{"name": "Red", "hex": "#f00"}]}
    assert catalog.merge_product_update(existing, {"sizes": ["S", "L"]})["sizes"] == ["S", "L"]
    assert catalog.merge_product_update(existing, {"sizes": None})["sizes"] == ["M"]
    assert catalog.merge_product_update(existing, {})["colors"] == [{"name": "Red", "hex": "#f00"}]
