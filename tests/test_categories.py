from wealthdash.categories import DEFAULT_COLOR, DEFAULT_ICON, CategoryStyle, classify


def test_known_categories():
    assert classify("Housing") == CategoryStyle("Home", "#41B883")
    assert classify("Food") == CategoryStyle("Pizza", "#FF6384")
    assert classify("Entertainment").icon == "Film"
    assert classify("Healthcare") == ("HeartPulse", "#00D8FF")


def test_known_icon_without_dedicated_color():
    style = classify("Groceries")
    assert style.icon == "ShoppingCart"
    assert style.color == DEFAULT_COLOR


def test_every_listed_label_has_an_icon():
    labels = ["Housing", "Groceries", "Food", "Transportation", "Dining Out", "Entertainment",
              "Utilities", "Travel", "Bills", "Healthcare", "Education", "Shopping", "Other"]
    for label in labels:
        assert classify(label).icon != DEFAULT_ICON


def test_unknown_label_falls_back():
    assert classify("Crypto") == CategoryStyle(DEFAULT_ICON, DEFAULT_COLOR)
    assert classify("") == CategoryStyle("CircleDollarSign", "#999999")
    assert classify("housing") == CategoryStyle(DEFAULT_ICON, DEFAULT_COLOR)


def test_non_string_falls_back():
    assert classify(None) == CategoryStyle(DEFAULT_ICON, DEFAULT_COLOR)
    assert classify(12) == CategoryStyle(DEFAULT_ICON, DEFAULT_COLOR)


def test_unhashable_input_falls_back():
    assert classify(["Food"]) == CategoryStyle(DEFAULT_ICON, DEFAULT_COLOR)
    assert classify({"category": "Food"}) == CategoryStyle(DEFAULT_ICON, DEFAULT_COLOR)
