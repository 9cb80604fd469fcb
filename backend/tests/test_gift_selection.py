import unittest
from datetime import date

from fulfillment.services import gift_selection_service as selection


TODAY = date(2026, 1, 1)


def _criteria(**overrides):
    values = dict(
        relationship_type="friend",
        budget_limit_cents=10000,
        selected_categories=None,
        recipient_birth_year=None,
        date_type="birthday",
        exclude_items=None,
        today=TODAY,
    )
    values.update(overrides)
    return selection.build_criteria(**values)


class CriteriaTests(unittest.TestCase):
    def test_budget_scaled_by_relationship(self):
        self.assertEqual(selection.adjusted_budget_cents(10000, "spouse"), 15000)
        self.assertEqual(selection.adjusted_budget_cents(10000, "acquaintance"), 7000)
        self.assertEqual(selection.adjusted_budget_cents(10000, "pen_pal"), 10000)

    def test_age_buckets(self):
        cases = {2010: "teen", 2000: "young_adult", 1990: "adult", 1970: "middle_age", 1950: "senior", None: "adult"}
        for birth_year, bucket in cases.items():
            with self.subTest(birth_year=birth_year):
                self.assertEqual(selection.age_category(birth_year, today=TODAY), bucket)

    def test_selected_categories_win(self):
        criteria = _criteria(selected_categories=["Garden"])
        self.assertEqual(criteria.gift_categories, ["Garden"])

    def test_default_categories_relationship_first(self):
        categories = _criteria().gift_categories
        self.assertEqual(categories[:4], selection.RELATIONSHIP_CATEGORIES["friend"])
        self.assertEqual(len(categories), selection.MAX_RECOMMENDED_CATEGORIES)
        self.assertEqual(len(set(categories)), len(categories))

    def test_search_query(self):
        query = selection.search_query(_criteria(relationship_type="spouse", recipient_birth_year=1990), today=TODAY)
        self.assertTrue(query.startswith("Find a thoughtful birthday gift for my romantic partner"))
        self.assertIn("Budget: $150.00.", query)
        self.assertIn("professional", query)
        self.assertIn("birthday gift", query)


class FilterAndScoreTests(unittest.TestCase):
    PRODUCTS = [
        {"product_id": "B0BOOK0001", "name": "Mystery novel", "price_cents": 5000, "category": "Books & Reading"},
        {"product_id": "B0GARD0001", "name": "Trowel", "price_cents": 9500, "category": "Garden"},
        {"product_id": "B0GARD0002", "name": "Planter", "price_cents": 11500, "category": "Garden"},
        {"product_id": "B0PRICEY01", "name": "Telescope", "price_cents": 13000, "category": "Garden"},
        {"product_id": "B0ADULT001", "name": "Adult party game", "price_cents": 2000, "category": "Games"},
        {"product_id": "B0CANDLE01", "name": "Candle", "price_cents": 2000, "category": "Home",
         "description": "Scented soy candle"},
    ]

    def test_filter_drops_over_budget_inappropriate_and_excluded(self):
        criteria = _criteria(exclude_items=["candle"])
        kept = [p["product_id"] for p in selection.filter_candidates(self.PRODUCTS, criteria)]
        self.assertEqual(kept, ["B0BOOK0001", "B0GARD0001", "B0GARD0002"])

    def test_scores(self):
        criteria = _criteria()
        scores = [selection.score_candidate(p, criteria, today=TODAY) for p in self.PRODUCTS[:3]]
        self.assertEqual(scores, [1.0, 0.7, 0.6])

    def test_age_bucket_bonus(self):
        product = {"name": "Headphones", "price_cents": 9000, "category": "Electronics"}
        without_age = selection.score_candidate(product, _criteria(relationship_type="acquaintance"), today=TODAY)
        with_age = selection.score_candidate(
            product, _criteria(relationship_type="acquaintance", recipient_birth_year=2010), today=TODAY
        )
        self.assertAlmostEqual(with_age - without_age, 0.2, places=4)

    def test_reasoning(self):
        text = selection.reasoning(self.PRODUCTS[0], _criteria(recipient_birth_year=2000), today=TODAY)
        self.assertIn("Great value within budget", text)
        self.assertIn("Matches preferred categories", text)
        self.assertIn("young adult", text)
        self.assertTrue(text.endswith("Perfect for your friend"))


if __name__ == "__main__":
    unittest.main()
