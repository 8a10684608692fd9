import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from leads.scoring import score_lead


class TestLeadScoring:
    """Test the lead quality heuristic."""

    def test_strong_lead_is_clamped_to_ten(self):
        """Test every signal present adds up past the cap and clamps to 10."""
        record = {
            "website": "https://acme.test",
            "reviewsCount": 500,
            "totalScore": 5,
            "facebook": "https://facebook.com/acme",
            "categoryName": "Marketing Agency",
        }

        assert score_lead(record) == 10

    def test_empty_record_scores_baseline(self):
        """Test a record with no signals scores the baseline."""
        assert score_lead({}) == 2

    def test_review_thresholds(self):
        """Test the two review thresholds are cumulative."""
        assert score_lead({"reviewsCount": 49}) == 2
        assert score_lead({"reviewsCount": 50}) == 4
        assert score_lead({"reviewsCount": "1,200"}) == 7

    def test_rating_threshold(self):
        """Test only ratings of 4.5 and above count."""
        assert score_lead({"totalScore": 4.4}) == 2
        assert score_lead({"rating": "4.5"}) == 3

    def test_loose_values_do_not_break_scoring(self):
        """Test unparseable counts, empty social lists and unrelated categories add nothing."""
        record = {
            "reviewsCount": "lots",
            "totalScore": True,
            "instagrams": [],
            "categories": ["Bakery", {"name": "Cafe"}],
        }

        assert score_lead(record) == 2

    def test_keyword_in_any_category_field(self):
        """Test ICP keywords match in category lists as well as categoryName."""
        assert score_lead({"categories": [{"name": "Software company"}]}) == 4
        assert score_lead({"categoryName": "Cafe", "category": "Web designer"}) == 4
