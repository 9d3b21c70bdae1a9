import unittest
from datetime import timedelta

from fakes import FIXED_NOW

from dealwatch.ingestion.article_types import CandidateArticle, StoredArticle
from dealwatch.scoring.article_scoring import (
    pick_survivor,
    recency_bonus,
    score_survivor,
    source_name_score,
    title_score,
    url_tier_score,
)


class TestArticleScoring(unittest.TestCase):
    def test_url_tiers(self):
        self.assertEqual(url_tier_score("https://www.reuters.com/a"), 50.0)
        self.assertEqual(url_tier_score("https://finance.yahoo.com/b"), 50.0)
        self.assertEqual(url_tier_score("https://www.wsj.com/c"), 30.0)
        self.assertEqual(url_tier_score("https://www.bloomberg.com/d"), 20.0)
        self.assertEqual(url_tier_score("https://lenderblog.example/e"), 25.0)
        self.assertEqual(url_tier_score("http://lenderblog.example/e"), 10.0)
        self.assertEqual(url_tier_score(None), -20.0)

    def test_source_name_tiers(self):
        self.assertEqual(source_name_score("Business Wire"), 25.0)
        self.assertEqual(source_name_score("Bloomberg Terminal"), 10.0)
        self.assertEqual(source_name_score("Bloomberg"), 15.0)
        self.assertEqual(source_name_score("Financial News"), 5.0)
        self.assertEqual(source_name_score("Private Debt Investor"), 8.0)
        self.assertEqual(source_name_score(""), 0.0)

    def test_recency(self):
        self.assertEqual(recency_bonus(FIXED_NOW - timedelta(hours=3), FIXED_NOW), 5.0)
        self.assertEqual(recency_bonus(FIXED_NOW - timedelta(hours=30), FIXED_NOW), 3.0)
        self.assertEqual(recency_bonus(FIXED_NOW - timedelta(days=3), FIXED_NOW), 0.0)
        self.assertEqual(recency_bonus(None, FIXED_NOW), 0.0)

    def test_engagement_counts(self):
        base = StoredArticle(id=1, date=FIXED_NOW.date(), title="Ares Leads $300M Loan to Acme", summary="x" * 60)
        liked = StoredArticle(id=2, date=FIXED_NOW.date(), title=base.title, summary=base.summary, upvotes=4)
        self.assertEqual(score_survivor(liked, FIXED_NOW).total - score_survivor(base, FIXED_NOW).total, 12.0)

    def test_score_is_deterministic(self):
        a = CandidateArticle(title="Apollo Provides $500M Credit Facility to TechCorp", summary="Apollo **$500 million**.")
        self.assertEqual(score_survivor(a, FIXED_NOW), score_survivor(a, FIXED_NOW))

    def test_wsj_outranks_bloomberg(self):
        a = CandidateArticle(
            title="Apollo Provides $500M Credit Facility to TechCorp",
            summary="The financing supports TechCorp's expansion.",
            source_url="https://bloomberg.com/x",
        )
        b = CandidateArticle(
            title="Apollo's $500M TechCorp Financing Deal",
            summary="The financing supports TechCorp's expansion.",
            source_url="https://wsj.com/y",
        )
        keep, score_a, score_b = pick_survivor(a, b, FIXED_NOW)
        self.assertEqual(keep, 1)
        self.assertGreater(score_b.total, score_a.total)

    def test_percent_earns_no_sponsor_bonus(self):
        # 24 characters -> 3.0, plus the "notes" deal keyword.
        self.assertEqual(title_score("Acme notes pay 5 percent"), 11.0)
        self.assertEqual(title_score("Ares notes pay 5 percent") - title_score("Acme notes pay 5 percent"), 10.0)

    def test_ties_keep_first(self):
        a = CandidateArticle(title="Same Title Deal", summary="Same summary text here.")
        b = CandidateArticle(title="Same Title Deal", summary="Same summary text here.")
        self.assertEqual(pick_survivor(a, b, FIXED_NOW)[0], 0)


if __name__ == "__main__":
    unittest.main()
