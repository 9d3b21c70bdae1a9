import unittest

from fakes import FIXED_NOW, ScriptedJSONModel, extraction_payload

from dealwatch.dedup.engine import DuplicateResolutionEngine
from dealwatch.errors import CollaboratorError, ParseError
from dealwatch.extraction.article_extractor import (
    ArticleExtractor,
    clamp_sentences,
    ensure_emphasis,
    is_placeholder,
    merge_near_identical,
    split_sentences,
)
from dealwatch.ingestion.article_types import CandidateArticle, SearchSection

SECTION = SearchSection(
    category="Credit Facility",
    content=(
        "Credit Facility: TechCorp secured a $500 million revolving credit facility led by Ares Management "
        "to refinance existing debt.\n- https://www.reuters.com/markets/techcorp-facility"
    ),
)

TECHCORP = {
    "title": "Ares Leads $500M Credit Facility for TechCorp",
    "summary": (
        "TechCorp secured a $500 million revolving credit facility led by Ares Management. "
        "The proceeds refinance existing debt. Pricing was not disclosed. The deal closed Friday."
    ),
    "category": "",
    "sourceUrl": None,
    "originalSource": None,
}

PLACEHOLDER = {
    "title": "No specific deals found",
    "summary": "No specific deals were found for this date in the search results.",
}


class TestArticleExtractor(unittest.TestCase):
    def test_extracts_and_normalizes(self):
        model = ScriptedJSONModel([extraction_payload(TECHCORP, PLACEHOLDER)])
        candidates = ArticleExtractor(model).extract(SECTION)

        self.assertEqual(len(candidates), 1)
        cand = candidates[0]
        self.assertEqual(cand.title, "Ares Leads $500M Credit Facility for TechCorp")
        self.assertEqual(len(split_sentences(cand.summary)), 3)
        self.assertIn("**$500 million**", cand.summary)
        self.assertEqual(cand.source_url, "https://www.reuters.com/markets/techcorp-facility")
        self.assertEqual(cand.source_name, "Reuters")
        self.assertEqual(cand.category, "Credit Facility")
        self.assertEqual(cand.origin_section_text, SECTION.content)

    def test_model_supplied_attribution_is_kept(self):
        article = dict(TECHCORP, sourceUrl="https://www.wsj.com/articles/techcorp", originalSource="WSJ", category="Credit Facility")
        candidates = ArticleExtractor(ScriptedJSONModel([extraction_payload(article)])).extract(SECTION)
        self.assertEqual(candidates[0].source_url, "https://www.wsj.com/articles/techcorp")
        self.assertEqual(candidates[0].source_name, "WSJ")

    def test_empty_article_list_is_not_a_failure(self):
        model = ScriptedJSONModel([extraction_payload()])
        self.assertEqual(ArticleExtractor(model).extract(SECTION), [])
        self.assertEqual(len(model.calls), 1)

    def test_malformed_json_falls_back_to_summary(self):
        model = ScriptedJSONModel(
            [
                ParseError("response was not valid JSON"),
                {
                    "title": "Private credit deal roundup",
                    "summary": "TechCorp secured a $500 million revolving credit facility led by Ares Management.",
                },
            ]
        )
        candidates = ArticleExtractor(model).extract(SECTION)
        self.assertEqual(len(candidates), 1)
        self.assertEqual(candidates[0].title, "Private credit deal roundup")
        self.assertEqual(len(model.calls), 2)

    def test_schema_violation_falls_back_to_summary(self):
        model = ScriptedJSONModel(
            [
                {"items": []},
                {
                    "title": "TechCorp refinancing",
                    "summary": "TechCorp secured a $500 million revolving credit facility led by Ares Management.",
                },
            ]
        )
        candidates = ArticleExtractor(model).extract(SECTION)
        self.assertEqual([c.title for c in candidates], ["TechCorp refinancing"])

    def test_total_model_failure_uses_local_summary(self):
        model = ScriptedJSONModel([CollaboratorError("timed out")])
        candidates = ArticleExtractor(model).extract(SECTION)
        self.assertEqual(len(candidates), 1)
        self.assertTrue(candidates[0].title.startswith("TechCorp secured"))
        self.assertEqual(candidates[0].source_url, "https://www.reuters.com/markets/techcorp-facility")
        self.assertIn("**", candidates[0].summary)

    def test_repeated_extraction_merges_to_one_record_per_deal(self):
        fund = {
            "title": "Blue Owl Closes $7B Direct Lending Fund",
            "summary": "Blue Owl Capital closed its latest direct lending fund at $7 billion. Pensions anchored the raise.",
            "category": "Fund Raising",
            "sourceUrl": "https://www.businesswire.com/news/blue-owl-fund",
        }
        extractor = ArticleExtractor(ScriptedJSONModel([extraction_payload(TECHCORP, fund)]))
        first = extractor.extract(SECTION)
        second = extractor.extract(SECTION)
        self.assertEqual(first, second)

        merged = DuplicateResolutionEngine(clock=lambda: FIXED_NOW).merge_candidates(first + second)
        self.assertEqual(len(merged), 2)
        self.assertEqual(
            sorted(c.title for c in merged),
            ["Ares Leads $500M Credit Facility for TechCorp", "Blue Owl Closes $7B Direct Lending Fund"],
        )


class TestCandidateHelpers(unittest.TestCase):
    def test_placeholder_detection(self):
        self.assertTrue(is_placeholder("News Update", "No summary available for the selected date range."))
        self.assertTrue(is_placeholder("Short", "TechCorp secured a $500 million facility from Ares."))
        self.assertFalse(is_placeholder("Ares Leads $500M Credit Facility", "TechCorp secured a $500 million facility from Ares."))

    def test_merge_near_identical_keeps_longer_summary(self):
        a = CandidateArticle(title="Apollo Provides $500M Credit Facility to TechCorp", summary="Short summary of the deal.")
        b = CandidateArticle(
            title="Apollo Expands Credit Line for TechCorp",
            summary="A longer summary that describes the Apollo credit facility in more detail.",
        )
        c = CandidateArticle(title="Blackstone Closes Fund VI", summary="Blackstone closed its sixth credit fund.")
        merged = merge_near_identical([a, b, c])
        self.assertEqual([m.title for m in merged], [b.title, c.title])

    def test_merge_tie_prefers_source_url(self):
        a = CandidateArticle(title="Apollo Credit Deal", summary="Same length summary A.")
        b = CandidateArticle(title="Apollo Credit Move", summary="Same length summary B.", source_url="https://reuters.com/x")
        self.assertEqual(merge_near_identical([a, b]), [b])

    def test_clamp_sentences_respects_abbreviations(self):
        text = (
            "Ares Management Corp. Announced a $1.5 billion fund. It closed Friday. "
            "Investors included pensions. More detail follows."
        )
        self.assertEqual(
            clamp_sentences(text),
            "Ares Management Corp. Announced a $1.5 billion fund. It closed Friday. Investors included pensions.",
        )

    def test_ensure_emphasis(self):
        self.assertEqual(ensure_emphasis("Already **bold** text."), "Already **bold** text.")
        self.assertEqual(ensure_emphasis("Golub agented a loan to a lender."), "Golub agented a **loan** to a lender.")
        self.assertEqual(ensure_emphasis("Lenders met today."), "**Lenders** met today.")


if __name__ == "__main__":
    unittest.main()
