import unittest
from datetime import date, timedelta

from fakes import FIXED_NOW, InMemoryDealStore, ScriptedJSONModel, verdict

from dealwatch.dedup.engine import DuplicateResolutionEngine
from dealwatch.dedup.semantic import SemanticAdjudicator
from dealwatch.errors import CollaboratorError
from dealwatch.ingestion.article_types import CandidateArticle, StoredArticle

TODAY = FIXED_NOW.date()

APOLLO_BLOOMBERG = CandidateArticle(
    title="Apollo Provides $500M Credit Facility to TechCorp",
    summary="The financing supports TechCorp's expansion.",
    source_url="https://bloomberg.com/x",
)
APOLLO_WSJ = CandidateArticle(
    title="Apollo's $500M TechCorp Financing Deal",
    summary="The financing supports TechCorp's expansion.",
    source_url="https://wsj.com/y",
)
BLACKSTONE_DATACO = CandidateArticle(
    title="Blackstone Leads $500M Loan for DataCo",
    summary="The loan refinances DataCo's existing debt.",
    source_url="https://reuters.com/z",
)
# The Apollo deal again, each report paraphrased and credited to its own outlet.
APOLLO_BLOOMBERG_REWORDED = CandidateArticle(
    title="Apollo Provides $500M Credit Facility to TechCorp",
    summary="TechCorp secured a **$500 million** revolving credit facility led by Apollo, Bloomberg reported.",
    source_url="https://bloomberg.com/x",
)
APOLLO_WSJ_REWORDED = CandidateArticle(
    title="Apollo's $500M TechCorp Financing Deal",
    summary="Apollo Global Management is providing TechCorp with $500 million in financing, according to the Wall Street Journal.",
    source_url="https://wsj.com/y",
)

# (title, summary) pairs describing one event each without sharing title words.
RIVERBEND = [
    ("Riverbend Health lands new financing", "The hospital operator obtained financing from a lender group."),
    ("Hospital operator secures debt package", "Riverbend obtained capital from several lenders."),
]
NORTHWIND = [
    ("Northwind Logistics closes refinancing", "The freight company refinanced with private lenders."),
    ("Freight carrier completes debt deal", "Northwind replaced its bank debt with a private loan."),
]


def _stored(title, summary="Lenders provided financing to the borrower.", **kw):
    kw.setdefault("date", TODAY)
    return StoredArticle(id=None, title=title, summary=summary, **kw)


def _engine(adjudicator=None):
    return DuplicateResolutionEngine(adjudicator=adjudicator, clock=lambda: FIXED_NOW)


class TestCascade(unittest.TestCase):
    def test_apollo_techcorp_flagged_by_entity_stage(self):
        analysis = _engine().compare(APOLLO_BLOOMBERG, APOLLO_WSJ)
        self.assertTrue(analysis.is_duplicate)
        self.assertEqual(analysis.stage, "entity")
        # The WSJ tier outranks the Bloomberg tier.
        self.assertEqual(analysis.keep_index, 1)
        self.assertEqual(analysis.action, "keep_second")

    def test_reworded_summaries_still_match_on_entities(self):
        analysis = _engine().compare(APOLLO_BLOOMBERG_REWORDED, APOLLO_WSJ_REWORDED)
        self.assertTrue(analysis.is_duplicate)
        self.assertEqual(analysis.stage, "entity")
        self.assertEqual(analysis.similarity, 1.0)

    def test_same_amount_different_companies_not_duplicate(self):
        analysis = _engine().compare(APOLLO_BLOOMBERG, BLACKSTONE_DATACO)
        self.assertFalse(analysis.is_duplicate)
        self.assertEqual(analysis.action, "keep_both")
        self.assertIsNone(analysis.keep_index)

    def test_exact_canonical_url(self):
        a = CandidateArticle(title="Ares refinances Acme", summary="x" * 40, source_url="https://www.reuters.com/deals/acme?utm_source=tw")
        b = CandidateArticle(title="Completely different headline", summary="y" * 40, source_url="http://reuters.com/deals/acme/")
        analysis = _engine().compare(a, b)
        self.assertEqual((analysis.is_duplicate, analysis.stage), (True, "exact"))

    def test_short_urls_are_ignored(self):
        a = CandidateArticle(title="Ares refinances Acme", summary="x" * 40, source_url="https://x.co")
        b = CandidateArticle(title="Unrelated market commentary", summary="y" * 40, source_url="https://x.co")
        self.assertFalse(_engine().compare(a, b).is_duplicate)

    def test_lexical_threshold_depends_on_source(self):
        base = "Golub Capital Provides Senior Secured Financing Package Supporting Riverbend Healthcare Acquisition"
        a = CandidateArticle(title=base, summary="Details were limited.", source_name="Reuters")
        b = CandidateArticle(title=base + " Today", summary="Details were limited.", source_name="Reuters")
        self.assertEqual(_engine().compare(a, b).stage, "lexical")

        c = CandidateArticle(title=base + " Today", summary="Details were limited.", source_name="Bloomberg")
        self.assertNotEqual(_engine().compare(a, c).stage, "lexical")

    def test_entity_stage_requires_deal_terms(self):
        a = CandidateArticle(title="Apollo and TechCorp $500M announcement", summary="Apollo and TechCorp shared news.")
        b = CandidateArticle(title="TechCorp, Apollo reveal $500M plan", summary="TechCorp and Apollo spoke today.")
        self.assertFalse(_engine().compare(a, b).is_duplicate)

    def test_comparison_failure_is_not_duplicate(self):
        model = ScriptedJSONModel([CollaboratorError("adjudicator timed out")])
        engine = _engine(SemanticAdjudicator(model, call_delay=0))
        a = _stored("Riverbend Health lands new financing", source_name="Reuters")
        b = _stored("Hospital operator secures debt package", source_name="Reuters")
        analysis = engine.compare(a, b, allow_semantic=True)
        self.assertFalse(analysis.is_duplicate)
        self.assertTrue(analysis.reason.startswith("analysis failed"))


class TestSemanticStage(unittest.TestCase):
    A = _stored(
        "Riverbend Health lands new financing",
        "The hospital operator obtained financing from a lender group.",
    )
    B = _stored(
        "Hospital operator secures debt package",
        "Riverbend obtained capital from several lenders.",
        date=TODAY - timedelta(days=1),
    )

    def test_accepts_confident_verdict(self):
        model = ScriptedJSONModel([verdict(True, 0.9)])
        engine = _engine(SemanticAdjudicator(model, call_delay=0))
        self.assertFalse(engine.compare(self.A, self.B).is_duplicate)
        analysis = engine.compare(self.A, self.B, allow_semantic=True)
        self.assertEqual((analysis.is_duplicate, analysis.stage), (True, "semantic"))

    def test_rejects_low_similarity_verdict(self):
        model = ScriptedJSONModel([verdict(True, 0.7)])
        engine = _engine(SemanticAdjudicator(model, call_delay=0))
        self.assertFalse(engine.compare(self.A, self.B, allow_semantic=True).is_duplicate)

    def test_pairs_far_apart_are_not_adjudicated(self):
        model = ScriptedJSONModel([verdict(True, 0.95)])
        engine = _engine(SemanticAdjudicator(model, call_delay=0))
        far = _stored(self.B.title, self.B.summary, date=TODAY - timedelta(days=6))
        self.assertFalse(engine.compare(self.A, far, allow_semantic=True).is_duplicate)
        self.assertEqual(model.calls, [])

    def test_budget_is_bounded(self):
        model = ScriptedJSONModel([verdict(False, 0.2)])
        adjudicator = SemanticAdjudicator(model, max_calls=1, call_delay=0)
        engine = _engine(adjudicator)
        engine.compare(self.A, self.B, allow_semantic=True)
        engine.compare(self.A, self.B, allow_semantic=True)
        self.assertEqual(len(model.calls), 1)
        adjudicator.reset_budget()
        engine.compare(self.A, self.B, allow_semantic=True)
        self.assertEqual(len(model.calls), 2)


class TestWriteTimePaths(unittest.TestCase):
    def test_find_inline_match(self):
        stored = [
            StoredArticle(id=1, date=TODAY, title=BLACKSTONE_DATACO.title, summary=BLACKSTONE_DATACO.summary),
            StoredArticle(id=2, date=TODAY, title=APOLLO_WSJ.title, summary=APOLLO_WSJ.summary, source_url=APOLLO_WSJ.source_url),
        ]
        match = _engine().find_inline_match(APOLLO_BLOOMBERG, stored)
        self.assertIsNotNone(match)
        self.assertEqual(match[0].id, 2)
        self.assertIsNone(_engine().find_inline_match(APOLLO_BLOOMBERG, stored[:1]))

    def test_find_inline_match_with_reworded_summary(self):
        stored = [
            StoredArticle(
                id=7,
                date=TODAY,
                title=APOLLO_WSJ_REWORDED.title,
                summary=APOLLO_WSJ_REWORDED.summary,
                source_url=APOLLO_WSJ_REWORDED.source_url,
            )
        ]
        match = _engine().find_inline_match(APOLLO_BLOOMBERG_REWORDED, stored)
        self.assertIsNotNone(match)
        self.assertEqual((match[0].id, match[1].stage), (7, "entity"))

    def test_merge_candidates_collapses_batch_duplicates(self):
        merged = _engine().merge_candidates([APOLLO_BLOOMBERG, APOLLO_WSJ, BLACKSTONE_DATACO])
        self.assertEqual(merged, [APOLLO_WSJ, BLACKSTONE_DATACO])

    def test_merge_candidates_inherits_missing_url(self):
        with_url = CandidateArticle(
            title="Ares refinances Acme",
            summary="Short.",
            source_name="Reuters",
            source_url="https://reuters.com/deals/acme",
        )
        without_url = CandidateArticle(
            title="Ares Refinances Acme!",
            summary="Ares Management provided a **$300 million** term loan to refinance Acme's debt. " * 2,
        )
        merged = _engine().merge_candidates([with_url, without_url])
        self.assertEqual(len(merged), 1)
        self.assertEqual(merged[0].source_url, "https://reuters.com/deals/acme")


class TestSweep(unittest.TestCase):
    def _cluster(self, store, n=3, **kw):
        return [
            store.add(_stored("Ares Leads $300M Loan to Acme", created_at=FIXED_NOW - timedelta(hours=n - i), **kw))
            for i in range(n)
        ]

    def test_sweep_converges(self):
        store = InMemoryDealStore()
        self._cluster(store)
        first = _engine().sweep(store, TODAY)
        self.assertEqual((first.duplicates_found, first.deleted), (2, 2))
        self.assertEqual(len(store.get_all()), 1)

        second = _engine().sweep(store, TODAY)
        self.assertEqual((second.duplicates_found, second.deleted), (0, 0))

    def test_dry_run_does_not_mutate(self):
        store = InMemoryDealStore()
        self._cluster(store)
        report = _engine().sweep(store, TODAY, dry_run=True)
        self.assertTrue(report.dry_run)
        self.assertEqual((report.duplicates_found, report.deleted), (2, 0))
        self.assertEqual(len(report.pairs), 2)
        self.assertEqual(len(store.get_all()), 3)

    def test_winner_is_patched_before_loser_is_deleted(self):
        store = InMemoryDealStore()
        popular = store.add(_stored("Ares Leads $300M Loan to Acme", upvotes=40, created_at=FIXED_NOW - timedelta(hours=2)))
        sourced = store.add(
            _stored(
                "Ares Leads $300M Loan to Acme",
                source_url="https://www.reuters.com/deals/acme",
                source_name="Reuters",
                created_at=FIXED_NOW - timedelta(hours=1),
            )
        )
        report = _engine().sweep(store, TODAY)
        self.assertEqual((report.deleted, report.patched), (1, 1))
        self.assertIsNone(store.get(sourced.id))
        survivor = store.get(popular.id)
        self.assertEqual(survivor.source_url, "https://www.reuters.com/deals/acme")
        self.assertEqual(survivor.source_name, "Reuters")

    def test_delete_failure_is_counted(self):
        store = InMemoryDealStore()
        rows = self._cluster(store)
        store.fail_delete_ids.add(rows[1].id)
        report = _engine().sweep(store, TODAY)
        self.assertEqual((report.failed, report.deleted), (1, 1))
        self.assertIsNotNone(store.get(rows[1].id))

    def test_window_excludes_old_records(self):
        store = InMemoryDealStore()
        self._cluster(store, n=2, date=TODAY - timedelta(days=30))
        report = _engine().sweep(store, TODAY, window_days=7)
        self.assertEqual(report.examined, 0)

    def test_semantic_budget_refills_only_for_new_records(self):
        model = ScriptedJSONModel([verdict(False, 0.1)])
        adjudicator = SemanticAdjudicator(model, max_calls=1, call_delay=0)
        store = InMemoryDealStore()
        store.add(_stored(TestSemanticStage.A.title, TestSemanticStage.A.summary))
        store.add(_stored(TestSemanticStage.B.title, TestSemanticStage.B.summary))
        engine = _engine(adjudicator)
        self.assertEqual(engine.sweep(store, TODAY).semantic_calls, 1)
        # Nothing new was stored: the judged pair is answered from the cache.
        self.assertEqual(engine.sweep(store, TODAY).semantic_calls, 0)
        self.assertEqual(len(model.calls), 1)

        store.add(_stored(*NORTHWIND[0]))
        self.assertEqual(engine.sweep(store, TODAY).semantic_calls, 1)
        self.assertEqual(len(model.calls), 2)

    def test_sweep_converges_when_semantic_budget_runs_out(self):
        def same_company(system, user):
            return verdict(user.count("Riverbend") == 2 or user.count("Northwind") == 2, 0.9)

        store = InMemoryDealStore()
        rows = [RIVERBEND[0], NORTHWIND[0], RIVERBEND[1], NORTHWIND[1]]
        for hours, (title, summary) in zip((4, 3, 2, 1), rows):
            store.add(_stored(title, summary, created_at=FIXED_NOW - timedelta(hours=hours)))
        engine = _engine(SemanticAdjudicator(ScriptedJSONModel([same_company]), max_calls=3, call_delay=0))

        first = engine.sweep(store, TODAY)
        self.assertEqual((first.semantic_calls, first.deleted), (3, 1))
        second = engine.sweep(store, TODAY)
        self.assertEqual((second.semantic_calls, second.deleted), (0, 0))
        self.assertEqual(len(store.get_all()), 3)

        # A later ingestion refills the budget and the unjudged pair gets its turn.
        store.add(
            _stored(
                "Quarterly earnings beat estimates",
                "Shares rose after the results.",
                date=TODAY - timedelta(days=5),
                created_at=FIXED_NOW,
            )
        )
        third = engine.sweep(store, TODAY)
        self.assertEqual(third.deleted, 1)
        self.assertEqual(len(store.get_all()), 3)


if __name__ == "__main__":
    unittest.main()
