# tests/test_matching.py

"""
Tests for the core matching engine.
"""

import pytest
from datetime import date

from cardrecon.core.confidence import (
    calculate_confidence,
    confidence_level,
    within_tolerance,
)
from cardrecon.core.matching import (
    find_best_charge,
    group_purchases,
    match_clusters,
)


BILLING = date(2024, 3, 10)


# ============================================
# Confidence Scoring Tests
# ============================================

class TestConfidenceScoring:
    """Test the confidence scoring algorithm."""

    def test_exact_match_full_confidence(self):
        """Same day and exact amount should score 100."""
        result = calculate_confidence(0, 2, 0, 10000, 2.0)

        assert result.total == 100
        assert result.date_score == 100
        assert result.amount_score == 100
        assert "Same day as billing date" in result.factors
        assert "Exact amount match" in result.factors

    def test_zero_tolerance_exact_match(self):
        """A zero-width window that matches exactly still scores 100."""
        result = calculate_confidence(0, 0, 0, 10000, 0)
        assert result.total == 100

    def test_boundary_scores_floor(self):
        """Both distances at the tolerance edge score the floor."""
        result = calculate_confidence(2, 2, 200, 10000, 2.0)

        assert result.date_score == 50
        assert result.amount_score == 50
        assert result.total == 50

    def test_near_boundary_scenario(self):
        """Two days out and 200 over on 15000 at 2%/2 days."""
        result = calculate_confidence(2, 2, 200, 15000, 2.0)

        assert result.date_score == 50
        assert result.amount_score == pytest.approx(66.67)
        assert result.total == 57
        assert result.days_apart == 2

    def test_monotonic_in_date_distance(self):
        """Further from the billing date never scores higher."""
        scores = [calculate_confidence(d, 2, 100, 10000, 2.0).total for d in (0, 1, 2)]

        assert scores == sorted(scores, reverse=True)
        assert scores == [90, 75, 60]

    def test_monotonic_in_amount_distance(self):
        scores = [calculate_confidence(1, 2, diff, 10000, 2.0).total for diff in (0, 50, 100, 200)]
        assert scores == sorted(scores, reverse=True)

    def test_sign_of_difference_does_not_matter(self):
        over = calculate_confidence(1, 2, 150, 10000, 2.0)
        under = calculate_confidence(1, 2, -150, 10000, 2.0)
        assert over.total == under.total


class TestTolerance:
    """Test the tolerance window."""

    def test_inside_window(self):
        assert within_tolerance(2, 2, 200, 10000, 2.0)

    def test_date_outside_window(self):
        assert not within_tolerance(3, 2, 0, 10000, 2.0)

    def test_amount_outside_window(self):
        assert not within_tolerance(0, 2, 201, 10000, 2.0)

    def test_zero_tolerance_requires_exact(self):
        assert within_tolerance(0, 0, 0, 10000, 0)
        assert not within_tolerance(1, 0, 0, 10000, 0)
        assert not within_tolerance(0, 0, 1, 10000, 0)


class TestConfidenceLevel:
    """Display buckets never affect matching."""

    def test_levels(self):
        assert confidence_level(90, 70) == "high"
        assert confidence_level(70, 70) == "high"
        assert confidence_level(60, 70) == "medium"
        assert confidence_level(40, 70) == "low"


# ============================================
# Grouping Tests
# ============================================

class TestGrouping:
    """Test cluster building by (card, billing date)."""

    def test_groups_by_card_and_billing_date(self, make_purchase):
        purchases = [
            make_purchase("p1", 1000, BILLING),
            make_purchase("p2", 2000, BILLING),
            make_purchase("p3", 3000, BILLING, card="5678"),
            make_purchase("p4", 4000, date(2024, 4, 10)),
        ]

        clusters = group_purchases(purchases)

        assert [c.key for c in clusters] == [
            ("1234", BILLING),
            ("1234", date(2024, 4, 10)),
            ("5678", BILLING),
        ]
        assert clusters[0].total_minor == 3000
        assert clusters[0].purchase_ids == ["p1", "p2"]

    def test_billing_date_not_transaction_date(self, make_purchase):
        """Purchases made on different days share a cluster when billed together."""
        purchases = [
            make_purchase("p1", 1000, BILLING, txn_date=date(2024, 2, 1)),
            make_purchase("p2", 2000, BILLING, txn_date=date(2024, 3, 1)),
        ]

        clusters = group_purchases(purchases)
        assert len(clusters) == 1

    def test_foreign_amount_preferred(self, make_purchase):
        purchases = [
            make_purchase("p1", 0, BILLING, foreign_amount=2500),
            make_purchase("p2", 1000, BILLING),
        ]

        clusters = group_purchases(purchases)
        assert clusters[0].total_minor == 3500


# ============================================
# Matching Tests
# ============================================

class TestMatchClusters:
    """Test cluster-to-charge pairing."""

    def test_scenario_single_match(self, make_purchase, make_charge):
        """Three purchases totalling 15000 against a 15200 charge two days later."""
        purchases = [
            make_purchase("p1", 5000, BILLING),
            make_purchase("p2", 4000, BILLING),
            make_purchase("p3", 6000, BILLING),
        ]
        charges = [make_charge("c1", 15200, date(2024, 3, 12))]

        run = match_clusters(purchases, charges, 2, 2.0)

        assert len(run.proposals) == 1
        proposal = run.proposals[0]
        assert proposal.charge.id == "c1"
        assert sorted(proposal.cluster.purchase_ids) == ["p1", "p2", "p3"]
        assert proposal.discrepancy_minor == 200
        assert proposal.confidence.total == 57
        assert proposal.confidence.total >= 50

    def test_no_candidates(self, make_purchase, make_charge):
        assert match_clusters([], [], 2, 2.0).proposals == []
        assert match_clusters([make_purchase("p1", 1000, BILLING)], [], 2, 2.0).proposals == []

    def test_outside_tolerance_not_matched(self, make_purchase, make_charge):
        purchases = [make_purchase("p1", 10000, BILLING)]
        charges = [
            make_charge("late", 10000, date(2024, 3, 13)),
            make_charge("off", 10300, BILLING),
        ]

        run = match_clusters(purchases, charges, 2, 2.0)
        assert run.proposals == []

    def test_best_charge_wins(self, make_purchase, make_charge):
        """The closest charge in date and amount is chosen."""
        purchases = [make_purchase("p1", 10000, BILLING)]
        charges = [
            make_charge("far", 10100, date(2024, 3, 12)),
            make_charge("near", 10000, date(2024, 3, 10)),
        ]

        run = match_clusters(purchases, charges, 2, 2.0)

        assert run.proposals[0].charge.id == "near"
        assert run.proposals[0].confidence.total == 100

    def test_tie_broken_by_charge_id(self, make_purchase, make_charge):
        purchases = [make_purchase("p1", 10000, BILLING)]
        charges = [
            make_charge("c-b", 10000, date(2024, 3, 11)),
            make_charge("c-a", 10000, date(2024, 3, 9)),
        ]

        run = match_clusters(purchases, charges, 2, 2.0)
        assert run.proposals[0].charge.id == "c-a"

    def test_contested_charge_goes_to_better_cluster(self, make_purchase, make_charge):
        """One charge, two eligible clusters: the better one wins, the other stays free."""
        purchases = [
            make_purchase("p1", 10000, BILLING),
            make_purchase("p2", 10000, date(2024, 3, 11)),
        ]
        charges = [make_charge("c1", 10000, BILLING)]

        run = match_clusters(purchases, charges, 2, 2.0)

        assert len(run.proposals) == 1
        assert run.proposals[0].cluster.purchase_ids == ["p1"]

    def test_loser_falls_back_to_next_charge(self, make_purchase, make_charge):
        purchases = [
            make_purchase("p1", 10000, BILLING),
            make_purchase("p2", 10000, date(2024, 3, 11)),
        ]
        charges = [
            make_charge("c1", 10000, BILLING),
            make_charge("c2", 10050, date(2024, 3, 12)),
        ]

        run = match_clusters(purchases, charges, 2, 2.0)

        pairs = {p.charge.id: p.cluster.purchase_ids for p in run.proposals}
        assert pairs == {"c1": ["p1"], "c2": ["p2"]}

    def test_each_charge_and_purchase_used_once(self, make_purchase, make_charge):
        purchases = [
            make_purchase(f"p{i}", 1000 * i, date(2024, 3, i + 1))
            for i in range(1, 6)
        ]
        charges = [
            make_charge(f"c{i}", 1000 * i, date(2024, 3, i + 1))
            for i in range(1, 6)
        ]

        run = match_clusters(purchases, charges, 5, 50.0)

        used_charges = [p.charge.id for p in run.proposals]
        used_purchases = [pid for p in run.proposals for pid in p.cluster.purchase_ids]
        assert len(used_charges) == len(set(used_charges))
        assert len(used_purchases) == len(set(used_purchases))

    def test_charge_card_must_agree(self, make_purchase, make_charge):
        purchases = [make_purchase("p1", 10000, BILLING, card="1234")]

        other_card = match_clusters(purchases, [make_charge("c1", 10000, BILLING, card="5678")], 2, 2.0)
        same_card = match_clusters(purchases, [make_charge("c1", 10000, BILLING, card="1234")], 2, 2.0)
        no_card = match_clusters(purchases, [make_charge("c1", 10000, BILLING)], 2, 2.0)

        assert other_card.proposals == []
        assert len(same_card.proposals) == 1
        assert len(no_card.proposals) == 1

    def test_rejected_pairing_skipped(self, make_purchase, make_charge):
        purchases = [make_purchase("p1", 10000, BILLING)]
        charges = [make_charge("c1", 10000, BILLING)]

        run = match_clusters(purchases, charges, 2, 2.0, rejected={("c1", frozenset({"p1"}))})
        assert run.proposals == []

    def test_non_positive_cluster_skipped(self, make_purchase, make_charge):
        """Refunds outweighing purchases make a cluster unusable."""
        purchases = [
            make_purchase("p1", 1000, BILLING),
            make_purchase("p2", -3000, BILLING),
        ]
        charges = [make_charge("c1", 2000, BILLING)]

        run = match_clusters(purchases, charges, 2, 2.0)

        assert run.proposals == []
        assert run.skipped_clusters == 1

    def test_zero_charge_skipped(self, make_purchase, make_charge):
        purchases = [make_purchase("p1", 1000, BILLING)]
        charges = [make_charge("c1", 0, BILLING)]

        run = match_clusters(purchases, charges, 2, 2.0)

        assert run.proposals == []
        assert run.skipped_charges == 1

    def test_deterministic(self, make_purchase, make_charge):
        purchases = [
            make_purchase("p1", 10000, BILLING),
            make_purchase("p2", 10000, date(2024, 3, 11)),
            make_purchase("p3", 7000, BILLING, card="5678"),
        ]
        charges = [
            make_charge("c1", 10000, date(2024, 3, 11)),
            make_charge("c2", 10000, BILLING),
            make_charge("c3", 7100, date(2024, 3, 9)),
        ]

        first = match_clusters(purchases, charges, 2, 2.0)
        second = match_clusters(list(reversed(purchases)), list(reversed(charges)), 2, 2.0)

        def pairs(run):
            return [(p.charge.id, p.cluster.purchase_ids) for p in run.proposals]

        assert pairs(first) == pairs(second)


class TestFindBestCharge:

    def test_picks_closest(self, make_purchase, make_charge):
        cluster = group_purchases([make_purchase("p1", 10000, BILLING)])[0]
        charges = [
            make_charge("c1", 10150, BILLING),
            make_charge("c2", 10010, BILLING),
        ]

        assert find_best_charge(cluster, charges, 2, 2.0).id == "c2"

    def test_none_when_nothing_fits(self, make_purchase, make_charge):
        cluster = group_purchases([make_purchase("p1", 10000, BILLING)])[0]
        assert find_best_charge(cluster, [make_charge("c1", 50000, BILLING)], 2, 2.0) is None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
