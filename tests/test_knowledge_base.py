"""
Clinical Risk Engine - Test Suite
Medical knowledge base lookups
"""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from src.core.knowledge_base import (
    KnowledgeBase, InteractionEntry, DRUG_INTERACTIONS, CONTRAINDICATIONS,
    get_knowledge_base,
)


class TestKnowledgeBaseData:
    """Test the static tables"""

    def test_tables_not_empty(self):
        kb = get_knowledge_base()
        stats = kb.get_stats()
        assert stats["total_interactions"] == len(DRUG_INTERACTIONS)
        assert stats["total_contraindications"] == len(CONTRAINDICATIONS)
        assert stats["total_dosage_guidelines"] > 0
        assert stats["total_allergy_groups"] > 0

    def test_severity_counts_consistent(self):
        stats = get_knowledge_base().get_stats()
        assert (
            stats["major_interactions"] + stats["moderate_interactions"] + stats["minor_interactions"]
            <= stats["total_interactions"]
        )

    def test_significance_in_range(self):
        """Clinical significance is always 1-5"""
        assert all(1 <= i.clinical_significance <= 5 for i in DRUG_INTERACTIONS)

    def test_entries_serialize(self):
        entry = DRUG_INTERACTIONS[0]
        data = entry.to_dict()
        assert data["drug1"] == entry.drug1
        assert data["clinical_significance"] == entry.clinical_significance


class TestKnowledgeBaseLookups:
    """Test lookup semantics"""

    @pytest.fixture
    def kb(self):
        return get_knowledge_base()

    def test_find_interactions(self, kb):
        results = kb.find_interactions("Warfarin")
        assert results
        assert all("warfarin" in (r.drug1 + r.drug2).lower() for r in results)

    def test_find_interactions_empty_query(self, kb):
        assert kb.find_interactions("") == []

    def test_check_drug_pair_either_order(self, kb):
        entry = kb.check_drug_pair("nitroglycerin", "Sildenafil")
        assert entry is not None
        assert entry.severity == "major"
        assert entry.clinical_significance == 5

    def test_check_drug_pair_substring(self, kb):
        """Partial names still match"""
        assert kb.check_drug_pair("warf", "aspirin") is not None

    def test_find_exact_interaction(self, kb):
        assert kb.find_exact_interaction("aspirin", "warfarin") is not None
        assert kb.find_exact_interaction("warf", "aspirin") is None

    def test_find_contraindications_by_condition(self, kb):
        drugs = [c.drug for c in kb.find_contraindications("pregnancy")]
        assert "lisinopril" in drugs

    def test_find_contraindications_by_drug(self, kb):
        results = kb.find_contraindications("sildenafil")
        assert any(c.condition == "concurrent nitrate therapy" and c.type == "absolute" for c in results)

    def test_dosage_guideline_exact_and_partial(self, kb):
        assert kb.find_dosage_guideline("Ibuprofen").drug == "ibuprofen"
        assert kb.find_dosage_guideline("ibuprofen 400") is None
        assert kb.find_dosage_guideline("ibuprofen 400", partial=True).drug == "ibuprofen"

    def test_cross_reactivity(self, kb):
        groups = kb.check_cross_reactivity("penicillin")
        names = [g.group_name for g in groups]
        assert "Penicillin Class" in names
        penicillins = next(g for g in groups if g.group_name == "Penicillin Class")
        assert "amoxicillin" in penicillins.cross_reactive_drugs

    def test_cross_reactivity_by_member_drug(self, kb):
        """A member drug finds its group"""
        assert any(g.group_name == "Penicillin Class" for g in kb.check_cross_reactivity("amoxicillin"))


class TestCustomKnowledgeBase:
    """Knowledge base built from injected tables"""

    def test_injected_tables(self):
        entry = InteractionEntry("drug-a", "drug-b", "minor", "effect", "mechanism",
                                 "management", "theoretical", 1)
        kb = KnowledgeBase(interactions=[entry], contraindications=[],
                           dosage_guidelines=[], cross_reactivity=[])
        assert kb.find_exact_interaction("drug-b", "drug-a") is entry
        assert kb.get_stats()["minor_interactions"] == 1
        assert kb.find_contraindications("anything") == []
