"""
Clinical Risk Engine - Test Suite
Drug interaction predictor: profiles, rule scoring, knowledge-base override, training
"""
import sys
import os
import asyncio
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from src.core.knowledge_base import get_knowledge_base
from src.ml.interaction_model import (
    DrugInteractionPredictor, DEFAULT_PROFILE, SEVERITY_LABELS,
    RULE_CONFIDENCE, KNOWN_INTERACTION_CONFIDENCE,
    lookup_profile, encode_drug_pair, interaction_score, class_combination_score,
    score_to_severity,
)


class BrokenKnowledgeBase:
    """Knowledge base whose lookups always fail"""

    def check_drug_pair(self, drug1, drug2):
        raise RuntimeError("fact store offline")


class TestDrugProfiles:
    """Test profile lookup and pair encoding"""

    def test_lookup_known_drug(self):
        assert lookup_profile("Warfarin").drug_class == "anticoagulant"

    def test_lookup_unknown_drug(self):
        assert lookup_profile("unobtainium") == DEFAULT_PROFILE
        assert lookup_profile("") == DEFAULT_PROFILE

    def test_encode_pair(self):
        encoded = encode_drug_pair("warfarin", "ibuprofen")
        assert encoded.shape == (14,)
        assert all(0 <= v <= 1 for v in encoded)


class TestRuleScoring:
    """Test pharmacology rule score"""

    def test_anticoagulant_nsaid_is_major(self):
        """Shared CYP2C9, high binding and class combination"""
        score = interaction_score(lookup_profile("warfarin"), lookup_profile("ibuprofen"))
        assert score == 6
        assert score_to_severity(score) == "major"

    def test_maoi_ssri_class_combination(self):
        assert class_combination_score("maoi", "ssri") == 4
        assert class_combination_score("ssri", "maoi") == 4
        assert class_combination_score("opioid", "benzodiazepine") == 3

    def test_qt_burden_is_minor(self):
        """Two QT-prolonging drugs without other overlap"""
        score = interaction_score(lookup_profile("citalopram"), lookup_profile("azithromycin"))
        assert score_to_severity(score) == "minor"

    def test_unrelated_drugs_score_zero(self):
        assert interaction_score(lookup_profile("amoxicillin"), lookup_profile("cetirizine")) == 0

    def test_severity_cut_points(self):
        assert score_to_severity(0) == "none"
        assert score_to_severity(1) == "minor"
        assert score_to_severity(3) == "moderate"
        assert score_to_severity(5) == "major"


class TestDrugInteractionPredictor:
    """Test pairwise and multi-drug prediction"""

    @pytest.fixture
    def predictor(self):
        return DrugInteractionPredictor()

    @pytest.fixture
    def kb_predictor(self):
        return DrugInteractionPredictor(knowledge_base=get_knowledge_base())

    def test_rule_prediction(self, predictor):
        prediction = predictor.predict_pair("warfarin", "ibuprofen")
        assert prediction.predicted_severity == "major"
        assert prediction.confidence == RULE_CONFIDENCE
        assert not prediction.known_interaction

    def test_known_interaction_overrides(self, kb_predictor):
        """Documented interactions are reported as known"""
        prediction = kb_predictor.predict_pair("Warfarin", "Aspirin")
        assert prediction.known_interaction
        assert prediction.predicted_severity == "major"
        assert prediction.confidence == KNOWN_INTERACTION_CONFIDENCE

    def test_broken_knowledge_base_falls_back(self):
        predictor = DrugInteractionPredictor(knowledge_base=BrokenKnowledgeBase())
        prediction = predictor.predict_pair("warfarin", "ibuprofen")
        assert not prediction.known_interaction
        assert prediction.predicted_severity == "major"

    def test_predict_multiple_sorted_and_filtered(self, predictor):
        """Only real interactions, most severe first"""
        results = asyncio.run(predictor.predict_multiple(
            ["citalopram", "warfarin", "", "azithromycin", "ibuprofen"]
        ))
        assert [(r.drug1, r.drug2, r.predicted_severity) for r in results] == [
            ("warfarin", "ibuprofen", "major"),
            ("citalopram", "azithromycin", "minor"),
        ]

    def test_predict_multiple_single_drug(self, predictor):
        assert asyncio.run(predictor.predict_multiple(["warfarin"])) == []

    def test_train_requires_knowledge_base(self, predictor):
        with pytest.raises(ValueError):
            predictor.train()

    def test_train_on_knowledge_base(self, kb_predictor):
        accuracy = kb_predictor.train()
        assert 0.0 <= accuracy <= 1.0
        assert kb_predictor.is_trained()

        prediction = kb_predictor.predict_pair("quetiapine", "metformin")
        assert prediction.predicted_severity in SEVERITY_LABELS
        assert 0 <= prediction.confidence <= 100

        known = kb_predictor.predict_pair("sildenafil", "nitroglycerin")
        assert known.known_interaction
        assert known.predicted_severity == "major"

    def test_trained_model_ignores_unprofiled_drugs(self, kb_predictor):
        """Supplements without a profile fall back to the rule score after training"""
        kb_predictor.train()

        prediction = kb_predictor.predict_pair("vitamin d", "fish oil")
        assert prediction.predicted_severity == "none"
        assert prediction.confidence == RULE_CONFIDENCE
        assert not prediction.known_interaction

        supplements = ["vitamin d", "fish oil", "melatonin", "glucosamine", "coenzyme q10"]
        assert asyncio.run(kb_predictor.predict_multiple(supplements)) == []

    def test_training_set_balanced_orderings(self, kb_predictor):
        """Every knowledge-base pair appears in both orders"""
        features, labels = kb_predictor.build_training_set(get_knowledge_base())
        assert features.shape[1] == 14
        assert len(features) == len(labels)
        assert len(labels) >= 2 * len(get_knowledge_base().interactions)
