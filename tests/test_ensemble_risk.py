"""
Clinical Risk Engine - Test Suite
Ensemble risk scoring: weighting, fallbacks, heuristic flags and safety override
"""
import sys
import os
import asyncio
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from config import settings
from src.core.models import (
    PatientRecord, CurrentMedication, LabValues, InteractionPrediction,
    ClinicalFlag, FlagCategory, FlagSeverity, RiskLevel, SubModelScore,
)
from src.ml.risk_model import RiskPrediction, classify_risk
from src.ml.ensemble_risk import (
    compute_ensemble_risk, compute_heuristic_score, determine_risk_level,
    normalize_weights, round_half_up, run_model,
    NEURAL_MODEL_NAME, INTERACTION_MODEL_NAME, NLP_MODEL_NAME, HEURISTIC_MODEL_NAME,
)


# ==================== Fakes ====================

class FakeRiskModel:
    def __init__(self, score=10, confidence=90.0, trained=True):
        self.score = score
        self.confidence = confidence
        self.trained = trained

    def is_model_trained(self):
        return self.trained

    async def predict(self, patient):
        return RiskPrediction(self.score, self.confidence, classify_risk(self.score))


class FailingRiskModel:
    def is_model_trained(self):
        return True

    async def predict(self, patient):
        raise RuntimeError("model server unreachable")


class FakeInteractionModel:
    def __init__(self, predictions=None, trained=True, error=None):
        self.predictions = predictions or []
        self.trained = trained
        self.error = error
        self.calls = 0

    def is_trained(self):
        return self.trained

    async def predict_multiple(self, drug_names):
        self.calls += 1
        if self.error:
            raise self.error
        return self.predictions


def _meds(*names):
    return [CurrentMedication(drug_name=n) for n in names]


def _by_name(result, name) -> SubModelScore:
    return next(m for m in result.sub_models if m.name == name)


def _assess(patient, risk_model=None, interaction_model=None):
    return asyncio.run(compute_ensemble_risk(
        patient,
        risk_model=risk_model or FakeRiskModel(),
        interaction_model=interaction_model or FakeInteractionModel(),
    ))


# ==================== Tests ====================

class TestHeuristicScore:
    """Test the rule-based clinical score"""

    def test_healthy_adult_scores_zero(self):
        score, flags = compute_heuristic_score(PatientRecord(age=30))
        assert score == 0
        assert flags == []

    def test_high_risk_contributions(self):
        patient = PatientRecord(
            age=82,
            medications=_meds(*[f"drug{i}" for i in range(10)]),
            systolic=185, diastolic=95,
            labs=LabValues(creatinine=2.5, inr=4.0),
        )
        score, flags = compute_heuristic_score(patient)
        assert score == 92
        categories = {(f.category, f.severity) for f in flags}
        assert (FlagCategory.AGE, FlagSeverity.WARNING) in categories
        assert (FlagCategory.POLYPHARMACY, FlagSeverity.CRITICAL) in categories
        assert (FlagCategory.RENAL, FlagSeverity.CRITICAL) in categories
        assert (FlagCategory.INTERACTION, FlagSeverity.CRITICAL) in categories

    def test_score_capped_at_100(self):
        patient = PatientRecord(
            age=82,
            medications=_meds(*[f"drug{i}" for i in range(10)]),
            systolic=185, diastolic=95,
            labs=LabValues(creatinine=2.5, inr=4.0),
            smoking_status="current", alcohol_use="heavy", exercise_level="sedentary",
        )
        score, _ = compute_heuristic_score(patient)
        assert score == 100

    def test_moderate_findings(self):
        """Warning-level thresholds"""
        patient = PatientRecord(
            age=67, medications=_meds("a", "b", "c", "d", "e"),
            conditions=["hypertension", "diabetes", "gout"],
            systolic=145, bmi=41,
            labs=LabValues(gfr=45, alt=80, hba1c=9.5),
        )
        score, flags = compute_heuristic_score(patient)
        assert score == 15 + 15 + 8 + 8 + 10 + 8 + 5 + 8
        assert all(f.severity != FlagSeverity.CRITICAL for f in flags)


class TestRiskLevel:
    """Test thresholding and the critical-flag override"""

    def test_thresholds_without_flags(self):
        assert determine_risk_level(95, []) == RiskLevel.CRITICAL
        assert determine_risk_level(50, []) == RiskLevel.LOW

    def test_critical_flag_lifts_low_to_high(self):
        flags = [ClinicalFlag(FlagCategory.RED_FLAG, FlagSeverity.CRITICAL, "x")]
        assert determine_risk_level(10, flags) == RiskLevel.HIGH
        assert determine_risk_level(65, flags) == RiskLevel.HIGH
        assert determine_risk_level(95, flags) == RiskLevel.CRITICAL

    def test_warning_flag_does_not_lift(self):
        flags = [ClinicalFlag(FlagCategory.AGE, FlagSeverity.WARNING, "x")]
        assert determine_risk_level(10, flags) == RiskLevel.LOW

    def test_zero_weights_normalize_evenly(self):
        models = [SubModelScore("a", 10, 0, 50, True), SubModelScore("b", 20, 0, 50, True)]
        normalize_weights(models)
        assert [m.normalized_weight for m in models] == [0.5, 0.5]


class TestRunModel:
    """Test fail-soft model invocation"""

    def test_success(self):
        async def ok(x):
            return x * 2
        outcome = asyncio.run(run_model("ok", ok, 21))
        assert outcome.available and outcome.value == 42

    def test_async_failure(self):
        async def boom():
            raise RuntimeError("down")
        outcome = asyncio.run(run_model("boom", boom))
        assert not outcome.available
        assert outcome.error == "down"

    def test_sync_failure(self):
        """A callable that raises before returning an awaitable is also contained"""
        def boom():
            raise ValueError("bad input")
        outcome = asyncio.run(run_model("boom", boom))
        assert not outcome.available


class TestEnsembleRisk:
    """Test the full ensemble"""

    def test_minimal_patient(self):
        """No medications and no complaint: both sub-models degrade to low weight"""
        interaction_model = FakeInteractionModel()
        result = _assess(PatientRecord(age=30), interaction_model=interaction_model)

        interaction = _by_name(result, INTERACTION_MODEL_NAME)
        nlp = _by_name(result, NLP_MODEL_NAME)
        assert interaction_model.calls == 0
        assert not interaction.available and interaction.weight == settings.INTERACTION_WEIGHT_SKIPPED
        assert not nlp.available and nlp.weight == settings.NLP_WEIGHT_NO_COMPLAINT

        assert result.overall_score == 5
        assert result.ensemble_confidence == 81
        assert result.confidence_interval == (0, 13)
        assert result.risk_level == RiskLevel.LOW
        assert result.flags == []
        assert result.complaint_analysis is None
        assert result.differentials == []

    def test_weights_normalized(self):
        result = _assess(PatientRecord(age=70, medications=_meds("warfarin", "aspirin"),
                                       chief_complaint="headache"))
        assert sum(m.normalized_weight for m in result.sub_models) == pytest.approx(1.0)
        assert [m.name for m in result.sub_models] == [
            NEURAL_MODEL_NAME, INTERACTION_MODEL_NAME, NLP_MODEL_NAME, HEURISTIC_MODEL_NAME,
        ]

    def test_major_interaction_forces_high(self):
        """A single critical flag overrides a low weighted score"""
        predictions = [InteractionPrediction("warfarin", "aspirin", "major", 95.0, True)]
        result = _assess(
            PatientRecord(medications=_meds("warfarin", "aspirin")),
            interaction_model=FakeInteractionModel(predictions),
        )
        assert result.overall_score < settings.RISK_THRESHOLDS["MEDIUM"]
        assert result.risk_level == RiskLevel.HIGH
        assert result.has_critical_flags
        assert result.predicted_interactions == predictions
        assert _by_name(result, INTERACTION_MODEL_NAME).score == 25

    def test_failing_risk_model_falls_back(self):
        result = _assess(PatientRecord(age=45), risk_model=FailingRiskModel())
        neural = _by_name(result, NEURAL_MODEL_NAME)
        assert not neural.available
        assert neural.weight == settings.NEURAL_WEIGHT_UNTRAINED
        assert neural.confidence == 50
        assert 0 <= neural.score <= 100

    def test_untrained_risk_model_gets_lower_weight(self):
        result = _assess(PatientRecord(age=45), risk_model=FakeRiskModel(trained=False))
        neural = _by_name(result, NEURAL_MODEL_NAME)
        assert neural.available
        assert neural.weight == settings.NEURAL_WEIGHT_UNTRAINED

    def test_failing_interaction_model_keeps_weight(self):
        """Failure lowers confidence; the zero score is not re-weighted away"""
        result = _assess(
            PatientRecord(medications=_meds("warfarin", "aspirin")),
            interaction_model=FakeInteractionModel(error=RuntimeError("timeout")),
        )
        interaction = _by_name(result, INTERACTION_MODEL_NAME)
        assert not interaction.available
        assert interaction.score == 0
        assert interaction.confidence == 40
        assert interaction.weight == settings.INTERACTION_WEIGHT_TRAINED

    def test_emergent_complaint(self):
        result = _assess(PatientRecord(
            age=60, chief_complaint="crushing chest pain and shortness of breath",
        ))
        nlp = _by_name(result, NLP_MODEL_NAME)
        assert nlp.score == 100
        assert result.risk_level in (RiskLevel.HIGH, RiskLevel.CRITICAL)
        assert result.complaint_analysis is not None
        assert result.differentials == result.complaint_analysis.differentials
        red_flags = [f for f in result.flags if f.category == FlagCategory.RED_FLAG]
        assert len(red_flags) == 2

    def test_flag_order(self):
        """Interaction flags, then complaint flags, then heuristic flags"""
        predictions = [InteractionPrediction("warfarin", "aspirin", "major", 95.0, True)]
        result = _assess(
            PatientRecord(age=85, medications=_meds("warfarin", "aspirin"),
                          chief_complaint="sudden severe headache"),
            interaction_model=FakeInteractionModel(predictions),
        )
        categories = [f.category for f in result.flags]
        assert categories[0] == FlagCategory.INTERACTION
        assert categories.index(FlagCategory.RED_FLAG) < categories.index(FlagCategory.AGE)

    def test_accepts_raw_patient_json(self):
        result = _assess({
            "patientId": "p-9",
            "demographics": {"age": 81},
            "currentMedications": {"medications": [{"drugName": "Coumadin", "genericName": "warfarin"}]},
        })
        assert any(f.category == FlagCategory.AGE for f in result.flags)
        assert result.flag_count["warning"] >= 1

    def test_default_collaborators(self):
        """Process-wide models are used when none are injected"""
        result = asyncio.run(compute_ensemble_risk({
            "demographics": {"age": 50},
            "currentMedications": {"medications": ["warfarin", "aspirin"]},
        }))
        assert any(p.known_interaction for p in result.predicted_interactions)
        assert result.risk_level in (RiskLevel.HIGH, RiskLevel.CRITICAL)


class TestWeightNormalization:
    """Normalized weights sum to 1 whichever sub-models are available"""

    @pytest.mark.parametrize("neural_ok", [True, False])
    @pytest.mark.parametrize("num_meds", [0, 1, 2, 4])
    @pytest.mark.parametrize("interaction_ok", [True, False])
    @pytest.mark.parametrize("complaint", ["", "cough for 3 days"])
    def test_weights_sum_to_one(self, neural_ok, num_meds, interaction_ok, complaint):
        risk_model = FakeRiskModel() if neural_ok else FailingRiskModel()
        interaction_model = FakeInteractionModel(
            error=None if interaction_ok else RuntimeError("timeout")
        )
        patient = PatientRecord(
            age=55,
            medications=_meds(*[f"drug{i}" for i in range(num_meds)]),
            chief_complaint=complaint,
        )
        result = _assess(patient, risk_model=risk_model, interaction_model=interaction_model)

        assert sum(m.normalized_weight for m in result.sub_models) == pytest.approx(1.0)
        total = sum(m.weight for m in result.sub_models)
        for m in result.sub_models:
            assert m.normalized_weight == pytest.approx(m.weight / total)

        expected_interaction = (
            settings.INTERACTION_WEIGHT_TRAINED if num_meds >= 2 else settings.INTERACTION_WEIGHT_SKIPPED
        )
        assert [m.weight for m in result.sub_models] == [
            settings.NEURAL_WEIGHT_TRAINED if neural_ok else settings.NEURAL_WEIGHT_UNTRAINED,
            expected_interaction,
            settings.NLP_WEIGHT if complaint else settings.NLP_WEIGHT_NO_COMPLAINT,
            settings.HEURISTIC_WEIGHT,
        ]


class TestRounding:
    """Half-way scores round up"""

    def test_round_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(0.5) == 1
        assert round_half_up(2.4999) == 2
        assert round_half_up(7.6) == 8
        assert round_half_up(0) == 0

    def test_half_way_overall_score(self, monkeypatch):
        """Two equally weighted sub-models at 0 and 5 give 3, not 2"""
        monkeypatch.setattr(settings, "NEURAL_WEIGHT_TRAINED", 0.5)
        monkeypatch.setattr(settings, "HEURISTIC_WEIGHT", 0.5)
        monkeypatch.setattr(settings, "INTERACTION_WEIGHT_SKIPPED", 0.0)
        monkeypatch.setattr(settings, "NLP_WEIGHT_NO_COMPLAINT", 0.0)

        result = _assess(PatientRecord(age=55), risk_model=FakeRiskModel(score=0))
        assert _by_name(result, HEURISTIC_MODEL_NAME).score == 5
        assert result.overall_score == 3
