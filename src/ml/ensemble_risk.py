"""
Clinical Risk Engine - Ensemble Risk Scoring
Combines four sub-models into one calibrated patient risk assessment

Sub-models:
1. Patient risk predictor (demographics, vitals, lifestyle)
2. Drug interaction predictor (pairwise pharmacology)
3. Chief complaint NLP (acuity, red flags, differentials)
4. Clinical heuristic rules (age, polypharmacy, vitals, labs, lifestyle)

Every sub-model is fail-soft: a failing collaborator lowers its
weight/confidence but never aborts the assessment, and critical
flags always lift the final risk level to at least HIGH.
"""
import math
import asyncio
import logging
from typing import List, Optional, Tuple, Any, Callable, Awaitable
from dataclasses import dataclass

from config import settings
from src.core.models import (
    PatientRecord, SubModelScore, ClinicalFlag, FlagCategory, FlagSeverity,
    EnsembleRiskResult, RiskLevel, InteractionPrediction, ChiefComplaintAnalysis,
)
from src.ml.risk_model import extract_features, classify_risk, get_risk_model
from src.ml.interaction_model import get_interaction_predictor
from src.nlp.complaint_analyzer import analyze_chief_complaint

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


NEURAL_MODEL_NAME = "Neural Network Risk Predictor"
INTERACTION_MODEL_NAME = "Drug Interaction Predictor"
NLP_MODEL_NAME = "NLP Chief Complaint Analyzer"
HEURISTIC_MODEL_NAME = "Clinical Heuristic Rules"

CONFIDENCE_MARGIN_FACTOR = 0.4


# ==================== Model Outcome ====================

@dataclass
class ModelOutcome:
    """Result of one external model call: a value, or the reason it failed"""
    available: bool
    value: Any = None
    error: str = ""


async def run_model(name: str, call: Callable[..., Awaitable], *args) -> ModelOutcome:
    """
    Await an external model call, converting any failure into an
    unavailable outcome. Cancellation is not caught.
    """
    try:
        return ModelOutcome(available=True, value=await call(*args))
    except Exception as e:
        logger.warning(f"{name} failed, using fallback: {e}")
        return ModelOutcome(available=False, error=str(e))


def _reports_trained(model, method: str) -> bool:
    try:
        return bool(getattr(model, method)())
    except Exception as e:
        logger.warning(f"Could not read training state of {type(model).__name__}: {e}")
        return False


# ==================== Heuristic Rules ====================

def _score_age(age: Optional[float], flags: List[ClinicalFlag]) -> int:
    if age is None:
        return 0
    if age >= 80:
        flags.append(ClinicalFlag(FlagCategory.AGE, FlagSeverity.WARNING,
                                  f"Age {age:g}: elderly patient, start low and go slow"))
        return 25
    if age >= 65:
        flags.append(ClinicalFlag(FlagCategory.AGE, FlagSeverity.INFO,
                                  f"Age {age:g}: consider geriatric dosing"))
        return 15
    if age >= 50:
        return 5
    return 0


def _score_medications(num_meds: int, flags: List[ClinicalFlag]) -> int:
    if num_meds >= 10:
        flags.append(ClinicalFlag(FlagCategory.POLYPHARMACY, FlagSeverity.CRITICAL,
                                  f"{num_meds} medications: severe polypharmacy risk"))
        return 25
    if num_meds >= 5:
        flags.append(ClinicalFlag(FlagCategory.POLYPHARMACY, FlagSeverity.WARNING,
                                  f"{num_meds} medications: polypharmacy concern"))
        return 15
    if num_meds >= 3:
        return 5
    return 0


def _score_comorbidities(num_conditions: int, num_allergies: int, flags: List[ClinicalFlag]) -> int:
    score = 0
    if num_conditions >= 5:
        score += 15
    elif num_conditions >= 3:
        score += 8

    if num_allergies >= 3:
        score += 10
        flags.append(ClinicalFlag(FlagCategory.ALLERGY, FlagSeverity.WARNING,
                                  f"{num_allergies} known allergies: cross-reactivity check recommended"))
    return score


def _score_vitals(patient: PatientRecord, flags: List[ClinicalFlag]) -> int:
    score = 0
    systolic = patient.systolic or 0
    diastolic = patient.diastolic or 0
    if systolic >= 180 or diastolic >= 120:
        score += 15
        flags.append(ClinicalFlag(FlagCategory.LIFESTYLE, FlagSeverity.CRITICAL,
                                  f"BP {systolic:g}/{diastolic:g}: hypertensive crisis range"))
    elif systolic >= 140 or diastolic >= 90:
        score += 8

    bmi = patient.bmi or 0
    if bmi >= 40:
        score += 10
        flags.append(ClinicalFlag(FlagCategory.LIFESTYLE, FlagSeverity.WARNING,
                                  f"BMI {bmi:g}: class III obesity"))
    elif bmi >= 30:
        score += 5
    return score


def _score_labs(patient: PatientRecord, flags: List[ClinicalFlag]) -> int:
    labs = patient.labs
    if labs is None:
        return 0
    score = 0

    # Renal
    if labs.creatinine is not None and labs.creatinine > 2:
        score += 15
        flags.append(ClinicalFlag(FlagCategory.RENAL, FlagSeverity.CRITICAL,
                                  f"Creatinine {labs.creatinine:g}: significant renal impairment, dose adjust required"))
    elif labs.creatinine is not None and labs.creatinine > 1.5:
        score += 8
        flags.append(ClinicalFlag(FlagCategory.RENAL, FlagSeverity.WARNING,
                                  f"Creatinine {labs.creatinine:g}: mild renal impairment"))

    if labs.gfr is not None and 0 < labs.gfr < 30:
        score += 15
        flags.append(ClinicalFlag(FlagCategory.RENAL, FlagSeverity.CRITICAL,
                                  f"GFR {labs.gfr:g}: severe renal impairment (CKD stage 4+)"))
    elif labs.gfr is not None and 0 < labs.gfr < 60:
        score += 8
        flags.append(ClinicalFlag(FlagCategory.RENAL, FlagSeverity.WARNING,
                                  f"GFR {labs.gfr:g}: moderate renal impairment"))

    # Hepatic
    ast, alt = labs.ast or 0, labs.alt or 0
    if ast > 120 or alt > 120:
        score += 15
        flags.append(ClinicalFlag(FlagCategory.HEPATIC, FlagSeverity.CRITICAL,
                                  "AST/ALT elevated >3x ULN: hepatic dose adjustment needed"))
    elif ast > 60 or alt > 60:
        score += 5
        flags.append(ClinicalFlag(FlagCategory.HEPATIC, FlagSeverity.WARNING,
                                  "Mildly elevated liver enzymes"))

    if labs.hba1c is not None and labs.hba1c > 9:
        score += 8
        flags.append(ClinicalFlag(FlagCategory.LIFESTYLE, FlagSeverity.WARNING,
                                  f"HbA1c {labs.hba1c:g}%: uncontrolled diabetes"))

    if labs.inr is not None and labs.inr > 3.5:
        score += 12
        flags.append(ClinicalFlag(FlagCategory.INTERACTION, FlagSeverity.CRITICAL,
                                  f"INR {labs.inr:g}: supratherapeutic, bleeding risk"))
    return score


def _score_lifestyle(patient: PatientRecord) -> int:
    score = 0
    if patient.smoking_status == "current":
        score += 5
    if patient.alcohol_use == "heavy":
        score += 8
    if patient.exercise_level == "sedentary":
        score += 3
    return score


def compute_heuristic_score(patient: PatientRecord) -> Tuple[int, List[ClinicalFlag]]:
    """Rule-based clinical score (0-100) and the flags raised while scoring"""
    flags: List[ClinicalFlag] = []
    score = 0
    score += _score_age(patient.age, flags)
    score += _score_medications(len(patient.medications), flags)
    score += _score_comorbidities(len(patient.conditions), len(patient.allergies), flags)
    score += _score_vitals(patient, flags)
    score += _score_labs(patient, flags)
    score += _score_lifestyle(patient)
    return min(100, score), flags


# ==================== Sub-Model Runners ====================

def _neural_sub_model(patient: PatientRecord, outcome: ModelOutcome, trained: bool) -> SubModelScore:
    if outcome.available:
        prediction = outcome.value
        return SubModelScore(
            name=NEURAL_MODEL_NAME,
            score=float(max(0, min(100, prediction.risk_score))),
            weight=settings.NEURAL_WEIGHT_TRAINED if trained else settings.NEURAL_WEIGHT_UNTRAINED,
            confidence=float(max(0, min(100, prediction.confidence))),
            available=True,
            details="Fitted model prediction" if trained else "Using rule-based fallback",
        )

    features = extract_features(patient)
    return SubModelScore(
        name=NEURAL_MODEL_NAME,
        score=float(features.mean() * 100),
        weight=settings.NEURAL_WEIGHT_UNTRAINED,
        confidence=50.0,
        available=False,
        details=f"Prediction failed ({outcome.error}); using feature average",
    )


def _interaction_sub_model(
    drugs: List[str],
    outcome: Optional[ModelOutcome],
    trained: bool,
    flags: List[ClinicalFlag],
) -> Tuple[SubModelScore, List[InteractionPrediction]]:
    if outcome is None:
        return SubModelScore(
            name=INTERACTION_MODEL_NAME,
            score=0.0,
            weight=settings.INTERACTION_WEIGHT_SKIPPED,
            confidence=60.0,
            available=False,
            details=f"Skipped: {len(drugs)} medication(s)",
        ), []

    weight = settings.INTERACTION_WEIGHT_TRAINED if trained else settings.INTERACTION_WEIGHT_UNTRAINED
    if not outcome.available:
        return SubModelScore(
            name=INTERACTION_MODEL_NAME,
            score=0.0,
            weight=weight,
            confidence=40.0,
            available=False,
            details=f"Prediction failed ({outcome.error})",
        ), []

    predictions: List[InteractionPrediction] = list(outcome.value or [])
    score = 0
    for p in predictions:
        score += settings.INTERACTION_SEVERITY_POINTS.get(p.predicted_severity, 0)
        if p.predicted_severity == "major":
            flags.append(ClinicalFlag(
                FlagCategory.INTERACTION, FlagSeverity.CRITICAL,
                f"Major predicted interaction: {p.drug1} + {p.drug2} ({p.confidence:g}% confidence)",
            ))
        elif p.predicted_severity == "moderate":
            flags.append(ClinicalFlag(
                FlagCategory.INTERACTION, FlagSeverity.WARNING,
                f"Moderate predicted interaction: {p.drug1} + {p.drug2}",
            ))

    return SubModelScore(
        name=INTERACTION_MODEL_NAME,
        score=float(min(100, score)),
        weight=weight,
        confidence=80.0 if trained else 60.0,
        available=True,
        details=f"{len(predictions)} interactions found among {len(drugs)} medications",
    ), predictions


def _nlp_sub_model(
    complaint: str,
    analyzer: Callable[[str], ChiefComplaintAnalysis],
    flags: List[ClinicalFlag],
) -> Tuple[SubModelScore, Optional[ChiefComplaintAnalysis]]:
    if not complaint:
        return SubModelScore(
            name=NLP_MODEL_NAME,
            score=0.0,
            weight=settings.NLP_WEIGHT_NO_COMPLAINT,
            confidence=50.0,
            available=False,
            details="No chief complaint provided",
        ), None

    analysis = analyzer(complaint)
    score = settings.ACUITY_SCORES.get(analysis.acuity.value, 20)
    score += min(20, len(analysis.red_flags) * 10)

    for red_flag in analysis.red_flags:
        flags.append(ClinicalFlag(FlagCategory.RED_FLAG, FlagSeverity.CRITICAL,
                                  f"Red-flag symptom detected: {red_flag}"))
    if analysis.acuity.value == "emergent":
        flags.append(ClinicalFlag(FlagCategory.ACUITY, FlagSeverity.CRITICAL,
                                  "NLP analysis indicates emergent acuity"))
    elif analysis.acuity.value == "urgent":
        flags.append(ClinicalFlag(FlagCategory.ACUITY, FlagSeverity.WARNING,
                                  "NLP analysis indicates urgent acuity"))

    return SubModelScore(
        name=NLP_MODEL_NAME,
        score=float(min(100, score)),
        weight=settings.NLP_WEIGHT,
        confidence=float(analysis.confidence),
        available=True,
        details=f"Acuity: {analysis.acuity.value}, {len(analysis.symptoms)} symptoms identified",
    ), analysis


# ==================== Ensemble Combiner ====================

def determine_risk_level(overall_score: int, flags: List[ClinicalFlag]) -> RiskLevel:
    """Threshold the score, then lift to HIGH when any critical flag exists"""
    level = classify_risk(overall_score)
    if level in (RiskLevel.LOW, RiskLevel.MEDIUM) and any(
        f.severity == FlagSeverity.CRITICAL for f in flags
    ):
        level = RiskLevel.HIGH
    return level


def round_half_up(value: float) -> int:
    """Nearest integer with halves rounded up (2.5 -> 3)"""
    return int(math.floor(value + 0.5))


def normalize_weights(sub_models: List[SubModelScore]) -> None:
    total = sum(m.weight for m in sub_models)
    for m in sub_models:
        m.normalized_weight = m.weight / total if total > 0 else 1.0 / len(sub_models)


async def compute_ensemble_risk(
    patient: Any,
    risk_model=None,
    interaction_model=None,
    analyzer: Optional[Callable[[str], ChiefComplaintAnalysis]] = None,
) -> EnsembleRiskResult:
    """
    Full ensemble risk assessment for one patient.

    `patient` may be a PatientRecord or the raw patient JSON. Collaborators
    default to the process-wide model instances.
    """
    if not isinstance(patient, PatientRecord):
        patient = PatientRecord.from_dict(patient)
    risk_model = risk_model if risk_model is not None else get_risk_model()
    interaction_model = interaction_model if interaction_model is not None else get_interaction_predictor()
    analyzer = analyzer or analyze_chief_complaint

    drugs = patient.drug_names()
    run_interactions = len(drugs) >= 2

    # External models have no interdependency
    calls = [run_model(NEURAL_MODEL_NAME, risk_model.predict, patient)]
    if run_interactions:
        calls.append(run_model(INTERACTION_MODEL_NAME, interaction_model.predict_multiple, drugs))
    outcomes = await asyncio.gather(*calls)
    neural_outcome = outcomes[0]
    interaction_outcome = outcomes[1] if run_interactions else None

    flags: List[ClinicalFlag] = []
    neural = _neural_sub_model(patient, neural_outcome, _reports_trained(risk_model, "is_model_trained"))
    interaction, predicted_interactions = _interaction_sub_model(
        drugs, interaction_outcome, _reports_trained(interaction_model, "is_trained"), flags
    )
    nlp, complaint_analysis = _nlp_sub_model(patient.chief_complaint.strip(), analyzer, flags)

    heuristic_score, heuristic_flags = compute_heuristic_score(patient)
    flags.extend(heuristic_flags)
    heuristic = SubModelScore(
        name=HEURISTIC_MODEL_NAME,
        score=float(heuristic_score),
        weight=settings.HEURISTIC_WEIGHT,
        confidence=float(settings.HEURISTIC_CONFIDENCE),
        available=True,
        details=f"{len(heuristic_flags)} clinical flags raised",
    )

    sub_models = [neural, interaction, nlp, heuristic]
    normalize_weights(sub_models)

    overall_score = max(0, min(100, round_half_up(sum(m.score * m.normalized_weight for m in sub_models))))
    ensemble_confidence = max(0, min(100, round_half_up(sum(m.confidence * m.normalized_weight for m in sub_models))))
    margin = round_half_up((100 - ensemble_confidence) * CONFIDENCE_MARGIN_FACTOR)
    interval = (max(0, overall_score - margin), min(100, overall_score + margin))

    risk_level = determine_risk_level(overall_score, flags)

    logger.info(
        f"Ensemble risk for patient {patient.patient_id or '<anonymous>'}: "
        f"score={overall_score}, level={risk_level.value}, flags={len(flags)}"
    )

    return EnsembleRiskResult(
        overall_score=overall_score,
        risk_level=risk_level,
        confidence_interval=interval,
        ensemble_confidence=ensemble_confidence,
        sub_models=sub_models,
        flags=flags,
        complaint_analysis=complaint_analysis,
        predicted_interactions=predicted_interactions,
        differentials=list(complaint_analysis.differentials) if complaint_analysis else [],
    )
