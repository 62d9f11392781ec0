"""
Clinical Risk Engine - Data Models
Value objects for complaint analysis, ensemble risk scoring and plan cross-validation
"""
from dataclasses import dataclass, field, fields, is_dataclass
from typing import List, Optional, Dict, Any, Tuple
from enum import Enum
from datetime import datetime


class BodySystem(Enum):
    CARDIOVASCULAR = "cardiovascular"
    RESPIRATORY = "respiratory"
    NEUROLOGICAL = "neurological"
    GASTROINTESTINAL = "gastrointestinal"
    MUSCULOSKELETAL = "musculoskeletal"
    ENDOCRINE = "endocrine"
    RENAL = "renal"
    DERMATOLOGICAL = "dermatological"
    PSYCHIATRIC = "psychiatric"
    INFECTIOUS = "infectious"
    HEMATOLOGICAL = "hematological"
    OPHTHALMOLOGICAL = "ophthalmological"
    ENT = "ent"
    REPRODUCTIVE = "reproductive"
    GENERAL = "general"


class Acuity(Enum):
    ROUTINE = "routine"
    SEMI_URGENT = "semi-urgent"
    URGENT = "urgent"
    EMERGENT = "emergent"

    @property
    def rank(self) -> int:
        return ACUITY_LADDER.index(self)

    def escalate(self, steps: int = 1) -> "Acuity":
        return ACUITY_LADDER[min(len(ACUITY_LADDER) - 1, self.rank + steps)]


ACUITY_LADDER = [Acuity.ROUTINE, Acuity.SEMI_URGENT, Acuity.URGENT, Acuity.EMERGENT]


class DurationClass(Enum):
    ACUTE = "acute"          # < 14 days
    SUBACUTE = "subacute"    # 14-90 days
    CHRONIC = "chronic"      # >= 90 days


class FlagCategory(Enum):
    INTERACTION = "interaction"
    ALLERGY = "allergy"
    POLYPHARMACY = "polypharmacy"
    AGE = "age"
    RENAL = "renal"
    HEPATIC = "hepatic"
    ACUITY = "acuity"
    RED_FLAG = "red_flag"
    LIFESTYLE = "lifestyle"


class FlagSeverity(Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class RiskLevel(Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class IssueType(Enum):
    MISSED_INTERACTION = "missed_interaction"
    MISSED_CONTRAINDICATION = "missed_contraindication"
    DOSAGE_EXCEEDS_MAX = "dosage_exceeds_max"


class IssueSeverity(Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Recommendation(Enum):
    SAFE_TO_PROCEED = "SAFE_TO_PROCEED"
    REVIEW_REQUIRED = "REVIEW_REQUIRED"


# ==================== Input parsing helpers ====================

def _as_float(value: Any, default: Optional[float] = None) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _as_str(value: Any, default: str = "") -> str:
    if value is None:
        return default
    return value if isinstance(value, str) else str(value)


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _pick(data: Dict[str, Any], *keys: str) -> Any:
    """First present key, so camelCase and snake_case payloads both parse"""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return None


# ==================== Chief complaint ====================

@dataclass(frozen=True)
class SymptomEntity:
    """Single lexicon match inside a complaint"""
    term: str
    body_system: BodySystem
    severity: int  # 0-10, after modifier
    is_negated: bool
    is_red_flag: bool
    icd10: str = ""


@dataclass
class DurationInfo:
    raw: str
    estimated_days: float
    classification: DurationClass


@dataclass
class DifferentialEntry:
    condition: str
    probability: float  # capped at 0.95
    icd10_category: str
    related_symptoms: List[str] = field(default_factory=list)


@dataclass
class ChiefComplaintAnalysis:
    """Structured report produced from free-text chief complaint"""
    original_text: str
    normalized_text: str
    symptoms: List[SymptomEntity] = field(default_factory=list)
    body_systems: List[BodySystem] = field(default_factory=list)
    duration: Optional[DurationInfo] = None
    acuity: Acuity = Acuity.ROUTINE
    red_flags: List[str] = field(default_factory=list)
    differentials: List[DifferentialEntry] = field(default_factory=list)
    suggested_questions: List[str] = field(default_factory=list)
    confidence: int = 0

    @property
    def positive_symptoms(self) -> List[SymptomEntity]:
        return [s for s in self.symptoms if not s.is_negated]

    @property
    def negated_symptoms(self) -> List[SymptomEntity]:
        return [s for s in self.symptoms if s.is_negated]


# ==================== Ensemble risk ====================

@dataclass
class ClinicalFlag:
    category: FlagCategory
    severity: FlagSeverity
    message: str


@dataclass
class SubModelScore:
    """Contribution of one model to an ensemble run"""
    name: str
    score: float       # 0-100
    weight: float      # pre-normalization
    confidence: float  # 0-100
    available: bool
    details: str = ""
    normalized_weight: float = 0.0


@dataclass
class InteractionPrediction:
    drug1: str
    drug2: str
    predicted_severity: str  # minor, moderate, major
    confidence: float
    known_interaction: bool = False


@dataclass
class EnsembleRiskResult:
    overall_score: int
    risk_level: RiskLevel
    confidence_interval: Tuple[int, int]
    ensemble_confidence: int
    sub_models: List[SubModelScore] = field(default_factory=list)
    flags: List[ClinicalFlag] = field(default_factory=list)
    complaint_analysis: Optional[ChiefComplaintAnalysis] = None
    predicted_interactions: List[InteractionPrediction] = field(default_factory=list)
    differentials: List[DifferentialEntry] = field(default_factory=list)
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def has_critical_flags(self) -> bool:
        return any(f.severity == FlagSeverity.CRITICAL for f in self.flags)

    @property
    def flag_count(self) -> Dict[str, int]:
        counts = {"info": 0, "warning": 0, "critical": 0}
        for f in self.flags:
            counts[f.severity.value] += 1
        return counts


# ==================== Patient input ====================

@dataclass
class Allergy:
    allergen: str
    reaction: str = ""
    severity: str = ""


@dataclass
class CurrentMedication:
    drug_name: str
    generic_name: str = ""
    dosage: str = ""

    @property
    def name(self) -> str:
        return self.generic_name or self.drug_name


@dataclass
class LabValues:
    creatinine: Optional[float] = None  # mg/dL
    gfr: Optional[float] = None         # mL/min/1.73m²
    ast: Optional[float] = None         # U/L
    alt: Optional[float] = None         # U/L
    hba1c: Optional[float] = None       # %
    inr: Optional[float] = None


@dataclass
class PatientRecord:
    """Patient data consumed by the ensemble and cross-validation"""
    patient_id: str = ""
    age: Optional[float] = None
    sex: str = ""
    bmi: Optional[float] = None
    systolic: Optional[float] = None
    diastolic: Optional[float] = None
    heart_rate: Optional[float] = None
    conditions: List[str] = field(default_factory=list)
    allergies: List[Allergy] = field(default_factory=list)
    medications: List[CurrentMedication] = field(default_factory=list)
    smoking_status: str = "never"
    pack_years: Optional[float] = None
    alcohol_use: str = "none"
    drinks_per_week: Optional[float] = None
    exercise_level: str = ""
    chief_complaint: str = ""
    labs: Optional[LabValues] = None

    def drug_names(self) -> List[str]:
        return [m.name for m in self.medications if m.name]

    @classmethod
    def from_dict(cls, data: Any) -> "PatientRecord":
        """
        Parse patient JSON (camelCase API shape).

        Missing or malformed fields fall back to defaults instead of raising.
        """
        data = _as_dict(data)
        demo = _as_dict(data.get("demographics"))
        history = _as_dict(_pick(data, "medicalHistory", "medical_history"))
        lifestyle = _as_dict(_pick(data, "lifestyleFactors", "lifestyle", "lifestyle_factors"))
        bp = _as_dict(_pick(demo, "bloodPressure", "blood_pressure"))

        conditions = []
        for item in _as_list(history.get("conditions")):
            name = _as_str(item.get("condition")) if isinstance(item, dict) else _as_str(item)
            if name.strip():
                conditions.append(name.strip())

        allergies = []
        for item in _as_list(history.get("allergies")):
            if isinstance(item, dict):
                allergen = _as_str(item.get("allergen")).strip()
                if allergen:
                    allergies.append(Allergy(
                        allergen=allergen,
                        reaction=_as_str(item.get("reaction")),
                        severity=_as_str(item.get("severity")),
                    ))
            elif _as_str(item).strip():
                allergies.append(Allergy(allergen=_as_str(item).strip()))

        meds_block = _pick(data, "currentMedications", "current_medications", "medications")
        if isinstance(meds_block, dict):
            meds_block = meds_block.get("medications")
        medications = []
        for item in _as_list(meds_block):
            if isinstance(item, dict):
                drug_name = _as_str(_pick(item, "drugName", "drug_name", "name")).strip()
                generic = _as_str(_pick(item, "genericName", "generic_name")).strip()
                if drug_name or generic:
                    medications.append(CurrentMedication(
                        drug_name=drug_name or generic,
                        generic_name=generic,
                        dosage=_as_str(item.get("dosage")),
                    ))
            elif _as_str(item).strip():
                medications.append(CurrentMedication(drug_name=_as_str(item).strip()))

        labs = None
        raw_labs = data.get("labs")
        if isinstance(raw_labs, dict):
            labs = LabValues(
                creatinine=_as_float(raw_labs.get("creatinine")),
                gfr=_as_float(raw_labs.get("gfr")),
                ast=_as_float(raw_labs.get("ast")),
                alt=_as_float(raw_labs.get("alt")),
                hba1c=_as_float(raw_labs.get("hba1c")),
                inr=_as_float(raw_labs.get("inr")),
            )

        return cls(
            patient_id=_as_str(_pick(data, "patientId", "patient_id", "id")),
            age=_as_float(demo.get("age")),
            sex=_as_str(_pick(demo, "gender", "sex")),
            bmi=_as_float(demo.get("bmi")),
            systolic=_as_float(bp.get("systolic")),
            diastolic=_as_float(bp.get("diastolic")),
            heart_rate=_as_float(_pick(demo, "heartRate", "heart_rate")),
            conditions=conditions,
            allergies=allergies,
            medications=medications,
            smoking_status=_as_str(_pick(lifestyle, "smokingStatus", "smoking_status"), "never").lower(),
            pack_years=_as_float(_pick(lifestyle, "packYears", "pack_years")),
            alcohol_use=_as_str(_pick(lifestyle, "alcoholUse", "alcohol_use"), "none").lower(),
            drinks_per_week=_as_float(_pick(lifestyle, "drinksPerWeek", "drinks_per_week")),
            exercise_level=_as_str(_pick(lifestyle, "exerciseLevel", "exercise_level")).lower(),
            chief_complaint=_as_str(_pick(lifestyle, "chiefComplaint", "chief_complaint")
                                    or _pick(data, "chiefComplaint", "chief_complaint")),
            labs=labs,
        )


# ==================== Treatment plan input ====================

@dataclass
class ProposedTreatment:
    medication: str
    generic_name: str = ""
    dosage: str = ""
    frequency: str = ""
    duration: str = ""
    route: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> "ProposedTreatment":
        data = _as_dict(data)
        return cls(
            medication=_as_str(_pick(data, "medication", "drugName", "drug_name")),
            generic_name=_as_str(_pick(data, "genericName", "generic_name")),
            dosage=_as_str(data.get("dosage")),
            frequency=_as_str(data.get("frequency")),
            duration=_as_str(data.get("duration")),
            route=_as_str(data.get("route")),
        )


@dataclass
class PlanInteraction:
    drug1: str
    drug2: str
    severity: str = ""
    effect: str = ""
    management: str = ""


@dataclass
class PlanContraindication:
    drug: str
    condition: str
    type: str = ""
    reason: str = ""


@dataclass
class PlanIssue:
    type: str
    severity: str
    description: str


@dataclass
class TreatmentPlan:
    """Externally generated treatment plan to be audited"""
    primary: ProposedTreatment
    alternatives: List[ProposedTreatment] = field(default_factory=list)
    drug_interactions: List[PlanInteraction] = field(default_factory=list)
    contraindications: List[PlanContraindication] = field(default_factory=list)
    flagged_issues: List[PlanIssue] = field(default_factory=list)
    risk_factors: List[str] = field(default_factory=list)
    primary_choice: str = ""
    monitoring_plan: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> "TreatmentPlan":
        data = _as_dict(data)
        plan = _as_dict(_pick(data, "treatmentPlan", "treatment_plan"))
        risk = _as_dict(_pick(data, "riskAssessment", "risk_assessment"))
        rationale = _as_dict(data.get("rationale"))

        interactions = [
            PlanInteraction(
                drug1=_as_str(i.get("drug1")),
                drug2=_as_str(i.get("drug2")),
                severity=_as_str(i.get("severity")),
                effect=_as_str(i.get("effect")),
                management=_as_str(i.get("management")),
            )
            for i in _as_list(_pick(data, "drugInteractions", "drug_interactions"))
            if isinstance(i, dict)
        ]
        contraindications = [
            PlanContraindication(
                drug=_as_str(c.get("drug")),
                condition=_as_str(c.get("condition")),
                type=_as_str(c.get("type")),
                reason=_as_str(c.get("reason")),
            )
            for c in _as_list(data.get("contraindications"))
            if isinstance(c, dict)
        ]
        flagged = [
            PlanIssue(
                type=_as_str(f.get("type")),
                severity=_as_str(f.get("severity")),
                description=_as_str(f.get("description")),
            )
            for f in _as_list(_pick(data, "flaggedIssues", "flagged_issues"))
            if isinstance(f, dict)
        ]

        return cls(
            primary=ProposedTreatment.from_dict(_pick(plan, "primaryTreatment", "primary_treatment")),
            alternatives=[
                ProposedTreatment.from_dict(a)
                for a in _as_list(_pick(plan, "alternativeTreatments", "alternative_treatments"))
                if isinstance(a, dict)
            ],
            drug_interactions=interactions,
            contraindications=contraindications,
            flagged_issues=flagged,
            risk_factors=[_as_str(r) for r in _as_list(_pick(risk, "riskFactors", "risk_factors"))],
            primary_choice=_as_str(_pick(rationale, "primaryChoice", "primary_choice")),
            monitoring_plan=_as_str(_pick(rationale, "monitoringPlan", "monitoring_plan")),
        )


# ==================== Cross-validation ====================

@dataclass
class ValidationIssue:
    type: IssueType
    severity: IssueSeverity
    description: str
    fact_store_entry: Optional[Dict[str, Any]] = None


@dataclass
class ValidationReport:
    """Result of auditing a treatment plan against the knowledge base"""
    is_valid: bool
    issues: List[ValidationIssue] = field(default_factory=list)
    recommendation: Recommendation = Recommendation.SAFE_TO_PROCEED
    validated_at: datetime = field(default_factory=datetime.now)

    @property
    def issue_count(self) -> Dict[str, int]:
        counts = {s.value: 0 for s in IssueSeverity}
        for issue in self.issues:
            counts[issue.severity.value] += 1
        return counts


# ==================== Serialization ====================

def to_jsonable(value: Any) -> Any:
    """Recursively convert dataclasses, enums and datetimes to JSON-friendly values"""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_jsonable(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [to_jsonable(v) for v in value]
    return value
