"""
Clinical Risk Engine - Chief Complaint NLP Module
Structured symptom, acuity and differential extraction from free-text complaints

Pattern matching over declarative tables:
- symptom lexicon with body system, base severity, red flag and ICD-10 category
- negation cues checked in a fixed window before each match
- global severity boosters/reducers
- ordered duration patterns
- differential rules (required + supporting symptoms)
"""
import re
import logging
from typing import List, Dict, Optional, Tuple, Callable, Any
from dataclasses import dataclass

from src.core.models import (
    Acuity, BodySystem, DurationClass, SymptomEntity, DurationInfo,
    DifferentialEntry, ChiefComplaintAnalysis,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LexiconEntry:
    terms: Tuple[str, ...]
    body_system: BodySystem
    base_severity: int
    red_flag: bool
    icd10: str


@dataclass(frozen=True)
class DifferentialRule:
    condition: str
    icd10: str
    required: Tuple[str, ...]    # at least one must match
    supporting: Tuple[str, ...]  # each match adds boost
    base_probability: float
    boost: float


def _lex(terms, system, severity, red_flag, icd10):
    return LexiconEntry(tuple(terms), system, severity, red_flag, icd10)


S = BodySystem

# ==================== Symptom Lexicon ====================

SYMPTOM_LEXICON: List[LexiconEntry] = [
    # Cardiovascular
    _lex(["chest pain", "chest tightness", "angina", "chest pressure"], S.CARDIOVASCULAR, 8, True, "I20-I25"),
    _lex(["palpitations", "heart racing", "irregular heartbeat", "arrhythmia"], S.CARDIOVASCULAR, 6, False, "R00"),
    _lex(["shortness of breath", "dyspnea", "difficulty breathing", "breathlessness", "sob"],
         S.CARDIOVASCULAR, 7, True, "R06.0"),
    _lex(["swollen legs", "leg edema", "ankle swelling", "pedal edema"], S.CARDIOVASCULAR, 5, False, "R60"),
    _lex(["syncope", "fainting", "passed out", "lost consciousness"], S.CARDIOVASCULAR, 8, True, "R55"),
    _lex(["hypertension", "high blood pressure", "elevated bp"], S.CARDIOVASCULAR, 5, False, "I10"),

    # Respiratory
    _lex(["cough", "coughing", "persistent cough"], S.RESPIRATORY, 3, False, "R05"),
    _lex(["wheezing", "wheeze"], S.RESPIRATORY, 5, False, "R06.2"),
    _lex(["hemoptysis", "coughing blood", "blood in sputum"], S.RESPIRATORY, 8, True, "R04.2"),
    _lex(["asthma", "asthma attack", "bronchospasm"], S.RESPIRATORY, 6, False, "J45"),
    _lex(["pneumonia", "lung infection"], S.RESPIRATORY, 7, False, "J18"),
    _lex(["pleurisy", "pleuritic pain"], S.RESPIRATORY, 6, False, "R09.1"),

    # Neurological
    _lex(["headache", "head pain", "migraine", "cephalalgia"], S.NEUROLOGICAL, 4, False, "R51"),
    _lex(["thunderclap headache", "worst headache", "sudden severe headache"], S.NEUROLOGICAL, 10, True, "G44"),
    _lex(["seizure", "convulsion", "fitting", "epilepsy"], S.NEUROLOGICAL, 8, True, "R56"),
    _lex(["numbness", "tingling", "paresthesia", "pins and needles"], S.NEUROLOGICAL, 4, False, "R20"),
    _lex(["weakness", "muscle weakness", "hemiparesis", "paralysis"], S.NEUROLOGICAL, 7, True, "R29.8"),
    _lex(["dizziness", "vertigo", "lightheaded", "light headed"], S.NEUROLOGICAL, 4, False, "R42"),
    _lex(["confusion", "altered mental status", "disorientation", "ams"], S.NEUROLOGICAL, 8, True, "R41"),
    _lex(["stroke symptoms", "facial droop", "slurred speech"], S.NEUROLOGICAL, 10, True, "I63"),
    _lex(["memory loss", "forgetfulness", "cognitive decline"], S.NEUROLOGICAL, 5, False, "R41.3"),
    _lex(["tremor", "shaking", "trembling"], S.NEUROLOGICAL, 4, False, "R25.1"),
    _lex(["blurred vision", "vision loss", "double vision", "vision changes"], S.OPHTHALMOLOGICAL, 6, False, "H53"),

    # Gastrointestinal
    _lex(["abdominal pain", "stomach pain", "belly pain", "epigastric pain"], S.GASTROINTESTINAL, 5, False, "R10"),
    _lex(["nausea", "vomiting", "emesis", "feeling sick"], S.GASTROINTESTINAL, 3, False, "R11"),
    _lex(["diarrhea", "loose stools", "watery stool"], S.GASTROINTESTINAL, 3, False, "R19.7"),
    _lex(["constipation", "difficulty passing stool"], S.GASTROINTESTINAL, 2, False, "K59.0"),
    _lex(["bloody stool", "melena", "rectal bleeding", "hematochezia", "blood in stool"],
         S.GASTROINTESTINAL, 8, True, "K92.1"),
    _lex(["jaundice", "yellowing skin", "yellow eyes", "icterus"], S.GASTROINTESTINAL, 7, True, "R17"),
    _lex(["heartburn", "acid reflux", "gerd"], S.GASTROINTESTINAL, 3, False, "K21"),
    _lex(["dysphagia", "difficulty swallowing", "trouble swallowing"], S.GASTROINTESTINAL, 5, False, "R13"),

    # Musculoskeletal
    _lex(["back pain", "low back pain", "lumbago", "lumbar pain"], S.MUSCULOSKELETAL, 4, False, "M54"),
    _lex(["joint pain", "arthralgia", "joint swelling"], S.MUSCULOSKELETAL, 4, False, "M25"),
    _lex(["knee pain", "hip pain", "shoulder pain", "elbow pain"], S.MUSCULOSKELETAL, 4, False, "M79"),
    _lex(["fracture", "broken bone"], S.MUSCULOSKELETAL, 7, False, "S72"),
    _lex(["neck pain", "cervicalgia"], S.MUSCULOSKELETAL, 4, False, "M54.2"),
    _lex(["muscle cramp", "spasm", "muscle spasm"], S.MUSCULOSKELETAL, 3, False, "R25.2"),

    # Endocrine
    _lex(["diabetes", "high blood sugar", "hyperglycemia"], S.ENDOCRINE, 5, False, "E11"),
    _lex(["diabetic ketoacidosis", "dka"], S.ENDOCRINE, 9, True, "E10.1"),
    _lex(["hypoglycemia", "low blood sugar", "sugar crash"], S.ENDOCRINE, 7, True, "E16.2"),
    _lex(["thyroid", "hypothyroid", "hyperthyroid", "thyroid problem"], S.ENDOCRINE, 4, False, "E03"),
    _lex(["weight loss unexplained", "unintentional weight loss"], S.ENDOCRINE, 6, True, "R63.4"),
    _lex(["excessive thirst", "polydipsia"], S.ENDOCRINE, 4, False, "R63.1"),

    # Renal
    _lex(["painful urination", "dysuria", "burning urination"], S.RENAL, 4, False, "R30"),
    _lex(["hematuria", "blood in urine", "pink urine"], S.RENAL, 6, True, "R31"),
    _lex(["kidney stone", "renal colic", "flank pain"], S.RENAL, 7, False, "N20"),
    _lex(["urinary frequency", "frequent urination", "polyuria"], S.RENAL, 3, False, "R35"),

    # Dermatological
    _lex(["rash", "skin rash", "eruption"], S.DERMATOLOGICAL, 3, False, "R21"),
    _lex(["itching", "pruritus", "itchy skin"], S.DERMATOLOGICAL, 2, False, "L29"),
    _lex(["swelling", "angioedema", "facial swelling"], S.DERMATOLOGICAL, 7, True, "T78.3"),

    # Psychiatric
    _lex(["anxiety", "anxious", "panic", "panic attack"], S.PSYCHIATRIC, 4, False, "F41"),
    _lex(["depression", "depressed", "low mood", "feeling hopeless"], S.PSYCHIATRIC, 5, False, "F32"),
    _lex(["suicidal", "self harm", "suicidal ideation", "suicide"], S.PSYCHIATRIC, 10, True, "R45.851"),
    _lex(["insomnia", "can't sleep", "sleep disturbance", "difficulty sleeping"], S.PSYCHIATRIC, 3, False, "G47"),

    # Infectious / ENT
    _lex(["fever", "high temperature", "pyrexia", "febrile"], S.INFECTIOUS, 4, False, "R50"),
    _lex(["chills", "rigors", "shivering"], S.INFECTIOUS, 4, False, "R68.83"),
    _lex(["sore throat", "pharyngitis", "throat pain"], S.ENT, 3, False, "J02"),
    _lex(["ear pain", "otalgia", "earache"], S.ENT, 3, False, "H92"),

    # Hematological / reproductive
    _lex(["easy bruising", "nosebleed", "bleeding gums"], S.HEMATOLOGICAL, 5, False, "R58"),
    _lex(["vaginal bleeding", "pelvic pain", "missed period"], S.REPRODUCTIVE, 5, False, "N94"),

    # General
    _lex(["fatigue", "tired", "exhaustion", "lethargy", "malaise"], S.GENERAL, 3, False, "R53"),
    _lex(["night sweats"], S.GENERAL, 5, True, "R61"),
    _lex(["anaphylaxis", "allergic reaction", "severe allergy"], S.GENERAL, 10, True, "T78.2"),
]


# ==================== Differential Diagnosis Rules ====================

DIFFERENTIAL_RULES: List[DifferentialRule] = [
    DifferentialRule("Acute Coronary Syndrome (ACS)", "I21",
                     ("chest pain", "chest tightness", "angina", "chest pressure"),
                     ("shortness of breath", "diaphoresis", "nausea", "jaw pain", "arm pain", "palpitations"),
                     0.30, 0.12),
    DifferentialRule("Pulmonary Embolism", "I26",
                     ("shortness of breath", "dyspnea", "chest pain", "pleuritic pain"),
                     ("leg swelling", "tachycardia", "hemoptysis", "cough"),
                     0.15, 0.10),
    DifferentialRule("Stroke / TIA", "I63",
                     ("weakness", "numbness", "slurred speech", "facial droop", "stroke symptoms"),
                     ("confusion", "headache", "vision changes", "dizziness"),
                     0.25, 0.12),
    DifferentialRule("Pneumonia", "J18",
                     ("cough", "fever", "shortness of breath"),
                     ("chills", "chest pain", "fatigue", "sputum"),
                     0.20, 0.10),
    DifferentialRule("COPD Exacerbation", "J44.1",
                     ("shortness of breath", "wheezing", "cough"),
                     ("sputum", "chest tightness", "fatigue"),
                     0.15, 0.08),
    DifferentialRule("Diabetic Emergency (DKA/HHS)", "E10.1",
                     ("diabetic ketoacidosis", "dka", "high blood sugar", "hyperglycemia"),
                     ("nausea", "vomiting", "abdominal pain", "confusion", "excessive thirst", "fatigue"),
                     0.20, 0.10),
    DifferentialRule("Acute Appendicitis", "K35",
                     ("abdominal pain", "stomach pain"),
                     ("nausea", "vomiting", "fever", "loss of appetite"),
                     0.15, 0.08),
    DifferentialRule("Urinary Tract Infection", "N39.0",
                     ("painful urination", "dysuria", "urinary frequency"),
                     ("fever", "hematuria", "flank pain", "abdominal pain"),
                     0.25, 0.10),
    DifferentialRule("Migraine", "G43",
                     ("headache", "migraine"),
                     ("nausea", "vomiting", "vision changes", "light sensitivity", "aura"),
                     0.30, 0.08),
    DifferentialRule("Hypertensive Crisis", "I16",
                     ("high blood pressure", "hypertension", "headache"),
                     ("chest pain", "shortness of breath", "vision changes", "confusion", "nosebleed"),
                     0.15, 0.10),
    DifferentialRule("Major Depressive Episode", "F32",
                     ("depression", "depressed", "low mood", "feeling hopeless"),
                     ("insomnia", "fatigue", "weight loss unexplained", "anxiety", "suicidal"),
                     0.35, 0.10),
    DifferentialRule("Anaphylaxis", "T78.2",
                     ("anaphylaxis", "allergic reaction", "severe allergy", "swelling"),
                     ("rash", "shortness of breath", "throat tightness", "itching"),
                     0.20, 0.15),
    DifferentialRule("Acute Kidney Injury", "N17",
                     ("decreased urine output", "hematuria", "flank pain"),
                     ("swollen legs", "fatigue", "nausea", "confusion"),
                     0.15, 0.10),
    DifferentialRule("GERD / Peptic Ulcer", "K21",
                     ("heartburn", "acid reflux", "epigastric pain"),
                     ("nausea", "dysphagia", "abdominal pain", "bloody stool"),
                     0.25, 0.08),
    DifferentialRule("Osteoarthritis", "M15-M19",
                     ("joint pain", "knee pain", "hip pain"),
                     ("joint swelling", "stiffness", "decreased range of motion"),
                     0.30, 0.08),
]

MAX_DIFFERENTIAL_PROBABILITY = 0.95
MAX_DIFFERENTIALS = 5


# ==================== Negation & Severity Modifiers ====================

NEGATION_CUES = [
    "no ", "not ", "without ", "denies ", "deny ", "absent ", "negative for ",
    "does not have ", "doesn't have ", "no evidence of ", "ruled out ",
    "free of ", "lacks ", "never had ",
]
NEGATION_WINDOW = 40  # characters before the match

SEVERITY_BOOSTERS: List[Tuple[str, int]] = [
    ("severe", 3), ("intense", 3), ("excruciating", 4), ("worst", 4),
    ("acute", 2), ("sudden", 2), ("worsening", 2), ("progressive", 1),
    ("uncontrolled", 2), ("debilitating", 3), ("crushing", 3),
    ("10/10", 4), ("9/10", 3), ("8/10", 2), ("7/10", 1),
]

SEVERITY_REDUCERS: List[Tuple[str, int]] = [
    ("mild", -2), ("slight", -2), ("minor", -2), ("occasional", -1),
    ("intermittent", -1), ("improving", -1), ("resolving", -2),
    ("1/10", -3), ("2/10", -2), ("3/10", -1),
]


# ==================== Duration Patterns ====================

_UNIT_DAYS = {"day": 1, "week": 7, "month": 30, "year": 365}

# Ordered: first match wins
DURATION_PATTERNS: List[Tuple[re.Pattern, Callable[[re.Match], float]]] = [
    (re.compile(r"(\d+)\s*(?:minute|min)s?\b", re.I), lambda m: float(m.group(1)) / 1440),
    (re.compile(r"(\d+)\s*hours?\b", re.I), lambda m: float(m.group(1)) / 24),
    (re.compile(r"(\d+)\s*days?\b", re.I), lambda m: float(m.group(1))),
    (re.compile(r"(\d+)\s*weeks?\b", re.I), lambda m: float(m.group(1)) * 7),
    (re.compile(r"(\d+)\s*months?\b", re.I), lambda m: float(m.group(1)) * 30),
    (re.compile(r"(\d+)\s*years?\b", re.I), lambda m: float(m.group(1)) * 365),
    (re.compile(r"(?:since|for the past|over the last)\s+(\d+)\s*(day|week|month|year)s?", re.I),
     lambda m: float(m.group(1)) * _UNIT_DAYS[m.group(2).lower()]),
    (re.compile(r"(?:today|just now|just started|onset today)", re.I), lambda m: 0.5),
    (re.compile(r"yesterday", re.I), lambda m: 1.0),
    (re.compile(r"(?:this morning|this evening|last night|tonight)", re.I), lambda m: 0.5),
    (re.compile(r"(?:a few days|couple of days)", re.I), lambda m: 3.0),
    (re.compile(r"(?:a week|past week)", re.I), lambda m: 7.0),
    (re.compile(r"(?:several weeks|few weeks)", re.I), lambda m: 21.0),
    (re.compile(r"(?:chronic|long.?standing|for years)", re.I), lambda m: 365.0),
]


# ==================== Follow-up Questions ====================

SYSTEM_QUESTIONS: Dict[BodySystem, List[str]] = {
    S.CARDIOVASCULAR: [
        "Does the pain radiate to arm, jaw, or back?",
        "Any history of heart disease or prior MI?",
        "Are you currently taking any blood thinners?",
    ],
    S.RESPIRATORY: [
        "Are you producing sputum? What color?",
        "Any history of asthma or COPD?",
        "Have you been exposed to anyone who is sick?",
    ],
    S.NEUROLOGICAL: [
        "When did the symptoms first start?",
        "Any recent head injury or trauma?",
        "Is there any vision change, speech difficulty, or weakness?",
    ],
    S.GASTROINTESTINAL: [
        "Any blood in stool or vomit?",
        "When was your last bowel movement?",
        "Any recent travel or food changes?",
    ],
    S.MUSCULOSKELETAL: [
        "Was there a specific injury or event that triggered the pain?",
        "Does the pain worsen with movement or at rest?",
        "Any morning stiffness?",
    ],
    S.ENDOCRINE: [
        "Have you checked your blood sugar recently?",
        "Any recent weight changes?",
        "Are you experiencing excessive thirst or urination?",
    ],
    S.RENAL: [
        "Have you noticed any changes in urine color or volume?",
        "Any history of kidney stones or UTIs?",
        "Are you drinking enough fluids?",
    ],
    S.DERMATOLOGICAL: [
        "When did the rash first appear?",
        "Have you started any new medications recently?",
        "Any known allergies?",
    ],
    S.PSYCHIATRIC: [
        "Have you had any thoughts of self-harm?",
        "How long have you been feeling this way?",
        "Are you currently seeing a mental health professional?",
    ],
    S.INFECTIOUS: [
        "Have you traveled recently?",
        "Any known exposure to infectious diseases?",
        "Are your vaccinations up to date?",
    ],
    S.HEMATOLOGICAL: [
        "Have you noticed any easy bruising or bleeding?",
        "Any family history of blood disorders?",
        "Are you taking anticoagulants?",
    ],
    S.OPHTHALMOLOGICAL: [
        "Is the vision loss sudden or gradual?",
        "Any eye pain or redness?",
        "When was your last eye exam?",
    ],
    S.ENT: [
        "Any ear discharge or hearing changes?",
        "Is the sore throat accompanied by difficulty swallowing?",
        "Any nasal congestion or sinus pressure?",
    ],
    S.REPRODUCTIVE: [
        "Any chance of pregnancy?",
        "Any abnormal bleeding?",
        "When was your last menstrual period?",
    ],
    S.GENERAL: [
        "How long have you been feeling this way?",
        "Have you had any unintentional weight changes?",
        "Are you currently taking any medications?",
    ],
}

QUESTIONS_PER_SYSTEM = 2
MAX_QUESTIONS = 5
EMPTY_COMPLAINT_QUESTION = "Could you describe your main symptoms?"


# ==================== Text Utilities ====================

class ComplaintTextProcessor:
    """Utilities for processing complaint text"""

    STRIP_PUNCTUATION = re.compile(r"[^\w\s'/.-]")
    WHITESPACE = re.compile(r"\s+")

    @classmethod
    def normalize(cls, text: str) -> str:
        """Lowercase, strip punctuation except ' / . - and collapse whitespace"""
        if not text:
            return ""
        text = cls.STRIP_PUNCTUATION.sub("", text.lower())
        return cls.WHITESPACE.sub(" ", text).strip()

    @classmethod
    def severity_modifier(cls, text: str) -> int:
        """Sum of every booster and reducer found anywhere in the text"""
        lower = text.lower()
        modifier = 0
        for phrase, delta in SEVERITY_BOOSTERS + SEVERITY_REDUCERS:
            if phrase in lower:
                modifier += delta
        return modifier

    @classmethod
    def is_negated(cls, text: str, start: int) -> bool:
        window = text[max(0, start - NEGATION_WINDOW):start].lower()
        return any(cue in window for cue in NEGATION_CUES)

    @classmethod
    def extract_duration(cls, text: str) -> Optional[DurationInfo]:
        for pattern, to_days in DURATION_PATTERNS:
            match = pattern.search(text)
            if match:
                days = to_days(match)
                return DurationInfo(
                    raw=match.group(0),
                    estimated_days=round(days, 1),
                    classification=classify_duration(days),
                )
        return None


def classify_duration(days: float) -> DurationClass:
    if days < 14:
        return DurationClass.ACUTE
    if days < 90:
        return DurationClass.SUBACUTE
    return DurationClass.CHRONIC


def _terms_overlap(a: str, b: str) -> bool:
    return a in b or b in a


# ==================== Analyzer ====================

class ChiefComplaintAnalyzer:
    """
    Free-text chief complaint analyzer.

    Stateless apart from its (read-only) tables; safe to share between
    concurrent requests.
    """

    def __init__(
        self,
        lexicon: Optional[List[LexiconEntry]] = None,
        differential_rules: Optional[List[DifferentialRule]] = None,
        system_questions: Optional[Dict[BodySystem, List[str]]] = None,
    ):
        self.lexicon = lexicon if lexicon is not None else SYMPTOM_LEXICON
        self.differential_rules = differential_rules if differential_rules is not None else DIFFERENTIAL_RULES
        self.system_questions = system_questions if system_questions is not None else SYSTEM_QUESTIONS
        self.text_processor = ComplaintTextProcessor()

    def analyze(self, text: Any) -> ChiefComplaintAnalysis:
        """Analyze a chief complaint; never raises"""
        if not isinstance(text, str) or not text.strip():
            return ChiefComplaintAnalysis(
                original_text=text if isinstance(text, str) else "",
                normalized_text="",
                suggested_questions=[EMPTY_COMPLAINT_QUESTION],
                confidence=0,
            )

        normalized = self.text_processor.normalize(text)
        modifier = self.text_processor.severity_modifier(normalized)

        symptoms, systems = self._extract_symptoms(normalized, modifier)
        duration = self.text_processor.extract_duration(normalized)
        red_flags = [s.term for s in symptoms if s.is_red_flag]
        acuity = self._determine_acuity(symptoms, red_flags, duration)

        positive_terms = [s.term for s in symptoms if not s.is_negated]
        differentials = self._match_differentials(positive_terms)
        questions = self._suggest_questions(systems)
        confidence = self._confidence(symptoms, duration, differentials, systems)

        logger.debug(
            f"Complaint analyzed: {len(symptoms)} symptoms, acuity={acuity.value}, "
            f"red_flags={len(red_flags)}"
        )

        return ChiefComplaintAnalysis(
            original_text=text,
            normalized_text=normalized,
            symptoms=symptoms,
            body_systems=systems if systems else [BodySystem.GENERAL],
            duration=duration,
            acuity=acuity,
            red_flags=red_flags,
            differentials=differentials[:MAX_DIFFERENTIALS],
            suggested_questions=questions,
            confidence=confidence,
        )

    def _extract_symptoms(
        self, normalized: str, modifier: int
    ) -> Tuple[List[SymptomEntity], List[BodySystem]]:
        symptoms: List[SymptomEntity] = []
        systems: List[BodySystem] = []

        for entry in self.lexicon:
            for term in entry.terms:
                idx = normalized.find(term)
                if idx == -1:
                    continue

                negated = self.text_processor.is_negated(normalized, idx)
                severity = entry.base_severity + (0 if negated else modifier)
                symptoms.append(SymptomEntity(
                    term=term,
                    body_system=entry.body_system,
                    severity=max(0, min(10, severity)),
                    is_negated=negated,
                    is_red_flag=entry.red_flag and not negated,
                    icd10=entry.icd10,
                ))
                if not negated and entry.body_system not in systems:
                    systems.append(entry.body_system)
                break  # one contribution per lexicon entry

        return symptoms, systems

    @staticmethod
    def _determine_acuity(
        symptoms: List[SymptomEntity],
        red_flags: List[str],
        duration: Optional[DurationInfo],
    ) -> Acuity:
        max_severity = max((s.severity for s in symptoms if not s.is_negated), default=0)

        acuity = Acuity.ROUTINE
        if max_severity >= 9 or len(red_flags) >= 2:
            acuity = Acuity.EMERGENT
        elif max_severity >= 7 or len(red_flags) >= 1:
            acuity = Acuity.URGENT
        elif max_severity >= 5:
            acuity = Acuity.SEMI_URGENT

        # Onset within the last day
        if duration is not None and duration.estimated_days < 1:
            acuity = acuity.escalate()

        return acuity

    def _match_differentials(self, positive_terms: List[str]) -> List[DifferentialEntry]:
        differentials = []

        for rule in self.differential_rules:
            has_required = any(
                _terms_overlap(term, required)
                for required in rule.required
                for term in positive_terms
            )
            if not has_required:
                continue

            probability = rule.base_probability
            matched = []
            for supporting in rule.supporting:
                if any(_terms_overlap(term, supporting) for term in positive_terms):
                    probability += rule.boost
                    matched.append(supporting)

            differentials.append(DifferentialEntry(
                condition=rule.condition,
                probability=round(min(MAX_DIFFERENTIAL_PROBABILITY, probability), 2),
                icd10_category=rule.icd10,
                related_symptoms=matched,
            ))

        differentials.sort(key=lambda d: d.probability, reverse=True)
        return differentials

    def _suggest_questions(self, systems: List[BodySystem]) -> List[str]:
        questions: List[str] = []
        for system in systems:
            questions.extend(self.system_questions.get(system, [])[:QUESTIONS_PER_SYSTEM])
        if not questions:
            questions = list(self.system_questions[BodySystem.GENERAL])

        unique = list(dict.fromkeys(questions))
        return unique[:MAX_QUESTIONS]

    @staticmethod
    def _confidence(
        symptoms: List[SymptomEntity],
        duration: Optional[DurationInfo],
        differentials: List[DifferentialEntry],
        systems: List[BodySystem],
    ) -> int:
        confidence = 30 + min(30, len(symptoms) * 8)
        if duration is not None:
            confidence += 10
        if differentials:
            confidence += 15
        if systems:
            confidence += 15
        return min(95, confidence)


# Singleton instance
_analyzer: Optional[ChiefComplaintAnalyzer] = None

def get_complaint_analyzer() -> ChiefComplaintAnalyzer:
    global _analyzer
    if _analyzer is None:
        _analyzer = ChiefComplaintAnalyzer()
    return _analyzer


def analyze_chief_complaint(text: Any) -> ChiefComplaintAnalysis:
    return get_complaint_analyzer().analyze(text)


def analyze_multiple_complaints(texts: List[str]) -> ChiefComplaintAnalysis:
    """Merge separately captured complaints (e.g. form fields) into one analysis"""
    combined = ". ".join(t for t in texts if isinstance(t, str) and t)
    return analyze_chief_complaint(combined)
