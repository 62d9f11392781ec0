"""
Clinical Risk Engine - Drug Interaction Predictor
Pairwise interaction severity from pharmacological drug profiles

Catches interactions missing from the knowledge base:
- rule-based score over shared CYP pathway, protein binding,
  organ toxicity burden, QT risk and dangerous class combinations
- optional linear model fitted on knowledge-base pairs
- knowledge-base hits always override the prediction
"""
import re
import logging
from typing import List, Dict, Optional, Tuple
from dataclasses import dataclass

import numpy as np

from src.core.models import InteractionPrediction
from src.core.knowledge_base import get_knowledge_base

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


# ==================== Drug Profiles ====================

@dataclass(frozen=True)
class DrugProfile:
    drug_class: str
    cyp_pathway: str          # CYP3A4, CYP2D6, ... or "none"
    protein_binding: float    # 0-1
    half_life: float          # hours
    hepatotoxicity: float     # 0-1
    nephrotoxicity: float     # 0-1
    qt_prolongation: float    # 0-1


def _p(drug_class, cyp, binding, half_life, hepato, nephro, qt):
    return DrugProfile(drug_class, cyp, binding, half_life, hepato, nephro, qt)


DRUG_PROFILES: Dict[str, DrugProfile] = {
    # ACE inhibitors / ARBs
    "lisinopril": _p("ace_inhibitor", "none", 0.25, 12, 0.1, 0.3, 0),
    "enalapril": _p("ace_inhibitor", "none", 0.5, 11, 0.15, 0.3, 0),
    "ramipril": _p("ace_inhibitor", "none", 0.56, 13, 0.1, 0.3, 0),
    "losartan": _p("arb", "CYP2C9", 0.99, 6, 0.1, 0.2, 0),
    "valsartan": _p("arb", "none", 0.95, 9, 0.1, 0.2, 0),

    # Beta blockers / CCBs
    "metoprolol": _p("beta_blocker", "CYP2D6", 0.12, 5, 0.1, 0.1, 0.1),
    "atenolol": _p("beta_blocker", "none", 0.05, 7, 0.05, 0.15, 0.1),
    "carvedilol": _p("beta_blocker", "CYP2D6", 0.98, 7, 0.1, 0.1, 0.1),
    "propranolol": _p("beta_blocker", "CYP2D6", 0.9, 4, 0.1, 0.05, 0.15),
    "amlodipine": _p("calcium_channel_blocker", "CYP3A4", 0.93, 40, 0.1, 0.05, 0.05),
    "diltiazem": _p("calcium_channel_blocker", "CYP3A4", 0.8, 5, 0.1, 0.05, 0.15),
    "verapamil": _p("calcium_channel_blocker", "CYP3A4", 0.9, 8, 0.1, 0.05, 0.2),

    # Diuretics
    "furosemide": _p("diuretic", "none", 0.95, 2, 0.1, 0.4, 0.15),
    "hydrochlorothiazide": _p("diuretic", "none", 0.67, 10, 0.05, 0.3, 0.1),
    "spironolactone": _p("diuretic", "none", 0.9, 15, 0.1, 0.2, 0.05),

    # Anticoagulants / antiplatelets
    "warfarin": _p("anticoagulant", "CYP2C9", 0.99, 40, 0.2, 0.05, 0),
    "apixaban": _p("anticoagulant", "CYP3A4", 0.87, 12, 0.1, 0.1, 0),
    "rivaroxaban": _p("anticoagulant", "CYP3A4", 0.95, 9, 0.15, 0.15, 0),
    "clopidogrel": _p("antiplatelet", "CYP2C19", 0.98, 6, 0.1, 0.05, 0),
    "aspirin": _p("antiplatelet", "none", 0.8, 4, 0.1, 0.15, 0),

    # Statins
    "atorvastatin": _p("statin", "CYP3A4", 0.98, 14, 0.3, 0.1, 0),
    "simvastatin": _p("statin", "CYP3A4", 0.95, 3, 0.35, 0.1, 0),
    "rosuvastatin": _p("statin", "CYP2C9", 0.9, 19, 0.25, 0.1, 0),
    "pravastatin": _p("statin", "none", 0.5, 2, 0.15, 0.05, 0),

    # Antidepressants
    "sertraline": _p("ssri", "CYP2D6", 0.98, 26, 0.15, 0.05, 0.15),
    "fluoxetine": _p("ssri", "CYP2D6", 0.94, 72, 0.15, 0.05, 0.1),
    "citalopram": _p("ssri", "CYP2C19", 0.8, 35, 0.1, 0.05, 0.3),
    "escitalopram": _p("ssri", "CYP2C19", 0.56, 30, 0.1, 0.05, 0.25),
    "paroxetine": _p("ssri", "CYP2D6", 0.95, 21, 0.15, 0.05, 0.1),
    "venlafaxine": _p("snri", "CYP2D6", 0.27, 5, 0.15, 0.05, 0.15),
    "duloxetine": _p("snri", "CYP1A2", 0.96, 12, 0.25, 0.05, 0.1),
    "amitriptyline": _p("tca", "CYP2D6", 0.96, 25, 0.2, 0.05, 0.4),
    "nortriptyline": _p("tca", "CYP2D6", 0.93, 30, 0.15, 0.05, 0.35),
    "phenelzine": _p("maoi", "none", 0.5, 12, 0.3, 0.1, 0.15),

    # Opioids / benzodiazepines
    "tramadol": _p("opioid", "CYP2D6", 0.2, 6, 0.1, 0.1, 0.1),
    "codeine": _p("opioid", "CYP2D6", 0.25, 3, 0.1, 0.05, 0.05),
    "oxycodone": _p("opioid", "CYP3A4", 0.45, 4, 0.15, 0.1, 0.05),
    "morphine": _p("opioid", "none", 0.35, 3, 0.2, 0.15, 0.1),
    "diazepam": _p("benzodiazepine", "CYP3A4", 0.98, 48, 0.1, 0.05, 0.05),
    "alprazolam": _p("benzodiazepine", "CYP3A4", 0.8, 11, 0.1, 0.05, 0.05),
    "lorazepam": _p("benzodiazepine", "none", 0.85, 14, 0.05, 0.05, 0.05),

    # Anticonvulsants
    "carbamazepine": _p("anticonvulsant", "CYP3A4", 0.76, 20, 0.3, 0.1, 0.1),
    "phenytoin": _p("anticonvulsant", "CYP2C9", 0.9, 22, 0.25, 0.1, 0.1),
    "valproate": _p("anticonvulsant", "CYP2C9", 0.9, 12, 0.35, 0.1, 0.05),
    "gabapentin": _p("anticonvulsant", "none", 0.03, 7, 0.05, 0.15, 0),

    # NSAIDs / GI
    "ibuprofen": _p("nsaid", "CYP2C9", 0.99, 2, 0.15, 0.35, 0),
    "naproxen": _p("nsaid", "CYP2C9", 0.99, 14, 0.15, 0.35, 0),
    "celecoxib": _p("nsaid", "CYP2C9", 0.97, 11, 0.15, 0.25, 0),
    "omeprazole": _p("ppi", "CYP2C19", 0.95, 1, 0.05, 0.1, 0.05),
    "pantoprazole": _p("ppi", "CYP2C19", 0.98, 1, 0.05, 0.1, 0.05),

    # Metabolic / endocrine
    "metformin": _p("metformin", "none", 0.01, 5, 0.05, 0.3, 0),
    "glipizide": _p("sulfonylurea", "CYP2C9", 0.99, 4, 0.1, 0.1, 0),
    "levothyroxine": _p("thyroid", "none", 0.99, 168, 0.05, 0.05, 0.1),
    "prednisone": _p("corticosteroid", "CYP3A4", 0.7, 3, 0.1, 0.1, 0.05),

    # Anti-infectives
    "ciprofloxacin": _p("fluoroquinolone", "CYP1A2", 0.3, 4, 0.15, 0.2, 0.25),
    "levofloxacin": _p("fluoroquinolone", "none", 0.3, 7, 0.1, 0.15, 0.3),
    "azithromycin": _p("macrolide", "CYP3A4", 0.5, 68, 0.15, 0.05, 0.3),
    "erythromycin": _p("macrolide", "CYP3A4", 0.8, 2, 0.2, 0.05, 0.35),
    "clarithromycin": _p("macrolide", "CYP3A4", 0.7, 4, 0.2, 0.1, 0.25),
    "amoxicillin": _p("penicillin", "none", 0.2, 1, 0.05, 0.05, 0),
    "fluconazole": _p("antifungal_azole", "CYP2C9", 0.12, 30, 0.25, 0.1, 0.2),
    "ketoconazole": _p("antifungal_azole", "CYP3A4", 0.99, 8, 0.4, 0.1, 0.2),

    # Other
    "cyclobenzaprine": _p("muscle_relaxant", "CYP1A2", 0.93, 18, 0.1, 0.05, 0.15),
    "diphenhydramine": _p("antihistamine", "CYP2D6", 0.98, 8, 0.05, 0.05, 0.1),
    "cetirizine": _p("antihistamine", "none", 0.93, 8, 0.05, 0.05, 0.05),
    "quetiapine": _p("antipsychotic", "CYP3A4", 0.83, 7, 0.15, 0.05, 0.2),
    "risperidone": _p("antipsychotic", "CYP2D6", 0.9, 20, 0.1, 0.05, 0.25),
    "cyclosporine": _p("immunosuppressant", "CYP3A4", 0.95, 19, 0.3, 0.5, 0.05),
    "tacrolimus": _p("immunosuppressant", "CYP3A4", 0.99, 12, 0.3, 0.45, 0.1),
}

DEFAULT_PROFILE = _p("unknown", "none", 0.5, 8, 0.1, 0.1, 0.1)

DRUG_CLASS_IDS = {
    "ace_inhibitor": 1, "arb": 2, "beta_blocker": 3, "calcium_channel_blocker": 4,
    "diuretic": 5, "anticoagulant": 6, "antiplatelet": 7, "statin": 8,
    "ssri": 9, "snri": 10, "tca": 11, "benzodiazepine": 12, "opioid": 13,
    "anticonvulsant": 14, "maoi": 15, "antipsychotic": 16,
    "fluoroquinolone": 17, "macrolide": 18, "penicillin": 19, "cephalosporin": 20,
    "antifungal_azole": 21, "metformin": 22, "sulfonylurea": 23, "insulin": 24,
    "thyroid": 25, "corticosteroid": 26, "ppi": 27, "h2_blocker": 28, "nsaid": 29,
    "immunosuppressant": 30, "antihistamine": 31, "muscle_relaxant": 32,
    "unknown": 0,
}

CYP_PATHWAY_IDS = {
    "CYP3A4": 1, "CYP2D6": 2, "CYP2C9": 3, "CYP2C19": 4, "CYP1A2": 5, "CYP2B6": 6,
    "none": 0,
}

SEVERITY_LABELS = ["none", "minor", "moderate", "major"]
SEVERITY_RANK = {label: i for i, label in enumerate(SEVERITY_LABELS)}

RULE_CONFIDENCE = 65.0
KNOWN_INTERACTION_CONFIDENCE = 95.0

_NON_LETTERS = re.compile(r"[^a-z]")


def lookup_profile(drug_name: str) -> DrugProfile:
    key = _NON_LETTERS.sub("", (drug_name or "").lower())
    return DRUG_PROFILES.get(key, DEFAULT_PROFILE)


def encode_drug_pair(drug1: str, drug2: str) -> np.ndarray:
    """
    14-element pair encoding:
    [class, cyp, protein binding, half-life, hepato, nephro, QT] for each drug
    """
    a, b = lookup_profile(drug1), lookup_profile(drug2)
    return np.array([
        DRUG_CLASS_IDS.get(a.drug_class, 0) / 32, DRUG_CLASS_IDS.get(b.drug_class, 0) / 32,
        CYP_PATHWAY_IDS.get(a.cyp_pathway, 0) / 6, CYP_PATHWAY_IDS.get(b.cyp_pathway, 0) / 6,
        a.protein_binding, b.protein_binding,
        min(a.half_life / 168, 1.0), min(b.half_life / 168, 1.0),
        a.hepatotoxicity, b.hepatotoxicity,
        a.nephrotoxicity, b.nephrotoxicity,
        a.qt_prolongation, b.qt_prolongation,
    ])


# ==================== Rule-Based Scoring ====================

def class_combination_score(class_a: str, class_b: str) -> int:
    classes = {class_a, class_b}
    score = 0
    if "maoi" in classes and classes & {"ssri", "snri", "opioid"}:
        score += 4
    if {"opioid", "benzodiazepine"} <= classes:
        score += 3
    if {"anticoagulant", "nsaid"} <= classes:
        score += 3
    if {"anticoagulant", "antiplatelet"} <= classes:
        score += 2
    return score


def interaction_score(a: DrugProfile, b: DrugProfile) -> int:
    score = 0
    if a.cyp_pathway != "none" and a.cyp_pathway == b.cyp_pathway:
        score += 2
    if a.protein_binding > 0.9 and b.protein_binding > 0.9:
        score += 1
    if a.hepatotoxicity + b.hepatotoxicity > 0.5:
        score += 1
    if a.nephrotoxicity + b.nephrotoxicity > 0.5:
        score += 1
    if a.qt_prolongation + b.qt_prolongation > 0.4:
        score += 2
    score += class_combination_score(a.drug_class, b.drug_class)
    return score


def score_to_severity(score: int) -> str:
    if score >= 5:
        return "major"
    if score >= 3:
        return "moderate"
    if score >= 1:
        return "minor"
    return "none"


# ==================== Predictor ====================

class DrugInteractionPredictor:
    """
    Pairwise interaction severity predictor.

    `knowledge_base` is optional; when present, documented interactions
    take precedence over predictions and are reported as known.
    """

    def __init__(self, knowledge_base=None):
        self.knowledge_base = knowledge_base
        self.coefficients: Optional[np.ndarray] = None

    def is_trained(self) -> bool:
        return self.coefficients is not None

    def build_training_set(self, knowledge_base) -> Tuple[np.ndarray, np.ndarray]:
        """
        Labelled pairs: every knowledge-base interaction (both orderings) at its
        recorded severity, plus profiled pairs with no documented interaction
        and a zero rule score as "none".
        """
        rows, labels = [], []
        for entry in knowledge_base.interactions:
            label = SEVERITY_RANK.get(entry.severity, 0)
            rows.append(encode_drug_pair(entry.drug1, entry.drug2))
            rows.append(encode_drug_pair(entry.drug2, entry.drug1))
            labels.extend([label, label])

        names = list(DRUG_PROFILES)
        for i, drug1 in enumerate(names):
            for drug2 in names[i + 1:]:
                if interaction_score(DRUG_PROFILES[drug1], DRUG_PROFILES[drug2]) > 0:
                    continue
                if knowledge_base.find_exact_interaction(drug1, drug2) is not None:
                    continue
                rows.append(encode_drug_pair(drug1, drug2))
                labels.append(0)

        return np.array(rows), np.array(labels, dtype=float)

    def train(self, knowledge_base=None) -> float:
        """Fit severity (0-3) by least squares; returns training accuracy"""
        knowledge_base = knowledge_base or self.knowledge_base
        if knowledge_base is None:
            raise ValueError("A knowledge base is required for training")

        features, labels = self.build_training_set(knowledge_base)
        if len(labels) < 2:
            raise ValueError("Not enough labelled pairs to train")

        design = np.hstack([features, np.ones((features.shape[0], 1))])
        coefficients, _, _, _ = np.linalg.lstsq(design, labels, rcond=None)
        self.coefficients = coefficients

        predicted = np.clip(np.rint(design @ coefficients), 0, 3)
        accuracy = float(np.mean(predicted == labels))
        logger.info(f"Interaction model trained on {len(labels)} pairs (accuracy={accuracy:.2%})")
        return accuracy

    def _lookup_known(self, drug1: str, drug2: str):
        if self.knowledge_base is None:
            return None
        try:
            return self.knowledge_base.check_drug_pair(drug1, drug2)
        except Exception as e:
            logger.warning(f"Knowledge base lookup failed for {drug1} + {drug2}: {e}")
            return None

    def predict_pair(self, drug1: str, drug2: str) -> InteractionPrediction:
        known = self._lookup_known(drug1, drug2)
        if known is not None:
            return InteractionPrediction(
                drug1=drug1,
                drug2=drug2,
                predicted_severity=known.severity,
                confidence=KNOWN_INTERACTION_CONFIDENCE,
                known_interaction=True,
            )

        profile1, profile2 = lookup_profile(drug1), lookup_profile(drug2)
        # Unprofiled drugs share one encoding; the fitted model cannot tell them apart
        if self.coefficients is None or DEFAULT_PROFILE in (profile1, profile2):
            severity = score_to_severity(interaction_score(profile1, profile2))
            return InteractionPrediction(drug1, drug2, severity, RULE_CONFIDENCE)

        features = encode_drug_pair(drug1, drug2)
        raw = float(np.dot(features, self.coefficients[:-1]) + self.coefficients[-1])
        rank = int(min(3, max(0, round(raw))))
        confidence = round(max(0.0, 1.0 - abs(raw - rank)) * 100, 1)
        return InteractionPrediction(drug1, drug2, SEVERITY_LABELS[rank], confidence)

    async def predict_multiple(self, drug_names: List[str]) -> List[InteractionPrediction]:
        """All pairwise predictions with a real interaction, most severe first"""
        names = [n for n in drug_names if n]
        results = []
        for i, drug1 in enumerate(names):
            for drug2 in names[i + 1:]:
                prediction = self.predict_pair(drug1, drug2)
                if prediction.predicted_severity != "none":
                    results.append(prediction)

        results.sort(key=lambda p: SEVERITY_RANK.get(p.predicted_severity, 0), reverse=True)
        return results


# Singleton instance
_predictor: Optional[DrugInteractionPredictor] = None

def get_interaction_predictor() -> DrugInteractionPredictor:
    global _predictor
    if _predictor is None:
        _predictor = DrugInteractionPredictor(knowledge_base=get_knowledge_base())
    return _predictor
