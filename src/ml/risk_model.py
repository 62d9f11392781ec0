"""
Clinical Risk Engine - Patient Risk Prediction Model
Patient-level risk score from demographics, vitals, medication burden and lifestyle

Two interchangeable implementations share one contract
(`predict(patient)` async, `is_model_trained()`):
- RiskPredictionModel: in-process linear model over 11 normalized features,
  with a weighted rule-based score until it has been fitted
- RemoteRiskModel: same contract served by an external model server over HTTP
"""
import os
import logging
from typing import List, Dict, Optional, Any
from dataclasses import dataclass

import numpy as np
import httpx

from config import settings
from src.core.models import PatientRecord, RiskLevel, to_jsonable

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


# ==================== Feature Extraction ====================

# (min, max) used to scale each raw feature into [0, 1]
NORMALIZATION_PARAMS = {
    "age": (0, 120),
    "bmi": (10, 50),
    "systolic": (70, 220),
    "diastolic": (40, 140),
    "heart_rate": (30, 200),
    "conditions": (0, 20),
    "allergies": (0, 15),
    "medications": (0, 30),
    "smoking": (0, 100),
    "alcohol": (0, 100),
    "inactivity": (0, 100),
}

FEATURE_NAMES = list(NORMALIZATION_PARAMS.keys())

EXERCISE_SCORES = {
    "active": 90,
    "moderate": 70,
    "sedentary": 20,
}
DEFAULT_EXERCISE_SCORE = 50  # light or unknown


def _normalize(value: float, lo: float, hi: float) -> float:
    return float(min(1.0, max(0.0, (value - lo) / (hi - lo))))


def _smoking_score(patient: PatientRecord) -> float:
    pack_years = patient.pack_years or 10
    if patient.smoking_status == "current":
        return min(100, 50 + pack_years)
    if patient.smoking_status == "former":
        return min(50, pack_years * 0.5)
    return 0


def _alcohol_score(patient: PatientRecord) -> float:
    drinks = patient.drinks_per_week or 0
    if patient.alcohol_use == "heavy":
        return min(100, 60 + drinks)
    if patient.alcohol_use == "moderate":
        return min(60, 20 + drinks)
    if patient.alcohol_use == "occasional":
        return min(30, drinks * 2)
    return 0


def extract_features(patient: PatientRecord) -> np.ndarray:
    """
    Normalized feature vector, one value in [0, 1] per FEATURE_NAMES entry.

    Missing vitals fall back to population-typical values.
    """
    raw = {
        "age": patient.age or 50,
        "bmi": patient.bmi or 25,
        "systolic": patient.systolic or 120,
        "diastolic": patient.diastolic or 80,
        "heart_rate": patient.heart_rate or 72,
        "conditions": len(patient.conditions),
        "allergies": len(patient.allergies),
        "medications": len(patient.medications),
        "smoking": _smoking_score(patient),
        "alcohol": _alcohol_score(patient),
        "inactivity": 100 - EXERCISE_SCORES.get(patient.exercise_level, DEFAULT_EXERCISE_SCORE),
    }
    return np.array([
        _normalize(raw[name], *NORMALIZATION_PARAMS[name]) for name in FEATURE_NAMES
    ])


def classify_risk(score: float) -> RiskLevel:
    if score >= settings.RISK_THRESHOLDS["CRITICAL"]:
        return RiskLevel.CRITICAL
    if score >= settings.RISK_THRESHOLDS["HIGH"]:
        return RiskLevel.HIGH
    if score >= settings.RISK_THRESHOLDS["MEDIUM"]:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


# ==================== Local Model ====================

@dataclass
class RiskPrediction:
    risk_score: int      # 0-100
    confidence: float    # 0-100
    risk_level: RiskLevel


# Rule-based weights per feature, same order as FEATURE_NAMES
RULE_WEIGHTS = np.array([0.15, 0.08, 0.12, 0.08, 0.05, 0.15, 0.08, 0.12, 0.07, 0.05, 0.05])
RULE_CONFIDENCE = 75.0

# Confidence of a fitted prediction grows with distance from the nearest cut point
CONFIDENCE_CUT_POINTS = [30] + sorted(settings.RISK_THRESHOLDS.values())
MAX_TRAINED_CONFIDENCE = 98.0


class RiskPredictionModel:
    """
    Linear risk model fitted by least squares.

    Until `train` (or a saved coefficient file) provides weights, predictions
    come from the rule-based score.
    """

    def __init__(self, model_path: Optional[str] = None):
        self.model_loaded = False
        self.coefficients: Optional[np.ndarray] = None

        if model_path and os.path.exists(model_path):
            self._load_model(model_path)

    def _load_model(self, model_path: str):
        """Load fitted coefficients saved with `save`"""
        try:
            coefficients = np.load(model_path)
            if coefficients.shape != (len(FEATURE_NAMES) + 1,):
                raise ValueError(f"unexpected coefficient shape {coefficients.shape}")
            self.coefficients = coefficients
            self.model_loaded = True
            logger.info(f"Loaded risk model from {model_path}")
        except Exception as e:
            logger.error(f"Failed to load risk model: {e}")

    def save(self, model_path: str):
        if self.coefficients is None:
            raise ValueError("Model is not trained")
        np.save(model_path, self.coefficients)

    def is_model_trained(self) -> bool:
        return self.coefficients is not None

    def train(self, features: np.ndarray, scores: np.ndarray) -> float:
        """
        Fit the model on (n, 11) feature rows and 0-100 risk scores.

        Returns the root-mean-square error of the fit, in score points.
        """
        features = np.asarray(features, dtype=float)
        scores = np.asarray(scores, dtype=float)
        if features.ndim != 2 or features.shape[1] != len(FEATURE_NAMES):
            raise ValueError(f"features must have shape (n, {len(FEATURE_NAMES)})")
        if features.shape[0] != scores.shape[0] or features.shape[0] < 2:
            raise ValueError("need at least two labelled samples")

        design = np.hstack([features, np.ones((features.shape[0], 1))])
        coefficients, _, _, _ = np.linalg.lstsq(design, scores / 100.0, rcond=None)
        self.coefficients = coefficients

        rmse = float(np.sqrt(np.mean((design @ coefficients * 100.0 - scores) ** 2)))
        logger.info(f"Risk model trained on {features.shape[0]} samples (rmse={rmse:.2f})")
        return rmse

    def predict_score(self, patient: PatientRecord) -> RiskPrediction:
        features = extract_features(patient)
        if self.coefficients is None:
            return self._rule_based_prediction(patient, features)

        raw = float(np.dot(features, self.coefficients[:-1]) + self.coefficients[-1]) * 100
        score = int(max(0, min(100, round(raw))))
        distance = min(abs(score - cut) for cut in CONFIDENCE_CUT_POINTS)
        confidence = min(MAX_TRAINED_CONFIDENCE, 75 + distance / 100 * 23)

        return RiskPrediction(
            risk_score=score,
            confidence=round(confidence, 1),
            risk_level=classify_risk(score),
        )

    async def predict(self, patient: PatientRecord) -> RiskPrediction:
        return self.predict_score(patient)

    def _rule_based_prediction(self, patient: PatientRecord, features: np.ndarray) -> RiskPrediction:
        score = float(np.dot(features, RULE_WEIGHTS)) * 100

        age = patient.age or 0
        if age > 65:
            score += 10
        if age > 75:
            score += 15

        num_meds = len(patient.medications)
        if num_meds >= 5:
            score += 10
        if num_meds >= 10:
            score += 15

        score = int(max(0, min(100, round(score))))
        return RiskPrediction(
            risk_score=score,
            confidence=RULE_CONFIDENCE,
            risk_level=classify_risk(score),
        )


# ==================== Remote Model ====================

class RemoteRiskModel:
    """
    Risk model served by an external prediction server.

    POST {base_url}/predict with the patient record, expecting
    {"risk_score", "confidence"[, "trained"]}; GET {base_url}/status for
    the trained flag. Errors propagate so the caller can fall back.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = settings.RISK_MODEL_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.trained = False
        self.http_client = httpx.AsyncClient(timeout=timeout, transport=transport)
        logger.info(f"Remote risk model configured at {self.base_url}")

    def is_model_trained(self) -> bool:
        return self.trained

    async def refresh_status(self) -> bool:
        """Update the trained flag from the server; False when unreachable"""
        try:
            resp = await self.http_client.get(f"{self.base_url}/status")
            if resp.status_code == 200:
                self.trained = bool(resp.json().get("trained", False))
                return self.trained
            logger.warning(f"Risk model status returned {resp.status_code}")
        except Exception as e:
            logger.error(f"Failed to fetch risk model status: {e}")
        self.trained = False
        return False

    async def predict(self, patient: PatientRecord) -> RiskPrediction:
        resp = await self.http_client.post(
            f"{self.base_url}/predict",
            json=to_jsonable(patient),
        )
        resp.raise_for_status()
        data: Dict[str, Any] = resp.json()

        score = data.get("risk_score", data.get("riskScore"))
        if score is None:
            raise ValueError("risk model response missing risk_score")
        score = int(max(0, min(100, round(float(score)))))
        confidence = float(max(0, min(100, float(data.get("confidence", RULE_CONFIDENCE)))))
        if "trained" in data:
            self.trained = bool(data["trained"])

        return RiskPrediction(
            risk_score=score,
            confidence=confidence,
            risk_level=classify_risk(score),
        )

    async def close(self):
        await self.http_client.aclose()


def training_matrix(patients: List[PatientRecord]) -> np.ndarray:
    """Stack feature vectors for a batch of patients"""
    if not patients:
        return np.empty((0, len(FEATURE_NAMES)))
    return np.vstack([extract_features(p) for p in patients])


# Singleton instance
_risk_model = None

def get_risk_model():
    global _risk_model
    if _risk_model is None:
        if settings.ENABLE_REMOTE_RISK_MODEL and settings.RISK_MODEL_URL:
            _risk_model = RemoteRiskModel(settings.RISK_MODEL_URL)
        else:
            _risk_model = RiskPredictionModel(str(settings.MODELS_DIR / "risk_model.npy"))
    return _risk_model
