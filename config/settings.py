"""
Clinical Risk Engine - Configuration Settings
"""
import os
from pathlib import Path

# Base paths
BASE_DIR = Path(__file__).parent.parent
MODELS_DIR = BASE_DIR / "models"

# API Settings
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "8000"))
API_TITLE = "Clinical Risk Ensemble & Chief-Complaint Analysis Engine"
API_VERSION = "1.0.0"

# External risk model server (empty = in-process model)
RISK_MODEL_URL = os.getenv("RISK_MODEL_URL", "")
RISK_MODEL_TIMEOUT = float(os.getenv("RISK_MODEL_TIMEOUT", "10.0"))

# Ensemble sub-model weights (normalized at combination time)
NEURAL_WEIGHT_TRAINED = 0.30
NEURAL_WEIGHT_UNTRAINED = 0.15
INTERACTION_WEIGHT_TRAINED = 0.25
INTERACTION_WEIGHT_UNTRAINED = 0.15
INTERACTION_WEIGHT_SKIPPED = 0.05   # fewer than 2 medications
NLP_WEIGHT = 0.20
NLP_WEIGHT_NO_COMPLAINT = 0.05
HEURISTIC_WEIGHT = 0.25
HEURISTIC_CONFIDENCE = 80

# Risk level cut points (LOW below MEDIUM)
RISK_THRESHOLDS = {
    "MEDIUM": 60,
    "HIGH": 80,
    "CRITICAL": 90,
}

# NLP sub-model score by acuity tier
ACUITY_SCORES = {
    "emergent": 90,
    "urgent": 65,
    "semi-urgent": 40,
    "routine": 15,
}

# Interaction sub-model points per predicted interaction
INTERACTION_SEVERITY_POINTS = {
    "major": 25,
    "moderate": 12,
    "minor": 4,
}

# Cross-validation
KB_SWEEP_MIN_SIGNIFICANCE = 4    # clinical significance 1-5
GERIATRIC_AGE = 65

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Feature Flags
ENABLE_KB_SWEEP = True
ENABLE_REMOTE_RISK_MODEL = bool(RISK_MODEL_URL)
