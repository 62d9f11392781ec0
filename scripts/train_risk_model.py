#!/usr/bin/env python3
"""
Clinical Risk Engine
Risk Model Trainer - Fit the in-process patient risk model on labelled records

Each record is the usual patient JSON plus a "riskScore" (0-100) label.
The fitted coefficients are written where the API loads them at startup.

Usage:
    python train_risk_model.py labelled_patients.json [--output models/risk_model.npy]
"""
import sys
import os
import logging
import argparse
from pathlib import Path
from typing import List, Dict, Any, Tuple

import numpy as np

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config import settings
from src.core.models import PatientRecord
from src.ml.risk_model import RiskPredictionModel, training_matrix
from scripts.score_patients import load_patient_records

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

DEFAULT_MODEL_PATH = settings.MODELS_DIR / "risk_model.npy"
LABEL_KEYS = ("riskScore", "risk_score")


def _label(record: Dict[str, Any]):
    for key in LABEL_KEYS:
        value = record.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(max(0, min(100, value)))
    return None


def build_training_data(records: List[Dict[str, Any]]) -> Tuple[np.ndarray, np.ndarray, int]:
    """Feature matrix, score vector and the number of records skipped for lack of a label"""
    patients, scores = [], []
    skipped = 0
    for record in records:
        score = _label(record) if isinstance(record, dict) else None
        if score is None:
            skipped += 1
            continue
        patients.append(PatientRecord.from_dict(record))
        scores.append(score)

    if skipped:
        logger.warning(f"Skipped {skipped} records without a numeric risk score")
    return training_matrix(patients), np.array(scores, dtype=float), skipped


def train_risk_model(records: List[Dict[str, Any]], output_path: str) -> float:
    """Fit, save and return the training RMSE in score points"""
    features, scores, _ = build_training_data(records)

    model = RiskPredictionModel()
    rmse = model.train(features, scores)

    os.makedirs(os.path.dirname(os.path.abspath(output_path)), exist_ok=True)
    model.save(output_path)
    logger.info(f"Saved risk model coefficients to: {output_path}")
    return rmse


def main():
    parser = argparse.ArgumentParser(
        description="Train the patient risk model from labelled patient records"
    )
    parser.add_argument(
        "input",
        help="Path to patient JSON where every record carries a riskScore label"
    )
    parser.add_argument(
        "--output", "-o",
        default=str(DEFAULT_MODEL_PATH),
        help="Output path for the coefficient file"
    )

    args = parser.parse_args()

    records = load_patient_records(args.input)
    logger.info(f"Loaded {len(records)} patient records from {args.input}")

    rmse = train_risk_model(records, args.output)
    logger.info(f"Training RMSE: {rmse:.2f} score points")


if __name__ == "__main__":
    main()
