#!/usr/bin/env python3
"""
Clinical Risk Engine
Batch Scorer - Ensemble risk assessment for a file of patient records

Usage:
    python score_patients.py patients.json [--output risk_summary.csv]
    python score_patients.py sample
"""
import sys
import json
import asyncio
import logging
import argparse
from pathlib import Path
from typing import List, Dict, Any

import pandas as pd

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.core.models import PatientRecord
from src.ml.ensemble_risk import compute_ensemble_risk

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

SUMMARY_COLUMNS = [
    "patient_id", "overall_score", "risk_level", "ensemble_confidence",
    "ci_low", "ci_high", "critical_flags", "warning_flags", "acuity",
    "predicted_interactions",
]


SAMPLE_PATIENTS = [
    {
        "patientId": "sample-001",
        "demographics": {"age": 34, "bmi": 23, "bloodPressure": {"systolic": 118, "diastolic": 76}, "heartRate": 70},
        "medicalHistory": {"conditions": [], "allergies": []},
        "currentMedications": {"medications": []},
        "lifestyleFactors": {"smokingStatus": "never", "alcoholUse": "none", "exerciseLevel": "active"},
    },
    {
        "patientId": "sample-002",
        "demographics": {"age": 72, "bmi": 31, "bloodPressure": {"systolic": 150, "diastolic": 92}, "heartRate": 88},
        "medicalHistory": {
            "conditions": [{"condition": "hypertension"}, {"condition": "type 2 diabetes"}, {"condition": "atrial fibrillation"}],
            "allergies": [{"allergen": "penicillin"}],
        },
        "currentMedications": {"medications": [
            {"drugName": "Coumadin", "genericName": "warfarin"},
            {"drugName": "Aspirin", "genericName": "aspirin"},
            {"drugName": "Glucophage", "genericName": "metformin"},
        ]},
        "lifestyleFactors": {
            "smokingStatus": "former", "alcoholUse": "occasional", "exerciseLevel": "sedentary",
            "chiefComplaint": "dizziness and fatigue for a few days",
        },
    },
    {
        "patientId": "sample-003",
        "demographics": {"age": 58, "bmi": 29, "bloodPressure": {"systolic": 165, "diastolic": 100}, "heartRate": 104},
        "medicalHistory": {"conditions": [{"condition": "hyperlipidemia"}], "allergies": []},
        "currentMedications": {"medications": [{"drugName": "Lipitor", "genericName": "atorvastatin"}]},
        "lifestyleFactors": {
            "smokingStatus": "current", "packYears": 30, "alcoholUse": "moderate", "exerciseLevel": "light",
            "chiefComplaint": "severe crushing chest pain radiating to the arm, started 20 minutes ago",
        },
    },
]


def load_patient_records(input_path: str) -> List[Dict[str, Any]]:
    """Patient JSON list, or an object holding it under "patients" """
    with open(input_path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("patients", [])
    if not isinstance(data, list):
        raise ValueError(f"{input_path} does not contain a list of patient records")
    return data


async def _score_all(records: List[Dict[str, Any]], risk_model=None, interaction_model=None):
    patients = [PatientRecord.from_dict(r) for r in records]
    return await asyncio.gather(*[
        compute_ensemble_risk(p, risk_model=risk_model, interaction_model=interaction_model)
        for p in patients
    ]), patients


def score_patients(
    records: List[Dict[str, Any]],
    risk_model=None,
    interaction_model=None,
) -> pd.DataFrame:
    """Run the ensemble on every record; one summary row per patient"""
    results, patients = asyncio.run(_score_all(records, risk_model, interaction_model))

    rows = []
    for index, (patient, result) in enumerate(zip(patients, results)):
        counts = result.flag_count
        rows.append({
            "patient_id": patient.patient_id or f"row-{index}",
            "overall_score": result.overall_score,
            "risk_level": result.risk_level.value,
            "ensemble_confidence": result.ensemble_confidence,
            "ci_low": result.confidence_interval[0],
            "ci_high": result.confidence_interval[1],
            "critical_flags": counts["critical"],
            "warning_flags": counts["warning"],
            "acuity": result.complaint_analysis.acuity.value if result.complaint_analysis else "",
            "predicted_interactions": len(result.predicted_interactions),
        })

    return pd.DataFrame(rows, columns=SUMMARY_COLUMNS)


def summarize(df: pd.DataFrame) -> Dict[str, Any]:
    if df.empty:
        return {"patients": 0}
    return {
        "patients": int(len(df)),
        "mean_score": round(float(df["overall_score"].mean()), 1),
        "max_score": int(df["overall_score"].max()),
        "risk_levels": {k: int(v) for k, v in df["risk_level"].value_counts().items()},
        "with_critical_flags": int((df["critical_flags"] > 0).sum()),
    }


def main():
    parser = argparse.ArgumentParser(
        description="Ensemble risk scoring for a batch of patient records"
    )
    parser.add_argument(
        "input",
        nargs="?",
        help="Path to patient JSON (or 'sample' to score built-in sample patients)"
    )
    parser.add_argument(
        "--output", "-o",
        default="risk_summary.csv",
        help="Output path for the CSV summary"
    )

    args = parser.parse_args()

    if args.input == "sample" or args.input is None:
        logger.info("Scoring built-in sample patients...")
        records = SAMPLE_PATIENTS
    else:
        records = load_patient_records(args.input)
        logger.info(f"Loaded {len(records)} patient records from {args.input}")

    df = score_patients(records)
    df.to_csv(args.output, index=False)
    logger.info(f"Wrote risk summary to: {args.output}")

    logger.info("Batch Statistics:")
    for key, value in summarize(df).items():
        logger.info(f"  {key}: {value}")


if __name__ == "__main__":
    main()
