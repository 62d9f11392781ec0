"""
Clinical Risk Engine - Test Suite
Risk model training script
"""
import sys
import os
import json
import asyncio
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from src.core.models import PatientRecord
from src.ml.risk_model import RiskPredictionModel, FEATURE_NAMES
from scripts.train_risk_model import build_training_data, train_risk_model, main


def _record(age, score=None, **demographics):
    record = {"demographics": {"age": age, **demographics}}
    if score is not None:
        record["riskScore"] = score
    return record


LABELLED = [
    _record(30, 10, bmi=22),
    _record(50, 35, bmi=28),
    _record(70, 60, bmi=31),
    _record(85, 85, bmi=26),
]


class TestTrainingData:
    """Test label extraction"""

    def test_labelled_records(self):
        features, scores, skipped = build_training_data(LABELLED)
        assert features.shape == (4, len(FEATURE_NAMES))
        assert list(scores) == [10, 35, 60, 85]
        assert skipped == 0

    def test_unlabelled_records_skipped(self):
        records = LABELLED + [_record(40), {"riskScore": "high"}, "not a record"]
        features, scores, skipped = build_training_data(records)
        assert len(scores) == 4
        assert skipped == 3

    def test_labels_clamped(self):
        _, scores, _ = build_training_data([_record(40, 140), {"risk_score": -5}])
        assert list(scores) == [100, 0]


class TestTrainRiskModel:
    """Test fitting and persistence"""

    def test_trained_model_is_loadable(self, tmp_path):
        path = str(tmp_path / "models" / "risk_model.npy")
        rmse = train_risk_model(LABELLED, path)
        assert rmse >= 0
        assert os.path.exists(path)

        model = RiskPredictionModel(path)
        assert model.is_model_trained()
        prediction = asyncio.run(model.predict(PatientRecord(age=60)))
        assert 0 <= prediction.risk_score <= 100

    def test_too_few_labels(self, tmp_path):
        with pytest.raises(ValueError):
            train_risk_model([_record(40, 20), _record(50)], str(tmp_path / "m.npy"))

    def test_main(self, tmp_path, monkeypatch):
        input_path = tmp_path / "labelled.json"
        input_path.write_text(json.dumps({"patients": LABELLED}))
        output_path = tmp_path / "risk_model.npy"
        monkeypatch.setattr(sys, "argv", ["train_risk_model.py", str(input_path), "-o", str(output_path)])

        main()
        assert RiskPredictionModel(str(output_path)).is_model_trained()
