"""
Clinical Risk Engine - Test Suite
Batch scoring script
"""
import sys
import os
import json
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
import pandas as pd

from scripts.score_patients import (
    score_patients, summarize, load_patient_records, SAMPLE_PATIENTS, SUMMARY_COLUMNS,
)


class TestBatchScoring:
    """Test the batch scorer"""

    def test_sample_patients(self):
        df = score_patients(SAMPLE_PATIENTS)
        assert list(df.columns) == SUMMARY_COLUMNS
        assert list(df["patient_id"]) == ["sample-001", "sample-002", "sample-003"]
        assert df["overall_score"].between(0, 100).all()

        by_id = df.set_index("patient_id")
        assert by_id.loc["sample-001", "risk_level"] == "LOW"
        assert by_id.loc["sample-003", "acuity"] == "emergent"
        assert by_id.loc["sample-003", "critical_flags"] > 0

    def test_anonymous_rows_get_index_ids(self):
        df = score_patients([{"demographics": {"age": 40}}])
        assert df.loc[0, "patient_id"] == "row-0"

    def test_summarize(self):
        df = pd.DataFrame([
            {"overall_score": 20, "risk_level": "LOW", "critical_flags": 0},
            {"overall_score": 85, "risk_level": "HIGH", "critical_flags": 2},
        ])
        summary = summarize(df)
        assert summary["patients"] == 2
        assert summary["mean_score"] == 52.5
        assert summary["max_score"] == 85
        assert summary["risk_levels"] == {"LOW": 1, "HIGH": 1}
        assert summary["with_critical_flags"] == 1

    def test_summarize_empty(self):
        assert summarize(pd.DataFrame(columns=SUMMARY_COLUMNS)) == {"patients": 0}

    def test_load_patient_records(self, tmp_path):
        wrapped = tmp_path / "wrapped.json"
        wrapped.write_text(json.dumps({"patients": SAMPLE_PATIENTS[:1]}))
        assert load_patient_records(str(wrapped)) == SAMPLE_PATIENTS[:1]

        bad = tmp_path / "bad.json"
        bad.write_text(json.dumps("not a list"))
        with pytest.raises(ValueError):
            load_patient_records(str(bad))
