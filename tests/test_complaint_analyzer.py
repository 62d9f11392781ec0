"""
Clinical Risk Engine - Test Suite
Chief complaint NLP: symptoms, negation, acuity, duration, differentials
"""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from src.core.models import Acuity, BodySystem, DurationClass, DurationInfo, SymptomEntity
from src.nlp.complaint_analyzer import (
    ChiefComplaintAnalyzer, ComplaintTextProcessor,
    analyze_chief_complaint, analyze_multiple_complaints,
    EMPTY_COMPLAINT_QUESTION, MAX_QUESTIONS, MAX_DIFFERENTIALS,
    SYSTEM_QUESTIONS,
)


class TestComplaintTextProcessor:
    """Test text normalization and modifiers"""

    def test_normalize_lowercases_and_strips_punctuation(self):
        """Punctuation other than ' / . - is removed, whitespace collapsed"""
        assert ComplaintTextProcessor.normalize("  Chest PAIN!!,   8/10  ") == "chest pain 8/10"

    def test_normalize_empty(self):
        assert ComplaintTextProcessor.normalize("") == ""

    def test_severity_modifier_sums_boosters_and_reducers(self):
        """Boosters and reducers combine across the whole text"""
        assert ComplaintTextProcessor.severity_modifier("severe crushing pain") == 6
        assert ComplaintTextProcessor.severity_modifier("mild intermittent ache") == -3
        assert ComplaintTextProcessor.severity_modifier("pain in my foot") == 0

    def test_negation_inside_window(self):
        """Cue immediately before the term negates it"""
        text = "no chest pain"
        assert ComplaintTextProcessor.is_negated(text, text.index("chest pain"))

    def test_negation_outside_window(self):
        """Cue further back than the window does not negate"""
        text = "no " + "a" * 50 + " chest pain"
        assert not ComplaintTextProcessor.is_negated(text, text.index("chest pain"))

    def test_duration_hours(self):
        """Hours convert to a fraction of a day"""
        duration = ComplaintTextProcessor.extract_duration("pain for 2 hours")
        assert duration is not None
        assert duration.estimated_days < 1
        assert duration.classification == DurationClass.ACUTE

    def test_duration_weeks_subacute(self):
        duration = ComplaintTextProcessor.extract_duration("cough for 3 weeks")
        assert duration.estimated_days == 21
        assert duration.classification == DurationClass.SUBACUTE

    def test_duration_vague_chronic(self):
        """Vague long-standing phrasing maps to a year"""
        duration = ComplaintTextProcessor.extract_duration("back pain for years")
        assert duration.estimated_days == 365
        assert duration.classification == DurationClass.CHRONIC

    def test_duration_absent(self):
        assert ComplaintTextProcessor.extract_duration("headache") is None


class TestChiefComplaintAnalyzer:
    """Test structured complaint analysis"""

    @pytest.fixture
    def analyzer(self):
        return ChiefComplaintAnalyzer()

    def test_acute_coronary_presentation(self, analyzer):
        """Crushing chest pain with dyspnea is emergent with ACS on top"""
        result = analyzer.analyze(
            "Patient has severe crushing chest pain radiating to left arm "
            "with shortness of breath and nausea for 2 hours"
        )
        assert result.acuity == Acuity.EMERGENT
        assert "chest pain" in result.red_flags
        assert "shortness of breath" in result.red_flags
        assert BodySystem.CARDIOVASCULAR in result.body_systems
        assert result.differentials[0].condition == "Acute Coronary Syndrome (ACS)"
        assert result.differentials[0].probability == pytest.approx(0.54)
        assert "nausea" in result.differentials[0].related_symptoms

    def test_negated_red_flag(self, analyzer):
        """Negated chest pain is recorded but never raises acuity"""
        result = analyzer.analyze("no chest pain, mild intermittent headache for 2 days")

        chest = [s for s in result.symptoms if s.term == "chest pain"]
        assert len(chest) == 1
        assert chest[0].is_negated
        assert not chest[0].is_red_flag
        assert result.red_flags == []
        assert result.acuity.rank <= Acuity.SEMI_URGENT.rank
        assert result.duration.estimated_days == 2

    def test_symptom_beyond_negation_window(self, analyzer):
        """A symptom more than 40 characters after the cue stays positive"""
        result = analyzer.analyze(
            "No chest pain. Patient describes waking overnight with a throbbing headache"
        )

        negated = {s.term for s in result.symptoms if s.is_negated}
        positive = {s.term for s in result.symptoms if not s.is_negated}
        assert negated == {"chest pain"}
        assert positive == {"headache"}
        assert result.red_flags == []
        assert result.acuity == Acuity.ROUTINE
        assert result.body_systems == [BodySystem.NEUROLOGICAL]
        assert result.differentials[0].condition == "Migraine"

    def test_empty_complaint(self, analyzer):
        """Blank input yields the single clarifying question"""
        result = analyzer.analyze("   ")
        assert result.confidence == 0
        assert result.symptoms == []
        assert result.suggested_questions == [EMPTY_COMPLAINT_QUESTION]

    def test_non_string_complaint(self, analyzer):
        result = analyzer.analyze(None)
        assert result.original_text == ""
        assert result.suggested_questions == [EMPTY_COMPLAINT_QUESTION]

    def test_unrecognized_text_defaults_to_general(self, analyzer):
        """No lexicon hit: general system and general questions"""
        result = analyzer.analyze("something feels off")
        assert result.symptoms == []
        assert result.body_systems == [BodySystem.GENERAL]
        assert result.acuity == Acuity.ROUTINE
        assert result.suggested_questions == SYSTEM_QUESTIONS[BodySystem.GENERAL]
        assert result.confidence == 30

    def test_severity_is_clamped(self, analyzer):
        """Stacked boosters and reducers stay within 0-10"""
        high = analyzer.analyze("excruciating worst 10/10 chest pain")
        assert all(0 <= s.severity <= 10 for s in high.symptoms)
        assert max(s.severity for s in high.symptoms) == 10

        low = analyzer.analyze("mild slight itching")
        itching = [s for s in low.symptoms if s.term == "itching"]
        assert itching[0].severity == 0

    def test_recent_onset_escalates_acuity(self, analyzer):
        """Onset within the last day moves acuity up one tier"""
        result = analyzer.analyze("mild cough started this morning")
        assert result.duration.estimated_days < 1
        assert result.acuity == Acuity.SEMI_URGENT

    def test_question_cap(self, analyzer):
        """Many body systems still produce at most five unique questions"""
        result = analyzer.analyze("cough, headache, abdominal pain, back pain, rash and fever")
        assert len(result.body_systems) >= 5
        assert len(result.suggested_questions) == MAX_QUESTIONS
        assert len(set(result.suggested_questions)) == len(result.suggested_questions)

    def test_differentials_capped_and_sorted(self, analyzer):
        result = analyzer.analyze(
            "chest pain, shortness of breath, cough, fever, headache, nausea, "
            "abdominal pain, fatigue, wheezing, dizziness"
        )
        probabilities = [d.probability for d in result.differentials]
        assert len(result.differentials) <= MAX_DIFFERENTIALS
        assert probabilities == sorted(probabilities, reverse=True)
        assert all(p <= 0.95 for p in probabilities)

    def test_one_symptom_per_lexicon_entry(self, analyzer):
        """Synonyms from the same entry are not double counted"""
        result = analyzer.analyze("chest pain and chest tightness")
        cardio = [s for s in result.symptoms if s.icd10 == "I20-I25"]
        assert len(cardio) == 1

    def test_confidence_bounds(self, analyzer):
        result = analyzer.analyze(
            "severe headache, nausea, vomiting, blurred vision and dizziness for 3 days"
        )
        assert 0 <= result.confidence <= 95
        assert result.duration.estimated_days == 3


class TestModuleFunctions:
    """Test module-level entry points"""

    def test_analyze_chief_complaint(self):
        result = analyze_chief_complaint("sudden severe headache")
        assert result.acuity == Acuity.EMERGENT
        assert "sudden severe headache" in result.red_flags

    def test_analyze_multiple_complaints(self):
        """Separate fragments are merged before analysis"""
        result = analyze_multiple_complaints(["chest pain", "", "shortness of breath"])
        assert result.normalized_text == "chest pain. shortness of breath"
        assert len(result.red_flags) == 2
        assert result.acuity == Acuity.EMERGENT

    def test_analyze_multiple_empty(self):
        result = analyze_multiple_complaints([])
        assert result.suggested_questions == [EMPTY_COMPLAINT_QUESTION]


class TestAcuityMonotonicity:
    """Raising severity, red-flag count or onset recency never lowers acuity"""

    SEVERITIES = range(0, 11)
    RED_FLAG_COUNTS = range(0, 4)
    # Least to most recent onset
    ONSETS = [
        None,
        DurationInfo("3 weeks", 21.0, DurationClass.SUBACUTE),
        DurationInfo("2 days", 2.0, DurationClass.ACUTE),
        DurationInfo("this morning", 0.5, DurationClass.ACUTE),
    ]

    @staticmethod
    def _rank(severity, red_flag_count, onset):
        symptoms = [SymptomEntity("symptom", BodySystem.GENERAL, severity, False, False)]
        red_flags = [f"flag{i}" for i in range(red_flag_count)]
        return ChiefComplaintAnalyzer._determine_acuity(symptoms, red_flags, onset).rank

    def test_severity(self):
        for red_flag_count in self.RED_FLAG_COUNTS:
            for onset in self.ONSETS:
                ranks = [self._rank(s, red_flag_count, onset) for s in self.SEVERITIES]
                assert ranks == sorted(ranks)

    def test_red_flag_count(self):
        for severity in self.SEVERITIES:
            for onset in self.ONSETS:
                ranks = [self._rank(severity, n, onset) for n in self.RED_FLAG_COUNTS]
                assert ranks == sorted(ranks)

    def test_onset_recency(self):
        for severity in self.SEVERITIES:
            for red_flag_count in self.RED_FLAG_COUNTS:
                ranks = [self._rank(severity, red_flag_count, onset) for onset in self.ONSETS]
                assert ranks == sorted(ranks)

    def test_negated_symptoms_ignored(self):
        """A negated high-severity symptom does not count toward max severity"""
        symptoms = [SymptomEntity("chest pain", BodySystem.CARDIOVASCULAR, 10, True, False)]
        assert ChiefComplaintAnalyzer._determine_acuity(symptoms, [], None) == Acuity.ROUTINE
