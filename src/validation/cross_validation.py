"""
Clinical Risk Engine - Treatment Plan Cross-Validation
Audits an externally generated treatment plan against the medical knowledge base

Checks, in order:
1. Documented drug-drug interactions the plan did not list
2. Contraindications for the patient's conditions the plan did not list
3. Proposed dose above the guideline maximum, missing geriatric adjustment
4. Direct allergy conflicts and allergy cross-reactivity
5. Knowledge-base-wide sweep for high-significance interactions and
   contraindications not already reported

A plan is valid only when no critical issue is found.
"""
import re
import logging
from typing import List, Optional, Any, Callable

from config import settings
from src.core.models import (
    TreatmentPlan, PatientRecord, ValidationIssue, ValidationReport,
    IssueType, IssueSeverity, Recommendation,
)
from src.core.knowledge_base import (
    KnowledgeBase, InteractionEntry, ContraindicationEntry, get_knowledge_base,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


# Knowledge-base interaction severity -> issue severity
INTERACTION_ISSUE_SEVERITY = {
    "major": IssueSeverity.CRITICAL,
    "moderate": IssueSeverity.HIGH,
    "minor": IssueSeverity.LOW,
}

DOSE_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*(mg|mcg|µg|g)\b", re.I)
UNIT_TO_MG = {"mg": 1.0, "mcg": 0.001, "µg": 0.001, "g": 1000.0}

AGE_MENTION = re.compile(r"\b(age|aged|elderly|geriatric)\b", re.I)


def parse_dosage_mg(text: str) -> Optional[float]:
    """
    First mass value in a dosage string, in milligrams.

    "500mg twice daily" -> 500.0, "300mcg/day" -> 0.3, "1 g" -> 1000.0.
    Returns None when no value with a mass unit is present.
    """
    if not text:
        return None
    match = DOSE_PATTERN.search(text)
    if not match:
        return None
    return float(match.group(1)) * UNIT_TO_MG[match.group(2).lower()]


def interaction_issue_severity(entry: InteractionEntry) -> IssueSeverity:
    return INTERACTION_ISSUE_SEVERITY.get(entry.severity.lower(), IssueSeverity.HIGH)


def contraindication_issue_severity(entry: ContraindicationEntry) -> IssueSeverity:
    if entry.severity == "critical" or entry.type == "absolute":
        return IssueSeverity.CRITICAL
    return IssueSeverity.HIGH


def _overlaps(a: str, b: str) -> bool:
    return bool(a) and bool(b) and (a in b or b in a)


def _fmt_dose(value: float) -> str:
    return f"{value:g}"


class CrossValidationEngine:
    """
    Treatment plan auditor.

    Knowledge-base lookups that raise are logged and treated as "no match"
    so one failing rule never aborts the whole validation.
    """

    def __init__(self, knowledge_base: Optional[KnowledgeBase] = None):
        self.knowledge_base = knowledge_base if knowledge_base is not None else get_knowledge_base()

    def _lookup(self, description: str, fn: Callable, *args, default=None):
        try:
            return fn(*args)
        except Exception as e:
            logger.warning(f"Knowledge base lookup failed ({description}): {e}")
            return default

    # ==================== Plan inputs ====================

    @staticmethod
    def gather_unique_drugs(plan: TreatmentPlan, patient: PatientRecord) -> List[str]:
        names = [plan.primary.medication, plan.primary.generic_name]
        for alt in plan.alternatives:
            names.extend([alt.medication, alt.generic_name])
        for med in patient.medications:
            names.extend([med.drug_name, med.generic_name])

        unique: List[str] = []
        for name in names:
            name = (name or "").lower().strip()
            if name and name not in unique:
                unique.append(name)
        return unique

    # ==================== Checks ====================

    def check_missed_interactions(self, drugs: List[str], plan: TreatmentPlan) -> List[ValidationIssue]:
        issues = []
        listed = {
            frozenset((i.drug1.lower().strip(), i.drug2.lower().strip()))
            for i in plan.drug_interactions
        }
        for i, drug1 in enumerate(drugs):
            for drug2 in drugs[i + 1:]:
                entry = self._lookup(
                    f"interaction {drug1} + {drug2}",
                    self.knowledge_base.find_exact_interaction, drug1, drug2,
                )
                if entry is None or frozenset((drug1, drug2)) in listed:
                    continue
                issues.append(ValidationIssue(
                    type=IssueType.MISSED_INTERACTION,
                    severity=interaction_issue_severity(entry),
                    description=f"Plan missed interaction: {entry.drug1} + {entry.drug2} - {entry.effect}",
                    fact_store_entry=entry.to_dict(),
                ))
        return issues

    def check_missed_contraindications(
        self, conditions: List[str], primary_drug: str, plan: TreatmentPlan
    ) -> List[ValidationIssue]:
        issues = []
        if not primary_drug:
            return issues

        for condition in conditions:
            rules = self._lookup(
                f"contraindications for {condition}",
                self.knowledge_base.find_contraindications, condition, default=[],
            )
            rule = next(
                (c for c in rules
                 if condition in c.condition.lower() and _overlaps(c.drug.lower(), primary_drug)),
                None,
            )
            if rule is None:
                continue

            covered = any(
                condition in c.condition.lower() and rule.drug.lower() in c.drug.lower()
                for c in plan.contraindications
            )
            if covered:
                continue

            issues.append(ValidationIssue(
                type=IssueType.MISSED_CONTRAINDICATION,
                severity=IssueSeverity.CRITICAL if rule.type == "absolute" else IssueSeverity.HIGH,
                description=f"Plan missed contraindication: {rule.drug} in {rule.condition} - {rule.reason}",
                fact_store_entry=rule.to_dict(),
            ))
        return issues

    def validate_dosage(
        self, primary_drug: str, plan: TreatmentPlan, patient: PatientRecord
    ) -> List[ValidationIssue]:
        issues = []
        if not primary_drug:
            return issues

        guideline = self._lookup(
            f"dosage guideline for {primary_drug}",
            self.knowledge_base.find_dosage_guideline, primary_drug, True,
        )
        if guideline is None:
            return issues

        proposed = parse_dosage_mg(plan.primary.dosage)
        maximum = parse_dosage_mg(guideline.max_dose)
        if proposed and maximum and proposed > maximum:
            issues.append(ValidationIssue(
                type=IssueType.DOSAGE_EXCEEDS_MAX,
                severity=IssueSeverity.CRITICAL,
                description=(
                    f"Proposed dose {_fmt_dose(proposed)}mg exceeds max "
                    f"{_fmt_dose(maximum)}mg for {guideline.drug}"
                ),
                fact_store_entry=guideline.to_dict(),
            ))

        if patient.age is not None and patient.age > settings.GERIATRIC_AGE and guideline.geriatric_adjustment:
            texts = [plan.monitoring_plan, plan.primary_choice] + list(plan.risk_factors)
            if not any(AGE_MENTION.search(t or "") for t in texts):
                issues.append(ValidationIssue(
                    type=IssueType.MISSED_CONTRAINDICATION,
                    severity=IssueSeverity.MEDIUM,
                    description=f"Geriatric adjustment may be needed: {guideline.geriatric_adjustment}",
                    fact_store_entry=guideline.to_dict(),
                ))
        return issues

    def check_allergy_conflicts(
        self, patient: PatientRecord, primary_drug: str, drugs: List[str], plan: TreatmentPlan
    ) -> List[ValidationIssue]:
        issues = []
        for allergy in patient.allergies:
            allergen = allergy.allergen.lower().strip()
            if not allergen:
                continue

            # Direct match against the proposed drug
            if _overlaps(allergen, primary_drug):
                already_flagged = any(
                    f.type.lower() == "allergy" and allergen in f.description.lower()
                    for f in plan.flagged_issues
                )
                if not already_flagged:
                    issues.append(ValidationIssue(
                        type=IssueType.MISSED_CONTRAINDICATION,
                        severity=IssueSeverity.CRITICAL,
                        description=(
                            f"Potential allergy conflict: patient allergic to {allergen}, "
                            f"proposed drug is {primary_drug}"
                        ),
                    ))

            # Cross-reactive drugs anywhere in the regimen
            groups = self._lookup(
                f"cross-reactivity for {allergen}",
                self.knowledge_base.check_cross_reactivity, allergen, default=[],
            )
            for group in groups:
                for cross_drug in group.cross_reactive_drugs:
                    cross = cross_drug.lower()
                    if not any(_overlaps(d, cross) for d in drugs):
                        continue
                    if any(cross in f.description.lower() for f in plan.flagged_issues):
                        continue
                    issues.append(ValidationIssue(
                        type=IssueType.MISSED_CONTRAINDICATION,
                        severity=IssueSeverity.HIGH,
                        description=(
                            f"Cross-reactivity risk: patient allergic to {allergen} ({group.group_name}). "
                            f"Drug {cross_drug} has {group.cross_reactivity_rate} cross-reactivity. "
                            f"{group.recommendation}"
                        ),
                        fact_store_entry=group.to_dict(),
                    ))
        return issues

    def sweep_interactions(
        self, drugs: List[str], plan: TreatmentPlan, existing: List[ValidationIssue]
    ) -> List[ValidationIssue]:
        issues = []
        for i, drug1 in enumerate(drugs):
            for drug2 in drugs[i + 1:]:
                entry = self._lookup(
                    f"pair {drug1} + {drug2}",
                    self.knowledge_base.check_drug_pair, drug1, drug2,
                )
                if entry is None or entry.clinical_significance < settings.KB_SWEEP_MIN_SIGNIFICANCE:
                    continue

                listed = any(
                    (drug1 in p.drug1.lower() and drug2 in p.drug2.lower())
                    or (drug2 in p.drug1.lower() and drug1 in p.drug2.lower())
                    for p in plan.drug_interactions
                )
                if listed:
                    continue

                if any(entry.drug1 in iss.description and entry.drug2 in iss.description
                       for iss in existing + issues):
                    continue

                issues.append(ValidationIssue(
                    type=IssueType.MISSED_INTERACTION,
                    severity=interaction_issue_severity(entry),
                    description=(
                        f"Knowledge base flag: {entry.drug1} + {entry.drug2}: {entry.effect}. "
                        f"Management: {entry.management}"
                    ),
                    fact_store_entry=entry.to_dict(),
                ))
        return issues

    def sweep_contraindications(
        self, conditions: List[str], drugs: List[str], plan: TreatmentPlan, existing: List[ValidationIssue]
    ) -> List[ValidationIssue]:
        issues = []
        for condition in conditions:
            rules = self._lookup(
                f"contraindications for {condition}",
                self.knowledge_base.find_contraindications, condition, default=[],
            )
            for rule in rules:
                rule_drug = rule.drug.lower()
                if not any(_overlaps(d, rule_drug) for d in drugs):
                    continue

                listed = any(
                    condition in c.condition.lower() and _overlaps(c.drug.lower(), rule_drug)
                    for c in plan.contraindications
                )
                if listed:
                    continue

                already_flagged = any(
                    rule_drug in iss.description.lower() and condition in iss.description.lower()
                    for iss in existing + issues
                )
                if already_flagged:
                    continue

                issues.append(ValidationIssue(
                    type=IssueType.MISSED_CONTRAINDICATION,
                    severity=contraindication_issue_severity(rule),
                    description=(
                        f"Knowledge base contraindication: {rule.drug} in {rule.condition}: {rule.reason}. "
                        f"Alternatives: {', '.join(rule.alternatives)}"
                    ),
                    fact_store_entry=rule.to_dict(),
                ))
        return issues

    # ==================== Entry point ====================

    def validate(self, plan: Any, patient: Any) -> ValidationReport:
        if not isinstance(plan, TreatmentPlan):
            plan = TreatmentPlan.from_dict(plan)
        if not isinstance(patient, PatientRecord):
            patient = PatientRecord.from_dict(patient)

        drugs = self.gather_unique_drugs(plan, patient)
        primary_drug = plan.primary.medication.lower().strip()
        conditions = [c.lower().strip() for c in patient.conditions if c.strip()]

        issues: List[ValidationIssue] = []
        issues.extend(self.check_missed_interactions(drugs, plan))
        issues.extend(self.check_missed_contraindications(conditions, primary_drug, plan))
        issues.extend(self.validate_dosage(primary_drug, plan, patient))
        issues.extend(self.check_allergy_conflicts(patient, primary_drug, drugs, plan))

        if settings.ENABLE_KB_SWEEP:
            issues.extend(self.sweep_interactions(drugs, plan, issues))
            issues.extend(self.sweep_contraindications(conditions, drugs, plan, issues))

        is_valid = not any(i.severity == IssueSeverity.CRITICAL for i in issues)
        report = ValidationReport(
            is_valid=is_valid,
            issues=issues,
            recommendation=Recommendation.SAFE_TO_PROCEED if is_valid else Recommendation.REVIEW_REQUIRED,
        )

        logger.info(
            f"Cross-validated plan for {primary_drug or '<no primary drug>'}: "
            f"{len(issues)} issues, recommendation={report.recommendation.value}"
        )
        return report


def cross_validate(
    plan: Any,
    patient: Any,
    knowledge_base: Optional[KnowledgeBase] = None,
) -> ValidationReport:
    """Audit a generated treatment plan for one patient"""
    return CrossValidationEngine(knowledge_base).validate(plan, patient)
