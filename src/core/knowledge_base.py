"""
Clinical Risk Engine - Medical Knowledge Base
Drug interactions, contraindication rules, dosage guidelines and allergy cross-reactivity

Curated from clinical pharmacology references:
- FDA Drug Safety Communications and Black Box Warnings
- ACC/AHA, KDIGO, ADA and GINA guidelines
"""
import logging
from typing import List, Dict, Optional, Any
from dataclasses import dataclass, field, asdict

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InteractionEntry:
    drug1: str
    drug2: str
    severity: str  # major, moderate, minor
    effect: str
    mechanism: str
    management: str
    evidence: str  # definitive, probable, suspected, theoretical
    clinical_significance: int  # 1-5, 5 = most significant

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ContraindicationEntry:
    drug: str
    condition: str
    type: str  # absolute, relative, pregnancy
    severity: str  # critical, high, moderate
    reason: str
    alternatives: List[str] = field(default_factory=list)
    evidence_source: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class DosageGuideline:
    drug: str
    indication: str
    standard_dose: str
    max_dose: str
    renal_adjustment: Dict[str, str] = field(default_factory=dict)
    hepatic_adjustment: str = ""
    geriatric_adjustment: str = ""
    monitoring_parameters: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class CrossReactivityGroup:
    group_name: str
    primary_allergen: str
    cross_reactive_drugs: List[str]
    cross_reactivity_rate: str
    recommendation: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _ix(drug1, drug2, severity, effect, mechanism, management, evidence, significance):
    return InteractionEntry(drug1, drug2, severity, effect, mechanism, management, evidence, significance)


# ==================== Drug Interactions ====================

DRUG_INTERACTIONS: List[InteractionEntry] = [
    # Anticoagulants
    _ix("warfarin", "aspirin", "major", "Increased bleeding risk",
        "Additive antiplatelet/anticoagulant effects",
        "Avoid combination or monitor INR closely. If used together, use low-dose aspirin (81mg)",
        "definitive", 5),
    _ix("warfarin", "ibuprofen", "major", "Increased bleeding risk + GI hemorrhage",
        "NSAIDs inhibit platelet function and may increase warfarin levels via CYP2C9",
        "Avoid NSAIDs. Use acetaminophen for pain. Monitor INR if unavoidable", "definitive", 5),
    _ix("warfarin", "naproxen", "major", "Increased bleeding risk + GI hemorrhage",
        "NSAIDs inhibit platelet function and increase warfarin anticoagulant effect",
        "Avoid combination. Use acetaminophen instead", "definitive", 5),
    _ix("warfarin", "fluconazole", "major", "Dramatically increased INR and bleeding",
        "CYP2C9 inhibition markedly increases S-warfarin levels",
        "Reduce warfarin dose by 50%. Monitor INR daily for first week", "definitive", 5),
    _ix("warfarin", "amiodarone", "major", "Significantly increased INR",
        "CYP2C9 and CYP3A4 inhibition increases warfarin levels",
        "Reduce warfarin dose by 30-50%. Monitor INR weekly", "definitive", 5),
    _ix("warfarin", "metronidazole", "major", "Increased anticoagulant effect",
        "CYP2C9 inhibition increases S-warfarin levels",
        "Monitor INR closely. May need 25-50% dose reduction", "definitive", 5),
    _ix("warfarin", "ciprofloxacin", "major", "Increased INR and bleeding risk",
        "CYP1A2 inhibition and altered vitamin K-producing gut flora",
        "Monitor INR closely during antibiotic course", "definitive", 4),
    _ix("warfarin", "vitamin k", "moderate", "Reduced anticoagulant effect",
        "Vitamin K directly antagonizes warfarin mechanism of action",
        "Maintain consistent vitamin K intake", "definitive", 3),
    _ix("apixaban", "ketoconazole", "major", "Doubled apixaban exposure",
        "Strong CYP3A4 and P-gp inhibition",
        "Reduce apixaban dose by 50% or avoid combination", "definitive", 5),
    _ix("dabigatran", "verapamil", "moderate", "Increased dabigatran levels by 70-150%",
        "P-glycoprotein inhibition", "Consider dose reduction. Monitor for bleeding", "definitive", 4),

    # Cardiovascular
    _ix("sildenafil", "nitroglycerin", "major", "Severe life-threatening hypotension",
        "Synergistic vasodilation via cGMP/NO pathway",
        "ABSOLUTE CONTRAINDICATION. Do not combine. Wait 24h after sildenafil before nitrates",
        "definitive", 5),
    _ix("sildenafil", "isosorbide mononitrate", "major", "Severe life-threatening hypotension",
        "Synergistic vasodilation via cGMP/NO pathway", "ABSOLUTE CONTRAINDICATION", "definitive", 5),
    _ix("sildenafil", "isosorbide dinitrate", "major", "Severe life-threatening hypotension",
        "Synergistic vasodilation via cGMP/NO pathway", "ABSOLUTE CONTRAINDICATION", "definitive", 5),
    _ix("tadalafil", "nitroglycerin", "major", "Severe hypotension",
        "PDE5 inhibition + nitrate vasodilation",
        "ABSOLUTE CONTRAINDICATION. Wait 48h after tadalafil before nitrate", "definitive", 5),
    _ix("sildenafil", "doxazosin", "moderate", "Orthostatic hypotension",
        "Additive vasodilation from different mechanisms",
        "Start sildenafil at 25mg. Take at least 4h apart from alpha blocker", "definitive", 3),
    _ix("digoxin", "amiodarone", "major", "Digoxin toxicity (arrhythmias, GI, visual changes)",
        "P-glycoprotein inhibition increases digoxin Cmax 50-70%",
        "Reduce digoxin dose by 50% when starting amiodarone", "definitive", 5),
    _ix("digoxin", "verapamil", "major", "Increased digoxin levels + additive AV nodal depression",
        "P-glycoprotein inhibition + pharmacodynamic synergy",
        "Reduce digoxin dose by 25-50%. Monitor levels and heart rate", "definitive", 5),
    _ix("digoxin", "spironolactone", "moderate", "Increased digoxin levels",
        "Reduced renal clearance + assay interference",
        "Monitor digoxin levels and potassium", "probable", 3),
    _ix("metoprolol", "verapamil", "major", "Severe bradycardia, heart block, heart failure",
        "Both depress AV conduction and myocardial contractility",
        "Avoid IV combination. Use oral with extreme caution", "definitive", 5),
    _ix("metoprolol", "diltiazem", "major", "Bradycardia, heart block",
        "Additive negative chronotropic and dromotropic effects",
        "Avoid combination or use with careful monitoring", "definitive", 4),
    _ix("amiodarone", "simvastatin", "major", "Rhabdomyolysis",
        "CYP3A4 inhibition increases simvastatin levels 2-3 fold",
        "Limit simvastatin to 20mg/day with amiodarone", "definitive", 4),
    _ix("lisinopril", "potassium", "major", "Life-threatening hyperkalemia",
        "ACE inhibitors reduce aldosterone, causing potassium retention",
        "Monitor potassium levels. Avoid potassium supplements unless documented hypokalemia",
        "definitive", 5),
    _ix("lisinopril", "spironolactone", "major", "Life-threatening hyperkalemia",
        "Both cause potassium retention through different mechanisms",
        "Monitor potassium closely (within 1 week, then periodically)", "definitive", 5),
    _ix("lisinopril", "losartan", "major", "Hyperkalemia, renal failure, hypotension",
        "Dual RAAS blockade",
        "Avoid combination. No mortality benefit, only increased adverse events", "definitive", 5),

    # Statins
    _ix("simvastatin", "clarithromycin", "major", "Rhabdomyolysis",
        "CYP3A4 inhibition dramatically increases simvastatin levels",
        "Suspend simvastatin during clarithromycin course. Use azithromycin instead",
        "definitive", 5),
    _ix("simvastatin", "itraconazole", "major", "Rhabdomyolysis",
        "Potent CYP3A4 inhibition increases simvastatin >10-fold",
        "CONTRAINDICATED combination", "definitive", 5),
    _ix("simvastatin", "grapefruit juice", "moderate", "Increased statin levels and myopathy risk",
        "Intestinal CYP3A4 inhibition by furanocoumarins",
        "Avoid large quantities. Consider switching to rosuvastatin or pravastatin", "probable", 3),
    _ix("atorvastatin", "clarithromycin", "major", "Increased atorvastatin levels and myopathy risk",
        "CYP3A4 inhibition",
        "Limit atorvastatin to 20mg/day during macrolide use, or use azithromycin", "definitive", 4),
    _ix("simvastatin", "gemfibrozil", "major", "Rhabdomyolysis (10-fold increased risk)",
        "OATP1B1 inhibition increases statin hepatic exposure",
        "Avoid gemfibrozil with statins. Use fenofibrate if fibrate needed", "definitive", 5),

    # Serotonergic
    _ix("sertraline", "phenelzine", "major", "Serotonin syndrome, potentially fatal",
        "Massive serotonin accumulation from dual mechanism blockade",
        "ABSOLUTE CONTRAINDICATION. 14-day washout between stopping MAOI and starting SSRI",
        "definitive", 5),
    _ix("sertraline", "tramadol", "major", "Serotonin syndrome + seizure risk",
        "Tramadol has SNRI activity + SSRIs lower seizure threshold together",
        "Avoid combination. Use alternative analgesic", "definitive", 4),
    _ix("fluoxetine", "tramadol", "major", "Serotonin syndrome + seizure risk",
        "Dual serotonergic activity + CYP2D6 inhibition",
        "Avoid combination. Use alternative analgesic", "definitive", 4),
    _ix("escitalopram", "sumatriptan", "moderate", "Serotonin syndrome (rare but documented)",
        "Triptans are 5-HT1B/1D agonists + SSRIs increase serotonin",
        "Use with awareness. Monitor for serotonin syndrome symptoms", "probable", 2),
    _ix("sertraline", "linezolid", "major", "Serotonin syndrome",
        "Linezolid is a reversible MAO inhibitor",
        "Avoid combination. If linezolid essential, stop SSRI and monitor for 2 weeks",
        "definitive", 5),
    _ix("fluoxetine", "tamoxifen", "major", "Reduced tamoxifen efficacy",
        "CYP2D6 inhibition prevents conversion of tamoxifen to active endoxifen",
        "Avoid fluoxetine/paroxetine. Use venlafaxine or citalopram", "definitive", 5),

    # QT prolongation
    _ix("amiodarone", "sotalol", "major", "Extreme QT prolongation, torsades de pointes",
        "Both are Class III antiarrhythmics with QT-prolonging effects",
        "CONTRAINDICATED. Use one or the other, never both", "definitive", 5),
    _ix("haloperidol", "methadone", "major", "QT prolongation, torsades",
        "Both block hERG potassium channels",
        "Monitor ECG. Keep QTc <500ms. Consider alternative antipsychotic", "definitive", 4),
    _ix("azithromycin", "amiodarone", "major", "QT prolongation",
        "Additive QT-prolonging effect",
        "Monitor ECG. Use alternative macrolide if possible", "probable", 4),

    # Diabetes
    _ix("metformin", "contrast dye", "major", "Lactic acidosis",
        "Contrast-induced nephropathy reduces metformin clearance",
        "Hold metformin 48h before and after contrast", "definitive", 5),
    _ix("metformin", "alcohol", "moderate", "Increased lactic acidosis risk",
        "Alcohol inhibits lactate metabolism + hepatic gluconeogenesis",
        "Limit alcohol intake. Avoid binge drinking", "definitive", 3),
    _ix("glipizide", "fluconazole", "major", "Severe hypoglycemia",
        "CYP2C9 inhibition increases sulfonylurea levels",
        "Monitor blood glucose frequently. Consider dose reduction", "definitive", 4),
    _ix("insulin", "propranolol", "moderate", "Masked hypoglycemia + prolonged hypoglycemia",
        "Beta blockers mask adrenergic warning signs",
        "Use cardioselective beta blockers. Increase glucose monitoring frequency", "definitive", 3),

    # Opioids
    _ix("oxycodone", "alprazolam", "major", "Respiratory depression, death",
        "Synergistic CNS/respiratory depression",
        "FDA Black Box Warning: avoid concurrent use", "definitive", 5),
    _ix("morphine", "diazepam", "major", "Respiratory depression, death",
        "Synergistic CNS/respiratory depression",
        "FDA Black Box Warning: avoid concurrent use", "definitive", 5),
    _ix("methadone", "rifampin", "major", "Opioid withdrawal symptoms",
        "CYP3A4 induction dramatically reduces methadone levels",
        "Increase methadone dose. Monitor for withdrawal", "definitive", 5),
    _ix("codeine", "paroxetine", "moderate", "Reduced codeine analgesic effect",
        "CYP2D6 inhibition blocks conversion to morphine",
        "Use alternative analgesic", "definitive", 3),

    # Antibiotics
    _ix("metronidazole", "alcohol", "major", "Disulfiram-like reaction",
        "Aldehyde dehydrogenase inhibition causes acetaldehyde accumulation",
        "Avoid alcohol during treatment and 48h after completion", "definitive", 4),
    _ix("ciprofloxacin", "theophylline", "major", "Theophylline toxicity (seizures, arrhythmias)",
        "CYP1A2 inhibition reduces theophylline clearance by 25-30%",
        "Reduce theophylline dose by 30-50%. Use levofloxacin instead", "definitive", 5),
    _ix("ciprofloxacin", "antacids", "moderate", "Markedly reduced antibiotic absorption",
        "Metal cation chelation forms insoluble complex",
        "Take fluoroquinolone 2h before or 6h after antacid", "definitive", 4),
    _ix("gentamicin", "furosemide", "major", "Ototoxicity and nephrotoxicity",
        "Additive toxicity to cochlear and renal tubular cells",
        "Monitor hearing and renal function. Avoid if possible", "definitive", 4),

    # Lithium / immunosuppressants
    _ix("lithium", "ibuprofen", "major", "Lithium toxicity (tremor, confusion, renal failure)",
        "NSAIDs reduce renal lithium clearance by 15-25%",
        "Monitor lithium levels closely. Avoid NSAIDs", "definitive", 5),
    _ix("lithium", "lisinopril", "major", "Lithium toxicity",
        "ACE inhibitors reduce renal lithium clearance",
        "Monitor lithium levels within 1 week. May need 25-50% dose reduction", "definitive", 4),
    _ix("lithium", "hydrochlorothiazide", "major", "Lithium toxicity",
        "Thiazides increase proximal tubular lithium reabsorption",
        "Reduce lithium dose by 25-50%. Monitor lithium levels weekly initially", "definitive", 5),
    _ix("methotrexate", "ibuprofen", "major", "Methotrexate toxicity (pancytopenia, mucositis)",
        "NSAIDs reduce renal clearance of methotrexate",
        "Avoid NSAIDs with high-dose methotrexate. Monitor CBC", "definitive", 5),
    _ix("methotrexate", "trimethoprim", "major", "Methotrexate toxicity, pancytopenia",
        "Both are folate antagonists + trimethoprim reduces renal methotrexate clearance",
        "Avoid combination", "definitive", 5),
    _ix("azathioprine", "allopurinol", "major", "Severe myelosuppression, potentially fatal",
        "Allopurinol inhibits xanthine oxidase, blocking azathioprine metabolism",
        "Reduce azathioprine dose by 67-75% or avoid combination", "definitive", 5),

    # Miscellaneous
    _ix("levothyroxine", "calcium carbonate", "moderate", "Reduced levothyroxine absorption by 20-25%",
        "Calcium complexation in GI tract", "Separate doses by at least 4 hours", "definitive", 3),
    _ix("clopidogrel", "omeprazole", "moderate", "Reduced antiplatelet effect",
        "CYP2C19 inhibition reduces clopidogrel bioactivation",
        "Use pantoprazole or H2 blocker instead", "definitive", 4),
    _ix("colchicine", "clarithromycin", "major", "Fatal colchicine toxicity",
        "CYP3A4 and P-gp inhibition", "Reduce colchicine dose or avoid", "definitive", 5),
    _ix("terbinafine", "caffeine", "minor", "Increased caffeine effects",
        "CYP1A2 inhibition", "No action usually needed", "probable", 1),
    _ix("finasteride", "saw palmetto", "minor", "Additive 5-alpha reductase inhibition",
        "Both inhibit 5-alpha reductase enzyme",
        "Generally safe. Monitor for enhanced antiandrogen effects", "theoretical", 1),
]


# ==================== Contraindications ====================

CONTRAINDICATIONS: List[ContraindicationEntry] = [
    # Cardiovascular
    ContraindicationEntry("beta-blockers", "severe asthma", "absolute", "critical",
                          "Risk of severe bronchospasm from beta-2 blockade",
                          ["calcium channel blockers", "ACE inhibitors", "ARBs"], "GINA Guidelines"),
    ContraindicationEntry("propranolol", "asthma", "absolute", "critical",
                          "Non-selective beta blockade causes bronchospasm",
                          ["calcium channel blockers", "cardioselective beta blocker with caution"],
                          "GINA Guidelines"),
    ContraindicationEntry("verapamil", "systolic heart failure (EF <40%)", "absolute", "critical",
                          "Negative inotropic effect worsens heart failure",
                          ["amlodipine"], "ACC/AHA Heart Failure Guidelines"),
    ContraindicationEntry("sildenafil", "concurrent nitrate therapy", "absolute", "critical",
                          "Synergistic vasodilation causing severe life-threatening hypotension",
                          ["alprostadil", "vacuum erection devices"], "FDA Black Box Warning"),
    ContraindicationEntry("sildenafil", "severe aortic stenosis", "absolute", "critical",
                          "Fixed cardiac output cannot compensate for PDE5-mediated vasodilation",
                          ["mechanical devices only"], "ACC/AHA Valvular Guidelines"),
    ContraindicationEntry("sildenafil", "recent stroke or MI (<6 months)", "relative", "high",
                          "Hemodynamic effects may be dangerous in acute cardiovascular disease",
                          ["wait until stable, then reassess"], "AUA Guidelines"),

    # Renal
    ContraindicationEntry("NSAIDs", "CKD stage 4 or higher", "absolute", "critical",
                          "Afferent arteriolar vasoconstriction causes acute kidney injury",
                          ["acetaminophen", "topical analgesics"], "KDIGO Guidelines"),
    ContraindicationEntry("ibuprofen", "chronic kidney disease", "relative", "high",
                          "Prostaglandin inhibition reduces renal perfusion",
                          ["acetaminophen", "topical analgesics"], "KDIGO Guidelines"),
    ContraindicationEntry("NSAIDs", "active GI bleeding", "absolute", "critical",
                          "Inhibit protective prostaglandins + platelet aggregation",
                          ["acetaminophen"], "ACG Guidelines"),
    ContraindicationEntry("metformin", "eGFR < 30", "absolute", "critical",
                          "Severely impaired renal clearance leads to lactic acidosis",
                          ["DPP-4 inhibitors", "insulin"], "ADA/KDIGO Guidelines"),
    ContraindicationEntry("metformin", "acute decompensated heart failure", "absolute", "critical",
                          "Tissue hypoperfusion increases lactic acidosis risk",
                          ["insulin", "DPP-4 inhibitors"], "ADA Standards of Care"),
    ContraindicationEntry("lisinopril", "bilateral renal artery stenosis", "absolute", "critical",
                          "Acute renal failure from loss of efferent arteriolar tone",
                          ["calcium channel blockers"], "ACC/AHA Guidelines"),
    ContraindicationEntry("lisinopril", "angioedema history from ACE inhibitor", "absolute", "critical",
                          "Recurrence risk is extremely high with potentially fatal airway compromise",
                          ["ARBs with caution"], "ACC/AHA Guidelines"),
    ContraindicationEntry("spironolactone", "hyperkalemia", "absolute", "critical",
                          "Life-threatening hyperkalemia risk",
                          ["loop diuretics", "thiazide diuretics"], "ACC/AHA Heart Failure Guidelines"),

    # Hepatic
    ContraindicationEntry("statins", "active liver disease", "absolute", "critical",
                          "Hepatotoxicity risk with compromised liver function",
                          ["ezetimibe", "bile acid sequestrants"], "ACC/AHA Lipid Guidelines"),
    ContraindicationEntry("acetaminophen", "severe hepatic impairment", "relative", "high",
                          "Reduced glutathione makes normal doses potentially hepatotoxic",
                          ["reduce dose to max 2g/day", "topical analgesics"], "FDA Drug Safety Communication"),
    ContraindicationEntry("valproic acid", "hepatic disease", "absolute", "critical",
                          "Fatal hepatotoxicity risk",
                          ["levetiracetam", "lamotrigine"], "FDA Black Box Warning"),

    # Hematologic
    ContraindicationEntry("warfarin", "active bleeding", "absolute", "critical",
                          "Will worsen hemorrhage",
                          ["mechanical VTE prophylaxis only"], "ACCP Antithrombotic Guidelines"),
    ContraindicationEntry("clopidogrel", "active pathological bleeding", "absolute", "critical",
                          "Irreversible platelet inhibition for 7-10 days",
                          ["hold antiplatelet until bleeding controlled"], "ACC/AHA Antiplatelet Guidelines"),

    # Respiratory / neuromuscular
    ContraindicationEntry("opioids", "severe respiratory depression", "absolute", "critical",
                          "Further respiratory depression can be fatal",
                          ["non-opioid analgesics", "regional anesthesia"], "APS Pain Guidelines"),
    ContraindicationEntry("ciprofloxacin", "myasthenia gravis", "absolute", "critical",
                          "May exacerbate muscle weakness and cause respiratory failure",
                          ["beta-lactams", "macrolides"], "FDA Black Box Warning"),

    # Endocrine
    ContraindicationEntry("semaglutide", "medullary thyroid carcinoma", "absolute", "critical",
                          "C-cell tumor risk demonstrated in rodent studies",
                          ["SGLT2 inhibitors", "DPP-4 inhibitors", "insulin"], "FDA Black Box Warning"),
    ContraindicationEntry("pioglitazone", "heart failure", "absolute", "critical",
                          "Fluid retention worsens heart failure symptoms",
                          ["metformin", "SGLT2 inhibitors"], "ADA/ACC/AHA Guidelines"),
    ContraindicationEntry("prednisone", "active untreated infections", "absolute", "critical",
                          "Immunosuppression will worsen infection",
                          ["treat infection first"], "IDSA Guidelines"),

    # Pregnancy
    ContraindicationEntry("lisinopril", "pregnancy", "pregnancy", "critical",
                          "Category X: fetal renal agenesis, lung hypoplasia",
                          ["labetalol", "methyldopa", "nifedipine"], "ACOG Hypertension in Pregnancy"),
    ContraindicationEntry("atorvastatin", "pregnancy", "pregnancy", "critical",
                          "Cholesterol essential for fetal development",
                          ["diet modification"], "FDA Category X"),
    ContraindicationEntry("warfarin", "pregnancy", "pregnancy", "critical",
                          "Warfarin embryopathy (weeks 6-12)", ["LMWH"], "ACCP/ACOG"),
    ContraindicationEntry("doxycycline", "pregnancy", "pregnancy", "high",
                          "Tooth discoloration and bone growth inhibition in fetus",
                          ["amoxicillin", "azithromycin"], "AAP/ACOG"),
]


# ==================== Dosage Guidelines ====================

DOSAGE_GUIDELINES: List[DosageGuideline] = [
    DosageGuideline("lisinopril", "hypertension/heart failure", "10mg PO once daily",
                    "80mg/day for HTN; 40mg/day for HF",
                    {"CrCl 10-30": "Start 5mg, max 40mg", "CrCl <10": "Start 2.5mg"},
                    "No adjustment needed",
                    "Start 2.5-5mg, monitor for hypotension and hyperkalemia",
                    ["Serum potassium", "BUN/creatinine", "Blood pressure"]),
    DosageGuideline("losartan", "hypertension/diabetic nephropathy", "50mg PO once daily", "100mg/day",
                    {"All stages": "No adjustment needed"},
                    "Start 25mg in hepatic impairment", "Start 25mg if volume depleted",
                    ["Potassium", "Creatinine", "Blood pressure"]),
    DosageGuideline("amlodipine", "hypertension/angina", "5mg PO once daily", "10mg/day",
                    {}, "Start 2.5mg in hepatic impairment",
                    "Start 2.5mg, titrate slowly. Monitor for pedal edema",
                    ["Blood pressure", "Peripheral edema"]),
    DosageGuideline("metoprolol", "hypertension/heart failure/post-MI", "25-100mg BID",
                    "400mg/day (tartrate); 200mg/day (succinate)",
                    {}, "Reduce dose in significant hepatic impairment",
                    "Start low, monitor HR and BP. HR goal >=55 bpm",
                    ["Heart rate", "Blood pressure"]),
    DosageGuideline("atorvastatin", "hyperlipidemia", "10-20mg PO once daily", "80mg/day",
                    {}, "Contraindicated in active liver disease",
                    "No specific adjustment, monitor for myopathy symptoms",
                    ["Lipid panel", "LFTs", "Muscle symptoms"]),
    DosageGuideline("warfarin", "anticoagulation", "5mg PO once daily, adjust by INR",
                    "Individualized by INR", {},
                    "Increased sensitivity. Start 2.5mg",
                    "Start 2-3mg (elderly are more sensitive). More frequent INR monitoring",
                    ["INR", "Signs of bleeding"]),
    DosageGuideline("digoxin", "heart failure/atrial fibrillation", "0.125-0.25mg PO once daily",
                    "0.5mg/day", {"CrCl <50": "Reduce dose by 50%"},
                    "No adjustment needed", "Start 0.0625-0.125mg",
                    ["Serum digoxin", "Potassium", "Renal function"]),
    DosageGuideline("metformin", "type 2 diabetes", "500mg PO BID with meals",
                    "2550mg/day (IR); 2000mg/day (XR)",
                    {"eGFR 30-45": "Max 1000mg/day", "eGFR <30": "Contraindicated"},
                    "Avoid in significant hepatic impairment",
                    "Conservative titration. Monitor renal function regularly",
                    ["HbA1c", "Renal function", "Vitamin B12"]),
    DosageGuideline("glipizide", "type 2 diabetes", "5mg PO 30 min before breakfast",
                    "40mg/day (20mg BID)", {},
                    "Start 2.5mg, increased hypoglycemia risk",
                    "Start 2.5mg. Higher risk of hypoglycemia in elderly",
                    ["Blood glucose", "HbA1c"]),
    DosageGuideline("sildenafil", "erectile dysfunction", "50mg PO 1 hour before activity",
                    "100mg per 24 hours",
                    {"CrCl 30-50": "25mg starting dose", "CrCl <30": "25mg max dose"},
                    "25mg starting dose in Child-Pugh B/C", "Start 25mg for age >65",
                    ["Blood pressure", "Visual changes"]),
    DosageGuideline("tadalafil", "erectile dysfunction/BPH", "PRN: 10mg before activity",
                    "PRN: 20mg per 36h; Daily: 5mg/day",
                    {"CrCl 30-50": "PRN: start 5mg", "CrCl <30": "PRN: max 5mg"},
                    "Child-Pugh A/B: max 10mg PRN", "No specific adjustment, consider renal function",
                    ["Blood pressure", "Concurrent nitrate use"]),
    DosageGuideline("ibuprofen", "pain/inflammation/fever", "200-400mg PO q4-6h",
                    "3200mg/day (Rx); 1200mg/day (OTC)",
                    {"CrCl <30": "AVOID", "CrCl 30-60": "Use lowest dose, shortest duration"},
                    "Avoid in severe liver disease",
                    "Start low, shortest duration possible. Increased GI bleeding risk",
                    ["Renal function", "Blood pressure", "GI symptoms"]),
    DosageGuideline("acetaminophen", "pain/fever", "500-1000mg PO q4-6h",
                    "4000mg/day (3000mg/day in elderly or liver disease)",
                    {"CrCl <10": "Extend dosing interval to q8h"},
                    "Max 2000mg/day", "Max 3000mg/day. Monitor for hepatotoxicity",
                    ["LFTs if chronic use"]),
    DosageGuideline("gabapentin", "neuropathic pain/seizures", "300mg PO TID", "3600mg/day",
                    {"CrCl 30-59": "Max 1400mg/day", "CrCl 15-29": "Max 700mg/day"},
                    "No adjustment needed",
                    "Start 100-300mg at bedtime. Monitor for sedation, dizziness, falls",
                    ["Sedation", "Fall risk", "Renal function"]),
    DosageGuideline("amoxicillin", "bacterial infections", "500mg PO TID", "3000mg/day",
                    {"CrCl 10-30": "250-500mg q12h", "CrCl <10": "250-500mg q24h"},
                    "No adjustment needed", "Adjust for renal function",
                    ["Signs of infection resolution", "Rash"]),
    DosageGuideline("ciprofloxacin", "bacterial infections", "250-750mg PO BID",
                    "1500mg/day PO; 800mg/day IV", {"CrCl 30-50": "250-500mg q12h"},
                    "No adjustment but monitor LFTs",
                    "Increased tendon rupture risk. Avoid if possible in >60",
                    ["Tendon pain", "QT interval"]),
    DosageGuideline("sertraline", "depression/anxiety", "50mg PO once daily", "200mg/day",
                    {}, "Reduce dose by 50%",
                    "Start 25mg daily. Titrate slowly. Watch for hyponatremia",
                    ["Mood", "Sodium"]),
    DosageGuideline("levothyroxine", "hypothyroidism", "1.6mcg/kg PO daily", "300mcg/day",
                    {}, "No adjustment needed", "Start 25-50mcg daily. Titrate slowly",
                    ["TSH", "Heart rate"]),
    DosageGuideline("omeprazole", "GERD/peptic ulcer", "20mg PO once daily", "40mg/day",
                    {}, "Max 20mg/day in severe hepatic impairment", "",
                    ["Magnesium if long-term"]),
]


# ==================== Allergy Cross-Reactivity ====================

ALLERGY_CROSS_REACTIVITY: List[CrossReactivityGroup] = [
    CrossReactivityGroup(
        "Penicillin Class", "penicillin",
        ["amoxicillin", "ampicillin", "piperacillin", "nafcillin", "oxacillin", "dicloxacillin",
         "amoxicillin-clavulanate"],
        "~100% within class",
        "Avoid all penicillins. Cephalosporin cross-reactivity is ~1-2%. Aztreonam has no cross-reactivity.",
    ),
    CrossReactivityGroup(
        "Penicillin to Cephalosporin", "penicillin",
        ["cephalexin", "cefazolin", "cefadroxil"],
        "1-2% for first-gen; <0.5% for third/fourth-gen",
        "First-gen cephalosporins share R1 side chain with amoxicillin/ampicillin. Skin testing recommended.",
    ),
    CrossReactivityGroup(
        "Sulfonamide Antibiotics", "sulfa antibiotics",
        ["sulfamethoxazole", "sulfasalazine", "sulfadiazine"],
        "~100% within antibiotic sulfonamides",
        "Cross-reactivity with non-antibiotic sulfonamides (furosemide, thiazides) is not confirmed.",
    ),
    CrossReactivityGroup(
        "NSAIDs (COX inhibitors)", "aspirin",
        ["ibuprofen", "naproxen", "ketorolac", "indomethacin", "piroxicam", "diclofenac", "meloxicam"],
        "~20-30%",
        "If aspirin allergy with respiratory symptoms, avoid all NSAIDs. Acetaminophen <1g generally safe.",
    ),
    CrossReactivityGroup(
        "Local Anesthetics (Ester Type)", "procaine",
        ["benzocaine", "tetracaine"],
        "~100% within ester group",
        "Amide local anesthetics (lidocaine, bupivacaine) do not cross-react with esters.",
    ),
    CrossReactivityGroup(
        "Fluoroquinolone Class", "ciprofloxacin",
        ["levofloxacin", "moxifloxacin", "ofloxacin", "norfloxacin"],
        "~50-70% within class",
        "If true IgE-mediated allergy to one fluoroquinolone, avoid all fluoroquinolones.",
    ),
    CrossReactivityGroup(
        "Opioid Class (Morphine-type)", "morphine",
        ["codeine", "hydromorphone", "hydrocodone", "oxycodone"],
        "Variable; histamine release common",
        "For true morphine allergy, fentanyl and methadone have different structures and may be safe.",
    ),
    CrossReactivityGroup(
        "ACE Inhibitor Angioedema", "lisinopril",
        ["enalapril", "ramipril", "benazepril", "captopril", "perindopril"],
        "~100% within ACE inhibitor class",
        "All ACE inhibitors are contraindicated. ARBs have ~1-2% cross-reactivity and can be used with monitoring.",
    ),
    CrossReactivityGroup(
        "Contrast Dye", "iodinated contrast",
        ["iohexol", "iopamidol", "iodixanol"],
        "Non-ionic agents have lower risk",
        "Premedicate with prednisone and diphenhydramine. Not a true iodine allergy.",
    ),
    CrossReactivityGroup(
        "Statin Myopathy", "simvastatin",
        ["lovastatin", "atorvastatin"],
        "CYP3A4-metabolized statins share risk",
        "Try pravastatin, rosuvastatin or fluvastatin.",
    ),
]


# ==================== Knowledge Base Service ====================

class KnowledgeBase:
    """
    Queryable fact store over the static tables.

    All lookups are case-insensitive; most are substring matches.
    """

    def __init__(
        self,
        interactions: Optional[List[InteractionEntry]] = None,
        contraindications: Optional[List[ContraindicationEntry]] = None,
        dosage_guidelines: Optional[List[DosageGuideline]] = None,
        cross_reactivity: Optional[List[CrossReactivityGroup]] = None,
    ):
        self.interactions = DRUG_INTERACTIONS if interactions is None else interactions
        self.contraindications = CONTRAINDICATIONS if contraindications is None else contraindications
        self.dosage_guidelines = DOSAGE_GUIDELINES if dosage_guidelines is None else dosage_guidelines
        self.cross_reactivity = ALLERGY_CROSS_REACTIVITY if cross_reactivity is None else cross_reactivity

        logger.info(
            f"Knowledge base initialized: {len(self.interactions)} interactions, "
            f"{len(self.contraindications)} contraindications, "
            f"{len(self.dosage_guidelines)} dosage guidelines"
        )

    @staticmethod
    def _normalize(name: str) -> str:
        return (name or "").lower().strip()

    def find_interactions(self, drug_name: str) -> List[InteractionEntry]:
        """All interactions where either drug contains the name"""
        name = self._normalize(drug_name)
        if not name:
            return []
        return [
            i for i in self.interactions
            if name in i.drug1.lower() or name in i.drug2.lower()
        ]

    def check_drug_pair(self, drug1: str, drug2: str) -> Optional[InteractionEntry]:
        """Substring match of both names, either order"""
        d1, d2 = self._normalize(drug1), self._normalize(drug2)
        if not d1 or not d2:
            return None
        for entry in self.interactions:
            e1, e2 = entry.drug1.lower(), entry.drug2.lower()
            if (d1 in e1 and d2 in e2) or (d2 in e1 and d1 in e2):
                return entry
        return None

    def find_exact_interaction(self, drug1: str, drug2: str) -> Optional[InteractionEntry]:
        """Exact name match, either order"""
        d1, d2 = self._normalize(drug1), self._normalize(drug2)
        for entry in self.interactions:
            e1, e2 = entry.drug1.lower(), entry.drug2.lower()
            if (e1 == d1 and e2 == d2) or (e1 == d2 and e2 == d1):
                return entry
        return None

    def find_contraindications(self, query: str) -> List[ContraindicationEntry]:
        """Rules whose drug or condition contains the query"""
        q = self._normalize(query)
        if not q:
            return []
        return [
            c for c in self.contraindications
            if q in c.drug.lower() or q in c.condition.lower()
        ]

    def find_dosage_guideline(self, drug_name: str, partial: bool = False) -> Optional[DosageGuideline]:
        """Exact match; with partial, substring match in either direction"""
        name = self._normalize(drug_name)
        if not name:
            return None
        for guideline in self.dosage_guidelines:
            if guideline.drug.lower() == name:
                return guideline
        if partial:
            for guideline in self.dosage_guidelines:
                drug = guideline.drug.lower()
                if name in drug or drug in name:
                    return guideline
        return None

    def check_cross_reactivity(self, allergen: str) -> List[CrossReactivityGroup]:
        a = self._normalize(allergen)
        if not a:
            return []
        return [
            g for g in self.cross_reactivity
            if a in g.primary_allergen.lower()
            or any(a in d.lower() for d in g.cross_reactive_drugs)
        ]

    def get_stats(self) -> Dict[str, int]:
        return {
            "total_interactions": len(self.interactions),
            "major_interactions": sum(1 for i in self.interactions if i.severity == "major"),
            "moderate_interactions": sum(1 for i in self.interactions if i.severity == "moderate"),
            "minor_interactions": sum(1 for i in self.interactions if i.severity == "minor"),
            "total_contraindications": len(self.contraindications),
            "absolute_contraindications": sum(1 for c in self.contraindications if c.type == "absolute"),
            "pregnancy_contraindications": sum(1 for c in self.contraindications if c.type == "pregnancy"),
            "total_dosage_guidelines": len(self.dosage_guidelines),
            "total_allergy_groups": len(self.cross_reactivity),
        }


# Singleton instance
_knowledge_base: Optional[KnowledgeBase] = None

def get_knowledge_base() -> KnowledgeBase:
    global _knowledge_base
    if _knowledge_base is None:
        _knowledge_base = KnowledgeBase()
    return _knowledge_base
