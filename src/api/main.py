"""
Clinical Risk Engine - FastAPI REST API
Complaint analysis, ensemble risk scoring and treatment plan cross-validation
"""
from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
from typing import List, Dict, Any
from datetime import datetime
import logging

from config import settings
from src.core.models import to_jsonable
from src.core.knowledge_base import get_knowledge_base
from src.nlp.complaint_analyzer import analyze_chief_complaint, analyze_multiple_complaints
from src.ml.ensemble_risk import compute_ensemble_risk
from src.ml.risk_model import get_risk_model, RemoteRiskModel
from src.ml.interaction_model import get_interaction_predictor
from src.validation.cross_validation import cross_validate

logging.basicConfig(level=logging.INFO)
logging.getLogger().setLevel(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

# Pydantic models for API
class ComplaintRequest(BaseModel):
    text: str = Field("", max_length=5000)


class MultipleComplaintsRequest(BaseModel):
    texts: List[str] = Field(..., max_length=50)


class PlanValidationRequest(BaseModel):
    plan: Dict[str, Any]
    patient: Dict[str, Any] = {}


class HealthCheckResponse(BaseModel):
    status: str
    version: str
    knowledge_base: Dict[str, int]
    risk_model_trained: bool
    interaction_model_trained: bool
    timestamp: str


# Create FastAPI app
app = FastAPI(
    title=settings.API_TITLE,
    description="Chief-complaint NLP, four-model ensemble risk scoring and knowledge-base cross-validation of generated treatment plans.",
    version=settings.API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc"
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup_event():
    """Fit the interaction model and read the remote risk model status"""
    logger.info(f"Starting {settings.API_TITLE}...")
    predictor = get_interaction_predictor()
    try:
        predictor.train(get_knowledge_base())
    except Exception as e:
        logger.warning(f"Interaction model training failed, using rule-based scoring: {e}")

    risk_model = get_risk_model()
    if isinstance(risk_model, RemoteRiskModel):
        await risk_model.refresh_status()


@app.on_event("shutdown")
async def shutdown_event():
    risk_model = get_risk_model()
    if isinstance(risk_model, RemoteRiskModel):
        await risk_model.close()


def _model_trained(model, method: str) -> bool:
    try:
        return bool(getattr(model, method)())
    except Exception as e:
        logger.warning(f"Model status unavailable: {e}")
        return False


@app.get("/", tags=["Health"])
async def root():
    """Root endpoint"""
    return {
        "name": settings.API_TITLE,
        "version": settings.API_VERSION,
        "status": "operational",
        "docs": "/docs"
    }


@app.get("/health", response_model=HealthCheckResponse, tags=["Health"])
async def health_check():
    """Health check endpoint"""
    return HealthCheckResponse(
        status="healthy",
        version=settings.API_VERSION,
        knowledge_base=get_knowledge_base().get_stats(),
        risk_model_trained=_model_trained(get_risk_model(), "is_model_trained"),
        interaction_model_trained=_model_trained(get_interaction_predictor(), "is_trained"),
        timestamp=datetime.now().isoformat()
    )


# ==================== Complaint Analysis ====================

@app.post("/analyze/complaint", tags=["Complaint Analysis"])
async def analyze_complaint(request: ComplaintRequest):
    """Structured analysis of a free-text chief complaint"""
    return to_jsonable(analyze_chief_complaint(request.text))


@app.post("/analyze/complaints", tags=["Complaint Analysis"])
async def analyze_complaints(request: MultipleComplaintsRequest):
    """Combined analysis of several complaint fragments"""
    return to_jsonable(analyze_multiple_complaints(request.texts))


# ==================== Risk & Validation ====================

@app.post("/risk/ensemble", tags=["Risk"])
async def ensemble_risk(patient: Dict[str, Any]):
    """Four-model ensemble risk assessment for one patient"""
    result = await compute_ensemble_risk(patient)
    response = to_jsonable(result)
    response["has_critical_flags"] = result.has_critical_flags
    response["flag_count"] = result.flag_count
    return response


@app.post("/validate/plan", tags=["Validation"])
async def validate_plan(request: PlanValidationRequest):
    """Cross-validate a generated treatment plan against the knowledge base"""
    report = cross_validate(request.plan, request.patient)
    response = to_jsonable(report)
    response["issue_count"] = report.issue_count
    return response


@app.post("/admin/train-interaction-model", tags=["Admin"])
async def train_interaction_model():
    """Refit the interaction model on the current knowledge base"""
    try:
        accuracy = get_interaction_predictor().train(get_knowledge_base())
    except Exception as e:
        logger.error(f"Interaction model training failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    return {"status": "trained", "training_accuracy": round(accuracy, 4)}


# ==================== Knowledge Base ====================

@app.get("/knowledge-base/interactions", tags=["Knowledge Base"])
async def kb_interactions(drug: str = Query(..., min_length=2)):
    """Documented interactions involving a drug"""
    results = get_knowledge_base().find_interactions(drug)
    return {"query": drug, "count": len(results), "results": [r.to_dict() for r in results]}


@app.get("/knowledge-base/contraindications", tags=["Knowledge Base"])
async def kb_contraindications(query: str = Query(..., min_length=2)):
    """Contraindication rules matching a drug or condition"""
    results = get_knowledge_base().find_contraindications(query)
    return {"query": query, "count": len(results), "results": [r.to_dict() for r in results]}


@app.get("/knowledge-base/cross-reactivity", tags=["Knowledge Base"])
async def kb_cross_reactivity(allergen: str = Query(..., min_length=2)):
    """Allergy cross-reactivity groups for an allergen"""
    results = get_knowledge_base().check_cross_reactivity(allergen)
    return {"query": allergen, "count": len(results), "results": [r.to_dict() for r in results]}


@app.get("/knowledge-base/stats", tags=["Knowledge Base"])
async def kb_stats():
    return get_knowledge_base().get_stats()


# Main entry point for running directly
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.API_HOST, port=settings.API_PORT)
