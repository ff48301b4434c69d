# api/routes/reformulate.py

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from api.dependencies import verify_bearer
from services.llm import ReformulationError, reformulate

router = APIRouter()
logger = logging.getLogger(__name__)


class ReformulateRequest(BaseModel):
    rapport_brut: Optional[str] = None
    type: str = "rapport"        # "rapport" ou "description"


@router.post("/reformulate-report", dependencies=[Depends(verify_bearer)])
def reformulate_report(request: ReformulateRequest) -> JSONResponse:
    text = request.rapport_brut or ""

    if not text.strip():
        return JSONResponse(status_code=400, content={"error": "Le texte est vide"})

    try:
        result = reformulate(text, request.type)
    except ReformulationError as e:
        return JSONResponse(status_code=500, content={"error": str(e)})

    return JSONResponse(status_code=200, content={"rapport_reformule": result})
