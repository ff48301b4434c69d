# api/routes/extrabat.py

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from api.dependencies import verify_bearer
from services.extrabat_proxy import handle_proxy_request

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/extrabat-proxy", dependencies=[Depends(verify_bearer)])
async def extrabat_proxy(request: Request) -> JSONResponse:
    """
    Proxy vers l'API Extrabat.
    Le corps est routé par handle_proxy_request (action / endpoint / rendez-vous).
    """
    try:
        body = await request.json()
    except ValueError:
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "Payload invalide"}
        )

    if not isinstance(body, dict):
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "Payload invalide"}
        )

    # requests + client Supabase sync : hors de la boucle d'événements
    status, payload = await run_in_threadpool(handle_proxy_request, body)
    return JSONResponse(status_code=status, content=payload)
