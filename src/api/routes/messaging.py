# api/routes/messaging.py

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from api.dependencies import verify_bearer
from connectors.base import MissingCredentialsError, UpstreamAPIError
from services import sms
from services.notification import EmailError, send_report_email

router = APIRouter(dependencies=[Depends(verify_bearer)])
logger = logging.getLogger(__name__)


class SendSmsRequest(BaseModel):
    to: Optional[str] = None
    message: Optional[str] = None
    savData: Optional[dict] = None
    type: Optional[str] = None


class SendEmailRequest(BaseModel):
    to: Optional[str] = None
    subject: Optional[str] = None
    body: Optional[str] = None
    attachmentBase64: Optional[str] = None
    attachmentName: Optional[str] = None
    signatureBase64: Optional[str] = None


# ─────────────────────────────────────────
# SMS
# ─────────────────────────────────────────

@router.post("/send-sms")
def send_sms(request: SendSmsRequest) -> JSONResponse:
    """Toute erreur (validation, config, Twilio) → 500 {success: false, error}."""
    try:
        result = sms.send_sms(
            request.to,
            message=request.message,
            sav_data=request.savData,
            sms_type=request.type,
        )
        return JSONResponse(status_code=200, content=result)

    except MissingCredentialsError as e:
        logger.error(f"Configuration Twilio absente : {e}")
        error = "Missing Twilio configuration"
    except UpstreamAPIError as e:
        logger.error(f"Erreur API Twilio : {e.text}")
        error = f"Twilio API error: {e.status}"
    except sms.SMSError as e:
        error = str(e)
    except Exception as e:
        logger.exception(f"Erreur envoi SMS : {e}")
        error = str(e)

    return JSONResponse(status_code=500, content={"success": False, "error": error})


# ─────────────────────────────────────────
# EMAIL
# ─────────────────────────────────────────

@router.post("/send-email")
def send_email(request: SendEmailRequest) -> JSONResponse:
    try:
        email_id = send_report_email(
            request.to,
            request.subject,
            request.body,
            attachment_base64=request.attachmentBase64,
            attachment_name=request.attachmentName,
            signature_base64=request.signatureBase64,
        )
    except EmailError as e:
        content = {"error": str(e)}
        if e.details is not None:
            content["details"] = e.details
            content["status"] = e.status
        return JSONResponse(status_code=e.status, content=content)
    except Exception as e:
        logger.exception(f"Erreur envoi email : {e}")
        return JSONResponse(status_code=500, content={"error": str(e)})

    return JSONResponse(
        status_code=200,
        content={"success": True, "data": {"id": email_id}}
    )
