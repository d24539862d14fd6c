"""
HTTP trigger for the scheduled message dispatch job.
"""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse, Response

from app.usecases.dispatch_service import process_scheduled_messages

logger = logging.getLogger(__name__)
router = APIRouter()

DISPATCH_PATH = "/functions/process-scheduled-messages"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}


@router.options(DISPATCH_PATH)
async def dispatch_preflight():
    """Answer CORS pre-flight requests from browser callers."""
    return Response(status_code=200, headers=CORS_HEADERS)


@router.post(DISPATCH_PATH)
async def trigger_dispatch():
    """
    Process one batch of due scheduled messages.

    Returns the batch summary, or a 500 with the error when the batch
    could not be read.
    """
    logger.info("Dispatch triggered over HTTP")

    try:
        summary = await process_scheduled_messages()
    except Exception as e:
        logger.exception(f"Fatal error in process-scheduled-messages: {e}")
        return JSONResponse(status_code=500, content={"error": str(e)}, headers=CORS_HEADERS)

    return JSONResponse(content=summary.model_dump(), headers=CORS_HEADERS)
