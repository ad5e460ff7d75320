"""Upload: stage the `email` file part, relay it to VirusTotal, map the outcome to a response."""
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse, Response

from scan_relay.api.schemas import (
    ErrorResponse,
    ErrorWithMessageResponse,
    PayloadTooLargeResponse,
    UpstreamErrorResponse,
)
from scan_relay.core.config import UPLOAD_FIELD_NAME, Settings
from scan_relay.core.deps import get_app_settings, get_relay
from scan_relay.services.staging import (
    MalformedUpload,
    NoFileProvided,
    PayloadTooLarge,
    TooManyFiles,
    max_request_bytes,
    staged_upload,
)
from scan_relay.services.virustotal import (
    InternalError,
    ScanOutcome,
    ScanSucceeded,
    UpstreamHttpError,
    UpstreamUnreachable,
    VirusTotalClient,
)

router = APIRouter(tags=["scan"])
logger = logging.getLogger(__name__)


def outcome_to_response(outcome: ScanOutcome) -> Response:
    if isinstance(outcome, ScanSucceeded):
        # Relay upstream bytes untouched.
        return Response(content=outcome.raw, media_type="application/json")
    if isinstance(outcome, UpstreamHttpError):
        return JSONResponse(
            status_code=outcome.status_code,
            content={"error": f"VirusTotal API error: {outcome.status_code}", "details": outcome.body},
        )
    if isinstance(outcome, UpstreamUnreachable):
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"error": "Unable to connect to VirusTotal API"},
        )
    if isinstance(outcome, InternalError):
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "An error occurred during the scan.", "message": outcome.message},
        )
    raise TypeError(f"Unknown scan outcome: {outcome!r}")


def _too_large(limit_bytes: int) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_413_CONTENT_TOO_LARGE,
        content={"error": "File too large.", "limit_bytes": limit_bytes},
    )


@router.post(
    "/upload",
    responses={
        400: {"model": ErrorResponse},
        413: {"model": PayloadTooLargeResponse},
        500: {"model": ErrorWithMessageResponse},
        503: {"model": ErrorResponse},
        "default": {"model": UpstreamErrorResponse, "description": "Non-2xx VirusTotal status, relayed as-is"},
    },
)
async def upload(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    relay: VirusTotalClient = Depends(get_relay),
):
    """Scan one file (multipart field `email`) with VirusTotal and return its JSON verdict verbatim."""
    declared_length = request.headers.get("content-length", "")
    if declared_length.isdigit() and int(declared_length) > max_request_bytes(settings.max_upload_bytes):
        logger.warning("Rejecting upload with Content-Length %s before reading it", declared_length)
        return _too_large(settings.max_upload_bytes)
    try:
        async with staged_upload(
            request.stream(),
            request.headers.get("content-type", ""),
            UPLOAD_FIELD_NAME,
            settings.max_upload_bytes,
            settings.upload_tmp_dir,
        ) as staged:
            if not staged.storage_path.is_file():
                logger.error("Staged file missing for %s", staged.original_filename)
                return JSONResponse(
                    status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                    content={"error": "File upload failed."},
                )
            outcome = await relay.submit(staged)
            return outcome_to_response(outcome)
    except NoFileProvided:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No file uploaded.")
    except TooManyFiles:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Only one file may be uploaded.")
    except MalformedUpload as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except PayloadTooLarge as e:
        return _too_large(e.limit_bytes)
