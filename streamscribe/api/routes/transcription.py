"""
Transcription API endpoints.

Handles:
- Batch transcription of an uploaded file
- Streaming transcription of an uploaded file as NDJSON (one StreamingChunk
  per line, a terminal {"error": ...} line on failure)
"""

import json
import logging
import tempfile
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import APIRouter, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import StreamingResponse

from streamscribe.core.errors import (
    AudioProcessingError,
    ConfigurationError,
    DecodeError,
    StreamScribeError,
    TranscriberBusyError,
)

logger = logging.getLogger(__name__)

router = APIRouter()

DEFAULT_MAX_UPLOAD_MB = 512


def http_error(error: StreamScribeError) -> HTTPException:
    """Map a pipeline error onto an HTTP status."""
    if isinstance(error, TranscriberBusyError):
        return HTTPException(status_code=409, detail=str(error))
    if isinstance(error, (AudioProcessingError, DecodeError)):
        return HTTPException(status_code=400, detail=str(error))
    if isinstance(error, ConfigurationError):
        return HTTPException(status_code=503, detail=str(error))
    return HTTPException(status_code=500, detail=str(error))


def _get_transcriber(request: Request) -> Any:
    transcriber = getattr(request.app.state, "transcriber", None)
    if transcriber is None:
        raise HTTPException(status_code=503, detail="Transcription model not loaded")
    return transcriber


def _max_upload_bytes(request: Request) -> int:
    app_config = getattr(request.app.state, "config", None)
    max_mb = DEFAULT_MAX_UPLOAD_MB
    if app_config is not None:
        max_mb = app_config.get("api", "max_upload_mb", default=DEFAULT_MAX_UPLOAD_MB)
    return int(max_mb * 1024 * 1024)


async def _save_upload(request: Request, file: UploadFile) -> Path:
    """Write the upload to a temp file, enforcing the size limit."""
    if not file.filename:
        raise HTTPException(status_code=400, detail="No file provided")

    content = await file.read()
    limit = _max_upload_bytes(request)
    if len(content) > limit:
        raise HTTPException(
            status_code=413,
            detail=f"File too large ({len(content)} bytes, limit {limit} bytes)",
        )

    suffix = Path(file.filename).suffix or ".wav"
    with tempfile.NamedTemporaryFile(delete=False, suffix=suffix) as tmp:
        tmp.write(content)
        return Path(tmp.name)


def _cleanup(tmp_path: Path) -> None:
    try:
        tmp_path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Failed to cleanup temp file {tmp_path}: {e}")


@router.post("/file")
async def transcribe_file(
    request: Request,
    file: UploadFile = File(...),
    language: Optional[str] = Form(None),
) -> Dict[str, Any]:
    """
    Transcribe an uploaded audio file in one pass.

    Returns 409 Conflict if another transcription is already running.
    """
    transcriber = _get_transcriber(request)
    tmp_path = await _save_upload(request, file)

    try:
        logger.info(f"Transcribing uploaded file: {file.filename}")
        result = await transcriber.transcribe_batch(tmp_path, language=language)
        return result.to_dict()

    except StreamScribeError as e:
        logger.warning(f"Transcription of {file.filename} failed: {e}")
        raise http_error(e) from e

    except Exception as e:
        logger.error(f"Transcription failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e)) from e

    finally:
        _cleanup(tmp_path)


def _ndjson(payload: Dict[str, Any]) -> str:
    return json.dumps(payload) + "\n"


@router.post("/stream")
async def transcribe_stream(
    request: Request,
    file: UploadFile = File(...),
    language: Optional[str] = Form(None),
) -> StreamingResponse:
    """
    Transcribe an uploaded file chunk by chunk, streaming NDJSON lines.

    Errors raised before the first chunk (busy session, unreadable file) are
    returned as regular HTTP errors. Later errors end the stream with an
    ``{"error": ..., "status_code": ...}`` line.
    """
    transcriber = _get_transcriber(request)
    tmp_path = await _save_upload(request, file)
    stream = transcriber.transcribe_stream(tmp_path, language=language)

    try:
        first = await stream.__anext__()
    except StopAsyncIteration:
        first = None
    except StreamScribeError as e:
        await stream.aclose()
        _cleanup(tmp_path)
        logger.warning(f"Streaming transcription of {file.filename} failed: {e}")
        raise http_error(e) from e
    except Exception as e:
        await stream.aclose()
        _cleanup(tmp_path)
        logger.error(f"Streaming transcription failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e)) from e

    async def body() -> AsyncIterator[str]:
        try:
            if first is None:
                return
            yield _ndjson(first.to_dict())
            async for chunk in stream:
                yield _ndjson(chunk.to_dict())
        except StreamScribeError as e:
            logger.warning(f"Streaming transcription of {file.filename} ended early: {e}")
            yield _ndjson({"error": str(e), "status_code": http_error(e).status_code})
        except Exception as e:
            logger.error(f"Streaming transcription failed: {e}", exc_info=True)
            yield _ndjson({"error": str(e), "status_code": 500})
        finally:
            await stream.aclose()
            _cleanup(tmp_path)

    logger.info(f"Streaming transcription of uploaded file: {file.filename}")
    return StreamingResponse(body(), media_type="application/x-ndjson")
