import logging
from typing import Any, Awaitable, Callable, Dict

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from app.errors import (
    ConfigurationError,
    ProviderError,
    ValidationError,
    parse_int_field,
    validate_request_body,
)
from app.schemas.chat import Message
from app.services.rag import RagService, get_rag_service
from app.services.speech import SpeechService, get_speech_service
from app.services.video import VideoService, get_video_service

router = APIRouter(prefix="/ai", tags=["ai"])

logger = logging.getLogger("uvicorn.error")


def handle_api_error(error: Exception) -> JSONResponse:
    """Map an exception raised by an action handler to a JSON error response"""
    if isinstance(error, ValidationError):
        logger.warning("API validation error: %s", error)
        return JSONResponse(status_code=400, content={"error": str(error)})

    logger.error("API error: %r", error, exc_info=error)
    message = str(error) or "Internal server error"
    return JSONResponse(status_code=500, content={"error": message})


async def _read_json(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError:
        raise ValidationError("Invalid request body")


# -------------------- Action handlers --------------------

async def _index(body: dict, rag: RagService, speech: SpeechService) -> dict:
    validate_request_body(body, ["messages"])
    if not isinstance(body["messages"], list):
        raise ValidationError("messages must be a list")
    try:
        messages = [Message.model_validate(m) for m in body["messages"]]
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid messages: {e.errors()[0]['msg']}")

    await rag.index_messages(messages)
    return {"success": True}


async def _generate(body: dict, rag: RagService, speech: SpeechService) -> dict:
    validate_request_body(body, ["query", "channelId"])
    channel_id = parse_int_field(body["channelId"], "channelId")
    response = await rag.generate_response(body["query"], channel_id)
    return {"response": response}


async def _generate_dm(body: dict, rag: RagService, speech: SpeechService) -> dict:
    validate_request_body(body, ["query", "otherUserId", "botPrompt"])
    response = await rag.generate_dm_response(
        body["query"], body["otherUserId"], body["botPrompt"]
    )
    return {"response": response}


async def _process_pdf(body: dict, rag: RagService, speech: SpeechService) -> dict:
    validate_request_body(
        body,
        ["filePath", "fileId", "fileName", "channelId", "uploaderId", "uploaderName"],
    )
    num_chunks = await rag.process_pdf(
        file_path=body["filePath"],
        file_id=str(body["fileId"]),
        file_name=body["fileName"],
        channel_id=parse_int_field(body["channelId"], "channelId"),
        uploader_id=body["uploaderId"],
        uploader_name=body["uploaderName"],
    )
    return {"success": True, "numChunks": num_chunks}


async def _search(body: dict, rag: RagService, speech: SpeechService) -> dict:
    validate_request_body(body, ["query", "channelId"])
    channel_id = parse_int_field(body["channelId"], "channelId")
    results = await rag.query_messages(body["query"], channel_id)
    return {"results": [doc.to_result() for doc in results]}


async def _tts(body: dict, rag: RagService, speech: SpeechService) -> dict:
    validate_request_body(body, ["text"])
    audio = await speech.generate_speech(body["text"])
    return {"audio": audio}


ACTION_HANDLERS: Dict[str, Callable[[dict, RagService, SpeechService], Awaitable[dict]]] = {
    "index": _index,
    "generate": _generate,
    "generateDM": _generate_dm,
    "processPDF": _process_pdf,
    "search": _search,
    "tts": _tts,
}


# -------------------- Endpoints --------------------

@router.post("")
async def ai_action(
    request: Request,
    rag: RagService = Depends(get_rag_service),
    speech: SpeechService = Depends(get_speech_service),
):
    """
    Single action-based AI endpoint.

    Body is `{"action": ..., ...payload}` where action is one of
    index, generate, generateDM, processPDF, search or tts.
    """
    try:
        body = validate_request_body(await _read_json(request), ["action"])
        handler = ACTION_HANDLERS.get(body["action"])
        if handler is None:
            raise ValidationError(f"Invalid action: {body['action']}")
        return await handler(body, rag, speech)
    except Exception as e:
        return handle_api_error(e)


@router.post("/generate-video")
async def generate_video(
    request: Request,
    video: VideoService = Depends(get_video_service),
):
    """Render a talking-head video for `{"text": ...}` and return `{"videoUrl": ...}`"""
    try:
        body = await _read_json(request)
    except ValidationError as e:
        return JSONResponse(status_code=400, content={"error": str(e)})

    text = body.get("text") if isinstance(body, dict) else None
    if not text:
        return JSONResponse(status_code=400, content={"error": "Text is required"})

    try:
        video_url = await video.generate_video(text)
    except ProviderError as e:
        return JSONResponse(status_code=e.status_code, content={"error": str(e)})
    except ConfigurationError as e:
        return JSONResponse(status_code=500, content={"error": str(e)})
    except Exception:
        logger.exception("Video generation error")
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    return {"videoUrl": video_url}
