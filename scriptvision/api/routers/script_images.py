"""Script-to-images router for the ScriptVision API.

Single-response generation, the two-step event-stream protocol
(POST bootstrap, then GET stream), estimates, validation and status.
"""

import math
from typing import Any, AsyncIterator, Optional

from fastapi import APIRouter, Depends, Header, Query, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field
from slowapi import Limiter
from slowapi.util import get_remote_address

from scriptvision.api.auth import get_current_user, resolve_stream_user
from scriptvision.core.config import get_config
from scriptvision.core.constants import DEFAULT_MAX_IMAGES_PER_MINUTE, PlannerMode, StreamErrorCode
from scriptvision.core.exceptions import AuthenticationError, InputValidationError, ScriptVisionError
from scriptvision.core.logging_config import get_logger, project_logger
from scriptvision.pipelines.models import ScriptInput
from scriptvision.streaming.channel import error_stream
from scriptvision.streaming.events import StreamEvent

logger = get_logger("api.script_images")

router = APIRouter()

# Rate limiter for the endpoints that spend provider credit
limiter = Limiter(key_func=get_remote_address)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # Disable nginx buffering
}


def _generation_rate_limit() -> str:
    return get_config().server.rate_limit


class ScriptImagesRequest(BaseModel):
    """Generation parameters. Types are checked by the service so every problem is reported at once."""
    script: Optional[Any] = None
    duration: Optional[Any] = None
    max_images_per_minute: Optional[Any] = Field(DEFAULT_MAX_IMAGES_PER_MINUTE, alias="maxImagesPerMin")
    project_id: Optional[Any] = Field(None, alias="projectId")
    audio_duration: Optional[Any] = Field(None, alias="audioDuration")
    planner: Optional[str] = PlannerMode.HEURISTIC.value

    model_config = {"populate_by_name": True}


def _state(request: Request):
    return request.app.state


def _to_script_input(service, body: ScriptImagesRequest) -> ScriptInput:
    """Validate request values and build a ScriptInput, or raise InputValidationError."""
    validation = service.validate_params(
        body.script,
        body.duration,
        body.max_images_per_minute,
        body.project_id,
        body.audio_duration,
    )
    errors = list(validation.errors)
    try:
        planner = PlannerMode(body.planner or PlannerMode.HEURISTIC.value)
    except ValueError:
        errors.append("Planner must be 'heuristic' or 'generative'")
        planner = PlannerMode.HEURISTIC

    if errors:
        raise InputValidationError(errors, validation.warnings)

    for warning in validation.warnings:
        project_logger(logger, body.project_id).warning(warning)

    return ScriptInput(
        script=body.script,
        duration=body.duration,
        project_id=body.project_id,
        max_images_per_minute=int(body.max_images_per_minute),
        audio_duration=body.audio_duration,
        planner=planner,
    )


def _parse_number(value: Optional[str]) -> Any:
    """Query strings to numbers; unparseable or non-finite values pass through for validation to reject."""
    if value is None or value == "":
        return None
    try:
        number = float(value)
    except ValueError:
        return value
    if not math.isfinite(number):
        return value
    return int(number) if number.is_integer() else number


async def _sse(events: AsyncIterator[StreamEvent]) -> AsyncIterator[str]:
    async for event in events:
        yield event.to_sse()


def _event_stream(events: AsyncIterator[StreamEvent]) -> StreamingResponse:
    return StreamingResponse(_sse(events), media_type="text/event-stream", headers=SSE_HEADERS)


@router.post("/generate", status_code=201)
@limiter.limit(_generation_rate_limit)
async def generate_script_images(
    request: Request,
    body: ScriptImagesRequest,
    user_id: str = Depends(get_current_user),
):
    """Generate every image and return them in one response.

    Runs the same pipeline as the stream (planning, duration filter and
    project lock included); only the response shape differs.
    """
    state = _state(request)
    script_input = _to_script_input(state.service, body)

    logger.info(f"Generating images for project {script_input.project_id} (user {user_id})")
    async with state.locks.hold(script_input.project_id, user_id):
        data = await state.service.generate(script_input)

    return {
        "success": True,
        "message": f"Generated {data['totalImages']} images",
        "data": data,
    }


@router.post("/generate-stream")
@limiter.limit(_generation_rate_limit)
async def initialize_stream(
    request: Request,
    body: ScriptImagesRequest,
    user_id: str = Depends(get_current_user),
):
    """Store generation parameters and return the session id for the stream call."""
    state = _state(request)
    script_input = _to_script_input(state.service, body)
    session = await state.sessions.create(script_input, user_id)

    return {
        "success": True,
        "sessionId": session.session_id,
        "message": "SSE session ready",
    }


@router.get("/generate-stream")
async def stream_script_images(
    request: Request,
    session_id: Optional[str] = Query(None, alias="sessionId"),
    script: Optional[str] = None,
    duration: Optional[str] = None,
    max_images_per_minute: Optional[str] = Query(None, alias="maxImagesPerMin"),
    project_id: Optional[str] = Query(None, alias="projectId"),
    audio_duration: Optional[str] = Query(None, alias="audioDuration"),
    planner: Optional[str] = None,
    token: Optional[str] = None,
    authorization: Optional[str] = Header(None),
):
    """Stream generation events.

    Event types:
    - init: generation accepted
    - estimates: expected image count and processing time
    - progress: a scene is about to be generated
    - image: a scene image is ready
    - error: per-scene (fatal=false) or run-ending (fatal=true) failure
    - heartbeat: keep-alive with server metadata
    - complete: final summary

    Authentication failures are reported as an error event because the
    response headers are already committed to text/event-stream.
    """
    state = _state(request)

    try:
        user_id = resolve_stream_user(token, authorization, state.config.auth)
    except AuthenticationError as e:
        logger.warning(f"Stream auth failed: {e.message}")
        return _event_stream(error_stream(StreamErrorCode.AUTH_FAILED, e.message))
    except ScriptVisionError as e:
        logger.error(f"Stream auth unavailable: {e}")
        return _event_stream(error_stream(StreamErrorCode.AUTH_FAILED, "Authentication unavailable"))

    if session_id:
        session = await state.sessions.get(session_id)
        if session is None:
            return _event_stream(error_stream(
                StreamErrorCode.SESSION_NOT_FOUND, "Session not found or expired",
            ))
        if session.user_id != user_id:
            return _event_stream(error_stream(
                StreamErrorCode.AUTH_FAILED, "Session belongs to another user",
            ))
        script_input = session.request
    else:
        try:
            planner_mode = PlannerMode(planner or PlannerMode.HEURISTIC.value)
        except ValueError:
            return _event_stream(error_stream(
                StreamErrorCode.INVALID_PARAMETERS, "Planner must be 'heuristic' or 'generative'",
            ))
        rate = _parse_number(max_images_per_minute)
        script_input = ScriptInput(
            script=script,
            duration=_parse_number(duration),
            project_id=project_id,
            max_images_per_minute=DEFAULT_MAX_IMAGES_PER_MINUTE if rate is None else rate,
            audio_duration=_parse_number(audio_duration),
            planner=planner_mode,
        )

    if script_input.project_id and await state.locks.is_generating(script_input.project_id):
        logger.warning(f"Rejected duplicate stream for project {script_input.project_id}")
        return JSONResponse(status_code=409, content={
            "success": False,
            "message": "Image generation already in progress for this project",
            "code": StreamErrorCode.GENERATION_IN_PROGRESS.value,
        })

    events = state.channel.stream(
        script_input,
        user_id,
        session_id=session_id,
        is_disconnected=request.is_disconnected,
    )
    return _event_stream(events)


@router.post("/estimate")
async def estimate_generation(
    request: Request,
    body: ScriptImagesRequest,
    user_id: str = Depends(get_current_user),
):
    """Expected image count, processing time and chunking for a request."""
    state = _state(request)
    script_input = _to_script_input(state.service, body)
    return {"success": True, "data": state.service.estimate(script_input).to_dict()}


@router.post("/validate")
async def validate_parameters(
    request: Request,
    body: ScriptImagesRequest,
    user_id: str = Depends(get_current_user),
):
    """Report validation errors and warnings without generating anything."""
    state = _state(request)
    validation = state.service.validate_params(
        body.script,
        body.duration,
        body.max_images_per_minute,
        body.project_id,
        body.audio_duration,
    )
    return {"success": True, "data": validation.to_dict()}


@router.get("/status/{project_id}")
async def generation_status(
    project_id: str,
    request: Request,
    user_id: str = Depends(get_current_user),
):
    """Whether a generation is currently running for a project."""
    state = _state(request)
    return {
        "success": True,
        "projectId": project_id,
        "isGenerating": await state.locks.is_generating(project_id),
    }
