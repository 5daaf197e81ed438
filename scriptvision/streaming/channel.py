"""
ScriptVision Delivery Channel

Wraps a generation run in a lazy, finite sequence of StreamEvents:

    init → estimates → (progress | image | error | heartbeat)* → complete

The channel owns the per-project lock for the life of the stream and
releases it, together with the bootstrap session, on every exit path:
normal completion, client disconnect, hard timeout and server error.
It has no HTTP dependency; the router serializes events with to_sse().
"""

import asyncio
import time
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional, Set

import psutil

from scriptvision.core.config import StreamingConfig
from scriptvision.core.constants import StreamErrorCode, StreamEventType
from scriptvision.core.exceptions import PlanningError, ScriptVisionError
from scriptvision.core.logging_config import get_logger
from scriptvision.pipelines.image_worker import ImageGenerationWorker
from scriptvision.pipelines.models import FailedScene, GeneratedImage, ProgressUpdate, ScriptInput
from scriptvision.pipelines.script_images import GenerationSummary, ScriptImagesService
from scriptvision.streaming.events import StreamEvent, error_event
from scriptvision.streaming.sessions import GenerationLockManager, SessionManager

logger = get_logger("streaming.channel")

DisconnectProbe = Callable[[], Awaitable[bool]]

# Queue sentinel marking the end of the worker's events
_DONE = None


def memory_usage() -> Dict[str, float]:
    """Resident and virtual memory of this process in MB."""
    info = psutil.Process().memory_info()
    return {
        "rssMB": round(info.rss / (1024 * 1024), 1),
        "vmsMB": round(info.vms / (1024 * 1024), 1),
    }


async def error_stream(code: StreamErrorCode, message: str) -> AsyncIterator[StreamEvent]:
    """A stream consisting of a single fatal error event."""
    yield error_event(code, message)


class _StreamCleanup:
    """Releases the stream's resources exactly once."""

    def __init__(
        self,
        channel: "DeliveryChannel",
        project_id: str,
        session_id: Optional[str],
    ):
        self._channel = channel
        self._project_id = project_id
        self._session_id = session_id
        self.worker: Optional[ImageGenerationWorker] = None
        self._done = False

    async def run(self, reason: str) -> None:
        if self._done:
            return
        self._done = True
        if self.worker is not None:
            self.worker.cancel()
        await self._channel.locks.release(self._project_id)
        if self._session_id:
            await self._channel.sessions.delete(self._session_id)
        logger.info(f"Stream for project {self._project_id} closed ({reason})")


class DeliveryChannel:
    """
    Streams a generation run as typed events.

    Usage:
        channel = DeliveryChannel(service, sessions, locks)
        async for event in channel.stream(request, user_id):
            send(event.to_sse())
    """

    def __init__(
        self,
        service: ScriptImagesService,
        sessions: SessionManager,
        locks: GenerationLockManager,
        config: Optional[StreamingConfig] = None,
    ):
        self.service = service
        self.sessions = sessions
        self.locks = locks
        self.config = config or StreamingConfig()
        self._tasks: Set[asyncio.Task] = set()

    async def _heartbeat(self, request: ScriptInput, started: float) -> StreamEvent:
        return StreamEvent(type=StreamEventType.HEARTBEAT, data={
            "projectId": request.project_id,
            "elapsedSeconds": round(time.monotonic() - started, 1),
            "activeSessions": await self.sessions.count(),
            "activeGenerations": await self.locks.active_count(),
            "memory": memory_usage(),
        })

    def _spawn(self, coro: Awaitable[Any]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _produce(
        self,
        request: ScriptInput,
        worker: ImageGenerationWorker,
        queue: "asyncio.Queue[Optional[StreamEvent]]",
    ) -> None:
        """Run generation, translating callbacks into queued events."""

        def on_progress(update: ProgressUpdate) -> None:
            queue.put_nowait(StreamEvent(type=StreamEventType.PROGRESS, data=update.to_dict()))

        def on_image(image: GeneratedImage, progress: Dict[str, int]) -> None:
            queue.put_nowait(StreamEvent(type=StreamEventType.IMAGE, data={
                "image": image.to_dict(),
                "progress": progress,
            }))

        def on_error(failure: FailedScene) -> None:
            queue.put_nowait(error_event(
                StreamErrorCode.SCENE_FAILED,
                failure.error,
                fatal=False,
                **failure.to_dict(),
            ))

        def on_fallback(reason: str) -> None:
            queue.put_nowait(error_event(
                StreamErrorCode.PLANNER_FALLBACK,
                f"Generative planning unavailable, using heuristic scenes: {reason}",
                fatal=False,
            ))

        try:
            summary: GenerationSummary = await self.service.run_generation(
                request,
                worker=worker,
                on_progress=on_progress,
                on_image=on_image,
                on_error=on_error,
                on_fallback=on_fallback,
            )
            if not worker.cancelled:
                data = summary.to_dict()
                data["message"] = "Image generation completed"
                queue.put_nowait(StreamEvent(type=StreamEventType.COMPLETE, data=data))
        except PlanningError as e:
            logger.error(f"Planning failed for project {request.project_id}: {e}")
            queue.put_nowait(error_event(StreamErrorCode.PLANNING_FAILED, e.message))
        except ScriptVisionError as e:
            logger.error(f"Generation failed for project {request.project_id}: {e}")
            queue.put_nowait(error_event(StreamErrorCode.INTERNAL_ERROR, e.message))
        except Exception as e:
            logger.exception(f"Unexpected error generating project {request.project_id}")
            queue.put_nowait(error_event(StreamErrorCode.INTERNAL_ERROR, f"Generation failed: {e}"))
        finally:
            queue.put_nowait(_DONE)

    async def stream(
        self,
        request: ScriptInput,
        user_id: str,
        session_id: Optional[str] = None,
        is_disconnected: Optional[DisconnectProbe] = None,
    ) -> AsyncIterator[StreamEvent]:
        """
        Validate, lock, generate and yield events until the run ends.

        Args:
            request: Generation parameters
            user_id: Authenticated caller
            session_id: Bootstrap session to consume, if any
            is_disconnected: Async probe for client disconnects

        Yields:
            StreamEvents; the sequence is finite and cannot be restarted
        """
        validation = self.service.validate_input(request)
        if not validation.is_valid:
            if session_id:
                await self.sessions.delete(session_id)
            yield error_event(
                StreamErrorCode.INVALID_PARAMETERS,
                "Invalid parameters",
                errors=validation.errors,
            )
            return

        try:
            worker = self.service.create_worker()
        except ScriptVisionError as e:
            logger.error(f"Cannot start generation: {e}")
            yield error_event(StreamErrorCode.INTERNAL_ERROR, e.message)
            return

        project_id = request.project_id
        if not await self.locks.acquire(project_id, user_id, session_id):
            yield error_event(
                StreamErrorCode.GENERATION_IN_PROGRESS,
                "Image generation already in progress for this project",
                projectId=project_id,
            )
            return

        cleanup = _StreamCleanup(self, project_id, session_id)
        started = time.monotonic()
        reason = "completed"
        try:
            cleanup.worker = worker
            queue: "asyncio.Queue[Optional[StreamEvent]]" = asyncio.Queue()

            yield StreamEvent(type=StreamEventType.INIT, data={
                "message": "Starting image generation...",
                "projectId": project_id,
                "sessionId": session_id,
            })
            estimates = self.service.estimate(request).to_dict()
            estimates["warnings"] = validation.warnings
            yield StreamEvent(type=StreamEventType.ESTIMATES, data=estimates)

            self._spawn(self._produce(request, cleanup.worker, queue))
            logger.info(f"Streaming generation for project {project_id} (user {user_id})")

            last_heartbeat = started
            while True:
                if is_disconnected is not None and await is_disconnected():
                    reason = "client disconnected"
                    break

                now = time.monotonic()
                remaining = self.config.max_connection_seconds - (now - started)
                if remaining <= 0:
                    reason = "connection time limit"
                    logger.warning(f"Stream for project {project_id} hit the connection time limit")
                    yield error_event(
                        StreamErrorCode.STREAM_TIMEOUT,
                        "Connection time limit reached; generation stopped",
                    )
                    break

                # Heartbeats are periodic whether or not other events are flowing
                if now - last_heartbeat >= self.config.heartbeat_interval:
                    last_heartbeat = now
                    yield await self._heartbeat(request, started)
                    continue

                try:
                    event = await asyncio.wait_for(
                        queue.get(),
                        timeout=min(self.config.heartbeat_interval - (now - last_heartbeat), remaining),
                    )
                except asyncio.TimeoutError:
                    continue

                if event is _DONE:
                    break
                yield event
                if event.is_fatal_error:
                    reason = "failed"
        except asyncio.CancelledError:
            reason = "cancelled"
            raise
        except GeneratorExit:
            reason = "client disconnected"
            raise
        finally:
            await cleanup.run(reason)

    async def shutdown(self) -> None:
        """Cancel outstanding producer tasks."""
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
