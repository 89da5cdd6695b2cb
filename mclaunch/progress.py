"""Progress events emitted during prepare and launch."""

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Optional

from pydantic import BaseModel, Field

log = logging.getLogger(__name__)


class Stage(str, Enum):
    STARTING = "starting"
    MANIFEST = "manifest"
    VERSION = "version"
    FORGE = "forge"
    FABRIC = "fabric"
    CLIENT = "client"
    ASSETS = "assets"
    LIBRARIES = "libraries"
    MODS = "mods"
    JAVA = "java"
    READY = "ready"
    DOWNLOAD_COMPLETE = "download_complete"
    LAUNCHED = "launched"
    CLOSED = "closed"
    CRASHED = "crashed"
    ERROR = "error"


class ProgressEvent(BaseModel):
    instanceId: str
    stage: Stage
    percent: int = Field(ge=0, le=100)
    message: str = ""


ProgressSink = Callable[[ProgressEvent], Any]

# Stages after which a launched game emits nothing more.
GAME_EXIT_STAGES = (Stage.CLOSED, Stage.CRASHED, Stage.ERROR)


class ProgressReporter:
    """Binds a sink to one instance id; a missing sink makes every emit a no-op."""

    def __init__(self, sink: Optional[ProgressSink] = None, instance_id: str = ""):
        self.sink = sink
        self.instance_id = instance_id

    def emit(self, stage: Stage, percent: int, message: str = "") -> None:
        percent = max(0, min(100, int(percent)))
        log.debug("[%s] %s %d%% %s", self.instance_id, stage.value, percent, message)
        if self.sink is None:
            return
        event = ProgressEvent(instanceId=self.instance_id, stage=stage, percent=percent, message=message)
        try:
            self.sink(event)
        except Exception:
            log.warning("Progress sink rejected event %s", event, exc_info=True)

    def error(self, message: str) -> None:
        self.emit(Stage.ERROR, 100, message)


class QueueSink:
    """Channel-style sink backed by an ``asyncio.Queue``.

    Safe to call from the process monitor thread: events are handed to the
    loop the sink was created on.
    """

    def __init__(self, queue: Optional[asyncio.Queue] = None,
                 loop: Optional[asyncio.AbstractEventLoop] = None):
        self.queue = queue if queue is not None else asyncio.Queue()
        if loop is None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                loop = None
        self._loop = loop

    def __call__(self, event: ProgressEvent) -> None:
        if self._loop is None or self._loop.is_closed():
            self.queue.put_nowait(event)
        else:
            self._loop.call_soon_threadsafe(self.queue.put_nowait, event)

    async def get(self) -> ProgressEvent:
        return await self.queue.get()
