"""Playback backends the lifecycle engine drives.

A backend renders one sound per call to :meth:`PlaybackBackend.play` and
reports completion through the ``on_ended`` / ``on_error`` callbacks, which it
must invoke from the event loop. ``play`` raises :class:`PlaybackFailure`
synchronously when rendering cannot even begin.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from bellhub.engine.errors import PlaybackFailure

logger = logging.getLogger(__name__)

STOP_GRACE_SECONDS = 2.0


@dataclass
class PlaybackHandle:
    query_id: str
    icom: str
    sound_name: str
    process: asyncio.subprocess.Process | None = None
    task: asyncio.Task | None = None
    reaper: asyncio.Task | None = None
    stopped: bool = False


class PlaybackBackend:
    """Interface of the external playback capability."""

    def play(
        self,
        query_id: str,
        sound_name: str,
        icom: str,
        volume: int,
        on_ended: Callable[[], None],
        on_error: Callable[[], None],
    ) -> PlaybackHandle:
        raise NotImplementedError

    def stop(self, handle: PlaybackHandle) -> None:
        raise NotImplementedError

    def set_volume(self, icom: str, level: int) -> None:
        raise NotImplementedError


class NullPlayback(PlaybackBackend):
    """Backend that renders nothing; queries end on their auto-finish timer."""

    def play(self, query_id, sound_name, icom, volume, on_ended, on_error) -> PlaybackHandle:
        logger.info(f"[null playback] {sound_name} on '{icom}' at volume {volume}")
        return PlaybackHandle(query_id=query_id, icom=icom, sound_name=sound_name)

    def stop(self, handle: PlaybackHandle) -> None:
        handle.stopped = True
        logger.debug(f"[null playback] stopped {handle.sound_name} on '{handle.icom}'")

    def set_volume(self, icom: str, level: int) -> None:
        logger.debug(f"[null playback] volume for '{icom}' set to {level}")


class FfplayPlayback(PlaybackBackend):
    """Render sound files from ``sounds_dir`` with an ``ffplay`` subprocess.

    Exit code 0 signals *ended*, anything else signals *error*. ffplay cannot
    change volume mid-play, so volume changes apply to the next sound.
    """

    def __init__(
        self,
        sounds_dir: Path,
        ffplay_path: str = "ffplay",
        stop_grace_seconds: float = STOP_GRACE_SECONDS,
    ) -> None:
        self.sounds_dir = Path(sounds_dir)
        self.ffplay_path = ffplay_path
        self.stop_grace_seconds = stop_grace_seconds

    def _resolve(self, sound_name: str) -> Path:
        try:
            path = (self.sounds_dir / sound_name).resolve()
            inside = self.sounds_dir.resolve() in path.parents
            exists = inside and path.is_file()
        except (OSError, RuntimeError) as e:
            raise PlaybackFailure(f"cannot resolve sound {sound_name}: {e}") from e
        if not inside:
            raise PlaybackFailure(f"sound outside sounds dir: {sound_name}")
        if not exists:
            raise PlaybackFailure(f"sound file missing: {sound_name}")
        return path

    def play(self, query_id, sound_name, icom, volume, on_ended, on_error) -> PlaybackHandle:
        path = self._resolve(sound_name)
        handle = PlaybackHandle(query_id=query_id, icom=icom, sound_name=sound_name)
        handle.task = asyncio.create_task(self._run(handle, path, volume, on_ended, on_error))
        return handle

    async def _run(
        self,
        handle: PlaybackHandle,
        path: Path,
        volume: int,
        on_ended: Callable[[], None],
        on_error: Callable[[], None],
    ) -> None:
        try:
            handle.process = await asyncio.create_subprocess_exec(
                self.ffplay_path,
                "-nodisp",
                "-autoexit",
                "-loglevel",
                "error",
                "-volume",
                str(max(0, min(100, volume))),
                str(path),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.warning(f"Failed to launch {self.ffplay_path} for {handle.sound_name}: {e}")
            if not handle.stopped:
                on_error()
            return

        if handle.stopped:
            self._terminate(handle)
            return

        _, stderr = await handle.process.communicate()
        if handle.stopped:
            return

        if handle.process.returncode == 0:
            on_ended()
        else:
            detail = stderr.decode(errors="replace").strip() if stderr else ""
            logger.warning(
                f"ffplay exited with {handle.process.returncode} for {handle.sound_name}: {detail}"
            )
            on_error()

    def _terminate(self, handle: PlaybackHandle) -> None:
        process = handle.process
        if process is None or process.returncode is not None:
            return
        try:
            process.terminate()
        except ProcessLookupError:
            return
        handle.reaper = asyncio.get_running_loop().create_task(self._reap(handle))

    async def _reap(self, handle: PlaybackHandle) -> None:
        """Kill the process if it outlives the grace period after terminate."""
        process = handle.process
        try:
            await asyncio.wait_for(process.wait(), timeout=self.stop_grace_seconds)
        except asyncio.TimeoutError:
            logger.warning(f"ffplay did not terminate, killing: {handle.sound_name}")
            try:
                process.kill()
            except ProcessLookupError:
                return
            await process.wait()

    def stop(self, handle: PlaybackHandle) -> None:
        handle.stopped = True
        self._terminate(handle)

    def set_volume(self, icom: str, level: int) -> None:
        logger.debug(f"Volume for '{icom}' set to {level}, applies from the next sound")
