# aviator_sim/infrastructure/scheduling/scheduler.py
import heapq
import itertools
import logging
import math
from typing import Callable, Dict, List, Optional, Protocol, Tuple


FrameCallback = Callable[[float], None]
TimerCallback = Callable[[], None]


class Scheduler(Protocol):
    """
    Time source driving a game session.

    Frames behave like animation frames: a requested callback runs once, at
    the next frame boundary, with the frame time in milliseconds. Timers run
    once after a delay. Both can be cancelled before they fire.
    """

    def now(self) -> float:
        ...

    def request_frame(self, callback: FrameCallback) -> int:
        ...

    def cancel_frame(self, handle: int) -> None:
        ...

    def call_later(self, delay_ms: float, callback: TimerCallback) -> int:
        ...

    def cancel(self, handle: int) -> None:
        ...


class VirtualScheduler:
    """
    Deterministic single-threaded scheduler on a virtual clock.

    Nothing runs until ``run`` (or ``advance``) is called; the clock then
    jumps from event to event, so a whole auto-play session completes in
    a fraction of the wall-clock time it would take in a browser.
    """
    DEFAULT_FRAME_INTERVAL_MS = 1000.0 / 60.0

    def __init__(self, frame_interval_ms: float = DEFAULT_FRAME_INTERVAL_MS, start_ms: float = 0.0):
        if frame_interval_ms <= 0:
            raise ValueError("frame_interval_ms must be positive")
        self.logger = logging.getLogger("infrastructure.scheduling.virtual")
        self.frame_interval_ms = frame_interval_ms
        self._now = float(start_ms)
        self._origin_ms = float(start_ms)
        self._frame_index = 0  # 已执行的最后一帧的序号，只增不减
        self._handles = itertools.count(1)
        self._frames: Dict[int, FrameCallback] = {}
        self._timers: List[Tuple[float, int]] = []  # (due, handle) heap
        self._timer_callbacks: Dict[int, TimerCallback] = {}
        self.frames_run = 0
        self.timers_run = 0

    def now(self) -> float:
        return self._now

    def request_frame(self, callback: FrameCallback) -> int:
        handle = next(self._handles)
        self._frames[handle] = callback
        return handle

    def cancel_frame(self, handle: int) -> None:
        self._frames.pop(handle, None)

    def call_later(self, delay_ms: float, callback: TimerCallback) -> int:
        handle = next(self._handles)
        heapq.heappush(self._timers, (self._now + max(0.0, delay_ms), handle))
        self._timer_callbacks[handle] = callback
        return handle

    def cancel(self, handle: int) -> None:
        # 堆中的条目在弹出时跳过
        self._timer_callbacks.pop(handle, None)

    def has_pending(self) -> bool:
        return bool(self._frames) or bool(self._timer_callbacks)

    def _frame_time(self, index: int) -> float:
        return self._origin_ms + index * self.frame_interval_ms

    def _next_frame(self) -> Tuple[int, float]:
        """
        Index and time of the next frame boundary strictly after ``now``.

        Boundaries are computed from an integer frame index, so float
        rounding of ``now / interval`` can never yield a frame at ``now``
        again.
        """
        elapsed_frames = math.floor((self._now - self._origin_ms) / self.frame_interval_ms)
        index = max(self._frame_index, elapsed_frames) + 1
        while self._frame_time(index) <= self._now:
            index += 1
        return index, self._frame_time(index)

    def _next_timer(self) -> Optional[Tuple[float, int]]:
        while self._timers and self._timers[0][1] not in self._timer_callbacks:
            heapq.heappop(self._timers)
        return self._timers[0] if self._timers else None

    def run(self, until_ms: Optional[float] = None, max_steps: Optional[int] = None) -> int:
        """
        Process frames and timers in time order.

        Args:
            until_ms: Stop before anything due after this virtual time
            max_steps: Stop after this many frames/timers

        Returns:
            Number of steps (frame batches plus timers) executed
        """
        steps = 0
        while self.has_pending():
            if max_steps is not None and steps >= max_steps:
                break

            timer = self._next_timer()
            frame_index, frame_at = self._next_frame() if self._frames else (None, math.inf)
            timer_at = timer[0] if timer else math.inf
            due = min(frame_at, timer_at)

            if until_ms is not None and due > until_ms:
                self._now = max(self._now, until_ms)
                break

            self._now = max(self._now, due)
            if timer is not None and timer_at <= frame_at:
                heapq.heappop(self._timers)
                callback = self._timer_callbacks.pop(timer[1])
                self.timers_run += 1
                callback()
            else:
                # 本帧内新请求的帧在下一帧执行
                frames, self._frames = self._frames, {}
                self._frame_index = frame_index
                self.frames_run += 1
                for callback in frames.values():
                    callback(self._now)
            steps += 1

        if until_ms is not None and not self.has_pending():
            self._now = max(self._now, until_ms)
        return steps

    def advance(self, delta_ms: float) -> int:
        return self.run(until_ms=self._now + delta_ms)
