"""
beatreactor - Performance Monitor
Closed-loop controller fed with measured frame durations. It steps a discrete
quality level (0.5-1.0) and switches between two target-FPS tiers.

Quality drops one step at a time but recovers to full in one jump. Tier
changes need a run of consecutive good or bad checks; readings in the
acceptable middle band wind both counters down instead of clearing them.
"""

import math
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np

from config import PerformanceConfig
from logging_utils import log_event


@dataclass
class ResizeConfig:
    """Caps for the (external) resolution scaling logic"""
    max_resolution_width: int
    max_resolution_height: int
    max_dpr: float
    quality_level: float


@dataclass
class PerformanceMetrics:
    avg_fps: float
    avg_frame_time_ms: float
    quality_level: float
    target_fps: float


class PerformanceMonitor:
    """Rolling-average FPS tracker driving quality and target FPS."""

    def __init__(self, config: Optional[PerformanceConfig] = None):
        self.config = config or PerformanceConfig()
        cfg = self.config
        self.enabled = cfg.enabled
        self.history_size = max(1, int(cfg.frame_history_size))
        self._durations = np.zeros(self.history_size, dtype=np.float32)
        self._index = 0
        self._count = 0
        self._sum = 0.0

        self.quality_level = float(np.clip(cfg.initial_quality, cfg.min_quality, 1.0))
        self.target_fps = cfg.target_fps if cfg.target_fps is not None else cfg.min_target_fps
        self.consecutive_good = 0
        self.consecutive_bad = 0
        self._on_target_fps_change: Optional[Callable[[float], None]] = None

    def set_target_fps_callback(self, callback: Optional[Callable[[float], None]]) -> None:
        self._on_target_fps_change = callback

    @property
    def frame_count(self) -> int:
        return self._count

    def record_frame(self, duration_ms: float,
                     on_quality_change: Optional[Callable[[float], None]] = None
                     ) -> Optional[PerformanceMetrics]:
        """Push one frame duration (ms); returns metrics, or None when disabled/invalid."""
        if not self.enabled:
            return None
        if not isinstance(duration_ms, (int, float)) or not math.isfinite(duration_ms) or duration_ms <= 0:
            log_event("WARNING", "Performance", "Invalid frame duration ignored", duration_ms=duration_ms)
            return None

        cfg = self.config
        if self._count >= self.history_size:
            self._sum -= float(self._durations[self._index])
        else:
            self._count += 1
        self._durations[self._index] = duration_ms
        self._sum += float(self._durations[self._index])
        self._index = (self._index + 1) % self.history_size

        avg_frame_time = self._sum / self._count
        current_fps = 1000.0 / avg_frame_time
        previous_quality = self.quality_level

        # Fast ramp-up while the window is still filling
        if (cfg.early_check_frames <= self._count < self.history_size
                and self.quality_level < 1.0
                and self._count % cfg.early_check_interval == 0
                and current_fps >= self.target_fps):
            self.quality_level = 1.0
            log_event("INFO", "Performance", "Early quality boost to 100%",
                      fps=f"{current_fps:.1f}", frames=self._count)

        if self._count == self.history_size:
            self.adjust_quality(current_fps)
            self._adjust_target_fps(current_fps)

        if on_quality_change is not None and previous_quality != self.quality_level:
            on_quality_change(self.quality_level)

        return PerformanceMetrics(
            avg_fps=current_fps,
            avg_frame_time_ms=avg_frame_time,
            quality_level=self.quality_level,
            target_fps=self.target_fps,
        )

    def adjust_quality(self, current_fps: float) -> None:
        cfg = self.config
        if current_fps < self.target_fps * cfg.degrade_ratio and self.quality_level > cfg.min_quality:
            self.quality_level = round(max(cfg.min_quality, self.quality_level - cfg.quality_step), 1)
            log_event("INFO", "Performance", f"Reducing quality to {self.quality_level * 100:.0f}%",
                      fps=f"{current_fps:.1f}")
        elif current_fps >= self.target_fps and self.quality_level < 1.0:
            self.quality_level = 1.0
            log_event("INFO", "Performance", "Increasing quality to 100%", fps=f"{current_fps:.1f}")

    def _adjust_target_fps(self, current_fps: float) -> None:
        cfg = self.config
        if not cfg.enable_adaptive_fps:
            return

        upgrade_at = self.target_fps * cfg.upgrade_ratio
        downgrade_below = self.target_fps * cfg.downgrade_ratio

        if self.target_fps < cfg.max_target_fps and current_fps >= upgrade_at:
            self.consecutive_good += 1
            self.consecutive_bad = 0
            if self.consecutive_good >= cfg.frames_for_upgrade:
                self._set_target_fps(cfg.max_target_fps, current_fps)
                self.consecutive_good = 0
        elif self.target_fps > cfg.min_target_fps and current_fps < downgrade_below:
            self.consecutive_bad += 1
            self.consecutive_good = 0
            if self.consecutive_bad >= cfg.frames_for_downgrade:
                self._set_target_fps(cfg.min_target_fps, current_fps)
                self.consecutive_bad = 0
        elif downgrade_below <= current_fps < upgrade_at:
            self.consecutive_good = max(0, self.consecutive_good - 1)
            self.consecutive_bad = max(0, self.consecutive_bad - 1)

    def _set_target_fps(self, fps: float, achieved: float) -> None:
        previous = self.target_fps
        self.target_fps = fps
        log_event("INFO", "Performance", f"Target FPS {previous:g} -> {fps:g}",
                  achieved=f"{achieved:.1f}")
        if self._on_target_fps_change is not None:
            self._on_target_fps_change(fps)

    def get_average_fps(self) -> float:
        if self._count == 0:
            return 0.0
        return 1000.0 / (self._sum / self._count)

    def get_quality_level(self) -> float:
        return self.quality_level

    def get_resize_config(self) -> ResizeConfig:
        cfg = self.config
        return ResizeConfig(
            max_resolution_width=cfg.max_resolution_width,
            max_resolution_height=cfg.max_resolution_height,
            max_dpr=cfg.max_dpr,
            quality_level=self.quality_level,
        )

    def reset(self) -> None:
        """Clear the frame window and counters; the target tier returns to minimum."""
        self._durations.fill(0.0)
        self._index = 0
        self._count = 0
        self._sum = 0.0
        self.consecutive_good = 0
        self.consecutive_bad = 0
        self.target_fps = self.config.min_target_fps
