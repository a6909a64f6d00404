"""Host headroom check gating background maintenance (psutil vitals)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

import psutil

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Vitals:
    cpu_percent: float
    memory_percent: float


class SystemHealth:
    """Reports whether the host has room for background work."""

    def __init__(
        self,
        *,
        cpu_ceiling: float = 90.0,
        ram_ceiling: float = 90.0,
        probe: Optional[Callable[[], Vitals]] = None,
    ) -> None:
        self.cpu_ceiling = cpu_ceiling
        self.ram_ceiling = ram_ceiling
        self._probe = probe or self.read_vitals

    @staticmethod
    def read_vitals() -> Vitals:
        return Vitals(
            cpu_percent=float(psutil.cpu_percent(interval=None)),
            memory_percent=float(psutil.virtual_memory().percent),
        )

    def has_headroom(self) -> bool:
        vitals = self._probe()
        ok = vitals.cpu_percent < self.cpu_ceiling and vitals.memory_percent < self.ram_ceiling
        if not ok:
            logger.info(
                "System strain detected: CPU=%.0f%%, Mem=%.0f%%; deferring background work",
                vitals.cpu_percent,
                vitals.memory_percent,
            )
        return ok


__all__ = ["SystemHealth", "Vitals"]
