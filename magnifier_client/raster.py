from __future__ import annotations

from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol


@dataclass(frozen=True)
class SnapshotRaster:
    """A captured bitmap and its pixel dimensions. Replaced wholesale, never mutated."""

    image: Any
    width: int
    height: int


@dataclass(frozen=True)
class CaptureOptions:
    scale: float = 1.0
    use_cors: bool = True
    allow_taint: bool = False
    background: Optional[str] = "#ffffff"
    on_clone: Optional[Callable[[Any], object]] = None


class Rasterizer(Protocol):
    def capture(self, target: Any, options: CaptureOptions) -> "Future[SnapshotRaster]": ...


@dataclass(frozen=True)
class RasterizerLoadResult:
    rasterizer: Optional[Rasterizer] = None
    reason: str = ""

    @property
    def available(self) -> bool:
        return self.rasterizer is not None

    @classmethod
    def unavailable(cls, reason: str) -> "RasterizerLoadResult":
        return cls(rasterizer=None, reason=reason)


class RasterizerLoader(Protocol):
    def load(self) -> RasterizerLoadResult: ...


class StaticRasterizerLoader:
    """Loader for a rasterizer that is already constructed (or known to be missing)."""

    def __init__(self, rasterizer: Optional[Rasterizer], *, reason: str = "rasterizer not provided") -> None:
        self._rasterizer = rasterizer
        self._reason = reason

    def load(self) -> RasterizerLoadResult:
        if self._rasterizer is None:
            return RasterizerLoadResult.unavailable(self._reason)
        return RasterizerLoadResult(rasterizer=self._rasterizer)
