"""
Base Pipeline Abstractions.

Composable stages that share a per-frame context. Each stage's wall time is
recorded on the context so a frame's cost can be reported per stage.
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar

T = TypeVar('T')
U = TypeVar('U')


@dataclass
class PipelineContext:
    """
    Per-frame state shared by stages.
    Stages publish intermediate results here instead of calling each other.
    """
    data: Dict[str, Any] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    timings_ms: Dict[str, float] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self.data[key] = value

    def add_error(self, error: str) -> None:
        self.errors.append(error)

    def has_errors(self) -> bool:
        return len(self.errors) > 0

    def record_time(self, stage_name: str, elapsed_ms: float) -> None:
        self.timings_ms[stage_name] = self.timings_ms.get(stage_name, 0.0) + elapsed_ms


class PipelineStage(ABC, Generic[T, U]):
    """A single step from T to U."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Stage name for logs and timings."""
        pass

    @abstractmethod
    def process(self, input_data: T, context: PipelineContext) -> U:
        pass


class FunctionStage(PipelineStage[T, U]):
    """
    Wrap a plain function as a stage.

    Example:
        count = FunctionStage("count", lambda dets, ctx: len(dets))
    """

    def __init__(self, name: str, func: Callable[[T, PipelineContext], U]):
        self._name = name
        self._func = func

    @property
    def name(self) -> str:
        return self._name

    def process(self, input_data: T, context: PipelineContext) -> U:
        return self._func(input_data, context)


class Pipeline(Generic[T, U]):
    """
    Ordered stages run on one input.

    Example:
        pipeline = Pipeline([
            DecodeStage(decoder, config),
            SuppressionStage(engine),
            SelectionStage(selector),
        ])
        best = pipeline.run(buffer, context)
    """

    def __init__(self, stages: List[PipelineStage]):
        self.stages = stages

    @property
    def name(self) -> str:
        return " >> ".join(s.name for s in self.stages)

    def run(self, input_data: T, context: Optional[PipelineContext] = None) -> U:
        """
        Run all stages in order.

        A failing stage's error is added to the context, then re-raised.
        """
        if context is None:
            context = PipelineContext()

        current = input_data
        for stage in self.stages:
            start = time.perf_counter()
            try:
                current = stage.process(current, context)
            except Exception as e:
                context.add_error(f"[{stage.name}] {str(e)}")
                raise
            finally:
                context.record_time(stage.name, (time.perf_counter() - start) * 1000)

        return current
