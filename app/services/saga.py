"""
多步骤流程执行器 (Saga)

门户里的写操作都跨越多个外部调用（对象存储 + 数据库 + 认证服务），
没有任何事务能把它们包起来。每个流程被拆成有序的步骤，
每一步声明失败时的策略：

- ABORT:    失败即终止，后续步骤不再执行
- CONTINUE: 失败只记录，继续执行后续步骤

步骤函数接收共享的 state 字典，返回值会写入 state[step_name]，
后续步骤可以读取前面步骤的结果。

使用示例：
    saga = Saga("delete_document")
    saga.step("remove_blob", remove_blob, policy=StepPolicy.ABORT)
    saga.step("delete_row", delete_row, policy=StepPolicy.ABORT)
    result = await saga.run()
    if not result.completed:
        ...
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

StepAction = Callable[[dict[str, Any]], Awaitable[Any]]


class StepPolicy(str, Enum):
    """步骤失败策略"""
    ABORT = "abort"
    CONTINUE = "continue"


@dataclass
class SagaStep:
    name: str
    action: StepAction
    policy: StepPolicy = StepPolicy.ABORT


@dataclass
class StepOutcome:
    """
    单个步骤的执行结果

    Attributes:
        name: 步骤名
        success: 是否成功
        skipped: 因前面的 ABORT 步骤失败而未执行
        error: 失败原因
        exception: 原始异常（不序列化）
        duration_ms: 耗时
    """
    name: str
    success: bool
    skipped: bool = False
    error: str | None = None
    exception: BaseException | None = field(default=None, repr=False)
    duration_ms: float = 0.0

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "success": self.success,
            "skipped": self.skipped,
            "error": self.error,
            "duration_ms": self.duration_ms,
        }


@dataclass
class SagaResult:
    """流程执行结果"""
    name: str
    outcomes: list[StepOutcome] = field(default_factory=list)
    state: dict[str, Any] = field(default_factory=dict)
    aborted_at: str | None = None

    @property
    def completed(self) -> bool:
        """没有任何 ABORT 步骤失败（CONTINUE 步骤的失败不影响）"""
        return self.aborted_at is None

    @property
    def abort_error(self) -> BaseException | None:
        outcome = self.outcome(self.aborted_at) if self.aborted_at else None
        return outcome.exception if outcome else None

    def outcome(self, name: str) -> StepOutcome | None:
        for item in self.outcomes:
            if item.name == name:
                return item
        return None

    def succeeded(self, name: str) -> bool:
        outcome = self.outcome(name)
        return bool(outcome and outcome.success)

    def failed_steps(self) -> list[StepOutcome]:
        return [o for o in self.outcomes if not o.success and not o.skipped]

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "completed": self.completed,
            "aborted_at": self.aborted_at,
            "steps": [o.to_dict() for o in self.outcomes],
        }


class Saga:
    """按顺序执行步骤，按各步骤的策略处理失败"""

    def __init__(self, name: str, state: dict[str, Any] | None = None) -> None:
        self.name = name
        self.steps: list[SagaStep] = []
        self.state: dict[str, Any] = dict(state or {})

    def step(
        self,
        name: str,
        action: StepAction,
        policy: StepPolicy = StepPolicy.ABORT,
    ) -> "Saga":
        self.steps.append(SagaStep(name=name, action=action, policy=policy))
        return self

    async def run(self) -> SagaResult:
        result = SagaResult(name=self.name, state=self.state)

        for index, step in enumerate(self.steps):
            started = time.perf_counter()
            try:
                value = await step.action(self.state)
            except Exception as exc:
                duration = round((time.perf_counter() - started) * 1000, 2)
                result.outcomes.append(
                    StepOutcome(
                        name=step.name,
                        success=False,
                        error=str(exc) or exc.__class__.__name__,
                        exception=exc,
                        duration_ms=duration,
                    )
                )
                if step.policy is StepPolicy.CONTINUE:
                    logger.warning(
                        f"[{self.name}] 步骤 {step.name} 失败，继续执行: {exc}",
                        extra={"saga": self.name, "step": step.name},
                    )
                    continue

                logger.error(
                    f"[{self.name}] 步骤 {step.name} 失败，流程终止: {exc}",
                    extra={"saga": self.name, "step": step.name},
                )
                result.aborted_at = step.name
                for remaining in self.steps[index + 1:]:
                    result.outcomes.append(StepOutcome(name=remaining.name, success=False, skipped=True))
                break

            self.state[step.name] = value
            result.outcomes.append(
                StepOutcome(
                    name=step.name,
                    success=True,
                    duration_ms=round((time.perf_counter() - started) * 1000, 2),
                )
            )
            logger.debug(f"[{self.name}] 步骤 {step.name} 完成")

        return result
