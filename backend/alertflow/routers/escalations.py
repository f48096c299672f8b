"""
升级执行路由 (Escalation Execution Router)

功能说明：查询升级执行，并对执行发送处理、级别失败、手动升级和取消信号。
API端点：GET /api/v1/escalations/executions, GET /api/v1/escalations/executions/{id},
POST /api/v1/escalations/executions/{id}/resolve|fail|escalate|cancel
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from alertflow.core.deps import EngineContext, get_engine_context
from alertflow.core.exceptions import ConflictError, NotFoundError, ValidationError
from alertflow.schemas.escalation import EscalationExecution, ExecutionStatus, ResolveRequest, SignalRequest

router = APIRouter(prefix="/api/v1/escalations", tags=["escalations"])


async def _get_or_404(ctx: EngineContext, execution_id: int) -> EscalationExecution:
    execution = await ctx.executions.get_execution(execution_id)
    if execution is None:
        raise NotFoundError(f"Escalation execution {execution_id} not found")
    return execution


def _ensure_applied(result: Optional[EscalationExecution], current: EscalationExecution) -> EscalationExecution:
    if result is None:
        raise ConflictError(
            f"Escalation execution {current.id} is {current.status.value}",
            detail="transition ignored",
        )
    return result


@router.get("/executions", response_model=List[EscalationExecution])
async def list_executions(
    status: Optional[str] = None,
    limit: int = Query(100, ge=1, le=1000),
    ctx: EngineContext = Depends(get_engine_context),
):
    """按状态筛选升级执行，最新的在前。"""
    if status is not None and status not in {s.value for s in ExecutionStatus}:
        raise ValidationError(f"Unknown execution status '{status}'")
    return await ctx.executions.list_executions(status=status, limit=limit)


@router.get("/executions/{execution_id}", response_model=EscalationExecution)
async def get_execution(execution_id: int, ctx: EngineContext = Depends(get_engine_context)):
    return await _get_or_404(ctx, execution_id)


@router.post("/executions/{execution_id}/resolve", response_model=EscalationExecution)
async def resolve_execution(
    execution_id: int, body: ResolveRequest, ctx: EngineContext = Depends(get_engine_context)
):
    current = await _get_or_404(ctx, execution_id)
    result = await ctx.runner.resolve(execution_id, notes=body.notes, resolved_by=body.resolved_by)
    return _ensure_applied(result, current)


@router.post("/executions/{execution_id}/fail", response_model=EscalationExecution)
async def fail_level(execution_id: int, body: SignalRequest, ctx: EngineContext = Depends(get_engine_context)):
    current = await _get_or_404(ctx, execution_id)
    return _ensure_applied(await ctx.runner.fail_level(execution_id, notes=body.reason), current)


@router.post("/executions/{execution_id}/escalate", response_model=EscalationExecution)
async def escalate_execution(
    execution_id: int, body: SignalRequest, ctx: EngineContext = Depends(get_engine_context)
):
    current = await _get_or_404(ctx, execution_id)
    return _ensure_applied(await ctx.runner.escalate(execution_id, reason=body.reason), current)


@router.post("/executions/{execution_id}/cancel", response_model=EscalationExecution)
async def cancel_execution(
    execution_id: int, body: SignalRequest, ctx: EngineContext = Depends(get_engine_context)
):
    current = await _get_or_404(ctx, execution_id)
    return _ensure_applied(await ctx.runner.cancel(execution_id, reason=body.reason), current)
