"""
阈值检查路由 (Threshold Check Router)

外部监控源推送指标样本的入口，以及已缓存阈值的运行统计查询。
API 端点：POST /api/v1/thresholds/check, GET /api/v1/thresholds
"""
from typing import List

from fastapi import APIRouter, Depends

from alertflow.core.deps import EngineContext, get_engine_context
from alertflow.schemas.threshold import AlertMetric, CheckResult, Threshold

router = APIRouter(prefix="/api/v1/thresholds", tags=["thresholds"])


@router.post("/check", response_model=CheckResult)
async def check_metric(sample: AlertMetric, ctx: EngineContext = Depends(get_engine_context)):
    """提交一个指标样本，返回违规阈值、执行的动作和启动的升级执行。"""
    return await ctx.engine.on_sample(sample)


@router.get("", response_model=List[Threshold])
async def list_thresholds(ctx: EngineContext = Depends(get_engine_context)):
    """当前缓存的启用阈值及其统计。"""
    return sorted(ctx.engine.thresholds.values(), key=lambda t: t.id)
