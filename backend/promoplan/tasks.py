from typing import Any

from arq import create_pool
from arq.connections import ArqRedis, RedisSettings
from arq.jobs import Job

from promoplan.core.config import settings

redis_settings = RedisSettings.from_dsn(settings.REDIS_URL)


async def get_redis_pool() -> ArqRedis:
    return await create_pool(redis_settings)


async def enqueue_task(task_name: str, *args: Any, **kwargs: Any) -> Job:
    """Enqueue ``task_name`` on the arq worker and return its job handle."""
    pool = await get_redis_pool()
    try:
        job = await pool.enqueue_job(task_name, *args, **kwargs)
        return job  # type: ignore[return-value]
    finally:
        await pool.close()


async def enqueue_expire_subscriptions() -> Job:
    return await enqueue_task("expire_subscriptions_task")


async def enqueue_reconcile_coupon_usage() -> Job:
    return await enqueue_task("reconcile_coupon_usage_task")
