"""
品牌登录数据清理任务（Celery beat 定时触发）

请求路径上也会顺带清理过期验证码，这里保证长时间无请求时表不会堆积。
"""
import logging
import time
from typing import Any, Dict

from ratestuff.celery_app import celery_app

logger = logging.getLogger(__name__)


def _run_async(coro):
    """同步 worker 中运行协程函数"""
    from asgiref.sync import async_to_sync
    return async_to_sync(coro)


async def purge_expired_rows() -> Dict[str, int]:
    """
    删除过期验证码与登录 nonce

    Celery 每次调用可能处于不同事件循环，所以每次新建 NullPool 引擎。
    """
    from ratestuff.database import (
        build_engine,
        build_session_factory,
        database_url,
        get_db_session,
    )
    from ratestuff.services.brand_otp_service import (
        purge_expired_login_nonces,
        purge_expired_otps,
    )

    engine = build_engine(database_url, null_pool=True)
    try:
        async with get_db_session(build_session_factory(engine)) as db:
            otps = await purge_expired_otps(db)
            nonces = await purge_expired_login_nonces(db)
    finally:
        await engine.dispose()
    return {"deleted_otps": otps, "deleted_nonces": nonces}


@celery_app.task(
    name="ratestuff.tasks.cleanup_tasks.purge_expired_brand_otps_task",
    bind=True,
)
def purge_expired_brand_otps_task(self) -> Dict[str, Any]:
    task_id = self.request.id
    started = time.monotonic()

    try:
        result = _run_async(purge_expired_rows)()
    except Exception:
        logger.exception("[%s] Brand OTP purge failed", task_id)
        raise

    duration = time.monotonic() - started
    logger.info(
        "[%s] Brand OTP purge done: otps=%d nonces=%d duration=%.2fs",
        task_id, result["deleted_otps"], result["deleted_nonces"], duration,
    )
    return {"status": "success", "duration": duration, **result}
