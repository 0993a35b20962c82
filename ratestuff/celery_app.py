"""
Celery 应用

只承载一个定时任务：清理过期的品牌验证码与登录 nonce（cleanup 队列）。
启动: celery -A ratestuff.celery_app worker -B -Q cleanup
"""
from celery import Celery

from ratestuff.config import get_settings

settings = get_settings()

broker_url = settings.celery_broker or settings.redis_url

celery_app = Celery(
    "ratestuff",
    broker=broker_url,
    backend=broker_url,
    include=["ratestuff.tasks.cleanup_tasks"],
)

celery_app.conf.update(
    result_expires=3600,
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_time_limit=120,
    task_soft_time_limit=90,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,
    task_default_queue="cleanup",
    task_routes={
        "ratestuff.tasks.cleanup_tasks.*": {"queue": "cleanup"},
    },
    beat_schedule={
        "purge-expired-brand-otps": {
            "task": "ratestuff.tasks.cleanup_tasks.purge_expired_brand_otps_task",
            "schedule": settings.brand_otp_purge_interval_minutes * 60,
            # 下一轮会再清理，过期的调度直接丢弃
            "options": {"expires": settings.brand_otp_purge_interval_minutes * 60},
        },
    },
)

if __name__ == "__main__":
    celery_app.start()
