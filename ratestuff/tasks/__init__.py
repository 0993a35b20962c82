"""
Celery 任务

- cleanup_tasks: 过期品牌验证码 / 登录 nonce 清理
"""
from ratestuff.celery_app import celery_app

__all__ = ["celery_app"]
