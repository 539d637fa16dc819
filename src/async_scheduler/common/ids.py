"""ID 生成模块"""

import secrets
import time


def generate_task_id(prefix: str = "task") -> str:
    """生成任务 ID

    Args:
        prefix: ID 前缀

    Returns:
        格式: {prefix}_{timestamp}_{random}
    """
    timestamp = int(time.time() * 1000)
    random_part = secrets.token_hex(6)
    return f"{prefix}_{timestamp}_{random_part}"
