"""
订单编号生成
格式 PREFIX-YYYYMMDD-NNNN，仅用于展示和检索，唯一标识以主键为准
"""

import random
from datetime import date
from typing import Optional


def generate_order_code(prefix: str, on_date: date, rng: Optional[random.Random] = None) -> str:
    rng = rng or random
    return f"{prefix}-{on_date:%Y%m%d}-{rng.randint(0, 9999):04d}"
