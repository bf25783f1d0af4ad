"""面部运动估计模块，计算相邻两帧之间关键点的平均位移"""

import math
from typing import Optional, Sequence

from models.data_models import Point

# 用于估计运动的采样关键点（鼻尖、眼角、嘴角、下巴）
MOVEMENT_SAMPLE_INDICES = (1, 33, 61, 199, 263, 291)


def detect_facial_movement(
    current: Sequence[Point],
    previous: Optional[Sequence[Point]],
    sample_indices: Sequence[int] = MOVEMENT_SAMPLE_INDICES,
) -> float:
    """
    计算采样关键点的平均欧氏位移。

    Args:
        current: 当前帧关键点
        previous: 上一帧关键点，首帧为 None
        sample_indices: 采样点索引

    Returns:
        平均位移（像素）；没有上一帧时返回 0.0
    """
    if previous is None or not sample_indices:
        return 0.0

    total = 0.0
    for idx in sample_indices:
        # 任一帧缺失该点时记为零位移
        if idx >= len(current) or idx >= len(previous):
            continue
        cx, cy = current[idx][0], current[idx][1]
        px, py = previous[idx][0], previous[idx][1]
        total += math.hypot(cx - px, cy - py)

    return total / len(sample_indices)


class MovementEstimator:
    """运动估计器，只持有采样点配置，帧间快照由调用方保存"""

    def __init__(self, sample_indices: Sequence[int] = MOVEMENT_SAMPLE_INDICES):
        self.sample_indices = tuple(sample_indices)

    def estimate(self, current: Sequence[Point], previous: Optional[Sequence[Point]]) -> float:
        return detect_facial_movement(current, previous, self.sample_indices)
