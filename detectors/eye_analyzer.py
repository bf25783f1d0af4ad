"""眼睛状态分析模块，负责计算 EAR 值并判断闭眼状态"""

import logging
import math
from typing import List, Sequence

from models.data_models import EyeResult, Point

logger = logging.getLogger(__name__)

# MediaPipe FaceMesh 眼部关键点索引（p1..p6 顺序）
LEFT_EYE_INDICES = [33, 160, 158, 133, 153, 144]
RIGHT_EYE_INDICES = [362, 385, 387, 263, 373, 380]

# 水平距离低于该值视为退化检测
_MIN_HORIZONTAL = 1e-6


def calculate_ear(eye_points: Sequence[Point]) -> float:
    """
    计算单只眼睛的 EAR 值。

    公式: EAR = (|p2-p6| + |p3-p5|) / (2 * |p1-p4|)

    Args:
        eye_points: 6 个眼睛轮廓关键点 [(x,y), ...]，p1/p4 为眼角

    Returns:
        EAR 值；关键点不足或水平距离接近零时返回 0.0
    """
    if len(eye_points) < 6:
        logger.warning("眼部关键点不足，无法计算 EAR: %d", len(eye_points))
        return 0.0

    p1, p2, p3, p4, p5, p6 = (tuple(p[:2]) for p in eye_points[:6])

    vertical_1 = math.dist(p2, p6)
    vertical_2 = math.dist(p3, p5)
    horizontal = math.dist(p1, p4)

    if horizontal < _MIN_HORIZONTAL:
        return 0.0

    return (vertical_1 + vertical_2) / (2.0 * horizontal)


def calculate_average_ear(left_ear: float, right_ear: float) -> float:
    """双眼 EAR 的算术平均"""
    return (left_ear + right_ear) / 2.0


def are_eyes_closed(ear: float, threshold: float) -> bool:
    return ear < threshold


def get_eye_landmarks(keypoints: Sequence[Point], indices: Sequence[int]) -> List[Point]:
    """从完整关键点列表中按索引提取眼部 (x, y) 坐标，越界的索引被跳过"""
    return [(keypoints[i][0], keypoints[i][1]) for i in indices if i < len(keypoints)]


class EyeAnalyzer:
    """从整张人脸关键点计算双眼 EAR 并判断是否闭眼"""

    def __init__(self, ear_threshold: float = 0.21):
        self.ear_threshold = ear_threshold

    def analyze(self, keypoints: Sequence[Point]) -> EyeResult:
        """
        分析双眼状态。

        Args:
            keypoints: FaceMesh 全部关键点

        Returns:
            EyeResult(ear, left_ear, right_ear, is_closed)
        """
        left_ear = calculate_ear(get_eye_landmarks(keypoints, LEFT_EYE_INDICES))
        right_ear = calculate_ear(get_eye_landmarks(keypoints, RIGHT_EYE_INDICES))
        avg_ear = calculate_average_ear(left_ear, right_ear)

        return EyeResult(
            ear=avg_ear,
            left_ear=left_ear,
            right_ear=right_ear,
            is_closed=are_eyes_closed(avg_ear, self.ear_threshold),
        )
