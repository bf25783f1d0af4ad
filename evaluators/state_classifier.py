"""驾驶员状态分类模块"""

from models.data_models import DriverState


class StateClassifier:
    """根据 EAR 与面部运动量判断驾驶员状态，无内部状态，结果仅由输入决定。"""

    def __init__(
        self,
        sleeping_ear_threshold: float = 0.15,
        drowsy_ear_threshold: float = 0.2,
        tension_movement_threshold: float = 2.0,
        still_movement_threshold: float = 0.5,
    ):
        self.sleeping_ear_threshold = sleeping_ear_threshold
        self.drowsy_ear_threshold = drowsy_ear_threshold
        self.tension_movement_threshold = tension_movement_threshold
        self.still_movement_threshold = still_movement_threshold

    def classify(self, ear: float, movement: float) -> DriverState:
        """
        判断驾驶员状态。

        规则按顺序匹配：
            1. EAR 极低（眼睛几乎闭合） -> Sleeping
            2. 面部运动过大 -> Tension
            3. 几乎静止且 EAR 偏低 -> Sleeping
            4. 其余 -> Active

        Args:
            ear: 双眼平均 EAR
            movement: 帧间面部运动量

        Returns:
            DriverState
        """
        if ear < self.sleeping_ear_threshold:
            return DriverState.SLEEPING

        if movement > self.tension_movement_threshold:
            return DriverState.TENSION

        if movement < self.still_movement_threshold and ear < self.drowsy_ear_threshold:
            return DriverState.SLEEPING

        return DriverState.ACTIVE
