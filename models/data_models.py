"""核心数据模型定义"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple

Point = Tuple[float, float]


class DriverState(str, Enum):
    """驾驶员状态（每帧根据 EAR 与面部运动重新计算）"""
    ACTIVE = "Active"
    TENSION = "Tension"
    SLEEPING = "Sleeping"


class AlertType(str, Enum):
    """上报告警类型"""
    WARNING = "warning"
    ALARM = "alarm"
    SLEEPING = "sleeping"
    TENSION = "tension"


class AlertPhase(str, Enum):
    """闭眼告警状态机的阶段"""
    OPEN = "open"
    CLOSED_BELOW_WARNING = "closed_below_warning"
    CLOSED_WARNING = "closed_warning"
    CLOSED_ALARM = "closed_alarm"


# 告警严重程度映射
ALERT_SEVERITY = {
    AlertType.WARNING: "medium",
    AlertType.TENSION: "high",
    AlertType.ALARM: "critical",
    AlertType.SLEEPING: "critical",
}


@dataclass(frozen=True)
class Face:
    """单张人脸的关键点检测结果（z 坐标忽略）"""
    keypoints: List[Point]


@dataclass
class EyeResult:
    """眼睛分析结果"""
    ear: float
    left_ear: float
    right_ear: float
    is_closed: bool


@dataclass
class AlertRecord:
    """发送给告警接收端的告警记录"""
    driver_id: str
    alert_type: AlertType
    timestamp: datetime
    driver_state: DriverState
    eye_closed_duration: float

    @property
    def severity(self) -> str:
        return ALERT_SEVERITY[self.alert_type]

    def to_payload(self) -> dict:
        """转换为 JSON 负载（camelCase 字段）"""
        return {
            "driverId": self.driver_id,
            "alertType": self.alert_type.value,
            "timestamp": self.timestamp.isoformat(),
            "driverState": self.driver_state.value,
            "eyeClosedDuration": round(self.eye_closed_duration, 3),
            "severity": self.severity,
        }


@dataclass(frozen=True)
class MonitorSnapshot:
    """检测循环最近一次完成迭代的可观察状态"""
    ear: float = 0.0
    movement: float = 0.0
    driver_state: DriverState = DriverState.ACTIVE
    face_detected: bool = False
    eyes_closed: bool = False
    eyes_closed_duration: float = 0.0
    frame_count: int = 0
    alert_phase: AlertPhase = AlertPhase.OPEN
    show_warning: bool = False
    alarm_active: bool = False
    detection_errors: int = 0
    is_monitoring: bool = False

    def to_dict(self) -> dict:
        data = asdict(self)
        data["driver_state"] = self.driver_state.value
        data["alert_phase"] = self.alert_phase.value
        data["ear"] = round(self.ear, 4)
        data["movement"] = round(self.movement, 4)
        data["eyes_closed_duration"] = round(self.eyes_closed_duration, 2)
        return data


@dataclass
class CalibrationResult:
    """EAR 阈值校准结果"""
    optimal_ear_threshold: float
    ear_accuracy: float
    ear_recall: float
    ear_distribution: dict = field(default_factory=dict)
    sample_count: int = 0
    dataset: Optional[str] = None
