"""闭眼告警状态机：把连续闭眼时长转换为一次性的警告/警报事件"""

from typing import List, Optional

from models.data_models import AlertPhase, AlertType, DriverState


class AlertStateMachine:
    """
    跟踪一次闭眼过程（episode），在跨越阈值时产生告警事件。

    Open -> ClosedBelowWarning -> ClosedWarning -> ClosedAlarm，
    睁眼时立即回到 Open 并清零时长和所有一次性标志。
    """

    def __init__(
        self,
        warning_duration_sec: float = 3.0,
        alarm_duration_sec: float = 5.0,
        sleeping_triggers_alarm: bool = False,
    ):
        self.warning_duration_sec = warning_duration_sec
        self.alarm_duration_sec = alarm_duration_sec
        self.sleeping_triggers_alarm = sleeping_triggers_alarm
        self._closed_since: Optional[float] = None
        self._duration = 0.0
        self._warning_fired = False
        self._alarm_fired = False
        self._sleeping_reported = False

    @property
    def phase(self) -> AlertPhase:
        if self._closed_since is None:
            return AlertPhase.OPEN
        if self._alarm_fired:
            return AlertPhase.CLOSED_ALARM
        if self._warning_fired:
            return AlertPhase.CLOSED_WARNING
        return AlertPhase.CLOSED_BELOW_WARNING

    @property
    def duration(self) -> float:
        """当前闭眼过程已持续的秒数"""
        return self._duration

    @property
    def warning_fired(self) -> bool:
        return self._warning_fired

    @property
    def alarm_fired(self) -> bool:
        return self._alarm_fired

    def update(self, eyes_closed: bool, driver_state: DriverState, now: float) -> List[AlertType]:
        """
        输入一帧的闭眼判断和状态分类，返回本帧需要上报的告警类型。

        Args:
            eyes_closed: 本帧是否闭眼
            driver_state: 本帧的状态分类
            now: 单调时钟时间（秒）

        Returns:
            按触发顺序排列的 AlertType 列表，可能为空
        """
        events: List[AlertType] = []

        if not eyes_closed:
            self.reset()
        else:
            if self._closed_since is None:
                self._closed_since = now
            self._duration = max(0.0, now - self._closed_since)

            if self._duration >= self.warning_duration_sec and not self._warning_fired:
                self._warning_fired = True
                events.append(AlertType.WARNING)

            if self._duration >= self.alarm_duration_sec and not self._alarm_fired:
                self._alarm_fired = True
                events.append(AlertType.ALARM)

            if driver_state is DriverState.SLEEPING and not self._alarm_fired:
                if self.sleeping_triggers_alarm:
                    self._alarm_fired = True
                    events.append(AlertType.ALARM)
                elif not self._sleeping_reported:
                    self._sleeping_reported = True
                    events.append(AlertType.SLEEPING)

        # Tension 是独立的低级别通道，不影响闭眼过程
        if driver_state is DriverState.TENSION:
            events.append(AlertType.TENSION)

        return events

    def reset(self):
        """回到 Open 状态，清零时长和一次性标志"""
        self._closed_since = None
        self._duration = 0.0
        self._warning_fired = False
        self._alarm_fired = False
        self._sleeping_reported = False
