"""检测循环控制器：节流采样、调用关键点检测、更新闭眼告警状态并驱动警报"""

import logging
import threading
import time
from dataclasses import replace
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple

import numpy as np

from detectors.eye_analyzer import EyeAnalyzer
from detectors.movement_estimator import MovementEstimator
from evaluators.alert_machine import AlertStateMachine
from evaluators.state_classifier import StateClassifier
from models.data_models import (
    AlertPhase,
    AlertRecord,
    AlertType,
    DriverState,
    Face,
    MonitorSnapshot,
    Point,
)
from monitor.config import MonitorConfig
from monitor.errors import DetectorLoadError

module_logger = logging.getLogger(__name__)

# 浮点时钟误差容限（秒）
_TIMING_EPSILON = 1e-6


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DetectionLoopController:
    """
    监测会话的唯一状态持有者。

    上一帧关键点、闭眼过程、一次性标志和帧计数都只在这里被修改；
    每次迭代结束后整体替换一次快照，外部读取不会看到半更新的状态。

    协作方:
        detector: 提供 estimate_faces(frame) -> List[Face]；也可以只给 detector_factory，
                  在 prepare() 时才创建
        source: 提供 open() / is_ready() / read() / release()
        alarm: 提供 play() / stop() / is_playing
        dispatcher: 提供 dispatch(AlertRecord)
    """

    # 后台循环的调度间隔，相当于每帧回调
    POLL_INTERVAL_SEC = 1.0 / 60.0

    def __init__(
        self,
        detector,
        source,
        config: Optional[MonitorConfig] = None,
        alarm=None,
        dispatcher=None,
        clock=time.monotonic,
        wall_clock=_utc_now,
        logger: Optional[logging.Logger] = None,
        detector_factory=None,
        on_update=None,
    ):
        self.config = config if config is not None else MonitorConfig()
        self._detector = detector
        self._detector_factory = detector_factory
        self.on_update = on_update
        self._source = source
        self._alarm = alarm
        self._dispatcher = dispatcher
        self._clock = clock
        self._wall_clock = wall_clock
        self._log = logger if logger is not None else module_logger

        self.eye_analyzer = EyeAnalyzer()
        self.movement_estimator = MovementEstimator()
        self.state_classifier = StateClassifier()
        self.alert_machine = AlertStateMachine()
        self._apply_thresholds()

        self._previous_keypoints: Optional[Sequence[Point]] = None
        self._last_detection_at: Optional[float] = None
        self._frame_count = 0
        self._detection_errors = 0
        self._show_warning = False
        self._monitoring = False

        self._state_lock = threading.RLock()
        self._snapshot_lock = threading.Lock()
        self._snapshot = MonitorSnapshot()
        self._latest_frame: Optional[np.ndarray] = None
        self._latest_face: Optional[Face] = None

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # ---- 配置 ----

    def _apply_thresholds(self):
        cfg = self.config
        self.eye_analyzer.ear_threshold = cfg.ear_closed_threshold
        self.state_classifier.sleeping_ear_threshold = cfg.sleeping_ear_threshold
        self.state_classifier.drowsy_ear_threshold = cfg.drowsy_ear_threshold
        self.state_classifier.tension_movement_threshold = cfg.tension_movement_threshold
        self.state_classifier.still_movement_threshold = cfg.still_movement_threshold
        self.alert_machine.warning_duration_sec = cfg.warning_duration_sec
        self.alert_machine.alarm_duration_sec = cfg.alarm_duration_sec
        self.alert_machine.sleeping_triggers_alarm = cfg.sleeping_triggers_alarm

    def update_config(self, data: dict):
        """
        运行时更新阈值，并重置当前闭眼过程。

        Raises:
            ValueError: 任一配置值类型无效，此时配置保持不变
        """
        with self._state_lock:
            self.config.update(data, strict=True)
            self._apply_thresholds()
            self.alert_machine.reset()
            self._show_warning = False

    # ---- 会话生命周期 ----

    @property
    def is_monitoring(self) -> bool:
        return self._monitoring

    def prepare(self):
        """
        检查检测器并打开视频源，不启动后台线程（由调用方驱动 step()）。

        Raises:
            DetectorLoadError: 没有可用的检测器
            CameraUnavailableError: 视频源无法打开
        """
        if self._detector is None and self._detector_factory is not None:
            self._detector = self._detector_factory()
        if self._detector is None:
            raise DetectorLoadError("人脸检测器不可用")
        self._source.open()

        with self._state_lock:
            self._reset_session()
            self._stop_event.clear()
            self._monitoring = True
        self._publish(MonitorSnapshot(is_monitoring=True))
        self._log.info("监测已启动")

    def start(self):
        """启动后台检测循环，已在运行时直接返回"""
        if self._thread is not None and self._thread.is_alive():
            return
        self.prepare()
        self._thread = threading.Thread(target=self._run_loop, name="detection-loop", daemon=True)
        self._thread.start()

    def _run_loop(self):
        while not self._stop_event.is_set():
            self.step()
            self._stop_event.wait(self.POLL_INTERVAL_SEC)

    def stop(self):
        """
        停止监测：取消循环、停止警报、释放视频源、清零闭眼过程。

        可重复调用，未启动过也安全。
        """
        self._stop_event.set()
        thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=2.0)

        if self._alarm is not None:
            self._alarm.stop()
        if self._source is not None:
            self._source.release()

        with self._state_lock:
            was_monitoring = self._monitoring
            self._monitoring = False
            self._reset_session()
        self._publish(MonitorSnapshot(), frame=None, face=None)
        if was_monitoring:
            self._log.info("监测已停止")

    def close(self):
        """停止监测并释放检测器"""
        self.stop()
        if self._detector is not None and hasattr(self._detector, "close"):
            self._detector.close()
        if self._detector_factory is not None:
            self._detector = None
        if self._dispatcher is not None:
            self._dispatcher.close()

    def _reset_session(self):
        self.alert_machine.reset()
        self._previous_keypoints = None
        self._last_detection_at = None
        self._frame_count = 0
        self._detection_errors = 0
        self._show_warning = False

    # ---- 单次迭代 ----

    def step(self, now: Optional[float] = None) -> bool:
        """
        执行一次循环迭代。

        节流间隔未到或资源未就绪时跳过；单帧内的任何异常只记录日志并计数。

        Returns:
            本次是否完成了一次检测
        """
        if now is None:
            now = self._clock()

        interval = self.config.detection_interval_ms / 1000.0
        if (
            self._last_detection_at is not None
            and now - self._last_detection_at + _TIMING_EPSILON < interval
        ):
            return False

        if self._detector is None or self._source is None or not self._source.is_ready():
            return False

        try:
            frame = self._source.read()
            if frame is None:
                return False
            self._last_detection_at = now
            faces = self._detector.estimate_faces(frame)
        except Exception:
            self._log.exception("人脸检测出错，跳过本帧")
            self._count_error()
            return False

        with self._state_lock:
            # stop() 已在检测期间被调用
            if self._stop_event.is_set():
                return False
            try:
                self.process_faces(faces, now, frame=frame)
            except Exception:
                self._log.exception("处理检测结果出错，跳过本帧")
                self._count_error()
                return False
        return True

    def _count_error(self):
        with self._state_lock:
            self._detection_errors += 1
            errors = self._detection_errors
        with self._snapshot_lock:
            self._snapshot = replace(self._snapshot, detection_errors=errors)

    def process_faces(
        self,
        faces: List[Face],
        now: float,
        frame: Optional[np.ndarray] = None,
    ) -> MonitorSnapshot:
        """
        处理一帧的检测结果（只使用第一张人脸）并发布新快照。

        未检测到人脸时闭眼计时保持不变（冻结），只更新 face_detected。
        """
        with self._state_lock:
            self._frame_count += 1

            if not faces:
                snapshot = replace(
                    self.snapshot(),
                    face_detected=False,
                    frame_count=self._frame_count,
                    alarm_active=self._alarm_active(),
                    is_monitoring=self._monitoring,
                )
                self._log_sampled("第 %d 帧未检测到人脸", self._frame_count)
                self._publish(snapshot, frame=frame, face=None)
                self._notify(snapshot)
                return snapshot

            face = faces[0]
            keypoints = face.keypoints

            eye_result = self.eye_analyzer.analyze(keypoints)
            movement = self.movement_estimator.estimate(keypoints, self._previous_keypoints)
            self._previous_keypoints = keypoints
            state = self.state_classifier.classify(eye_result.ear, movement)

            was_closed = self.alert_machine.phase is not AlertPhase.OPEN
            events = self.alert_machine.update(eye_result.is_closed, state, now)
            duration = self.alert_machine.duration

            if not eye_result.is_closed:
                self._show_warning = False
                if was_closed:
                    self._log.info("睁眼恢复，闭眼计时清零")
                    if self.config.stop_alarm_on_reopen and self._alarm is not None:
                        self._alarm.stop()

            for event in events:
                self._handle_event(event, state, duration)

            self._log_sampled(
                "第 %d 帧 EAR=%.3f (L=%.3f R=%.3f) 运动=%.2f 状态=%s 闭眼=%.1fs",
                self._frame_count, eye_result.ear, eye_result.left_ear,
                eye_result.right_ear, movement, state.value, duration,
            )

            snapshot = MonitorSnapshot(
                ear=eye_result.ear,
                movement=movement,
                driver_state=state,
                face_detected=True,
                eyes_closed=eye_result.is_closed,
                eyes_closed_duration=duration,
                frame_count=self._frame_count,
                alert_phase=self.alert_machine.phase,
                show_warning=self._show_warning,
                alarm_active=self._alarm_active(),
                detection_errors=self._detection_errors,
                is_monitoring=self._monitoring,
            )
            self._publish(snapshot, frame=frame, face=face)
            self._notify(snapshot)
            return snapshot

    def _handle_event(self, event: AlertType, state: DriverState, duration: float):
        if event is AlertType.WARNING:
            self._show_warning = True
            self._log.warning("警告: 已闭眼 %.1f 秒", duration)
        elif event is AlertType.ALARM:
            self._log.warning("警报: 已闭眼 %.1f 秒", duration)
            if self._alarm is not None:
                self._alarm.play()
        elif event is AlertType.SLEEPING:
            self._log.warning("检测到睡眠状态")

        if self._dispatcher is not None:
            self._dispatcher.dispatch(AlertRecord(
                driver_id=self.config.driver_id,
                alert_type=event,
                timestamp=self._wall_clock(),
                driver_state=state,
                eye_closed_duration=duration,
            ))

    def _alarm_active(self) -> bool:
        return bool(self._alarm is not None and self._alarm.is_playing)

    def _log_sampled(self, msg, *args):
        n = max(int(self.config.log_every_n_frames), 1)
        if self._frame_count % n == 0:
            self._log.debug(msg, *args)

    # ---- 快照 ----

    def _publish(self, snapshot: MonitorSnapshot, frame=None, face=None):
        with self._snapshot_lock:
            self._snapshot = snapshot
            self._latest_frame = frame
            self._latest_face = face

    def _notify(self, snapshot: MonitorSnapshot):
        if self.on_update is not None:
            self.on_update(snapshot)

    def snapshot(self) -> MonitorSnapshot:
        with self._snapshot_lock:
            return self._snapshot

    def latest(self) -> Tuple[Optional[np.ndarray], Optional[Face], MonitorSnapshot]:
        """最近一次完成迭代的 (帧, 人脸, 快照)"""
        with self._snapshot_lock:
            return self._latest_frame, self._latest_face, self._snapshot
