"""根据配置组装检测循环控制器及其协作方"""

import logging

from alerts.alarm import AlarmSynthesizer, PygameAudioOutput
from alerts.alert_sink import AlertDispatcher, HttpAlertSink, LogAlertSink
from detectors.face_detector import FaceDetector
from detectors.video_source import CameraSource
from monitor.config import MonitorConfig
from monitor.controller import DetectionLoopController

logger = logging.getLogger(__name__)


def build_alarm(config: MonitorConfig, output=None) -> AlarmSynthesizer:
    return AlarmSynthesizer(
        output if output is not None else PygameAudioOutput(),
        tone_hz=config.alarm_tone_hz,
        beep_ms=config.alarm_beep_ms,
        gap_ms=config.alarm_gap_ms,
        pause_ms=config.alarm_pause_ms,
        cycles=config.alarm_cycles,
        volume=config.alarm_volume,
        max_duration_sec=config.alarm_max_duration_sec,
    )


def build_dispatcher(config: MonitorConfig) -> AlertDispatcher:
    if config.alert_url:
        logger.info("告警将发送到 %s", config.alert_url)
        return AlertDispatcher(HttpAlertSink(config.alert_url))
    return AlertDispatcher(LogAlertSink())


def build_controller(config: MonitorConfig, source=None, detector_factory=FaceDetector) -> DetectionLoopController:
    """
    组装默认的摄像头 + MediaPipe + pygame 控制器。

    检测器在 prepare() 时才创建，加载失败以 DetectorLoadError 抛给调用方。
    """
    return DetectionLoopController(
        detector=None,
        detector_factory=detector_factory,
        source=source if source is not None else CameraSource(config.camera_index),
        config=config,
        alarm=build_alarm(config),
        dispatcher=build_dispatcher(config),
    )
