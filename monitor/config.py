"""监测参数配置：默认值、JSON 配置文件加载和运行时更新"""

import json
import logging
import math
from dataclasses import asdict, dataclass, fields
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class MonitorConfig:
    """所有可调参数，字段名即 JSON 配置文件中的键"""

    # 检测循环
    detection_interval_ms: float = 100.0
    log_every_n_frames: int = 10

    # 闭眼告警
    ear_closed_threshold: float = 0.21
    warning_duration_sec: float = 3.0
    alarm_duration_sec: float = 5.0
    sleeping_triggers_alarm: bool = False
    stop_alarm_on_reopen: bool = True

    # 状态分类
    sleeping_ear_threshold: float = 0.15
    drowsy_ear_threshold: float = 0.2
    tension_movement_threshold: float = 2.0
    still_movement_threshold: float = 0.5

    # 警报声
    alarm_tone_hz: float = 800.0
    alarm_max_duration_sec: float = 10.0
    alarm_beep_ms: float = 200.0
    alarm_gap_ms: float = 100.0
    alarm_pause_ms: float = 500.0
    alarm_cycles: int = 10
    alarm_volume: float = 0.3

    # 外部协作方
    driver_id: str = "driver-001"
    alert_url: Optional[str] = None
    camera_index: int = 0

    def update(self, data: dict, strict: bool = False) -> None:
        """
        用字典覆盖已知字段，None 值和未知字段被忽略。

        每个值按字段默认值的类型转换；无法转换时，strict=False 跳过该字段并记录警告，
        strict=True 抛出 ValueError 且不修改任何字段。
        """
        defaults = {f.name: f.default for f in fields(self)}
        accepted = {}
        rejected = []
        for key, value in data.items():
            if key not in defaults or value is None:
                continue
            try:
                accepted[key] = _coerce(defaults[key], value)
            except (TypeError, ValueError):
                rejected.append(key)

        if rejected:
            if strict:
                raise ValueError(f"配置值类型无效: {', '.join(rejected)}")
            logger.warning("忽略类型无效的配置项: %s", ", ".join(rejected))

        for key, value in accepted.items():
            setattr(self, key, value)

    def to_dict(self) -> dict:
        return asdict(self)


_TRUE_STRINGS = ("true", "1", "yes", "on")
_FALSE_STRINGS = ("false", "0", "no", "off")


def _coerce(default, value):
    """按默认值的类型转换配置值，失败时抛出 TypeError / ValueError"""
    if isinstance(default, bool):
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in _TRUE_STRINGS + _FALSE_STRINGS:
            return value.strip().lower() in _TRUE_STRINGS
        raise ValueError(value)

    # bool 是 int 的子类，数值字段不接受 true/false
    if isinstance(value, bool):
        raise TypeError(value)

    if isinstance(default, int):
        number = float(value)
        if not number.is_integer():
            raise ValueError(value)
        return int(number)
    if isinstance(default, float):
        number = float(value)
        if not math.isfinite(number):
            raise ValueError(value)
        return number

    # 字符串字段（alert_url 默认为 None）
    if not isinstance(value, (str, int, float)):
        raise TypeError(value)
    return str(value)


DEFAULTS = MonitorConfig().to_dict()


def load_config(config_path: Optional[str] = None) -> MonitorConfig:
    """从 JSON 配置文件加载参数，缺失字段使用默认值。"""
    config = MonitorConfig()

    if config_path is None:
        return config

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        logger.warning("配置文件不存在 %s，使用默认参数", config_path)
        return config
    except json.JSONDecodeError:
        logger.warning("配置文件格式错误 %s，使用默认参数", config_path)
        return config

    if not isinstance(data, dict):
        logger.warning("配置文件内容不是 JSON 对象 %s，使用默认参数", config_path)
        return config

    config.update(data)
    return config
