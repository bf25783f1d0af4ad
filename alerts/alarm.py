"""警报声合成模块：生成双响蜂鸣序列并通过音频设备播放"""

import functools
import logging
import threading

import numpy as np

logger = logging.getLogger(__name__)

DEFAULT_SAMPLE_RATE = 44100


def _load_pygame():
    """延迟加载 pygame，处理导入错误"""
    try:
        import pygame
        return pygame
    except ImportError as e:
        raise ImportError(
            "pygame 未安装，请运行 pip install pygame 安装"
        ) from e


def _tone(freq_hz: float, duration_ms: float, sample_rate: int, fade_ms: float) -> np.ndarray:
    """生成带淡入淡出包络的正弦波（浮点，幅度 1.0）"""
    n = int(sample_rate * duration_ms / 1000.0)
    t = np.arange(n) / sample_rate
    wave = np.sin(2 * np.pi * freq_hz * t)

    fade_n = min(int(sample_rate * fade_ms / 1000.0), n // 2)
    if fade_n > 0:
        ramp = np.linspace(0.0, 1.0, fade_n)
        wave[:fade_n] *= ramp
        wave[-fade_n:] *= ramp[::-1]
    return wave


def build_beep_pattern(
    tone_hz: float = 800.0,
    beep_ms: float = 200.0,
    gap_ms: float = 100.0,
    pause_ms: float = 500.0,
    cycles: int = 10,
    volume: float = 0.3,
    sample_rate: int = DEFAULT_SAMPLE_RATE,
    fade_ms: float = 10.0,
) -> np.ndarray:
    """
    生成完整的警报波形。

    每个周期: 蜂鸣 - 间隔 - 蜂鸣 - 停顿，共重复 cycles 次。

    Returns:
        单声道 int16 PCM 数组
    """
    beep = _tone(tone_hz, beep_ms, sample_rate, fade_ms)
    gap = np.zeros(int(sample_rate * gap_ms / 1000.0))
    pause = np.zeros(int(sample_rate * pause_ms / 1000.0))

    cycle = np.concatenate([beep, gap, beep, pause])
    pattern = np.tile(cycle, max(cycles, 0)) * float(np.clip(volume, 0.0, 1.0))

    return (pattern * (2 ** 15 - 1)).astype(np.int16)


class PygameAudioOutput:
    """基于 pygame.mixer 的音频输出设备"""

    def __init__(self, sample_rate: int = DEFAULT_SAMPLE_RATE):
        self.sample_rate = sample_rate
        self._pygame = None
        self._sound = None

    def _ensure_mixer(self):
        if self._pygame is None:
            pygame = _load_pygame()
            pygame.mixer.init(frequency=self.sample_rate, size=-16, channels=1, buffer=512)
            self._pygame = pygame

    def play(self, samples: np.ndarray):
        """播放 int16 单声道 PCM 数据"""
        self._ensure_mixer()
        _, _, channels = self._pygame.mixer.get_init()
        if channels > 1:
            samples = np.repeat(samples[:, np.newaxis], channels, axis=1)
        self._sound = self._pygame.mixer.Sound(buffer=np.ascontiguousarray(samples).tobytes())
        self._sound.play()

    def stop(self):
        if self._sound is not None:
            self._sound.stop()
            self._sound = None

    def close(self):
        """释放 mixer 资源"""
        self.stop()
        if self._pygame is not None:
            self._pygame.mixer.quit()
            self._pygame = None


class AlarmSynthesizer:
    """
    管理警报播放会话：同一时间最多一个会话，play() 重入无效，
    到达最大时长后自动停止。
    """

    def __init__(
        self,
        output,
        tone_hz: float = 800.0,
        beep_ms: float = 200.0,
        gap_ms: float = 100.0,
        pause_ms: float = 500.0,
        cycles: int = 10,
        volume: float = 0.3,
        max_duration_sec: float = 10.0,
        sample_rate: int = DEFAULT_SAMPLE_RATE,
        timer_factory=threading.Timer,
    ):
        self._output = output
        self.max_duration_sec = max_duration_sec
        self._timer_factory = timer_factory
        self._pattern = build_beep_pattern(
            tone_hz=tone_hz, beep_ms=beep_ms, gap_ms=gap_ms, pause_ms=pause_ms,
            cycles=cycles, volume=volume, sample_rate=sample_rate,
        )
        self._lock = threading.Lock()
        self._playing = False
        self._timer = None
        self.play_count = 0

    @property
    def is_playing(self) -> bool:
        with self._lock:
            return self._playing

    @property
    def pattern(self) -> np.ndarray:
        return self._pattern

    def play(self) -> bool:
        """开始播放；已在播放时不做任何事。返回是否新开了一个会话。"""
        with self._lock:
            if self._playing:
                return False
            try:
                self._output.play(self._pattern)
            except Exception:
                logger.exception("警报声播放失败")
                return False

            self._playing = True
            self.play_count += 1
            # 计时器只负责停止自己所属的会话
            self._timer = self._timer_factory(
                self.max_duration_sec, functools.partial(self._auto_stop, self.play_count)
            )
            self._timer.daemon = True
            self._timer.start()

        logger.info("警报声开始播放")
        return True

    def stop(self):
        """停止播放，可重复调用"""
        with self._lock:
            stopped = self._stop_locked()
        if stopped:
            logger.info("警报声已停止")

    def _stop_locked(self) -> bool:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if not self._playing:
            return False
        self._playing = False
        try:
            self._output.stop()
        except Exception as e:
            logger.warning("停止警报声时出错（已忽略）: %s", e)
        return True

    def _auto_stop(self, session: int):
        with self._lock:
            if session != self.play_count:
                return
            stopped = self._stop_locked()
        if stopped:
            logger.info("警报声达到最长播放时间 %.1fs", self.max_duration_sec)
