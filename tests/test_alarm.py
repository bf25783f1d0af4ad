"""警报声合成与播放会话单元测试"""

from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from alerts.alarm import (
    DEFAULT_SAMPLE_RATE,
    AlarmSynthesizer,
    PygameAudioOutput,
    build_beep_pattern,
)


class FakeOutput:
    def __init__(self, fail=False):
        self.fail = fail
        self.played = []
        self.stops = 0

    def play(self, samples):
        if self.fail:
            raise RuntimeError("no audio device")
        self.played.append(samples)

    def stop(self):
        self.stops += 1


class FakeTimer:
    """不启动真实线程的计时器，测试中手动 fire()"""

    instances = []

    def __init__(self, interval, function):
        self.interval = interval
        self.function = function
        self.daemon = False
        self.started = False
        self.cancelled = False
        FakeTimer.instances.append(self)

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        self.function()


@pytest.fixture(autouse=True)
def _clear_timers():
    FakeTimer.instances = []
    yield
    FakeTimer.instances = []


@pytest.fixture
def output():
    return FakeOutput()


@pytest.fixture
def alarm(output):
    return AlarmSynthesizer(output, timer_factory=FakeTimer)


def _dominant_frequency(samples, sample_rate):
    spectrum = np.abs(np.fft.rfft(samples.astype(np.float64)))
    freqs = np.fft.rfftfreq(len(samples), d=1.0 / sample_rate)
    return freqs[int(np.argmax(spectrum))]


class TestBeepPattern:
    def test_dtype_and_length(self):
        pattern = build_beep_pattern()
        cycle = int(DEFAULT_SAMPLE_RATE * 0.2) * 2 + int(DEFAULT_SAMPLE_RATE * 0.1) + int(DEFAULT_SAMPLE_RATE * 0.5)
        assert pattern.dtype == np.int16
        assert len(pattern) == cycle * 10

    def test_dominant_frequency(self):
        pattern = build_beep_pattern(cycles=1)
        assert _dominant_frequency(pattern, DEFAULT_SAMPLE_RATE) == pytest.approx(800.0, abs=5.0)

    def test_custom_tone(self):
        pattern = build_beep_pattern(tone_hz=1200.0, cycles=1)
        assert _dominant_frequency(pattern, DEFAULT_SAMPLE_RATE) == pytest.approx(1200.0, abs=5.0)

    def test_volume_scales_amplitude(self):
        peak = int(np.abs(build_beep_pattern(cycles=1, volume=0.3)).max())
        assert peak == pytest.approx(0.3 * 32767, rel=0.02)

    def test_volume_clipped(self):
        loud = build_beep_pattern(cycles=1, volume=5.0)
        assert int(np.abs(loud.astype(np.int32)).max()) <= 32767

    def test_gap_and_pause_are_silent(self):
        rate = 1000
        pattern = build_beep_pattern(cycles=1, sample_rate=rate)
        # 200 蜂鸣 + 100 间隔 + 200 蜂鸣 + 500 停顿
        assert np.all(pattern[200:300] == 0)
        assert np.all(pattern[500:] == 0)
        assert np.any(pattern[:200] != 0)
        assert np.any(pattern[300:500] != 0)

    def test_fade_edges(self):
        pattern = build_beep_pattern(cycles=1)
        assert pattern[0] == 0
        assert abs(int(pattern[int(DEFAULT_SAMPLE_RATE * 0.2) - 1])) < 100

    def test_zero_cycles(self):
        assert len(build_beep_pattern(cycles=0)) == 0


class TestAlarmSynthesizer:
    def test_play_starts_session(self, alarm, output):
        assert alarm.play() is True
        assert alarm.is_playing
        assert alarm.play_count == 1
        assert len(output.played) == 1
        assert output.played[0] is alarm.pattern

    def test_play_is_idempotent(self, alarm, output):
        alarm.play()
        assert alarm.play() is False
        assert alarm.play_count == 1
        assert len(output.played) == 1

    def test_auto_stop_timer(self, alarm, output):
        alarm.play()
        timer = FakeTimer.instances[0]
        assert timer.interval == pytest.approx(10.0)
        assert timer.daemon is True
        assert timer.started

        timer.fire()
        assert not alarm.is_playing
        assert output.stops == 1

    def test_stop_cancels_timer(self, alarm, output):
        alarm.play()
        alarm.stop()
        assert FakeTimer.instances[0].cancelled
        assert not alarm.is_playing
        assert output.stops == 1

    def test_stop_is_idempotent(self, alarm, output):
        alarm.stop()
        alarm.play()
        alarm.stop()
        alarm.stop()
        assert output.stops == 1

    def test_stale_timer_does_not_stop_new_session(self, alarm, output):
        """上一次会话的计时器迟到触发时，不影响新的会话"""
        alarm.play()
        old_timer = FakeTimer.instances[0]
        alarm.stop()
        alarm.play()
        new_timer = FakeTimer.instances[1]

        old_timer.fire()
        assert alarm.is_playing
        assert not new_timer.cancelled
        assert output.stops == 1

        new_timer.fire()
        assert not alarm.is_playing
        assert output.stops == 2

    def test_play_again_after_stop(self, alarm, output):
        alarm.play()
        alarm.stop()
        assert alarm.play() is True
        assert alarm.play_count == 2

    def test_output_failure_is_logged(self, caplog):
        alarm = AlarmSynthesizer(FakeOutput(fail=True), timer_factory=FakeTimer)
        with caplog.at_level("ERROR", logger="alerts.alarm"):
            assert alarm.play() is False
        assert not alarm.is_playing
        assert "警报声播放失败" in caplog.text
        assert FakeTimer.instances == []

    def test_stop_error_is_swallowed(self, alarm, output, caplog):
        output.stop = MagicMock(side_effect=RuntimeError("device gone"))
        alarm.play()
        with caplog.at_level("WARNING", logger="alerts.alarm"):
            alarm.stop()
        assert not alarm.is_playing
        assert "device gone" in caplog.text


class TestPygameAudioOutput:
    def _fake_pygame(self, channels=1):
        pygame = MagicMock()
        pygame.mixer.get_init.return_value = (DEFAULT_SAMPLE_RATE, -16, channels)
        return pygame

    def test_play_initializes_mixer_once(self):
        pygame = self._fake_pygame()
        with patch("alerts.alarm._load_pygame", return_value=pygame):
            out = PygameAudioOutput()
            out.play(build_beep_pattern(cycles=1))
            out.play(build_beep_pattern(cycles=1))

        pygame.mixer.init.assert_called_once_with(
            frequency=DEFAULT_SAMPLE_RATE, size=-16, channels=1, buffer=512
        )
        assert pygame.mixer.Sound.return_value.play.call_count == 2

    def test_stereo_mixer_duplicates_channels(self):
        pygame = self._fake_pygame(channels=2)
        samples = build_beep_pattern(cycles=1)
        with patch("alerts.alarm._load_pygame", return_value=pygame):
            PygameAudioOutput().play(samples)

        buffer = pygame.mixer.Sound.call_args.kwargs["buffer"]
        assert len(buffer) == samples.nbytes * 2

    def test_stop_and_close(self):
        pygame = self._fake_pygame()
        with patch("alerts.alarm._load_pygame", return_value=pygame):
            out = PygameAudioOutput()
            out.play(build_beep_pattern(cycles=1))
            out.close()

        pygame.mixer.Sound.return_value.stop.assert_called_once()
        pygame.mixer.quit.assert_called_once()

    def test_missing_pygame(self):
        with patch("alerts.alarm._load_pygame", side_effect=ImportError("pygame 未安装")):
            with pytest.raises(ImportError):
                PygameAudioOutput().play(build_beep_pattern(cycles=1))
