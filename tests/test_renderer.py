"""DisplayRenderer 单元测试"""

import numpy as np
import pytest

from display.renderer import DisplayRenderer, format_duration, format_value
from models.data_models import AlertPhase, DriverState, Face, MonitorSnapshot


# --------------- helpers ---------------

def _make_frame(w=640, h=480):
    """创建黑色测试帧。"""
    return np.zeros((h, w, 3), dtype=np.uint8)


def _snapshot(**kwargs):
    data = dict(ear=0.3, movement=0.1, face_detected=True, is_monitoring=True)
    data.update(kwargs)
    return MonitorSnapshot(**data)


# --------------- format tests ---------------

class TestFormatValue:
    def test_two_decimal_places(self):
        assert format_value(0.123456) == "0.12"

    def test_zero(self):
        assert format_value(0.0) == "0.00"

    def test_integer_value(self):
        assert format_value(1.0) == "1.00"

    def test_negative(self):
        assert format_value(-0.5) == "-0.50"


class TestFormatDuration:
    @pytest.mark.parametrize(
        "seconds, expected",
        [
            (0.0, "0.0s"),
            (4.24, "4.2s"),
            (59.9, "59.9s"),
            (65.0, "1m 5s"),
            (125.4, "2m 5s"),
        ],
    )
    def test_format(self, seconds, expected):
        assert format_duration(seconds) == expected


# --------------- DisplayRenderer init tests ---------------

class TestDisplayRendererInit:
    def test_init_fallback_no_font(self):
        """字体不存在时应回退到 OpenCV 模式（不抛异常）。"""
        renderer = DisplayRenderer(font_path="nonexistent_font_xyz")
        assert renderer is not None

    def test_init_default(self):
        """默认初始化不应抛异常。"""
        renderer = DisplayRenderer()
        assert renderer is not None


# --------------- render tests ---------------

class TestRender:
    def setup_method(self):
        # 强制使用 OpenCV 回退模式以保证跨平台测试一致性
        self.renderer = DisplayRenderer(font_path="nonexistent_font_xyz")
        self.renderer._use_pil = False

    def test_render_returns_ndarray(self):
        frame = _make_frame()
        result = self.renderer.render(frame, None, _snapshot())
        assert isinstance(result, np.ndarray)
        assert result.shape == frame.shape

    def test_render_does_not_modify_original(self, keypoint_factory):
        frame = _make_frame()
        original = frame.copy()
        self.renderer.render(frame, Face(keypoint_factory(0.3)), _snapshot(show_warning=True))
        np.testing.assert_array_equal(frame, original)

    def test_render_with_face(self, keypoint_factory):
        frame = _make_frame()
        result = self.renderer.render(frame, Face(keypoint_factory(0.3)), _snapshot())
        # 关键点和睁眼轮廓为绿色，帧不应全黑
        assert result.sum() > 0
        assert result[95:106, 100:131, 1].max() == 255

    def test_closed_eye_outline_is_red(self, keypoint_factory):
        frame = _make_frame()
        face = Face(keypoint_factory(0.15))
        result = self.renderer.render(frame, face, _snapshot(ear=0.15, eyes_closed=True))
        eye_region = result[95:106, 100:131]
        assert eye_region[:, :, 2].max() == 255

    def test_render_warning_red_pixels(self):
        """警告时画面中央应出现红色像素 (BGR: 0,0,255)。"""
        frame = _make_frame()
        snapshot = _snapshot(
            eyes_closed=True, eyes_closed_duration=3.2,
            alert_phase=AlertPhase.CLOSED_WARNING, show_warning=True,
        )
        result = self.renderer.render(frame, None, snapshot)
        h, w = result.shape[:2]
        center = result[h // 3: 2 * h // 3, :, 2]
        assert center.max() == 255

    def test_render_normal_no_red_warning(self):
        """正常状态不应有大面积红色警告。"""
        frame = _make_frame()
        result = self.renderer.render(frame, None, _snapshot())
        h, w = result.shape[:2]
        center = result[h // 3: 2 * h // 3, w // 4: 3 * w // 4, 2]
        assert center.max() < 200

    @pytest.mark.parametrize("state", list(DriverState))
    def test_render_each_state(self, state):
        result = self.renderer.render(_make_frame(), None, _snapshot(driver_state=state))
        assert result.sum() > 0

    def test_render_no_face(self):
        result = self.renderer.render(_make_frame(), None, _snapshot(face_detected=False))
        assert result.shape == (480, 640, 3)

    def test_short_keypoint_list_skips_eyes(self):
        """关键点不足时不绘制眼部轮廓，也不抛异常。"""
        face = Face(keypoints=[(10.0, 10.0)] * 20)
        result = self.renderer.render(_make_frame(), face, _snapshot())
        assert result.shape == (480, 640, 3)
