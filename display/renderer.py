"""界面渲染模块 - 在视频帧上绘制关键点、眼部轮廓、监测数值和闭眼警告。"""

from typing import Optional

import cv2
import numpy as np

from detectors.eye_analyzer import LEFT_EYE_INDICES, RIGHT_EYE_INDICES, get_eye_landmarks
from models.data_models import DriverState, Face, MonitorSnapshot


def format_value(v: float) -> str:
    """格式化浮点数为两位小数字符串。"""
    return f"{v:.2f}"


def format_duration(seconds: float) -> str:
    """格式化时长：一分钟以内 "4.2s"，否则 "1m 5s"。"""
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes = int(seconds // 60)
    remaining = seconds % 60
    return f"{minutes}m {remaining:.0f}s"


class DisplayRenderer:
    """在视频帧上绘制监测结果、状态信息和闭眼警告。"""

    # 状态文字映射
    _STATE_TEXT = {
        DriverState.ACTIVE: "清醒",
        DriverState.TENSION: "紧张",
        DriverState.SLEEPING: "困倦",
    }

    _STATE_TEXT_EN = {
        DriverState.ACTIVE: "Active",
        DriverState.TENSION: "Tension",
        DriverState.SLEEPING: "Sleeping",
    }

    # BGR
    _OPEN_COLOR = (0, 255, 0)
    _CLOSED_COLOR = (0, 0, 255)

    def __init__(self, font_path: str = "SimHei"):
        """初始化中文字体，字体不存在时回退到 OpenCV 默认英文字体。"""
        self._pil_font = None
        self._pil_font_large = None
        self._use_pil = False

        try:
            from PIL import ImageFont

            font = self._try_load_font(font_path)
            if font is not None:
                self._pil_font = font
                self._pil_font_large = ImageFont.truetype(font.path, 48)
                self._use_pil = True
        except Exception:
            self._use_pil = False

    @staticmethod
    def _try_load_font(font_path: str):
        """尝试加载字体文件，返回 PIL ImageFont 或 None。"""
        from PIL import ImageFont

        try:
            return ImageFont.truetype(font_path, 20)
        except (OSError, IOError):
            pass

        # 常见系统路径
        common_paths = [
            "/usr/share/fonts/truetype/simhei/SimHei.ttf",
            "/usr/share/fonts/SimHei.ttf",
            "C:\\Windows\\Fonts\\simhei.ttf",
            "/System/Library/Fonts/STHeiti Medium.ttc",
        ]
        for path in common_paths:
            try:
                return ImageFont.truetype(path, 20)
            except (OSError, IOError):
                continue

        return None

    def render(
        self,
        frame: np.ndarray,
        face: Optional[Face],
        snapshot: MonitorSnapshot,
    ) -> np.ndarray:
        """渲染监测结果到视频帧，返回渲染后的帧图像。"""
        output = frame.copy()

        if face is not None:
            self._draw_landmarks(output, face)
            self._draw_eyes(output, face, snapshot.eyes_closed)

        self._draw_info(output, snapshot)

        if snapshot.show_warning:
            self._draw_warning(output)

        return output

    @staticmethod
    def _draw_landmarks(frame: np.ndarray, face: Face) -> None:
        """绘制人脸关键点（绿色小圆点）。"""
        for x, y in face.keypoints:
            cv2.circle(frame, (int(x), int(y)), 1, (0, 255, 0), -1)

    def _draw_eyes(self, frame: np.ndarray, face: Face, eyes_closed: bool) -> None:
        """绘制双眼轮廓，闭眼时为红色。"""
        color = self._CLOSED_COLOR if eyes_closed else self._OPEN_COLOR
        for indices in (LEFT_EYE_INDICES, RIGHT_EYE_INDICES):
            if max(indices) >= len(face.keypoints):
                continue
            points = np.array(
                get_eye_landmarks(face.keypoints, indices), dtype=np.int32
            ).reshape((-1, 1, 2))
            cv2.polylines(frame, [points], True, color, 2)

    def _draw_info(self, frame: np.ndarray, snapshot: MonitorSnapshot) -> None:
        """在左上角绘制 EAR、运动量、状态和闭眼时长。"""
        ear_text = f"EAR: {format_value(snapshot.ear)}"
        move_text = f"Move: {format_value(snapshot.movement)}"
        duration_text = format_duration(snapshot.eyes_closed_duration)
        color = self._CLOSED_COLOR if snapshot.eyes_closed else self._OPEN_COLOR

        if self._use_pil:
            if snapshot.face_detected:
                status = self._STATE_TEXT.get(snapshot.driver_state, "清醒")
            else:
                status = "未检测到人脸"
            lines = [ear_text, move_text, f"状态: {status}", f"闭眼: {duration_text}"]
            self._draw_pil_lines(frame, lines, x=10, y_start=30, color=color)
        else:
            if snapshot.face_detected:
                status = self._STATE_TEXT_EN.get(snapshot.driver_state, "Active")
            else:
                status = "No Face"
            lines = [ear_text, move_text, f"State: {status}", f"Closed: {duration_text}"]
            y = 30
            for text in lines:
                cv2.putText(
                    frame, text, (10, y),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.7, color, 2,
                )
                y += 30

    def _draw_warning(self, frame: np.ndarray) -> None:
        """在画面中央显示红色大字体闭眼警告。"""
        h, w = frame.shape[:2]
        warning = "请睁眼！注意休息！"

        if self._use_pil:
            from PIL import Image, ImageDraw

            img_pil = Image.fromarray(cv2.cvtColor(frame, cv2.COLOR_BGR2RGB))
            draw = ImageDraw.Draw(img_pil)
            bbox = draw.textbbox((0, 0), warning, font=self._pil_font_large)
            text_w = bbox[2] - bbox[0]
            text_h = bbox[3] - bbox[1]
            x = (w - text_w) // 2
            y = (h - text_h) // 2
            draw.text((x, y), warning, font=self._pil_font_large, fill=(255, 0, 0))
            frame[:] = cv2.cvtColor(np.array(img_pil), cv2.COLOR_RGB2BGR)
        else:
            warning_en = "WAKE UP! EYES CLOSED!"
            font_scale = 1.5
            thickness = 3
            (text_w, text_h), _ = cv2.getTextSize(
                warning_en, cv2.FONT_HERSHEY_SIMPLEX, font_scale, thickness
            )
            x = (w - text_w) // 2
            y = (h + text_h) // 2
            cv2.putText(
                frame, warning_en, (x, y),
                cv2.FONT_HERSHEY_SIMPLEX, font_scale, (0, 0, 255), thickness,
            )

    def _draw_pil_lines(
        self,
        frame: np.ndarray,
        lines: list,
        x: int,
        y_start: int,
        color: tuple,
    ) -> None:
        """使用 PIL 在帧上绘制多行文字（BGR color -> RGB fill）。"""
        from PIL import Image, ImageDraw

        img_pil = Image.fromarray(cv2.cvtColor(frame, cv2.COLOR_BGR2RGB))
        draw = ImageDraw.Draw(img_pil)
        fill = (color[2], color[1], color[0])
        y = y_start
        for line in lines:
            draw.text((x, y), line, font=self._pil_font, fill=fill)
            y += 28
        frame[:] = cv2.cvtColor(np.array(img_pil), cv2.COLOR_RGB2BGR)
