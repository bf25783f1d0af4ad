"""人脸关键点检测模块，基于 MediaPipe FaceMesh"""

from typing import List

import cv2
import numpy as np

from models.data_models import Face
from monitor.errors import DetectorLoadError


def _load_mediapipe():
    """延迟加载 MediaPipe，处理导入错误"""
    try:
        import mediapipe as mp
        return mp
    except ImportError as e:
        raise DetectorLoadError(
            "MediaPipe 未安装，请运行 pip install mediapipe 安装"
        ) from e


class FaceDetector:
    """使用 MediaPipe FaceMesh 检测人脸关键点"""

    def __init__(
        self,
        max_num_faces: int = 1,
        min_detection_confidence: float = 0.5,
        refine_landmarks: bool = True,
    ):
        """
        初始化 MediaPipe FaceMesh。

        Raises:
            DetectorLoadError: MediaPipe 不可用或模型初始化失败
        """
        mp = _load_mediapipe()
        try:
            self._face_mesh = mp.solutions.face_mesh.FaceMesh(
                max_num_faces=max_num_faces,
                min_detection_confidence=min_detection_confidence,
                min_tracking_confidence=0.5,
                refine_landmarks=refine_landmarks,
            )
        except Exception as e:
            raise DetectorLoadError(f"人脸检测模型初始化失败: {e}") from e

    def estimate_faces(self, frame: np.ndarray) -> List[Face]:
        """
        检测单帧图像中的人脸关键点。

        Args:
            frame: BGR 格式的 OpenCV 图像帧

        Returns:
            Face 列表（像素坐标），未检测到人脸时为空列表
        """
        h, w = frame.shape[:2]

        # BGR -> RGB
        rgb_frame = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        rgb_frame.flags.writeable = False

        results = self._face_mesh.process(rgb_frame)

        if not results.multi_face_landmarks:
            return []

        # 将归一化坐标转换为像素坐标
        return [
            Face(keypoints=[(lm.x * w, lm.y * h) for lm in face.landmark])
            for face in results.multi_face_landmarks
        ]

    def close(self):
        """释放 MediaPipe 资源"""
        self._face_mesh.close()
