"""视频帧来源模块，封装 OpenCV 摄像头"""

import logging
from typing import Optional

import cv2
import numpy as np

from monitor.errors import CameraUnavailableError

logger = logging.getLogger(__name__)


class CameraSource:
    """OpenCV 摄像头帧来源"""

    def __init__(self, camera_index: int = 0, width: int = 640, height: int = 480):
        self.camera_index = camera_index
        self.width = width
        self.height = height
        self._cap = None

    def open(self):
        """
        打开摄像头。

        Raises:
            CameraUnavailableError: 摄像头无法打开
        """
        if self.is_ready():
            return
        self._cap = cv2.VideoCapture(self.camera_index)
        if not self._cap.isOpened():
            self._cap = None
            raise CameraUnavailableError(f"无法打开摄像头 {self.camera_index}")
        self._cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        self._cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        logger.info("摄像头 %d 已打开", self.camera_index)

    def is_ready(self) -> bool:
        return self._cap is not None and self._cap.isOpened()

    def read(self) -> Optional[np.ndarray]:
        """读取当前帧，读取失败时返回 None"""
        if not self.is_ready():
            return None
        ret, frame = self._cap.read()
        if not ret:
            return None
        return frame

    def release(self):
        """释放摄像头，可重复调用"""
        if self._cap is not None:
            if self._cap.isOpened():
                self._cap.release()
            self._cap = None
            logger.info("摄像头已释放")
