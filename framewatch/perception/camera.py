import logging
from threading import Lock
from typing import Optional, Union

import cv2
import numpy as np

from framewatch.config import CAMERA_INDEX, FRAME_RESOLUTION
from framewatch.detector import ChangeDetector

logger = logging.getLogger("framewatch.camera")


def resize_frame(frame: np.ndarray, resolution: tuple) -> np.ndarray:
    """Nearest-neighbour resize to (width, height); returns `frame` unchanged if it already fits."""
    width, height = resolution
    h, w = frame.shape[:2]
    if (w, h) == (width, height):
        return frame
    return cv2.resize(frame, (width, height), interpolation=cv2.INTER_NEAREST)


class Camera:
    def __init__(self, resolution: tuple = FRAME_RESOLUTION, detector: Optional[ChangeDetector] = None):
        self._cap: Optional[cv2.VideoCapture] = None
        self._resolution = resolution
        self._lock = Lock()
        self._latest_frame: Optional[np.ndarray] = None
        self._detector = detector or ChangeDetector()
        self._source: Union[int, str, None] = None  # Stored for reconnection (str URL or int index)

    @property
    def detector(self) -> ChangeDetector:
        return self._detector

    def _open(self, source: Union[int, str]) -> Optional[np.ndarray]:
        """Open `source` at the configured resolution and return a test frame.

        Any previous capture is released first. On failure the new capture is
        released too and None is returned. Call with self._lock held.
        """
        if self._cap is not None:
            self._cap.release()
        cap = cv2.VideoCapture(source)
        self._cap = None
        if not cap.isOpened():
            return None

        width, height = self._resolution
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, height)
        ret, frame = cap.read()
        if not ret or frame is None:
            cap.release()
            return None

        self._cap = cap
        return frame

    def start(self, source: Union[int, str, None] = None) -> bool:
        """Open a camera source.

        Args:
            source: Camera source, one of:
                - None: CAMERA_INDEX from config
                - int: local camera index (e.g. 0)
                - str: RTSP or MJPEG URL (e.g. "rtsp://192.168.1.50:8554/driveway")

        Returns True once a test frame has been read.
        """
        if source is None:
            source = CAMERA_INDEX

        with self._lock:
            self._source = source
            frame = self._open(source)
        if frame is None:
            logger.error("Failed to open camera source or read a test frame: %s", source)
            return False

        h, w = frame.shape[:2]
        kind = "Remote camera" if self.is_remote else "Camera"
        logger.info("%s ready: %s, %dx%d", kind, source, w, h)
        return True

    @property
    def is_remote(self) -> bool:
        """True if using a network stream (RTSP/MJPEG)."""
        return isinstance(self._source, str)

    def _reconnect(self) -> bool:
        """Reopen a dropped network stream, verified by a test read."""
        if not self.is_remote:
            return False
        logger.warning("Reconnecting to remote camera: %s", self._source)
        if self._open(self._source) is None:
            logger.warning("Reconnection failed: %s", self._source)
            return False
        logger.info("Reconnected to remote camera: %s", self._source)
        return True

    def get_frame(self) -> Optional[np.ndarray]:
        """Capture and return the current frame (BGR, at the configured resolution). Returns None on failure."""
        with self._lock:
            if not self.is_open:
                return None
            ret, frame = self._cap.read()
            if not ret or frame is None:
                # For remote streams, try reconnecting once
                if self.is_remote and self._reconnect():
                    ret, frame = self._cap.read()
                if not ret or frame is None:
                    logger.warning("Failed to read frame from camera")
                    return None

            # Every frame must have the same buffer length for scoring
            frame = resize_frame(frame, self._resolution)
            self._latest_frame = frame
            return frame

    def scene_changed(self) -> bool:
        """Check if the latest frame differs significantly from the detector's reference.

        The detector promotes the frame when a change IS detected, so the
        baseline is always the last frame that triggered.
        """
        if self._latest_frame is None:
            return False
        return self._detector.check(self._latest_frame)

    def get_scene_change_score(self) -> float:
        """Return the raw change score without updating the reference (0.0 before a reference exists)."""
        if self._latest_frame is None or not self._detector.has_reference:
            return 0.0
        return self._detector.score(self._latest_frame)

    def stop(self) -> None:
        """Release the camera."""
        with self._lock:
            if self._cap is not None:
                self._cap.release()
                self._cap = None
                logger.info("Camera released")

    @property
    def is_open(self) -> bool:
        return self._cap is not None and self._cap.isOpened()
