"""frame_source.py – OpenCV webcam / video-file frame source."""

from __future__ import annotations

import logging

import cv2
import numpy as np

from signflow.errors import FrameSourceError

logger = logging.getLogger(__name__)


class CameraFrameSource:
    """Pull BGR frames from a camera index or a video file.

    The streaming loop polls :attr:`ended` and :attr:`ready` before every
    :meth:`read`; a paused source is skipped, an ended one stops the loop.
    """

    def __init__(
        self,
        device: int | str = 0,
        width: int | None = 640,
        height: int | None = 480,
        mirror: bool = True,
    ) -> None:
        self.device = device
        self.mirror = mirror
        self._paused = False
        self._ended = False

        self._cap = cv2.VideoCapture(device)
        if not self._cap.isOpened():
            self._cap.release()
            raise FrameSourceError(f"Cannot open camera {device!r}")

        if isinstance(device, int):
            if width:
                self._cap.set(cv2.CAP_PROP_FRAME_WIDTH, width)
            if height:
                self._cap.set(cv2.CAP_PROP_FRAME_HEIGHT, height)

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def ended(self) -> bool:
        return self._ended

    @property
    def ready(self) -> bool:
        return not (self._paused or self._ended)

    def pause(self) -> None:
        self._paused = True

    def resume(self) -> None:
        self._paused = False

    def read(self) -> np.ndarray | None:
        """Return the next frame, or ``None`` (and mark the source ended)."""
        if self._ended:
            return None
        ok, frame = self._cap.read()
        if not ok or frame is None:
            logger.info("Frame source %r ended", self.device)
            self._ended = True
            return None
        return cv2.flip(frame, 1) if self.mirror else frame

    def release(self) -> None:
        self._ended = True
        self._cap.release()

    def __enter__(self) -> CameraFrameSource:
        return self

    def __exit__(self, *exc) -> None:
        self.release()
