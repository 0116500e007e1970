"""Image sources: live OpenCV camera capture and static images."""

import io
import threading
from typing import Optional, Tuple

import cv2
import numpy as np
from PIL import Image, UnidentifiedImageError

from .interfaces import FrameSourceInterface, NDArray
from .error_handler import ImageUnavailableError
from ..logging_config import get_logger

logger = get_logger("frame_capture")


def decode_image(data: bytes) -> NDArray:
    """Decode uploaded image bytes into an RGB array."""
    if not data:
        raise ImageUnavailableError("Empty image upload")

    try:
        with Image.open(io.BytesIO(data)) as img:
            return np.asarray(img.convert("RGB"))
    except (UnidentifiedImageError, OSError) as e:
        raise ImageUnavailableError(f"Could not decode image: {e}") from e


class OpenCVFrameSource(FrameSourceInterface):
    """Live camera frames read on demand through cv2.VideoCapture.

    Once capture is started, a camera that failed to open is retried on the
    next ``get_frame`` call, and a camera that fails ``max_consecutive_errors``
    reads in a row is released and reopened.
    """

    def __init__(self, camera_index: int = 0,
                 resolution: Tuple[int, int] = (640, 480),
                 mirror: bool = True,
                 max_consecutive_errors: int = 3):
        self.camera_index = camera_index
        self.resolution = resolution
        self.mirror = mirror
        self.max_consecutive_errors = max_consecutive_errors
        self.camera = None
        self._capturing = False
        self._frame_lock = threading.Lock()

        self.error_count = 0
        self.consecutive_errors = 0
        self.reopen_count = 0

        logger.info("Frame source initialized", extra={
            'context': {
                'camera_index': camera_index,
                'resolution': f"{resolution[0]}x{resolution[1]}",
                'mirror': mirror
            }
        })

    def start_capture(self) -> None:
        """Open the camera device.

        Raises ImageUnavailableError if it cannot be opened; capture stays
        started and the camera is retried on the next frame request.
        """
        with self._frame_lock:
            self._capturing = True
            if self.camera is not None and self.camera.isOpened():
                return
            self.camera = self._open_camera()

        logger.info(f"Camera {self.camera_index} opened")

    def get_frame(self) -> Optional[NDArray]:
        """Read the current frame as RGB, or None if none is available."""
        with self._frame_lock:
            if not self._capturing:
                return None

            if self.camera is None:
                try:
                    self.camera = self._open_camera()
                except ImageUnavailableError as e:
                    logger.debug(f"Camera still unavailable: {e}")
                    return None
                self.reopen_count += 1
                logger.info(f"Camera {self.camera_index} reopened")

            ok, frame = self.camera.read()
            if not ok or frame is None:
                self.error_count += 1
                self.consecutive_errors += 1
                logger.debug(f"Frame read failed ({self.consecutive_errors} consecutive)")

                if self.consecutive_errors >= self.max_consecutive_errors:
                    logger.warning(f"Camera {self.camera_index} failed {self.consecutive_errors} "
                                   f"reads in a row, releasing it for reopen")
                    self.camera.release()
                    self.camera = None
                    self.consecutive_errors = 0
                return None

            self.consecutive_errors = 0

        if self.mirror:
            frame = cv2.flip(frame, 1)
        return cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)

    def stop_capture(self) -> None:
        """Release the camera device."""
        with self._frame_lock:
            self._capturing = False
            if self.camera is not None:
                self.camera.release()
                self.camera = None
        logger.info(f"Camera {self.camera_index} released")

    def is_available(self) -> bool:
        with self._frame_lock:
            return self.camera is not None and self.camera.isOpened()

    def _open_camera(self):
        camera = cv2.VideoCapture(self.camera_index)
        if not camera.isOpened():
            camera.release()
            raise ImageUnavailableError(f"Unable to open camera {self.camera_index}")

        camera.set(cv2.CAP_PROP_FRAME_WIDTH, self.resolution[0])
        camera.set(cv2.CAP_PROP_FRAME_HEIGHT, self.resolution[1])
        return camera


class StaticImageSource(FrameSourceInterface):
    """Serves one decoded image as every frame."""

    def __init__(self, image: Optional[NDArray] = None):
        self._image = image

    def set_image(self, image: Optional[NDArray]) -> None:
        self._image = image

    def start_capture(self) -> None:
        pass

    def get_frame(self) -> Optional[NDArray]:
        return self._image

    def stop_capture(self) -> None:
        pass

    def is_available(self) -> bool:
        return self._image is not None
