import os

from dotenv import load_dotenv

load_dotenv()

# Change detection
SCENE_CHANGE_THRESHOLD = float(os.getenv("SCENE_CHANGE_THRESHOLD", "0.18"))  # 0-1, score at which a frame counts as changed
# Zero-variance frames (lens cap, blown-out sky) score NaN; True = treat as changed
DEGENERATE_SCORE_IS_CHANGE = os.getenv("DEGENERATE_SCORE_IS_CHANGE", "true").lower() in ("true", "1", "yes")

# Scoring reductions
# Threads for the per-chunk sums (None = min(8, cpu count))
COMPARE_WORKERS = int(os.getenv("COMPARE_WORKERS")) if os.getenv("COMPARE_WORKERS") else None
COMPARE_CHUNK_PIXELS = int(os.getenv("COMPARE_CHUNK_PIXELS", str(1 << 20)))  # Pixels per reduction chunk

# Camera
# Camera source: int for local index, str for RTSP/MJPEG URL, None for CAMERA_INDEX
# Examples:
#   CAMERA_SOURCE=0
#   CAMERA_SOURCE=rtsp://192.168.1.50:8554/driveway
_raw_camera_source = os.getenv("CAMERA_SOURCE", "").strip()
CAMERA_SOURCE = int(_raw_camera_source) if _raw_camera_source.isdigit() else (_raw_camera_source or None)
CAMERA_INDEX = 0
CAPTURE_INTERVAL = float(os.getenv("CAPTURE_INTERVAL", "2.0"))  # Seconds between captures in watch mode
FRAME_RESOLUTION = (640, 480)  # Every frame is resized to this before scoring

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
