"""Device detection for embedding inference."""

import platform
from typing import Any, Dict, Optional
import torch
import structlog

logger = structlog.get_logger("embedding_service.gpu_detector")


class GPUDetector:
    """Detects available accelerators and picks the device for the model."""

    def __init__(self):
        """Prepare detection state and caches."""
        self.gpu_info: Dict[str, Any] = {}
        self.current_device: Optional[str] = None
        self._detection_complete = False

    def detect_gpus(self) -> Dict[str, Any]:
        """Detect available GPU resources."""
        if self._detection_complete:
            return self.gpu_info

        gpu_info = {
            "platform": platform.system(),
            "architecture": platform.machine(),
            "cuda_available": False,
            "mps_available": False,  # Apple Metal Performance Shaders
            "gpu_count": 0,
            "recommended_device": "cpu"
        }

        try:
            if torch.cuda.is_available():
                gpu_info["cuda_available"] = True
                gpu_info["gpu_count"] = torch.cuda.device_count()
                gpu_info["recommended_device"] = "cuda:0"

            elif hasattr(torch.backends, 'mps') and torch.backends.mps.is_available():
                gpu_info["mps_available"] = True
                gpu_info["gpu_count"] = 1
                gpu_info["recommended_device"] = "mps"

        except Exception as e:
            # Detection problems must never block startup; CPU always works.
            logger.error("GPU detection failed", error=str(e))
            gpu_info["recommended_device"] = "cpu"

        self.gpu_info = gpu_info
        self._detection_complete = True

        logger.info(
            "GPU detection completed",
            platform=gpu_info["platform"],
            architecture=gpu_info["architecture"],
            cuda_available=gpu_info["cuda_available"],
            mps_available=gpu_info["mps_available"],
            gpu_count=gpu_info["gpu_count"],
            recommended_device=gpu_info["recommended_device"]
        )

        return gpu_info

    def select_device(self, preference: str = "auto") -> str:
        """Select the best available device for ``preference`` (auto, cpu, gpu)."""
        if not self._detection_complete:
            self.detect_gpus()

        if preference == "cpu":
            self.current_device = "cpu"
        elif preference == "gpu":
            if self.gpu_info["cuda_available"]:
                self.current_device = "cuda:0"
            elif self.gpu_info["mps_available"]:
                self.current_device = "mps"
            else:
                logger.warning("GPU requested but not available, falling back to CPU")
                self.current_device = "cpu"
        else:  # auto
            self.current_device = self.gpu_info["recommended_device"]

        logger.info("Device selected", device=self.current_device, preference=preference)
        return self.current_device


# Global GPU detector instance
_gpu_detector: Optional[GPUDetector] = None


def get_gpu_detector() -> GPUDetector:
    """Get or create GPU detector instance."""
    global _gpu_detector
    if _gpu_detector is None:
        _gpu_detector = GPUDetector()
    return _gpu_detector


def detect_optimal_device(preference: str = "auto") -> str:
    """Detect optimal device for embedding inference."""
    detector = get_gpu_detector()
    return detector.select_device(preference)
