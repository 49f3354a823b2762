import logging
from abc import ABC, abstractmethod

from ..errors import ModelUnavailableError

logger = logging.getLogger(__name__)


class BaseDetector(ABC):
    """Model-backed occlusion collaborator: load once with ``init()``, then ``predict()``."""

    name = "detector"

    def __init__(self):
        self.model = None
        self._load_error = None

    @property
    def ready(self):
        return self.model is not None

    def init(self):
        """Load the model if it is not loaded yet. Raises ModelUnavailableError on failure."""
        if self.model is not None:
            return self
        if self._load_error is not None:
            raise ModelUnavailableError(f"{self.name} unavailable: {self._load_error}")
        logger.info(f"🤖 Loading {self.name} model...")
        try:
            self.model = self.load_model()
        except Exception as e:
            self._load_error = e
            raise ModelUnavailableError(f"{self.name} failed to load: {e}") from e
        logger.info(f"   ✓ {self.name} model ready")
        return self

    def predict(self, image):
        """Run the model on an RGBA/RGB uint8 image."""
        self.init()
        try:
            inputs = self.preprocess_image(image)
            raw = self.run_model(inputs)
            return self.postprocess(raw, image)
        except ModelUnavailableError:
            raise
        except Exception as e:
            raise ModelUnavailableError(f"{self.name} inference failed: {e}") from e

    @abstractmethod
    def load_model(self):
        """Load the model and return a handle to it."""
        pass

    @abstractmethod
    def preprocess_image(self, image):
        """Preprocess the image for the model."""
        pass

    @abstractmethod
    def run_model(self, inputs):
        """Run inference on preprocessed inputs."""
        pass

    @abstractmethod
    def postprocess(self, outputs, image):
        """Turn raw model outputs into the collaborator's result type."""
        pass
