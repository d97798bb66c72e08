"""Inference module - capability detectors producing structured decision hints."""

from .capabilities import CapabilityDetector, detect_capabilities, default_detectors
from .login_detector import LoginFormDetector
from .modal_detector import ModalDetector
from .user_stories import UserStoryGenerator, describe_graph

__all__ = [
    "CapabilityDetector",
    "detect_capabilities",
    "default_detectors",
    "LoginFormDetector",
    "ModalDetector",
    "UserStoryGenerator",
    "describe_graph",
]
