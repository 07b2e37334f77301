"""Change-detection monitor exports."""

from .bag_monitor import BagMonitor
from .detector import ChangeDetector
from .scheduler import MonitorState, RepeatingTask

__all__ = ["BagMonitor", "ChangeDetector", "MonitorState", "RepeatingTask"]
