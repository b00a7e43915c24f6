"""Line-item pricing synchronization for quote editors."""

__version__ = "0.1.0"
