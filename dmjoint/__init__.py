"""Serial USB-to-CAN driver and joint hardware interface for DM-series motors."""

__version__ = "0.1.0"
__all__ = ["protocol", "motor", "control", "hardware"]