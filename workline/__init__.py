"""
Workline Gateway

Dispatches queued work items to a serial-attached device and reconciles
the device's event stream back into the local work store.
"""

__version__ = "1.0.0"
