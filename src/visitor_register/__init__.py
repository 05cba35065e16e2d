"""
Visitor Register backend: visitor check-in/check-out with QR scan-to-exit.
"""

__version__ = "1.0.0"
