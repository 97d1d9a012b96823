"""
Kiosk device layer.

Serial protocol engine for the controller board and proximity sensor,
and card, QR and cash payment terminals behind one dispatcher.
"""

__version__ = "1.0.0"
