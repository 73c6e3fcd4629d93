"""
Clinic Console

A FastAPI-based operator console for a clinic backend: doctor-shift
schedule views, shift cancellation with impact preview, and shift restore.
"""

__version__ = "1.0.0"
