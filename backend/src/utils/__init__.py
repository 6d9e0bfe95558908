"""
Utility modules for the clinic finance application.

This package contains shared helpers used across the application, mainly
clinic-time datetime handling and period windows.
"""

from utils.datetime_utils import clinic_now, month_window

__all__ = ['clinic_now', 'month_window']
