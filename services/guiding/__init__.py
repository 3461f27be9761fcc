"""
TEMPFOCUS Guiding Services
PHD2 Integration for Autoguiding
"""

from .phd2_client import PHD2Client, GuideState, GuiderInfo

__all__ = ["PHD2Client", "GuideState", "GuiderInfo"]
