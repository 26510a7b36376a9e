"""adpilot - Google Ads management dashboard API"""

__version__ = "1.0.0"
