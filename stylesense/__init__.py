"""
StyleSense — multi-agent outfit recommendation service.
"""

__version__ = "1.0.0"
