"""
WebPrint Service
Browser upload queue server and polling print agent
"""

__version__ = "1.0.0"
