"""
Medication Viewer
Read-only browsing session over the medication pricing document store
"""

__version__ = "1.0.0"
