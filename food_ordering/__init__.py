"""
                Food Ordering Backend

Order lifecycle, store-availability and realtime fan-out engine behind
the customer ordering mini-app and the operator admin console.

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
