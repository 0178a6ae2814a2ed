"""
                QR Table Ordering

Restaurant QR-ordering backend: diners scan a table code, build a cart and
submit orders; the kitchen advances them through a strict status chain; every
change is broadcast live to the kitchen room and the table's own room.

Author: Khalil_Bannouri
Version: 4.0.0
License: MIT
"""

__version__ = "4.0.0"
__author__ = "Khalil_Bannouri"
