"""
                        Services Module

Server-side business logic. Collaborators with more than one backend follow
the factory pattern: a base class, implementations, and a cached getter in
the package __init__.

Services:
    - orders: state machine, order store, lifecycle service
    - realtime: kitchen/table room broadcast (in-memory or Redis)
    - menu: menu catalog
    - payment: demo payment links for Online orders
    - reports: admin statistics
    - excel_manager: Thread-safe Excel export of finished orders
"""

from app.services.excel_manager import ExcelManager

__all__ = ["ExcelManager"]
