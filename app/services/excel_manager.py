"""
Excel File Manager with Concurrency Control

Appends finished orders (Completed or Cancelled) to the reporting workbook.
Several Celery workers may export at once, so every read-modify-write of
the workbook happens under a file lock.

Author: Khalil Bannouri
Version: 4.0.0
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any

import pandas as pd
from filelock import FileLock, Timeout

from app.core.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)

DATA_DIR = Path(settings.data_directory)
ORDERS_FILE = DATA_DIR / settings.excel_filename
ORDERS_LOCK = DATA_DIR / f"{settings.excel_filename}.lock"


class ExcelManager:
    """Thread-safe Excel file manager."""

    LOCK_TIMEOUT = settings.excel_lock_timeout

    ORDER_COLUMNS = [
        "order_id",
        "table_number",
        "date_time",
        "items",
        "item_count",
        "total_price",
        "payment_method",
        "payment_reference",
        "note",
        "order_status",
        "closed_at",
        "exported_at",
    ]

    @classmethod
    def _ensure_data_dir(cls) -> None:
        """Create data directory if needed."""
        if not DATA_DIR.exists():
            DATA_DIR.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created data directory: {DATA_DIR}")

    @classmethod
    def _load_or_create_df(cls, file_path: Path, columns: list) -> pd.DataFrame:
        """Load existing file or create new DataFrame."""
        if file_path.exists():
            try:
                return pd.read_excel(file_path, engine="openpyxl")
            except Exception as e:
                logger.warning(f"Error reading {file_path}: {e}")
                return pd.DataFrame(columns=columns)
        return pd.DataFrame(columns=columns)

    @classmethod
    def export_order(cls, order_data: dict[str, Any]) -> dict[str, Any]:
        """Export one finished order to Excel with file locking."""
        cls._ensure_data_dir()

        order_id = order_data.get("order_id", 0)
        result = {
            "success": False,
            "message": "",
            "order_id": order_id,
            "exported_at": None,
        }

        try:
            lock = FileLock(str(ORDERS_LOCK), timeout=cls.LOCK_TIMEOUT)

            with lock:
                logger.debug(f"Lock acquired for Order #{order_id}")

                df = cls._load_or_create_df(ORDERS_FILE, cls.ORDER_COLUMNS)

                export_time = datetime.now().isoformat()
                new_row = {
                    "order_id": order_id,
                    "table_number": order_data.get("table_number"),
                    "date_time": order_data.get("created_at", export_time),
                    "items": order_data.get("items"),
                    "item_count": order_data.get("item_count", 0),
                    "total_price": order_data.get("total_price"),
                    "payment_method": order_data.get("payment_method"),
                    "payment_reference": order_data.get("payment_reference"),
                    "note": order_data.get("note"),
                    "order_status": order_data.get("order_status"),
                    "closed_at": order_data.get("updated_at"),
                    "exported_at": export_time,
                }

                new_df = pd.DataFrame([new_row], columns=cls.ORDER_COLUMNS)
                df = new_df if df.empty else pd.concat([df, new_df], ignore_index=True)
                df.to_excel(str(ORDERS_FILE), index=False, engine="openpyxl")

                logger.info(f"Order #{order_id} exported to Excel")

                result["success"] = True
                result["message"] = f"Order #{order_id} exported"
                result["exported_at"] = export_time

            logger.debug(f"Lock released for Order #{order_id}")

        except Timeout:
            result["message"] = f"Lock timeout ({cls.LOCK_TIMEOUT}s)"
            logger.error(f"Lock timeout for Order #{order_id}")

        except Exception as e:
            result["message"] = str(e)
            logger.exception(f"Error exporting Order #{order_id}")

        return result

    @classmethod
    def get_all_orders(cls) -> list[dict[str, Any]]:
        """Get all exported orders from Excel."""
        cls._ensure_data_dir()

        if not ORDERS_FILE.exists():
            return []

        try:
            df = pd.read_excel(ORDERS_FILE, engine="openpyxl")
            return df.to_dict("records")
        except Exception as e:
            logger.error(f"Error reading orders: {e}")
            return []

    @classmethod
    def clear_all(cls) -> bool:
        """Delete the workbook and its lock file."""
        try:
            for f in [ORDERS_FILE, ORDERS_LOCK]:
                if f.exists():
                    f.unlink()
            logger.info("Excel report cleared")
            return True
        except OSError as e:
            logger.error(f"Error clearing files: {e}")
            return False
