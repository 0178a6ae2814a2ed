"""
Celery Tasks
Background export of finished orders to the reporting workbook.
"""

import logging
import time
from typing import Any

from app.celery_worker import celery_app
from app.services.excel_manager import ExcelManager

logger = logging.getLogger(__name__)


class ExportError(Exception):
    """Workbook export failed; the task retries."""


def order_export_data(order) -> dict[str, Any]:
    """Flatten an OrderResponse into the row the workbook stores."""
    items = ", ".join(
        f"{item.quantity}x {item.name}"
        + (f" ({', '.join(o.choice for o in item.selected_options)})" if item.selected_options else "")
        for item in order.items
    )
    return {
        "order_id": order.id,
        "table_number": order.table_number,
        "items": items,
        "item_count": sum(item.quantity for item in order.items),
        "total_price": order.total_price,
        "payment_method": order.payment_method.value,
        "payment_reference": order.payment_reference,
        "note": order.note,
        "order_status": order.status.value,
        "created_at": order.created_at.isoformat(),
        "updated_at": order.updated_at.isoformat(),
    }


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=5,
    autoretry_for=(ExportError,),
    retry_backoff=True
)
def export_order_to_excel(self, order_data: dict) -> dict:
    """
    Export a finished order to Excel.
    This task runs asynchronously via Celery worker.

    Args:
        order_data: Row produced by order_export_data()

    Returns:
        dict: Result of the export operation

    Raises:
        ExportError: the workbook could not be written (retried up to
            max_retries times)
    """
    task_id = self.request.id
    order_id = order_data.get('order_id', 'unknown')

    logger.info(f"Task {task_id}: Exporting order #{order_id}")
    start_time = time.time()

    result = ExcelManager.export_order(order_data)

    elapsed = round(time.time() - start_time, 3)
    result['task_id'] = task_id
    result['processing_time_seconds'] = elapsed

    if not result['success']:
        logger.warning(f"Task {task_id}: Order #{order_id} export failed - {result['message']}")
        raise ExportError(result['message'])

    logger.info(f"Task {task_id}: Order #{order_id} exported in {elapsed}s")

    return result
