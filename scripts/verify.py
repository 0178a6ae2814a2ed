"""
Excel Verification Script

Verifies data integrity of the finished-orders export.
Run from project root: python scripts/verify.py

Author: Khalil_Bannouri
Version: 4.0.0
"""

import os
import sys
from datetime import datetime

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pandas as pd

from app.services.excel_manager import ExcelManager, ORDERS_FILE


def verify_excel():
    """Verify Excel file integrity after simulation."""

    print("=" * 60)
    print("🔍 EXCEL VERIFICATION REPORT")
    print("=" * 60)
    print(f"⏰ Timestamp: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"📄 File: {ORDERS_FILE}")
    print("=" * 60)

    # Check if file exists
    if not ORDERS_FILE.exists():
        print("\n❌ Excel file not found!")
        print("   Run the simulation first: python scripts/simulate.py")
        return False

    # Load Excel file
    try:
        df = pd.read_excel(ORDERS_FILE, engine='openpyxl')
        print("\n✅ File loaded successfully!")
    except Exception as e:
        print(f"\n❌ Could not read Excel file: {e}")
        return False

    # Statistics
    print("\n📊 STATISTICS:")
    print(f"   Total Orders: {len(df)}")
    print(f"   Columns: {len(df.columns)}")

    # Check required columns
    missing = [col for col in ExcelManager.ORDER_COLUMNS if col not in df.columns]

    if missing:
        print(f"\n⚠️ Missing Columns: {missing}")
    else:
        print("\n✅ All required columns present")

    # Only finished orders are exported, once each
    if 'order_id' in df.columns:
        duplicates = df['order_id'].duplicated().sum()
        if duplicates > 0:
            print(f"\n⚠️ {duplicates} duplicate order IDs found!")
        else:
            print("✅ No duplicate order IDs")

    if 'order_status' in df.columns:
        unfinished = df[~df['order_status'].isin(['Completed', 'Cancelled'])]
        if len(unfinished) > 0:
            print(f"⚠️ {len(unfinished)} rows are not Completed or Cancelled")
        else:
            print("✅ Only finished orders exported")
        print(f"\n📦 BY STATUS:")
        for status, count in df['order_status'].value_counts().items():
            print(f"   {status}: {count}")

    # Revenue
    if 'total_price' in df.columns and 'order_status' in df.columns:
        completed = df[df['order_status'] == 'Completed']
        total = completed['total_price'].sum()
        avg = completed['total_price'].mean() if len(completed) else 0
        print("\n💰 REVENUE (Completed only):")
        print(f"   Total: {total:.2f}")
        print(f"   Average: {avg:.2f}")

    # Sample data
    print("\n📋 RECENT ORDERS:")
    print("-" * 60)
    if len(df) > 0:
        cols = ['order_id', 'table_number', 'total_price', 'order_status']
        cols = [c for c in cols if c in df.columns]
        print(df[cols].tail(5).to_string(index=False))

    print("\n" + "=" * 60)
    print("✅ VERIFICATION COMPLETE")
    print("=" * 60)

    return True


if __name__ == "__main__":
    verify_excel()
