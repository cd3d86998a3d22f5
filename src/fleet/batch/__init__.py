"""Batch module - reading device lists and dispatching updates.

Architecture:
    reader.py      - Device list readers (CSV, Excel workbook)
    dispatcher.py  - Worker pool, batch report and batch entry point
"""

from .dispatcher import BatchReport, Dispatcher, batch_update
from .reader import (
    CsvDeviceReader,
    DeviceListReader,
    WorkbookDeviceReader,
    is_valid_mac,
    open_device_reader,
)

__all__ = [
    "BatchReport",
    "Dispatcher",
    "batch_update",
    "DeviceListReader",
    "CsvDeviceReader",
    "WorkbookDeviceReader",
    "is_valid_mac",
    "open_device_reader",
]
