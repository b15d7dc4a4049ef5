"""Collect receipt line items from a file share into one categorized ledger."""

from .categorizer import Categorizer
from .config import AppConfig, load_config
from .errors import ExtractionTimeout, ParseError, ReceiptSyncError, TransportError
from .ledger import AnalysisLedger, merge
from .models import LineItem, RemoteFile
from .share import FileShare, create_share
from .state import ProcessedFiles
from .sync import ReceiptSync, SyncPhase

__all__ = [
    "LineItem",
    "RemoteFile",
    "AnalysisLedger",
    "merge",
    "ProcessedFiles",
    "Categorizer",
    "FileShare",
    "create_share",
    "ReceiptSync",
    "SyncPhase",
    "AppConfig",
    "load_config",
    "ReceiptSyncError",
    "TransportError",
    "ParseError",
    "ExtractionTimeout",
]
