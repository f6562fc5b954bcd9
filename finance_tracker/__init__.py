"""Personal finance tracker Telegram bot with period reports."""

from .models import Report, ReportKind
from .service import ExpenseTracker, ReportError

__all__ = ["ExpenseTracker", "Report", "ReportError", "ReportKind"]
__version__ = "0.1.0"
