"""
User-facing notifications emitted by CRUD mutations.

Presentation (toasts, banners) is owned by the application; this module
only defines the seam and a structlog-backed default.
"""

from dataclasses import dataclass
from typing import Protocol

from shared.logging import get_logger


class Notifier(Protocol):
    def success(self, title: str, description: str) -> None: ...

    def error(self, title: str, description: str) -> None: ...


class LoggingNotifier:
    """Writes notifications to the log instead of a UI."""

    def __init__(self, name: str = "resource_access.notifications"):
        self.logger = get_logger(name)

    def success(self, title: str, description: str) -> None:
        self.logger.info(description, title=title, level_hint="success")

    def error(self, title: str, description: str) -> None:
        self.logger.warning(description, title=title, level_hint="error")


@dataclass
class CrudMessages:
    success_title: str = "Success"
    error_title: str = "Error"
    invalid_title: str = "Invalid data"
    create_success: str = "Created successfully"
    update_success: str = "Updated successfully"
    delete_success: str = "Deleted successfully"
    upload_success: str = "Uploaded successfully"
    download_success: str = "Downloaded successfully"
    create_error: str = "Could not create"
    update_error: str = "Could not update"
    delete_error: str = "Could not delete"
    upload_error: str = "Could not upload"
    download_error: str = "Could not download"
