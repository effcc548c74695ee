"""
Structured logging for visionlink operations.
Document writes, vector index calls and link maintenance all report through here.
"""

import logging
from typing import Any, Dict, List

class StructuredLogger:
    """Structured logger for document, vector and link-maintenance operations."""

    def __init__(self, name: str = "visionlink"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {details}"

        if status in ("failed", "error"):
            self.logger.warning(message)
        else:
            self.logger.info(message)

    def log_document_operation(self, operation: str, collection: str, doc_id: str, status: str = "success", details: Dict[str, Any] = None):
        """Log a document store operation."""
        log_details = {"collection": collection, "doc_id": doc_id}
        if details:
            log_details.update(sanitize_payload(details))

        self.log_operation(f"document.{operation}", status, log_details)

    def log_vector_operation(self, operation: str, record_id: str, details: Dict[str, Any] = None, status: str = "success"):
        """Log a vector operation."""
        log_details = {"record_id": record_id}
        if details:
            log_details.update(details)

        self.log_operation(f"vector.{operation}", status, log_details)

    def log_link_operation(self, operation: str, vision_id: str, product_id: str, score: float = None, status: str = "success"):
        """Log a vision/product link change."""
        log_details = {"vision_id": vision_id, "product_id": product_id}
        if score is not None:
            log_details["score"] = round(float(score), 4)

        self.log_operation(f"link.{operation}", status, log_details)

    def log_eviction(self, vision_id: str, evicted_ids: List[str], admitted_id: str):
        """Log products pushed out of a vision's top links."""
        self.log_operation("link.evicted", "success", {
            "vision_id": vision_id,
            "evicted": list(evicted_ids),
            "admitted": admitted_id
        })

    def log_backfill(self, vision_id: str, added_ids: List[str], link_count: int):
        """Log the outcome of a recovery pass."""
        self.log_operation("link.backfill", "success" if added_ids else "exhausted", {
            "vision_id": vision_id,
            "added": list(added_ids),
            "link_count": link_count
        })

    def log_duplicate(self, vision_id: str, reason: str, score: float = None):
        """Log a vision creation short-circuited by the duplicate guard."""
        details = {"vision_id": vision_id, "reason": reason}
        if score is not None:
            details["score"] = round(float(score), 4)

        self.log_operation("vision.duplicate", "detected", details)

    def log_validation_error(self, operation: str, errors: List[Any]):
        """Log request validation errors with sanitized details."""
        sanitized_errors = []
        for error in errors:
            if isinstance(error, dict):
                sanitized_error = {k: v for k, v in error.items() if k in ("loc", "msg", "type")}
                sanitized_errors.append(sanitized_error)
            else:
                sanitized_errors.append(str(error)[:100])

        self.log_operation("validation.error", "rejected", {
            "operation": operation,
            "errors": sanitized_errors,
            "error_count": len(sanitized_errors)
        })

    # Standard logging methods for compatibility
    def info(self, message: str) -> None:
        """Log an info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log an error message."""
        self.logger.error(message)

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self.logger.debug(message)


def sanitize_payload(payload: Any, max_length: int = 100) -> Any:
    """Truncate long strings (descriptions, URLs) before they reach the log."""
    if isinstance(payload, dict):
        return {k: sanitize_payload(v, max_length) for k, v in payload.items()}
    elif isinstance(payload, str):
        return payload[:max_length] + "..." if len(payload) > max_length else payload
    elif isinstance(payload, list):
        return [sanitize_payload(item, max_length) for item in payload]
    else:
        return payload

# Global logger instance
logger = StructuredLogger()
