import logging


class RedactionFilter(logging.Filter):
    """Mask credentials and row payloads attached to log records."""

    BLOCKED_KEYS = {"app_password", "api_key", "input_data", "body", "image_bytes"}

    def filter(self, record: logging.LogRecord) -> bool:
        for key in self.BLOCKED_KEYS:
            if hasattr(record, key):
                setattr(record, key, "[REDACTED]")
        return True


def configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    root = logging.getLogger()
    if not any(isinstance(existing, RedactionFilter) for existing in root.filters):
        root.addFilter(RedactionFilter())
