import logging
import sys
from pythonjsonlogger.json import JsonFormatter
import contextvars

# Context variables for correlation
ctx_run_id = contextvars.ContextVar("run_id", default=None)
ctx_node_id = contextvars.ContextVar("node_id", default=None)
ctx_deploy_id = contextvars.ContextVar("deploy_id", default=None)


class CorrelationJsonFormatter(JsonFormatter):
    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)

        run_id = ctx_run_id.get()
        if run_id:
            log_record["run_id"] = run_id

        node_id = ctx_node_id.get()
        if node_id:
            log_record["node_id"] = node_id

        deploy_id = ctx_deploy_id.get()
        if deploy_id:
            log_record["deploy_id"] = deploy_id


class CorrelationTextFilter(logging.Filter):
    """Expose the correlation ids on every record for the text formatter."""

    def filter(self, record):
        record.run_id = ctx_run_id.get() or "-"
        record.node_id = ctx_node_id.get() or "-"
        return True


def setup_logger(log_format: str = "text", log_level: str = "INFO"):
    """Configure the root logger."""
    root_logger = logging.getLogger()

    # Remove existing handlers to avoid duplicates
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)

    if log_format.lower() == "json":
        formatter = CorrelationJsonFormatter(
            '%(asctime)s %(levelname)s %(name)s %(message)s',
            rename_fields={"levelname": "level", "asctime": "timestamp"}
        )
    else:
        handler.addFilter(CorrelationTextFilter())
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - [run=%(run_id)s node=%(node_id)s] %(message)s"
        )

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    numeric_level = getattr(logging, log_level.upper(), logging.INFO)
    root_logger.setLevel(numeric_level)

    # Silence third-party noise
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    return root_logger
