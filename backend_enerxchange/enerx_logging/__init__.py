"""
Structured logging for Backend EnerXchange.

JSON logs with timestamp, event_type, address, listing_id.
Use get_logger() in all read-model modules for aggregation-friendly output.
"""

from backend_enerxchange.enerx_logging.logger import bind_address, get_logger

__all__ = ["bind_address", "get_logger"]
