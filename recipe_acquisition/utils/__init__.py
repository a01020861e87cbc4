"""Utils package initialization."""
from recipe_acquisition.utils.logger import get_logger, LayerLogger, set_trace_id, get_trace_id, bind_request_context

__all__ = ["get_logger", "LayerLogger", "set_trace_id", "get_trace_id", "bind_request_context"]
