from .serialization import now_ms, to_json_safe, dumps, loads, estimate_size

__all__ = ["now_ms", "to_json_safe", "dumps", "loads", "estimate_size"]
