from .time import format_check_in_time, format_remaining_time, parse_timestamp

__all__ = ["parse_timestamp", "format_check_in_time", "format_remaining_time"]
