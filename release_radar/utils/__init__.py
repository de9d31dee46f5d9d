"""
Utilities package
Release week calendar, logging and common helpers
"""

from .logger import (
    get_logger,
    configure_from_settings,
    setup_logging,
    OperationLogger,
    create_operation_logger,
    log_performance,
    get_current_log_file
)
from .helpers import (
    chunked,
    format_duration,
    truncate_string,
    format_table,
    format_timestamp
)
from .calendar import (
    ReleaseWeek,
    week_of,
    range_of,
    current_week,
    weeks_in_year,
    release_week,
    weeks_back,
    parse_date_or_today
)

__all__ = [
    # Logger exports
    'get_logger',
    'configure_from_settings',
    'setup_logging',
    'OperationLogger',
    'create_operation_logger',
    'log_performance',
    'get_current_log_file',

    # Helper exports
    'chunked',
    'format_duration',
    'truncate_string',
    'format_table',
    'format_timestamp',

    # Calendar exports
    'ReleaseWeek',
    'week_of',
    'range_of',
    'current_week',
    'weeks_in_year',
    'release_week',
    'weeks_back',
    'parse_date_or_today'
]
