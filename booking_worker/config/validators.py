"""Additional validation utilities for configuration."""

import warnings
from typing import Any, Dict, List

from .duration import DurationParseError, parse_duration


def check_for_warnings(config_dict: Dict[str, Any]) -> List[str]:
    """
    Check configuration for potential issues and return warnings.

    These are settings that validate but are likely mistakes in production.

    Args:
        config_dict: Raw configuration dictionary

    Returns:
        List of warning messages
    """
    warning_messages = []

    dispatch = config_dict.get("dispatch", {})
    if isinstance(dispatch, dict):
        for key in ("email_batch_size", "job_batch_size"):
            value = dispatch.get(key)
            if isinstance(value, int) and value > 100:
                warning_messages.append(
                    f"Large dispatch.{key} ({value}) may not finish within one trigger interval"
                )

        concurrency = dispatch.get("max_concurrency")
        if isinstance(concurrency, int) and concurrency > 20:
            warning_messages.append(
                f"High dispatch.max_concurrency ({concurrency}) may exhaust database connections"
            )

    retry = config_dict.get("retry", {})
    if isinstance(retry, dict):
        for kind in ("jobs", "emails"):
            policy = retry.get(kind)
            if not isinstance(policy, dict):
                continue
            base_delay = policy.get("base_delay")
            if not isinstance(base_delay, str):
                continue
            try:
                seconds = parse_duration(base_delay)
            except DurationParseError:
                # Reported as an error by model validation
                continue
            if seconds < 30:
                warning_messages.append(
                    f"Short retry.{kind}.base_delay ({base_delay}) may hammer failing dependencies"
                )

    jobs = config_dict.get("jobs", {})
    if isinstance(jobs, dict) and jobs.get("retry_missing_bookings") is False:
        warning_messages.append(
            "jobs.retry_missing_bookings is false: jobs for bookings that are not yet "
            "visible will fail on their first attempt"
        )

    return warning_messages


def emit_warnings(warning_messages: List[str]) -> None:
    """
    Emit warning messages using Python's warnings module.

    Args:
        warning_messages: List of warning messages to emit
    """
    for message in warning_messages:
        warnings.warn(message, UserWarning, stacklevel=2)
