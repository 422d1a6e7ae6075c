"""
Audit Logging for Pool Operations

This module writes a plain-text audit trail of every state-changing pool
operation to instance/logs/audit.log, alongside the queryable event log kept
in the database (see app.event_log).

Usage:
    from app.audit import audit_log_pool_action, audit_log_security_event

    # For pool state changes
    audit_log_pool_action('pool_locked', pool.id, 'Locked pool: Super Bowl')

    # For refused or suspicious requests
    audit_log_security_event('ACCESS_DENIED', f'Non-owner attempted to lock pool {pool.id}')
"""

import logging
import os
from typing import Optional, Dict, Any, Union
from flask import current_app, has_request_context
from flask_login import current_user


# Configure audit logger
def setup_audit_logger():
    """Setup and configure the audit logger with proper formatting and file handling."""
    # Create audit logger
    audit_logger = logging.getLogger('audit')
    audit_logger.setLevel(logging.INFO)

    # Prevent duplicate log entries
    if audit_logger.hasHandlers():
        return audit_logger

    # Create logs directory if it doesn't exist
    log_dir = os.path.join(current_app.instance_path, 'logs')
    os.makedirs(log_dir, exist_ok=True)

    # Create file handler for audit.log
    log_file = os.path.join(log_dir, 'audit.log')
    file_handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')
    file_handler.setLevel(logging.INFO)

    # Create formatter
    formatter = logging.Formatter(
        '%(asctime)s | %(levelname)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    file_handler.setFormatter(formatter)

    # Add handler to logger
    audit_logger.addHandler(file_handler)

    # Prevent propagation to root logger
    audit_logger.propagate = False

    return audit_logger


def get_current_user_info() -> str:
    """Get current user information for audit logging."""
    if has_request_context() and current_user.is_authenticated:
        return f"{current_user.email} (ID: {current_user.id})"
    return "SYSTEM"


def audit_log_pool_action(action: str, pool_id: Union[int, str], description: str,
                          actor_user_id: Optional[int] = None,
                          additional_data: Optional[Dict[str, Any]] = None):
    """
    Log a state-changing pool operation.

    Args:
        action: Event type tag (e.g., 'pool_locked', 'squares_claimed')
        pool_id: ID of the pool acted on
        description: Human-readable description of the operation
        actor_user_id: Acting user, None for the scheduled sweep
        additional_data: Optional additional data to include in the log
    """
    try:
        logger = setup_audit_logger()
        if actor_user_id is None:
            user_info = get_current_user_info()
        else:
            user_info = f"ID: {actor_user_id}"

        log_message = f"POOL | {action.upper()} | Pool: {pool_id} | User: {user_info} | {description}"
        if additional_data:
            log_message += f" | {additional_data}"

        logger.info(log_message)
    except Exception as e:
        # Audit logging should never break application functionality
        try:
            current_app.logger.error(f"AUDIT_FAILURE | Failed to log {action} for pool {pool_id}: {str(e)}")
        except Exception:
            pass


def audit_log_security_event(event_type: str, description: str,
                             additional_data: Optional[Dict[str, Any]] = None):
    """
    Log security-related events.

    Args:
        event_type: Type of security event ('ACCESS_DENIED', 'INVALID_TOKEN', 'INVALID_INVITE_CODE')
        description: Human-readable description of the event
        additional_data: Optional additional data to include in the log
    """
    try:
        logger = setup_audit_logger()
        user_info = get_current_user_info()

        log_message = f"SECURITY | {event_type} | User: {user_info} | {description}"
        if additional_data:
            log_message += f" | {additional_data}"

        logger.warning(log_message)
    except Exception as e:
        try:
            current_app.logger.error(f"AUDIT_FAILURE | Failed to log security event {event_type}: {str(e)}")
        except Exception:
            pass


def audit_log_system_event(event_type: str, description: str,
                           additional_data: Optional[Dict[str, Any]] = None):
    """
    Log system-level events.

    Args:
        event_type: Type of system event ('AUTO_LOCK', 'STARTUP')
        description: Human-readable description of the event
        additional_data: Optional additional data to include in the log
    """
    try:
        logger = setup_audit_logger()

        log_message = f"SYSTEM | {event_type} | {description}"
        if additional_data:
            log_message += f" | {additional_data}"

        logger.info(log_message)
    except Exception as e:
        try:
            current_app.logger.error(f"AUDIT_FAILURE | Failed to log system event {event_type}: {str(e)}")
        except Exception:
            pass
