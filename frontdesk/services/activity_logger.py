"""
Activity Logger Service
Audit trail of front desk actions, stored in the activity_logs table.
"""

import logging
import sqlite3

from flask import request, has_request_context

from frontdesk.adapters.sqlite.core import get_db
from frontdesk.common.utils import clinic_now

logger = logging.getLogger(__name__)


class ActionType:
    LOGIN = 'login'
    LOGOUT = 'logout'
    VISIT_REGISTER = 'visit_register'
    OFFLINE_TOKEN = 'offline_token'
    CONSULTATION_START = 'consultation_start'
    PRESCRIPTION_SAVE = 'prescription_save'
    BILL_GENERATE = 'bill_generate'


ACTION_DESCRIPTIONS = {
    ActionType.LOGIN: 'Signed in',
    ActionType.LOGOUT: 'Signed out',
    ActionType.VISIT_REGISTER: 'Registered patient',
    ActionType.OFFLINE_TOKEN: 'Token issued by offline numbering',
    ActionType.CONSULTATION_START: 'Started consultation',
    ActionType.PRESCRIPTION_SAVE: 'Saved prescription',
    ActionType.BILL_GENERATE: 'Generated bill',
}


def log_activity(
    action_type: str,
    description: str = None,
    visit=None,
    old_value: str = None,
    new_value: str = None,
    user_id: int = None,
    username: str = None,
):
    """
    Record one action.

    Args:
        action_type: one of ActionType
        description: custom text; defaults to ACTION_DESCRIPTIONS
        visit: the Visit acted on, if any
        old_value / new_value: before and after, for status changes
        user_id / username: actor; defaults to the signed-in session
    """
    if user_id is None and has_request_context():
        from frontdesk.services.auth_service import current_session
        current = current_session()
        if current is not None:
            user_id, username = current.subject_id, current.username

    if description is None:
        description = ACTION_DESCRIPTIONS.get(action_type, action_type)

    ip_address = request.remote_addr if has_request_context() else None

    try:
        db = get_db()
        db.execute("""
            INSERT INTO activity_logs (
                user_id, username, action_type, description, visit_id,
                token_number, patient_name, old_value, new_value, ip_address, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            user_id or 0, username or 'system', action_type, description,
            getattr(visit, 'id', None), getattr(visit, 'token_number', None),
            getattr(visit, 'name', None), old_value, new_value, ip_address,
            clinic_now().strftime('%Y-%m-%d %H:%M:%S'),
        ))
        db.commit()
    except sqlite3.Error as e:
        # The audit trail must not fail the action it records
        logger.warning("Could not record activity %s: %s", action_type, e)


def get_activity_logs(
    action_type: str = None,
    visit_id: int = None,
    date_from: str = None,
    date_to: str = None,
    limit: int = 100,
    offset: int = 0
) -> list:
    """Logs matching the filters, newest first. Dates are YYYY-MM-DD, inclusive."""
    db = get_db()

    query = "SELECT * FROM activity_logs WHERE 1=1"
    params = []

    if action_type:
        query += " AND action_type = ?"
        params.append(action_type)

    if visit_id:
        query += " AND visit_id = ?"
        params.append(visit_id)

    if date_from:
        query += " AND created_at >= ?"
        params.append(f"{date_from} 00:00:00")

    if date_to:
        query += " AND created_at <= ?"
        params.append(f"{date_to} 23:59:59")

    query += " ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?"
    params.extend([limit, offset])

    rows = db.execute(query, params).fetchall()
    return [dict(row) for row in rows]
