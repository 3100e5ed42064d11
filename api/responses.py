# api/responses.py
"""
JSON envelope shared by every endpoint: {status, message, data}
"""

from typing import Any, Optional

from flask import jsonify


def success(data: Any = None, message: Optional[str] = None, status_code: int = 200):
    body = {'status': 'success'}
    if message:
        body['message'] = message
    if data is not None:
        body['data'] = data
    return jsonify(body), status_code


def failure(message: str, status_code: int = 400, status: Optional[str] = None, **extra):
    body = {
        'status': status or ('fail' if 400 <= status_code < 500 else 'error'),
        'message': message,
    }
    body.update(extra)
    return jsonify(body), status_code
