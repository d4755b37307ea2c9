from flask import jsonify


def ok(data=None, message="success", status=200):
    payload = {"status": "success", "message": message}
    if data is not None:
        payload["data"] = data
    return jsonify(payload), status


def error(message, status=400, code=None, data=None):
    return jsonify({
        "code": code or status,
        "message": message,
        "data": {"status": status, **(data or {})},
    }), status
