from functools import wraps
from flask import request


def request_params() -> dict:
    """Merge request parameters; query string beats form body beats JSON body."""
    params = {}
    body = request.get_json(silent=True)
    if isinstance(body, dict):
        params.update(body)
    params.update(request.form.to_dict())
    params.update(request.args.to_dict())
    return params


def validate_schema(schema):
    """Decorator to validate request parameters against a Pydantic schema.

    A ValidationError propagates to the error handlers as a 400 response.
    """

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            request.validated_data = schema(**request_params())
            return fn(*args, **kwargs)
        return wrapper

    return decorator
