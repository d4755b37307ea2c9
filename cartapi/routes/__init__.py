from .v1 import v1_bp
from .v2 import v2_bp


__all__ = [
    'v1_bp',
    'v2_bp',
]
