"""API modules for HTTP interface."""

from api.base import ErrorBody, ErrorEnvelope, error_response
from api.errors import register_error_handlers
from api.middleware import RequestIDMiddleware
