"""Security configuration and middleware."""

from flask import abort, request


def configure_security_headers(app):
    """Configure security headers."""

    @app.after_request
    def add_security_headers(response):
        """Add security headers to all responses."""
        # Prevent MIME type sniffing
        response.headers['X-Content-Type-Options'] = 'nosniff'

        # Prevent clickjacking
        response.headers['X-Frame-Options'] = 'DENY'

        response.headers['Referrer-Policy'] = 'no-referrer-when-downgrade'

        # The app only serves JSON and backup downloads
        response.headers['Content-Security-Policy'] = "default-src 'none'; frame-ancestors 'none'"

        # HSTS for HTTPS (only add if using HTTPS)
        if request.is_secure:
            response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'

        return response

    return app


def validate_input_length(app, max_bytes=5 * 1024 * 1024):
    """Reject oversized payloads; backup restores are the largest legitimate body."""

    @app.before_request
    def limit_request_size():
        if request.content_length and request.content_length > max_bytes:
            abort(413)  # Payload Too Large

    return app


def configure_password_policy():
    """Configure password complexity requirements."""
    return {
        'min_length': 8,
        'require_uppercase': True,
        'require_lowercase': True,
        'require_digits': True,
    }


def is_password_strong(password):
    """Validate password against policy."""
    policy = configure_password_policy()

    if len(password) < policy['min_length']:
        return False, f"Password must be at least {policy['min_length']} characters long"

    if policy['require_uppercase'] and not any(c.isupper() for c in password):
        return False, "Password must contain at least one uppercase letter"

    if policy['require_lowercase'] and not any(c.islower() for c in password):
        return False, "Password must contain at least one lowercase letter"

    if policy['require_digits'] and not any(c.isdigit() for c in password):
        return False, "Password must contain at least one digit"

    return True, "Password meets requirements"


# Rate limits applied with limiter.limit(...)
def auth_rate_limit():
    """Rate limit for authentication endpoints."""
    return "5 per minute"


def admin_rate_limit():
    """Rate limit for admin endpoints."""
    return "200 per hour"


__all__ = [
    'configure_security_headers',
    'validate_input_length',
    'is_password_strong',
    'auth_rate_limit',
    'admin_rate_limit',
]
