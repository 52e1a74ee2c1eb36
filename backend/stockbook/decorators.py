# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g, current_app

from .services import tenant_service
from .services.tenant_service import TenantAccessError


def require_tenant(f):
    """
    Resolve the authenticated principal to a Business and establish tenant context.

    The identity provider (or the gateway in front of us) puts the principal's
    email in IDENTITY_EMAIL_HEADER. A first request that also carries
    IDENTITY_NAME_HEADER registers the business.

    MULTI-TENANT: Sets the following Flask g attributes:
    - g.business: the resolved Business
    - g.business_id: its id; every service call below takes it explicitly

    SECURITY: Returns 401 if the header is missing or no business matches.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        email = request.headers.get(current_app.config["IDENTITY_EMAIL_HEADER"])
        name = request.headers.get(current_app.config["IDENTITY_NAME_HEADER"])

        try:
            business = tenant_service.resolve_business(email, name)
        except TenantAccessError as e:
            return jsonify({"error": str(e)}), 401

        g.business = business
        g.business_id = business.id

        return f(*args, **kwargs)

    return decorated_function
