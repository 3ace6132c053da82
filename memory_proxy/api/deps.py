"""
FastAPI dependencies.
"""

import threading

from fastapi import Request

from ..core.services import ProxyServices, build_services

_build_lock = threading.Lock()


def get_services(request: Request) -> ProxyServices:
    """Return the service graph owned by the app, building it on first use."""
    app = request.app
    services = getattr(app.state, "services", None)
    if services is None:
        with _build_lock:
            services = getattr(app.state, "services", None)
            if services is None:
                services = build_services()
                app.state.services = services
    return services
