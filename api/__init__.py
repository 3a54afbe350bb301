"""
API Module
FastAPI routers for the MedAssist application
"""


def include_routers(app, prefix: str = "/api/v1"):
    """
    Include all API routers in the FastAPI app

    Routers are imported here so that `api.schemas` stays importable
    from the service layer.

    Usage:
        from api import include_routers
        include_routers(app)
    """
    from api.webhook import router as webhook_router
    from api.jobs import router as jobs_router
    from api.patients import router as patients_router

    app.include_router(webhook_router, prefix=prefix)
    app.include_router(jobs_router, prefix=prefix)
    app.include_router(patients_router, prefix=prefix)
