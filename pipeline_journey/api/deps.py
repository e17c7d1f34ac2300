"""
API dependencies - shared across all routes.
"""
from fastapi import Request

from pipeline_journey.services.dispatch_worker import DispatchWorker


def get_dispatch_worker(request: Request) -> DispatchWorker:
    """The app's dispatch worker, created and shut down by the lifespan."""
    return request.app.state.dispatch_worker
