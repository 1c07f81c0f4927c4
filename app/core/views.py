"""
Core views providing infrastructure endpoints.
"""

from django.db import connection
from django.db.utils import DatabaseError
from django.http import JsonResponse


def health_check(request):
    """
    Health check endpoint for load balancers and container probes.

    The relational store is the engine's source of truth, so the check
    fails (503) whenever the database cannot answer a trivial query.

    Example Response:
        {"status": "healthy", "database": "connected"}
    """
    health_status = {
        "status": "healthy",
        "database": "unknown",
    }

    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        health_status["database"] = "connected"
    except DatabaseError:
        health_status["database"] = "disconnected"
        health_status["status"] = "unhealthy"

    status_code = 200 if health_status["status"] == "healthy" else 503
    return JsonResponse(health_status, status=status_code)
