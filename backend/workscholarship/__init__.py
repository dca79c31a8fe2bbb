"""Application package for the work-scholarship cycle backend.

This package exposes the lifecycle, service, repository and model modules
used by the FastAPI application. Administrators create a cycle per
department, attach locations and supervisors, and move it through its
lifecycle; the individual modules hold the concrete implementations.
"""
