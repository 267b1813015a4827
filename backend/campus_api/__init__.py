"""Application package for the campus administration backend.

This package exposes the service, repository and model modules used by
the FastAPI application: the course catalog with enrollment, academic
paper records with file attachments, and the bearer-token auth around
them. Individual modules contain the concrete implementations.
"""
