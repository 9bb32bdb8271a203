# ==== ROUTES PACKAGE ==== #

"""
Routes package for API endpoints.

This package contains the FastAPI route modules for authentication, forms,
leads, email automation, invoicing, cron processing and the public form page.
"""
