# ==== SERVICES PACKAGE ==== #

"""
Services package for business logic and external integrations.

This package contains the automation engine, scheduled job processing,
invoice calculations, recurring invoice generation and the Resend and
Supabase Storage clients.
"""
