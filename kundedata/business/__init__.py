# ==== BUSINESS PACKAGE ==== #

"""
Business vocabulary for Kundedata.

Status lifecycles, automation trigger and action types, form field types and
recurring invoice intervals shared by models, schemas and services.
"""
