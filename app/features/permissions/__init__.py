"""
Permission management feature module.

Page-level and API-level authorization for the admissions backend: a static
page catalog, grants held by users and roles, bypass policies and the
resolver that decides every /api request.
"""
