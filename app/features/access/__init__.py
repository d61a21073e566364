"""
Access control feature module.

Implements Role-Based Access Control (RBAC) over a per-feature permission
matrix, with deny-by-default evaluation and a single Admin override.
"""
