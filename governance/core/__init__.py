"""Core domain logic: hierarchy, approvals, delegation, RBAC."""
