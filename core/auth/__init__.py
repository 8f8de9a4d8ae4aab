# -*- coding: utf-8 -*-
"""
Authentication module for the gateway
"""

from .middleware import AuthenticationMiddleware, authorize

__all__ = ["AuthenticationMiddleware", "authorize"]
