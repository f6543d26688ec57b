#!/usr/bin/env python3
#
# acmed/acme/__init__.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""Async ACME (RFC 8555) transport used by the certificate flows."""

from .client import ACMEClient, HTTP01_PATH_PREFIX
from .models import Authorization, Challenge, Order

__all__ = [
	"ACMEClient",
	"Authorization",
	"Challenge",
	"HTTP01_PATH_PREFIX",
	"Order",
]
