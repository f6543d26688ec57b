#!/usr/bin/env python3
#
# acmed/__init__.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""acmed - unattended ACME certificate issuance and renewal."""

__version__ = "0.1.0"

__all__ = ["__version__"]
