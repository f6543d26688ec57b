#!/usr/bin/env python3
#
# main.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

# acmed - ACME certificate daemon
# Local development entry point: python main.py run|server
#

import sys

from acmed.main import main

if __name__ == "__main__":
	main(sys.argv[1:])
