#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Render ID card templates and compose printable PDF sheets.
"""

# Standard Library
import sys

# local repo modules
import card_print_engine.cli


if __name__ == "__main__":
	sys.exit(card_print_engine.cli.main())
