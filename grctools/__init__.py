#!/usr/bin/env python3
# CUI // SP-CTI
"""GRC Toolkit: scenario-driven NIST 800-53 and post-quantum compliance assessment."""

__version__ = "1.0.0"
