#!/usr/bin/env python3
# CUI // SP-CTI
"""Quantum Package: cryptographic asset inventory, quantum risk scoring, migration roadmap."""
