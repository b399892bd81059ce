#!/usr/bin/env python3
# CUI // SP-CTI
"""Compliance Package: scenario classification, control resolution, OSCAL documents.

Pipeline entry point: grctools.compliance.assessment_pipeline.AssessmentRun.
"""
