"""
Template integration test harness.

Ties the resource managers, launcher, operator and matchers into the
setup/act/assert/teardown lifecycle of a single test run.
"""

from harness.template_test import RunState, TemplateTestRun

__all__ = ["RunState", "TemplateTestRun"]
