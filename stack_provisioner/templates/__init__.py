# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.
"""Jinja2 templates of the rendered configuration artifacts."""
