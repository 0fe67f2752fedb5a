# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tenant database migrations.

Migrations are plain Alembic operation scripts applied programmatically by
runner.py, one tenant database at a time.
"""
