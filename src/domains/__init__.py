# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Domain services layer for LearnPath.

Domains:
    auth: Access token verification.
    progress: Progress tracking, sequence gating, quiz attempts and dashboards.
"""
