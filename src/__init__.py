"""LearnPath progress core.

Multi-tenant progress tracking and sequence gating for modules, chapters
and quizzes.

Copyright (C) 2025 Global Digital Labs (gdlabs.io)
SPDX-License-Identifier: LGPL-3.0-or-later
"""

__version__ = "1.0.0"
