# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tenant middleware for multi-tenant background processing.

Every progress actor takes the tenant code as its first argument. The
middleware stamps it into the message options when sending and, while a
message is processed, exposes it through a context variable and binds it
to the logging context.
"""

import contextvars
import logging
from typing import Any

import dramatiq
from dramatiq import Message, Middleware

from src.utils.logging import bind_context, clear_context

logger = logging.getLogger(__name__)


_tenant_context: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "tenant_code", default=None
)


def get_current_tenant() -> str | None:
    """Get the tenant code of the message being processed."""
    return _tenant_context.get()


def set_current_tenant(tenant_code: str | None) -> contextvars.Token[str | None]:
    """Set the current tenant code in context.

    Returns:
        Context token for resetting.
    """
    return _tenant_context.set(tenant_code)


class TenantMiddleware(Middleware):
    """Middleware propagating the tenant code of progress actors.

    Usage:
        @dramatiq.actor
        def my_task(tenant_code: str, ...):
            current = get_current_tenant()  # Returns tenant_code

        my_task.send("lycee_hugo", ...)
    """

    TENANT_KEY = "tenant_code"

    def before_enqueue(
        self,
        broker: dramatiq.Broker,
        message: Message,
        delay: int | None,
    ) -> None:
        """Record the tenant code in the message options."""
        if self.TENANT_KEY in message.options:
            return

        tenant_code = message.args[0] if message.args else get_current_tenant()
        if isinstance(tenant_code, str):
            message.options[self.TENANT_KEY] = tenant_code

    def before_process_message(
        self,
        broker: dramatiq.Broker,
        message: Message,
    ) -> None:
        """Restore tenant context before processing message."""
        tenant_code = message.options.get(self.TENANT_KEY)
        if tenant_code:
            set_current_tenant(tenant_code)
            bind_context(
                tenant_code=tenant_code,
                actor=message.actor_name,
                message_id=message.message_id,
            )

    def after_process_message(
        self,
        broker: dramatiq.Broker,
        message: Message,
        *,
        result: Any = None,
        exception: BaseException | None = None,
    ) -> None:
        """Clear tenant context after processing message."""
        set_current_tenant(None)
        clear_context()

    def after_skip_message(
        self,
        broker: dramatiq.Broker,
        message: Message,
    ) -> None:
        """Clear tenant context after skipping message."""
        set_current_tenant(None)
        clear_context()
