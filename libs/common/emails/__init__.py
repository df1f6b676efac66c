"""
RangeReady Email Package.

Modules:
- core: Base send_email function (SMTP)

Templates live in services/communications_service/templates/. Only the
communications worker sends mail; other services publish events instead.
"""

from libs.common.emails.core import send_email

__all__ = ["send_email"]
