"""Email transport and templates."""
from coinspree.providers.email.resend_provider import (EmailProviderABC,
                                                       ResendProvider)
from coinspree.providers.email.templates import (DEFAULT_TEMPLATES,
                                                 TemplateStore, render)

__all__ = [
    "DEFAULT_TEMPLATES",
    "EmailProviderABC",
    "ResendProvider",
    "TemplateStore",
    "render",
]
