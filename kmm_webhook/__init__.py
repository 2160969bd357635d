"""
Admission webhook for kernel module (KMM) Module resources

This package validates Module objects before the API server persists them,
and provides the server and webhook configuration needed to deploy it.
"""

from .module_validator import Accepted, ModuleValidator, Rejected
from .registry import Registry
from .validator import validating
from .webhooks import register_module_webhook

__all__ = [
    'Accepted',
    'ModuleValidator',
    'Registry',
    'Rejected',
    'register_module_webhook',
    'validating'
]
