"""Shared throttles.

Rates are looked up in Django settings at request time, so tests using
override_settings reliably affect them. Views may set
``write_throttle_scope`` to rate unsafe methods separately from reads.
"""

from django.conf import settings
from rest_framework.permissions import SAFE_METHODS
from rest_framework.throttling import ScopedRateThrottle


class SettingsScopedRateThrottle(ScopedRateThrottle):
    def allow_request(self, request, view):
        if request.method not in SAFE_METHODS and getattr(view, "write_throttle_scope", None):
            self.scope_attr = "write_throttle_scope"
        return super().allow_request(request, view)

    def get_rate(self):
        rf = getattr(settings, "REST_FRAMEWORK", {})
        rates = rf.get("DEFAULT_THROTTLE_RATES", {})
        return rates.get(self.scope)
