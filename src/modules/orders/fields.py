"""Custom model fields for the Orders module."""

from __future__ import annotations

from django.db import models

from modules.orders.constants import normalize_order_status


class OrderStatusField(models.CharField):
    """CharField that never exposes or persists the legacy ``DELIVERED`` value.

    Rows loaded from the database and values assigned before ``save()`` are
    both normalized.  Lookup values are left untouched so queries can still
    match rows that hold the legacy value.  Bulk ``QuerySet.update()``
    bypasses ``pre_save``, so callers of ``update()`` must normalize the
    value themselves.
    """

    def from_db_value(self, value, expression, connection):
        return normalize_order_status(value)

    def pre_save(self, model_instance, add):
        value = normalize_order_status(getattr(model_instance, self.attname))
        setattr(model_instance, self.attname, value)
        return value
