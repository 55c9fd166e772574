"""
Purchase order lifecycle signals.

Sent with ``send_robust`` once the transition has been saved, so a failing
receiver cannot undo the transition. Every signal passes
``purchase_order`` and ``user`` keyword arguments.
"""

from django.dispatch import Signal

purchase_order_submitted = Signal()
purchase_order_sent = Signal()
purchase_order_supplier_responded = Signal()
purchase_order_cancelled = Signal()
