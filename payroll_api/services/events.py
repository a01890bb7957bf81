# payroll_api/services/events.py
"""
Payroll lifecycle signals.

Receivers get plain facts as keyword arguments; how (and whether) anyone is
notified is up to them. Signals are sent only after the transaction that
produced the fact has committed.

    from payroll_api.services.events import entry_released

    @entry_released.connect
    def _notify(sender, **facts): ...
"""
from blinker import Namespace

_signals = Namespace()

# sender: "payroll"; facts: entry_id, employee_id, period_start, period_end, net_pay
entry_releasable = _signals.signal("entry-releasable")
entry_released = _signals.signal("entry-released")
period_archived = _signals.signal("period-archived")

SENDER = "payroll"
