"""
Scheduling Domain

This domain handles appointment booking, availability and work schedules of
masters (staff) at salon branches.

Structure:
```
salonbook/domain/scheduling/
├── __init__.py
├── schemas.py              # Booking, reschedule, status, product and schedule schemas
├── repository.py           # Appointment and work schedule database queries
├── time_calculator.py      # Date/time parsing and interval arithmetic
├── availability_service.py # Working window minus busy time -> slot list
├── appointment_service.py  # Create, book, reschedule, edit, status, products
├── schedule_service.py     # Weekly rules, date exceptions, breaks
├── state_machine.py        # Status workflow
├── totals.py               # Derived money totals
├── errors.py               # Domain error taxonomy
└── router.py               # /appointments, /availability, /schedule endpoints
```

STATUS WORKFLOW:
- new -> confirmed -> waiting -> done / no_show
- any non-terminal status -> canceled; canceled -> new (reopen)
- blocks are created confirmed and can only be canceled

INVARIANTS:
- No two non-canceled appointments of one master overlap. Every write that
  occupies master time locks the master row and re-checks inside the same
  transaction.
- Start times and durations sit on the 15 minute grid.
- Totals are always re-summed from the line items in the same transaction
  that changed them.

All dates are civil dates of a single UTC-anchored calendar: YYYY-MM-DD and
HH:MM on the wire, naive UTC datetimes in the database.
"""
