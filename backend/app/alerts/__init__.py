"""
alerts — SOS alert dispatch pipeline.

Sub-modules:
    channels/    — SMS delivery backends (live Twilio, demo)
    dispatcher   — Trigger orchestration: validate, fan out, record
    lifecycle    — Admin status transitions (active → resolved / false_alarm)
    contacts     — Emergency contact rules (limit, phone format, priority)
    directory    — User lookup and contact storage
    store        — Alert record storage
    tables       — ORM tables behind the SQL directory and store
    models       — Data structures shared across the pipeline
"""
