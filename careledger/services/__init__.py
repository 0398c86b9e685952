"""
High-level use cases for the care ledger.

Each service module orchestrates repositories/adapters to implement business
rules (register member, top up, process and settle care sessions, deliver
notifications). Routers call these services instead of touching the session.
"""
