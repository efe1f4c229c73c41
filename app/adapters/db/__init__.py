"""SQLAlchemy persistence adapters (policies, departments, file records)."""
