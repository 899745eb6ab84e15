"""Shared building blocks: role scoping, problem-detail errors, pagination,
filters, audit trail, clock helpers and enums used by every domain package."""
