"""Accounts service: authentication and account security for the business backend."""

__all__: list[str] = []
