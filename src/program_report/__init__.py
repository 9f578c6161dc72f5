"""Consolidated progress reports for Jira programs."""
