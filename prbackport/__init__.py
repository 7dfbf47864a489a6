"""Backport merged GitHub PRs to release branches and write release notes."""

from prbackport.main import main

__all__ = ["main"]
