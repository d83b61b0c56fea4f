"""Textual dashboard for Orgbook."""

from orgbook.tui.app import OrgbookApp

__all__ = ["OrgbookApp"]
