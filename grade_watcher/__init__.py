"""
GAPS Grade Watcher - Automated grade monitoring for the GAPS student portal.

This package provides functionality to:
- Log in to the portal and fetch the continuous-assessment grade report
- Parse the HTML grade table into a Branch -> SubBranch -> Exam tree
- Compare the tree with the snapshot saved by the previous run
- Notify a Discord webhook when a new or modified grade is found
"""

__version__ = "1.0.0"
__author__ = "Grade Watcher Team"
