"""
GitLab Developer Tracker - Token bridge and activity aggregation core

This package turns a caller's encrypted GitLab token and a project/window
request into per-developer activity statistics.

Package Structure:
    - core: Infrastructure (logging, fetch metrics)
    - security: Token decryption, untrusted input validation
    - domain: Domain models (Developer, ActivityEvent, IssueStatistics)
    - collectors: GitLab client, aggregation and request orchestration
    - utils: Datetime and error handling helpers
"""

__version__ = "1.0.0"
