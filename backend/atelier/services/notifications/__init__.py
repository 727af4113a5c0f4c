"""
Notifications service package.

Customer emails are rendered with Jinja2 and delivered through AWS SES.
"""
