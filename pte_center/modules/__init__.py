# PTE Intensive Management - Modules Package
"""
Core business logic modules for PTE Intensive Management: access policy,
session authentication, Firestore reads, reminder and lead follow-up detection,
notifications, the end-of-day report and the scheduler commands.
"""
