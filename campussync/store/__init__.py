"""
CampusSync Storage
===================

SQLAlchemy persistence for the verification pipeline.

Components:
    - database.py:   Engine, session factory and transactional scope
    - models.py:     ORM rows (certificates, issuers, rules, credentials, jobs)
    - repository.py: Certificate / issuer / rule / audit data access
    - seed.py:       Default trusted issuers and verification rules
"""
