"""
CampusSync Verifiable Credentials
==================================

Components:
    - CredentialIssuer:  issues a signed W3C VC for a verified certificate
    - CredentialRevoker: one-way revocation, status registry, verification
"""
