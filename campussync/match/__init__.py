"""
CampusSync Institution Matching
================================

Scores a claimed institution against the trusted-issuer registry.

Components:
    - institution.py: Name / domain matcher combined with logo similarity
    - logo.py:        8x8 average perceptual hash and Hamming similarity
    - template.py:    Template-pattern and QR payload matching
"""
